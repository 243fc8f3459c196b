"""Tests for plantcare.data.store — mutations, observers and care sessions."""

from datetime import datetime

import pytest

from plantcare.data.models import (
    AppSettings,
    CareStep,
    CareStepType,
    Direction,
    LightType,
    Plant,
    PlantPhoto,
    Room,
    SunPeriod,
    Window,
    WindExposure,
    Zone,
    ZoneAspect,
)
from plantcare.data.store import DataStore, StoreEvent, _move


def _plant(name="Pothos", **kwargs) -> Plant:
    return Plant(
        name=name,
        preferred_light_direction=Direction.EAST,
        light_type=LightType.INDIRECT,
        care_steps=[CareStep(type=CareStepType.WATERING, instructions="Water", frequency_days=7)],
        **kwargs,
    )


def _zone(name="Patio") -> Zone:
    return Zone(name=name, aspect=ZoneAspect.OPEN, sun_period=SunPeriod.ALL, wind=WindExposure.SHELTERED)


# ---------------------------------------------------------------------------
# Seeding and persistence
# ---------------------------------------------------------------------------


class TestSeedAndPersistence:
    def test_seeds_defaults_on_first_launch(self, store):
        assert len(store.rooms) == 7
        assert len(store.plants) == 10
        room_ids = {r.id for r in store.rooms}
        assert all(p.assigned_room_id in room_ids for p in store.plants)

    def test_empty_store(self, empty_store):
        assert empty_store.rooms == []
        assert empty_store.plants == []

    def test_mutations_survive_reload(self, empty_store, kv_db, tmp_path):
        room = empty_store.add_room(Room(name="Kitchen", windows=[Window(Direction.NORTH)]))
        empty_store.add_plant(_plant(assigned_room_id=room.id))

        reloaded = DataStore(kv_db, photos_dir=tmp_path / "photos")
        assert [r.name for r in reloaded.rooms] == ["Kitchen"]
        assert [p.name for p in reloaded.plants] == ["Pothos"]
        assert reloaded.plants[0].assigned_room_id == room.id

    def test_write_failure_is_logged_not_raised(self, empty_store, monkeypatch):
        def _boom(key, value):
            raise OSError("disk full")

        monkeypatch.setattr(empty_store._kv, "write_bytes", _boom)
        empty_store.add_room(Room(name="Hall"))
        assert [r.name for r in empty_store.rooms] == ["Hall"]


# ---------------------------------------------------------------------------
# Rooms and zones
# ---------------------------------------------------------------------------


class TestRooms:
    def test_delete_room_keeps_plants_and_clears_refs(self, empty_store):
        room = empty_store.add_room(Room(name="Kitchen", windows=[Window(Direction.NORTH)]))
        plant = empty_store.add_plant(
            _plant(assigned_room_id=room.id, assigned_window_id=room.windows[0].id)
        )
        empty_store.update_settings(AppSettings(custom_room_order=[room.id]))

        empty_store.delete_room(room.id)

        survivor = empty_store.get_plant(plant.id)
        assert survivor is not None
        assert survivor.assigned_room_id is None
        assert survivor.assigned_window_id is None
        assert empty_store.settings.custom_room_order == []

    def test_delete_unknown_room(self, empty_store):
        with pytest.raises(ValueError):
            empty_store.delete_room("missing")

    def test_update_room_drops_removed_window(self, empty_store):
        north, south = Window(Direction.NORTH), Window(Direction.SOUTH)
        room = empty_store.add_room(Room(name="Lounge", windows=[north, south]))
        plant = empty_store.add_plant(_plant(assigned_room_id=room.id, assigned_window_id=south.id))

        empty_store.update_room(Room(name="Lounge", windows=[north], id=room.id))

        assert empty_store.get_plant(plant.id).assigned_window_id is None
        assert empty_store.get_plant(plant.id).assigned_room_id == room.id

    def test_move_room_reindexes(self, empty_store):
        for name in ("A", "B", "C", "D"):
            empty_store.add_room(Room(name=name))
        empty_store.move_room(0, 3)
        assert [r.name for r in empty_store.rooms] == ["B", "C", "A", "D"]
        assert [r.order_index for r in empty_store.rooms] == [0, 1, 2, 3]

    def test_delete_zone_unassigns_plants(self, empty_store):
        zone = empty_store.add_zone(_zone())
        plant = empty_store.add_plant(_plant(assigned_zone_id=zone.id))
        empty_store.delete_zone(zone.id)
        assert empty_store.get_plant(plant.id).assigned_zone_id is None


class TestMove:
    def test_move_to_end(self):
        assert _move(["a", "b", "c"], 0, 3) == ["b", "c", "a"]

    def test_move_up(self):
        assert _move(["a", "b", "c"], 2, 0) == ["c", "a", "b"]

    def test_move_several(self):
        assert _move(["a", "b", "c", "d"], [0, 2], 4) == ["b", "d", "a", "c"]

    def test_out_of_range(self):
        with pytest.raises(ValueError):
            _move(["a"], 3, 0)


# ---------------------------------------------------------------------------
# Plants
# ---------------------------------------------------------------------------


class TestPlantValidation:
    def test_rejects_non_positive_frequency(self, empty_store):
        plant = _plant()
        plant.care_steps[0].frequency_days = 0
        with pytest.raises(ValueError):
            empty_store.add_plant(plant)
        assert empty_store.plants == []

    def test_rejects_room_and_zone(self, empty_store):
        room = empty_store.add_room(Room(name="Kitchen"))
        zone = empty_store.add_zone(_zone())
        with pytest.raises(ValueError):
            empty_store.add_plant(_plant(assigned_room_id=room.id, assigned_zone_id=zone.id))

    def test_rejects_window_from_other_room(self, empty_store):
        kitchen = empty_store.add_room(Room(name="Kitchen", windows=[Window(Direction.NORTH)]))
        hall = empty_store.add_room(Room(name="Hall", windows=[Window(Direction.SOUTH)]))
        with pytest.raises(ValueError):
            empty_store.add_plant(
                _plant(assigned_room_id=kitchen.id, assigned_window_id=hall.windows[0].id)
            )

    def test_rejects_unknown_room(self, empty_store):
        with pytest.raises(ValueError):
            empty_store.add_plant(_plant(assigned_room_id="nowhere"))

    def test_update_unknown_plant(self, empty_store):
        with pytest.raises(ValueError):
            empty_store.update_plant(_plant())


class TestAssignment:
    def test_room_then_zone_then_unassign(self, empty_store):
        room = empty_store.add_room(Room(name="Kitchen", windows=[Window(Direction.NORTH)]))
        zone = empty_store.add_zone(_zone())
        plant = empty_store.add_plant(_plant())

        p = empty_store.assign_plant_to_room(plant.id, room.id, room.windows[0].id)
        assert (p.assigned_room_id, p.assigned_window_id, p.assigned_zone_id) == (
            room.id, room.windows[0].id, None,
        )

        p = empty_store.assign_plant_to_zone(plant.id, zone.id)
        assert (p.assigned_room_id, p.assigned_window_id, p.assigned_zone_id) == (None, None, zone.id)

        p = empty_store.unassign_plant(plant.id)
        assert (p.assigned_room_id, p.assigned_window_id, p.assigned_zone_id) == (None, None, None)

    def test_lookups(self, empty_store):
        room = empty_store.add_room(Room(name="Kitchen", windows=[Window(Direction.NORTH)]))
        zone = empty_store.add_zone(_zone("Balcony"))
        indoor = empty_store.add_plant(
            _plant("Fern", assigned_room_id=room.id, assigned_window_id=room.windows[0].id)
        )
        outdoor = empty_store.add_plant(_plant("Lavender", assigned_zone_id=zone.id))
        nowhere = empty_store.add_plant(_plant("Cactus"))

        assert empty_store.plants_in_room(room.id) == [indoor]
        assert empty_store.plants_in_zone(zone.id) == [outdoor]
        assert empty_store.window_for_plant(indoor) is room.windows[0]
        assert empty_store.space_name_for_plant(indoor) == "Kitchen"
        assert empty_store.space_name_for_plant(outdoor) == "Balcony"
        assert empty_store.space_name_for_plant(nowhere) == "Unassigned"


class TestPhotos:
    def test_add_writes_file(self, empty_store, tmp_path):
        plant = empty_store.add_plant(_plant())
        photo = PlantPhoto(plant_id=plant.id, file_name="leaf.jpg", date_taken=datetime(2026, 10, 1))
        empty_store.add_photo(photo, b"jpeg-bytes")
        assert (tmp_path / "photos" / "leaf.jpg").read_bytes() == b"jpeg-bytes"
        assert empty_store.photos_for_plant(plant.id) == [photo]

    def test_delete_plant_removes_photo_metadata(self, empty_store):
        plant = empty_store.add_plant(_plant())
        empty_store.add_photo(PlantPhoto(plant_id=plant.id, file_name="a.jpg", date_taken=datetime.now()))
        empty_store.delete_plant(plant.id)
        assert empty_store.photos == []

    def test_photo_for_unknown_plant(self, empty_store):
        with pytest.raises(ValueError):
            empty_store.add_photo(PlantPhoto(plant_id="ghost", file_name="a.jpg", date_taken=datetime.now()))


# ---------------------------------------------------------------------------
# Observers
# ---------------------------------------------------------------------------


class TestObservers:
    def test_notified_after_mutation(self, empty_store):
        events = []
        empty_store.subscribe(events.append)
        empty_store.add_room(Room(name="Kitchen"))
        empty_store.add_plant(_plant())
        assert events == [StoreEvent.ROOMS, StoreEvent.PLANTS]

    def test_unsubscribe(self, empty_store):
        events = []
        unsubscribe = empty_store.subscribe(events.append)
        unsubscribe()
        empty_store.add_room(Room(name="Kitchen"))
        assert events == []

    def test_failing_listener_does_not_break_mutation(self, empty_store):
        def _broken(event):
            raise RuntimeError("listener bug")

        events = []
        empty_store.subscribe(_broken)
        empty_store.subscribe(events.append)
        empty_store.add_room(Room(name="Kitchen"))
        assert events == [StoreEvent.ROOMS]

    def test_failed_validation_does_not_notify(self, empty_store):
        events = []
        empty_store.subscribe(events.append)
        with pytest.raises(ValueError):
            empty_store.add_plant(_plant(assigned_room_id="nowhere"))
        assert events == []


# ---------------------------------------------------------------------------
# Care session
# ---------------------------------------------------------------------------


class TestCareSession:
    def _store_with_clock(self, kv_db, when):
        return DataStore(kv_db, seed_defaults=False, clock=lambda: when)

    def test_mark_persists_completion(self, kv_db):
        when = datetime(2026, 10, 18, 9, 0)
        store = self._store_with_clock(kv_db, when)
        plant = store.add_plant(_plant())
        step_id = plant.care_steps[0].id

        store.start_care_session()
        store.mark_care_step_completed(plant.id, step_id)

        assert store.care_session.is_step_completed(plant.id, step_id)
        assert store.get_plant(plant.id).care_steps[0].last_completed_date == when
        reloaded = DataStore(kv_db, seed_defaults=False)
        assert reloaded.get_plant(plant.id).care_steps[0].last_completed_date == when

    def test_unmark_keeps_persisted_date(self, kv_db):
        when = datetime(2026, 10, 18, 9, 0)
        store = self._store_with_clock(kv_db, when)
        plant = store.add_plant(_plant())
        step_id = plant.care_steps[0].id

        store.start_care_session()
        store.mark_care_step_completed(plant.id, step_id)
        store.unmark_care_step_completed(plant.id, step_id)

        assert not store.care_session.is_step_completed(plant.id, step_id)
        assert store.get_plant(plant.id).care_steps[0].last_completed_date == when

    def test_mark_without_session(self, empty_store):
        plant = empty_store.add_plant(_plant())
        empty_store.mark_care_step_completed(plant.id, plant.care_steps[0].id)
        assert empty_store.care_session is None
        assert plant.care_steps[0].last_completed_date is not None

    def test_mark_unknown_step(self, empty_store):
        plant = empty_store.add_plant(_plant())
        with pytest.raises(ValueError):
            empty_store.mark_care_step_completed(plant.id, "missing")

    def test_start_replaces_active_session(self, empty_store):
        first = empty_store.start_care_session()
        second = empty_store.start_care_session()
        assert empty_store.care_session is second
        assert first.id != second.id

    def test_end_session(self, empty_store):
        empty_store.start_care_session()
        empty_store.end_care_session()
        assert empty_store.care_session is None


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


class TestAggregates:
    def test_overdue_pairs_are_consistent(self, store):
        now = datetime(2026, 10, 18, 10, 0)
        pairs = store.all_overdue_care_steps(now)
        # Seed plants have never been cared for
        assert len(pairs) == sum(len(p.care_steps) for p in store.plants)
        for plant, step in pairs:
            assert step in plant.care_steps

    def test_care_routine_room_order(self, empty_store):
        a = empty_store.add_room(Room(name="A", order_index=0))
        b = empty_store.add_room(Room(name="B", order_index=1))
        c = empty_store.add_room(Room(name="C", order_index=2))
        empty_store.add_room(Room(name="Empty", order_index=3))
        for room in (a, b, c):
            empty_store.add_plant(_plant(assigned_room_id=room.id))
        empty_store.update_settings(AppSettings(custom_room_order=["unknown", c.id]))

        assert [r.name for r in empty_store.ordered_rooms_for_care_routine()] == ["C", "A", "B"]

    def test_care_routine_zone_order(self, empty_store):
        back = empty_store.add_zone(Zone(name="Back", aspect=ZoneAspect.OPEN, sun_period=SunPeriod.AM,
                                         wind=WindExposure.EXPOSED, order_index=1))
        front = empty_store.add_zone(Zone(name="Front", aspect=ZoneAspect.OPEN, sun_period=SunPeriod.AM,
                                          wind=WindExposure.EXPOSED, order_index=0))
        empty_store.add_zone(_zone("Unused"))
        for zone in (back, front):
            empty_store.add_plant(_plant(assigned_zone_id=zone.id))
        assert [z.name for z in empty_store.ordered_zones_for_care_routine()] == ["Front", "Back"]
