"""Tests for plantcare.core.sorting."""

from datetime import datetime, timedelta

from plantcare.core.sorting import PlantsSortOption, SpacesSortOption, sort_plants, sort_spaces
from plantcare.data.models import (
    CareStep,
    CareStepType,
    Direction,
    LightType,
    Plant,
    Room,
    SunPeriod,
    WindExposure,
    Zone,
    ZoneAspect,
)

NOW = datetime(2026, 10, 18, 10, 0)


def _plant(name, days_ago=None, frequency=7, watering=True, **kwargs):
    steps = []
    if watering:
        steps.append(CareStep(
            type=CareStepType.WATERING, instructions="", frequency_days=frequency,
            last_completed_date=NOW - timedelta(days=days_ago) if days_ago is not None else None,
        ))
    return Plant(
        name=name, preferred_light_direction=Direction.SOUTH, light_type=LightType.DIRECT,
        care_steps=steps, **kwargs,
    )


class TestSortPlants:
    def test_by_name_ignores_case(self, empty_store):
        plants = [_plant("basil"), _plant("Aloe"), _plant("Cactus")]
        assert [p.name for p in sort_plants(plants, PlantsSortOption.NAME_ASCENDING, empty_store)] == [
            "Aloe", "basil", "Cactus",
        ]
        assert [p.name for p in sort_plants(plants, PlantsSortOption.NAME_DESCENDING, empty_store)] == [
            "Cactus", "basil", "Aloe",
        ]

    def test_next_watering_due(self, empty_store):
        plants = [
            _plant("Later", days_ago=1),
            _plant("Dry", watering=False),
            _plant("Soon", days_ago=6),
            _plant("Never", days_ago=None),
        ]
        ordered = sort_plants(plants, PlantsSortOption.NEXT_WATERING_DUE, empty_store, NOW)
        assert [p.name for p in ordered] == ["Never", "Soon", "Later", "Dry"]

    def test_last_watering_due(self, empty_store):
        plants = [_plant("Dry", watering=False), _plant("Soon", days_ago=6), _plant("Later", days_ago=1)]
        ordered = sort_plants(plants, PlantsSortOption.LAST_WATERING_DUE, empty_store, NOW)
        assert [p.name for p in ordered] == ["Later", "Soon", "Dry"]

    def test_group_by_space(self, empty_store):
        kitchen = empty_store.add_room(Room(name="Kitchen"))
        patio = empty_store.add_zone(Zone(
            name="Balcony", aspect=ZoneAspect.OPEN, sun_period=SunPeriod.AM, wind=WindExposure.EXPOSED,
        ))
        plants = [
            _plant("Thyme", assigned_zone_id=patio.id),
            _plant("Pothos", assigned_room_id=kitchen.id),
            _plant("Basil", assigned_room_id=kitchen.id),
            _plant("Loose"),
        ]

        ascending = sort_plants(plants, PlantsSortOption.GROUP_BY_SPACE_ASCENDING, empty_store)
        assert [p.name for p in ascending] == ["Thyme", "Basil", "Pothos", "Loose"]

        descending = sort_plants(plants, PlantsSortOption.GROUP_BY_SPACE_DESCENDING, empty_store)
        assert [p.name for p in descending] == ["Loose", "Basil", "Pothos", "Thyme"]

    def test_returns_copy(self, empty_store):
        plants = [_plant("B"), _plant("A")]
        sort_plants(plants, PlantsSortOption.NAME_ASCENDING, empty_store)
        assert [p.name for p in plants] == ["B", "A"]


class TestSortSpaces:
    def _home(self, store):
        office = store.add_room(Room(name="Office"))
        hall = store.add_room(Room(name="hall", order_index=1))
        garden = store.add_zone(Zone(
            name="Garden", aspect=ZoneAspect.OPEN, sun_period=SunPeriod.ALL, wind=WindExposure.EXPOSED,
        ))
        for name in ("A", "B"):
            store.add_plant(_plant(name, assigned_room_id=office.id))
        store.add_plant(_plant("C", assigned_zone_id=garden.id))
        return office, hall, garden

    def test_by_name(self, empty_store):
        office, hall, garden = self._home(empty_store)
        spaces = [office, hall, garden]
        assert sort_spaces(spaces, SpacesSortOption.NAME_ASCENDING, empty_store) == [garden, hall, office]
        assert sort_spaces(spaces, SpacesSortOption.NAME_DESCENDING, empty_store) == [office, hall, garden]

    def test_by_plant_count(self, empty_store):
        office, hall, garden = self._home(empty_store)
        spaces = [hall, garden, office]
        assert sort_spaces(spaces, SpacesSortOption.MOST_PLANTS, empty_store) == [office, garden, hall]
        assert sort_spaces(spaces, SpacesSortOption.FEWEST_PLANTS, empty_store) == [hall, garden, office]
