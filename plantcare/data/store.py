"""
PlantCare — Data Store.

The single in-memory authority over rooms, zones, plants, photos and settings.
Every mutation updates memory, writes *all* collections back to the key-value
storage and then notifies subscribers, so readers (backups, reminders, the
bot) always see one consistent snapshot.

Threading: the store has no internal locking. All mutations must run on the
event-loop thread; background work (backup file I/O) hands results back to
that thread before calling into the store.

Persistence failures never block the user: unreadable data falls back to the
built-in defaults and failed writes are logged and skipped.
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Iterable

from plantcare.core import care_schedule
from plantcare.core.care_session import CareSession
from plantcare.data import codec
from plantcare.data.codec import CodecError
from plantcare.data.models import (
    AppSettings,
    CareStep,
    CareStepType,
    Plant,
    PlantPhoto,
    Room,
    Window,
    Zone,
)
from plantcare.data.seed import default_plants, default_rooms

if TYPE_CHECKING:
    from plantcare.ports.storage_port import KeyValuePort

logger = logging.getLogger(__name__)

ROOMS_KEY = "savedRooms"
ZONES_KEY = "savedZones"
PLANTS_KEY = "savedPlants"
PHOTOS_KEY = "savedPhotos"
SETTINGS_KEY = "appSettings"
SCHEMA_VERSION_KEY = "dataSchemaVersion"

SCHEMA_VERSION = "2"

# Care step given to plants saved before care steps existed.
LEGACY_WATERING_INSTRUCTIONS = "Water when needed"
LEGACY_WATERING_FREQUENCY_DAYS = 7


class StoreError(Exception):
    """Base class for DataStore errors."""


class SchemaMigrationFallback(StoreError):
    """Stored data could not be read under the current schema.

    Raised by the decoding helpers and handled inside `DataStore.load()`,
    which logs it and falls back to defaults. Never reaches callers.
    """


class StoreEvent(Enum):
    ROOMS = "rooms"
    ZONES = "zones"
    PLANTS = "plants"
    PHOTOS = "photos"
    SETTINGS = "settings"
    CARE = "care"
    RESTORED = "restored"


StoreListener = Callable[[StoreEvent], None]


@dataclass
class StoreSnapshot:
    """Deep copy of every persisted collection at one instant."""

    rooms: list[Room] = field(default_factory=list)
    zones: list[Zone] = field(default_factory=list)
    plants: list[Plant] = field(default_factory=list)
    photos: list[PlantPhoto] = field(default_factory=list)
    settings: AppSettings = field(default_factory=AppSettings)


def _move(items: list, source: int | Iterable[int], destination: int) -> list:
    """Move the items at `source` offsets so they land before `destination`.

    `destination` is an offset into the list *before* the move, as produced
    by drag-and-drop reordering (moving index 0 to 3 in [a, b, c, d] yields
    [b, c, a, d]).
    """
    offsets = sorted({source} if isinstance(source, int) else set(source))
    for i in offsets:
        if not 0 <= i < len(items):
            raise ValueError(f"Move offset {i} out of range")
    if not 0 <= destination <= len(items):
        raise ValueError(f"Move destination {destination} out of range")
    moving = [items[i] for i in offsets]
    remaining = [item for i, item in enumerate(items) if i not in offsets]
    insert_at = destination - sum(1 for i in offsets if i < destination)
    return remaining[:insert_at] + moving + remaining[insert_at:]


class DataStore:
    """In-memory collections backed by a KeyValuePort."""

    def __init__(
        self,
        kv: KeyValuePort,
        photos_dir: str | Path | None = None,
        seed_defaults: bool = True,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._kv = kv
        self._photos_dir = Path(photos_dir) if photos_dir is not None else None
        self._seed_defaults = seed_defaults
        self._clock = clock
        self._listeners: list[StoreListener] = []

        self.rooms: list[Room] = []
        self.zones: list[Zone] = []
        self.plants: list[Plant] = []
        self.photos: list[PlantPhoto] = []
        self.settings = AppSettings()
        self.care_session: CareSession | None = None

        self.load()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        """Register a callback run after every successful mutation.

        Returns a function that removes the subscription.
        """
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self, event: StoreEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.error("Store listener failed on %s: %s", event.value, exc)

    def _commit(self, event: StoreEvent) -> None:
        self.save()
        self._notify(event)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _read(self, key: str) -> bytes | None:
        try:
            return self._kv.read_bytes(key)
        except Exception as exc:
            logger.error("Failed to read '%s' from storage: %s", key, exc)
            return None

    def _write(self, key: str, value: bytes) -> None:
        try:
            self._kv.write_bytes(key, value)
        except Exception as exc:
            logger.error("Failed to write '%s' to storage, skipping: %s", key, exc)

    @staticmethod
    def _decode_list(key: str, data: bytes, decoder: Callable[[dict], object]) -> list:
        try:
            return codec.loads_list(data, decoder)
        except CodecError as exc:
            raise SchemaMigrationFallback(f"{key}: {exc}") from exc

    def load(self) -> None:
        """Load every collection, falling back to defaults where unreadable."""
        needs_save = False
        stored_version = self._read(SCHEMA_VERSION_KEY)

        raw_rooms = self._read(ROOMS_KEY)
        if raw_rooms is None:
            self.rooms = default_rooms() if self._seed_defaults else []
            needs_save = True
        else:
            try:
                self.rooms = self._decode_list(ROOMS_KEY, raw_rooms, codec.decode_room)
            except SchemaMigrationFallback as exc:
                logger.warning("Schema migration fallback, loading default rooms: %s", exc)
                self.rooms = default_rooms() if self._seed_defaults else []
                needs_save = True

        raw_zones = self._read(ZONES_KEY)
        self.zones = []
        if raw_zones is not None:
            try:
                self.zones = self._decode_list(ZONES_KEY, raw_zones, codec.decode_zone)
            except SchemaMigrationFallback as exc:
                logger.warning("Schema migration fallback, dropping zones: %s", exc)
                needs_save = True

        raw_plants = self._read(PLANTS_KEY)
        if raw_plants is None:
            self.plants = default_plants(self.rooms) if self._seed_defaults else []
            needs_save = True
        else:
            try:
                self.plants = self._decode_list(PLANTS_KEY, raw_plants, codec.decode_plant)
            except SchemaMigrationFallback as exc:
                logger.warning("Schema migration fallback, loading default plants: %s", exc)
                self.plants = default_plants(self.rooms) if self._seed_defaults else []
                needs_save = True
            else:
                if stored_version is None and self._migrate_legacy_care_steps():
                    needs_save = True

        raw_photos = self._read(PHOTOS_KEY)
        self.photos = []
        if raw_photos is not None:
            try:
                self.photos = self._decode_list(PHOTOS_KEY, raw_photos, codec.decode_photo)
            except SchemaMigrationFallback as exc:
                logger.warning("Schema migration fallback, dropping photo metadata: %s", exc)

        raw_settings = self._read(SETTINGS_KEY)
        self.settings = AppSettings()
        if raw_settings is not None:
            try:
                self.settings = codec.decode_settings(json.loads(raw_settings))
            except (ValueError, TypeError) as exc:
                logger.warning("Unreadable settings, using defaults: %s", exc)

        if self._repair_dangling_references():
            needs_save = True

        if stored_version is None:
            needs_save = True

        logger.info(
            "Data loaded: %d rooms, %d zones, %d plants, %d photos",
            len(self.rooms), len(self.zones), len(self.plants), len(self.photos),
        )
        if needs_save:
            self.save()

    def _migrate_legacy_care_steps(self) -> int:
        """Compatibility shim for data saved before care steps existed.

        Only runs on data without a schema version tag. Every plant with an
        empty care-step list gets a default weekly watering step. Returns the
        number of plants migrated.
        """
        migrated = 0
        for plant in self.plants:
            if not plant.care_steps:
                plant.add_care_step(CareStep(
                    type=CareStepType.WATERING,
                    instructions=LEGACY_WATERING_INSTRUCTIONS,
                    frequency_days=LEGACY_WATERING_FREQUENCY_DAYS,
                ))
                migrated += 1
        if migrated:
            logger.warning("Migrated %d legacy plants to care-step format", migrated)
        return migrated

    def _repair_dangling_references(self) -> int:
        """Clear plant locations that point at rooms, windows or zones that don't exist.

        Happens when one collection fell back to defaults (new ids) while the
        plants still parsed. Returns the number of plants repaired.
        """
        windows_by_room = {room.id: {w.id for w in room.windows} for room in self.rooms}
        zone_ids = {zone.id for zone in self.zones}
        repaired = 0
        for plant in self.plants:
            changed = False
            if plant.assigned_room_id is not None and plant.assigned_room_id not in windows_by_room:
                plant.assigned_room_id = None
                plant.assigned_window_id = None
                changed = True
            elif plant.assigned_window_id is not None and (
                plant.assigned_room_id is None
                or plant.assigned_window_id not in windows_by_room[plant.assigned_room_id]
            ):
                plant.assigned_window_id = None
                changed = True
            if plant.assigned_zone_id is not None and plant.assigned_zone_id not in zone_ids:
                plant.assigned_zone_id = None
                changed = True
            if changed:
                repaired += 1
        if repaired:
            logger.warning("Cleared dangling room/window/zone references on %d plants", repaired)
        return repaired

    def save(self) -> None:
        """Write every collection. A failed key is logged and skipped."""
        self._write(ROOMS_KEY, codec.dumps_list(self.rooms, codec.encode_room))
        self._write(ZONES_KEY, codec.dumps_list(self.zones, codec.encode_zone))
        self._write(PLANTS_KEY, codec.dumps_list(self.plants, codec.encode_plant))
        self._write(PHOTOS_KEY, codec.dumps_list(self.photos, codec.encode_photo))
        self._write(
            SETTINGS_KEY,
            json.dumps(codec.encode_settings(self.settings)).encode("utf-8"),
        )
        self._write(SCHEMA_VERSION_KEY, SCHEMA_VERSION.encode("utf-8"))

    def snapshot(self) -> StoreSnapshot:
        return StoreSnapshot(
            rooms=copy.deepcopy(self.rooms),
            zones=copy.deepcopy(self.zones),
            plants=copy.deepcopy(self.plants),
            photos=copy.deepcopy(self.photos),
            settings=copy.deepcopy(self.settings),
        )

    def replace_all(self, snapshot: StoreSnapshot) -> None:
        """Replace every collection wholesale (restore). No merging."""
        self.rooms = copy.deepcopy(snapshot.rooms)
        self.zones = copy.deepcopy(snapshot.zones)
        self.plants = copy.deepcopy(snapshot.plants)
        self.photos = copy.deepcopy(snapshot.photos)
        self.settings = copy.deepcopy(snapshot.settings)
        self.care_session = None
        self._repair_dangling_references()
        logger.info(
            "Store replaced: %d rooms, %d zones, %d plants",
            len(self.rooms), len(self.zones), len(self.plants),
        )
        self._commit(StoreEvent.RESTORED)

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def _room_index(self, room_id: str) -> int:
        for i, room in enumerate(self.rooms):
            if room.id == room_id:
                return i
        raise ValueError(f"Room {room_id} not found")

    def add_room(self, room: Room) -> Room:
        self.rooms.append(room)
        logger.info("Room added: '%s'", room.name)
        self._commit(StoreEvent.ROOMS)
        return room

    def update_room(self, room: Room) -> Room:
        """Replace a room. Plants at windows the room no longer has lose the window."""
        index = self._room_index(room.id)
        self.rooms[index] = room
        window_ids = {w.id for w in room.windows}
        for plant in self.plants:
            if (
                plant.assigned_room_id == room.id
                and plant.assigned_window_id is not None
                and plant.assigned_window_id not in window_ids
            ):
                plant.assigned_window_id = None
        logger.info("Room updated: '%s'", room.name)
        self._commit(StoreEvent.ROOMS)
        return room

    def delete_room(self, room_id: str) -> None:
        """Delete a room. Its plants stay, with room and window cleared."""
        index = self._room_index(room_id)
        for plant in self.plants:
            if plant.assigned_room_id == room_id:
                plant.assigned_room_id = None
                plant.assigned_window_id = None
        room = self.rooms.pop(index)
        if room_id in self.settings.custom_room_order:
            self.settings.custom_room_order = [
                rid for rid in self.settings.custom_room_order if rid != room_id
            ]
        logger.info("Room deleted: '%s'", room.name)
        self._commit(StoreEvent.ROOMS)

    def move_room(self, source: int | Iterable[int], destination: int) -> None:
        self.rooms = _move(self.rooms, source, destination)
        for index, room in enumerate(self.rooms):
            room.order_index = index
        self._commit(StoreEvent.ROOMS)

    # ------------------------------------------------------------------
    # Zones
    # ------------------------------------------------------------------

    def _zone_index(self, zone_id: str) -> int:
        for i, zone in enumerate(self.zones):
            if zone.id == zone_id:
                return i
        raise ValueError(f"Zone {zone_id} not found")

    def add_zone(self, zone: Zone) -> Zone:
        self.zones.append(zone)
        logger.info("Zone added: '%s'", zone.name)
        self._commit(StoreEvent.ZONES)
        return zone

    def update_zone(self, zone: Zone) -> Zone:
        self.zones[self._zone_index(zone.id)] = zone
        logger.info("Zone updated: '%s'", zone.name)
        self._commit(StoreEvent.ZONES)
        return zone

    def delete_zone(self, zone_id: str) -> None:
        """Delete a zone. Its plants stay, unassigned."""
        index = self._zone_index(zone_id)
        for plant in self.plants:
            if plant.assigned_zone_id == zone_id:
                plant.assigned_zone_id = None
        zone = self.zones.pop(index)
        logger.info("Zone deleted: '%s'", zone.name)
        self._commit(StoreEvent.ZONES)

    def move_zone(self, source: int | Iterable[int], destination: int) -> None:
        self.zones = _move(self.zones, source, destination)
        for index, zone in enumerate(self.zones):
            zone.order_index = index
        self._commit(StoreEvent.ZONES)

    # ------------------------------------------------------------------
    # Plants
    # ------------------------------------------------------------------

    def get_plant(self, plant_id: str) -> Plant | None:
        return next((p for p in self.plants if p.id == plant_id), None)

    def _plant_index(self, plant_id: str) -> int:
        for i, plant in enumerate(self.plants):
            if plant.id == plant_id:
                return i
        raise ValueError(f"Plant {plant_id} not found")

    def _validate_plant(self, plant: Plant) -> None:
        for step in plant.care_steps:
            if step.frequency_days <= 0:
                raise ValueError(
                    f"Care step '{step.display_name}' needs a positive frequency, "
                    f"got {step.frequency_days}"
                )
        if plant.assigned_room_id is not None and plant.assigned_zone_id is not None:
            raise ValueError(f"Plant '{plant.name}' cannot be in a room and a zone")
        if plant.assigned_window_id is not None and plant.assigned_room_id is None:
            raise ValueError(f"Plant '{plant.name}' has a window but no room")
        if plant.assigned_room_id is not None:
            room = self.rooms[self._room_index(plant.assigned_room_id)]
            if plant.assigned_window_id is not None and not any(
                w.id == plant.assigned_window_id for w in room.windows
            ):
                raise ValueError(
                    f"Window {plant.assigned_window_id} is not in room '{room.name}'"
                )
        if plant.assigned_zone_id is not None:
            self._zone_index(plant.assigned_zone_id)

    def add_plant(self, plant: Plant) -> Plant:
        self._validate_plant(plant)
        self.plants.append(plant)
        logger.info("Plant added: '%s' with %d care steps", plant.name, len(plant.care_steps))
        self._commit(StoreEvent.PLANTS)
        return plant

    def update_plant(self, plant: Plant) -> Plant:
        index = self._plant_index(plant.id)
        self._validate_plant(plant)
        self.plants[index] = plant
        logger.info("Plant updated: '%s'", plant.name)
        self._commit(StoreEvent.PLANTS)
        return plant

    def delete_plant(self, plant_id: str) -> None:
        """Delete a plant and its photo metadata."""
        plant = self.plants.pop(self._plant_index(plant_id))
        self.photos = [ph for ph in self.photos if ph.plant_id != plant_id]
        logger.info("Plant deleted: '%s'", plant.name)
        self._commit(StoreEvent.PLANTS)

    def assign_plant_to_room(
        self, plant_id: str, room_id: str, window_id: str | None = None,
    ) -> Plant:
        plant = copy.deepcopy(self.plants[self._plant_index(plant_id)])
        plant.assigned_room_id = room_id
        plant.assigned_window_id = window_id
        plant.assigned_zone_id = None
        return self.update_plant(plant)

    def assign_plant_to_zone(self, plant_id: str, zone_id: str) -> Plant:
        plant = copy.deepcopy(self.plants[self._plant_index(plant_id)])
        plant.assigned_zone_id = zone_id
        plant.assigned_room_id = None
        plant.assigned_window_id = None
        return self.update_plant(plant)

    def unassign_plant(self, plant_id: str) -> Plant:
        plant = copy.deepcopy(self.plants[self._plant_index(plant_id)])
        plant.assigned_room_id = None
        plant.assigned_window_id = None
        plant.assigned_zone_id = None
        return self.update_plant(plant)

    # ------------------------------------------------------------------
    # Photos
    # ------------------------------------------------------------------

    def add_photo(self, photo: PlantPhoto, image_data: bytes | None = None) -> PlantPhoto:
        """Record a photo; the image bytes go to the photos directory if one is set."""
        self._plant_index(photo.plant_id)
        if image_data is not None and self._photos_dir is not None:
            try:
                self._photos_dir.mkdir(parents=True, exist_ok=True)
                (self._photos_dir / photo.file_name).write_bytes(image_data)
            except OSError as exc:
                logger.error("Failed to write photo %s: %s", photo.file_name, exc)
        self.photos.append(photo)
        logger.info("Photo added for plant %s: %s", photo.plant_id, photo.file_name)
        self._commit(StoreEvent.PHOTOS)
        return photo

    def delete_photo(self, photo_id: str) -> None:
        for i, photo in enumerate(self.photos):
            if photo.id == photo_id:
                break
        else:
            raise ValueError(f"Photo {photo_id} not found")
        self.photos.pop(i)
        if self._photos_dir is not None:
            try:
                (self._photos_dir / photo.file_name).unlink(missing_ok=True)
            except OSError as exc:
                logger.warning("Failed to remove photo file %s: %s", photo.file_name, exc)
        self._commit(StoreEvent.PHOTOS)

    def photos_for_plant(self, plant_id: str) -> list[PlantPhoto]:
        return sorted(
            (ph for ph in self.photos if ph.plant_id == plant_id),
            key=lambda ph: ph.date_taken,
        )

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def update_settings(self, settings: AppSettings) -> None:
        self.settings = settings
        self._commit(StoreEvent.SETTINGS)

    # ------------------------------------------------------------------
    # Care session
    # ------------------------------------------------------------------

    def start_care_session(self) -> CareSession:
        """Begin a walkthrough. An active session is silently replaced."""
        self.care_session = CareSession(started_at=self._clock())
        logger.info("Care session %s started", self.care_session.id)
        return self.care_session

    def mark_care_step_completed(self, plant_id: str, care_step_id: str) -> CareStep:
        """Tick a step in the session and persist its completion time immediately."""
        plant = self.plants[self._plant_index(plant_id)]
        step = plant.care_step(care_step_id)
        if step is None:
            raise ValueError(f"Care step {care_step_id} not found on '{plant.name}'")
        now = self._clock()
        if self.care_session is not None:
            self.care_session.mark_care_step_completed(plant_id, care_step_id, now)
        plant.mark_care_step_completed(care_step_id, now)
        logger.info("'%s' %s done", plant.name, step.display_name.lower())
        self._commit(StoreEvent.CARE)
        return step

    def unmark_care_step_completed(self, plant_id: str, care_step_id: str) -> None:
        """Untick a step in the session only.

        The plant's `last_completed_date` keeps the value written when the
        step was marked; undo here is a display-level action.
        """
        if self.care_session is not None:
            self.care_session.unmark_care_step_completed(plant_id, care_step_id)

    def end_care_session(self) -> None:
        if self.care_session is not None:
            logger.info("Care session %s ended", self.care_session.id)
        self.care_session = None

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def plants_in_room(self, room_id: str) -> list[Plant]:
        return [p for p in self.plants if p.assigned_room_id == room_id]

    def plants_in_zone(self, zone_id: str) -> list[Plant]:
        return [p for p in self.plants if p.assigned_zone_id == zone_id]

    def room_for_plant(self, plant: Plant) -> Room | None:
        if plant.assigned_room_id is None:
            return None
        return next((r for r in self.rooms if r.id == plant.assigned_room_id), None)

    def zone_for_plant(self, plant: Plant) -> Zone | None:
        if plant.assigned_zone_id is None:
            return None
        return next((z for z in self.zones if z.id == plant.assigned_zone_id), None)

    def window_for_plant(self, plant: Plant) -> Window | None:
        room = self.room_for_plant(plant)
        if room is None or plant.assigned_window_id is None:
            return None
        return next((w for w in room.windows if w.id == plant.assigned_window_id), None)

    def space_name_for_plant(self, plant: Plant) -> str:
        room = self.room_for_plant(plant)
        if room is not None:
            return room.name
        zone = self.zone_for_plant(plant)
        if zone is not None:
            return zone.name
        return "Unassigned"

    # ------------------------------------------------------------------
    # Care aggregates (recomputed on every read)
    # ------------------------------------------------------------------

    def all_overdue_care_steps(self, now: datetime | None = None) -> list[tuple[Plant, CareStep]]:
        return care_schedule.collect_overdue(self.plants, now or self._clock())

    def all_due_today_care_steps(self, now: datetime | None = None) -> list[tuple[Plant, CareStep]]:
        return care_schedule.collect_due_today(self.plants, now or self._clock())

    def plants_needing_care(self, now: datetime | None = None) -> list[Plant]:
        return care_schedule.plants_needing_care(self.plants, now or self._clock())

    def ordered_rooms_for_care_routine(self) -> list[Room]:
        """Rooms holding plants: custom order first, then the rest by order_index."""
        occupied = {p.assigned_room_id for p in self.plants if p.assigned_room_id}
        by_id = {r.id: r for r in self.rooms}
        ordered: list[Room] = []
        for room_id in self.settings.custom_room_order:
            room = by_id.get(room_id)
            if room is not None and room.id in occupied and room not in ordered:
                ordered.append(room)
        custom = set(self.settings.custom_room_order)
        remaining = sorted(
            (r for r in self.rooms if r.id in occupied and r.id not in custom),
            key=lambda r: r.order_index,
        )
        return ordered + remaining

    def ordered_zones_for_care_routine(self) -> list[Zone]:
        occupied = {p.assigned_zone_id for p in self.plants if p.assigned_zone_id}
        return sorted(
            (z for z in self.zones if z.id in occupied),
            key=lambda z: z.order_index,
        )
