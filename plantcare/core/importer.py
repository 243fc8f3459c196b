"""
PlantCare — Bulk plant import.

Reads a JSON array of loosely described plants (e.g. exported from a
spreadsheet or produced by an LLM) and turns each entry into a Plant with a
watering step, an estimated humidity preference and, when the notes mention
it, a rotation step.

JSON example (one entry):
{
    "name": "Fiddle Leaf Fig",
    "room": "Living Room",
    "windowDirection": "East",
    "preferredLightDirection": "east or southeast",
    "lightType": "Indirect",
    "wateringInstructions": "Water weekly when top inch is dry",
    "careNotes": "Rotate every 2 weeks. Likes humidity."
}
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from plantcare.data.models import (
    CareStep,
    CareStepType,
    Direction,
    HumidityPreference,
    LightType,
    Plant,
    Room,
    Window,
)

if TYPE_CHECKING:
    from plantcare.data.store import DataStore

logger = logging.getLogger(__name__)


class PlantImportError(ValueError):
    """The import file is not a JSON list of plant entries."""


class ImportedPlant(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str
    room: str = ""
    window_direction: str = Field(default="", alias="windowDirection")
    preferred_light_direction: str = Field(default="", alias="preferredLightDirection")
    light_type: str = Field(default="", alias="lightType")
    watering_instructions: str = Field(default="", alias="wateringInstructions")
    care_notes: str = Field(default="", alias="careNotes")


_IMPORT_LIST = TypeAdapter(list[ImportedPlant])


# ---------------------------------------------------------------------------
# Estimation rules
# ---------------------------------------------------------------------------

_LIGHT_TYPES = {"direct": LightType.DIRECT, "indirect": LightType.INDIRECT, "low": LightType.LOW}

# Free-text phrases seen in imported files, checked after exact direction names
_DIRECTION_PHRASES = {
    "east or northeast": Direction.NORTHEAST,
    "east or southeast": Direction.EAST,
    "south or west": Direction.SOUTH,
    "south or southeast": Direction.SOUTH,
    "southeast or southwest": Direction.SOUTHWEST,
}

# Ordered: first match wins
_WATERING_KEYWORDS: list[tuple[tuple[str, ...], int]] = [
    (("daily",), 1),
    (("every other day",), 2),
    (("twice a week",), 3),
    (("weekly", "once a week"), 7),
    (("every 2 weeks", "every two weeks"), 14),
    (("every 3 weeks", "every three weeks"), 21),
    (("monthly", "once a month"), 30),
]

_WATERING_BY_LIGHT = {"direct": 7, "indirect": 10, "low": 14}
DEFAULT_WATERING_DAYS = 10

_ROTATION_RULES: list[tuple[tuple[str, ...], str, int]] = [
    (("weekly", "every week"), "Rotate weekly for even growth", 7),
    (("every 2 weeks", "every two weeks"), "Rotate every 2 weeks for even growth", 14),
    (("every 3 weeks",), "Rotate every 3 weeks for even growth", 21),
    (("monthly", "every month"), "Rotate monthly for even growth", 30),
]
DEFAULT_ROTATION = ("Rotate periodically for even growth", 14)


def parse_light_type(raw: str) -> LightType:
    return _LIGHT_TYPES.get(raw.strip().lower(), LightType.INDIRECT)


def parse_direction(raw: str, default: Direction | None = Direction.EAST) -> Direction | None:
    text = raw.strip().lower()
    for direction in Direction:
        if direction.value == text:
            return direction
    return _DIRECTION_PHRASES.get(text, default)


def estimate_watering_frequency(item: ImportedPlant) -> int:
    instructions = item.watering_instructions.lower()
    for keywords, days in _WATERING_KEYWORDS:
        if any(k in instructions for k in keywords):
            return days
    return _WATERING_BY_LIGHT.get(item.light_type.strip().lower(), DEFAULT_WATERING_DAYS)


def estimate_humidity(item: ImportedPlant) -> HumidityPreference:
    notes = item.care_notes.lower()
    if "high humidity" in notes or "mist" in notes or "humid" in notes:
        return HumidityPreference.HIGH
    if "low humidity" in notes or "dry" in notes:
        return HumidityPreference.LOW
    return HumidityPreference.MEDIUM


def rotation_step(item: ImportedPlant) -> CareStep | None:
    notes = item.care_notes.lower()
    if "rotate" not in notes:
        return None
    instructions, days = DEFAULT_ROTATION
    for keywords, text, frequency in _ROTATION_RULES:
        if any(k in notes for k in keywords):
            instructions, days = text, frequency
            break
    return CareStep(type=CareStepType.ROTATION, instructions=instructions, frequency_days=days)


def to_plant(item: ImportedPlant, room_id: str | None = None, window_id: str | None = None) -> Plant:
    plant = Plant(
        name=item.name,
        preferred_light_direction=parse_direction(item.preferred_light_direction),
        light_type=parse_light_type(item.light_type),
        general_notes=item.care_notes,
        humidity_preference=estimate_humidity(item),
        assigned_room_id=room_id,
        assigned_window_id=window_id,
    )
    plant.add_care_step(CareStep(
        type=CareStepType.WATERING,
        instructions=item.watering_instructions,
        frequency_days=estimate_watering_frequency(item),
    ))
    rotation = rotation_step(item)
    if rotation is not None:
        plant.add_care_step(rotation)
    return plant


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def parse_import(json_text: str | bytes) -> list[ImportedPlant]:
    """Validate an import file. Raises PlantImportError on malformed input."""
    try:
        data = json.loads(json_text)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise PlantImportError(f"Import file is not valid JSON: {exc}") from exc
    if isinstance(data, dict):
        data = [data]
    try:
        items = _IMPORT_LIST.validate_python(data)
    except ValidationError as exc:
        raise PlantImportError(f"Import file has invalid entries: {exc.error_count()} error(s)") from exc
    logger.info("Parsed %d plant(s) from import file", len(items))
    return items


@dataclass
class ImportResult:
    plants: list[Plant] = field(default_factory=list)
    created_rooms: list[Room] = field(default_factory=list)
    unmatched_rooms: list[str] = field(default_factory=list)


def _match_window(room: Room, raw_direction: str) -> Window | None:
    if not room.windows:
        return None
    direction = parse_direction(raw_direction, default=None)
    if direction is not None:
        match = next((w for w in room.windows if w.direction is direction), None)
        if match is not None:
            return match
    return room.windows[0]


def import_plants(
    store: DataStore,
    items: list[ImportedPlant],
    create_missing_rooms: bool = False,
) -> ImportResult:
    """Add every imported plant to the store.

    Rooms are matched by name, ignoring case. An unknown room is created
    (with a single north window) when `create_missing_rooms` is set;
    otherwise the plant is added unassigned and the name is reported back.
    """
    result = ImportResult()
    rooms_by_name = {r.name.lower(): r for r in store.rooms}

    for item in items:
        room_key = item.room.strip().lower()
        room = rooms_by_name.get(room_key) if room_key else None

        if room is None and room_key:
            if create_missing_rooms:
                room = store.add_room(Room(
                    name=item.room.strip(),
                    windows=[Window(direction=Direction.NORTH)],
                    order_index=len(store.rooms),
                ))
                rooms_by_name[room_key] = room
                result.created_rooms.append(room)
            elif item.room.strip() not in result.unmatched_rooms:
                result.unmatched_rooms.append(item.room.strip())

        window = _match_window(room, item.window_direction) if room is not None else None
        plant = to_plant(item, room.id if room else None, window.id if window else None)
        result.plants.append(store.add_plant(plant))

    logger.info(
        "Imported %d plant(s), created %d room(s), %d unmatched room name(s)",
        len(result.plants), len(result.created_rooms), len(result.unmatched_rooms),
    )
    return result
