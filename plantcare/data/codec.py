"""
PlantCare — Serialization codec.

Converts domain dataclasses to JSON-compatible dicts and back. Enum values are
mapped through explicit tables so the stored labels ("North", "South Wall",
"Watering", ...) never depend on Python member names. The same labels are
used in LLM prompts and responses.

Decoders raise CodecError on any malformed input.
"""

from __future__ import annotations

import json
from datetime import datetime
from enum import Enum
from typing import Any, Callable, TypeVar

from plantcare.data.models import (
    CARE_STEP_LABELS,
    AppSettings,
    CareStep,
    CareStepType,
    Direction,
    HumidityPreference,
    LightType,
    Plant,
    PlantPhoto,
    Room,
    SunHours,
    SunPeriod,
    WindExposure,
    Window,
    Zone,
    ZoneAspect,
)

T = TypeVar("T")
E = TypeVar("E", bound=Enum)


class CodecError(ValueError):
    """Raised when stored or received data does not match the current schema."""


# ---------------------------------------------------------------------------
# Enum <-> label tables
# ---------------------------------------------------------------------------

DIRECTION_LABELS: dict[Direction, str] = {
    Direction.NORTH: "North",
    Direction.NORTHEAST: "Northeast",
    Direction.EAST: "East",
    Direction.SOUTHEAST: "Southeast",
    Direction.SOUTH: "South",
    Direction.SOUTHWEST: "Southwest",
    Direction.WEST: "West",
    Direction.NORTHWEST: "Northwest",
}

LIGHT_TYPE_LABELS: dict[LightType, str] = {
    LightType.DIRECT: "Direct",
    LightType.INDIRECT: "Indirect",
    LightType.LOW: "Low",
}

HUMIDITY_LABELS: dict[HumidityPreference, str] = {
    HumidityPreference.LOW: "Low",
    HumidityPreference.MEDIUM: "Medium",
    HumidityPreference.HIGH: "High",
}

ZONE_ASPECT_LABELS: dict[ZoneAspect, str] = {
    ZoneAspect.OPEN: "Open",
    ZoneAspect.SOUTH_WALL: "South Wall",
    ZoneAspect.NORTH_WALL: "North Wall",
    ZoneAspect.EAST_WALL: "East Wall",
    ZoneAspect.WEST_WALL: "West Wall",
}

SUN_PERIOD_LABELS: dict[SunPeriod, str] = {
    SunPeriod.AM: "AM",
    SunPeriod.PM: "PM",
    SunPeriod.ALL: "ALL",
}

WIND_LABELS: dict[WindExposure, str] = {
    WindExposure.SHELTERED: "Sheltered",
    WindExposure.EXPOSED: "Exposed",
}

SUN_HOURS_LABELS: dict[SunHours, str] = {
    SunHours.ZERO_TO_TWO: "0-2",
    SunHours.TWO_TO_FOUR: "2-4",
    SunHours.FOUR_TO_SIX: "4-6",
    SunHours.SIX_PLUS: "6+",
}


def label(value: Enum | None) -> str | None:
    """Return the wire label for any mapped enum member."""
    if value is None:
        return None
    for table in _ALL_TABLES:
        if value in table:
            return table[value]
    raise CodecError(f"No label mapping for {value!r}")


def parse_label(table: dict[E, str], raw: Any, *, lenient: bool = True) -> E:
    """Look up the enum member whose label matches `raw`.

    With `lenient`, matching ignores case and surrounding whitespace, which
    is how free-form LLM output and imported files are handled.
    """
    if isinstance(raw, str):
        for member, text in table.items():
            if text == raw:
                return member
        if lenient:
            needle = raw.strip().lower()
            for member, text in table.items():
                if text.lower() == needle:
                    return member
    raise CodecError(f"Unknown value {raw!r}; expected one of {list(table.values())}")


_ALL_TABLES: list[dict] = [
    DIRECTION_LABELS, LIGHT_TYPE_LABELS, HUMIDITY_LABELS, CARE_STEP_LABELS,
    ZONE_ASPECT_LABELS, SUN_PERIOD_LABELS, WIND_LABELS, SUN_HOURS_LABELS,
]


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _dt_out(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _dt_in(raw: Any) -> datetime | None:
    if raw is None:
        return None
    try:
        return datetime.fromisoformat(raw)
    except (TypeError, ValueError) as exc:
        raise CodecError(f"Invalid timestamp {raw!r}") from exc


def _req(d: dict, key: str) -> Any:
    try:
        return d[key]
    except (KeyError, TypeError) as exc:
        raise CodecError(f"Missing field {key!r}") from exc


def _opt_label(table: dict[E, str], raw: Any) -> E | None:
    return None if raw is None else parse_label(table, raw, lenient=False)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------

def encode_care_step(step: CareStep) -> dict:
    return {
        "id": step.id,
        "type": CARE_STEP_LABELS[step.type],
        "customName": step.custom_name,
        "instructions": step.instructions,
        "frequencyDays": step.frequency_days,
        "lastCompletedDate": _dt_out(step.last_completed_date),
        "isEnabled": step.is_enabled,
    }


def decode_care_step(d: dict) -> CareStep:
    frequency = _req(d, "frequencyDays")
    if not isinstance(frequency, int) or isinstance(frequency, bool):
        raise CodecError(f"frequencyDays must be an integer, got {frequency!r}")
    return CareStep(
        id=str(_req(d, "id")),
        type=parse_label(CARE_STEP_LABELS, _req(d, "type"), lenient=False),
        custom_name=d.get("customName"),
        instructions=str(_req(d, "instructions")),
        frequency_days=frequency,
        last_completed_date=_dt_in(d.get("lastCompletedDate")),
        is_enabled=bool(d.get("isEnabled", True)),
    )


def encode_window(window: Window) -> dict:
    return {
        "id": window.id,
        "direction": DIRECTION_LABELS[window.direction],
        "notes": window.notes,
    }


def decode_window(d: dict) -> Window:
    return Window(
        id=str(_req(d, "id")),
        direction=parse_label(DIRECTION_LABELS, _req(d, "direction"), lenient=False),
        notes=d.get("notes"),
    )


def encode_room(room: Room) -> dict:
    return {
        "id": room.id,
        "name": room.name,
        "windows": [encode_window(w) for w in room.windows],
        "orderIndex": room.order_index,
    }


def decode_room(d: dict) -> Room:
    return Room(
        id=str(_req(d, "id")),
        name=str(_req(d, "name")),
        windows=[decode_window(w) for w in _req(d, "windows")],
        order_index=int(_req(d, "orderIndex")),
    )


def encode_zone(zone: Zone) -> dict:
    return {
        "id": zone.id,
        "name": zone.name,
        "aspect": ZONE_ASPECT_LABELS[zone.aspect],
        "sunPeriod": SUN_PERIOD_LABELS[zone.sun_period],
        "wind": WIND_LABELS[zone.wind],
        "sunHours": label(zone.sun_hours),
        "orderIndex": zone.order_index,
    }


def decode_zone(d: dict) -> Zone:
    return Zone(
        id=str(_req(d, "id")),
        name=str(_req(d, "name")),
        aspect=parse_label(ZONE_ASPECT_LABELS, _req(d, "aspect"), lenient=False),
        sun_period=parse_label(SUN_PERIOD_LABELS, _req(d, "sunPeriod"), lenient=False),
        wind=parse_label(WIND_LABELS, _req(d, "wind"), lenient=False),
        sun_hours=_opt_label(SUN_HOURS_LABELS, d.get("sunHours")),
        order_index=int(_req(d, "orderIndex")),
    )


def encode_plant(plant: Plant) -> dict:
    return {
        "id": plant.id,
        "name": plant.name,
        "latinName": plant.latin_name,
        "assignedRoomID": plant.assigned_room_id,
        "assignedWindowID": plant.assigned_window_id,
        "assignedZoneID": plant.assigned_zone_id,
        "preferredLightDirection": DIRECTION_LABELS[plant.preferred_light_direction],
        "lightType": LIGHT_TYPE_LABELS[plant.light_type],
        "humidityPreference": label(plant.humidity_preference),
        "generalNotes": plant.general_notes,
        "careSteps": [encode_care_step(s) for s in plant.care_steps],
    }


def decode_plant(d: dict) -> Plant:
    return Plant(
        id=str(_req(d, "id")),
        name=str(_req(d, "name")),
        latin_name=d.get("latinName"),
        assigned_room_id=d.get("assignedRoomID"),
        assigned_window_id=d.get("assignedWindowID"),
        assigned_zone_id=d.get("assignedZoneID"),
        preferred_light_direction=parse_label(
            DIRECTION_LABELS, _req(d, "preferredLightDirection"), lenient=False,
        ),
        light_type=parse_label(LIGHT_TYPE_LABELS, _req(d, "lightType"), lenient=False),
        humidity_preference=_opt_label(HUMIDITY_LABELS, d.get("humidityPreference")),
        general_notes=str(d.get("generalNotes", "")),
        care_steps=[decode_care_step(s) for s in _req(d, "careSteps")],
    )


def encode_photo(photo: PlantPhoto) -> dict:
    return {
        "id": photo.id,
        "plantID": photo.plant_id,
        "fileName": photo.file_name,
        "dateTaken": _dt_out(photo.date_taken),
        "notes": photo.notes,
    }


def decode_photo(d: dict) -> PlantPhoto:
    return PlantPhoto(
        id=str(_req(d, "id")),
        plant_id=str(_req(d, "plantID")),
        file_name=str(_req(d, "fileName")),
        date_taken=_dt_in(_req(d, "dateTaken")),
        notes=d.get("notes"),
    )


def encode_settings(settings: AppSettings) -> dict:
    return {
        "customRoomOrder": list(settings.custom_room_order),
        "earlyWarningDays": settings.early_warning_days,
    }


def decode_settings(d: dict) -> AppSettings:
    if not isinstance(d, dict):
        raise CodecError("Settings must be an object")
    return AppSettings(
        custom_room_order=[str(x) for x in d.get("customRoomOrder", [])],
        early_warning_days=int(d.get("earlyWarningDays", 2)),
    )


# ---------------------------------------------------------------------------
# Bytes helpers (used by the key-value persistence layer)
# ---------------------------------------------------------------------------

def dumps_list(items: list[T], encoder: Callable[[T], dict]) -> bytes:
    return json.dumps([encoder(i) for i in items]).encode("utf-8")


def loads_list(data: bytes, decoder: Callable[[dict], T]) -> list[T]:
    try:
        raw = json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise CodecError(f"Invalid JSON: {exc}") from exc
    if not isinstance(raw, list):
        raise CodecError("Expected a JSON array")
    try:
        return [decoder(item) for item in raw]
    except CodecError:
        raise
    except (AttributeError, TypeError, ValueError) as exc:
        raise CodecError(str(exc)) from exc
