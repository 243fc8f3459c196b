"""
PlantCare — Data Models.

The home is a set of indoor rooms (with windows) and outdoor zones. Plants are
assigned to at most one space and carry an ordered list of recurring care steps.
Everything here is plain data: due-date math lives in core.care_schedule and
persistence in data.store.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


def new_id() -> str:
    return str(uuid.uuid4())


class Direction(Enum):
    NORTH = "north"
    NORTHEAST = "northeast"
    EAST = "east"
    SOUTHEAST = "southeast"
    SOUTH = "south"
    SOUTHWEST = "southwest"
    WEST = "west"
    NORTHWEST = "northwest"


class LightType(Enum):
    DIRECT = "direct"
    INDIRECT = "indirect"
    LOW = "low"


class HumidityPreference(Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class CareStepType(Enum):
    WATERING = "watering"
    MISTING = "misting"
    DUSTING = "dusting"
    ROTATION = "rotation"
    CUSTOM = "custom"


class ZoneAspect(Enum):
    OPEN = "open"
    SOUTH_WALL = "south_wall"
    NORTH_WALL = "north_wall"
    EAST_WALL = "east_wall"
    WEST_WALL = "west_wall"


class SunPeriod(Enum):
    AM = "am"
    PM = "pm"
    ALL = "all"


class WindExposure(Enum):
    SHELTERED = "sheltered"
    EXPOSED = "exposed"


class SunHours(Enum):
    ZERO_TO_TWO = "0-2"
    TWO_TO_FOUR = "2-4"
    FOUR_TO_SIX = "4-6"
    SIX_PLUS = "6+"


# Human-readable labels, also used as the persisted / LLM wire values
# (see data.codec for the mapping tables).
CARE_STEP_LABELS: dict[CareStepType, str] = {
    CareStepType.WATERING: "Watering",
    CareStepType.MISTING: "Misting",
    CareStepType.DUSTING: "Dusting",
    CareStepType.ROTATION: "Rotation",
    CareStepType.CUSTOM: "Custom",
}


@dataclass
class CareStep:
    """One recurring maintenance task for a plant.

    `last_completed_date` is None until the step is first marked done; the
    scheduler treats a never-completed step as due now.
    """

    type: CareStepType
    instructions: str
    frequency_days: int
    id: str = field(default_factory=new_id)
    custom_name: str | None = None
    last_completed_date: datetime | None = None
    is_enabled: bool = True

    @property
    def display_name(self) -> str:
        if self.type is CareStepType.CUSTOM and self.custom_name:
            return self.custom_name
        return CARE_STEP_LABELS[self.type]


@dataclass
class Window:
    direction: Direction
    id: str = field(default_factory=new_id)
    notes: str | None = None


@dataclass
class Room:
    name: str
    windows: list[Window] = field(default_factory=list)
    order_index: int = 0
    id: str = field(default_factory=new_id)


@dataclass
class Zone:
    """An outdoor space characterized by sun exposure and wind."""

    name: str
    aspect: ZoneAspect
    sun_period: SunPeriod
    wind: WindExposure
    sun_hours: SunHours | None = None   # explicit override, else inferred
    order_index: int = 0
    id: str = field(default_factory=new_id)

    @property
    def inferred_sun_hours(self) -> SunHours:
        if self.sun_hours is not None:
            return self.sun_hours
        if self.aspect is ZoneAspect.SOUTH_WALL and self.sun_period is SunPeriod.ALL:
            return SunHours.SIX_PLUS
        if self.aspect is ZoneAspect.NORTH_WALL:
            return SunHours.ZERO_TO_TWO
        if self.aspect is ZoneAspect.EAST_WALL and self.sun_period is SunPeriod.AM:
            return SunHours.TWO_TO_FOUR
        if self.aspect is ZoneAspect.WEST_WALL and self.sun_period is SunPeriod.PM:
            return SunHours.TWO_TO_FOUR
        if self.aspect is ZoneAspect.OPEN:
            return SunHours.SIX_PLUS if self.sun_period is SunPeriod.ALL else SunHours.FOUR_TO_SIX
        return SunHours.TWO_TO_FOUR


@dataclass
class Plant:
    """A plant in the home.

    Located either in a room (optionally at a specific window) or in an
    outdoor zone, never both when edited through the DataStore.
    """

    name: str
    preferred_light_direction: Direction
    light_type: LightType
    general_notes: str = ""
    care_steps: list[CareStep] = field(default_factory=list)
    humidity_preference: HumidityPreference | None = None
    latin_name: str | None = None
    assigned_room_id: str | None = None
    assigned_window_id: str | None = None
    assigned_zone_id: str | None = None
    id: str = field(default_factory=new_id)

    @property
    def watering_step(self) -> CareStep | None:
        return next((s for s in self.care_steps if s.type is CareStepType.WATERING), None)

    @property
    def enabled_care_steps(self) -> list[CareStep]:
        return [s for s in self.care_steps if s.is_enabled]

    def care_step(self, step_id: str) -> CareStep | None:
        return next((s for s in self.care_steps if s.id == step_id), None)

    def add_care_step(self, step: CareStep) -> None:
        self.care_steps.append(step)

    def remove_care_step(self, step_id: str) -> None:
        self.care_steps = [s for s in self.care_steps if s.id != step_id]

    def update_care_step(self, updated: CareStep) -> None:
        for i, step in enumerate(self.care_steps):
            if step.id == updated.id:
                self.care_steps[i] = updated
                return

    def mark_care_step_completed(self, step_id: str, when: datetime) -> bool:
        step = self.care_step(step_id)
        if step is None:
            return False
        step.last_completed_date = when
        return True


@dataclass
class PlantPhoto:
    """Metadata for a photo stored under the photos directory."""

    plant_id: str
    file_name: str
    date_taken: datetime
    notes: str | None = None
    id: str = field(default_factory=new_id)


@dataclass
class AppSettings:
    """User preferences, replaced wholesale on update."""

    custom_room_order: list[str] = field(default_factory=list)
    early_warning_days: int = 2
