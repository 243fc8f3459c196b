"""
PlantCare — Care session.

A care session is the transient overlay shown while walking round the home
marking plants as cared for. It only remembers which (plant, step) pairs were
ticked during this walkthrough; the persisted `last_completed_date` on each
CareStep is written by the DataStore at mark time and is the source of truth
for due-date math.

Unmarking removes the tick here but does not roll back the persisted
completion timestamp.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime

from plantcare.data.models import new_id


@dataclass
class CompletedCareStep:
    plant_id: str
    care_step_id: str
    completed_at: datetime


@dataclass
class CareSession:
    """Ephemeral, never persisted."""

    id: str = field(default_factory=new_id)
    started_at: datetime = field(default_factory=datetime.now)
    completed: dict[tuple[str, str], CompletedCareStep] = field(default_factory=dict)

    def mark_care_step_completed(
        self, plant_id: str, care_step_id: str, when: datetime | None = None,
    ) -> None:
        self.completed[(plant_id, care_step_id)] = CompletedCareStep(
            plant_id=plant_id,
            care_step_id=care_step_id,
            completed_at=when or datetime.now(),
        )

    def unmark_care_step_completed(self, plant_id: str, care_step_id: str) -> None:
        self.completed.pop((plant_id, care_step_id), None)

    def is_step_completed(self, plant_id: str, care_step_id: str) -> bool:
        return (plant_id, care_step_id) in self.completed

    def is_plant_completed(self, plant_id: str) -> bool:
        """True if at least one step of the plant was ticked in this session."""
        return any(pid == plant_id for pid, _ in self.completed)

    def completed_steps_for_plant(self, plant_id: str) -> list[CompletedCareStep]:
        return [c for (pid, _), c in self.completed.items() if pid == plant_id]
