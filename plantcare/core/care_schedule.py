"""
PlantCare — Care due-date engine.

Pure business logic over CareStep / Plant: which steps are overdue, which are
due today, and how many days remain. Days are counted in calendar dates, not
24h windows, so a step finished at 23:00 is one day old at 08:00 the next
morning and "due today" stays true for the whole date.

No I/O: this module only transforms data.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Iterable

from plantcare.data.models import CareStep, Plant


def _calendar_date(value: datetime, now: datetime) -> date:
    """Calendar date of `value` as seen from `now`'s timezone."""
    if value.tzinfo is not None and now.tzinfo is not None:
        value = value.astimezone(now.tzinfo)
    return value.date()


def days_since_completed(step: CareStep, now: datetime) -> int | None:
    """Whole calendar days since the last completion, or None if never done."""
    if step.last_completed_date is None:
        return None
    return (now.date() - _calendar_date(step.last_completed_date, now)).days


def next_due_date(step: CareStep, now: datetime) -> date:
    """Date the step is next due. A never-completed step is due today."""
    if step.last_completed_date is None:
        return now.date()
    completed = _calendar_date(step.last_completed_date, now)
    return completed + timedelta(days=max(step.frequency_days, 0))


def is_overdue(step: CareStep, now: datetime) -> bool:
    """True if never completed, or at least `frequency_days` dates have passed.

    A non-positive frequency is invalid data; such a step is always overdue.
    """
    since = days_since_completed(step, now)
    if since is None or step.frequency_days <= 0:
        return True
    return since >= step.frequency_days


def days_until_due(step: CareStep, now: datetime) -> int:
    """Days left before the step is due, clamped to [0, frequency_days].

    Never-completed and invalid-frequency steps report 0 (due now). A
    completion stamped in the future counts as completed today.
    """
    since = days_since_completed(step, now)
    if since is None or step.frequency_days <= 0:
        return 0
    return min(max(step.frequency_days - max(since, 0), 0), step.frequency_days)


def days_overdue(step: CareStep, now: datetime) -> int:
    """Days past the due date (0 when not overdue or never completed)."""
    since = days_since_completed(step, now)
    if since is None:
        return 0
    return max(since - max(step.frequency_days, 0), 0)


def is_due_today(step: CareStep, now: datetime) -> bool:
    """Due on exactly this date: no days left and not overdue by a day or more."""
    return days_until_due(step, now) == 0 and days_overdue(step, now) == 0


def is_early_completion(step: CareStep, now: datetime, early_warning_days: int) -> bool:
    """True when completing now would be more than `early_warning_days` early."""
    if step.last_completed_date is None:
        return False
    return days_until_due(step, now) > early_warning_days


# ---------------------------------------------------------------------------
# Per-plant views (enabled steps only)
# ---------------------------------------------------------------------------

def overdue_steps(plant: Plant, now: datetime) -> list[CareStep]:
    return [s for s in plant.enabled_care_steps if is_overdue(s, now)]


def due_today_steps(plant: Plant, now: datetime) -> list[CareStep]:
    return [s for s in plant.enabled_care_steps if is_due_today(s, now)]


def next_due_step(plant: Plant, now: datetime) -> CareStep | None:
    """The enabled step with the earliest due date (first wins on ties)."""
    steps = plant.enabled_care_steps
    if not steps:
        return None
    return min(steps, key=lambda s: next_due_date(s, now))


def next_watering_date(plant: Plant, now: datetime) -> date | None:
    step = plant.watering_step
    if step is None:
        return None
    return next_due_date(step, now)


# ---------------------------------------------------------------------------
# Aggregates across all plants
# ---------------------------------------------------------------------------

def collect_overdue(plants: Iterable[Plant], now: datetime) -> list[tuple[Plant, CareStep]]:
    """(plant, step) pairs in plant order, then care-step order."""
    return [(p, s) for p in plants for s in overdue_steps(p, now)]


def collect_due_today(plants: Iterable[Plant], now: datetime) -> list[tuple[Plant, CareStep]]:
    return [(p, s) for p in plants for s in due_today_steps(p, now)]


def plants_needing_care(plants: Iterable[Plant], now: datetime) -> list[Plant]:
    return [
        p for p in plants
        if overdue_steps(p, now) or due_today_steps(p, now)
    ]
