"""
PlantCare — Daily care reminder.

Keeps a single repeating daily reminder in sync with the store: whenever the
data changes (and once a day, as steps fall due with the calendar) the pending
reminder is cancelled and, if anything is overdue, rescheduled with a fresh
summary.

This module is provider-agnostic: it depends on the ReminderPort protocol,
not on a specific messaging implementation. Scheduling errors are logged only.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from plantcare.data.models import CareStep, Plant
    from plantcare.data.store import DataStore, StoreEvent
    from plantcare.ports.notification_port import ReminderPort

logger = logging.getLogger(__name__)


def build_reminder_summary(overdue: list[tuple[Plant, CareStep]]) -> str:
    """Human-readable body for the reminder. Empty input gives an empty string."""
    if not overdue:
        return ""
    if len(overdue) == 1:
        plant, step = overdue[0]
        return f"{plant.name} needs {step.display_name.lower()}"

    plant_ids = {plant.id for plant, _ in overdue}
    if len(plant_ids) == 1:
        return f"{overdue[0][0].name} has {len(overdue)} overdue care steps"
    return f"{len(plant_ids)} plants need care ({len(overdue)} overdue steps)"


class ReminderService:
    """Reschedules the daily reminder after every store mutation."""

    def __init__(self, store: DataStore, port: ReminderPort) -> None:
        self._store = store
        self._port = port
        self._unsubscribe = None

    def start(self) -> None:
        """Subscribe to store changes and schedule the current reminder."""
        if self._unsubscribe is None:
            self._unsubscribe = self._store.subscribe(self._on_store_change)
        self.refresh()

    def stop(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_store_change(self, event: StoreEvent) -> None:
        logger.debug("Store changed (%s), refreshing reminder", event.value)
        self.refresh()

    def current_summary(self, now: datetime | None = None) -> tuple[str, int] | None:
        """Summary text and overdue count as of `now`, or None if nothing is overdue."""
        overdue = self._store.all_overdue_care_steps(now)
        if not overdue:
            return None
        return build_reminder_summary(overdue), len(overdue)

    def refresh(self, now: datetime | None = None) -> str | None:
        """Cancel and, if needed, reschedule. Returns the scheduled summary or None.

        Also called once a day so steps that fall due with no store change
        still get a reminder.
        """
        current = self.current_summary(now)
        try:
            self._port.cancel_reminders()
            if current is None:
                logger.info("Nothing overdue, no reminder scheduled")
                return None
            summary, count = current
            self._port.schedule_daily_reminder(summary, count)
        except Exception as exc:
            logger.error("Failed to schedule plant care reminder: %s", exc)
            return None
        logger.info("Daily reminder scheduled: %s", summary)
        return summary

    def cancel_all(self) -> None:
        try:
            self._port.cancel_reminders()
        except Exception as exc:
            logger.error("Failed to cancel reminders: %s", exc)
