"""Reminder port — abstract interface for the daily plant-care reminder.

Core modules depend on this protocol, never on a specific messaging provider.
"""

from __future__ import annotations

from typing import Protocol


class ReminderPort(Protocol):
    """Abstract daily-reminder interface used by core.reminders."""

    def schedule_daily_reminder(self, summary_text: str, count: int) -> None: ...

    def cancel_reminders(self) -> None: ...
