"""Telegram reminder adapter — implements ReminderPort.

Registers one repeating job on the telegram JobQueue that pushes the care
summary to every allowed chat at the configured time of day. A second daily
job re-checks the store so steps that fall due overnight get a reminder.
"""

from __future__ import annotations

import logging
from datetime import time as dt_time
from typing import Callable

from telegram.ext import ContextTypes, JobQueue

logger = logging.getLogger(__name__)

REMINDER_JOB_NAME = "daily-plant-care-reminder"
DAILY_CHECK_JOB_NAME = "daily-plant-care-check"

SummarySource = Callable[[], tuple[str, int] | None]


class TelegramReminderScheduler:
    """Telegram implementation of ReminderPort.

    When `summary_source` is given, the reminder text is recomputed at send
    time and the message is skipped if it returns None.
    """

    def __init__(
        self,
        job_queue: JobQueue,
        chat_ids: list[int],
        at: dt_time,
        summary_source: SummarySource | None = None,
    ) -> None:
        self._job_queue = job_queue
        self._chat_ids = list(chat_ids)
        self._at = at
        self._summary_source = summary_source

    def schedule_daily_reminder(self, summary_text: str, count: int) -> None:
        self.cancel_reminders()
        self._job_queue.run_daily(
            self._send_reminder,
            time=self._at,
            name=REMINDER_JOB_NAME,
            data={"summary": summary_text, "count": count},
        )

    def cancel_reminders(self) -> None:
        self._remove_jobs(REMINDER_JOB_NAME)

    def schedule_daily_check(self, check: Callable[[], object], at: dt_time) -> None:
        """Run `check` every day at `at`, replacing any earlier check job."""
        self._remove_jobs(DAILY_CHECK_JOB_NAME)
        self._job_queue.run_daily(
            self._run_check, time=at, name=DAILY_CHECK_JOB_NAME, data=check,
        )

    def _remove_jobs(self, name: str) -> None:
        for job in self._job_queue.get_jobs_by_name(name):
            job.schedule_removal()

    async def _run_check(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        try:
            context.job.data()
        except Exception as exc:
            logger.error("Daily plant care check failed: %s", exc)

    async def _send_reminder(self, context: ContextTypes.DEFAULT_TYPE) -> None:
        summary = context.job.data["summary"]
        if self._summary_source is not None:
            current = self._summary_source()
            if current is None:
                logger.info("Nothing overdue at reminder time, not sending")
                return
            summary, _count = current

        text = f"🌿 *Plant Care Reminder*\n{summary}"
        for chat_id in self._chat_ids:
            try:
                await context.bot.send_message(chat_id=chat_id, text=text, parse_mode="Markdown")
            except Exception as exc:
                logger.error("Failed to send care reminder to %d: %s", chat_id, exc)
