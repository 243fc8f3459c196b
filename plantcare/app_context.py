"""
PlantCare — Application context.

Builds the long-lived services once per process and hands them to the
interface layer (bot handlers read them from `bot_data["ctx"]`). Tests build
their own context from temp paths instead of touching module globals.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from plantcare.core.backup import BackupService
from plantcare.core.reminders import ReminderService
from plantcare.data.kv_store import KeyValueDB
from plantcare.data.store import DataStore

if TYPE_CHECKING:
    from plantcare.config import Settings
    from plantcare.ports.notification_port import ReminderPort

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    kv: KeyValueDB
    store: DataStore
    backups: BackupService
    reminders: ReminderService | None = None

    def start_reminders(self, port: ReminderPort) -> ReminderService:
        """Attach a reminder channel and keep it in sync with the store."""
        if self.reminders is not None:
            self.reminders.stop()
        self.reminders = ReminderService(self.store, port)
        self.reminders.start()
        return self.reminders

    def refresh_reminders(self) -> None:
        if self.reminders is not None:
            self.reminders.refresh()

    def reminder_summary(self) -> tuple[str, int] | None:
        """What the reminder should say right now, or None if nothing is overdue."""
        if self.reminders is None:
            return None
        return self.reminders.current_summary()

    def close(self) -> None:
        if self.reminders is not None:
            self.reminders.stop()
            self.reminders = None
        self.store.end_care_session()
        logger.info("Application context closed")


def build_context(settings: Settings) -> AppContext:
    kv = KeyValueDB(settings.DATABASE_PATH)
    store = DataStore(kv, photos_dir=settings.PHOTOS_DIR)
    backups = BackupService(
        store,
        kv,
        cloud_dir=settings.CLOUD_BACKUP_DIR,
        local_dir=settings.LOCAL_BACKUP_DIR,
        photos_dir=settings.PHOTOS_DIR,
        device_name=settings.DEVICE_NAME,
        auto_backup_interval_hours=settings.AUTO_BACKUP_INTERVAL_HOURS,
    )
    logger.info(
        "Loaded %d plant(s), %d room(s), %d zone(s) from %s",
        len(store.plants), len(store.rooms), len(store.zones), settings.DATABASE_PATH,
    )
    return AppContext(kv=kv, store=store, backups=backups)
