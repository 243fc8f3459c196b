"""
PlantCare — Backup / Restore engine.

A backup is an immutable JSON snapshot file holding versioned metadata plus a
full copy of rooms, zones, plants, photo metadata and settings. Each backup is
a new timestamp-named file; an existing file is never overwritten.

Destination policy: a cloud-synced folder (CLOUD_BACKUP_DIR, e.g. a Dropbox /
iCloud Drive / OneDrive folder) is preferred. When it is not reachable the
local folder is used and the backup is reported as local only.

File I/O runs in worker threads via asyncio.to_thread; the DataStore is only
read and replaced on the event-loop thread.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from pydantic import BaseModel, ValidationError

from plantcare.data import codec
from plantcare.data.codec import CodecError
from plantcare.data.store import StoreSnapshot

if TYPE_CHECKING:
    from plantcare.data.store import DataStore
    from plantcare.ports.storage_port import KeyValuePort

logger = logging.getLogger(__name__)

BACKUP_FORMAT_VERSION = "1.0"
SUPPORTED_FORMAT_VERSIONS = {"1.0"}
BACKUP_EXTENSION = ".plantcarebackup"
BACKUP_DIR_NAME = "PlantCareBackups"
LAST_BACKUP_KEY = "lastPlantCareBackupDate"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class BackupError(Exception):
    """Raised when a user-initiated backup operation fails."""


class StorageUnavailable(BackupError):
    """Neither the cloud folder nor the local fallback can be used."""


class InvalidDirectory(BackupError):
    """The backup destination exists but is not a usable directory."""


class SaveFailed(BackupError):
    """Writing the snapshot file failed."""


class OpenFailed(BackupError):
    """The snapshot file could not be read."""


class InvalidData(BackupError):
    """The snapshot was read but its contents or version are unusable."""


# ---------------------------------------------------------------------------
# File format
# ---------------------------------------------------------------------------


class BackupMetadata(BaseModel):
    """Envelope header, readable without touching the collections.

    JSON example:
    {
        "version": "1.0",
        "date": "2026-10-18T09:30:00",
        "device_name": "kitchen-pi",
        "plant_count": 10, "room_count": 7, "zone_count": 0, "photo_count": 2
    }
    """
    version: str = BACKUP_FORMAT_VERSION
    date: datetime
    device_name: str
    plant_count: int
    room_count: int
    zone_count: int
    photo_count: int


class _BackupEnvelope(BaseModel):
    metadata: BackupMetadata
    rooms: list[dict]
    zones: list[dict]
    plants: list[dict]
    photos: list[dict]
    settings: dict


def encode_backup(metadata: BackupMetadata, snapshot: StoreSnapshot) -> bytes:
    payload = {
        "metadata": metadata.model_dump(mode="json"),
        "rooms": [codec.encode_room(r) for r in snapshot.rooms],
        "zones": [codec.encode_zone(z) for z in snapshot.zones],
        "plants": [codec.encode_plant(p) for p in snapshot.plants],
        "photos": [codec.encode_photo(ph) for ph in snapshot.photos],
        "settings": codec.encode_settings(snapshot.settings),
    }
    return json.dumps(payload, indent=2).encode("utf-8")


def decode_backup(data: bytes) -> tuple[BackupMetadata, StoreSnapshot]:
    """Parse snapshot bytes. Raises InvalidData on any schema problem."""
    try:
        envelope = _BackupEnvelope.model_validate(json.loads(data))
    except (UnicodeDecodeError, json.JSONDecodeError, ValidationError) as exc:
        raise InvalidData(f"Backup file contains invalid data: {exc}") from exc

    version = envelope.metadata.version
    if version not in SUPPORTED_FORMAT_VERSIONS:
        raise InvalidData(f"Unsupported backup version {version!r}")

    try:
        snapshot = StoreSnapshot(
            rooms=[codec.decode_room(r) for r in envelope.rooms],
            zones=[codec.decode_zone(z) for z in envelope.zones],
            plants=[codec.decode_plant(p) for p in envelope.plants],
            photos=[codec.decode_photo(ph) for ph in envelope.photos],
            settings=codec.decode_settings(envelope.settings),
        )
    except (CodecError, TypeError, ValueError) as exc:
        raise InvalidData(f"Backup file contains invalid data: {exc}") from exc
    return envelope.metadata, snapshot


def read_backup_file(path: Path) -> tuple[BackupMetadata, StoreSnapshot]:
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise OpenFailed(f"Failed to open backup file {path.name}: {exc}") from exc
    return decode_backup(data)


def backup_file_name(when: datetime) -> str:
    """Human-readable, minute-granular name, e.g. PlantCare_Backup_2026-10-18_09-30."""
    return f"PlantCare_Backup_{when.strftime('%Y-%m-%d_%H-%M')}{BACKUP_EXTENSION}"


def _write_new_file(directory: Path, name: str, payload: bytes) -> Path:
    """Create a new file with `payload`. Never overwrites; suffixes _2, _3... on clash."""
    if not directory.is_dir():
        raise InvalidDirectory(f"Backup directory {directory} is not available")

    stem = name[: -len(BACKUP_EXTENSION)]
    candidate = directory / name
    attempt = 2
    while True:
        try:
            fh = open(candidate, "xb")
        except FileExistsError:
            candidate = directory / f"{stem}_{attempt}{BACKUP_EXTENSION}"
            attempt += 1
            continue
        except OSError as exc:
            raise SaveFailed(f"Failed to create {candidate.name}: {exc}") from exc
        break

    try:
        with fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())
    except OSError as exc:
        candidate.unlink(missing_ok=True)
        raise SaveFailed(f"Failed to save backup {candidate.name}: {exc}") from exc
    return candidate


# ---------------------------------------------------------------------------
# Destination resolution
# ---------------------------------------------------------------------------


@dataclass
class BackupDestination:
    directory: Path
    is_cloud: bool


def resolve_backup_destination(cloud_dir: str, local_dir: str) -> BackupDestination:
    """Pick the cloud folder if reachable, otherwise the local folder.

    The cloud root must already exist (it is the sync client's folder); only
    the PlantCareBackups sub-folder is created inside it.
    """
    if cloud_dir:
        root = Path(cloud_dir).expanduser()
        if root.is_dir():
            target = root / BACKUP_DIR_NAME
            try:
                target.mkdir(exist_ok=True)
                if target.is_dir():
                    return BackupDestination(directory=target, is_cloud=True)
                logger.warning("Cloud backup path %s is not a directory", target)
            except OSError as exc:
                logger.warning("Cloud backup folder %s not writable: %s", target, exc)
        else:
            logger.warning("Cloud backup folder %s is not available", root)

    if local_dir:
        target = Path(local_dir).expanduser()
        try:
            target.mkdir(parents=True, exist_ok=True)
        except FileExistsError as exc:
            raise InvalidDirectory(f"Local backup path {target} is not a directory") from exc
        except OSError as exc:
            logger.error("Local backup folder %s not writable: %s", target, exc)
        else:
            logger.info("Using local-only backup folder %s", target)
            return BackupDestination(directory=target, is_cloud=False)

    raise StorageUnavailable("No backup destination is reachable")


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------


@dataclass
class BackupInfo:
    """One listed snapshot."""

    path: Path
    metadata: BackupMetadata
    file_size: int
    local_only: bool


class BackupService:
    """Creates, lists, restores and deletes snapshots of a DataStore."""

    def __init__(
        self,
        store: DataStore,
        kv: KeyValuePort,
        cloud_dir: str = "",
        local_dir: str = "",
        photos_dir: str | Path | None = None,
        device_name: str = "",
        auto_backup_interval_hours: int = 24,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._store = store
        self._kv = kv
        self._cloud_dir = cloud_dir
        self._local_dir = local_dir
        self._photos_dir = Path(photos_dir) if photos_dir is not None else None
        self._device_name = device_name
        self._interval = timedelta(hours=auto_backup_interval_hours)
        self._clock = clock

        self.available_backups: list[BackupInfo] = []
        self.is_backup_in_progress = False
        self.is_restore_in_progress = False
        self.last_backup_date: datetime | None = self._load_last_backup_date()

    # -- last backup bookkeeping ---------------------------------------

    def _load_last_backup_date(self) -> datetime | None:
        try:
            raw = self._kv.read_bytes(LAST_BACKUP_KEY)
            return datetime.fromisoformat(raw.decode("utf-8")) if raw else None
        except Exception as exc:
            logger.warning("Could not read last backup date: %s", exc)
            return None

    def _record_backup_date(self, when: datetime) -> None:
        self.last_backup_date = when
        try:
            self._kv.write_bytes(LAST_BACKUP_KEY, when.isoformat().encode("utf-8"))
        except Exception as exc:
            logger.warning("Could not persist last backup date: %s", exc)

    def _backup_directories(self) -> list[tuple[Path, bool]]:
        """Every folder that may hold snapshots, as (path, local_only)."""
        dirs: list[tuple[Path, bool]] = []
        if self._cloud_dir:
            dirs.append((Path(self._cloud_dir).expanduser() / BACKUP_DIR_NAME, False))
        if self._local_dir:
            dirs.append((Path(self._local_dir).expanduser(), True))
        unique: list[tuple[Path, bool]] = []
        seen: set[Path] = set()
        for path, local_only in dirs:
            key = path.resolve()
            if key not in seen:
                seen.add(key)
                unique.append((path, local_only))
        return unique

    # -- operations ----------------------------------------------------

    async def perform_backup(self) -> BackupInfo:
        """Write a new snapshot of the store. Raises BackupError on failure."""
        destination = await asyncio.to_thread(
            resolve_backup_destination, self._cloud_dir, self._local_dir,
        )
        self.is_backup_in_progress = True
        try:
            now = self._clock()
            snapshot = self._store.snapshot()
            metadata = BackupMetadata(
                date=now,
                device_name=self._device_name,
                plant_count=len(snapshot.plants),
                room_count=len(snapshot.rooms),
                zone_count=len(snapshot.zones),
                photo_count=len(snapshot.photos),
            )
            payload = encode_backup(metadata, snapshot)
            logger.info("Starting backup creation in %s", destination.directory)
            path = await asyncio.to_thread(
                _write_new_file, destination.directory, backup_file_name(now), payload,
            )
        finally:
            self.is_backup_in_progress = False

        self._record_backup_date(now)
        info = BackupInfo(
            path=path,
            metadata=metadata,
            file_size=len(payload),
            local_only=not destination.is_cloud,
        )
        logger.info(
            "Backup saved to %s%s", path.name, " (local only)" if info.local_only else "",
        )
        await self.list_available_backups()
        return info

    def _scan_backups(self) -> list[BackupInfo]:
        backups: list[BackupInfo] = []
        for directory, local_only in self._backup_directories():
            if not directory.is_dir():
                continue
            try:
                paths = sorted(directory.iterdir())
            except OSError as exc:
                logger.error("Error listing backups in %s: %s", directory, exc)
                continue
            for path in paths:
                if path.suffix != BACKUP_EXTENSION or not path.is_file():
                    continue
                try:
                    metadata, _ = read_backup_file(path)
                    size = path.stat().st_size
                except (BackupError, OSError) as exc:
                    logger.warning("Skipping unreadable backup %s: %s", path.name, exc)
                    continue
                backups.append(BackupInfo(
                    path=path, metadata=metadata, file_size=size, local_only=local_only,
                ))
        backups.sort(key=lambda b: b.metadata.date.timestamp(), reverse=True)
        return backups

    async def list_available_backups(self) -> list[BackupInfo]:
        """All readable snapshots, newest first. Corrupt files are skipped."""
        self.available_backups = await asyncio.to_thread(self._scan_backups)
        return self.available_backups

    def _restore_photos(self) -> None:
        # Only the directory is recreated; image bytes are not part of a snapshot.
        if self._photos_dir is None:
            return
        try:
            self._photos_dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.warning("Could not create photos directory %s: %s", self._photos_dir, exc)

    async def restore_from_backup(self, path: str | Path) -> BackupMetadata:
        """Replace the store's contents with the snapshot at `path`.

        Raises OpenFailed if the file cannot be read and InvalidData if it
        cannot be parsed. The store is untouched on failure.
        """
        path = Path(path)
        self.is_restore_in_progress = True
        try:
            logger.info("Starting restore from backup: %s", path.name)
            metadata, snapshot = await asyncio.to_thread(read_backup_file, path)
            await asyncio.to_thread(self._restore_photos)
            self._store.replace_all(snapshot)
        finally:
            self.is_restore_in_progress = False
        logger.info("Restore completed successfully")
        return metadata

    async def delete_backup(self, path: str | Path) -> None:
        path = Path(path)
        try:
            await asyncio.to_thread(path.unlink)
        except OSError as exc:
            raise BackupError(f"Failed to delete backup {path.name}: {exc}") from exc
        logger.info("Backup deleted: %s", path.name)
        await self.list_available_backups()

    async def schedule_automatic_backup(self) -> bool:
        """Back up if the last success is at least the interval ago.

        Never raises: failures are logged. Returns True if a backup was written.
        """
        now = self._clock()
        if self.last_backup_date is not None and now - self.last_backup_date < self._interval:
            logger.info("Automatic backup not due (last backup %s)", self.last_backup_date)
            return False
        try:
            await self.perform_backup()
        except Exception as exc:
            logger.error("Automatic backup failed: %s", exc)
            return False
        return True
