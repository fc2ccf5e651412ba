"""Crash-safe persistence of the account snapshot.

Files, all next to each other:

    config.json                      primary
    config.json.backup               previous primary, refreshed on every save
    config.json.tmp                  write target, renamed over the primary
    config.json.corrupted_<stamp>    unparseable primaries, kept for inspection

Neither load() nor save() raises: on failure the caller keeps working with
its in-memory snapshot and the problem is logged.
"""

import json
import logging
import os
import shutil
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from smurfmanager.errors import ConfigCorrupted
from smurfmanager.models import Snapshot
from smurfmanager.settings import app_dir

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".backup"
TEMP_SUFFIX = ".tmp"
QUARANTINE_SUFFIX = ".corrupted_"


def default_config_path() -> Path:
    """Primary snapshot path (SMURFMANAGER_CONFIG overrides)."""
    override = os.environ.get("SMURFMANAGER_CONFIG")
    if override:
        return Path(override)
    return app_dir() / "config.json"


class SnapshotStore:
    """Loads and saves the Snapshot with backup, atomic replace and recovery."""

    def __init__(self, path: Optional[Union[str, Path]] = None) -> None:
        self.path = Path(path) if path else default_config_path()
        self.backup_path = self.path.with_name(self.path.name + BACKUP_SUFFIX)
        self.temp_path = self.path.with_name(self.path.name + TEMP_SUFFIX)

    def load(self) -> Snapshot:
        """Load the snapshot, recovering from the backup if needed.

        Returns:
            The stored snapshot, the backup's snapshot if the primary is
            missing or corrupt, or an empty Snapshot if neither is usable.
        """
        primary_exists = self.path.exists()
        if primary_exists:
            try:
                snapshot = self._read(self.path)
                logger.debug(f"Loaded {len(snapshot.accounts)} accounts from {self.path}")
                return snapshot
            except ConfigCorrupted as e:
                logger.warning(f"{e}; attempting to load from backup")

        if self.backup_path.exists():
            try:
                snapshot = self._read(self.backup_path)
            except ConfigCorrupted as e:
                logger.error(f"Backup also failed: {e}")
            else:
                logger.info("Backup loaded successfully, restoring primary config")
                # A corrupt primary left in place must not overwrite the good backup
                primary_cleared = not primary_exists or self._quarantine() is not None
                self._write(snapshot, refresh_backup=primary_cleared)
                return snapshot

        if primary_exists:
            logger.error("No usable config or backup, starting with an empty config")
            # Keep the next save from copying the corrupt file over the backup
            self._quarantine()
        return Snapshot()

    def save(self, snapshot: Snapshot) -> bool:
        """Persist the snapshot.

        The current primary is copied to the backup first, then the new
        content is written to a temp file and renamed over the primary, so
        a reader never sees a half-written file.

        Returns:
            True if the new snapshot is now the primary on disk.
        """
        return self._write(snapshot, refresh_backup=True)

    def _write(self, snapshot: Snapshot, refresh_backup: bool) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(snapshot.to_dict(), indent=2)
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Save failed: {e}")
            return False

        if refresh_backup and self.path.exists():
            try:
                shutil.copyfile(self.path, self.backup_path)
            except OSError as e:
                logger.warning(f"Could not refresh backup {self.backup_path}: {e}")

        try:
            with open(self.temp_path, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(self.temp_path, self.path)
        except OSError as e:
            logger.error(f"Save failed: {e}")
            self._remove_temp()
            return False

        logger.debug(f"Saved {len(snapshot.accounts)} accounts to {self.path}")
        return True

    def _read(self, path: Path) -> Snapshot:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return Snapshot.from_dict(data)
        except (OSError, ValueError, KeyError, TypeError) as e:
            raise ConfigCorrupted(str(path), e) from e

    def _quarantine(self) -> Optional[Path]:
        stamp = datetime.now().strftime("%Y%m%d%H%M%S")
        target = self.path.with_name(f"{self.path.name}{QUARANTINE_SUFFIX}{stamp}")
        n = 1
        while target.exists():
            target = self.path.with_name(f"{self.path.name}{QUARANTINE_SUFFIX}{stamp}_{n}")
            n += 1
        try:
            os.replace(self.path, target)
        except OSError as e:
            logger.warning(f"Could not move corrupted config aside: {e}")
            return None
        logger.warning(f"Corrupted config moved to {target}")
        return target

    def _remove_temp(self) -> None:
        try:
            self.temp_path.unlink(missing_ok=True)
        except OSError as e:
            logger.debug(f"Could not remove temp file {self.temp_path}: {e}")
