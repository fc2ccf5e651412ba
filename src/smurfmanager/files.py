"""Log file discovery and lock-tolerant reading.

The client keeps its log files open for writing while we read them, and on
Windows a sharing violation surfaces as PermissionError. Reads are retried
with a fixed backoff before giving up with FileLocked.
"""

import logging
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, Optional, Union

from smurfmanager.errors import DirectoryNotFound, FileLocked

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]

# Windows sharing / lock violation codes
_LOCK_WINERRORS = {32, 33}


def file_mtime(path: Path) -> datetime:
    """Last-modified time of a file as an aware UTC datetime."""
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def list_directory(directory: PathLike) -> list[Path]:
    """Entries directly inside a directory.

    Raises:
        DirectoryNotFound: The directory does not exist (yet).
    """
    root = Path(directory)
    if not root.is_dir():
        raise DirectoryNotFound(str(root))
    return list(root.iterdir())


def select_candidates(
    directories: Union[PathLike, Iterable[PathLike]],
    modified_after: Optional[datetime] = None,
    name_contains: Optional[str] = None,
    limit: int = 5,
) -> list[Path]:
    """List candidate log files, newest first.

    Only files directly inside each directory are considered. A directory
    that does not exist yet simply contributes nothing.

    Args:
        directories: One directory or several (penalty scans may span more).
        modified_after: Keep only files modified at or after this time.
        name_contains: Keep only files whose name contains this substring.
        limit: Maximum number of files returned.

    Returns:
        Paths sorted by modification time, newest first, at most ``limit``.
    """
    if isinstance(directories, (str, Path)):
        directories = [directories]

    found: list[tuple[datetime, Path]] = []
    for directory in directories:
        if not directory:
            continue
        try:
            entries = list_directory(directory)
        except DirectoryNotFound as e:
            logger.debug(str(e))
            continue
        except OSError as e:
            logger.warning(f"Could not list {directory}: {e}")
            continue

        for entry in entries:
            if name_contains and name_contains not in entry.name:
                continue
            try:
                if not entry.is_file():
                    continue
                mtime = file_mtime(entry)
            except OSError:
                # Rotated away between listing and stat
                continue
            if modified_after is not None and mtime < modified_after:
                continue
            found.append((mtime, entry))

    found.sort(key=lambda item: item[0], reverse=True)
    return [path for _, path in found[:max(0, limit)]]


def _is_lock_error(error: OSError) -> bool:
    if isinstance(error, PermissionError):
        return True
    return getattr(error, "winerror", None) in _LOCK_WINERRORS


def read_file_with_retry(
    path: PathLike,
    attempts: int = 5,
    delay: float = 0.5,
    start_offset: int = 0,
    cancel: Optional[threading.Event] = None,
) -> str:
    """Read a whole log file while another process may be writing it.

    Args:
        path: File to read.
        attempts: Maximum number of open attempts.
        delay: Seconds to wait between attempts.
        start_offset: Byte position to start from. If the file is now
            shorter than this it was truncated or recreated, and the whole
            file is read instead.
        cancel: Optional event; when set, pending retries are abandoned.

    Returns:
        Decoded file content (UTF-8, undecodable bytes replaced).

    Raises:
        FileNotFoundError: The file vanished (not retried).
        FileLocked: Every attempt hit a sharing/lock error.
    """
    path = Path(path)
    attempts = max(1, attempts)
    last_error: Optional[OSError] = None

    for attempt in range(1, attempts + 1):
        try:
            # open() shares read and write access with the writer on Windows
            with open(path, "rb") as f:
                f.seek(0, 2)
                size = f.tell()
                position = start_offset
                if position > size:
                    logger.info(f"{path.name} truncated (size {size} < offset {position}), reading from start")
                    position = 0
                f.seek(position)
                return f.read().decode("utf-8", errors="replace")
        except FileNotFoundError:
            raise
        except OSError as e:
            if not _is_lock_error(e):
                raise
            last_error = e
            if attempt < attempts:
                logger.warning(f"File locked, attempt {attempt}/{attempts}: {path.name}: {e}")
                if cancel is not None:
                    if cancel.wait(delay):
                        break
                else:
                    time.sleep(delay)

    logger.error(f"Failed to read {path.name} after {attempts} attempts")
    raise FileLocked(str(path), attempts, last_error)
