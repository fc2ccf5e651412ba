"""Client log directory activity monitor using watchdog.

Used only to shorten the wait between identity detection attempts: when the
client creates or writes a file in its log directory the pending wait ends
early. Reading stays point-in-time; nothing here reads file content.
"""

import logging
import threading
import time
from pathlib import Path
from typing import Optional, Union

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)

# How often a cancellable wait re-checks its cancel event
CANCEL_POLL_SECONDS = 0.1


class _ActivityHandler(FileSystemEventHandler):
    """Flags activity for files whose name contains a filter string."""

    def __init__(self, activity: threading.Event, name_contains: Optional[str]) -> None:
        super().__init__()
        self._activity = activity
        self._name_contains = name_contains

    def _note(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        name = Path(str(event.src_path)).name
        if self._name_contains and self._name_contains not in name:
            return
        self._activity.set()

    def on_created(self, event: FileSystemEvent) -> None:
        self._note(event)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._note(event)


class LogActivityMonitor:
    """Watches a log directory and lets a caller wait for the next write."""

    def __init__(self, directory: Union[str, Path], name_contains: Optional[str] = None) -> None:
        self.directory = Path(directory)
        self._activity = threading.Event()
        self._handler = _ActivityHandler(self._activity, name_contains)
        self._observer: Optional[Observer] = None

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """Start watching. A missing directory leaves the monitor idle."""
        if self._observer is not None:
            logger.warning("Monitor already started")
            return

        if not self.directory.is_dir():
            logger.debug(f"Not monitoring missing directory: {self.directory}")
            return

        self._observer = Observer()
        self._observer.schedule(self._handler, str(self.directory), recursive=False)
        self._observer.start()
        logger.debug(f"Monitoring log activity in {self.directory}")

    def stop(self) -> None:
        """Stop watching and release the observer thread."""
        if self._observer is None:
            return

        self._observer.stop()
        self._observer.join(timeout=5.0)
        self._observer = None
        logger.debug("Log activity monitor stopped")

    def wait_for_activity(self, timeout: float, cancel: Optional[threading.Event] = None) -> bool:
        """Wait up to timeout seconds for a write; True if one happened.

        Activity seen since the previous call counts immediately. Setting
        cancel ends the wait early (returning False unless a write was seen).
        """
        if cancel is None:
            happened = self._activity.wait(timeout)
        else:
            deadline = time.monotonic() + max(0.0, timeout)
            happened = self._activity.is_set()
            while not happened and not cancel.is_set():
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                happened = self._activity.wait(min(remaining, CANCEL_POLL_SECONDS))
        self._activity.clear()
        return happened

    def __enter__(self) -> "LogActivityMonitor":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
