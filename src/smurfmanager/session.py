"""Login session window.

Captured right before the client is launched. Detection uses it to prefer
files written by the new session and to skip the part of a log file that a
previous session had already written when the client reuses that file.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

from smurfmanager.files import select_candidates

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionWindow:
    """When a login attempt began and what the newest log looked like then."""

    started_at: datetime
    reference_file: Optional[Path] = None
    reference_length: int = 0

    @classmethod
    def capture(
        cls,
        logs_directory: Union[str, Path, None],
        name_contains: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> "SessionWindow":
        """Record the start of a login attempt.

        Args:
            logs_directory: Client log directory (may not exist yet).
            name_contains: Filename filter used for identity files.
            now: Start time override, mostly for tests.
        """
        started_at = now or datetime.now(timezone.utc)
        reference_file: Optional[Path] = None
        reference_length = 0

        if logs_directory:
            newest = select_candidates(logs_directory, name_contains=name_contains, limit=1)
            if newest:
                try:
                    reference_length = newest[0].stat().st_size
                    reference_file = newest[0].resolve()
                except OSError as e:
                    logger.debug(f"Could not stat reference file {newest[0]}: {e}")

        window = cls(started_at, reference_file, reference_length)
        logger.debug(
            f"Session window started at {started_at.isoformat()}, "
            f"reference={reference_file} ({reference_length} bytes)"
        )
        return window

    def is_reference(self, path: Union[str, Path]) -> bool:
        """True if path is the file the previous session was writing."""
        if self.reference_file is None:
            return False
        try:
            return Path(path).resolve() == self.reference_file
        except OSError:
            return False

    def scan_offset(self, path: Union[str, Path]) -> int:
        """Byte offset where data from this session starts in path."""
        return self.reference_length if self.is_reference(path) else 0
