"""Error taxonomy for log reconciliation and persistence.

These are raised at the narrowest scope possible and caught at the loop
boundaries (identity detection, penalty reconciliation, snapshot store),
where they are logged and downgraded to "try the next candidate".
"""

from enum import Enum
from typing import Optional


class SmurfManagerError(Exception):
    """Base class for all engine errors."""


class DirectoryNotFound(SmurfManagerError):
    """A configured log directory does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Directory not found: {path}")
        self.path = path


class NoCandidateFiles(SmurfManagerError):
    """No log file matched the candidate filters."""


class FileLocked(SmurfManagerError):
    """A file stayed locked by another process after all read attempts."""

    def __init__(self, path: str, attempts: int, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Could not read {path} after {attempts} attempts: {cause}")
        self.path = path
        self.attempts = attempts
        self.cause = cause


class ParseIncomplete(SmurfManagerError):
    """One or more required fields were missing from a log block."""

    def __init__(self, missing: str) -> None:
        super().__init__(f"{missing} not found")
        self.missing = missing


class IdentityConflict(SmurfManagerError):
    """A detected account id disagrees with the one already stored."""

    def __init__(self, expected: str, found: str) -> None:
        super().__init__(f"AccountId mismatch: expected {expected}, found {found}")
        self.expected = expected
        self.found = found


class ConfigCorrupted(SmurfManagerError):
    """The persisted snapshot could not be parsed."""

    def __init__(self, path: str, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"Config corrupted at {path}: {cause}")
        self.path = path
        self.cause = cause


class DetectionCancelled(SmurfManagerError):
    """Detection was cancelled or ran past its deadline."""


class DetectionOutcome(Enum):
    """Typed result of an identity detection run."""
    MATCHED = "matched"
    NO_CANDIDATES = "no_candidates"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    CANCELLED = "cancelled"
