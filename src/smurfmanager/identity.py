"""Account identity detection from client tracing logs.

After a login the client writes the signed-in account's accountId, gameName
and tagLine into its tracing JSON. The same file can also still hold
records of a previously signed-in account, so content is scanned backward
and the latest complete record wins.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from smurfmanager.errors import (
    DetectionCancelled,
    DetectionOutcome,
    FileLocked,
    IdentityConflict,
    NoCandidateFiles,
    ParseIncomplete,
)
from smurfmanager.fields import (
    FieldExtractor,
    IdentityCandidate,
    is_valid_account_id,
    is_valid_game_name,
)
from smurfmanager.files import file_mtime, read_file_with_retry, select_candidates
from smurfmanager.models import Account
from smurfmanager.monitor import LogActivityMonitor
from smurfmanager.session import SessionWindow
from smurfmanager.settings import DetectionConfig

logger = logging.getLogger(__name__)


@dataclass
class DetectionResult:
    """Outcome of a detection run.

    ``trace`` is a human-readable account of every file checked and why it
    was rejected. It is meant for display, not for branching; use
    ``outcome`` for that.
    """
    matched: bool
    trace: str
    outcome: DetectionOutcome
    conflicts: list[IdentityConflict] = field(default_factory=list)
    source_file: Optional[Path] = None


class IdentityExtractor:
    """Finds and validates the signed-in identity in client log files."""

    def __init__(
        self,
        config: Optional[DetectionConfig] = None,
        fields: Optional[FieldExtractor] = None,
    ) -> None:
        self.config = config or DetectionConfig()
        self.fields = fields or FieldExtractor(proximity=self.config.identity_proximity_chars)

    def detect(
        self,
        account: Account,
        logs_directory: Union[str, Path, None],
        window: Optional[SessionWindow] = None,
        cancel: Optional[threading.Event] = None,
    ) -> DetectionResult:
        """Run a single detection pass.

        Args:
            account: Account to fill in. Only modified on success.
            logs_directory: Client log directory.
            window: Session window; when given, files written since the
                session started are preferred.
            cancel: Optional event that aborts the pass.

        Returns:
            DetectionResult with ``matched`` set on success.
        """
        trace: list[str] = []
        conflicts: list[IdentityConflict] = []
        logger.info(f"Starting identity detection for account: {account.username}")

        if not logs_directory or not Path(logs_directory).is_dir():
            trace.append(f"Directory not found: {logs_directory}")
            logger.warning(f"Client log directory not found: {logs_directory}")
            return DetectionResult(False, "\n".join(trace), DetectionOutcome.NO_CANDIDATES)

        try:
            candidates = self._candidates(logs_directory, window, trace)
        except NoCandidateFiles as e:
            trace.append(str(e))
            logger.warning(f"{e} in {logs_directory}")
            return DetectionResult(False, "\n".join(trace), DetectionOutcome.NO_CANDIDATES)

        try:
            return self._scan_candidates(account, candidates, window, cancel, trace, conflicts)
        except DetectionCancelled:
            trace.append("Detection cancelled")
            logger.info(f"Identity detection cancelled for account: {account.username}")
            return DetectionResult(False, "\n".join(trace), DetectionOutcome.CANCELLED, conflicts)

    def _scan_candidates(
        self,
        account: Account,
        candidates: list[Path],
        window: Optional[SessionWindow],
        cancel: Optional[threading.Event],
        trace: list[str],
        conflicts: list[IdentityConflict],
    ) -> DetectionResult:
        for path in candidates:
            if cancel is not None and cancel.is_set():
                raise DetectionCancelled()

            offset = window.scan_offset(path) if window else 0
            trace.append(f"\nReading: {path.name}")
            try:
                trace.append(f"  Modified: {file_mtime(path).astimezone():%Y-%m-%d %H:%M:%S}")
            except OSError:
                pass
            if offset:
                trace.append(f"  Skipping first {offset} bytes written before this session")

            try:
                content = read_file_with_retry(
                    path,
                    attempts=self.config.read_attempts,
                    delay=self.config.read_delay_seconds,
                    start_offset=offset,
                    cancel=cancel,
                )
            except FileLocked as e:
                if cancel is not None and cancel.is_set():
                    raise DetectionCancelled() from e
                trace.append(f"  File locked: {e}")
                continue
            except OSError as e:
                trace.append(f"  Error reading file: {e}")
                logger.warning(f"Error reading {path.name}: {e}")
                continue

            logger.debug(f"Read {path.name}: {len(content)} characters")

            try:
                candidate = self._match(content, account)
            except IdentityConflict as e:
                conflicts.append(e)
                trace.append(f"  {e}")
                logger.warning(f"{path.name}: {e}")
                continue
            except ParseIncomplete as e:
                trace.append(f"  {e}")
                logger.debug(f"{path.name}: {e}")
                continue

            self._apply(account, candidate)
            trace.append(f"  ✓ accountId: {account.account_id}")
            trace.append(f"  ✓ gameName: {account.game_name}")
            if candidate.tag_line:
                trace.append(f"  ✓ tagLine: {candidate.tag_line.value}")
            trace.append("\n✓ Account detected successfully")
            logger.info(f"Account detected: ID={account.account_id}, Name={account.full_riot_id}")
            return DetectionResult(True, "\n".join(trace), DetectionOutcome.MATCHED, conflicts, path)

        trace.append("\nNo account data found in checked files")
        logger.warning(f"Failed to detect account after checking {len(candidates)} files")
        outcome = DetectionOutcome.CONFLICT if conflicts else DetectionOutcome.NOT_FOUND
        return DetectionResult(False, "\n".join(trace), outcome, conflicts)

    def detect_with_retry(
        self,
        account: Account,
        logs_directory: Union[str, Path, None],
        window: Optional[SessionWindow] = None,
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
        monitor: Optional[LogActivityMonitor] = None,
    ) -> DetectionResult:
        """Poll detection until it succeeds or attempts run out.

        The client may not have flushed its login data yet, so failed passes
        are retried after ``detection_delay_seconds``.

        Args:
            deadline: Absolute ``time.monotonic()`` value after which no new
                attempt is started.
            monitor: If given, a pending wait ends early on log activity.
        """
        attempts = max(1, self.config.detection_attempts)
        delay = self.config.detection_delay_seconds
        result: Optional[DetectionResult] = None

        for attempt in range(1, attempts + 1):
            if _stopped(cancel, deadline):
                return self._cancelled(result, attempt - 1)

            result = self.detect(account, logs_directory, window, cancel)
            if result.matched or result.outcome is DetectionOutcome.CANCELLED:
                return result

            logger.debug(f"Detection attempt {attempt}/{attempts} failed: {result.outcome.value}")
            if attempt < attempts:
                wait = delay
                if deadline is not None:
                    wait = min(wait, max(0.0, deadline - time.monotonic()))
                if monitor is not None:
                    monitor.wait_for_activity(wait, cancel)
                elif cancel is not None:
                    cancel.wait(wait)
                elif wait > 0:
                    time.sleep(wait)

        result.trace = f"Failed to detect account info after {attempts} attempts.\n{result.trace}"
        return result

    def _candidates(
        self,
        logs_directory: Union[str, Path],
        window: Optional[SessionWindow],
        trace: list[str],
    ) -> list[Path]:
        limit = self.config.identity_files_to_check
        name_filter = self.config.identity_file_filter

        if window is None:
            candidates = select_candidates(logs_directory, name_contains=name_filter, limit=limit)
            if not candidates:
                raise NoCandidateFiles(f"No {name_filter} files found")
            trace.append(f"Found {len(candidates)} files (checking up to {limit})")
            return candidates

        candidates = select_candidates(
            logs_directory,
            modified_after=window.started_at,
            name_contains=name_filter,
            limit=limit,
        )
        if candidates:
            trace.append(f"Found {len(candidates)} files written since login started (checking up to {limit})")
            return candidates

        candidates = select_candidates(logs_directory, name_contains=name_filter, limit=limit)
        if not candidates:
            raise NoCandidateFiles(f"No {name_filter} files found")

        trace.append(f"No files written since login started; falling back to the {len(candidates)} most recent")
        logger.info("No new identity files since session start, using most recent files")
        return candidates

    def _match(self, content: str, account: Account) -> IdentityCandidate:
        """Find the latest valid identity record in content.

        Raises:
            ParseIncomplete: No complete, valid record was found.
            IdentityConflict: The latest valid record names another account.
        """
        saw_id = False
        rejected: list[str] = []

        for candidate in self.fields.identity_candidates_backward(content):
            saw_id = True
            found_id = candidate.account_id.value

            if not is_valid_account_id(found_id):
                rejected.append(f"invalid accountId {found_id}")
                continue
            if candidate.game_name is None:
                rejected.append(f"no gameName near accountId {found_id}")
                continue
            if not is_valid_game_name(candidate.game_name.value):
                rejected.append(f"invalid gameName {candidate.game_name.value!r}")
                continue

            if account.account_id and account.account_id != found_id:
                raise IdentityConflict(account.account_id, found_id)
            return candidate

        if not saw_id:
            raise ParseIncomplete("accountId")
        raise ParseIncomplete(f"valid accountId + gameName ({'; '.join(rejected[:3])})")

    @staticmethod
    def _apply(account: Account, candidate: IdentityCandidate) -> None:
        account.account_id = candidate.account_id.value
        account.game_name = candidate.game_name.value
        if candidate.tag_line and candidate.tag_line.value:
            account.tag_line = candidate.tag_line.value

    @staticmethod
    def _cancelled(previous: Optional[DetectionResult], attempts_done: int) -> DetectionResult:
        trace = f"Detection cancelled after {attempts_done} attempts"
        if previous is not None:
            trace = f"{trace}\n{previous.trace}"
        conflicts = previous.conflicts if previous is not None else []
        return DetectionResult(False, trace, DetectionOutcome.CANCELLED, conflicts)


def _stopped(cancel: Optional[threading.Event], deadline: Optional[float]) -> bool:
    if cancel is not None and cancel.is_set():
        return True
    return deadline is not None and time.monotonic() >= deadline
