"""Queue penalty detection from Riot Client logs.

Two penalties are tracked per account and merged with different rules:

* Low priority queue (LEAVER_BUSTED): a flat number of minutes per
  infraction that only counts down while queueing. The latest value found in
  the logs is authoritative and replaces whatever is stored, including a
  downward correction or a clear at zero.
* Queue lockout (LEAVER_BUSTER_QUEUE_LOCKOUT): a wall-clock countdown stored
  as an absolute expiry. Older or rotated logs can report a smaller
  remaining time, so a new expiry is only taken when it is later.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional, Union

from smurfmanager.errors import FileLocked
from smurfmanager.fields import FieldExtractor
from smurfmanager.files import read_file_with_retry, select_candidates
from smurfmanager.models import Account, iter_with_ids
from smurfmanager.settings import DetectionConfig

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


@dataclass
class ReconcileReport:
    """What a reconciliation pass looked at and changed."""
    files_scanned: list[Path] = field(default_factory=list)
    files_skipped: dict[Path, str] = field(default_factory=dict)
    updated_accounts: set[str] = field(default_factory=set)


def millis_to_minutes(millis: int) -> int:
    """Whole minutes, rounded up (900000 -> 15, 60001 -> 2)."""
    return math.ceil(millis / 60000)


def apply_low_priority(account: Account, millis: int) -> bool:
    """Overwrite the low priority penalty with the value from the log.

    Returns:
        True if the stored value changed.
    """
    minutes = millis_to_minutes(millis)
    if minutes <= 0:
        if account.low_priority_minutes is None:
            return False
        logger.info(f"Clearing low priority queue for account {account.account_id} (log reports 0 minutes)")
        account.low_priority_minutes = None
        return True

    if account.low_priority_minutes == minutes:
        return False
    if account.low_priority_minutes is None:
        logger.info(f"Setting low priority queue for account {account.account_id}: {minutes} minutes")
    else:
        logger.info(
            f"Updating low priority queue for account {account.account_id}: "
            f"{account.low_priority_minutes} -> {minutes} minutes"
        )
    account.low_priority_minutes = minutes
    return True


def apply_lockout(account: Account, millis: int, now: datetime) -> bool:
    """Extend the queue lockout if the log implies a later expiry.

    Returns:
        True if the stored expiry moved forward.
    """
    if millis <= 0:
        return False
    candidate = now + timedelta(milliseconds=millis)
    if account.lockout_until is not None and candidate <= account.lockout_until:
        return False
    logger.info(f"Queue lockout for account {account.account_id} until {candidate.isoformat()}")
    account.lockout_until = candidate
    return True


def clear_expired_penalties(account: Account, now: Optional[datetime] = None) -> bool:
    """Clear a queue lockout whose expiry has passed.

    Low priority minutes are never cleared by time; they only drop while
    the player is queueing, which the logs report on the next detection.
    """
    now = now or datetime.now(timezone.utc)
    if account.lockout_until is not None and account.lockout_until <= now:
        logger.debug(f"Queue lockout expired for account {account.account_id}")
        account.lockout_until = None
        return True
    return False


class PenaltyReconciler:
    """Scans recent launcher logs and merges penalties into tracked accounts."""

    def __init__(
        self,
        config: Optional[DetectionConfig] = None,
        fields: Optional[FieldExtractor] = None,
    ) -> None:
        self.config = config or DetectionConfig()
        self.fields = fields or FieldExtractor(proximity=self.config.identity_proximity_chars)

    def reconcile(
        self,
        accounts: Iterable[Account],
        logs_directories: Union[PathLike, Iterable[PathLike], None],
        now: Optional[datetime] = None,
    ) -> ReconcileReport:
        """Update penalties for every account whose id appears in the logs.

        Args:
            accounts: Accounts to update. Those without an account id are
                skipped since penalties cannot be attributed to them.
            logs_directories: One or more launcher log directories.
            now: Reference time for lockout expiries.

        Returns:
            ReconcileReport describing scanned and skipped files.
        """
        report = ReconcileReport()
        now = now or datetime.now(timezone.utc)

        by_id: dict[str, Account] = {}
        for account in iter_with_ids(accounts):
            by_id[account.account_id] = account

        if not by_id:
            logger.debug("No accounts with an account id to check")
            return report
        if not logs_directories:
            return report

        logger.info(f"Checking penalties for {len(by_id)} accounts")
        files = select_candidates(
            logs_directories,
            name_contains=self.config.penalty_file_filter,
            limit=self.config.penalty_files_to_check,
        )

        # Oldest first, so the newest file's low priority value is applied last
        for path in reversed(files):
            try:
                content = read_file_with_retry(
                    path,
                    attempts=self.config.read_attempts,
                    delay=self.config.read_delay_seconds,
                )
            except (FileLocked, OSError) as e:
                logger.warning(f"Failed to read log file {path.name}: {e}")
                report.files_skipped[path] = str(e)
                continue

            report.files_scanned.append(path)
            report.updated_accounts |= self.scan_content(content, by_id, now)

        return report

    def scan_content(self, content: str, by_id: dict[str, Account], now: datetime) -> set[str]:
        """Apply penalty events from one file's content.

        Returns:
            Account ids whose penalties changed.
        """
        processed: set[str] = set()
        changed: set[str] = set()

        for match in self.fields.account_ids(content):
            account = by_id.get(match.value)
            if account is None or match.value in processed:
                continue
            processed.add(match.value)
            logger.debug(f"Found account {match.value} in logs")
            if self._scan_account(content, account, now):
                changed.add(match.value)

        if processed:
            logger.info(f"Processed {len(processed)} accounts from logs")
        return changed

    def _scan_account(self, content: str, account: Account, now: datetime) -> bool:
        changed = False
        before = self.config.penalty_context_before
        length = self.config.penalty_context_length

        for mention in self.fields.account_id_mentions(content, account.account_id):
            start = max(0, mention.start - before)
            context = content[start:start + length]

            millis = self.fields.low_priority_millis(context)
            if millis is not None:
                changed |= apply_low_priority(account, millis)

            millis = self.fields.lockout_millis(context)
            if millis is not None:
                changed |= apply_lockout(account, millis, now)

        return changed


def reconcile_penalties(
    accounts: Iterable[Account],
    logs_directories: Union[PathLike, Iterable[PathLike], None],
    now: Optional[datetime] = None,
    config: Optional[DetectionConfig] = None,
) -> ReconcileReport:
    """Convenience wrapper around PenaltyReconciler.reconcile."""
    return PenaltyReconciler(config).reconcile(accounts, logs_directories, now)
