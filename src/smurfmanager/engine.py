"""Login and startup orchestration.

Ties the session window, identity detection, penalty reconciliation and the
snapshot store together. Everything here is blocking file I/O; UI callers
should use the submit_* methods, which run on a single background worker
and return futures.
"""

import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional

from smurfmanager.identity import DetectionResult, IdentityExtractor
from smurfmanager.models import Account, Snapshot
from smurfmanager.monitor import LogActivityMonitor
from smurfmanager.penalties import PenaltyReconciler, ReconcileReport, clear_expired_penalties
from smurfmanager.session import SessionWindow
from smurfmanager.settings import DetectionConfig, get_settings
from smurfmanager.store import SnapshotStore

logger = logging.getLogger(__name__)

# Starts the game client and types the credentials; True once the login
# form was submitted. Provided by the platform automation layer.
Launcher = Callable[[Account], bool]


@dataclass
class LoginOutcome:
    """Everything a login flow did."""
    launched: bool
    detection: Optional[DetectionResult] = None
    penalties: Optional[ReconcileReport] = None
    saved: bool = False
    message: str = ""


class AccountSyncEngine:
    """Runs login flows and startup syncs against one snapshot store."""

    def __init__(
        self,
        store: Optional[SnapshotStore] = None,
        config: Optional[DetectionConfig] = None,
        launcher: Optional[Launcher] = None,
    ) -> None:
        """
        Args:
            store: Snapshot store. Defaults to the per-user config file.
            config: Tuning values. Defaults to the persisted settings.
            launcher: Login automation; required for login().
        """
        self.store = store or SnapshotStore()
        self.config = config or DetectionConfig.from_settings(get_settings())
        self.launcher = launcher
        self.identity = IdentityExtractor(self.config)
        self.penalties = PenaltyReconciler(self.config)
        self._executor: Optional[ThreadPoolExecutor] = None
        self._lock = threading.Lock()

    def load(self) -> Snapshot:
        return self.store.load()

    def startup_sync(self, snapshot: Snapshot, now: Optional[datetime] = None) -> ReconcileReport:
        """Refresh penalties for all tracked accounts, drop expired lockouts, save."""
        now = now or datetime.now(timezone.utc)
        report = self.penalties.reconcile(snapshot.accounts, snapshot.riot_client_logs_path, now)
        for account in snapshot.accounts:
            clear_expired_penalties(account, now)
        self.store.save(snapshot)
        return report

    def detect_identity(
        self,
        snapshot: Snapshot,
        account: Account,
        window: Optional[SessionWindow] = None,
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> DetectionResult:
        """Poll the client logs for the account's identity.

        When watch_logs is enabled, a watchdog monitor on the client log
        directory cuts retry waits short as soon as the client writes.
        """
        logs_directory = snapshot.league_client_logs_path
        if not self.config.watch_logs:
            return self.identity.detect_with_retry(account, logs_directory, window, cancel, deadline)

        with LogActivityMonitor(logs_directory, self.config.identity_file_filter) as monitor:
            return self.identity.detect_with_retry(
                account, logs_directory, window, cancel, deadline, monitor=monitor
            )

    def login(
        self,
        snapshot: Snapshot,
        account: Account,
        cancel: Optional[threading.Event] = None,
        deadline: Optional[float] = None,
    ) -> LoginOutcome:
        """Log into an account and sync what the logs say about it.

        Identity detection only runs while the account is missing its id or
        game name. Penalties are refreshed for every tracked account.
        """
        if self.launcher is None:
            logger.error("No launcher configured, cannot log in")
            return LoginOutcome(False, message="No launcher configured")

        window = SessionWindow.capture(snapshot.league_client_logs_path, self.config.identity_file_filter)

        try:
            launched = bool(self.launcher(account))
        except Exception as e:
            logger.error(f"Launcher failed for {account.username}: {e}")
            launched = False

        if not launched:
            return LoginOutcome(False, message="Failed to start the client")

        if self._pause(self.config.post_launch_wait_seconds, cancel, deadline):
            return LoginOutcome(True, message="Login cancelled")

        detection = None
        if not account.account_id or not account.game_name:
            detection = self.detect_identity(snapshot, account, window, cancel, deadline)
            if not detection.matched:
                logger.warning(f"Identity detection failed for {account.username}")

        now = datetime.now(timezone.utc)
        report = self.penalties.reconcile(snapshot.accounts, snapshot.riot_client_logs_path, now)
        for tracked in snapshot.accounts:
            clear_expired_penalties(tracked, now)

        saved = self.store.save(snapshot)
        return LoginOutcome(True, detection, report, saved)

    def submit_login(self, snapshot: Snapshot, account: Account, **kwargs) -> "Future[LoginOutcome]":
        return self._worker().submit(self.login, snapshot, account, **kwargs)

    def submit_startup_sync(self, snapshot: Snapshot) -> "Future[ReconcileReport]":
        return self._worker().submit(self.startup_sync, snapshot)

    def shutdown(self, wait: bool = True) -> None:
        with self._lock:
            if self._executor is not None:
                self._executor.shutdown(wait=wait)
                self._executor = None

    def _worker(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="smurfmanager")
            return self._executor

    @staticmethod
    def _pause(seconds: float, cancel: Optional[threading.Event], deadline: Optional[float]) -> bool:
        """Sleep, returning True if cancelled or the deadline passed."""
        if deadline is not None:
            seconds = min(seconds, max(0.0, deadline - time.monotonic()))
        if cancel is not None:
            if cancel.wait(seconds):
                return True
        elif seconds > 0:
            time.sleep(seconds)
        return deadline is not None and time.monotonic() >= deadline
