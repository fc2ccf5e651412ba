"""End-to-end tests for login and startup flows."""

import threading
from datetime import datetime, timedelta, timezone

from conftest import write_log

from smurfmanager import create_engine
from smurfmanager.engine import AccountSyncEngine
from smurfmanager.errors import DetectionOutcome
from smurfmanager.models import Account, Snapshot
from smurfmanager.settings import DetectionConfig
from smurfmanager.store import SnapshotStore

TRACING = "LeagueClient-tracing.json"
RIOT_LOG = "Riot Client.log"

LOGIN_TRACE = (
    '{"name":"lol-login","args":{"body":"{\\"accountId\\":2914876351,'
    '\\"gameName\\":\\"SmurfKing\\",\\"tagLine\\":\\"EUW\\"}"}},\n'
)
PENALTY_LOG = (
    '{"accountId":2914876351,"penalties":[{"type":"LEAVER_BUSTED","remainingMillis":900000},'
    '{"type":"LEAVER_BUSTER_QUEUE_LOCKOUT","remainingMillis":7200000}]}\n'
)


def fast_config(**overrides) -> DetectionConfig:
    values = dict(
        detection_attempts=2,
        detection_delay_seconds=0.0,
        post_launch_wait_seconds=0.0,
        read_delay_seconds=0.0,
        watch_logs=False,
    )
    values.update(overrides)
    return DetectionConfig(**values)


def make_snapshot(tmp_path) -> Snapshot:
    snapshot = Snapshot(
        client_logs_path=str(tmp_path / "client"),
        launcher_logs_path=str(tmp_path / "launcher"),
    )
    snapshot.add_account(Account(username="smurf1", encrypted_password="blob"))
    return snapshot


def client_writes_login(tmp_path):
    """Launcher stand-in: the client writes its tracing file after start."""
    launched = []

    def launch(account):
        launched.append(account.username)
        write_log(tmp_path / "client" / f"new_{TRACING}", LOGIN_TRACE, age=-5)
        return True

    launch.calls = launched
    return launch


class TestLogin:
    """The full login flow."""

    def test_detects_identity_and_penalties_then_saves(self, tmp_path):
        """A first login fills in the identity, penalties and persists them."""
        write_log(tmp_path / "launcher" / RIOT_LOG, PENALTY_LOG)
        store = SnapshotStore(tmp_path / "config.json")
        snapshot = make_snapshot(tmp_path)
        account = snapshot.accounts[0]
        launcher = client_writes_login(tmp_path)
        engine = AccountSyncEngine(store, fast_config(), launcher)

        before = datetime.now(timezone.utc)
        outcome = engine.login(snapshot, account)

        assert outcome.launched
        assert outcome.saved
        assert outcome.detection.outcome is DetectionOutcome.MATCHED
        assert launcher.calls == ["smurf1"]

        stored = store.load().accounts[0]
        assert stored.account_id == "2914876351"
        assert stored.full_riot_id == "SmurfKing#EUW"
        assert stored.low_priority_minutes == 15
        assert stored.lockout_until >= before + timedelta(hours=2)

    def test_stale_identity_from_previous_session_ignored(self, tmp_path):
        """An old tracing file for another account is not attributed to this one."""
        write_log(
            tmp_path / "client" / f"old_{TRACING}",
            LOGIN_TRACE.replace("2914876351", "1111122222"),
            age=3600,
        )
        store = SnapshotStore(tmp_path / "config.json")
        snapshot = make_snapshot(tmp_path)
        account = snapshot.accounts[0]
        engine = AccountSyncEngine(store, fast_config(), client_writes_login(tmp_path))

        engine.login(snapshot, account)

        assert account.account_id == "2914876351"

    def test_known_identity_skips_detection(self, tmp_path):
        """Accounts that already have an id and name are not re-detected."""
        snapshot = make_snapshot(tmp_path)
        account = snapshot.accounts[0]
        account.account_id = "2914876351"
        account.game_name = "SmurfKing"
        engine = AccountSyncEngine(SnapshotStore(tmp_path / "config.json"), fast_config(), lambda a: True)

        outcome = engine.login(snapshot, account)

        assert outcome.detection is None
        assert outcome.saved

    def test_with_log_monitor(self, tmp_path):
        """Detection also works with the activity monitor enabled."""
        (tmp_path / "client").mkdir()
        snapshot = make_snapshot(tmp_path)
        account = snapshot.accounts[0]
        engine = AccountSyncEngine(
            SnapshotStore(tmp_path / "config.json"),
            fast_config(watch_logs=True),
            client_writes_login(tmp_path),
        )

        assert engine.login(snapshot, account).detection.matched

    def test_no_launcher(self, tmp_path):
        """Without a launcher nothing happens."""
        engine = AccountSyncEngine(SnapshotStore(tmp_path / "config.json"), fast_config())
        snapshot = make_snapshot(tmp_path)

        outcome = engine.login(snapshot, snapshot.accounts[0])

        assert not outcome.launched
        assert not (tmp_path / "config.json").exists()

    def test_launcher_error_is_reported(self, tmp_path):
        """A launcher exception is a failed launch, not a crash."""
        def broken(account):
            raise RuntimeError("client not installed")

        engine = AccountSyncEngine(SnapshotStore(tmp_path / "config.json"), fast_config(), broken)
        snapshot = make_snapshot(tmp_path)

        outcome = engine.login(snapshot, snapshot.accounts[0])

        assert not outcome.launched
        assert outcome.message == "Failed to start the client"

    def test_cancelled_during_post_launch_wait(self, tmp_path):
        """Cancelling before detection leaves the account untouched."""
        cancel = threading.Event()
        cancel.set()
        engine = AccountSyncEngine(
            SnapshotStore(tmp_path / "config.json"),
            fast_config(post_launch_wait_seconds=30.0),
            client_writes_login(tmp_path),
        )
        snapshot = make_snapshot(tmp_path)

        outcome = engine.login(snapshot, snapshot.accounts[0], cancel=cancel)

        assert outcome.launched
        assert outcome.message == "Login cancelled"
        assert snapshot.accounts[0].account_id == ""

    def test_submit_login_runs_in_background(self, tmp_path):
        """submit_login returns a future with the outcome."""
        engine = AccountSyncEngine(
            SnapshotStore(tmp_path / "config.json"), fast_config(), client_writes_login(tmp_path)
        )
        snapshot = make_snapshot(tmp_path)

        try:
            outcome = engine.submit_login(snapshot, snapshot.accounts[0]).result(timeout=30)
        finally:
            engine.shutdown()

        assert outcome.detection.matched


class TestStartupSync:
    """Penalty refresh at application start."""

    def test_refreshes_penalties_and_clears_expired(self, tmp_path):
        """Tracked accounts get log penalties; expired lockouts are dropped."""
        write_log(tmp_path / "launcher" / RIOT_LOG, PENALTY_LOG)
        store = SnapshotStore(tmp_path / "config.json")
        snapshot = make_snapshot(tmp_path)
        tracked = snapshot.accounts[0]
        tracked.account_id = "2914876351"
        expired = snapshot.add_account(Account(
            username="old",
            account_id="3000111222",
            lockout_until=datetime.now(timezone.utc) - timedelta(minutes=1),
        ))
        engine = AccountSyncEngine(store, fast_config())

        report = engine.startup_sync(snapshot)

        assert report.updated_accounts == {"2914876351"}
        assert tracked.low_priority_minutes == 15
        assert expired.lockout_until is None
        assert store.load() == snapshot

    def test_without_launcher_logs(self, tmp_path):
        """A missing launcher log directory still saves."""
        store = SnapshotStore(tmp_path / "config.json")
        engine = AccountSyncEngine(store, fast_config())

        report = engine.submit_startup_sync(make_snapshot(tmp_path)).result(timeout=30)
        engine.shutdown()

        assert report.files_scanned == []
        assert store.path.exists()


class TestCreateEngine:
    """Package-level factory."""

    def test_uses_given_config_path(self, tmp_path):
        """The factory wires a store for the given file."""
        engine = create_engine(str(tmp_path / "accounts.json"))

        assert engine.store.path == tmp_path / "accounts.json"
        assert engine.config.detection_attempts == 5
        assert engine.load() == Snapshot()
