"""SmurfManager: multi-account login with log-scraped queue penalty tracking."""

from typing import Optional

from smurfmanager.codec import FernetSecretCodec, SecretCodec
from smurfmanager.engine import AccountSyncEngine, LoginOutcome
from smurfmanager.errors import (
    ConfigCorrupted,
    DetectionCancelled,
    DetectionOutcome,
    DirectoryNotFound,
    FileLocked,
    IdentityConflict,
    NoCandidateFiles,
    ParseIncomplete,
    SmurfManagerError,
)
from smurfmanager.fields import FieldExtractor
from smurfmanager.files import read_file_with_retry, select_candidates
from smurfmanager.identity import DetectionResult, IdentityExtractor
from smurfmanager.models import Account, AccountTag, Snapshot
from smurfmanager.penalties import (
    PenaltyReconciler,
    ReconcileReport,
    clear_expired_penalties,
    reconcile_penalties,
)
from smurfmanager.session import SessionWindow
from smurfmanager.settings import DetectionConfig, Settings, get_settings
from smurfmanager.store import SnapshotStore

__version__ = "1.1.0"


def create_engine(
    config_path: Optional[str] = None,
    launcher=None,
) -> AccountSyncEngine:
    """Create an engine wired to a snapshot store and the persisted settings.

    Args:
        config_path: Account config file. Defaults to SMURFMANAGER_CONFIG or
                     ~/.smurfmanager/config.json.
        launcher: Login automation callable taking an Account.

    Example:
        engine = create_engine()
        snapshot = engine.load()
        engine.startup_sync(snapshot)
    """
    return AccountSyncEngine(store=SnapshotStore(config_path), launcher=launcher)


__all__ = [
    "__version__",
    "create_engine",
    "Account",
    "AccountTag",
    "Snapshot",
    "SnapshotStore",
    "SessionWindow",
    "IdentityExtractor",
    "DetectionResult",
    "PenaltyReconciler",
    "ReconcileReport",
    "reconcile_penalties",
    "clear_expired_penalties",
    "FieldExtractor",
    "select_candidates",
    "read_file_with_retry",
    "AccountSyncEngine",
    "LoginOutcome",
    "DetectionConfig",
    "Settings",
    "get_settings",
    "SecretCodec",
    "FernetSecretCodec",
    "SmurfManagerError",
    "DirectoryNotFound",
    "NoCandidateFiles",
    "FileLocked",
    "ParseIncomplete",
    "IdentityConflict",
    "ConfigCorrupted",
    "DetectionCancelled",
    "DetectionOutcome",
]
