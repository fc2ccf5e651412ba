"""Command line front end for SmurfManager.

Usage:
    python -m smurfmanager.cli list
    python -m smurfmanager.cli add myaccount
    python -m smurfmanager.cli sync
    python -m smurfmanager.cli detect 0
    python -m smurfmanager.cli login 0 --launcher mypkg.riot:launch

Logs are written to ~/.smurfmanager/debug.log for bug reports.
"""

import argparse
import getpass
import importlib
import logging
import sys
from datetime import datetime, timezone
from typing import Optional

from dotenv import load_dotenv

from smurfmanager.codec import FernetSecretCodec
from smurfmanager.engine import AccountSyncEngine, Launcher
from smurfmanager.models import Account, AccountTag, Snapshot
from smurfmanager.settings import app_dir
from smurfmanager.store import SnapshotStore

logger = logging.getLogger(__name__)


def log_file_path():
    return app_dir() / "debug.log"


def setup_logging(verbose: bool = False) -> None:
    """Debug log to file, INFO (or DEBUG with -v) to the console."""
    log_file = log_file_path()
    log_file.parent.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(
        "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    ))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter("%(message)s"))

    # Configure root logger directly (basicConfig is a no-op if already configured)
    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    for h in root_logger.handlers[:]:
        root_logger.removeHandler(h)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)


def load_launcher(spec: str) -> Launcher:
    """Import a launcher given as 'module:function'."""
    module_name, _, attr = spec.partition(":")
    if not module_name or not attr:
        raise ValueError(f"Launcher must look like 'module:function', got {spec!r}")
    return getattr(importlib.import_module(module_name), attr)


def _pick(snapshot: Snapshot, ref: str) -> Account:
    """Resolve a display position or an internal account id."""
    ordered = snapshot.ordered_accounts()
    if ref.isdigit() and int(ref) < len(ordered):
        return ordered[int(ref)]
    account = snapshot.find_account(ref)
    if account is None:
        raise SystemExit(f"No account at position or with id {ref!r} (have {len(ordered)})")
    return account


def _position(snapshot: Snapshot, account: Account) -> int:
    return next(i for i, a in enumerate(snapshot.ordered_accounts()) if a.id == account.id)


def cmd_list(engine: AccountSyncEngine, snapshot: Snapshot, args) -> int:
    now = datetime.now(timezone.utc)
    if not snapshot.accounts:
        print("No accounts stored")
        return 0
    for account in snapshot.ordered_accounts():
        parts = [f"{account.display_order:>2}  {account.username:<20} {account.full_riot_id or '-':<22}"]
        if account.low_priority_display:
            parts.append(f"LPQ {account.low_priority_display}")
        if account.has_queue_lockout(now):
            parts.append(f"lockout {account.lockout_remaining(now)}")
        if account.tag is not AccountTag.NONE:
            parts.append(f"[{account.tag.value}]")
        if getattr(args, "ids", False):
            parts.append(f"id={account.id}")
        print("  ".join(parts))
    return 0


def cmd_add(engine: AccountSyncEngine, snapshot: Snapshot, args) -> int:
    password = args.password if args.password is not None else getpass.getpass("Password: ")
    account = Account(username=args.username, encrypted_password=FernetSecretCodec().encrypt(password))
    snapshot.add_account(account)
    engine.store.save(snapshot)
    print(f"Added {account.username} at position {account.display_order}")
    return 0


def cmd_remove(engine: AccountSyncEngine, snapshot: Snapshot, args) -> int:
    account = _pick(snapshot, args.account)
    removed = snapshot.remove_account(_position(snapshot, account))
    engine.store.save(snapshot)
    print(f"Removed {removed.username}")
    return 0


def cmd_move(engine: AccountSyncEngine, snapshot: Snapshot, args) -> int:
    account = _pick(snapshot, args.account)
    snapshot.move_account(_position(snapshot, account), args.to)
    engine.store.save(snapshot)
    return cmd_list(engine, snapshot, args)


def cmd_tag(engine: AccountSyncEngine, snapshot: Snapshot, args) -> int:
    account = _pick(snapshot, args.account)
    account.tag = AccountTag(args.tag)
    engine.store.save(snapshot)
    return 0


def cmd_sync(engine: AccountSyncEngine, snapshot: Snapshot, args) -> int:
    report = engine.startup_sync(snapshot)
    print(f"Scanned {len(report.files_scanned)} log files, updated {len(report.updated_accounts)} accounts")
    for path, reason in report.files_skipped.items():
        print(f"  skipped {path.name}: {reason}")
    return cmd_list(engine, snapshot, args)


def cmd_detect(engine: AccountSyncEngine, snapshot: Snapshot, args) -> int:
    account = _pick(snapshot, args.account)
    result = engine.detect_identity(snapshot, account)
    print(result.trace)
    if result.matched:
        engine.store.save(snapshot)
        return 0
    return 1


def cmd_login(engine: AccountSyncEngine, snapshot: Snapshot, args) -> int:
    account = _pick(snapshot, args.account)
    if args.launcher:
        engine.launcher = load_launcher(args.launcher)

    outcome = engine.login(snapshot, account)
    if not outcome.launched:
        print(f"Login failed: {outcome.message}")
        return 1
    if outcome.detection is not None:
        print(outcome.detection.trace)
    return 0 if outcome.saved else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smurfmanager",
        description="Multi-account login helper with queue penalty tracking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment variables:
  SMURFMANAGER_HOME            Data directory (default ~/.smurfmanager)
  SMURFMANAGER_CONFIG          Account config file
  SMURFMANAGER_CLIENT_LOGS     League Client log directory override
  SMURFMANAGER_LAUNCHER_LOGS   Riot Client log directory override

Debug logs are written to ~/.smurfmanager/debug.log
        """
    )
    parser.add_argument("--config", help="Path to the account config file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show debug output")
    parser.add_argument("--show-log", action="store_true", help="Show the debug log file path and exit")

    sub = parser.add_subparsers(dest="command")

    p = sub.add_parser("list", help="List accounts with their penalties")
    p.add_argument("--ids", action="store_true", help="Also show internal account ids")

    p = sub.add_parser("add", help="Add an account")
    p.add_argument("username")
    p.add_argument("--password", help="Password (prompted if omitted)")

    p = sub.add_parser("remove", help="Remove an account")
    p.add_argument("account", help="Position or account id")

    p = sub.add_parser("move", help="Move an account to another position")
    p.add_argument("account", help="Position or account id")
    p.add_argument("to", type=int)

    p = sub.add_parser("tag", help="Set an account's marker")
    p.add_argument("account", help="Position or account id")
    p.add_argument("tag", choices=[t.value for t in AccountTag])

    sub.add_parser("sync", help="Refresh penalties from the Riot Client logs")

    p = sub.add_parser("detect", help="Detect account id and Riot ID from client logs")
    p.add_argument("account", help="Position or account id")

    p = sub.add_parser("login", help="Log into an account and sync its data")
    p.add_argument("account", help="Position or account id")
    p.add_argument("--launcher", help="Login automation as 'module:function'")

    return parser


COMMANDS = {
    "list": cmd_list,
    "add": cmd_add,
    "remove": cmd_remove,
    "move": cmd_move,
    "tag": cmd_tag,
    "sync": cmd_sync,
    "detect": cmd_detect,
    "login": cmd_login,
}


def main(argv: Optional[list[str]] = None) -> int:
    """Entry point for the smurfmanager command."""
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.show_log:
        log_file = log_file_path()
        print(f"Debug log: {log_file}")
        if log_file.exists():
            print(f"Size: {log_file.stat().st_size:,} bytes")
        return 0

    if not args.command:
        parser.print_help()
        return 2

    setup_logging(args.verbose)
    engine = AccountSyncEngine(store=SnapshotStore(args.config))
    snapshot = engine.load()

    try:
        return COMMANDS[args.command](engine, snapshot, args)
    except (ValueError, ImportError, AttributeError) as e:
        logger.error(f"{args.command} failed: {e}")
        return 1
    finally:
        engine.shutdown()


if __name__ == "__main__":
    sys.exit(main())
