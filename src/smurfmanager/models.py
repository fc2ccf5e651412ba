"""Account and snapshot data model.

A Snapshot is the unit of persistence: the ordered account list plus the
path configuration. It is always loaded and saved as a whole.
"""

import os
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Optional

DEFAULT_RIOT_GAMES_PATH = r"C:\Riot Games"


class AccountTag(Enum):
    """Presentational marker shown next to an account."""
    NONE = "none"
    PRIORITY = "priority"
    WARN = "warn"
    OK = "ok"

    @classmethod
    def parse(cls, value: Any) -> "AccountTag":
        """Parse a stored tag value, falling back to NONE for unknown values."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.NONE


def _parse_datetime(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        # Naive timestamps are treated as local time
        parsed = parsed.astimezone()
    return parsed


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Account:
    """A stored login plus everything detected about it from the logs."""

    username: str = ""
    encrypted_password: str = ""
    account_id: str = ""  # external numeric id, the durable key for log matching
    game_name: str = ""
    tag_line: str = ""
    low_priority_minutes: Optional[int] = None
    lockout_until: Optional[datetime] = None
    display_order: int = 0
    tag: AccountTag = AccountTag.NONE
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def full_riot_id(self) -> str:
        if not self.game_name:
            return ""
        if not self.tag_line:
            return self.game_name
        return f"{self.game_name}#{self.tag_line}"

    @property
    def low_priority_display(self) -> str:
        if self.low_priority_minutes and self.low_priority_minutes > 0:
            return f"{self.low_priority_minutes} minutes"
        return ""

    def has_queue_lockout(self, now: Optional[datetime] = None) -> bool:
        now = now or _now()
        return self.lockout_until is not None and self.lockout_until > now

    def lockout_remaining(self, now: Optional[datetime] = None) -> str:
        """Human readable remaining lockout, e.g. '2H 5M', or '' when none."""
        now = now or _now()
        if not self.has_queue_lockout(now):
            return ""

        remaining = self.lockout_until - now
        total_minutes = int(remaining.total_seconds() // 60)
        if total_minutes >= 60:
            return f"{total_minutes // 60}H {total_minutes % 60}M"
        if total_minutes >= 1:
            return f"{total_minutes}M"
        return "< 1M"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "displayUsername": self.username,
            "secretCredential": self.encrypted_password,
            "externalAccountId": self.account_id,
            "gameName": self.game_name,
            "nameSuffix": self.tag_line,
            "lowPriorityPenaltyMinutes": self.low_priority_minutes,
            "lockoutExpiresAt": self.lockout_until.isoformat() if self.lockout_until else None,
            "displayOrder": self.display_order,
            "tag": self.tag.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Account":
        """Build an account from its stored form.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed.
        """
        if not isinstance(data, dict):
            raise TypeError(f"Account record must be an object, got {type(data).__name__}")

        minutes = data.get("lowPriorityPenaltyMinutes")
        return cls(
            id=str(data["id"]),
            username=data.get("displayUsername") or "",
            encrypted_password=data.get("secretCredential") or "",
            account_id=str(data.get("externalAccountId") or ""),
            game_name=data.get("gameName") or "",
            tag_line=data.get("nameSuffix") or "",
            low_priority_minutes=int(minutes) if minutes is not None else None,
            lockout_until=_parse_datetime(data.get("lockoutExpiresAt")),
            display_order=int(data.get("displayOrder", 0)),
            tag=AccountTag.parse(data.get("tag", "none")),
        )


def default_launcher_logs_path() -> str:
    """Riot Client log directory under %LOCALAPPDATA% (or ~/AppData/Local)."""
    local_appdata = os.environ.get("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
    return os.path.join(local_appdata, "Riot Games", "Riot Client", "Logs", "Riot Client Logs")


@dataclass
class Snapshot:
    """Ordered accounts plus path settings."""

    accounts: list[Account] = field(default_factory=list)
    riot_games_path: str = DEFAULT_RIOT_GAMES_PATH
    client_logs_path: str = ""  # empty = derive from riot_games_path
    launcher_logs_path: str = ""  # empty = platform default

    @property
    def league_client_logs_path(self) -> str:
        """Directory of the client tracing files used for identity detection."""
        override = os.environ.get("SMURFMANAGER_CLIENT_LOGS")
        if override:
            return override
        if self.client_logs_path:
            return self.client_logs_path
        return os.path.join(self.riot_games_path, "League of Legends", "Logs", "LeagueClient Logs")

    @property
    def riot_client_logs_path(self) -> str:
        """Directory of the launcher logs used for penalty detection."""
        override = os.environ.get("SMURFMANAGER_LAUNCHER_LOGS")
        if override:
            return override
        return self.launcher_logs_path or default_launcher_logs_path()

    def ordered_accounts(self) -> list[Account]:
        return sorted(self.accounts, key=lambda a: a.display_order)

    def tracked_accounts(self) -> list[Account]:
        """Accounts that can be matched against log entries."""
        return [a for a in self.ordered_accounts() if a.account_id]

    def find_account(self, account_id: str) -> Optional[Account]:
        """Find an account by its internal id."""
        for account in self.accounts:
            if account.id == account_id:
                return account
        return None

    def add_account(self, account: Account) -> Account:
        """Append an account after the current last display position."""
        self.compact_display_order()
        account.display_order = len(self.accounts)
        self.accounts.append(account)
        return account

    def remove_account(self, index: int) -> Account:
        """Remove the account at a display position and compact the order.

        Raises:
            IndexError: If index is outside the current list.
        """
        ordered = self.ordered_accounts()
        removed = ordered.pop(index)
        self._renumber(ordered)
        return removed

    def move_account(self, old_index: int, new_index: int) -> None:
        """Move an account between display positions (drag-reorder)."""
        ordered = self.ordered_accounts()
        account = ordered.pop(old_index)
        new_index = max(0, min(new_index, len(ordered)))
        ordered.insert(new_index, account)
        self._renumber(ordered)

    def _renumber(self, ordered: list[Account]) -> None:
        """Take ordered as the new display order, numbered 0..n-1."""
        for i, account in enumerate(ordered):
            account.display_order = i
        self.accounts = ordered

    def compact_display_order(self) -> None:
        """Rewrite display orders as a dense 0..n-1 sequence, keeping relative order."""
        self._renumber(self.ordered_accounts())

    def to_dict(self) -> dict[str, Any]:
        return {
            "riotGamesPath": self.riot_games_path,
            "clientLogsPath": self.client_logs_path,
            "launcherLogsPath": self.launcher_logs_path,
            "accounts": [a.to_dict() for a in self.accounts],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Snapshot":
        """Build a snapshot from its stored form.

        Raises:
            KeyError, TypeError, ValueError: If the document is malformed.
        """
        if not isinstance(data, dict):
            raise TypeError(f"Snapshot must be an object, got {type(data).__name__}")

        accounts = data.get("accounts", [])
        if not isinstance(accounts, list):
            raise TypeError("'accounts' must be a list")

        return cls(
            accounts=[Account.from_dict(a) for a in accounts],
            riot_games_path=data.get("riotGamesPath") or DEFAULT_RIOT_GAMES_PATH,
            client_logs_path=data.get("clientLogsPath") or "",
            launcher_logs_path=data.get("launcherLogsPath") or "",
        )


def iter_with_ids(accounts: Iterable[Account]) -> Iterable[Account]:
    """Yield only accounts that carry an external account id."""
    return (a for a in accounts if a.account_id)
