"""Persistent tuning settings for SmurfManager.

Settings are stored in ~/.smurfmanager/settings.json and persist between
sessions. Retry counts, delays and scan limits live here rather than in
the detection code so callers can tune or shorten them.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


def app_dir() -> Path:
    """Per-user data directory (SMURFMANAGER_HOME overrides ~/.smurfmanager)."""
    override = os.environ.get("SMURFMANAGER_HOME")
    if override:
        return Path(override)
    return Path.home() / ".smurfmanager"


# Default settings
DEFAULTS = {
    # Identity detection retry loop
    "detection_attempts": 5,
    "detection_delay_seconds": 3.0,
    # Time to let the client write its login data after launch
    "post_launch_wait_seconds": 15.0,
    # Lock contention retries for a single file read
    "read_attempts": 5,
    "read_delay_seconds": 0.5,
    # How many of the newest files to scan
    "identity_files_to_check": 3,
    "penalty_files_to_check": 5,
    # Filename filters
    "identity_file_filter": "LeagueClient-tracing.json",
    "penalty_file_filter": "Riot Client.log",
    # Text windows around an accountId match
    "identity_proximity_chars": 1000,
    "penalty_context_before": 500,
    "penalty_context_length": 1000,
    # Wake detection retries early on client log activity
    "watch_logs": True,
}

_TRUE_STRINGS = {"true", "1", "yes", "on"}
_FALSE_STRINGS = {"false", "0", "no", "off"}


def coerce_setting(key: str, value: Any) -> Any:
    """Convert value to the type of the setting's default.

    Bools accept real booleans or the usual true/false spellings; numbers
    refuse booleans so a stray ``true`` never becomes 1 attempt.

    Raises:
        KeyError: Unknown setting.
        ValueError: The value cannot represent this setting.
    """
    default = DEFAULTS[key]
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _TRUE_STRINGS | _FALSE_STRINGS:
            return value.strip().lower() in _TRUE_STRINGS
        raise ValueError(f"{key} must be true or false, got {value!r}")
    if isinstance(value, bool) or value is None:
        raise ValueError(f"{key} must be a {type(default).__name__}, got {value!r}")
    try:
        return type(default)(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{key} must be a {type(default).__name__}, got {value!r}") from e


class Settings:
    """Tuning values layered over DEFAULTS.

    Only values that differ from the defaults are written to disk, so a
    changed default reaches users who never touched that setting. Unknown
    or invalid values in the file are dropped with a warning.

    Example:
        settings = Settings()
        settings.set("detection_delay_seconds", 1.5)
        attempts = settings.get("detection_attempts")
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self.path = path or app_dir() / "settings.json"
        self._overrides: dict[str, Any] = {}
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return

        try:
            loaded = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to load settings: {e}")
            return
        if not isinstance(loaded, dict):
            logger.warning(f"Ignoring settings file {self.path}: not a JSON object")
            return

        for key, value in loaded.items():
            if key not in DEFAULTS:
                logger.warning(f"Ignoring unknown setting {key!r}")
                continue
            try:
                self._overrides[key] = coerce_setting(key, value)
            except ValueError as e:
                logger.warning(f"Ignoring invalid setting: {e}")
        logger.debug(f"Loaded {len(self._overrides)} settings from {self.path}")

    def save(self) -> None:
        """Write the non-default values; failures are logged, not raised."""
        data = {k: v for k, v in self._overrides.items() if v != DEFAULTS[k]}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")
            logger.debug(f"Saved settings to {self.path}")
        except OSError as e:
            logger.warning(f"Failed to save settings: {e}")

    def get(self, key: str) -> Any:
        """Current value of a setting.

        Raises:
            KeyError: Unknown setting.
        """
        if key not in DEFAULTS:
            raise KeyError(key)
        return self._overrides.get(key, DEFAULTS[key])

    def set(self, key: str, value: Any, save: bool = True) -> None:
        """Change a setting, converting value to the setting's type.

        Raises:
            KeyError: Unknown setting.
            ValueError: Value not valid for this setting.
        """
        self._overrides[key] = coerce_setting(key, value)
        if save:
            self.save()

    def as_dict(self) -> dict[str, Any]:
        return {key: self.get(key) for key in DEFAULTS}

    def reset(self) -> None:
        """Drop every override and save."""
        self._overrides.clear()
        self.save()


@dataclass(frozen=True)
class DetectionConfig:
    """Tuning values passed explicitly into the extractors."""

    detection_attempts: int = DEFAULTS["detection_attempts"]
    detection_delay_seconds: float = DEFAULTS["detection_delay_seconds"]
    post_launch_wait_seconds: float = DEFAULTS["post_launch_wait_seconds"]
    read_attempts: int = DEFAULTS["read_attempts"]
    read_delay_seconds: float = DEFAULTS["read_delay_seconds"]
    identity_files_to_check: int = DEFAULTS["identity_files_to_check"]
    penalty_files_to_check: int = DEFAULTS["penalty_files_to_check"]
    identity_file_filter: str = DEFAULTS["identity_file_filter"]
    penalty_file_filter: str = DEFAULTS["penalty_file_filter"]
    identity_proximity_chars: int = DEFAULTS["identity_proximity_chars"]
    penalty_context_before: int = DEFAULTS["penalty_context_before"]
    penalty_context_length: int = DEFAULTS["penalty_context_length"]
    watch_logs: bool = DEFAULTS["watch_logs"]

    @classmethod
    def from_settings(cls, settings: Settings) -> "DetectionConfig":
        # Settings values are already converted on load and set
        return cls(**{name: settings.get(name) for name in cls.__dataclass_fields__})


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
