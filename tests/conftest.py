"""Shared fixtures: isolated data directory and log file helpers."""

import os
import time
from pathlib import Path

import pytest


@pytest.fixture(autouse=True)
def isolated_home(tmp_path, monkeypatch):
    """Keep settings, config and debug logs out of the real home directory."""
    for name in ("SMURFMANAGER_CONFIG", "SMURFMANAGER_CLIENT_LOGS", "SMURFMANAGER_LAUNCHER_LOGS"):
        monkeypatch.delenv(name, raising=False)
    home = tmp_path / "home"
    monkeypatch.setenv("SMURFMANAGER_HOME", str(home))
    return home


def write_log(path: Path, text: str, age: float = 0.0) -> Path:
    """Write a log file and set its mtime ``age`` seconds in the past (negative = future)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    stamp = time.time() - age
    os.utime(path, (stamp, stamp))
    return path
