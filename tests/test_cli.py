"""Tests for the smurfmanager command line."""

import json
import logging

import pytest
from cryptography.fernet import Fernet

import smurfmanager.cli as cli
from smurfmanager.codec import FernetSecretCodec


@pytest.fixture(autouse=True)
def restore_logging():
    """main() reconfigures the root logger; put it back afterwards."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield
    for h in root.handlers[:]:
        if h not in handlers:
            root.removeHandler(h)
            h.close()
    for h in handlers:
        if h not in root.handlers:
            root.addHandler(h)
    root.setLevel(level)


@pytest.fixture
def config_path(tmp_path, monkeypatch):
    key = Fernet.generate_key()
    monkeypatch.setattr(cli, "FernetSecretCodec", lambda: FernetSecretCodec(key))
    monkeypatch.setenv("SMURFMANAGER_LAUNCHER_LOGS", str(tmp_path / "launcher"))
    return tmp_path / "config.json"


def run(config_path, *args) -> int:
    return cli.main(["--config", str(config_path), *args])


class TestAccountCommands:
    """Editing the account list."""

    def test_add_and_list(self, config_path, capsys):
        """Added accounts are stored encrypted and listed in order."""
        assert run(config_path, "add", "first", "--password", "pw1") == 0
        assert run(config_path, "add", "second", "--password", "pw2") == 0
        capsys.readouterr()

        assert run(config_path, "list") == 0

        out = capsys.readouterr().out
        assert out.index("first") < out.index("second")
        stored = json.loads(config_path.read_text(encoding="utf-8"))
        assert [a["displayUsername"] for a in stored["accounts"]] == ["first", "second"]
        assert stored["accounts"][0]["secretCredential"] not in ("", "pw1")

    def test_remove_and_move(self, config_path):
        """Positions are compacted after remove and move."""
        for name in ("a", "b", "c"):
            run(config_path, "add", name, "--password", "x")

        assert run(config_path, "remove", "1") == 0
        assert run(config_path, "move", "1", "0") == 0

        stored = json.loads(config_path.read_text(encoding="utf-8"))
        ordered = sorted(stored["accounts"], key=lambda a: a["displayOrder"])
        assert [(a["displayUsername"], a["displayOrder"]) for a in ordered] == [("c", 0), ("a", 1)]

    def test_remove_by_account_id(self, config_path, capsys):
        """Accounts can be addressed by the id shown with list --ids."""
        for name in ("a", "b"):
            run(config_path, "add", name, "--password", "x")
        stored = json.loads(config_path.read_text(encoding="utf-8"))
        target = next(a["id"] for a in stored["accounts"] if a["displayUsername"] == "b")
        capsys.readouterr()

        run(config_path, "list", "--ids")
        assert f"id={target}" in capsys.readouterr().out

        assert run(config_path, "remove", target) == 0

        stored = json.loads(config_path.read_text(encoding="utf-8"))
        assert [a["displayUsername"] for a in stored["accounts"]] == ["a"]

    def test_tag(self, config_path):
        """The tag command sets the stored marker."""
        run(config_path, "add", "a", "--password", "x")

        assert run(config_path, "tag", "0", "priority") == 0

        stored = json.loads(config_path.read_text(encoding="utf-8"))
        assert stored["accounts"][0]["tag"] == "priority"

    def test_bad_position_exits(self, config_path):
        """Referring to a missing position stops with a message."""
        with pytest.raises(SystemExit):
            run(config_path, "remove", "4")

    def test_empty_list(self, config_path, capsys):
        """Listing with no config prints a hint."""
        assert run(config_path, "list") == 0
        assert "No accounts stored" in capsys.readouterr().out


class TestOtherCommands:
    """Sync, login and housekeeping."""

    def test_sync_reports_scan(self, config_path, capsys):
        """sync runs a penalty pass and saves."""
        run(config_path, "add", "a", "--password", "x")
        capsys.readouterr()

        assert run(config_path, "sync") == 0
        assert "Scanned 0 log files" in capsys.readouterr().out

    def test_login_with_bad_launcher(self, config_path):
        """An unimportable launcher is an error exit, not a traceback."""
        run(config_path, "add", "a", "--password", "x")

        assert run(config_path, "login", "0", "--launcher", "no_such_module_xyz:launch") == 1

    def test_no_command_prints_help(self, capsys):
        """Running without a command shows usage."""
        assert cli.main([]) == 2
        assert "usage" in capsys.readouterr().out

    def test_show_log(self, isolated_home, capsys):
        """--show-log prints the debug log location."""
        assert cli.main(["--show-log"]) == 0
        assert str(isolated_home / "debug.log") in capsys.readouterr().out

    def test_debug_log_written(self, config_path, isolated_home):
        """Commands log to the debug file."""
        run(config_path, "add", "a", "--password", "x")

        for h in logging.getLogger().handlers:
            h.flush()
        assert (isolated_home / "debug.log").exists()
