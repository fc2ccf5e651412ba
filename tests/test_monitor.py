"""Tests for the watchdog-based log activity monitor."""

import threading
import time

from conftest import write_log

from smurfmanager.monitor import LogActivityMonitor


class TestLogActivityMonitor:
    """Early wake-up on client log writes."""

    def test_missing_directory_stays_idle(self, tmp_path):
        """Waiting on an unwatched directory simply times out."""
        with LogActivityMonitor(tmp_path / "missing") as monitor:
            assert not monitor.running
            started = time.monotonic()
            assert monitor.wait_for_activity(0.1) is False
            assert time.monotonic() - started < 2.0

    def test_matching_write_wakes_waiter(self, tmp_path):
        """Creating a matching file ends the wait."""
        with LogActivityMonitor(tmp_path, "tracing.json") as monitor:
            assert monitor.running
            write_log(tmp_path / "LeagueClient-tracing.json", "{}")

            assert monitor.wait_for_activity(10.0) is True

        assert not monitor.running

    def test_cancel_ends_wait(self, tmp_path):
        """A set cancel event stops a long wait early."""
        cancel = threading.Event()
        timer = threading.Timer(0.2, cancel.set)

        with LogActivityMonitor(tmp_path, "tracing.json") as monitor:
            started = time.monotonic()
            timer.start()
            try:
                happened = monitor.wait_for_activity(30.0, cancel)
            finally:
                timer.cancel()

        assert happened is False
        assert time.monotonic() - started < 10.0

    def test_other_files_ignored(self, tmp_path):
        """Writes to unrelated files do not count."""
        with LogActivityMonitor(tmp_path, "tracing.json") as monitor:
            write_log(tmp_path / "LeagueClient.log", "noise")

            assert monitor.wait_for_activity(0.5) is False
