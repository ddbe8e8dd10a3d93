"""Tests for status reporting."""

import io

from rich.console import Console

from drivesync.output import ConsoleStatus, NullStatus


def make_console():
    return Console(file=io.StringIO(), force_terminal=False, width=120)


class TestNullStatus:
    """NullStatus accepts every call."""

    def test_all_methods(self):
        status = NullStatus()
        status.log_event("INFO", "x")
        status.update_status("x")
        status.start_idle_countdown(10)
        status.stop_idle_countdown()


class TestConsoleStatus:
    """Tests for ConsoleStatus."""

    def test_log_event_prints_icon_and_message(self):
        console = make_console()
        status = ConsoleStatus(console)

        status.log_event("SUCCESS", "Uploaded: a.txt")
        status.log_event("ERROR", "Failed: b.txt")

        output = console.file.getvalue()
        assert "✔ Uploaded: a.txt" in output
        assert "✖ Failed: b.txt" in output

    def test_unknown_level(self):
        console = make_console()

        ConsoleStatus(console).log_event("NOTICE", "hello")

        assert "hello" in console.file.getvalue()

    def test_countdown_is_stopped_by_status_update(self):
        status = ConsoleStatus(make_console())
        status.start()
        try:
            status.start_idle_countdown(30)
            thread = status._countdown_thread
            assert thread is not None

            status.update_status("Scanning local: /")
            thread.join(timeout=2)

            assert not thread.is_alive()
            assert status._countdown_thread is None
        finally:
            status.stop()

    def test_countdown_finishes(self):
        status = ConsoleStatus(make_console())
        status.start_idle_countdown(0)
        thread = status._countdown_thread

        thread.join(timeout=2)

        assert not thread.is_alive()

    def test_stop_without_start(self):
        status = ConsoleStatus(make_console())
        status.stop()

        assert status._status is None
