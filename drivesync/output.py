"""Status and event reporting for the sync daemon.

Components receive a reporter instead of printing directly, so the
engine can run silently under tests or drive a live console spinner.
"""

import threading
from typing import Optional, Protocol

from rich.console import Console
from rich.status import Status

from .utils import format_countdown

LEVEL_STYLES = {
    "INFO": ("green", "ℹ"),
    "WARN": ("yellow", "⚠"),
    "ERROR": ("red", "✖"),
    "SUCCESS": ("cyan", "✔"),
    "DEBUG": ("bright_black", "⚙"),
}


class StatusReporter(Protocol):
    """Narrow interface every component reports progress through."""

    def log_event(self, level: str, message: str) -> None: ...

    def update_status(self, text: str) -> None: ...

    def start_idle_countdown(self, seconds: float) -> None: ...

    def stop_idle_countdown(self) -> None: ...


class NullStatus:
    """Reporter that discards everything."""

    def log_event(self, level: str, message: str) -> None:
        pass

    def update_status(self, text: str) -> None:
        pass

    def start_idle_countdown(self, seconds: float) -> None:
        pass

    def stop_idle_countdown(self) -> None:
        pass


class ConsoleStatus:
    """Rich-based spinner with persisted event lines and an idle countdown.

    Examples:
        >>> status = ConsoleStatus()
        >>> status.start()
        >>> status.update_status("Scanning local: /")
        >>> status.log_event("SUCCESS", "Uploaded: notes.txt")
        >>> status.stop()
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(stderr=True)
        self._status: Optional[Status] = None
        self._lock = threading.Lock()
        self._countdown_stop: Optional[threading.Event] = None
        self._countdown_thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Show the spinner."""
        if self._status is None:
            self._status = self.console.status("Initializing...", spinner="dots")
            self._status.start()

    def stop(self) -> None:
        """Stop the countdown and remove the spinner."""
        self.stop_idle_countdown()
        if self._status is not None:
            self._status.stop()
            self._status = None

    def log_event(self, level: str, message: str) -> None:
        color, icon = LEVEL_STYLES.get(level.upper(), ("default", " "))
        with self._lock:
            self.console.print(f"[{color}]{icon}[/{color}] {message}", highlight=False)

    def update_status(self, text: str) -> None:
        self.stop_idle_countdown()
        self._set_text(text)

    def _set_text(self, text: str) -> None:
        with self._lock:
            if self._status is not None:
                self._status.update(text)

    def start_idle_countdown(self, seconds: float) -> None:
        """Count down to the next scan, refreshing once per second."""
        self.stop_idle_countdown()
        stop_event = threading.Event()

        def countdown() -> None:
            remaining = seconds
            while remaining > 0 and not stop_event.is_set():
                self._set_text(f"Idle. Next scan in {format_countdown(remaining)}...")
                stop_event.wait(1.0)
                remaining -= 1
            if not stop_event.is_set():
                self._set_text("Idle. Preparing for next scan...")

        thread = threading.Thread(target=countdown, name="idle-countdown", daemon=True)
        self._countdown_stop = stop_event
        self._countdown_thread = thread
        thread.start()

    def stop_idle_countdown(self) -> None:
        if self._countdown_stop is not None:
            self._countdown_stop.set()
            self._countdown_stop = None
            self._countdown_thread = None
