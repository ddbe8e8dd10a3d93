"""Live local change watcher with per-path debouncing."""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Optional

from watchdog.events import (
    FileSystemEvent,
    FileSystemEventHandler,
    FileSystemMovedEvent,
)
from watchdog.observers import Observer

from ..utils import calculate_md5, to_relative_path
from .engine import SyncEngine
from .scanner import is_ignored

logger = logging.getLogger(__name__)

CHANGE_UPSERT = "upsert"
CHANGE_DELETE = "delete"

TimerFactory = Callable[[float, Callable[[], None]], threading.Timer]


class _ChangeHandler(FileSystemEventHandler):
    """Forwards watchdog events to the watcher as upsert/delete changes."""

    def __init__(self, watcher: "LocalChangeWatcher"):
        self.watcher = watcher

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.watcher.handle_event(CHANGE_UPSERT, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        # Directory modifications only mean their children changed
        if not event.is_directory:
            self.watcher.handle_event(CHANGE_UPSERT, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self.watcher.handle_event(CHANGE_DELETE, event.src_path)

    def on_moved(self, event: FileSystemMovedEvent) -> None:
        self.watcher.handle_event(CHANGE_DELETE, event.src_path)
        if not event.is_directory:
            self.watcher.handle_event(CHANGE_UPSERT, event.dest_path)


def _default_timer(delay: float, callback: Callable[[], None]) -> threading.Timer:
    timer = threading.Timer(delay, callback)
    timer.daemon = True
    return timer


class LocalChangeWatcher:
    """Watches the local root and applies changes between full cycles.

    Every raw event (re)starts a debounce timer for its relative path; the
    action runs only once the path has been quiet for ``debounce_delay``
    seconds. Timers of different paths never interact.

    Examples:
        >>> watcher = LocalChangeWatcher(engine, debounce_delay=5.0)
        >>> watcher.start()
        >>> # ... files are edited ...
        >>> watcher.stop()
    """

    def __init__(
        self,
        engine: SyncEngine,
        debounce_delay: float,
        observer_factory: Callable[[], Observer] = Observer,
        timer_factory: TimerFactory = _default_timer,
    ):
        """Initialize the watcher.

        Args:
            engine: Engine whose stores and single-path actions are used
            debounce_delay: Quiet period in seconds before acting on a path
            observer_factory: Creates the watchdog observer
            timer_factory: Creates debounce timers (injectable for tests)
        """
        self.engine = engine
        self.root = engine.local_root
        self.debounce_delay = debounce_delay
        self.observer_factory = observer_factory
        self.timer_factory = timer_factory
        self._observer: Optional[Observer] = None
        self._timers: dict[str, tuple[threading.Timer, str]] = {}
        self._lock = threading.Lock()

    @property
    def status(self):
        return self.engine.status

    @property
    def pending_paths(self) -> set[str]:
        """Relative paths with a debounce timer waiting to fire."""
        with self._lock:
            return set(self._timers)

    def start(self) -> None:
        """Start watching the local root recursively."""
        if self._observer is not None:
            return
        observer = self.observer_factory()
        observer.schedule(_ChangeHandler(self), str(self.root), recursive=True)
        observer.start()
        self._observer = observer
        logger.info(f"Watching for local changes in: {self.root}")
        self.status.log_event("INFO", f"Watching for local changes in: {self.root}")

    def stop(self) -> None:
        """Stop the observer and cancel pending debounce timers."""
        with self._lock:
            timers = list(self._timers.values())
            self._timers.clear()
        for timer, _ in timers:
            timer.cancel()

        if self._observer is not None:
            self._observer.stop()
            self._observer.join()
            self._observer = None

    def handle_event(self, change: str, src_path: str) -> None:
        """Debounce a raw change on ``src_path``.

        Args:
            change: CHANGE_UPSERT or CHANGE_DELETE
            src_path: Absolute path reported by the filesystem
        """
        relative_path = self._relative_path(src_path)
        if relative_path is None:
            return
        if is_ignored(relative_path, self.engine.ignore_patterns):
            logger.debug(f"Ignoring change to {relative_path}")
            return

        logger.info(f"Local file change detected: {change} {relative_path}")
        self.status.stop_idle_countdown()
        self._schedule(relative_path, change)

    def _relative_path(self, src_path: str) -> Optional[str]:
        path = Path(os.fsdecode(src_path))
        try:
            relative_path = to_relative_path(path, self.root)
        except ValueError:
            return None
        if relative_path in ("", "."):
            return None
        return relative_path

    def _schedule(self, relative_path: str, change: str) -> None:
        """Replace any pending timer for the path with a fresh one."""
        timer = self.timer_factory(
            self.debounce_delay, lambda: self._fire(relative_path, timer)
        )
        with self._lock:
            previous = self._timers.get(relative_path)
            if previous is not None:
                previous[0].cancel()
            self._timers[relative_path] = (timer, change)
        timer.start()

    def _fire(self, relative_path: str, timer: threading.Timer) -> None:
        with self._lock:
            current = self._timers.get(relative_path)
            if current is None or current[0] is not timer:
                # Superseded by a newer event
                return
            del self._timers[relative_path]
            change = current[1]
        self.process_change(relative_path, change)

    def process_change(self, relative_path: str, change: str) -> None:
        """Apply a debounced change. Errors are logged, never raised."""
        try:
            self.status.update_status(f"Processing change: {change} {relative_path}")
            if change == CHANGE_DELETE:
                self._process_delete(relative_path)
            else:
                self._process_upsert(relative_path)
            self.status.start_idle_countdown(self.engine.config.periodic_interval)
        except Exception as e:
            logger.error(
                f"[FAILED] Local change action for {relative_path}. Error: {e}"
            )
            self.status.update_status("Error processing change. Check logs.")

    def _process_upsert(self, relative_path: str) -> None:
        local_path = self.root / relative_path
        try:
            stat = local_path.stat()
        except FileNotFoundError:
            logger.info(f"[UPLOAD] {relative_path} vanished before upload, skipping.")
            return

        if not local_path.is_file():
            return
        if stat.st_size == 0:
            logger.warning(f"[UPLOAD] Skipping 0-byte file: {relative_path}")
            return

        remote = self.engine.remote_cache.get(relative_path)
        if remote is not None and remote.md5:
            if remote.md5 == calculate_md5(local_path):
                logger.debug(f"[UPLOAD] {relative_path} matches remote, skipping.")
                return

        self.status.log_event("INFO", f"Uploading: {relative_path}")
        self.engine.upload_path(relative_path)
        self.status.log_event("SUCCESS", f"Uploaded: {relative_path}")

    def _process_delete(self, relative_path: str) -> None:
        if self.engine.remote_cache.get(relative_path) is None:
            logger.warning(
                f"[DELETE] Remote file/folder not found for {relative_path}, skipping."
            )
            return

        self.status.log_event("INFO", f"Deleting: {relative_path}")
        self.engine.delete_remote_path(relative_path)
        self.status.log_event("SUCCESS", f"Deleted: {relative_path}")
