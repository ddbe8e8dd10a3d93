"""Long-running sync service: initial cycle, live watcher, periodic cycles."""

import logging
import threading
from typing import Optional

from .sync.engine import SyncEngine
from .sync.watcher import LocalChangeWatcher

logger = logging.getLogger(__name__)


class SyncService:
    """Drives the engine and watcher for the lifetime of the process."""

    def __init__(
        self,
        engine: SyncEngine,
        watcher: LocalChangeWatcher,
        interval: float,
        stop_event: Optional[threading.Event] = None,
    ):
        """Initialize the service.

        Args:
            engine: Sync engine running the full cycles
            watcher: Live watcher started after the first cycle
            interval: Seconds between full cycles
            stop_event: Set to end :meth:`run_forever`
        """
        self.engine = engine
        self.watcher = watcher
        self.interval = interval
        self.stop_event = stop_event or threading.Event()

    def run_once(self) -> Optional[dict]:
        """Run one full cycle.

        Returns:
            Cycle statistics, or None if the cycle could not complete
        """
        try:
            return self.engine.run_cycle()
        except Exception as e:
            logger.error(f"Sync cycle failed: {e}")
            self.engine.status.log_event("ERROR", f"Sync cycle failed: {e}")
            return None

    def run_forever(self) -> None:
        """Run cycles on a fixed interval until the stop event is set."""
        self.engine.local_root.mkdir(parents=True, exist_ok=True)

        self.run_once()
        if self.stop_event.is_set():
            return

        self.watcher.start()
        try:
            while not self.stop_event.wait(self.interval):
                logger.info("Triggering periodic sync...")
                self.run_once()
        finally:
            self.watcher.stop()

    def stop(self) -> None:
        self.stop_event.set()
