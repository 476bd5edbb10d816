"""Background scheduler for the lifecycle sweep."""
import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from ...config import SWEEP_INTERVAL_SECONDS, SWEEP_SCHEDULE

logger = logging.getLogger(__name__)


class SweepScheduler:
    """Runs the lifecycle sweep and session cleanup on an interval.

    Each pass opens its own connection, so the thread never shares one
    with request handlers.
    """

    def __init__(
        self,
        container,
        connection_factory: Callable,
        interval: int = SWEEP_INTERVAL_SECONDS,
        schedule: str = SWEEP_SCHEDULE
    ):
        self.container = container
        self.connection_factory = connection_factory
        self.interval = interval
        self.schedule = schedule
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._last_run: Optional[datetime] = None
        self._last_summary: Optional[dict] = None

    def start(self):
        """Start the sweep scheduler thread."""
        if self.schedule == "disabled":
            return

        if self._thread and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="lifecycle-sweep", daemon=True)
        self._thread.start()

    def stop(self):
        """Stop the sweep scheduler."""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)

    def run_once(self):
        """Run one sweep pass plus session cleanup."""
        conn = self.connection_factory()
        try:
            services = self.container.services(conn)
            summary = services.lifecycle.sweep()
            cleaned = services.sessions.cleanup_expired()
        finally:
            conn.close()

        self._last_run = datetime.now(timezone.utc)
        self._last_summary = {**summary.as_dict(), "sessions_cleaned": cleaned}
        return summary

    def _run(self):
        """Main scheduler loop."""
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Lifecycle sweep failed")

            self._stop_event.wait(self.interval)

    @property
    def status(self) -> dict:
        """Get scheduler status."""
        return {
            "enabled": self.schedule != "disabled",
            "interval_seconds": self.interval,
            "running": self._thread.is_alive() if self._thread else False,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "last_summary": self._last_summary,
        }
