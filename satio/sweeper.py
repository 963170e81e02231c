import threading
from typing import Optional

import structlog

from .errors import StorageError

logger = structlog.get_logger()


class SessionSweeper:
    """Periodically deletes stale unconsumed ad sessions to bound storage.

    Expiry is enforced at credit time, so a late or skipped sweep only costs
    disk space.
    """

    def __init__(self, service, interval_seconds: float):
        self.service = service
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="satio-session-sweeper", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def run_once(self) -> int:
        try:
            return self.service.sweep_stale_sessions()
        except StorageError:
            logger.warning("session_sweep_failed", exc_info=True)
            return 0

    def _run(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.run_once()
