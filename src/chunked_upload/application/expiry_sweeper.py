"""Background expiry of abandoned upload sessions."""

from __future__ import annotations

import threading
from typing import Optional

from chunked_upload.infrastructure.logging import get_logger
from chunked_upload.ports.inbound import UploadServicePort

logger = get_logger(__name__)


class ExpirySweeper:
    """Periodically runs ``sweep_expired`` on an upload service.

    The sweep runs on a daemon thread every ``interval_seconds``. A failing
    sweep is logged and the next one runs on schedule.
    """

    def __init__(
        self,
        service: UploadServicePort,
        interval_seconds: float = 300.0,
        max_age_ms: Optional[int] = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError(f"interval_seconds must be positive, got {interval_seconds}")
        self._service = service
        self._interval = interval_seconds
        self._max_age_ms = max_age_ms
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        """Whether the sweep thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the sweep thread. Calling it twice is a no-op."""
        with self._lock:
            if self.running:
                return
            self._stop_event.clear()
            self._thread = threading.Thread(
                target=self._run, name="chunked-upload-expiry", daemon=True
            )
            self._thread.start()
        logger.info("expiry_sweeper_started", interval_seconds=self._interval)

    def stop(self, timeout: float = 5.0) -> None:
        """Signal the sweep thread to stop and wait for it."""
        self._stop_event.set()
        with self._lock:
            thread, self._thread = self._thread, None
        if thread is not None and thread.is_alive():
            thread.join(timeout=timeout)
            logger.info("expiry_sweeper_stopped")

    def run_once(self) -> list[str]:
        """Run a single sweep now."""
        return self._service.sweep_expired(self._max_age_ms)

    def _run(self) -> None:
        while not self._stop_event.wait(timeout=self._interval):
            try:
                self.run_once()
            except Exception:
                logger.exception("expiry_sweep_failed")
