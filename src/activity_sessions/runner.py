"""Run incremental session builds periodically in a background thread."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class IncrementalBuilder(Protocol):
    def build_incremental(self) -> int: ...


class PeriodicBuilder:
    """Calls ``build_incremental`` every ``interval`` until stopped."""

    def __init__(self, builder: IncrementalBuilder, interval: timedelta) -> None:
        self._builder = builder
        self._interval = interval
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None

    def start(self) -> None:
        with self._lock:
            if self._thread and self._thread.is_alive():
                return
            stop_event = threading.Event()
            thread = threading.Thread(
                target=self.run_until_stopped,
                args=(stop_event,),
                daemon=True,
            )
            self._thread = thread
            self._stop_event = stop_event
            thread.start()
            logger.info("Session builder background thread started.")

    def stop(self) -> None:
        thread: Optional[threading.Thread] = None
        with self._lock:
            if not self._thread or not self._thread.is_alive() or not self._stop_event:
                return
            self._stop_event.set()
            thread = self._thread
            self._thread = None
            self._stop_event = None
        if thread:
            thread.join(timeout=10)
            logger.info("Session builder background thread stopped.")

    def is_running(self) -> bool:
        with self._lock:
            return bool(self._thread and self._thread.is_alive())

    def run_once(self) -> int:
        try:
            created = self._builder.build_incremental()
        except Exception:
            logger.exception("Incremental session build failed; will retry.")
            return 0
        if created:
            logger.debug("Incremental build created %d sessions.", created)
        return created

    def run_until_stopped(self, stop_event: threading.Event) -> None:
        """Build until the provided event is set."""
        interval = self._interval.total_seconds()
        logger.info("Building sessions every %.0f seconds.", interval)
        while not stop_event.is_set():
            self.run_once()
            # Sleep in an interruptible manner.
            stop_event.wait(interval)
