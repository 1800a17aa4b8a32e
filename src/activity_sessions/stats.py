"""Thread-safe health counters for session builds."""

from __future__ import annotations

import threading
from typing import Callable, Optional

from pydantic import BaseModel, ConfigDict

from .dates import now_ms


class BuildStatsSnapshot(BaseModel):
    last_build_at: int = 0
    error_count: int = 0
    last_error_at: int = 0
    last_error: str = ""

    model_config = ConfigDict(extra="forbid", frozen=True)


class BuildStats:
    """Counters shared by every caller of one builder."""

    def __init__(self, clock: Optional[Callable[[], int]] = None) -> None:
        self._clock = clock or now_ms
        self._lock = threading.Lock()
        self._last_build_at = 0
        self._error_count = 0
        self._last_error_at = 0
        self._last_error = ""

    def record_success(self) -> None:
        with self._lock:
            self._last_build_at = self._clock()

    def record_error(self, exc: BaseException) -> None:
        with self._lock:
            self._error_count += 1
            self._last_error_at = self._clock()
            self._last_error = str(exc) or type(exc).__name__

    def snapshot(self) -> BuildStatsSnapshot:
        with self._lock:
            return BuildStatsSnapshot(
                last_build_at=self._last_build_at,
                error_count=self._error_count,
                last_error_at=self._last_error_at,
                last_error=self._last_error,
            )
