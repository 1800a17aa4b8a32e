"""Configuration models and helpers for session building."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from .segmenter import SegmentationPolicy


@dataclass(slots=True)
class SessionSettings:
    """Runtime configuration for segmentation, repair and periodic builds."""

    idle_gap: timedelta = timedelta(minutes=10)
    min_session: timedelta = timedelta(minutes=2)
    attach_gap: timedelta = timedelta(minutes=10)
    repair_limit: int = 500
    lookback_min: timedelta = timedelta(minutes=30)
    lookback_max: timedelta = timedelta(minutes=180)
    cold_start_window: timedelta = timedelta(hours=24)
    build_interval: timedelta = timedelta(minutes=5)
    policy: SegmentationPolicy = SegmentationPolicy.ACTIVITY

    @classmethod
    def from_minutes(
        cls,
        idle_gap_minutes: float = 10.0,
        min_session_minutes: float = 2.0,
        attach_gap_minutes: float | None = None,
        build_interval_minutes: float | None = None,
        focus_anchored: bool = False,
    ) -> "SessionSettings":
        idle = idle_gap_minutes if idle_gap_minutes > 0 else 10.0
        min_session = min_session_minutes if min_session_minutes > 0 else 2.0
        attach = (
            attach_gap_minutes
            if attach_gap_minutes is not None and attach_gap_minutes > 0
            else 10.0
        )
        interval = (
            build_interval_minutes
            if build_interval_minutes is not None and build_interval_minutes > 0
            else 5.0
        )
        return cls(
            idle_gap=timedelta(minutes=idle),
            min_session=timedelta(minutes=min_session),
            attach_gap=timedelta(minutes=attach),
            build_interval=timedelta(minutes=interval),
            policy=(
                SegmentationPolicy.FOCUS_ANCHORED
                if focus_anchored
                else SegmentationPolicy.ACTIVITY
            ),
        )

    @property
    def idle_gap_ms(self) -> int:
        return _to_ms(self.idle_gap)

    @property
    def min_session_ms(self) -> int:
        return _to_ms(self.min_session)

    @property
    def incremental_lookback(self) -> timedelta:
        """How far before the last session's end an incremental build re-reads."""
        return min(max(self.idle_gap * 3, self.lookback_min), self.lookback_max)

    @property
    def incremental_lookback_ms(self) -> int:
        return _to_ms(self.incremental_lookback)

    @property
    def cold_start_window_ms(self) -> int:
        return _to_ms(self.cold_start_window)


def _to_ms(value: timedelta) -> int:
    return int(value.total_seconds() * 1000)
