"""Split merged activity streams into candidate sessions on idle gaps."""

from __future__ import annotations

import heapq
import logging
from enum import Enum
from operator import attrgetter
from typing import Iterable, Iterator, Optional, Protocol, Sequence

from .models import ChangeEvent, FocusEvent, Session, VisitEvent

logger = logging.getLogger(__name__)

# Extension applied to a session that would otherwise have zero length.
MIN_SPAN_MS = 1000


class SegmentationPolicy(str, Enum):
    """Which streams are allowed to open and extend sessions."""

    ACTIVITY = "activity"
    FOCUS_ANCHORED = "focus_anchored"


class ActivityPoint(Protocol):
    timestamp: int

    def activity_span(self) -> tuple[int, int]: ...


def merge_streams(*streams: Iterable[ActivityPoint]) -> Iterator[ActivityPoint]:
    """K-way merge of timestamp-sorted streams.

    Equal timestamps come out in the order the streams were passed.
    """
    return heapq.merge(*streams, key=attrgetter("timestamp"))


class _OpenSession:
    __slots__ = ("start", "last_activity_end")

    def __init__(self, start: int, end: int) -> None:
        self.start = start
        self.last_activity_end = end


def segment(
    window_start: int,
    window_end: int,
    focus_events: Sequence[FocusEvent],
    change_events: Sequence[ChangeEvent] = (),
    visit_events: Sequence[VisitEvent] = (),
    *,
    idle_gap_ms: int,
    policy: SegmentationPolicy = SegmentationPolicy.ACTIVITY,
) -> list[Session]:
    """Return candidate sessions for ``[window_start, window_end)``.

    Every stream must already be sorted ascending by timestamp. Focus events
    occupy ``[timestamp, timestamp + duration)``; change and visit events are
    single points. A gap of at least ``idle_gap_ms`` between the end of the
    latest activity and the next event's start closes the open session.
    """
    if window_end <= window_start:
        return []

    if policy is SegmentationPolicy.FOCUS_ANCHORED:
        merged: Iterator[ActivityPoint] = iter(focus_events)
    else:
        merged = merge_streams(focus_events, change_events, visit_events)

    sessions: list[Session] = []
    current: Optional[_OpenSession] = None

    for event in merged:
        span = _clamped_span(event, window_start, window_end)
        if span is None:
            continue
        start, end = span
        if current is None:
            current = _OpenSession(start, end)
            continue
        if start - current.last_activity_end >= idle_gap_ms:
            _close(sessions, current, window_end)
            current = _OpenSession(start, end)
            continue
        if end > current.last_activity_end:
            current.last_activity_end = end

    if current is not None:
        _close(sessions, current, window_end)

    logger.debug(
        "Segmented window %d-%d into %d candidate sessions.",
        window_start,
        window_end,
        len(sessions),
    )
    return sessions


def _clamped_span(
    event: ActivityPoint, window_start: int, window_end: int
) -> Optional[tuple[int, int]]:
    start, end = event.activity_span()
    if start >= window_end:
        return None
    if start < window_start:
        if end <= window_start:
            return None
        start = window_start
    return start, min(max(end, start), window_end)


def _close(sessions: list[Session], current: _OpenSession, window_end: int) -> None:
    end = current.last_activity_end
    if end <= current.start:
        end = min(current.start + MIN_SPAN_MS, window_end)
    if end <= current.start:
        return
    sessions.append(Session(start_ms=current.start, end_ms=end))
