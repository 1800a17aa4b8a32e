"""Pick a representative application for each session from focus time."""

from __future__ import annotations

from collections import defaultdict
from typing import Optional, Sequence

from .models import FocusEvent, Session


def rounded_seconds(ms: int) -> int:
    """Whole seconds, rounding half up."""
    if ms <= 0:
        return 0
    return (ms + 500) // 1000


def overlap_ms(event: FocusEvent, session: Session) -> int:
    # Session ends are inclusive; +1 turns the span half-open like the event's.
    start = max(event.timestamp, session.start_ms)
    end = min(event.end_ms, session.end_ms + 1)
    return max(end - start, 0)


def assign_primary_apps(
    sessions: Sequence[Session], focus_events: Sequence[FocusEvent]
) -> None:
    """Set ``primary_app`` on every session some focus event overlaps.

    Both sequences must be sorted by start time. Sessions without any
    overlapping focus event keep an empty primary application.
    """
    if not sessions or not focus_events:
        return

    seconds: list[defaultdict[str, int]] = [defaultdict(int) for _ in sessions]
    counts: list[defaultdict[str, int]] = [defaultdict(int) for _ in sessions]

    first = 0
    for event in focus_events:
        app = event.app_name.strip() if event.app_name else ""
        if not app or event.duration <= 0:
            continue
        while first < len(sessions) and event.timestamp > sessions[first].end_ms:
            first += 1
        if first >= len(sessions):
            break
        for index in range(first, len(sessions)):
            session = sessions[index]
            if event.end_ms <= session.start_ms:
                break
            overlap = overlap_ms(event, session)
            if overlap <= 0:
                continue
            seconds[index][app] += rounded_seconds(overlap)
            counts[index][app] += 1

    for index, session in enumerate(sessions):
        winner = pick_primary_app(seconds[index], counts[index])
        if winner:
            session.primary_app = winner


def pick_primary_app(
    seconds: dict[str, int], counts: dict[str, int]
) -> Optional[str]:
    """Most focus seconds wins, then most occurrences, then name order."""
    candidates = set(seconds) | set(counts)
    if not candidates:
        return None
    return min(
        candidates,
        key=lambda app: (-seconds.get(app, 0), -counts.get(app, 0), app),
    )
