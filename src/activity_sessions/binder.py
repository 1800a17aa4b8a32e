"""Attach change and visit evidence to the sessions that contain it."""

from __future__ import annotations

from typing import Callable, Sequence, TypeVar

from .metadata import SessionMetadata
from .models import ChangeEvent, Session, VisitEvent

E = TypeVar("E", ChangeEvent, VisitEvent)


def bind_change_events(
    sessions: Sequence[Session], events: Sequence[ChangeEvent]
) -> list[ChangeEvent]:
    """Attach diff ids; returns the events no session contains."""
    return _bind(sessions, events, SessionMetadata.attach_diff)


def bind_visit_events(
    sessions: Sequence[Session], events: Sequence[VisitEvent]
) -> list[VisitEvent]:
    """Attach browser event ids; returns the events no session contains."""
    return _bind(sessions, events, SessionMetadata.attach_visit)


def _bind(
    sessions: Sequence[Session],
    events: Sequence[E],
    attach: Callable[[SessionMetadata, int], bool],
) -> list[E]:
    # Sessions are sorted and disjoint; events are sorted by timestamp.
    orphans: list[E] = []
    index = 0
    for event in events:
        if event.id <= 0:
            continue
        while index < len(sessions) and event.timestamp > sessions[index].end_ms:
            index += 1
        if index >= len(sessions):
            orphans.append(event)
            continue
        session = sessions[index]
        if session.contains(event.timestamp):
            attach(session.metadata, event.id)
        else:
            orphans.append(event)
    return orphans
