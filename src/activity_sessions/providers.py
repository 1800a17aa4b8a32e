"""Interfaces of the event sources and stores the session builder talks to."""

from __future__ import annotations

from typing import Optional, Protocol, Sequence

from .models import ChangeEvent, FocusEvent, SemanticUpdate, Session, VisitEvent


class FocusEventSource(Protocol):
    def focus_events_between(self, start_ms: int, end_ms: int) -> Sequence[FocusEvent]:
        """Focus events with ``start_ms <= timestamp < end_ms``."""
        ...


class ChangeEventSource(Protocol):
    def change_events_between(self, start_ms: int, end_ms: int) -> Sequence[ChangeEvent]:
        ...


class VisitEventSource(Protocol):
    def visit_events_between(self, start_ms: int, end_ms: int) -> Sequence[VisitEvent]:
        ...


class SessionStore(Protocol):
    def create(self, session: Session) -> bool:
        """Insert ``session`` unless its key already exists.

        Returns ``True`` for a new row. Either way ``session.id`` is set to
        the identifier of the stored row.
        """
        ...

    def update_semantic(self, session_id: int, update: SemanticUpdate) -> None:
        """Replace summary, category and/or metadata; never start or end."""
        ...

    def max_version_for_date(self, date: str) -> int:
        """Highest session version stored for ``date``, or 0."""
        ...

    def get(self, session_id: int) -> Optional[Session]:
        ...

    def last_session(self) -> Optional[Session]:
        """The session with the latest end time, any version."""
        ...

    def sessions_between(self, start_ms: int, end_ms: int) -> list[Session]:
        """Sessions with ``start_ms <= start < end_ms``, ordered by start."""
        ...


class EvidenceIndex(Protocol):
    def record_session_diffs(self, session_id: int, diff_ids: Sequence[int]) -> None:
        """Associate diffs with a session; repeated pairs are ignored."""
        ...
