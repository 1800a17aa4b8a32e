"""Turn raw candidate sessions into persist-ready ones."""

from __future__ import annotations

import logging
from typing import Sequence

from .attribution import assign_primary_apps
from .dates import format_date, format_time_range
from .models import FocusEvent, Session

logger = logging.getLogger(__name__)


def finalize_sessions(
    sessions: Sequence[Session],
    focus_events: Sequence[FocusEvent],
    window_start: int,
    window_end: int,
    *,
    min_session_ms: int,
) -> list[Session]:
    """Filter, attribute and stamp candidate sessions.

    Short sessions survive only when they carry evidence; sessions left with
    neither a primary application nor evidence are dropped.
    """
    cleaned: list[Session] = []
    for session in sessions:
        if session.start_ms <= 0 or session.end_ms <= session.start_ms:
            continue
        session.start_ms = max(session.start_ms, window_start)
        session.end_ms = min(session.end_ms, window_end)
        if session.end_ms <= session.start_ms:
            continue
        if session.duration_ms < min_session_ms and not session.metadata.has_evidence:
            logger.debug(
                "Dropping short session %d-%d without evidence.",
                session.start_ms,
                session.end_ms,
            )
            continue
        cleaned.append(session)

    cleaned.sort(key=lambda item: item.start_ms)
    assign_primary_apps(cleaned, focus_events)

    finalized: list[Session] = []
    for session in cleaned:
        if not session.primary_app.strip() and not session.metadata.has_evidence:
            continue
        stamp_derived_fields(session)
        finalized.append(session)
    finalized.sort(key=lambda item: item.start_ms)
    return finalized


def stamp_derived_fields(session: Session) -> None:
    session.date = format_date(session.start_ms)
    session.time_range = format_time_range(session.start_ms, session.end_ms)
