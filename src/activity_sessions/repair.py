"""Reattach orphaned change and visit events to their nearest session."""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Optional, Sequence

from pydantic import BaseModel, ConfigDict

from .dates import day_window
from .metadata import SessionMetadata
from .models import SemanticUpdate, Session
from .providers import ChangeEventSource, EvidenceIndex, SessionStore, VisitEventSource

logger = logging.getLogger(__name__)


class EvidenceRepairResult(BaseModel):
    orphan_diffs: int = 0
    orphan_browser: int = 0
    attached_diffs: int = 0
    attached_browser: int = 0
    updated_sessions: int = 0
    attach_gap_minutes: int = 0

    model_config = ConfigDict(extra="forbid")


def repair_evidence(
    store: SessionStore,
    change_source: ChangeEventSource,
    visit_source: VisitEventSource,
    date: str,
    *,
    attach_gap_minutes: int = 10,
    limit: int = 500,
    evidence_index: Optional[EvidenceIndex] = None,
) -> EvidenceRepairResult:
    """Attach events no session references to the closest session of ``date``.

    Only the newest version of the day is considered. An orphan is attached
    when it lies inside a session or within ``attach_gap_minutes`` of one of
    its edges; ``limit`` caps how many orphans are attached in one run. The
    operation only ever appends evidence ids, so it can be repeated freely.
    """
    start_ms, end_ms = day_window(date)
    result = EvidenceRepairResult(attach_gap_minutes=attach_gap_minutes)

    sessions = _newest_version(store.sessions_between(start_ms, end_ms))
    if not sessions:
        return result

    referenced_diffs = {i for session in sessions for i in session.metadata.diff_ids}
    referenced_visits = {
        i for session in sessions for i in session.metadata.browser_event_ids
    }
    gap_ms = attach_gap_minutes * 60 * 1000
    pending: defaultdict[int, SessionMetadata] = defaultdict(SessionMetadata)

    for change in sorted(
        change_source.change_events_between(start_ms, end_ms),
        key=lambda event: event.timestamp,
    ):
        if change.id <= 0 or change.id in referenced_diffs:
            continue
        result.orphan_diffs += 1
        if result.attached_diffs + result.attached_browser >= limit:
            continue
        target = _closest_within(sessions, change.timestamp, gap_ms)
        if target is None:
            continue
        pending[target.id].attach_diff(change.id)
        referenced_diffs.add(change.id)
        result.attached_diffs += 1

    for visit in sorted(
        visit_source.visit_events_between(start_ms, end_ms),
        key=lambda event: event.timestamp,
    ):
        if visit.id <= 0 or visit.id in referenced_visits:
            continue
        result.orphan_browser += 1
        if result.attached_diffs + result.attached_browser >= limit:
            continue
        target = _closest_within(sessions, visit.timestamp, gap_ms)
        if target is None:
            continue
        pending[target.id].attach_visit(visit.id)
        referenced_visits.add(visit.id)
        result.attached_browser += 1

    for session_id, incoming in pending.items():
        current = store.get(session_id)
        if current is None:
            logger.warning("Session %d disappeared during evidence repair.", session_id)
            continue
        merge = current.metadata.merge_evidence(incoming)
        if not merge.changed:
            continue
        store.update_semantic(session_id, SemanticUpdate(metadata=current.metadata))
        if evidence_index is not None and merge.added_diff_ids:
            evidence_index.record_session_diffs(session_id, merge.added_diff_ids)
        result.updated_sessions += 1

    if result.updated_sessions:
        logger.info(
            "Repaired evidence for %s: %d diffs and %d visits across %d sessions.",
            date,
            result.attached_diffs,
            result.attached_browser,
            result.updated_sessions,
        )
    return result


def _newest_version(sessions: Sequence[Session]) -> list[Session]:
    stored = [session for session in sessions if session.id is not None]
    if not stored:
        return []
    newest = max(session.version for session in stored)
    return sorted(
        (session for session in stored if session.version == newest),
        key=lambda session: session.start_ms,
    )


def _closest_within(
    sessions: Sequence[Session], timestamp: int, gap_ms: int
) -> Optional[Session]:
    # min() keeps the first of equally distant sessions, i.e. the earliest.
    best = min(sessions, key=lambda session: session.distance_to(timestamp))
    if best.distance_to(timestamp) > gap_ms:
        return None
    return best
