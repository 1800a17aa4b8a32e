"""Session build orchestration: fetch, segment, bind, finalize, version, persist."""

from __future__ import annotations

import logging
import threading
from collections import defaultdict
from operator import attrgetter
from typing import Callable, Optional, Sequence

from .attribution import assign_primary_apps
from .binder import bind_change_events, bind_visit_events
from .config import SessionSettings
from .dates import day_window, now_ms, parse_date
from .finalizer import finalize_sessions, stamp_derived_fields
from .metadata import SessionMetadata
from .models import ChangeEvent, FocusEvent, SemanticUpdate, Session, VisitEvent
from .providers import (
    ChangeEventSource,
    EvidenceIndex,
    FocusEventSource,
    SessionStore,
    VisitEventSource,
)
from .repair import EvidenceRepairResult, repair_evidence
from .segmenter import segment
from .stats import BuildStats, BuildStatsSnapshot

logger = logging.getLogger(__name__)

VersionPolicy = Callable[[str, int], int]

_by_timestamp = attrgetter("timestamp")


class InvalidRangeError(ValueError):
    """Raised when a build window ends before it starts."""


class BuildCancelled(RuntimeError):
    """Raised when the builder's stop event is set mid-build."""


def keep_latest_version(date: str, max_version: int) -> int:
    """Reuse the newest version of a date so ordinary backfills never fork it."""
    return max(max_version, 1)


def bump_version_for(target_date: str) -> VersionPolicy:
    """Give ``target_date`` a fresh version; other dates keep their latest."""

    def policy(date: str, max_version: int) -> int:
        if date == target_date:
            return max(max_version, 0) + 1
        return keep_latest_version(date, max_version)

    return policy


class SessionBuilder:
    """Builds work sessions from focus, change and visit events.

    Every public build records its outcome in :meth:`stats`. Re-running a
    build is always safe: existing sessions are matched by key and only gain
    evidence, never lose it.
    """

    def __init__(
        self,
        focus_source: FocusEventSource,
        change_source: ChangeEventSource,
        visit_source: VisitEventSource,
        store: SessionStore,
        evidence_index: Optional[EvidenceIndex] = None,
        settings: Optional[SessionSettings] = None,
        *,
        clock: Optional[Callable[[], int]] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        self.settings = settings or SessionSettings()
        self._focus_source = focus_source
        self._change_source = change_source
        self._visit_source = visit_source
        self._store = store
        self._evidence_index = evidence_index
        self._clock = clock or now_ms
        self._stop_event = stop_event
        self._stats = BuildStats(clock=self._clock)

    def build_for_range(self, start_ms: int, end_ms: int) -> int:
        _validate_range(start_ms, end_ms)
        return self._tracked(lambda: self._build(start_ms, end_ms, keep_latest_version))

    def build_for_date(self, date: str) -> int:
        start_ms, end_ms = day_window(date)
        return self._tracked(lambda: self._build(start_ms, end_ms, keep_latest_version))

    def rebuild_for_date(self, date: str) -> int:
        """Build a new, higher version of ``date`` beside the existing ones."""
        start_ms, end_ms = day_window(date)
        target = parse_date(date).strftime("%Y-%m-%d")
        return self._tracked(
            lambda: self._build(
                start_ms, end_ms, bump_version_for(target), reconcile=False
            )
        )

    def build_incremental(self) -> int:
        return self._tracked(self._build_incremental)

    def repair_evidence_for_date(
        self,
        date: str,
        attach_gap_minutes: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> EvidenceRepairResult:
        if attach_gap_minutes is None or attach_gap_minutes <= 0:
            attach_gap_minutes = int(self.settings.attach_gap.total_seconds() // 60)
        if limit is None or limit <= 0:
            limit = self.settings.repair_limit
        self._check_cancelled()
        return repair_evidence(
            self._store,
            self._change_source,
            self._visit_source,
            date,
            attach_gap_minutes=attach_gap_minutes,
            limit=limit,
            evidence_index=self._evidence_index,
        )

    def stats(self) -> BuildStatsSnapshot:
        return self._stats.snapshot()

    def _tracked(self, build: Callable[[], int]) -> int:
        try:
            created = build()
        except Exception as exc:
            self._stats.record_error(exc)
            raise
        self._stats.record_success()
        return created

    def _build_incremental(self) -> int:
        self._check_cancelled()
        last = self._store.last_session()
        end_ms = self._clock()
        if last is not None and last.end_ms > 0:
            start_ms = last.end_ms - self.settings.incremental_lookback_ms
        else:
            start_ms = end_ms - self.settings.cold_start_window_ms
        return self._build(min(start_ms, end_ms), end_ms, keep_latest_version)

    def _build(
        self,
        start_ms: int,
        end_ms: int,
        version_policy: VersionPolicy,
        *,
        reconcile: bool = True,
    ) -> int:
        if start_ms >= end_ms:
            return 0

        self._check_cancelled()
        focus = sorted(
            self._focus_source.focus_events_between(start_ms, end_ms), key=_by_timestamp
        )
        self._check_cancelled()
        changes = sorted(
            self._change_source.change_events_between(start_ms, end_ms),
            key=_by_timestamp,
        )
        self._check_cancelled()
        visits = sorted(
            self._visit_source.visit_events_between(start_ms, end_ms), key=_by_timestamp
        )

        candidates = segment(
            start_ms,
            end_ms,
            focus,
            changes,
            visits,
            idle_gap_ms=self.settings.idle_gap_ms,
            policy=self.settings.policy,
        )
        if not candidates:
            return 0

        bind_change_events(candidates, changes)
        bind_visit_events(candidates, visits)
        sessions = finalize_sessions(
            candidates,
            focus,
            start_ms,
            end_ms,
            min_session_ms=self.settings.min_session_ms,
        )
        if not sessions:
            return 0
        for session in sessions:
            session.metadata.refresh_evidence_hint()

        self._assign_versions(sessions, version_policy)
        if reconcile:
            sessions = self._reconcile(sessions, focus, changes, visits, end_ms)

        created = self._persist(sessions)
        if created:
            logger.info(
                "Created %d sessions for window %d-%d.", created, start_ms, end_ms
            )
        return created

    def _assign_versions(
        self, sessions: Sequence[Session], version_policy: VersionPolicy
    ) -> None:
        max_by_date: dict[str, int] = {}
        for session in sessions:
            if session.date not in max_by_date:
                self._check_cancelled()
                max_by_date[session.date] = self._store.max_version_for_date(session.date)
        for session in sessions:
            session.version = max(
                version_policy(session.date, max_by_date[session.date]), 1
            )

    def _reconcile(
        self,
        sessions: list[Session],
        focus: Sequence[FocusEvent],
        changes: Sequence[ChangeEvent],
        visits: Sequence[VisitEvent],
        window_end: int,
    ) -> list[Session]:
        """Fold candidates that overlap already persisted sessions into them.

        A candidate overlapping persisted sessions of its own date and version
        hands them the evidence they contain. The stretches of the candidate
        that no persisted session covers become sessions of their own, keeping
        their own evidence, so one version never holds overlapping rows.
        """
        first_day_start, _ = day_window(sessions[0].date)
        self._check_cancelled()
        persisted: defaultdict[tuple[str, int], list[Session]] = defaultdict(list)
        for row in self._store.sessions_between(first_day_start, window_end):
            if row.id is not None:
                persisted[(row.date, row.version)].append(row)
        if not persisted:
            return sessions

        change_ts = {event.id: event.timestamp for event in changes}
        visit_ts = {event.id: event.timestamp for event in visits}
        kept: list[Session] = []
        for candidate in sessions:
            peers = sorted(
                (
                    row
                    for row in persisted.get((candidate.date, candidate.version), [])
                    if row.start_ms < candidate.end_ms and row.end_ms > candidate.start_ms
                ),
                key=attrgetter("start_ms"),
            )
            if not peers or any(row.key == candidate.key for row in peers):
                kept.append(candidate)
                continue

            stretches = _uncovered_stretches(candidate, peers)
            handover: defaultdict[int, SessionMetadata] = defaultdict(SessionMetadata)
            for ids, timestamps, attach in (
                (candidate.metadata.diff_ids, change_ts, SessionMetadata.attach_diff),
                (
                    candidate.metadata.browser_event_ids,
                    visit_ts,
                    SessionMetadata.attach_visit,
                ),
            ):
                for event_id in ids:
                    ts = timestamps.get(event_id)
                    if ts is None:
                        continue
                    peer = _containing(peers, ts)
                    if peer is not None:
                        attach(handover[peer.id], event_id)
                        continue
                    stretch = _containing(stretches, ts)
                    if stretch is not None:
                        attach(stretch.metadata, event_id)

            for session_id, incoming in handover.items():
                self._merge_into_persisted(session_id, incoming)

            survivors = [
                stretch for stretch in stretches if self._keep_stretch(stretch, focus)
            ]
            kept.extend(survivors)
            logger.debug(
                "Candidate %d-%d overlapped %d persisted sessions; kept %d of %d "
                "uncovered stretches.",
                candidate.start_ms,
                candidate.end_ms,
                len(peers),
                len(survivors),
                len(stretches),
            )
        return kept

    def _keep_stretch(self, stretch: Session, focus: Sequence[FocusEvent]) -> bool:
        has_evidence = stretch.metadata.has_evidence
        if stretch.duration_ms < self.settings.min_session_ms and not has_evidence:
            return False
        assign_primary_apps([stretch], focus)
        if not stretch.primary_app and not has_evidence:
            return False
        stamp_derived_fields(stretch)
        stretch.metadata.refresh_evidence_hint()
        return True

    def _persist(self, sessions: Sequence[Session]) -> int:
        created = 0
        for session in sessions:
            self._check_cancelled()
            try:
                if self._store.create(session):
                    created += 1
                    if self._evidence_index is not None and session.metadata.diff_ids:
                        self._evidence_index.record_session_diffs(
                            session.id, session.metadata.diff_ids
                        )
                elif session.id is not None:
                    self._merge_into_persisted(session.id, session.metadata)
            except Exception:
                logger.exception(
                    "Failed to persist session %s (%d-%d); skipping.",
                    session.date,
                    session.start_ms,
                    session.end_ms,
                )
        return created

    def _merge_into_persisted(
        self, session_id: int, incoming: SessionMetadata
    ) -> None:
        existing = self._store.get(session_id)
        if existing is None:
            logger.warning("Session %d vanished before evidence merge.", session_id)
            return
        merge = existing.metadata.merge_evidence(incoming)
        if not merge.changed:
            return
        self._store.update_semantic(
            session_id, SemanticUpdate(metadata=existing.metadata)
        )
        if self._evidence_index is not None and merge.added_diff_ids:
            self._evidence_index.record_session_diffs(session_id, merge.added_diff_ids)
        logger.debug(
            "Merged %d diffs and %d visits into session %d.",
            len(merge.added_diff_ids),
            len(merge.added_browser_event_ids),
            session_id,
        )

    def _check_cancelled(self) -> None:
        if self._stop_event is not None and self._stop_event.is_set():
            raise BuildCancelled("Session build cancelled")


def _validate_range(start_ms: int, end_ms: int) -> None:
    if end_ms < start_ms:
        raise InvalidRangeError(f"Range end {end_ms} is before start {start_ms}")


def _containing(sessions: Sequence[Session], timestamp: int) -> Optional[Session]:
    for session in sessions:
        if session.contains(timestamp):
            return session
    return None


def _uncovered_stretches(candidate: Session, peers: Sequence[Session]) -> list[Session]:
    """Parts of ``candidate`` not covered by ``peers`` (sorted by start)."""
    stretches: list[Session] = []
    cursor = candidate.start_ms
    for row in peers:
        if row.start_ms > cursor:
            stretches.append(
                Session(start_ms=cursor, end_ms=row.start_ms, version=candidate.version)
            )
        cursor = max(cursor, row.end_ms)
    if candidate.end_ms > cursor:
        stretches.append(
            Session(start_ms=cursor, end_ms=candidate.end_ms, version=candidate.version)
        )
    return stretches
