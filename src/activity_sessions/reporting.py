"""Simple reporting utilities for CLI output."""

from __future__ import annotations

from collections import defaultdict
from pathlib import Path
from typing import Iterable

from .db import SqliteRepository, database_connection
from .dates import parse_date
from .models import Session


class SessionPrinter:
    """Render a day's sessions in the console."""

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)

    def print_sessions(self, date: str) -> None:
        day = parse_date(date).strftime("%Y-%m-%d")
        with database_connection(self.db_path) as conn:
            sessions = SqliteRepository(conn).sessions_for_date(day)
        if not sessions:
            print("No sessions recorded for the selected day.")
            return

        print(f"Sessions for {day} (version {sessions[0].version})")
        print("-" * 72)
        for session in sessions:
            app = session.primary_app or "(no app)"
            hint = session.metadata.evidence_hint.value if session.metadata.evidence_hint else "-"
            print(
                f"  {session.time_range:<11} {app[:24]:<24} "
                f"{format_duration(session.duration_ms / 1000)}  "
                f"{hint:<12} diffs={len(session.metadata.diff_ids)} "
                f"visits={len(session.metadata.browser_event_ids)}"
            )
        print()
        print(f"Total tracked: {format_duration(tracked_seconds(sessions))}")

        top_apps = aggregate_by_app(sessions)
        if top_apps:
            print()
            print("Top applications:")
            for app, seconds in top_apps[:5]:
                print(f"  {app:<30} {format_duration(seconds)}")


def tracked_seconds(sessions: Iterable[Session]) -> float:
    return sum(session.duration_ms for session in sessions) / 1000


def aggregate_by_app(sessions: Iterable[Session]) -> list[tuple[str, float]]:
    totals: defaultdict[str, float] = defaultdict(float)
    for session in sessions:
        if not session.primary_app:
            continue
        totals[session.primary_app] += session.duration_ms / 1000
    return sorted(totals.items(), key=lambda item: item[1], reverse=True)


def format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    hours, remainder = divmod(total_seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}"
