"""SQLite storage for activity evidence and sessions."""

from __future__ import annotations

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, Optional, Sequence, Union

from .metadata import SessionMetadata
from .models import ChangeEvent, FocusEvent, SemanticUpdate, Session, VisitEvent


def open_database(
    path: Union[Path, str], *, check_same_thread: bool = True
) -> sqlite3.Connection:
    """Open (and initialize) the SQLite database."""
    conn = sqlite3.connect(
        path,
        isolation_level=None,
        check_same_thread=check_same_thread,
    )
    conn.row_factory = sqlite3.Row
    enable_foreign_keys(conn)
    initialize_schema(conn)
    return conn


@contextmanager
def database_connection(
    path: Union[Path, str], *, check_same_thread: bool = True
) -> Iterator[sqlite3.Connection]:
    conn = open_database(path, check_same_thread=check_same_thread)
    try:
        yield conn
    finally:
        conn.close()


def enable_foreign_keys(conn: sqlite3.Connection) -> None:
    conn.execute("PRAGMA foreign_keys = ON;")


def initialize_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS focus_events (
            id INTEGER PRIMARY KEY,
            timestamp INTEGER NOT NULL,
            duration INTEGER NOT NULL DEFAULT 0,
            app_name TEXT NOT NULL,
            title TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_focus_events_timestamp
            ON focus_events(timestamp);

        CREATE TABLE IF NOT EXISTS change_events (
            id INTEGER PRIMARY KEY,
            timestamp INTEGER NOT NULL,
            file_name TEXT NOT NULL DEFAULT '',
            language TEXT NOT NULL DEFAULT '',
            ai_insight TEXT,
            skills_detected TEXT,
            lines_added INTEGER NOT NULL DEFAULT 0,
            lines_deleted INTEGER NOT NULL DEFAULT 0
        );

        CREATE INDEX IF NOT EXISTS idx_change_events_timestamp
            ON change_events(timestamp);

        CREATE TABLE IF NOT EXISTS visit_events (
            id INTEGER PRIMARY KEY,
            timestamp INTEGER NOT NULL,
            domain TEXT NOT NULL DEFAULT '',
            title TEXT NOT NULL DEFAULT '',
            url TEXT NOT NULL DEFAULT ''
        );

        CREATE INDEX IF NOT EXISTS idx_visit_events_timestamp
            ON visit_events(timestamp);

        CREATE TABLE IF NOT EXISTS sessions (
            id INTEGER PRIMARY KEY,
            date TEXT NOT NULL,
            session_version INTEGER NOT NULL DEFAULT 1,
            start_time INTEGER NOT NULL,
            end_time INTEGER NOT NULL,
            time_range TEXT NOT NULL DEFAULT '',
            primary_app TEXT NOT NULL DEFAULT '',
            summary TEXT,
            category TEXT,
            metadata TEXT NOT NULL DEFAULT '{}',
            CHECK (end_time > start_time)
        );

        CREATE UNIQUE INDEX IF NOT EXISTS idx_sessions_key
            ON sessions(date, session_version, start_time, end_time);

        CREATE INDEX IF NOT EXISTS idx_sessions_start_time
            ON sessions(start_time);

        CREATE TABLE IF NOT EXISTS session_diffs (
            session_id INTEGER NOT NULL REFERENCES sessions(id),
            diff_id INTEGER NOT NULL,
            PRIMARY KEY (session_id, diff_id)
        );
        """
    )


def insert_focus_events(conn: sqlite3.Connection, events: Iterable[FocusEvent]) -> None:
    conn.executemany(
        """
        INSERT INTO focus_events (id, timestamp, duration, app_name, title)
        VALUES (?, ?, ?, ?, ?)
        """,
        [
            (
                event.id or None,
                event.timestamp,
                event.duration,
                event.app_name,
                event.title,
            )
            for event in events
        ],
    )


def insert_change_events(
    conn: sqlite3.Connection, events: Iterable[ChangeEvent]
) -> None:
    conn.executemany(
        """
        INSERT INTO change_events (
            id,
            timestamp,
            file_name,
            language,
            ai_insight,
            skills_detected,
            lines_added,
            lines_deleted
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        [
            (
                event.id or None,
                event.timestamp,
                event.file_name,
                event.language,
                event.ai_insight,
                json.dumps(list(event.skills_detected)) if event.skills_detected else None,
                event.lines_added,
                event.lines_deleted,
            )
            for event in events
        ],
    )


def insert_visit_events(conn: sqlite3.Connection, events: Iterable[VisitEvent]) -> None:
    conn.executemany(
        """
        INSERT INTO visit_events (id, timestamp, domain, title, url)
        VALUES (?, ?, ?, ?, ?)
        """,
        [
            (event.id or None, event.timestamp, event.domain, event.title, event.url)
            for event in events
        ],
    )


class SqliteRepository:
    """Event sources, session store and evidence index over one connection."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn
        self._lock = threading.Lock()

    def focus_events_between(self, start_ms: int, end_ms: int) -> list[FocusEvent]:
        rows = self._query(
            """
            SELECT id, timestamp, duration, app_name, title
            FROM focus_events
            WHERE timestamp >= ? AND timestamp < ?
            ORDER BY timestamp, id;
            """,
            (start_ms, end_ms),
        )
        return [
            FocusEvent(
                app_name=row["app_name"],
                timestamp=row["timestamp"],
                duration=row["duration"],
                id=row["id"],
                title=row["title"],
            )
            for row in rows
        ]

    def change_events_between(self, start_ms: int, end_ms: int) -> list[ChangeEvent]:
        rows = self._query(
            """
            SELECT
                id,
                timestamp,
                file_name,
                language,
                ai_insight,
                skills_detected,
                lines_added,
                lines_deleted
            FROM change_events
            WHERE timestamp >= ? AND timestamp < ?
            ORDER BY timestamp, id;
            """,
            (start_ms, end_ms),
        )
        return [
            ChangeEvent(
                id=row["id"],
                timestamp=row["timestamp"],
                file_name=row["file_name"],
                language=row["language"],
                ai_insight=row["ai_insight"],
                skills_detected=tuple(json.loads(row["skills_detected"] or "[]")),
                lines_added=row["lines_added"],
                lines_deleted=row["lines_deleted"],
            )
            for row in rows
        ]

    def visit_events_between(self, start_ms: int, end_ms: int) -> list[VisitEvent]:
        rows = self._query(
            """
            SELECT id, timestamp, domain, title, url
            FROM visit_events
            WHERE timestamp >= ? AND timestamp < ?
            ORDER BY timestamp, id;
            """,
            (start_ms, end_ms),
        )
        return [
            VisitEvent(
                id=row["id"],
                timestamp=row["timestamp"],
                domain=row["domain"],
                title=row["title"],
                url=row["url"],
            )
            for row in rows
        ]

    def create(self, session: Session) -> bool:
        with self._lock:
            cur = self._conn.execute(
                """
                INSERT INTO sessions (
                    date,
                    session_version,
                    start_time,
                    end_time,
                    time_range,
                    primary_app,
                    summary,
                    category,
                    metadata
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (date, session_version, start_time, end_time) DO NOTHING
                """,
                (
                    session.date,
                    session.version,
                    session.start_ms,
                    session.end_ms,
                    session.time_range,
                    session.primary_app,
                    session.summary,
                    session.category,
                    _encode_metadata(session.metadata),
                ),
            )
            if cur.rowcount:
                session.id = cur.lastrowid
                return True
            row = self._conn.execute(
                """
                SELECT id FROM sessions
                WHERE date = ? AND session_version = ? AND start_time = ? AND end_time = ?
                """,
                session.key,
            ).fetchone()
        session.id = row["id"] if row is not None else None
        return False

    def update_semantic(self, session_id: int, update: SemanticUpdate) -> None:
        """Update summary, category and metadata of a single session."""
        if update.is_empty:
            return

        fields: list[str] = []
        params: list[object] = []

        if update.summary is not None:
            fields.append("summary = ?")
            params.append(update.summary)
        if update.category is not None:
            fields.append("category = ?")
            params.append(update.category)
        if update.metadata is not None:
            fields.append("metadata = ?")
            params.append(_encode_metadata(update.metadata))

        params.append(session_id)
        with self._lock:
            cur = self._conn.execute(
                f"UPDATE sessions SET {', '.join(fields)} WHERE id = ?",
                params,
            )
        if cur.rowcount == 0:
            raise ValueError(f"No session found for id={session_id}")

    def max_version_for_date(self, date: str) -> int:
        rows = self._query(
            "SELECT MAX(session_version) AS version FROM sessions WHERE date = ?",
            (date,),
        )
        return int(rows[0]["version"] or 0) if rows else 0

    def get(self, session_id: int) -> Optional[Session]:
        rows = self._query(f"{_SESSION_SELECT} WHERE id = ?", (session_id,))
        return _row_to_session(rows[0]) if rows else None

    def last_session(self) -> Optional[Session]:
        rows = self._query(f"{_SESSION_SELECT} ORDER BY end_time DESC, id DESC LIMIT 1")
        return _row_to_session(rows[0]) if rows else None

    def sessions_between(self, start_ms: int, end_ms: int) -> list[Session]:
        rows = self._query(
            f"""
            {_SESSION_SELECT}
            WHERE start_time >= ? AND start_time < ?
            ORDER BY start_time, session_version;
            """,
            (start_ms, end_ms),
        )
        return [_row_to_session(row) for row in rows]

    def sessions_for_date(self, date: str, version: Optional[int] = None) -> list[Session]:
        """Sessions of ``date``; the newest version unless ``version`` is given."""
        if version is None:
            version = self.max_version_for_date(date)
        rows = self._query(
            f"""
            {_SESSION_SELECT}
            WHERE date = ? AND session_version = ?
            ORDER BY start_time;
            """,
            (date, version),
        )
        return [_row_to_session(row) for row in rows]

    def record_session_diffs(self, session_id: int, diff_ids: Sequence[int]) -> None:
        with self._lock:
            self._conn.executemany(
                "INSERT OR IGNORE INTO session_diffs (session_id, diff_id) VALUES (?, ?)",
                [(session_id, diff_id) for diff_id in diff_ids],
            )

    def diff_ids_for_session(self, session_id: int) -> list[int]:
        rows = self._query(
            "SELECT diff_id FROM session_diffs WHERE session_id = ? ORDER BY diff_id",
            (session_id,),
        )
        return [row["diff_id"] for row in rows]

    def _query(self, sql: str, params: Sequence[object] = ()) -> list[sqlite3.Row]:
        with self._lock:
            return list(self._conn.execute(sql, params))


_SESSION_SELECT = """
    SELECT
        id,
        date,
        session_version,
        start_time,
        end_time,
        time_range,
        primary_app,
        summary,
        category,
        metadata
    FROM sessions
"""


def _encode_metadata(metadata: SessionMetadata) -> str:
    return json.dumps(metadata.to_dict(), ensure_ascii=False, sort_keys=True)


def _row_to_session(row: sqlite3.Row) -> Session:
    return Session(
        id=row["id"],
        date=row["date"],
        version=row["session_version"],
        start_ms=row["start_time"],
        end_ms=row["end_time"],
        time_range=row["time_range"],
        primary_app=row["primary_app"],
        summary=row["summary"],
        category=row["category"],
        metadata=SessionMetadata.from_dict(json.loads(row["metadata"] or "{}")),
    )
