"""Shared fixtures for the activity-sessions test suite."""

from __future__ import annotations

from datetime import datetime
from typing import Callable

import pytest

from activity_sessions.db import SqliteRepository, open_database
from activity_sessions.dates import to_ms
from activity_sessions.service import SessionBuilder

DAY = "2025-03-10"
MINUTE = 60_000


@pytest.fixture
def t() -> Callable[[float], int]:
    """Milliseconds for ``minutes`` after 09:00 local time on ``DAY``."""
    base = to_ms(datetime(2025, 3, 10, 9, 0))

    def at(minutes: float) -> int:
        return base + int(minutes * MINUTE)

    return at


@pytest.fixture
def conn():
    connection = open_database(":memory:")
    yield connection
    connection.close()


@pytest.fixture
def repo(conn) -> SqliteRepository:
    return SqliteRepository(conn)


@pytest.fixture
def make_builder(repo):
    def factory(store=None, **kwargs) -> SessionBuilder:
        return SessionBuilder(
            kwargs.pop("focus_source", repo),
            kwargs.pop("change_source", repo),
            kwargs.pop("visit_source", repo),
            store if store is not None else repo,
            kwargs.pop("evidence_index", repo),
            kwargs.pop("settings", None),
            **kwargs,
        )

    return factory
