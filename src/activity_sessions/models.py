"""Domain models for activity evidence and work sessions."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import NamedTuple, Optional

from .metadata import SessionMetadata


@dataclass(slots=True)
class FocusEvent:
    """A contiguous period during which an application held foreground focus."""

    app_name: str
    timestamp: int
    duration: int
    id: int = 0
    title: Optional[str] = None

    @property
    def end_ms(self) -> int:
        return self.timestamp + max(self.duration, 0) * 1000

    def activity_span(self) -> tuple[int, int]:
        return self.timestamp, self.end_ms


@dataclass(slots=True)
class ChangeEvent:
    """A recorded code change ("diff"). Only its timestamp drives segmentation."""

    id: int
    timestamp: int
    file_name: str = ""
    language: str = ""
    ai_insight: Optional[str] = None
    skills_detected: tuple[str, ...] = ()
    lines_added: int = 0
    lines_deleted: int = 0

    def activity_span(self) -> tuple[int, int]:
        return self.timestamp, self.timestamp


@dataclass(slots=True)
class VisitEvent:
    """A browser page visit."""

    id: int
    timestamp: int
    domain: str = ""
    title: str = ""
    url: str = ""

    def activity_span(self) -> tuple[int, int]:
        return self.timestamp, self.timestamp


class SessionKey(NamedTuple):
    """Identity of a persisted session row: one version of one day's span."""

    date: str
    version: int
    start_ms: int
    end_ms: int


@dataclass(slots=True)
class Session:
    """A contiguous span of activity; ``end_ms`` is inclusive."""

    start_ms: int
    end_ms: int
    date: str = ""
    time_range: str = ""
    primary_app: str = ""
    version: int = 1
    metadata: SessionMetadata = field(default_factory=SessionMetadata)
    id: Optional[int] = None
    summary: Optional[str] = None
    category: Optional[str] = None

    @property
    def duration_ms(self) -> int:
        return self.end_ms - self.start_ms

    @property
    def key(self) -> SessionKey:
        return SessionKey(self.date, self.version, self.start_ms, self.end_ms)

    def contains(self, timestamp: int) -> bool:
        return self.start_ms <= timestamp <= self.end_ms

    def distance_to(self, timestamp: int) -> int:
        """Milliseconds between ``timestamp`` and the nearest edge (0 when inside)."""
        if timestamp < self.start_ms:
            return self.start_ms - timestamp
        if timestamp > self.end_ms:
            return timestamp - self.end_ms
        return 0


@dataclass(slots=True)
class SemanticUpdate:
    """Fields an existing session may be amended with; start/end are never touched."""

    summary: Optional[str] = None
    category: Optional[str] = None
    metadata: Optional[SessionMetadata] = None

    @property
    def is_empty(self) -> bool:
        return self.summary is None and self.category is None and self.metadata is None
