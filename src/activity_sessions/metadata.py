"""Typed access to the metadata map stored alongside each session.

Sessions persist a free-form JSON object. The engine owns the evidence keys
(``diff_ids``, ``browser_event_ids``, ``evidence_hint``); the semantic
enrichment pass owns the rest. :class:`SessionMetadata` gives every known key
an explicit field and carries unknown keys through untouched, so a round trip
never loses data written by another component.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Optional

DIFF_IDS = "diff_ids"
BROWSER_EVENT_IDS = "browser_event_ids"
SKILL_KEYS = "skill_keys"
SEMANTIC_SOURCE = "semantic_source"
SEMANTIC_VERSION = "semantic_version"
EVIDENCE_HINT = "evidence_hint"
DEGRADED_REASON = "degraded_reason"

_KNOWN_KEYS = frozenset(
    {
        DIFF_IDS,
        BROWSER_EVENT_IDS,
        SKILL_KEYS,
        SEMANTIC_SOURCE,
        SEMANTIC_VERSION,
        EVIDENCE_HINT,
        DEGRADED_REASON,
    }
)

_TAG_KEYS = (SEMANTIC_SOURCE, SEMANTIC_VERSION, DEGRADED_REASON)


class EvidenceHint(str, Enum):
    """Coarse summary of which evidence kinds a session carries."""

    DIFF_AND_BROWSER = "diff+browser"
    DIFF = "diff"
    BROWSER = "browser"
    WINDOW_ONLY = "window_only"

    @classmethod
    def from_counts(cls, diffs: int, visits: int) -> "EvidenceHint":
        return cls._from_flags(diffs > 0, visits > 0)

    @classmethod
    def parse(cls, value: Any) -> Optional["EvidenceHint"]:
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        try:
            return cls(value.strip())
        except ValueError:
            return None

    @property
    def has_diff(self) -> bool:
        return self in (EvidenceHint.DIFF, EvidenceHint.DIFF_AND_BROWSER)

    @property
    def has_browser(self) -> bool:
        return self in (EvidenceHint.BROWSER, EvidenceHint.DIFF_AND_BROWSER)

    def combine(self, other: Optional["EvidenceHint"]) -> "EvidenceHint":
        """Union of both hints; the result is never less complete than either."""
        if other is None:
            return self
        return self._from_flags(
            self.has_diff or other.has_diff, self.has_browser or other.has_browser
        )

    @classmethod
    def _from_flags(cls, has_diff: bool, has_browser: bool) -> "EvidenceHint":
        if has_diff and has_browser:
            return cls.DIFF_AND_BROWSER
        if has_diff:
            return cls.DIFF
        if has_browser:
            return cls.BROWSER
        return cls.WINDOW_ONLY


@dataclass(slots=True)
class EvidenceMerge:
    """Outcome of folding one metadata object's evidence into another."""

    added_diff_ids: list[int] = field(default_factory=list)
    added_browser_event_ids: list[int] = field(default_factory=list)
    hint_changed: bool = False

    @property
    def changed(self) -> bool:
        return bool(
            self.added_diff_ids or self.added_browser_event_ids or self.hint_changed
        )


@dataclass(slots=True)
class SessionMetadata:
    diff_ids: list[int] = field(default_factory=list)
    browser_event_ids: list[int] = field(default_factory=list)
    skill_keys: list[str] = field(default_factory=list)
    evidence_hint: Optional[EvidenceHint] = None
    semantic_source: Optional[str] = None
    semantic_version: Optional[str] = None
    degraded_reason: Optional[str] = None
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Optional[Mapping[str, Any]]) -> "SessionMetadata":
        if not raw:
            return cls()
        extra = {key: value for key, value in raw.items() if key not in _KNOWN_KEYS}
        # Tags written with a non-string value are carried through unchanged.
        for key in _TAG_KEYS:
            value = raw.get(key)
            if value is not None and not isinstance(value, str):
                extra[key] = value
        return cls(
            diff_ids=decode_id_list(raw.get(DIFF_IDS)),
            browser_event_ids=decode_id_list(raw.get(BROWSER_EVENT_IDS)),
            skill_keys=_decode_str_list(raw.get(SKILL_KEYS)),
            evidence_hint=EvidenceHint.parse(raw.get(EVIDENCE_HINT)),
            semantic_source=_decode_tag(raw.get(SEMANTIC_SOURCE)),
            semantic_version=_decode_tag(raw.get(SEMANTIC_VERSION)),
            degraded_reason=_decode_tag(raw.get(DEGRADED_REASON)),
            extra=extra,
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = dict(self.extra)
        if self.diff_ids:
            out[DIFF_IDS] = list(self.diff_ids)
        if self.browser_event_ids:
            out[BROWSER_EVENT_IDS] = list(self.browser_event_ids)
        if self.skill_keys:
            out[SKILL_KEYS] = list(self.skill_keys)
        if self.evidence_hint is not None:
            out[EVIDENCE_HINT] = self.evidence_hint.value
        for key, value in (
            (SEMANTIC_SOURCE, self.semantic_source),
            (SEMANTIC_VERSION, self.semantic_version),
            (DEGRADED_REASON, self.degraded_reason),
        ):
            if value:
                out[key] = value
        return out

    def copy(self) -> "SessionMetadata":
        return SessionMetadata.from_dict(self.to_dict())

    @property
    def has_evidence(self) -> bool:
        return bool(self.diff_ids or self.browser_event_ids)

    def attach_diff(self, diff_id: int) -> bool:
        return _append_unique(self.diff_ids, diff_id)

    def attach_visit(self, event_id: int) -> bool:
        return _append_unique(self.browser_event_ids, event_id)

    def refresh_evidence_hint(self) -> bool:
        """Recompute the hint from the id lists, never downgrading it."""
        hint = EvidenceHint.from_counts(len(self.diff_ids), len(self.browser_event_ids))
        hint = hint.combine(self.evidence_hint)
        changed = hint is not self.evidence_hint
        self.evidence_hint = hint
        return changed

    def merge_evidence(self, other: "SessionMetadata") -> EvidenceMerge:
        """Append evidence ids from ``other`` that are not yet present."""
        result = EvidenceMerge()
        for diff_id in other.diff_ids:
            if self.attach_diff(diff_id):
                result.added_diff_ids.append(diff_id)
        for event_id in other.browser_event_ids:
            if self.attach_visit(event_id):
                result.added_browser_event_ids.append(event_id)
        previous = self.evidence_hint
        self.refresh_evidence_hint()
        if other.evidence_hint is not None:
            self.evidence_hint = self.evidence_hint.combine(other.evidence_hint)
        result.hint_changed = self.evidence_hint is not previous
        return result


def decode_id_list(value: Any) -> list[int]:
    """Decode a JSON id list, tolerating floats and numeric strings."""
    if not isinstance(value, (list, tuple)):
        return []
    out: list[int] = []
    for item in value:
        parsed = _coerce_id(item)
        if parsed is not None and parsed not in out:
            out.append(parsed)
    return out


def _coerce_id(item: Any) -> Optional[int]:
    if isinstance(item, bool):
        return None
    if isinstance(item, int):
        parsed = item
    elif isinstance(item, float):
        if not item.is_integer():
            return None
        parsed = int(item)
    elif isinstance(item, str):
        try:
            parsed = int(item.strip())
        except ValueError:
            return None
    else:
        return None
    return parsed if parsed > 0 else None


def _decode_str_list(value: Any) -> list[str]:
    if not isinstance(value, (list, tuple)):
        return []
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _decode_tag(value: Any) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return value.strip() or None


def _append_unique(target: list[int], value: int) -> bool:
    if value <= 0 or value in target:
        return False
    target.append(value)
    return True
