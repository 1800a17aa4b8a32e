from activity_sessions.metadata import EvidenceHint, SessionMetadata, decode_id_list


def test_from_dict_decodes_known_keys_and_keeps_unknown_ones():
    raw = {
        "diff_ids": [3, 1.0, "7", "x", -2, 3, True],
        "browser_event_ids": [11],
        "evidence_hint": "diff+browser",
        "semantic_source": "ai",
        "semantic_version": "v2",
        "degraded_reason": "",
        "skill_keys": ["python", " ", 5],
        "tags": {"mood": "focused"},
    }
    meta = SessionMetadata.from_dict(raw)

    assert meta.diff_ids == [3, 1, 7]
    assert meta.browser_event_ids == [11]
    assert meta.evidence_hint is EvidenceHint.DIFF_AND_BROWSER
    assert meta.semantic_source == "ai"
    assert meta.semantic_version == "v2"
    assert meta.degraded_reason is None
    assert meta.skill_keys == ["python"]
    assert meta.extra == {"tags": {"mood": "focused"}}

    encoded = meta.to_dict()
    assert encoded["tags"] == {"mood": "focused"}
    assert encoded["diff_ids"] == [3, 1, 7]
    assert "degraded_reason" not in encoded


def test_from_dict_handles_missing_or_malformed_values():
    assert SessionMetadata.from_dict(None) == SessionMetadata()
    meta = SessionMetadata.from_dict({"diff_ids": "1,2", "evidence_hint": "everything"})
    assert meta.diff_ids == []
    assert meta.evidence_hint is None
    assert decode_id_list([2.5, None, {}]) == []


def test_evidence_hint_from_counts():
    assert EvidenceHint.from_counts(0, 0) is EvidenceHint.WINDOW_ONLY
    assert EvidenceHint.from_counts(2, 0) is EvidenceHint.DIFF
    assert EvidenceHint.from_counts(0, 1) is EvidenceHint.BROWSER
    assert EvidenceHint.from_counts(1, 1) is EvidenceHint.DIFF_AND_BROWSER


def test_evidence_hint_combine_never_loses_a_kind():
    assert EvidenceHint.DIFF.combine(EvidenceHint.BROWSER) is EvidenceHint.DIFF_AND_BROWSER
    assert EvidenceHint.WINDOW_ONLY.combine(EvidenceHint.DIFF) is EvidenceHint.DIFF
    assert EvidenceHint.DIFF_AND_BROWSER.combine(EvidenceHint.WINDOW_ONLY) is (
        EvidenceHint.DIFF_AND_BROWSER
    )
    assert EvidenceHint.BROWSER.combine(None) is EvidenceHint.BROWSER


def test_merge_evidence_is_append_only():
    existing = SessionMetadata(diff_ids=[1, 2], evidence_hint=EvidenceHint.DIFF)
    incoming = SessionMetadata(diff_ids=[2, 3], browser_event_ids=[9])

    merge = existing.merge_evidence(incoming)

    assert existing.diff_ids == [1, 2, 3]
    assert existing.browser_event_ids == [9]
    assert merge.added_diff_ids == [3]
    assert merge.added_browser_event_ids == [9]
    assert merge.hint_changed
    assert existing.evidence_hint is EvidenceHint.DIFF_AND_BROWSER


def test_merge_evidence_without_new_ids_reports_no_change():
    existing = SessionMetadata(diff_ids=[1], evidence_hint=EvidenceHint.DIFF)
    merge = existing.merge_evidence(SessionMetadata(diff_ids=[1]))
    assert not merge.changed
    assert existing.diff_ids == [1]


def test_refresh_evidence_hint_keeps_a_more_complete_existing_hint():
    meta = SessionMetadata(diff_ids=[4], evidence_hint=EvidenceHint.DIFF_AND_BROWSER)
    assert meta.refresh_evidence_hint() is False
    assert meta.evidence_hint is EvidenceHint.DIFF_AND_BROWSER


def test_attach_ignores_duplicates_and_non_positive_ids():
    meta = SessionMetadata()
    assert meta.attach_diff(5)
    assert not meta.attach_diff(5)
    assert not meta.attach_visit(0)
    assert meta.diff_ids == [5]
    assert meta.browser_event_ids == []
    assert meta.has_evidence


def test_copy_is_independent():
    meta = SessionMetadata(diff_ids=[1], extra={"k": "v"})
    clone = meta.copy()
    clone.attach_diff(2)
    assert meta.diff_ids == [1]
    assert clone.extra == {"k": "v"}


def test_non_string_tags_survive_an_evidence_merge():
    meta = SessionMetadata.from_dict(
        {"semantic_version": 2, "semantic_source": "rule", "degraded_reason": {"code": 3}}
    )
    assert meta.semantic_version is None

    meta.merge_evidence(SessionMetadata(diff_ids=[4]))

    encoded = meta.to_dict()
    assert encoded["semantic_version"] == 2
    assert encoded["degraded_reason"] == {"code": 3}
    assert encoded["semantic_source"] == "rule"
    assert encoded["diff_ids"] == [4]
