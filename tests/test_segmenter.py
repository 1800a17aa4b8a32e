from activity_sessions.models import ChangeEvent, FocusEvent, VisitEvent
from activity_sessions.segmenter import (
    MIN_SPAN_MS,
    SegmentationPolicy,
    merge_streams,
    segment,
)

MINUTE = 60_000
IDLE = 10 * MINUTE
WINDOW = (0, 24 * 60 * MINUTE)


def focus(minute, minutes, app="editor"):
    return FocusEvent(app_name=app, timestamp=int(minute * MINUTE), duration=int(minutes * 60))


def spans(sessions):
    return [(s.start_ms // MINUTE, s.end_ms // MINUTE) for s in sessions]


def test_idle_gap_splits_focus_runs():
    events = [focus(10, 5), focus(16, 5), focus(50, 5)]
    changes = [ChangeEvent(id=1, timestamp=13 * MINUTE)]

    sessions = segment(*WINDOW, events, changes, idle_gap_ms=IDLE)

    assert spans(sessions) == [(10, 21), (50, 55)]


def test_gap_equal_to_threshold_splits_and_smaller_gap_merges():
    split = segment(*WINDOW, [focus(10, 5), focus(25, 5)], idle_gap_ms=IDLE)
    assert len(split) == 2

    just_under = FocusEvent(app_name="editor", timestamp=25 * MINUTE - 1, duration=300)
    merged = segment(*WINDOW, [focus(10, 5), just_under], idle_gap_ms=IDLE)
    assert len(merged) == 1


def test_no_events_produce_no_sessions():
    assert segment(*WINDOW, [], [], [], idle_gap_ms=IDLE) == []


def test_lone_change_event_gets_minimal_span():
    sessions = segment(
        *WINDOW, [], [ChangeEvent(id=3, timestamp=30 * MINUTE)], idle_gap_ms=IDLE
    )
    assert len(sessions) == 1
    assert sessions[0].start_ms == 30 * MINUTE
    assert sessions[0].end_ms == 30 * MINUTE + MIN_SPAN_MS


def test_minimal_span_is_clamped_to_window_end():
    window_end = 30 * MINUTE + 200
    sessions = segment(
        0, window_end, [], [ChangeEvent(id=1, timestamp=30 * MINUTE)], idle_gap_ms=IDLE
    )
    assert sessions[0].end_ms == window_end


def test_evidence_points_open_and_extend_sessions():
    changes = [ChangeEvent(id=1, timestamp=22 * MINUTE)]
    visits = [VisitEvent(id=2, timestamp=28 * MINUTE)]
    sessions = segment(*WINDOW, [focus(10, 5)], changes, visits, idle_gap_ms=IDLE)
    assert spans(sessions) == [(10, 28)]


def test_focus_anchored_policy_ignores_evidence_points():
    changes = [ChangeEvent(id=1, timestamp=22 * MINUTE)]
    sessions = segment(
        *WINDOW,
        [focus(10, 5)],
        changes,
        idle_gap_ms=IDLE,
        policy=SegmentationPolicy.FOCUS_ANCHORED,
    )
    assert spans(sessions) == [(10, 15)]
    assert segment(*WINDOW, [], changes, idle_gap_ms=IDLE,
                   policy=SegmentationPolicy.FOCUS_ANCHORED) == []


def test_sessions_are_clamped_to_the_window():
    sessions = segment(
        20 * MINUTE, 40 * MINUTE, [focus(15, 10), focus(30, 30)], idle_gap_ms=IDLE
    )
    assert spans(sessions) == [(20, 40)]


def test_events_outside_window_are_ignored():
    sessions = segment(
        20 * MINUTE,
        40 * MINUTE,
        [focus(5, 5), focus(45, 5)],
        [ChangeEvent(id=1, timestamp=19 * MINUTE)],
        idle_gap_ms=IDLE,
    )
    assert sessions == []


def test_merge_streams_orders_ties_by_stream_position():
    f = FocusEvent(app_name="a", timestamp=100, duration=1)
    c = ChangeEvent(id=1, timestamp=100)
    v = VisitEvent(id=2, timestamp=100)
    early = VisitEvent(id=3, timestamp=50)

    merged = list(merge_streams([f], [c], [early, v]))

    assert merged == [early, f, c, v]


def test_output_is_ordered_and_non_overlapping():
    events = [focus(m, 3) for m in (0, 2, 4, 20, 21, 40, 70, 71)]
    changes = [ChangeEvent(id=i, timestamp=m * MINUTE) for i, m in enumerate((9, 33, 55), 1)]
    sessions = segment(*WINDOW, events, changes, idle_gap_ms=IDLE)

    for session in sessions:
        assert session.start_ms < session.end_ms
    for left, right in zip(sessions, sessions[1:]):
        assert left.end_ms <= right.start_ms
        assert right.start_ms - left.end_ms >= IDLE
