from activity_sessions.binder import bind_change_events, bind_visit_events
from activity_sessions.models import ChangeEvent, Session, VisitEvent


def make_sessions():
    return [Session(start_ms=100, end_ms=200), Session(start_ms=500, end_ms=600)]


def test_binds_events_to_containing_session_and_returns_orphans():
    sessions = make_sessions()
    changes = [
        ChangeEvent(id=1, timestamp=50),
        ChangeEvent(id=2, timestamp=100),
        ChangeEvent(id=3, timestamp=200),
        ChangeEvent(id=4, timestamp=300),
        ChangeEvent(id=5, timestamp=550),
        ChangeEvent(id=6, timestamp=700),
    ]

    orphans = bind_change_events(sessions, changes)

    assert sessions[0].metadata.diff_ids == [2, 3]
    assert sessions[1].metadata.diff_ids == [5]
    assert [event.id for event in orphans] == [1, 4, 6]


def test_visit_events_land_in_browser_ids():
    sessions = make_sessions()
    orphans = bind_visit_events(
        sessions, [VisitEvent(id=7, timestamp=150), VisitEvent(id=8, timestamp=600)]
    )
    assert orphans == []
    assert sessions[0].metadata.browser_event_ids == [7]
    assert sessions[1].metadata.browser_event_ids == [8]
    assert sessions[0].metadata.diff_ids == []


def test_events_without_identifier_are_skipped():
    sessions = make_sessions()
    orphans = bind_change_events(sessions, [ChangeEvent(id=0, timestamp=150)])
    assert orphans == []
    assert not sessions[0].metadata.has_evidence


def test_no_sessions_makes_everything_an_orphan():
    events = [VisitEvent(id=1, timestamp=10), VisitEvent(id=2, timestamp=20)]
    assert bind_visit_events([], events) == events
