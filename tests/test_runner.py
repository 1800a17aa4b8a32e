import threading
from datetime import timedelta

from activity_sessions.runner import PeriodicBuilder


class FakeBuilder:
    def __init__(self, results):
        self.results = list(results)
        self.calls = 0
        self.called = threading.Event()

    def build_incremental(self):
        self.calls += 1
        self.called.set()
        result = self.results.pop(0) if self.results else 0
        if isinstance(result, Exception):
            raise result
        return result


def test_run_once_returns_created_count():
    assert PeriodicBuilder(FakeBuilder([3]), timedelta(minutes=5)).run_once() == 3


def test_run_once_logs_and_survives_failures(caplog):
    periodic = PeriodicBuilder(FakeBuilder([RuntimeError("locked")]), timedelta(minutes=5))

    assert periodic.run_once() == 0
    assert "Incremental session build failed" in caplog.text


def test_run_until_stopped_returns_once_event_is_set():
    stop_event = threading.Event()
    builder = FakeBuilder([])

    class StoppingBuilder:
        def build_incremental(self):
            stop_event.set()
            return builder.build_incremental()

    PeriodicBuilder(StoppingBuilder(), timedelta(minutes=5)).run_until_stopped(stop_event)

    assert builder.calls == 1


def test_start_and_stop_background_thread():
    builder = FakeBuilder([1])
    periodic = PeriodicBuilder(builder, timedelta(minutes=5))

    periodic.start()
    periodic.start()
    assert builder.called.wait(timeout=5)
    assert periodic.is_running()

    periodic.stop()
    assert not periodic.is_running()
    assert builder.calls == 1
