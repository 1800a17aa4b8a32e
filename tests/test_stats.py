import threading

import pytest
from pydantic import ValidationError

from activity_sessions.stats import BuildStats


def test_concurrent_writers_lose_no_updates():
    stats = BuildStats(clock=lambda: 42)
    workers, rounds = 8, 500
    barrier = threading.Barrier(workers)

    def hammer(index):
        barrier.wait()
        for round_number in range(rounds):
            stats.record_error(RuntimeError(f"worker {index} round {round_number}"))
            stats.record_success()

    threads = [threading.Thread(target=hammer, args=(i,)) for i in range(workers)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    snapshot = stats.snapshot()
    assert snapshot.error_count == workers * rounds
    assert snapshot.last_build_at == 42
    assert snapshot.last_error_at == 42
    assert snapshot.last_error.startswith("worker ")


def test_error_without_message_records_its_type():
    stats = BuildStats(clock=lambda: 7)
    stats.record_error(TimeoutError())
    assert stats.snapshot().last_error == "TimeoutError"


def test_snapshot_is_frozen():
    snapshot = BuildStats().snapshot()
    with pytest.raises(ValidationError):
        snapshot.error_count = 3
