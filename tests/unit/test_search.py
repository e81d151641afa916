"""Unit tests for the client-side nonce search."""

from __future__ import annotations

import pytest

from powgate.client.search import (
    SearchFound,
    SearchProgress,
    SearchTask,
    search,
    simulate_progress,
)
from powgate.core import hashing
from powgate.types import SearchEventKind, SearchMode

PAYLOAD = bytes(range(32))


@pytest.mark.unit
class TestSearch:
    def test_finds_valid_nonce(self) -> None:
        found = search(PAYLOAD, 8)
        assert found is not None
        assert hashing.digest(PAYLOAD, found.nonce)[0] == 0
        assert hashing.verify(PAYLOAD, found.nonce, 8)
        assert found.total_hashes >= 1
        assert found.kind is SearchEventKind.FOUND

    def test_counts_attempts_from_start(self) -> None:
        found = search(PAYLOAD, 4, start_nonce=100)
        assert found is not None
        expected = next(n for n in range(100, 10_000) if hashing.verify(PAYLOAD, n, 4))
        assert found.nonce == expected
        assert found.total_hashes == expected - 100 + 1

    def test_wraps_around_nonce_space(self) -> None:
        start = 2**32 - 1
        payload = next(
            p for p in (bytes([i]) * 32 for i in range(256)) if not hashing.verify(p, start, 1)
        )
        found = search(payload, 1, start_nonce=start)
        assert found is not None

        candidates = [start, *range(64)]
        expected = next(n for n in candidates if hashing.verify(payload, n, 1))
        assert found.nonce == expected
        assert found.nonce < start
        assert found.total_hashes == candidates.index(expected) + 1

    def test_progress_reported_between_batches(self) -> None:
        events: list[SearchProgress] = []
        result = search(
            PAYLOAD,
            32,
            batch_size=100,
            report_interval=0,
            on_progress=events.append,
            max_attempts=1_000,
        )
        assert result is None
        assert [e.total_hashes for e in events] == list(range(100, 1_001, 100))
        assert all(e.kind is SearchEventKind.PROGRESS for e in events)
        assert all(e.elapsed_ms >= 1 for e in events)

    def test_should_stop(self) -> None:
        calls = []

        def stop() -> bool:
            calls.append(1)
            return True

        assert search(PAYLOAD, 32, batch_size=10, should_stop=stop) is None
        assert len(calls) == 1

    def test_zero_attempts_hashes_nothing(self) -> None:
        events: list[SearchProgress] = []
        result = search(
            PAYLOAD, 1, report_interval=0, on_progress=events.append, max_attempts=0
        )
        assert result is None
        assert events == []

    def test_rejects_negative_attempts(self) -> None:
        with pytest.raises(ValueError, match="max_attempts"):
            search(PAYLOAD, 8, max_attempts=-1)

    def test_rejects_bad_payload(self) -> None:
        with pytest.raises(ValueError, match="32 bytes"):
            search(b"short", 8)

    @pytest.mark.parametrize("bits", [0, 33])
    def test_rejects_bad_difficulty(self, bits: int) -> None:
        with pytest.raises(ValueError, match="difficulty"):
            search(PAYLOAD, bits)

    def test_rejects_bad_start_nonce(self) -> None:
        with pytest.raises(ValueError, match="unsigned 32-bit"):
            search(PAYLOAD, 8, start_nonce=2**32)


@pytest.mark.unit
class TestSimulateProgress:
    def test_emits_synthetic_progress_only(self) -> None:
        events: list[SearchProgress] = []
        simulate_progress(
            events.append,
            hash_rate=1_000,
            report_interval=0.001,
            should_stop=lambda: len(events) >= 3,
        )
        assert len(events) == 3
        assert all(isinstance(e, SearchProgress) for e in events)
        assert all(e.hash_rate == 1_000 for e in events)
        totals = [e.total_hashes for e in events]
        assert totals == sorted(totals)


@pytest.mark.unit
class TestSearchTask:
    def test_finds_nonce_in_worker_process(self) -> None:
        with SearchTask(PAYLOAD, 8) as task:
            result = task.wait(timeout=60)
        assert isinstance(result, SearchFound)
        assert hashing.verify(PAYLOAD, result.nonce, 8)
        assert task.result == result

    def test_found_is_last_event(self) -> None:
        with SearchTask(PAYLOAD, 8, report_interval=0) as task:
            events = list(task.events(timeout=60))
        assert isinstance(events[-1], SearchFound)
        assert all(isinstance(e, SearchProgress) for e in events[:-1])

    def test_cancel_stops_delivery(self) -> None:
        task = SearchTask(PAYLOAD, 32, mode=SearchMode.SIM, report_interval=0.01).start()
        first = next(task.events(timeout=30))
        assert isinstance(first, SearchProgress)

        task.cancel()
        task.cancel()
        assert list(task.events()) == []
        assert not task.running
        assert task.result is None

    def test_sim_mode_never_finds(self) -> None:
        with SearchTask(PAYLOAD, 1, mode=SearchMode.SIM, report_interval=0.01) as task:
            with pytest.raises(TimeoutError):
                for event in task.events(timeout=0.5):
                    assert isinstance(event, SearchProgress)

    def test_rejects_bad_payload(self) -> None:
        with pytest.raises(ValueError, match="32 bytes"):
            SearchTask(b"short", 8)

    def test_cannot_start_twice(self) -> None:
        task = SearchTask(PAYLOAD, 8).start()
        try:
            with pytest.raises(RuntimeError, match="already started"):
                task.start()
        finally:
            task.cancel()
