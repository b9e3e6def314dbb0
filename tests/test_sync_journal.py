"""Tests for the sync journal."""

import threading
from concurrent.futures import ThreadPoolExecutor

from hypothesis import given
from hypothesis import strategies as st

from market_sync.utils.sync_journal import (
    FETCH_COMPLETE,
    FETCH_RETRY,
    LOAD_FAILED,
    SyncJournal,
)
from market_sync.utils.trace_context import run_in_context, sync_trace


class TestSyncJournal:
    """Test suite for SyncJournal."""

    def test_record_populates_fields(self):
        journal = SyncJournal()

        event = journal.record(
            FETCH_COMPLETE,
            "market_data_service",
            "series fetch finished",
            context={"asset_id": "bitcoin"},
            duration_ms=12.5,
        )

        assert event.id
        assert event.timestamp.endswith("Z")
        assert event.trace_id is None
        assert event.context == {"asset_id": "bitcoin"}
        assert journal.events() == [event]

    def test_record_stamps_active_trace(self):
        journal = SyncJournal()

        with sync_trace() as trace_id:
            event = journal.record(FETCH_RETRY, "retry_policy", "retrying")

        assert event.trace_id == trace_id

    def test_to_dict_drops_none_values(self):
        event = SyncJournal().record(LOAD_FAILED, "market_data_service", "gave up")

        data = event.to_dict()
        assert "trace_id" not in data
        assert "duration_ms" not in data
        assert data["context"] == {}

    def test_context_is_copied(self):
        journal = SyncJournal()
        context = {"attempt": 1}

        event = journal.record(FETCH_RETRY, "retry_policy", "retry", context=context)
        context["attempt"] = 2

        assert event.context == {"attempt": 1}

    def test_filter_by_type_keeps_newest(self):
        journal = SyncJournal()
        for i in range(10):
            journal.record(FETCH_RETRY, "retry_policy", f"retry {i}")
        journal.record(FETCH_COMPLETE, "market_data_service", "done")

        events = journal.events(FETCH_RETRY, limit=3)

        assert [e.message for e in events] == ["retry 7", "retry 8", "retry 9"]
        assert journal.events(FETCH_RETRY, limit=0) == []
        assert len(journal.events(FETCH_RETRY)) == 10

    def test_filter_by_trace_separates_passes(self):
        journal = SyncJournal()
        with sync_trace() as first:
            journal.record(FETCH_COMPLETE, "svc", "one")
        with sync_trace() as second:
            journal.record(FETCH_COMPLETE, "svc", "two")
            journal.record(LOAD_FAILED, "svc", "three")

        assert first != second
        assert [e.message for e in journal.events(trace_id=first)] == ["one"]
        assert [e.message for e in journal.events(LOAD_FAILED, trace_id=second)] == ["three"]

    def test_workers_record_under_submitting_trace(self):
        journal = SyncJournal()

        with sync_trace() as trace_id:
            with ThreadPoolExecutor(max_workers=4) as executor:
                for i in range(8):
                    executor.submit(
                        run_in_context(journal.record), FETCH_COMPLETE, "worker", str(i)
                    )

        assert len(journal.events(trace_id=trace_id)) == 8

    @given(
        capacity=st.integers(min_value=1, max_value=50),
        count=st.integers(min_value=0, max_value=120),
    )
    def test_journal_is_bounded(self, capacity, count):
        """
        **Feature: market-sync, Property 9: Journal is bounded**

        For any capacity and number of recorded events, the journal keeps at
        most ``capacity`` entries and the ones it keeps are the most recent.
        """
        journal = SyncJournal(capacity=capacity)
        for i in range(count):
            journal.record(FETCH_COMPLETE, "svc", str(i))

        kept = journal.events()
        assert len(kept) == min(count, capacity)
        assert [e.message for e in kept] == [str(i) for i in range(count - len(kept), count)]

    def test_concurrent_writers(self):
        journal = SyncJournal()

        def writer(n):
            for i in range(100):
                journal.record(FETCH_COMPLETE, f"writer-{n}", str(i))

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(journal.events()) == 800
