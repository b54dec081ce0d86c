import threading
import time
from unittest import mock

import pytest
from conftest import FakeAdapter, FakeSearchService, make_posting

from jobfeed.cache import CacheStore
from jobfeed.errors import RunInProgress
from jobfeed.models import SearchHit
from jobfeed.orchestrator import QuotaBudget, SearchOrchestrator
from jobfeed.pipeline import BatchPipeline, RunState
from jobfeed.preferences import PreferenceStore
from jobfeed.store import PostingStore


def _scenario_adapters():
    a1 = make_posting(title="Backend Engineer", company="A1")
    a2 = make_posting(title="Product Manager", company="A2")
    adapter_a = FakeAdapter("a", [a1, a2])
    adapter_b = FakeAdapter("b", fail=True)
    adapter_c = FakeAdapter(
        "c",
        [
            make_posting(title="Backend Engineer", company="A1", source="c"),
            make_posting(title="Data Scientist", company="C1", source="c"),
            make_posting(title="Designer", company="C2", source="c"),
        ],
    )
    return adapter_a, adapter_b, adapter_c


def test_run_survives_a_failing_adapter(clock, db_path):
    a, b, c = _scenario_adapters()
    cache = CacheStore(clock=clock)
    store = PostingStore(db_path)
    pipeline = BatchPipeline([a, b, c], cache, posting_store=store, clock=clock)

    record = pipeline.run("test")

    assert record.state is RunState.DONE
    assert record.states == [
        RunState.IDLE, RunState.COLLECTING, RunState.DEDUPING, RunState.CACHING, RunState.DONE,
    ]
    assert len(record.postings) == 4
    assert record.source_counts == {"a": 2, "b": 0, "c": 3}
    assert b.calls == 1
    # first-seen wins: A's copy of the shared posting is kept
    assert record.postings[0].source == "test"
    assert record.cache_written
    assert len(cache.get(pipeline.fingerprint)) == 4
    assert store.count(cached=True) == 4
    assert pipeline.last_run is record
    assert pipeline.state is RunState.IDLE


def test_slow_adapter_is_bounded_by_timeout(clock):
    release = threading.Event()
    fast = FakeAdapter("fast", [make_posting(title="Fast")])
    slow = FakeAdapter("slow", [make_posting(title="Slow")], block=release)
    pipeline = BatchPipeline([slow, fast], CacheStore(clock=clock), adapter_timeout=0.2, clock=clock)
    try:
        record = pipeline.run()
        assert pipeline.stalled_workers == ["slow"]
    finally:
        release.set()
    assert record.state is RunState.DONE
    assert [p.title for p in record.postings] == ["Fast"]
    assert record.source_counts["slow"] == 0
    assert record.timed_out == ["slow"]
    assert record.summary()["timed_out"] == ["slow"]
    for _ in range(100):
        if not pipeline.stalled_workers:
            break
        time.sleep(0.01)
    assert pipeline.stalled_workers == []


def test_run_deadline_marks_failed(clock):
    ticks = {"now": 0.0}

    class SlowClockAdapter(FakeAdapter):
        def search(self, keywords, locations):
            ticks["now"] += 1000
            return super().search(keywords, locations)

    cache = CacheStore(clock=clock)
    pipeline = BatchPipeline(
        [SlowClockAdapter("slow", [make_posting()])],
        cache,
        run_timeout=10,
        clock=clock,
        monotonic=lambda: ticks["now"],
    )
    record = pipeline.run()
    assert record.state is RunState.FAILED
    assert RunState.CACHING not in record.states
    assert "RunDeadlineExceeded" in record.error
    assert cache.is_empty()


def test_cache_write_failure_does_not_fail_the_run(clock):
    cache = CacheStore(clock=clock)
    pipeline = BatchPipeline([FakeAdapter("a", [make_posting()])], cache, clock=clock)
    with mock.patch.object(cache.backend, "save", side_effect=OSError("read-only")):
        record = pipeline.run()
    assert record.state is RunState.DONE
    assert record.cache_written is False
    assert len(record.postings) == 1


def test_site_search_joins_the_collection_with_a_fresh_budget(clock):
    hit = SearchHit("Product Manager - Stripe", "Stripe is hiring", "https://jobs.lever.co/stripe/1")
    service = FakeSearchService(hits=lambda q: [hit])
    budget = QuotaBudget(3)
    budget.consume()
    orchestrator = SearchOrchestrator(service, budget)
    prefs = PreferenceStore(users={"u": {"target_companies": ["Stripe"]}, "v": {"target_companies": ["stripe"]}})
    pipeline = BatchPipeline(
        [FakeAdapter("a", [make_posting(title="Engineer")])],
        CacheStore(clock=clock),
        orchestrator=orchestrator,
        preferences=prefs,
        clock=clock,
    )
    record = pipeline.run()
    assert record.search_calls == 3
    assert len(service.queries) == 3
    assert all('"Stripe"' in q for q in service.queries)
    # adapters first, site search after; identical hits collapse in dedupe
    assert [p.source for p in record.postings] == ["test", "ats_boards"]
    assert record.source_counts["site_search"] == 3


def test_concurrent_run_is_rejected(clock):
    release = threading.Event()
    pipeline = BatchPipeline(
        [FakeAdapter("slow", [make_posting()], block=release)], CacheStore(clock=clock), clock=clock
    )
    worker = threading.Thread(target=pipeline.run)
    worker.start()
    try:
        for _ in range(100):
            if pipeline.running:
                break
            time.sleep(0.01)
        with pytest.raises(RunInProgress):
            pipeline.run()
    finally:
        release.set()
        worker.join(5)
    assert pipeline.last_run.state is RunState.DONE


def test_live_pass_does_not_touch_cache_or_budget(clock):
    service = FakeSearchService()
    orchestrator = SearchOrchestrator(service, QuotaBudget(5))
    cache = CacheStore(clock=clock)
    pipeline = BatchPipeline(
        [FakeAdapter("a", [make_posting(), make_posting()])], cache, orchestrator=orchestrator, clock=clock
    )
    postings = pipeline.live_pass(["Product Manager"], ["Remote"])
    assert len(postings) == 1
    assert service.queries == []
    assert cache.is_empty()
