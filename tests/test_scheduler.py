import itertools
import logging
from datetime import datetime, timedelta, timezone

import pytest
from apscheduler.triggers.cron import CronTrigger
from conftest import T0, FakeAdapter, make_posting

from jobfeed.cache import CacheStore
from jobfeed.config import CONFIG_DIR, Schedule, load_settings
from jobfeed.pipeline import BatchPipeline, RunState
from jobfeed.scheduler import DAILY_JOB, HOURLY_JOB, WEEKLY_JOB, BatchScheduler
from jobfeed.store import PostingStore


@pytest.fixture
def adapter():
    return FakeAdapter("a", [make_posting()])


def _scheduler(clock, adapter, store=None, **pipeline_kwargs):
    cache = CacheStore(clock=clock)
    pipeline = BatchPipeline([adapter], cache, posting_store=store, clock=clock, **pipeline_kwargs)
    return BatchScheduler(pipeline, cache, posting_store=store, timezone="UTC", clock=clock)


def test_start_registers_three_cron_jobs(clock, adapter):
    scheduler = _scheduler(clock, adapter)
    scheduler.start()
    try:
        scheduler.start()
        jobs = scheduler.jobs()
        assert set(jobs) == {DAILY_JOB, HOURLY_JOB, WEEKLY_JOB}
        assert all(next_run is not None for next_run in jobs.values())
        assert scheduler.running
    finally:
        scheduler.stop(wait=False)
    assert not scheduler.running
    assert adapter.calls == 0


def test_invalid_crontab_is_rejected(clock, adapter):
    cache = CacheStore(clock=clock)
    scheduler = BatchScheduler(
        BatchPipeline([adapter], cache, clock=clock), cache, schedule=Schedule(daily="not a cron"), timezone="UTC"
    )
    with pytest.raises(ValueError):
        scheduler.start()
    assert not scheduler.running


def test_health_check_runs_only_when_cache_is_empty(clock, adapter):
    scheduler = _scheduler(clock, adapter)

    report = scheduler.health_check()
    assert report["cache_empty"] is True
    assert report["emergency_run"] is True
    assert report["emergency_state"] == "done"
    assert adapter.calls == 1

    report = scheduler.health_check()
    assert report["cache_empty"] is False
    assert report["emergency_run"] is False
    assert adapter.calls == 1
    assert scheduler.last_health is report


def test_health_check_skips_while_a_run_is_in_progress(clock, adapter):
    scheduler = _scheduler(clock, adapter)
    scheduler.pipeline._run_lock.acquire()
    try:
        report = scheduler.health_check()
    finally:
        scheduler.pipeline._run_lock.release()
    assert report["emergency_run"] is False
    assert adapter.calls == 0


def test_run_now_returns_none_when_busy(clock, adapter):
    scheduler = _scheduler(clock, adapter)
    scheduler.pipeline._run_lock.acquire()
    try:
        assert scheduler.run_now("daily") is None
    finally:
        scheduler.pipeline._run_lock.release()


def test_failed_run_is_logged_and_not_retried(clock, adapter, caplog):
    ticks = itertools.count(0, 1000)
    scheduler = _scheduler(clock, adapter, run_timeout=10, monotonic=lambda: next(ticks))

    with caplog.at_level(logging.ERROR, logger="jobfeed.scheduler"):
        record = scheduler.daily_run()

    assert record.state is RunState.FAILED
    assert record.trigger == "daily"
    assert adapter.calls == 1
    assert scheduler.last_run is record
    assert any("FAILED" in r.getMessage() for r in caplog.records)


def test_cleanup_applies_retention_and_evicts_expired_entries(clock, adapter, db_path):
    store = PostingStore(db_path)
    store.insert_cached(
        [
            make_posting(title="Old", scraped_at=T0 - timedelta(days=10)),
            make_posting(title="Fresh", scraped_at=T0 - timedelta(days=1)),
        ]
    )
    scheduler = _scheduler(clock, adapter, store=store)
    scheduler.cache.put("stale|remote|remote", {}, [make_posting()], ttl=timedelta(hours=1))
    scheduler.cache.put("live|remote|remote", {}, [make_posting()], ttl=timedelta(days=3))
    clock.advance(hours=2)

    result = scheduler.cleanup()

    assert result == {"postings_deleted": 1, "cache_entries_evicted": 1}
    assert [p.title for p in store.recent(T0 - timedelta(days=30))] == ["Fresh"]
    assert scheduler.cache.stats()["entries"] == 1
    assert scheduler.last_cleanup == result


def test_default_weekly_cleanup_fires_on_sunday(clock, adapter):
    assert Schedule().weekly == "0 3 * * sun"
    scheduler = _scheduler(clock, adapter)
    scheduler.start()
    try:
        weekly = scheduler.jobs()[WEEKLY_JOB]
    finally:
        scheduler.stop(wait=False)
    assert weekly.strftime("%A") == "Sunday"
    assert (weekly.hour, weekly.minute) == (3, 0)


def test_shipped_settings_keep_cleanup_on_sunday():
    settings = load_settings(CONFIG_DIR / "settings.yaml")
    trigger = CronTrigger.from_crontab(settings.schedule.weekly, timezone="UTC")
    first = trigger.get_next_fire_time(None, datetime(2024, 5, 1, tzinfo=timezone.utc))
    assert first.strftime("%A") == "Sunday"
