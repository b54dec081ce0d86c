import itertools
import threading
from datetime import timedelta
from unittest import mock

from conftest import T0, FakeAdapter, make_posting

from jobfeed.cache import CacheStore
from jobfeed.pipeline import BatchPipeline
from jobfeed.preferences import PreferenceStore
from jobfeed.service import JobService, is_new
from jobfeed.store import PostingStore

PM_PREFS = {"keywords": ["Product Manager"], "locations": ["Remote"]}


def _service(clock, adapters, users=None, store=None, **pipeline_kwargs):
    cache = CacheStore(clock=clock)
    prefs = PreferenceStore(users=users or {})
    pipeline = BatchPipeline(adapters, cache, posting_store=store, preferences=prefs, clock=clock, **pipeline_kwargs)
    return JobService(pipeline, cache, prefs, posting_store=store, clock=clock)


def test_identical_preferences_share_one_live_pass(clock):
    adapter = FakeAdapter("a", [make_posting(), make_posting(title="Recruiter")])
    service = _service(clock, [adapter], users={"u1": PM_PREFS, "u2": dict(PM_PREFS)})

    first = service.get_jobs_for_user("u1")
    second = service.get_jobs_for_user("u2")

    assert adapter.calls == 1
    assert [p.title for p in first] == ["Senior Product Manager"]
    assert [p.title for p in second] == ["Senior Product Manager"]
    assert second[0].cached
    stats = service.get_cache_stats()
    assert stats["hits"] == 1
    assert stats["live_entries"] == 1


def test_user_read_is_served_from_the_batch_pool(clock):
    adapter = FakeAdapter(
        "a",
        [
            make_posting(company="Acme"),
            make_posting(title="Marketing Coordinator"),
            make_posting(title="Product Manager", company="Beta"),
        ],
    )
    users = {"u": {**PM_PREFS, "target_companies": ["beta"]}}
    service = _service(clock, [adapter], users=users)
    service.trigger_batch_update()
    assert adapter.calls == 1

    jobs = service.get_jobs_for_user("u")

    assert adapter.calls == 1
    assert [(p.title, p.company) for p in jobs] == [
        ("Product Manager", "Beta"),
        ("Senior Product Manager", "Acme"),
    ]
    fp = service.user_fingerprint(service.preferences.get("u"))
    assert service.cache.entry(fp) is not None


def test_force_refresh_bypasses_the_cache(clock):
    adapter = FakeAdapter("a", [make_posting()])
    service = _service(clock, [adapter], users={"u": PM_PREFS})
    service.get_jobs_for_user("u")
    service.get_jobs_for_user("u")
    assert adapter.calls == 1

    refreshed = service.force_refresh_user("u")

    assert adapter.calls == 2
    assert len(refreshed) == 1


def test_live_postings_are_persisted_for_the_user(clock, db_path):
    store = PostingStore(db_path)
    service = _service(clock, [FakeAdapter("a", [make_posting()])], users={"u": PM_PREFS}, store=store)
    service.get_jobs_for_user("u")
    rows = store.recent(T0 - timedelta(days=1), user_id="u")
    assert [p.title for p in rows] == ["Senior Product Manager"]
    assert rows[0].cached is False


def test_cache_write_failure_still_returns_fresh_postings(clock):
    adapter = FakeAdapter("a", [make_posting()])
    service = _service(clock, [adapter], users={"u": PM_PREFS})
    with mock.patch.object(service.cache.backend, "save", side_effect=OSError("disk full")):
        jobs = service.get_jobs_for_user("u")
    assert len(jobs) == 1
    assert service.get_cache_stats()["write_failures"] == 1


def test_trigger_batch_update_returns_nothing_on_failure(clock):
    ticks = itertools.count(0, 1000)
    service = _service(
        clock, [FakeAdapter("a", [make_posting()])], run_timeout=10, monotonic=lambda: next(ticks)
    )
    assert service.trigger_batch_update() == []
    health = service.get_system_health()
    assert health["status"] == "warning"
    assert any(issue.startswith("Last batch run failed") for issue in health["issues"])


def test_trigger_batch_update_returns_the_run_postings(clock):
    service = _service(clock, [FakeAdapter("a", [make_posting(), make_posting(title="Designer")])])
    assert [p.title for p in service.trigger_batch_update()] == ["Senior Product Manager", "Designer"]


def test_health_reports_empty_then_healthy_then_stale(clock):
    service = _service(clock, [FakeAdapter("a", [make_posting()])])

    empty = service.get_system_health()
    assert empty["status"] == "warning"
    assert "No cached jobs available" in empty["issues"]
    assert empty["cached_jobs_available"] is False

    service.trigger_batch_update()
    healthy = service.get_system_health()
    assert healthy["status"] == "healthy"
    assert healthy["issues"] == []
    assert healthy["last_update"] == T0.isoformat()
    assert healthy["last_run"]["state"] == "done"

    clock.advance(hours=26)
    stale = service.get_system_health()
    assert stale["status"] == "warning"
    assert "Jobs last updated 26 hours ago" in stale["issues"]


def test_health_is_error_when_stats_fail(clock):
    service = _service(clock, [])
    with mock.patch.object(service.cache, "stats", side_effect=RuntimeError("boom")):
        health = service.get_system_health()
    assert health["status"] == "error"
    assert health["issues"] == ["System health check failed"]


def test_is_new_uses_a_24_hour_window():
    assert is_new(make_posting(posted_at=T0 - timedelta(hours=2)), T0)
    assert not is_new(make_posting(posted_at=T0 - timedelta(days=2)), T0)
    assert not is_new(make_posting(), T0)


def test_job_statistics(clock, db_path):
    store = PostingStore(db_path)
    adapters = [
        FakeAdapter("a", [make_posting(source="remoteok"), make_posting(title="Designer", source="remoteok")]),
        FakeAdapter("b", [make_posting(title="Data Scientist", source="lever")]),
    ]
    users = {"u1": {"target_companies": ["Stripe", "Figma"]}, "u2": {"target_companies": ["stripe"]}}
    service = _service(clock, adapters, users=users, store=store)
    service.trigger_batch_update()

    stats = service.job_statistics()

    assert stats["total_cached_jobs"] == 3
    assert stats["jobs_by_source"] == {"remoteok": 2, "lever": 1}
    assert stats["unique_target_companies"] == 2
    assert stats["target_companies"] == ["Stripe", "Figma"]
    assert stats["last_updated"] == T0.isoformat()
    assert service.get_cache_stats()["persisted_cached_postings"] == 3


def test_failed_live_pass_does_not_hide_a_later_batch(clock):
    adapter = FakeAdapter("a", [make_posting()], fail=True)
    service = _service(clock, [adapter], users={"u": PM_PREFS})

    assert service.get_jobs_for_user("u") == []
    assert service.get_cache_stats()["entries"] == 0

    adapter.fail = False
    assert len(service.trigger_batch_update()) == 1
    clock.advance(hours=1)

    jobs = service.get_jobs_for_user("u")
    assert [p.title for p in jobs] == ["Senior Product Manager"]
    assert adapter.calls == 2


def test_empty_cache_entry_falls_through_to_the_batch_pool(clock):
    adapter = FakeAdapter("a", [make_posting()])
    service = _service(clock, [adapter], users={"u": PM_PREFS})
    service.trigger_batch_update()
    fp = service.user_fingerprint(service.preferences.get("u"))
    service.cache.put(fp, {}, [])

    assert len(service.get_jobs_for_user("u")) == 1
    assert adapter.calls == 1


def test_health_reports_timed_out_adapter_threads(clock):
    release = threading.Event()
    slow = FakeAdapter("slow", [make_posting()], block=release)
    service = _service(clock, [slow, FakeAdapter("fast", [make_posting(title="Designer")])], adapter_timeout=0.2)
    try:
        service.trigger_batch_update()
        health = service.get_system_health()
    finally:
        release.set()
    assert health["status"] == "warning"
    assert health["stalled_workers"] == ["slow"]
    assert "1 timed-out adapter thread(s) still running: slow" in health["issues"]
    assert health["last_run"]["timed_out"] == ["slow"]
