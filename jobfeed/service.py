"""Consumer-facing operations: cache-first reads, refreshes, stats and health."""
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Any

from jobfeed.cache import CacheStore
from jobfeed.errors import RunInProgress
from jobfeed.filtering import filter_postings, prioritize
from jobfeed.fingerprint import fingerprint
from jobfeed.log import get_logger
from jobfeed.models import Clock, JobPosting, UserPreference, utcnow
from jobfeed.pipeline import BatchPipeline, RunState
from jobfeed.preferences import PreferenceStore
from jobfeed.scheduler import BatchScheduler
from jobfeed.store import PostingStore

log = get_logger(__name__)

NEW_WINDOW = timedelta(hours=24)
STALE_AFTER = timedelta(hours=25)


def is_new(posting: JobPosting, now: datetime) -> bool:
    """Posted within the last 24 hours."""
    return posting.posted_at is not None and posting.posted_at > now - NEW_WINDOW


def _search_params(prefs: UserPreference) -> dict[str, Any]:
    return {"keywords": list(prefs.keywords), "locations": list(prefs.locations)}


class JobService:
    def __init__(
        self,
        pipeline: BatchPipeline,
        cache: CacheStore,
        preferences: PreferenceStore,
        posting_store: PostingStore | None = None,
        scheduler: BatchScheduler | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.pipeline = pipeline
        self.cache = cache
        self.preferences = preferences
        self.posting_store = posting_store
        self.scheduler = scheduler
        self.clock = clock

    @staticmethod
    def user_fingerprint(prefs: UserPreference) -> str:
        return fingerprint(prefs.keywords, prefs.locations)

    def _rank(self, postings: list[JobPosting], prefs: UserPreference) -> list[JobPosting]:
        return prioritize(filter_postings(postings, prefs), prefs.target_companies)

    def _live(self, user_id: str, prefs: UserPreference, fp: str) -> list[JobPosting]:
        try:
            postings = self.pipeline.live_pass(prefs.keywords, prefs.locations)
        except Exception as exc:
            log.error("Live pass for user %s failed: %s", user_id, exc)
            return []
        ranked = self._rank(postings, prefs)
        if not ranked:
            # an empty entry would shadow the batch pool until it expires
            log.warning("Live pass for user %s found nothing — not caching", user_id)
            return []
        if self.posting_store is not None:
            try:
                self.posting_store.insert_for_user(user_id, ranked)
            except Exception as exc:
                log.error("Persisting live postings for user %s failed: %s", user_id, exc)
        if not self.cache.put(fp, _search_params(prefs), ranked):
            log.warning("Returning %d live postings to user %s uncached", len(ranked), user_id)
        return ranked

    def get_jobs_for_user(self, user_id: str) -> list[JobPosting]:
        """Cache first; the batch pool next; a live adapter pass only when both are empty."""
        prefs = self.preferences.get(user_id)
        fp = self.user_fingerprint(prefs)

        cached = self.cache.get(fp)
        if cached:
            self.cache.touch(fp)
            ranked = self._rank(cached, prefs)
            log.info("User %s: %d postings from cache", user_id, len(ranked))
            return ranked

        pool = self.cache.get(self.pipeline.fingerprint)
        if pool:
            filtered = filter_postings(pool, prefs)
            if filtered:
                self.cache.put(fp, _search_params(prefs), filtered)
            log.info("User %s: %d postings from the batch pool", user_id, len(filtered))
            return prioritize(filtered, prefs.target_companies)

        log.info("User %s: cache empty — running a live pass", user_id)
        return self._live(user_id, prefs, fp)

    def force_refresh_user(self, user_id: str) -> list[JobPosting]:
        prefs = self.preferences.get(user_id)
        log.info("Force refresh for user %s", user_id)
        return self._live(user_id, prefs, self.user_fingerprint(prefs))

    def trigger_batch_update(self) -> list[JobPosting]:
        try:
            record = self.pipeline.run("manual")
        except RunInProgress:
            log.warning("Manual batch update skipped — a run is already in progress")
            return []
        if not record.succeeded:
            return []
        return list(record.postings)

    def get_cache_stats(self) -> dict[str, Any]:
        stats = self.cache.stats()
        if self.posting_store is not None:
            try:
                stats["persisted_cached_postings"] = self.posting_store.count(cached=True)
            except Exception as exc:
                log.warning("Counting persisted postings failed: %s", exc)
        return stats

    def _last_update(self) -> datetime | None:
        candidates = [self.cache.last_update()]
        if self.posting_store is not None:
            candidates.append(self.posting_store.latest_scrape(cached=True))
        present = [c for c in candidates if c is not None]
        return max(present) if present else None

    def get_system_health(self) -> dict[str, Any]:
        now = self.clock()
        last_run = self.pipeline.last_run
        try:
            available = self.cache.stats()["cached_postings"]
            last_update = self._last_update()
        except Exception as exc:
            log.error("Health check failed: %s", exc)
            return {
                "status": "error",
                "cached_jobs_available": False,
                "last_update": None,
                "scheduler_state": RunState.IDLE.value,
                "scheduler_running": False,
                "stalled_workers": [],
                "last_run": None,
                "issues": ["System health check failed"],
            }

        issues: list[str] = []
        if available == 0:
            issues.append("No cached jobs available")
        if last_update is not None and now - last_update > STALE_AFTER:
            hours = (now - last_update).total_seconds() / 3600
            issues.append(f"Jobs last updated {round(hours)} hours ago")
        if last_run is not None and last_run.state is RunState.FAILED:
            issues.append(f"Last batch run failed: {last_run.error}")
        stalled = self.pipeline.stalled_workers
        if stalled:
            issues.append(f"{len(stalled)} timed-out adapter thread(s) still running: {', '.join(stalled)}")

        state = self.scheduler.state if self.scheduler is not None else self.pipeline.state
        return {
            "status": "warning" if issues else "healthy",
            "cached_jobs_available": available > 0,
            "last_update": last_update.isoformat() if last_update else None,
            "scheduler_state": state.value,
            "scheduler_running": bool(self.scheduler and self.scheduler.running),
            "stalled_workers": stalled,
            "last_run": last_run.summary() if last_run else None,
            "issues": issues,
        }

    def job_statistics(self) -> dict[str, Any]:
        since = self.clock() - NEW_WINDOW
        by_source: dict[str, int] = {}
        if self.posting_store is not None:
            by_source = self.posting_store.counts_by_source(since)
        companies = self.preferences.all_target_companies()
        last_update = self._last_update()
        return {
            "total_cached_jobs": sum(by_source.values()),
            "last_updated": last_update.isoformat() if last_update else None,
            "jobs_by_source": by_source,
            "unique_target_companies": len(companies),
            "target_companies": companies,
        }
