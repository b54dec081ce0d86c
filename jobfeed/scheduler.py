"""Timer-driven batch scheduling on APScheduler.

Three cron triggers: the daily full run, the hourly health check (which
forces an emergency run only when the cache is completely empty) and the
weekly retention cleanup. A failed run is logged and left for the next
trigger.
"""
from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Any

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from jobfeed.cache import CacheStore
from jobfeed.config import Schedule
from jobfeed.errors import RunInProgress
from jobfeed.log import get_logger
from jobfeed.models import Clock, utcnow
from jobfeed.pipeline import BatchPipeline, RunRecord, RunState
from jobfeed.store import PostingStore

log = get_logger(__name__)

DAILY_JOB = "daily_batch"
HOURLY_JOB = "hourly_health"
WEEKLY_JOB = "weekly_cleanup"


class BatchScheduler:
    def __init__(
        self,
        pipeline: BatchPipeline,
        cache: CacheStore,
        posting_store: PostingStore | None = None,
        schedule: Schedule | None = None,
        timezone: str = "America/New_York",
        retention_days: int = 7,
        clock: Clock = utcnow,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.cache = cache
        self.posting_store = posting_store
        self.schedule = schedule or Schedule()
        self.timezone = timezone
        self.retention = timedelta(days=retention_days)
        self.clock = clock
        self._scheduler = scheduler or BackgroundScheduler(timezone=timezone)
        self._lock = threading.Lock()
        self._started = False
        self.last_health: dict[str, Any] | None = None
        self.last_cleanup: dict[str, int] | None = None

    @property
    def running(self) -> bool:
        return self._started

    @property
    def state(self) -> RunState:
        return self.pipeline.state

    @property
    def last_run(self) -> RunRecord | None:
        return self.pipeline.last_run

    def _add_jobs(self) -> None:
        triggers = (
            (DAILY_JOB, self.schedule.daily, self.daily_run),
            (HOURLY_JOB, self.schedule.hourly, self.health_check),
            (WEEKLY_JOB, self.schedule.weekly, self.cleanup),
        )
        for job_id, expr, func in triggers:
            self._scheduler.add_job(
                func,
                CronTrigger.from_crontab(expr, timezone=self.timezone),
                id=job_id,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            log.info("Scheduled %s: %s (%s)", job_id, expr, self.timezone)

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._add_jobs()
            self._scheduler.start()
            self._started = True
        log.info("Scheduler started")

    def stop(self, wait: bool = True) -> None:
        """Shut the timer down; an in-flight run finishes when *wait* is True."""
        with self._lock:
            if not self._started:
                return
            self._scheduler.shutdown(wait=wait)
            self._started = False
        log.info("Scheduler stopped")

    def jobs(self) -> dict[str, datetime | None]:
        """Job id -> next fire time."""
        return {job.id: getattr(job, "next_run_time", None) for job in self._scheduler.get_jobs()}

    # -- job bodies -------------------------------------------------------

    def run_now(self, trigger: str = "manual") -> RunRecord | None:
        """Run the pipeline in this thread; None when another run is in progress."""
        try:
            record = self.pipeline.run(trigger)
        except RunInProgress:
            log.warning("Skipping %s run — another batch run is in progress", trigger)
            return None
        if not record.succeeded:
            log.error("Run %s (%s) FAILED: %s — waiting for the next trigger", record.run_id, trigger, record.error)
        return record

    def daily_run(self) -> RunRecord | None:
        return self.run_now("daily")

    def health_check(self) -> dict[str, Any]:
        empty = self.cache.is_empty()
        report: dict[str, Any] = {
            "checked_at": self.clock().isoformat(),
            "cache_empty": empty,
            "emergency_run": False,
        }
        if empty and not self.pipeline.running:
            log.warning("Health check: cache is empty — starting emergency run")
            record = self.run_now("emergency")
            report["emergency_run"] = record is not None
            report["emergency_state"] = record.state.value if record else None
        else:
            log.info("Health check: cache %s", "empty (run in progress)" if empty else "ok")
        self.last_health = report
        return report

    def cleanup(self) -> dict[str, int]:
        cutoff = self.clock() - self.retention
        deleted = 0
        if self.posting_store is not None:
            try:
                deleted = self.posting_store.delete_scraped_before(cutoff)
            except Exception as exc:
                log.error("Retention cleanup failed: %s", exc)
        evicted = self.cache.evict_expired()
        result = {"postings_deleted": deleted, "cache_entries_evicted": evicted}
        log.info("Weekly cleanup: %s", result)
        self.last_cleanup = result
        return result
