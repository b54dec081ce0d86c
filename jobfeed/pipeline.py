"""Batch pipeline: collect from every source, dedupe, cache, persist.

One run walks ``IDLE -> COLLECTING -> DEDUPING -> CACHING -> DONE``; any
exception ends it in ``FAILED``. Failed runs are not retried here; the
next scheduled trigger is the recovery path.
"""
from __future__ import annotations

import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from functools import partial
from typing import Any, Callable, Sequence

from jobfeed.cache import CacheStore
from jobfeed.config import DEFAULT_BATCH_KEYWORDS, Settings
from jobfeed.dedupe import dedupe
from jobfeed.errors import RunDeadlineExceeded, RunInProgress
from jobfeed.fingerprint import fingerprint
from jobfeed.log import get_logger
from jobfeed.models import Clock, JobPosting, utcnow
from jobfeed.orchestrator import SearchOrchestrator
from jobfeed.preferences import PreferenceStore
from jobfeed.sources.base import SourceAdapter
from jobfeed.store import PostingStore

log = get_logger(__name__)

SITE_SEARCH = "site_search"


class RunState(str, Enum):
    IDLE = "idle"
    COLLECTING = "collecting"
    DEDUPING = "deduping"
    CACHING = "caching"
    DONE = "done"
    FAILED = "failed"


@dataclass
class RunRecord:
    run_id: str
    trigger: str
    started_at: datetime
    state: RunState = RunState.IDLE
    states: list[RunState] = field(default_factory=lambda: [RunState.IDLE])
    finished_at: datetime | None = None
    postings: list[JobPosting] = field(default_factory=list, repr=False)
    source_counts: dict[str, int] = field(default_factory=dict)
    search_calls: int = 0
    timed_out: list[str] = field(default_factory=list)
    cache_written: bool = False
    stored: int = 0
    error: str | None = None

    def advance(self, state: RunState) -> None:
        self.state = state
        self.states.append(state)
        log.debug("Run %s -> %s", self.run_id, state.value)

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.DONE

    def summary(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "trigger": self.trigger,
            "state": self.state.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "postings": len(self.postings),
            "source_counts": dict(self.source_counts),
            "search_calls": self.search_calls,
            "timed_out": list(self.timed_out),
            "cache_written": self.cache_written,
            "error": self.error,
        }


class BatchPipeline:
    def __init__(
        self,
        sources: Sequence[SourceAdapter],
        cache: CacheStore,
        posting_store: PostingStore | None = None,
        orchestrator: SearchOrchestrator | None = None,
        preferences: PreferenceStore | None = None,
        keywords: Sequence[str] = tuple(DEFAULT_BATCH_KEYWORDS),
        locations: Sequence[str] = ("Remote",),
        adapter_timeout: float = 30.0,
        run_timeout: float = 900.0,
        clock: Clock = utcnow,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self.sources = list(sources)
        self.cache = cache
        self.posting_store = posting_store
        self.orchestrator = orchestrator
        self.preferences = preferences
        self.keywords = list(keywords)
        self.locations = list(locations)
        self.adapter_timeout = adapter_timeout
        self.run_timeout = run_timeout
        self.clock = clock
        self.monotonic = monotonic
        self.last_run: RunRecord | None = None
        self._current: RunRecord | None = None
        self._run_lock = threading.Lock()
        self._stragglers: list[tuple[str, Future]] = []
        self._stragglers_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> BatchPipeline:
        kwargs.setdefault("keywords", settings.batch_keywords)
        kwargs.setdefault("locations", settings.batch_locations)
        kwargs.setdefault("adapter_timeout", settings.adapter_timeout_seconds)
        kwargs.setdefault("run_timeout", settings.run_timeout_seconds)
        return cls(**kwargs)

    @property
    def fingerprint(self) -> str:
        """Cache key of the batch sweep; user reads fall back to this pool."""
        return fingerprint(self.keywords, self.locations)

    @property
    def state(self) -> RunState:
        current = self._current
        return current.state if current is not None else RunState.IDLE

    @property
    def running(self) -> bool:
        return self._run_lock.locked()

    @property
    def stalled_workers(self) -> list[str]:
        """Adapters abandoned after a timeout whose worker thread is still running."""
        with self._stragglers_lock:
            self._stragglers = [(name, f) for name, f in self._stragglers if not f.done()]
            return [name for name, _ in self._stragglers]

    # -- collection -------------------------------------------------------

    def _cancel_site_search(self) -> None:
        if self.orchestrator is not None and self.orchestrator.limiter is not None:
            self.orchestrator.limiter.cancel.set()

    def _collect(
        self,
        keywords: Sequence[str],
        locations: Sequence[str],
        deadline: float,
        companies: Sequence[str] | None = None,
    ) -> tuple[list[JobPosting], dict[str, int], list[str]]:
        """Fan out to every adapter (and the site search when *companies* is given), join all.

        Each adapter is bounded by ``adapter_timeout``; the site search only
        by the run deadline. Results are concatenated in registration order.
        Returns the postings, per-source counts and the names that timed out.
        """
        tasks: list[tuple[str, Callable[[], list[JobPosting]]]] = [
            (src.name, partial(src.fetch, list(keywords), list(locations))) for src in self.sources
        ]
        if companies is not None and self.orchestrator is not None:
            tasks.append(
                (SITE_SEARCH, partial(self.orchestrator.run, list(companies), list(keywords), list(locations)))
            )
        if not tasks:
            return [], {}, []

        log.info("Collecting from %d source(s) in parallel...", len(tasks))
        pool = ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix="collect")
        try:
            futures: list[tuple[str, Future]] = [(name, pool.submit(fn)) for name, fn in tasks]
            adapter_futures = [f for name, f in futures if name != SITE_SEARCH]
            remaining = deadline - self.monotonic()
            wait(adapter_futures, timeout=max(0.0, min(self.adapter_timeout, remaining)))
            search_futures = [f for name, f in futures if name == SITE_SEARCH]
            if search_futures:
                _, pending = wait(search_futures, timeout=max(0.0, deadline - self.monotonic()))
                if pending:
                    self._cancel_site_search()
                    raise RunDeadlineExceeded(RunState.COLLECTING.value, self.run_timeout)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        collected: list[JobPosting] = []
        counts: dict[str, int] = {}
        timed_out: list[str] = []
        for name, future in futures:
            if not future.done():
                log.warning("[%s] timed out after %.0fs — ignoring its results", name, self.adapter_timeout)
                counts[name] = 0
                timed_out.append(name)
                with self._stragglers_lock:
                    self._stragglers.append((name, future))
                continue
            try:
                batch = future.result()
            except Exception as exc:
                log.error("[%s] FAILED: %s", name, exc)
                batch = []
            counts[name] = len(batch)
            collected.extend(batch)
        if self.monotonic() > deadline:
            raise RunDeadlineExceeded(RunState.COLLECTING.value, self.run_timeout)
        return collected, counts, timed_out

    def live_pass(self, keywords: Sequence[str], locations: Sequence[str]) -> list[JobPosting]:
        """Adapters only, no metered search; deduped but not cached."""
        deadline = self.monotonic() + self.run_timeout
        raw, counts, _ = self._collect(keywords, locations, deadline)
        unique = dedupe(raw)
        log.info("Live pass: %d postings (%d before dedupe) from %s", len(unique), len(raw), counts)
        return unique

    # -- batch run --------------------------------------------------------

    def _check_deadline(self, deadline: float, stage: RunState) -> None:
        if self.monotonic() > deadline:
            raise RunDeadlineExceeded(stage.value, self.run_timeout)

    def run(self, trigger: str = "manual") -> RunRecord:
        """One full batch run. Raises RunInProgress if another run holds the lock; never anything else."""
        if not self._run_lock.acquire(blocking=False):
            raise RunInProgress("a batch run is already in progress")
        record = RunRecord(run_id=uuid.uuid4().hex[:12], trigger=trigger, started_at=self.clock())
        self._current = record
        deadline = self.monotonic() + self.run_timeout
        log.info("Batch run %s started (%s)", record.run_id, trigger)
        try:
            if self.orchestrator is not None:
                self.orchestrator.budget.reset()
                if self.orchestrator.limiter is not None:
                    self.orchestrator.limiter.reset()

            record.advance(RunState.COLLECTING)
            companies = self.preferences.all_target_companies() if self.preferences else []
            raw, record.source_counts, record.timed_out = self._collect(
                self.keywords, self.locations, deadline, companies
            )
            if self.orchestrator is not None:
                record.search_calls = self.orchestrator.budget.used

            record.advance(RunState.DEDUPING)
            unique = dedupe(raw)
            log.info("Deduped %d -> %d postings", len(raw), len(unique))
            self._check_deadline(deadline, RunState.DEDUPING)

            record.advance(RunState.CACHING)
            params = {"keywords": self.keywords, "locations": self.locations, "trigger": trigger}
            record.cache_written = self.cache.put(self.fingerprint, params, unique)
            if self.posting_store is not None:
                try:
                    record.stored = self.posting_store.insert_cached(unique)
                except Exception as exc:
                    log.error("Persisting batch postings failed: %s", exc)
            record.postings = unique
            record.advance(RunState.DONE)
            log.info("Batch run %s done: %d postings", record.run_id, len(unique))
        except Exception as exc:
            record.error = f"{type(exc).__name__}: {exc}"
            record.advance(RunState.FAILED)
            log.error("Batch run %s FAILED during %s: %s", record.run_id, record.states[-2].value, exc)
        finally:
            record.finished_at = self.clock()
            self.last_run = record
            self._current = None
            self._run_lock.release()
        return record
