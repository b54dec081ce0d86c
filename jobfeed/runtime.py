"""Build the long-lived services once per process and wire them together."""
from __future__ import annotations

from typing import Callable

import requests

from jobfeed.cache import CacheStore, SqliteCacheBackend
from jobfeed.config import Settings, ensure_dirs, get_env, load_settings
from jobfeed.log import get_logger
from jobfeed.orchestrator import QuotaBudget, SearchOrchestrator
from jobfeed.pipeline import BatchPipeline
from jobfeed.preferences import PreferenceStore
from jobfeed.ratelimit import RateLimiter
from jobfeed.scheduler import BatchScheduler
from jobfeed.search import get_search_service
from jobfeed.service import JobService
from jobfeed.sources import get_sources
from jobfeed.store import PostingStore

log = get_logger(__name__)


def build_service(
    settings: Settings | None = None,
    env_getter: Callable[[str], str] = get_env,
    session: requests.Session | None = None,
    preferences: PreferenceStore | None = None,
) -> JobService:
    settings = settings or load_settings()
    ensure_dirs(settings)
    session = session or requests.Session()

    cache = CacheStore.from_settings(settings, backend=SqliteCacheBackend(settings.database_path))
    posting_store = PostingStore(settings.database_path)
    preferences = preferences or PreferenceStore()

    orchestrator = SearchOrchestrator(
        get_search_service(env_getter, session=session, num=settings.results_per_query),
        QuotaBudget(settings.max_search_calls),
        RateLimiter.every(settings.search_interval_seconds),
    )
    pipeline = BatchPipeline.from_settings(
        settings,
        sources=get_sources(env_getter, session=session),
        cache=cache,
        posting_store=posting_store,
        orchestrator=orchestrator,
        preferences=preferences,
    )
    scheduler = BatchScheduler(
        pipeline,
        cache,
        posting_store,
        schedule=settings.schedule,
        timezone=settings.timezone,
        retention_days=settings.retention_days,
    )
    log.info("Services ready (db %s, %d sources)", settings.database_path, len(pipeline.sources))
    return JobService(pipeline, cache, preferences, posting_store=posting_store, scheduler=scheduler)
