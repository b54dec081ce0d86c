from typing import Callable

import requests

from jobfeed.log import get_logger
from jobfeed.models import Clock, utcnow

from .base import SourceAdapter, stable_id
from .jsearch import JSearchSource
from .adzuna import AdzunaSource
from .serpapi import GoogleJobsSource
from .remoteok import RemoteOKSource
from .feeds import RssFeedSource, WeWorkRemotelySource, WorkingNomadsSource
from .hackernews import HackerNewsSource
from .remotive import RemotiveSource
from .ats import GreenhouseSource, LeverSource

log = get_logger(__name__)

__all__ = [
    "SourceAdapter", "stable_id", "JSearchSource", "AdzunaSource",
    "GoogleJobsSource", "RemoteOKSource", "RssFeedSource",
    "WeWorkRemotelySource", "WorkingNomadsSource", "HackerNewsSource",
    "RemotiveSource", "GreenhouseSource", "LeverSource", "get_sources",
]


def get_sources(
    env_getter: Callable[[str], str],
    session: requests.Session | None = None,
    clock: Clock = utcnow,
) -> list[SourceAdapter]:
    """Adapters in priority order; dedupe keeps the first copy it sees."""
    sources: list[SourceAdapter] = []

    if env_getter("JSEARCH_API_KEY"):
        sources.append(JSearchSource(env_getter("JSEARCH_API_KEY"), session, clock))
        log.info("Registered source: JSearch")

    if env_getter("ADZUNA_APP_ID") and env_getter("ADZUNA_APP_KEY"):
        sources.append(
            AdzunaSource(env_getter("ADZUNA_APP_ID"), env_getter("ADZUNA_APP_KEY"), session, clock)
        )
        log.info("Registered source: Adzuna")

    if env_getter("SERPAPI_KEY"):
        sources.append(GoogleJobsSource(env_getter("SERPAPI_KEY"), session, clock))
        log.info("Registered source: SerpAPI (Google Jobs)")

    # free sources are always on
    sources.extend(
        [
            RemoteOKSource(session, clock),
            WeWorkRemotelySource(session, clock),
            HackerNewsSource(session, clock),
            RemotiveSource(session, clock),
            WorkingNomadsSource(session, clock),
            GreenhouseSource(session=session, clock=clock),
            LeverSource(session=session, clock=clock),
        ]
    )
    log.info("Registered %d source(s): %s", len(sources), ", ".join(s.name for s in sources))
    return sources
