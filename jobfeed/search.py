"""Metered web-search backends used by the search orchestrator.

Both backends return plain ``SearchHit`` records and report whether
they have credentials; an unconfigured backend is a normal state.
Every request is one metered call, so there is no retry here: a failed
query is reported once and still counts against the run budget.
"""
from __future__ import annotations

from typing import Any, Callable, Protocol

import requests

from jobfeed.errors import CredentialsMissing, SourceUnavailable
from jobfeed.log import get_logger
from jobfeed.models import SearchHit
from jobfeed.sources.base import USER_AGENT

log = get_logger(__name__)


class SearchService(Protocol):
    @property
    def configured(self) -> bool: ...

    def search(self, query: str) -> list[SearchHit]: ...


class _HttpSearch:
    name = "search"

    def __init__(self, session: requests.Session | None = None, num: int = 10, timeout: float = 15.0) -> None:
        self.session = session or requests.Session()
        self.num = num
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return False

    def _get_json(self, url: str, params: dict[str, Any]) -> Any:
        r = self.session.get(url, params=params, headers={"User-Agent": USER_AGENT}, timeout=self.timeout)
        r.raise_for_status()
        return r.json()

    def _require_credentials(self) -> None:
        if not self.configured:
            raise CredentialsMissing(f"{self.name} has no credentials")


class GoogleCustomSearch(_HttpSearch):
    """Google Custom Search JSON API."""

    name = "google_cse"
    URL = "https://www.googleapis.com/customsearch/v1"

    def __init__(self, api_key: str = "", engine_id: str = "", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key
        self.engine_id = engine_id

    @property
    def configured(self) -> bool:
        return bool(self.api_key and self.engine_id)

    def search(self, query: str) -> list[SearchHit]:
        self._require_credentials()
        log.debug("Site search: %s", query)
        data = self._get_json(
            self.URL, {"key": self.api_key, "cx": self.engine_id, "q": query, "num": self.num}
        )
        if data.get("error"):
            raise SourceUnavailable(self.name, (data["error"] or {}).get("message", "unknown error"))
        return [
            SearchHit(title=item.get("title", ""), snippet=item.get("snippet", ""), url=item.get("link", ""))
            for item in data.get("items") or []
        ]


class SerpApiWebSearch(_HttpSearch):
    """SerpAPI Google web results (``engine=google``)."""

    name = "serpapi_web"
    URL = "https://serpapi.com/search.json"

    def __init__(self, api_key: str = "", **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self.api_key = api_key

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def search(self, query: str) -> list[SearchHit]:
        self._require_credentials()
        log.debug("Site search: %s", query)
        data = self._get_json(
            self.URL, {"engine": "google", "q": query, "num": self.num, "api_key": self.api_key}
        )
        if data.get("error"):
            raise SourceUnavailable(self.name, str(data["error"]))
        return [
            SearchHit(title=item.get("title", ""), snippet=item.get("snippet", ""), url=item.get("link", ""))
            for item in data.get("organic_results") or []
        ]


def get_search_service(
    env_getter: Callable[[str], str],
    session: requests.Session | None = None,
    num: int = 10,
) -> SearchService:
    """Google CSE when configured, then SerpAPI, else an unconfigured (no-op) CSE."""
    cse = GoogleCustomSearch(
        env_getter("GOOGLE_CUSTOM_SEARCH_API_KEY"),
        env_getter("GOOGLE_SEARCH_ENGINE_ID"),
        session=session,
        num=num,
    )
    if cse.configured:
        log.info("Search service: Google Custom Search")
        return cse
    if env_getter("SERPAPI_KEY"):
        log.info("Search service: SerpAPI web search")
        return SerpApiWebSearch(env_getter("SERPAPI_KEY"), session=session, num=num)
    log.info("No search credentials — company search disabled")
    return cse
