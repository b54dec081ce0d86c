import os

os.environ.setdefault("JOBFEED_LOG_FILE", "0")

import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest
import requests

from jobfeed.models import JobPosting, SearchHit
from jobfeed.sources.base import SourceAdapter

T0 = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


class FakeResponse:
    def __init__(self, payload: Any = None, status_code: int = 200, text: str | None = None) -> None:
        self.payload = payload
        self.status_code = status_code
        self.text = text if text is not None else ""

    def json(self) -> Any:
        if isinstance(self.payload, Exception):
            raise self.payload
        return self.payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error", response=self)


class FakeSession:
    """Routes GETs by URL prefix; records every call."""

    def __init__(self, routes: dict[str, FakeResponse | Callable[..., FakeResponse]] | None = None) -> None:
        self.routes = routes or {}
        self.calls: list[tuple[str, dict]] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((url, kwargs))
        for prefix, response in self.routes.items():
            if url.startswith(prefix):
                return response(url, **kwargs) if callable(response) else response
        return FakeResponse(status_code=404)


class FakeAdapter(SourceAdapter):
    """Adapter with canned postings and a call counter; optionally always fails or blocks."""

    def __init__(
        self,
        name: str,
        postings: list[JobPosting] | None = None,
        fail: bool = False,
        block: threading.Event | None = None,
    ) -> None:
        super().__init__(session=FakeSession())
        self.name = name
        self.postings = postings or []
        self.fail = fail
        self.block = block
        self.calls = 0

    def search(self, keywords: list[str], locations: list[str]) -> list[JobPosting]:
        self.calls += 1
        if self.block is not None:
            self.block.wait(5)
        if self.fail:
            raise ConnectionError(f"{self.name} is down")
        return list(self.postings)


class FakeSearchService:
    def __init__(
        self,
        hits: Callable[[str], list[SearchHit]] | None = None,
        configured: bool = True,
        fail_on: set[str] | None = None,
    ) -> None:
        self._hits = hits or (lambda query: [])
        self._configured = configured
        self.fail_on = fail_on or set()
        self.queries: list[str] = []

    @property
    def configured(self) -> bool:
        return self._configured

    def search(self, query: str) -> list[SearchHit]:
        self.queries.append(query)
        if query in self.fail_on:
            raise requests.ConnectionError("search backend down")
        return self._hits(query)


def make_posting(
    title: str = "Senior Product Manager",
    company: str = "Acme",
    location: str = "Remote",
    source: str = "test",
    **kwargs: Any,
) -> JobPosting:
    kwargs.setdefault("external_id", f"{source}-{title}-{company}-{location}")
    kwargs.setdefault("scraped_at", T0)
    return JobPosting(source=source, title=title, company=company, location=location, **kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def posting() -> Callable[..., JobPosting]:
    return make_posting


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "jobfeed.db"
