"""Source adapter contract and the failure-isolation boundary around it."""
from __future__ import annotations

import hashlib
from abc import ABC, abstractmethod
from typing import Any, Sequence

import requests

from jobfeed.errors import SourceUnavailable
from jobfeed.log import get_logger
from jobfeed.models import Clock, JobPosting, utcnow
from jobfeed.retry import retry

log = get_logger(__name__)

USER_AGENT = "jobfeed/1.0 (+https://github.com/jobfeed)"


def stable_id(*parts: Any) -> str:
    """Deterministic short id for providers that do not supply one."""
    joined = "|".join(str(p).strip() for p in parts if p is not None)
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]


class SourceAdapter(ABC):
    """One external provider normalized into JobPosting records.

    Subclasses implement :meth:`search`, which may raise anything.
    Callers only ever use :meth:`fetch`, which never raises: a failing
    provider contributes an empty list and the pipeline carries on.
    """

    name: str = "unknown"
    requires_credentials: bool = False

    def __init__(
        self,
        session: requests.Session | None = None,
        clock: Clock = utcnow,
        timeout: float = 15.0,
    ) -> None:
        self.session = session or requests.Session()
        self.clock = clock
        self.timeout = timeout

    @property
    def configured(self) -> bool:
        return True

    def fetch(self, keywords: Sequence[str], locations: Sequence[str]) -> list[JobPosting]:
        if not self.configured:
            log.info("[%s] credentials missing — skipping", self.name)
            return []
        try:
            postings = self.search(list(keywords), list(locations))
        except Exception as exc:
            log.warning("[%s] source unavailable: %s", self.name, exc)
            return []
        log.info("[%s] returned %d postings", self.name, len(postings))
        return postings

    @abstractmethod
    def search(self, keywords: list[str], locations: list[str]) -> list[JobPosting]:
        pass

    @retry(max_attempts=3, base_delay=2.0)
    def _get(self, url: str, **kwargs: Any) -> requests.Response:
        kwargs.setdefault("timeout", self.timeout)
        headers = {"User-Agent": USER_AGENT, **kwargs.pop("headers", {})}
        r = self.session.get(url, headers=headers, **kwargs)
        r.raise_for_status()
        return r

    def _get_json(self, url: str, **kwargs: Any) -> Any:
        r = self._get(url, **kwargs)
        try:
            return r.json()
        except ValueError as exc:
            raise SourceUnavailable(self.name, f"malformed JSON from {url}") from exc

    def _expect_list(self, value: Any, what: str) -> list:
        if not isinstance(value, list):
            raise SourceUnavailable(self.name, f"unexpected schema: {what} is {type(value).__name__}")
        return value

    def _posting(self, **fields: Any) -> JobPosting:
        fields.setdefault("source", self.name)
        fields.setdefault("scraped_at", self.clock())
        return JobPosting(**fields)
