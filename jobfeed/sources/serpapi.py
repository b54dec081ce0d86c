"""Google Jobs through SerpAPI."""
from __future__ import annotations

from typing import Any

import requests

from jobfeed.heuristics import normalize_employment_type, parse_posted_ago
from jobfeed.log import get_logger
from jobfeed.models import Clock, JobPosting, utcnow
from jobfeed.sources.base import SourceAdapter, stable_id

log = get_logger(__name__)

API_URL = "https://serpapi.com/search"


def _best_apply_link(hit: dict) -> str:
    for opts_key in ("apply_options", "related_links"):
        opts = hit.get(opts_key, [])
        if opts and isinstance(opts, list):
            for opt in opts:
                link = opt.get("link", "")
                if link:
                    return link
    return hit.get("share_link", "") or hit.get("link", "")


class GoogleJobsSource(SourceAdapter):
    name = "google_jobs"
    requires_credentials = True

    def __init__(
        self,
        api_key: str,
        session: requests.Session | None = None,
        clock: Clock = utcnow,
        max_queries: int = 4,
    ) -> None:
        super().__init__(session, clock, timeout=20.0)
        self.api_key = api_key
        self.max_queries = max_queries

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _transform(self, hit: dict[str, Any]) -> JobPosting:
        title = hit.get("title", "")
        company = hit.get("company_name", "")
        location = hit.get("location", "") or "Location not specified"
        extensions = hit.get("detected_extensions") or {}
        if extensions.get("work_from_home") and "remote" not in location.lower():
            location = f"Remote - {location}"
        return self._posting(
            external_id=hit.get("job_id") or stable_id(self.name, title, company, location),
            title=title,
            company=company,
            location=location,
            description=hit.get("description", ""),
            url=_best_apply_link(hit),
            posted_at=parse_posted_ago(extensions.get("posted_at"), self.clock()),
            salary=extensions.get("salary"),
            employment_type=normalize_employment_type(extensions.get("schedule_type")),
        )

    def _fetch(self, query: str, location: str) -> list[JobPosting]:
        params = {"engine": "google_jobs", "q": query, "api_key": self.api_key}
        if location.lower() == "remote":
            params["q"] = f"{query} remote"
        elif location:
            params["location"] = location
        data = self._get_json(API_URL, params=params)
        if isinstance(data, dict) and data.get("error"):
            log.debug("SerpAPI query=%r: %s", query, data["error"])
            return []
        hits = self._expect_list(data.get("jobs_results", []) if isinstance(data, dict) else data, "jobs_results")
        return [self._transform(hit) for hit in hits]

    def search(self, keywords: list[str], locations: list[str]) -> list[JobPosting]:
        location = locations[0] if locations else ""
        all_jobs: list[JobPosting] = []
        seen_ids: set[str] = set()

        for q in keywords[: self.max_queries]:
            try:
                batch = self._fetch(q, location)
            except Exception as exc:
                log.warning("SerpAPI query=%r error: %s", q, exc)
                continue
            for j in batch:
                if j.external_id not in seen_ids:
                    seen_ids.add(j.external_id)
                    all_jobs.append(j)
            log.debug("SerpAPI query=%r returned %d jobs", q, len(batch))

        return all_jobs
