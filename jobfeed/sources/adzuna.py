"""Adzuna job search — aggregator with per-country endpoints.

Free tier: 250 requests/day.  Sign up at https://developer.adzuna.com/
"""
from __future__ import annotations

from typing import Any

import requests

from jobfeed.heuristics import format_salary_range, normalize_employment_type
from jobfeed.log import get_logger
from jobfeed.models import Clock, JobPosting, parse_timestamp, utcnow
from jobfeed.sources.base import SourceAdapter, stable_id

log = get_logger(__name__)

BASE_URL = "https://api.adzuna.com/v1/api/jobs"

_COUNTRY_HINTS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("gb", ("uk", "united kingdom", "london", "england")),
    ("ca", ("canada", "toronto", "vancouver", "montreal")),
    ("au", ("australia", "sydney", "melbourne")),
    ("us", ("usa", "united states", "america")),
)


def country_code(location: str) -> str:
    loc = location.lower()
    for code, hints in _COUNTRY_HINTS:
        if any(h in loc for h in hints):
            return code
    return "us"


class AdzunaSource(SourceAdapter):
    name = "adzuna"
    requires_credentials = True

    def __init__(
        self,
        app_id: str,
        app_key: str,
        session: requests.Session | None = None,
        clock: Clock = utcnow,
        per_page: int = 20,
    ) -> None:
        super().__init__(session, clock)
        self.app_id = app_id
        self.app_key = app_key
        self.per_page = per_page

    @property
    def configured(self) -> bool:
        return bool(self.app_id and self.app_key)

    def _transform(self, hit: dict[str, Any]) -> JobPosting:
        title = hit.get("title") or "Untitled Position"
        company = (hit.get("company") or {}).get("display_name") or "Unknown Company"
        location = (hit.get("location") or {}).get("display_name") or "Location not specified"
        return self._posting(
            external_id=str(hit.get("id") or stable_id(self.name, title, company, location)),
            title=title,
            company=company,
            location=location,
            description=hit.get("description") or "",
            url=hit.get("redirect_url") or "",
            posted_at=parse_timestamp(hit.get("created")),
            salary=format_salary_range(hit.get("salary_min"), hit.get("salary_max")),
            employment_type=normalize_employment_type(
                hit.get("contract_time") or hit.get("contract_type")
            ),
        )

    def _fetch(self, query: str, location: str) -> list[JobPosting]:
        params: dict[str, Any] = {
            "app_id": self.app_id,
            "app_key": self.app_key,
            "what": query,
            "results_per_page": self.per_page,
            "max_days_old": 7,
            "sort_by": "date",
            "content-type": "application/json",
        }
        if location and location.lower() != "remote":
            params["where"] = location
        data = self._get_json(f"{BASE_URL}/{country_code(location)}/search/1", params=params)
        hits = self._expect_list(data.get("results", []) if isinstance(data, dict) else data, "results")
        return [self._transform(hit) for hit in hits]

    def search(self, keywords: list[str], locations: list[str]) -> list[JobPosting]:
        location = locations[0] if locations else ""
        all_jobs: list[JobPosting] = []
        seen_ids: set[str] = set()
        failures = 0
        queries = keywords[:3] or ["software engineer"]

        for query in queries:
            try:
                batch = self._fetch(query, location)
            except Exception as exc:
                failures += 1
                log.warning("Adzuna query=%r error: %s", query, exc)
                continue
            for job in batch:
                if job.external_id not in seen_ids:
                    seen_ids.add(job.external_id)
                    all_jobs.append(job)
            log.debug("Adzuna query=%r loc=%r returned %d jobs", query, location, len(batch))

        if failures == len(queries):
            raise RuntimeError(f"all {failures} Adzuna queries failed")
        return all_jobs
