"""JSearch API (RapidAPI) — aggregated listings from LinkedIn, Indeed, Glassdoor.

Free tier: 100 requests/month. One search = ``num_pages`` requests.
"""
from __future__ import annotations

from typing import Any

import requests

from jobfeed.heuristics import format_salary_range, normalize_employment_type
from jobfeed.log import get_logger
from jobfeed.models import Clock, JobPosting, parse_timestamp, utcnow
from jobfeed.sources.base import SourceAdapter, stable_id

log = get_logger(__name__)

API_HOST = "jsearch.p.rapidapi.com"


def format_location(hit: dict[str, Any]) -> str:
    parts = [hit.get(k) for k in ("job_city", "job_state", "job_country") if hit.get(k)]
    location = ", ".join(parts) or "Location not specified"
    if hit.get("job_is_remote"):
        location = f"Remote - {location}"
    return location


class JSearchSource(SourceAdapter):
    name = "jsearch"
    requires_credentials = True
    BASE = f"https://{API_HOST}"

    def __init__(
        self,
        api_key: str,
        session: requests.Session | None = None,
        clock: Clock = utcnow,
        num_pages: int = 5,
    ) -> None:
        super().__init__(session, clock)
        self.api_key = api_key
        self.num_pages = num_pages

    @property
    def configured(self) -> bool:
        return bool(self.api_key)

    def _transform(self, hit: dict[str, Any]) -> JobPosting:
        title = hit.get("job_title") or "Untitled Position"
        company = hit.get("employer_name") or "Unknown Company"
        location = format_location(hit)
        return self._posting(
            external_id=hit.get("job_id") or stable_id(self.name, title, company, location),
            title=title,
            company=company,
            location=location,
            description=hit.get("job_description") or "",
            url=hit.get("job_apply_link") or hit.get("job_google_link") or "",
            posted_at=parse_timestamp(
                hit.get("job_posted_at_datetime_utc") or hit.get("job_posted_at_timestamp")
            ),
            salary=format_salary_range(hit.get("job_min_salary"), hit.get("job_max_salary")),
            employment_type=normalize_employment_type(hit.get("job_employment_type")),
        )

    def search(self, keywords: list[str], locations: list[str]) -> list[JobPosting]:
        query = " OR ".join(keywords) if keywords else "software engineer"
        remote_only = any(loc.lower() == "remote" for loc in locations)
        params: dict[str, str] = {
            "query": query,
            "page": "1",
            "num_pages": str(self.num_pages),
            "date_posted": "month",
            "remote_jobs_only": "true" if remote_only else "false",
        }
        if not remote_only and locations:
            params["location"] = locations[0]

        try:
            data = self._get_json(
                f"{self.BASE}/search",
                params=params,
                headers={"X-RapidAPI-Key": self.api_key, "X-RapidAPI-Host": API_HOST},
                timeout=30,
            )
        except requests.HTTPError as exc:
            if exc.response is not None and exc.response.status_code == 403:
                log.warning("JSearch 403 — subscribe at https://rapidapi.com/letscrape-6bRDu3Sgupt/api/jsearch")
                return []
            raise

        hits = self._expect_list(data.get("data", []) if isinstance(data, dict) else data, "data")
        log.debug("JSearch query=%r returned %d hits", query, len(hits))
        return [self._transform(hit) for hit in hits]
