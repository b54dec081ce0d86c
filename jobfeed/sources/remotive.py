"""Remotive — free API for remote tech jobs (no API key required).

Docs: https://remotive.com/api/remote-jobs
"""
from __future__ import annotations

from typing import Any

from jobfeed.heuristics import html_to_text, normalize_employment_type
from jobfeed.log import get_logger
from jobfeed.models import JobPosting, parse_timestamp
from jobfeed.sources.base import SourceAdapter, stable_id

log = get_logger(__name__)

API_URL = "https://remotive.com/api/remote-jobs"


class RemotiveSource(SourceAdapter):
    name = "remotive"

    def _fetch(self, search: str, limit: int) -> list[JobPosting]:
        params: dict[str, Any] = {"limit": limit}
        if search:
            params["search"] = search
        data = self._get_json(API_URL, params=params)
        hits = self._expect_list(data.get("jobs") if isinstance(data, dict) else None, "jobs")

        jobs: list[JobPosting] = []
        for hit in hits:
            title = hit.get("title", "")
            company = hit.get("company_name", "")
            desc = html_to_text(hit.get("description", ""))
            tags = hit.get("tags", [])
            if tags:
                desc += " " + " ".join(tags)
            jobs.append(
                self._posting(
                    external_id=str(hit.get("id") or stable_id(self.name, title, company)),
                    title=title,
                    company=company,
                    location=hit.get("candidate_required_location") or "Remote",
                    description=desc,
                    url=hit.get("url", ""),
                    posted_at=parse_timestamp(hit.get("publication_date")),
                    salary=hit.get("salary") or None,
                    employment_type=normalize_employment_type(hit.get("job_type")) or "Full-time",
                )
            )
        return jobs

    def search(self, keywords: list[str], locations: list[str], limit: int = 50) -> list[JobPosting]:
        all_jobs: list[JobPosting] = []
        seen_ids: set[str] = set()
        for term in keywords[:3] or [""]:
            batch = self._fetch(term, limit)
            for j in batch:
                if j.external_id not in seen_ids:
                    seen_ids.add(j.external_id)
                    all_jobs.append(j)
            log.debug("Remotive search=%r returned %d jobs", term, len(batch))
        return all_jobs
