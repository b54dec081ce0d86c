"""RemoteOK — free JSON feed of remote jobs, no server-side filtering."""
from __future__ import annotations

from typing import Any

from jobfeed.heuristics import html_to_text, matches_any
from jobfeed.models import JobPosting, parse_timestamp
from jobfeed.sources.base import SourceAdapter, stable_id

API_URL = "https://remoteok.com/api"


def _salary(hit: dict[str, Any]) -> str | None:
    low, high = hit.get("salary_min"), hit.get("salary_max")
    if low and high:
        return f"${int(low):,}-{int(high):,}"
    if low:
        return f"${int(low):,}+"
    if high:
        return f"Up to ${int(high):,}"
    return hit.get("salary") or None


def _location_ok(job_location: str, locations: list[str]) -> bool:
    if not locations:
        return True
    low = job_location.lower()
    return any(loc.lower() == "remote" or loc.lower() in low for loc in locations)


class RemoteOKSource(SourceAdapter):
    name = "remoteok"

    def _transform(self, hit: dict[str, Any]) -> JobPosting:
        tags = hit.get("tags") or []
        description = html_to_text(hit.get("description"))
        if tags:
            description = f"{description} {' '.join(tags)}".strip()
        return self._posting(
            external_id=str(hit.get("id") or hit.get("slug") or stable_id(self.name, hit.get("url"))),
            title=hit["position"],
            company=hit.get("company") or "Unknown",
            location=hit.get("location") or "Remote",
            description=description,
            url=hit.get("url") or f"https://remoteok.com/remote-jobs/{hit.get('slug', '')}",
            posted_at=parse_timestamp(hit.get("date") or hit.get("epoch")),
            salary=_salary(hit),
            employment_type="Full-time",
        )

    def search(self, keywords: list[str], locations: list[str]) -> list[JobPosting]:
        data = self._expect_list(self._get_json(API_URL), "feed")
        jobs: list[JobPosting] = []
        # the first element is a legal notice, not a posting
        for hit in data:
            if not isinstance(hit, dict) or not hit.get("position"):
                continue
            if keywords and not matches_any(keywords, hit["position"], hit.get("description")):
                continue
            if not _location_ok(hit.get("location") or "", locations):
                continue
            jobs.append(self._transform(hit))
        return jobs
