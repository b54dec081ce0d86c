"""Hacker News job stories via the Algolia search API."""
from __future__ import annotations

from typing import Any

from jobfeed.heuristics import company_from_hn, html_to_text, location_from_hn, matches_any
from jobfeed.models import JobPosting, parse_timestamp
from jobfeed.sources.base import SourceAdapter

API_URL = "https://hn.algolia.com/api/v1/search"
ITEM_URL = "https://news.ycombinator.com/item?id={}"


class HackerNewsSource(SourceAdapter):
    name = "hackernews"

    def _location_ok(self, text: str, locations: list[str]) -> bool:
        if not locations:
            return True
        low = text.lower()
        return any(loc.lower() == "remote" or loc.lower() in low for loc in locations)

    def _transform(self, hit: dict[str, Any], locations: list[str]) -> JobPosting:
        title = hit.get("title") or "Job Opening"
        text = hit.get("story_text") or ""
        company = company_from_hn(title)
        if company == "Unknown":
            company = company_from_hn(text)
        return self._posting(
            external_id=str(hit["objectID"]),
            title=title,
            company=company,
            location=location_from_hn(f"{title} {text}", locations),
            description=html_to_text(text),
            url=hit.get("url") or ITEM_URL.format(hit["objectID"]),
            posted_at=parse_timestamp(hit.get("created_at")),
            employment_type="Full-time",
        )

    def search(self, keywords: list[str], locations: list[str]) -> list[JobPosting]:
        data = self._get_json(API_URL, params={"tags": "job", "hitsPerPage": 100})
        hits = self._expect_list(data.get("hits") if isinstance(data, dict) else None, "hits")
        jobs: list[JobPosting] = []
        for hit in hits:
            if not hit.get("objectID"):
                continue
            title = hit.get("title") or ""
            text = hit.get("story_text") or ""
            if keywords and not matches_any(keywords, title, text):
                continue
            if not self._location_ok(f"{title} {text}", locations):
                continue
            jobs.append(self._transform(hit, locations))
        return jobs
