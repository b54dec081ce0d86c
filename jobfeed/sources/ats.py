"""Public ATS job boards: Greenhouse and Lever.

Each board is addressed by the company's board token; the adapters pull
the whole board and keep postings whose title mentions a keyword.
"""
from __future__ import annotations

from abc import abstractmethod
from typing import Any, Mapping

import requests

from jobfeed.heuristics import html_to_text, matches_any, normalize_employment_type
from jobfeed.log import get_logger
from jobfeed.models import Clock, JobPosting, parse_timestamp, utcnow
from jobfeed.sources.base import SourceAdapter

log = get_logger(__name__)

GREENHOUSE_BOARDS: dict[str, str] = {
    "airbnb": "Airbnb",
    "stripe": "Stripe",
    "coinbase": "Coinbase",
    "shopify": "Shopify",
    "figma": "Figma",
}

LEVER_BOARDS: dict[str, str] = {
    "netflix": "Netflix",
    "canva": "Canva",
    "grammarly": "Grammarly",
    "notion": "Notion",
    "ramp": "Ramp",
}


class BoardSource(SourceAdapter):
    """Loops over company boards; one failing board does not sink the rest."""

    default_boards: Mapping[str, str] = {}

    def __init__(
        self,
        boards: Mapping[str, str] | None = None,
        session: requests.Session | None = None,
        clock: Clock = utcnow,
    ) -> None:
        super().__init__(session, clock)
        self.boards = dict(boards if boards is not None else self.default_boards)

    @abstractmethod
    def board_postings(self, token: str, company: str) -> list[JobPosting]:
        """Every posting on one company board, unfiltered."""

    def search(self, keywords: list[str], locations: list[str]) -> list[JobPosting]:
        jobs: list[JobPosting] = []
        for token, company in self.boards.items():
            try:
                batch = self.board_postings(token, company)
            except Exception as exc:
                log.warning("%s board=%r error: %s", self.name, token, exc)
                continue
            if keywords:
                batch = [j for j in batch if matches_any(keywords, j.title)]
            log.debug("%s board=%r kept %d postings", self.name, token, len(batch))
            jobs.extend(batch)
        return jobs


class GreenhouseSource(BoardSource):
    name = "greenhouse"
    default_boards = GREENHOUSE_BOARDS
    API_URL = "https://boards-api.greenhouse.io/v1/boards/{}/jobs"

    def _transform(self, hit: dict[str, Any], company: str) -> JobPosting:
        return self._posting(
            external_id=f"gh_{hit['id']}",
            title=hit.get("title", ""),
            company=company,
            location=(hit.get("location") or {}).get("name") or "Unknown",
            # content arrives entity-escaped
            description=html_to_text(html_to_text(hit.get("content"))),
            url=hit.get("absolute_url", ""),
            posted_at=parse_timestamp(hit.get("updated_at")),
        )

    def board_postings(self, token: str, company: str) -> list[JobPosting]:
        data = self._get_json(self.API_URL.format(token), params={"content": "true"})
        hits = self._expect_list(data.get("jobs") if isinstance(data, dict) else None, "jobs")
        return [self._transform(hit, company) for hit in hits if hit.get("id")]


class LeverSource(BoardSource):
    name = "lever"
    default_boards = LEVER_BOARDS
    API_URL = "https://api.lever.co/v0/postings/{}"

    def _transform(self, hit: dict[str, Any], company: str) -> JobPosting:
        categories = hit.get("categories") or {}
        return self._posting(
            external_id=f"lv_{hit['id']}",
            title=hit.get("text", ""),
            company=company,
            location=categories.get("location") or hit.get("workplaceType") or "Unknown",
            description=hit.get("descriptionPlain") or html_to_text(hit.get("description")),
            url=hit.get("hostedUrl") or hit.get("applyUrl") or "",
            posted_at=parse_timestamp(hit.get("createdAt")),
            employment_type=normalize_employment_type(categories.get("commitment")),
        )

    def board_postings(self, token: str, company: str) -> list[JobPosting]:
        data = self._expect_list(self._get_json(self.API_URL.format(token), params={"mode": "json"}), "postings")
        return [self._transform(hit, company) for hit in data if hit.get("id")]
