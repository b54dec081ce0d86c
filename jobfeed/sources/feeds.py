"""RSS job boards: WeWorkRemotely and Working Nomads.

Both feeds list remote jobs only and carry company and title packed
into the item title, each in its own format.
"""
from __future__ import annotations

import calendar
from abc import abstractmethod
from datetime import datetime, timezone

import feedparser

from jobfeed.errors import SourceUnavailable
from jobfeed.heuristics import html_to_text, matches_any
from jobfeed.log import get_logger
from jobfeed.models import JobPosting
from jobfeed.sources.base import SourceAdapter, stable_id

log = get_logger(__name__)


def _entry_date(entry) -> datetime | None:
    parsed = entry.get("published_parsed") or entry.get("updated_parsed")
    if not parsed:
        return None
    return datetime.fromtimestamp(calendar.timegm(parsed), tz=timezone.utc)


class RssFeedSource(SourceAdapter):
    feed_url: str = ""

    @abstractmethod
    def split_title(self, raw_title: str) -> tuple[str, str]:
        """Return (job title, company) from a feed item title."""

    def search(self, keywords: list[str], locations: list[str]) -> list[JobPosting]:
        r = self._get(self.feed_url)
        feed = feedparser.parse(r.text)
        if feed.bozo and not feed.entries:
            raise SourceUnavailable(self.name, f"unparseable feed: {feed.get('bozo_exception')}")

        jobs: list[JobPosting] = []
        for entry in feed.entries:
            raw_title = entry.get("title", "")
            if not raw_title:
                continue
            title, company = self.split_title(raw_title)
            description = html_to_text(entry.get("summary") or entry.get("description"))
            if keywords and not matches_any(keywords, title, description):
                continue
            link = entry.get("link", "")
            jobs.append(
                self._posting(
                    external_id=link or stable_id(self.name, raw_title),
                    title=title,
                    company=company,
                    location="Remote",
                    description=description,
                    url=link,
                    posted_at=_entry_date(entry),
                    employment_type="Full-time",
                )
            )
        log.debug("%s feed had %d entries, %d matched", self.name, len(feed.entries), len(jobs))
        return jobs


class WeWorkRemotelySource(RssFeedSource):
    name = "weworkremotely"
    feed_url = "https://weworkremotely.com/remote-jobs.rss"

    def split_title(self, raw_title: str) -> tuple[str, str]:
        company, sep, title = raw_title.partition(":")
        if not sep:
            return raw_title.strip(), "Unknown"
        return title.strip(), company.strip()


class WorkingNomadsSource(RssFeedSource):
    name = "workingnomads"
    feed_url = "https://www.workingnomads.com/jobsrss"

    def split_title(self, raw_title: str) -> tuple[str, str]:
        title, sep, company = raw_title.partition(" at ")
        return title.strip(), (company.strip() if sep else "Unknown")
