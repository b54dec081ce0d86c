"""Quota-aware site search for target companies and generic keyword sweeps.

Used where no direct adapter can enumerate postings: each company gets a
short plan of ``site:`` queries (ATS platforms, the company's own
domains, the big job boards) run through the metered search service.
Calls are strictly sequential: they share one run-scoped
:class:`QuotaBudget` and one :class:`RateLimiter`.
"""
from __future__ import annotations

import re
import threading
from dataclasses import dataclass
from typing import Iterable, Sequence

from jobfeed.errors import QuotaExceeded
from jobfeed.heuristics import extract_company, extract_job_title, extract_location, extract_salary, is_job_posting
from jobfeed.log import get_logger
from jobfeed.models import Clock, JobPosting, SearchHit, utcnow
from jobfeed.ratelimit import RateLimiter
from jobfeed.search import SearchService
from jobfeed.sources.base import stable_id

log = get_logger(__name__)

ATS_PLATFORMS: tuple[str, ...] = (
    "boards.greenhouse.io",
    "jobs.lever.co",
    "ashbyhq.com",
    "jobs.smartrecruiters.com",
    "wd1.myworkdayjobs.com",
    "jobs.bamboohr.com",
    "jobs.jobvite.com",
    "careers.icims.com",
)
JOB_BOARDS: tuple[str, ...] = ("linkedin.com/jobs", "indeed.com", "glassdoor.com")

ATS_PER_COMPANY = 4
DOMAINS_PER_COMPANY = 2
SWEEP_PLATFORMS = 3


class QuotaBudget:
    """Run-scoped count of metered calls against a fixed ceiling."""

    def __init__(self, ceiling: int) -> None:
        if ceiling < 0:
            raise ValueError("ceiling must be >= 0")
        self.ceiling = ceiling
        self._used = 0
        self._lock = threading.Lock()

    @property
    def used(self) -> int:
        return self._used

    @property
    def remaining(self) -> int:
        return max(0, self.ceiling - self._used)

    @property
    def exhausted(self) -> bool:
        return self._used >= self.ceiling

    def consume(self) -> None:
        with self._lock:
            if self._used >= self.ceiling:
                raise QuotaExceeded(self._used, self.ceiling)
            self._used += 1

    def reset(self) -> None:
        with self._lock:
            self._used = 0


@dataclass(frozen=True)
class PlannedQuery:
    query: str
    source: str
    kind: str
    company: str | None = None


def company_domains(company: str) -> list[str]:
    clean = re.sub(r"\s+", "", re.sub(r"[^a-z0-9\s]", "", company.lower()))
    if not clean:
        return []
    return [
        f"{clean}.com",
        f"{clean}.co",
        f"{clean}.io",
        f"www.{clean}.com",
        f"careers.{clean}.com",
        f"jobs.{clean}.com",
    ]


def _label(host: str) -> str:
    return host.split(".")[0]


class SearchOrchestrator:
    def __init__(
        self,
        service: SearchService,
        budget: QuotaBudget,
        limiter: RateLimiter | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.service = service
        self.budget = budget
        self.limiter = limiter
        self.clock = clock

    # -- planning ---------------------------------------------------------

    def plan_company(self, company: str) -> list[PlannedQuery]:
        plan = [
            PlannedQuery(f'site:{ats} "{company}"', f"ats_{_label(ats)}", "ats", company)
            for ats in ATS_PLATFORMS[:ATS_PER_COMPANY]
        ]
        plan += [
            PlannedQuery(
                f'site:{domain} (jobs OR careers OR "job openings")', "company_website", "website", company
            )
            for domain in company_domains(company)[:DOMAINS_PER_COMPANY]
        ]
        plan += [
            PlannedQuery(f'site:{board} "{company}"', f"jobboard_{_label(board)}", "board", company)
            for board in JOB_BOARDS
        ]
        return plan

    def plan_sweep(self, keywords: Sequence[str], locations: Sequence[str]) -> list[PlannedQuery]:
        location = next((loc for loc in locations if loc and loc.strip()), "")
        plan: list[PlannedQuery] = []
        for keyword in keywords:
            for ats in ATS_PLATFORMS[:SWEEP_PLATFORMS]:
                query = f'site:{ats} "{keyword}" {location}'.strip()
                plan.append(PlannedQuery(query, "ats_search", "sweep"))
        return plan

    # -- classification ---------------------------------------------------

    def classify(self, hit: SearchHit, planned: PlannedQuery, keywords: Sequence[str]) -> JobPosting | None:
        """A posting when the hit looks like a job; None for anything ambiguous."""
        if not is_job_posting(hit, planned.company, keywords):
            return None
        title = extract_job_title(hit.title)
        if not title or not hit.url:
            return None
        company = planned.company or extract_company(hit.title) or "Unknown"
        return JobPosting(
            source=planned.source,
            external_id=stable_id(hit.url),
            title=title,
            company=company,
            location=extract_location(hit.snippet) or "Remote",
            description=hit.snippet or "",
            url=hit.url,
            salary=extract_salary(hit.snippet),
            employment_type="Full-time",
            scraped_at=self.clock(),
        )

    # -- execution --------------------------------------------------------

    def execute(self, plan: Iterable[PlannedQuery], keywords: Sequence[str] = ()) -> list[JobPosting]:
        """Run *plan* in order until it ends, the budget runs out or the limiter is cancelled."""
        if not self.service.configured:
            log.info("Search service not configured — skipping site search")
            return []

        postings: list[JobPosting] = []
        website_found: set[str] = set()
        issued = 0
        for planned in plan:
            if planned.kind == "website" and planned.company in website_found:
                continue
            if self.budget.exhausted:
                log.warning("Search quota reached (%d/%d) — stopping", self.budget.used, self.budget.ceiling)
                break
            if self.limiter is not None and not self.limiter.acquire():
                log.info("Site search cancelled after %d queries", issued)
                break
            try:
                self.budget.consume()
            except QuotaExceeded as exc:
                log.warning("%s — stopping", exc)
                break
            issued += 1
            try:
                hits = self.service.search(planned.query)
            except Exception as exc:
                log.warning("Site search failed for %r: %s", planned.query, exc)
                continue
            found = [p for p in (self.classify(h, planned, keywords) for h in hits) if p is not None]
            log.debug("%r: %d hits, %d postings", planned.query, len(hits), len(found))
            if planned.kind == "website" and found:
                website_found.add(planned.company)
            postings.extend(found)

        log.info("Site search issued %d queries, found %d postings", issued, len(postings))
        return postings

    def search_companies(self, companies: Sequence[str], keywords: Sequence[str] = ()) -> list[JobPosting]:
        plan = [q for company in companies for q in self.plan_company(company)]
        log.info("Site search for %d target companies (%d planned queries)", len(companies), len(plan))
        return self.execute(plan, keywords)

    def keyword_sweep(self, keywords: Sequence[str], locations: Sequence[str]) -> list[JobPosting]:
        plan = self.plan_sweep(keywords, locations)
        log.info("Generic keyword sweep (%d planned queries)", len(plan))
        return self.execute(plan, keywords)

    def run(
        self,
        companies: Sequence[str],
        keywords: Sequence[str],
        locations: Sequence[str],
    ) -> list[JobPosting]:
        """Company search when any target companies exist, otherwise the generic sweep."""
        if companies:
            return self.search_companies(companies, keywords)
        return self.keyword_sweep(keywords, locations)
