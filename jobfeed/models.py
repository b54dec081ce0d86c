"""Data models for postings, preferences and search hits."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

Clock = Callable[[], datetime]

EMPLOYMENT_TYPES: tuple[str, ...] = ("Full-time", "Part-time", "Contract", "Internship")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Best-effort conversion of provider timestamps to aware UTC datetimes."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 10**11 else value
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    text = str(value).strip()
    if text.isdigit():
        return parse_timestamp(int(text))
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class SalaryRange:
    minimum: int | None = None
    maximum: int | None = None

    @property
    def floor(self) -> int | None:
        return self.minimum if self.minimum is not None else self.maximum


@dataclass(frozen=True)
class JobPosting:
    source: str
    external_id: str
    title: str
    company: str
    location: str
    description: str = ""
    url: str = ""
    posted_at: datetime | None = None
    salary: str | None = None
    employment_type: str | None = None
    scraped_at: datetime = field(default_factory=utcnow)
    cached: bool = False

    @property
    def identity_key(self) -> str:
        """Lower-cased ``title|company|location``; equal keys mean the same posting."""
        return f"{self.title}|{self.company}|{self.location}".lower()

    @property
    def is_remote(self) -> bool:
        loc = (self.location or "").lower()
        return any(term in loc for term in ("remote", "anywhere", "worldwide"))

    @property
    def salary_range(self) -> SalaryRange | None:
        from jobfeed.heuristics import parse_salary_range

        return parse_salary_range(self.salary)

    def as_cached(self) -> JobPosting:
        return replace(self, cached=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "external_id": self.external_id,
            "title": self.title,
            "company": self.company,
            "location": self.location,
            "description": self.description,
            "url": self.url,
            "posted_at": _iso(self.posted_at),
            "salary": self.salary,
            "employment_type": self.employment_type,
            "scraped_at": _iso(self.scraped_at),
            "cached": self.cached,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> JobPosting:
        return cls(
            source=data["source"],
            external_id=str(data["external_id"]),
            title=data.get("title") or "",
            company=data.get("company") or "",
            location=data.get("location") or "",
            description=data.get("description") or "",
            url=data.get("url") or "",
            posted_at=parse_timestamp(data.get("posted_at")),
            salary=data.get("salary"),
            employment_type=data.get("employment_type"),
            scraped_at=parse_timestamp(data.get("scraped_at")) or utcnow(),
            cached=bool(data.get("cached", False)),
        )


def _clean_list(values: Iterable[Any] | None) -> tuple[str, ...]:
    if not values:
        return ()
    if isinstance(values, str):
        values = [values]
    return tuple(str(v).strip() for v in values if v and str(v).strip())


@dataclass(frozen=True)
class UserPreference:
    keywords: tuple[str, ...] = ()
    locations: tuple[str, ...] = ()
    target_companies: tuple[str, ...] = ()
    employment_types: tuple[str, ...] = ()
    min_salary: int | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> UserPreference:
        min_salary = data.get("min_salary")
        return cls(
            keywords=_clean_list(data.get("keywords")),
            locations=_clean_list(data.get("locations")),
            target_companies=_clean_list(data.get("target_companies")),
            employment_types=_clean_list(data.get("employment_types")),
            min_salary=int(min_salary) if min_salary not in (None, "") else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "keywords": list(self.keywords),
            "locations": list(self.locations),
            "target_companies": list(self.target_companies),
            "employment_types": list(self.employment_types),
            "min_salary": self.min_salary,
        }


@dataclass(frozen=True)
class SearchHit:
    """One organic result from the metered search service."""

    title: str
    snippet: str
    url: str
