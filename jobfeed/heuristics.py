"""Text heuristics: salary, location, employment type and job-vs-non-job detection.

Everything here is a small pure function working on free text. These are
best-effort pattern matches and will produce false positives and false
negatives on real-world snippets; callers treat a ``None`` result as
"unknown" rather than as an error.
"""
from __future__ import annotations

import html
import re
from datetime import datetime, timedelta
from typing import Iterable

from jobfeed.models import SalaryRange, SearchHit

REMOTE_TERMS: tuple[str, ...] = ("remote", "anywhere", "worldwide")
JOB_INDICATORS: tuple[str, ...] = ("job", "career", "position", "role", "hiring", "opening")

_EMPLOYMENT_ALIASES: dict[str, str] = {
    "fulltime": "Full-time",
    "full_time": "Full-time",
    "full-time": "Full-time",
    "full time": "Full-time",
    "permanent": "Full-time",
    "parttime": "Part-time",
    "part_time": "Part-time",
    "part-time": "Part-time",
    "part time": "Part-time",
    "contractor": "Contract",
    "contract": "Contract",
    "freelance": "Contract",
    "temporary": "Contract",
    "intern": "Internship",
    "internship": "Internship",
}

# "$80,000", "$80k", "95,000", "120.5k"; first group is the number, second the k-suffix
_AMOUNT = r"(\d{1,3}(?:,\d{3})+|\d+(?:\.\d+)?)\s*([kK])?"
_AMOUNT_RE = re.compile(r"\$?\s*" + _AMOUNT)
_SALARY_SPAN_RE = re.compile(
    r"\$\s*\d[\d,]*(?:\.\d+)?\s*[kK]?\s*(?:-|–|to)\s*\$?\s*\d[\d,]*(?:\.\d+)?\s*[kK]?"
)
_SALARY_SINGLE_RE = re.compile(r"\$\s*\d[\d,]*(?:\.\d+)?\s*[kK]?")
_CITY_STATE_RE = re.compile(r"\b((?:[A-Z][a-z]+\s)*[A-Z][a-z]+,\s*[A-Z]{2})\b")
_CITY_REGION_RE = re.compile(r"\b((?:[A-Z][a-z]+\s)*[A-Z][a-z]+,\s*[A-Z][a-z]+(?:\s[A-Z][a-z]+)?)\b")
_REMOTE_RE = re.compile(r"\b(remote|work from home)\b", re.IGNORECASE)
_TITLE_SUFFIX_RE = re.compile(r"\s+(?:-|–|\|)\s+.*$")
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")

_HN_COMPANY_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"^([A-Z][a-zA-Z\s&]+?)\s+is hiring", re.IGNORECASE),
    re.compile(r"^([A-Z][a-zA-Z\s&]+?)\s+\("),
    re.compile(r"^([A-Z][a-zA-Z\s&]+?)\s+-"),
)
_HN_PIPE_LOCATION_RE = re.compile(r"\|\s*([A-Z][a-zA-Z\s,]+)")


def html_to_text(value: str | None) -> str:
    """Strip tags and entities from provider HTML descriptions."""
    if not value:
        return ""
    text = _TAG_RE.sub(" ", value)
    return _WS_RE.sub(" ", html.unescape(text)).strip()


def contains_word(text: str, word: str) -> bool:
    """Case-insensitive whole-word match."""
    if not word:
        return False
    return re.search(rf"\b{re.escape(word)}\b", text or "", re.IGNORECASE) is not None


def mentions_remote(text: str | None) -> bool:
    low = (text or "").lower()
    return any(term in low for term in REMOTE_TERMS)


def matches_any(keywords: Iterable[str], *texts: str | None) -> bool:
    """Local provider-side filter: case-insensitive substring of any keyword."""
    blobs = [(t or "").lower() for t in texts]
    return any(kw.lower() in blob for kw in keywords for blob in blobs if kw)


def normalize_employment_type(raw: str | None) -> str | None:
    """Map provider vocabularies onto Full-time / Part-time / Contract / Internship."""
    if not raw:
        return None
    key = raw.strip().lower()
    if key in _EMPLOYMENT_ALIASES:
        return _EMPLOYMENT_ALIASES[key]
    for alias, label in _EMPLOYMENT_ALIASES.items():
        if alias in key:
            return label
    return None


def _amount(number: str, k_suffix: str | None) -> int:
    value = float(number.replace(",", ""))
    if k_suffix:
        value *= 1000
    return int(value)


def format_amount(amount: float) -> str:
    """$80k for thousands, $950 below that."""
    if amount >= 1000:
        return f"${round(amount / 1000)}k"
    return f"${int(amount)}"


def format_salary_range(minimum: float | None, maximum: float | None) -> str | None:
    """Display range from provider min/max fields; None when neither is set."""
    if minimum and maximum:
        return f"{format_amount(minimum)}-{format_amount(maximum)}"
    if minimum:
        return f"{format_amount(minimum)}+"
    if maximum:
        return f"Up to {format_amount(maximum)}"
    return None


def extract_min_salary(text: str | None) -> int | None:
    """First currency-formatted integer in a salary string ("$80k-$120k" -> 80000)."""
    if not text:
        return None
    match = _AMOUNT_RE.search(text)
    if not match:
        return None
    return _amount(match.group(1), match.group(2))


def parse_salary_range(text: str | None) -> SalaryRange | None:
    if not text:
        return None
    amounts = [_amount(m.group(1), m.group(2)) for m in _AMOUNT_RE.finditer(text)][:2]
    if not amounts:
        return None
    low = text.lower()
    if len(amounts) == 1 and "up to" in low:
        return SalaryRange(maximum=amounts[0])
    if len(amounts) == 1:
        return SalaryRange(minimum=amounts[0])
    return SalaryRange(minimum=min(amounts), maximum=max(amounts))


def extract_salary(snippet: str | None) -> str | None:
    """Salary span from a search snippet ("$80,000 - $120,000", "$90k")."""
    if not snippet:
        return None
    match = _SALARY_SPAN_RE.search(snippet) or _SALARY_SINGLE_RE.search(snippet)
    return match.group(0).strip() if match else None


def extract_location(snippet: str | None) -> str | None:
    """"City, ST", then "City, Region", then a remote mention."""
    if not snippet:
        return None
    for pattern in (_CITY_STATE_RE, _CITY_REGION_RE):
        match = pattern.search(snippet)
        if match:
            return match.group(1)
    if _REMOTE_RE.search(snippet):
        return "Remote"
    return None


def extract_job_title(title: str | None) -> str | None:
    """Search-result title minus its " - Company" / " | Site" suffix."""
    if not title:
        return None
    cleaned = _TITLE_SUFFIX_RE.sub("", title).strip()
    return cleaned or None


def is_job_posting(hit: SearchHit, company: str | None, keywords: Iterable[str]) -> bool:
    """Job indicator present AND (company or a keyword) appears in title/snippet."""
    title = (hit.title or "").lower()
    snippet = (hit.snippet or "").lower()
    url = (hit.url or "").lower()
    has_indicator = any(
        term in title or term in snippet or term in url for term in JOB_INDICATORS
    )
    if not has_indicator:
        return False
    if company and (company.lower() in title or company.lower() in snippet):
        return True
    return any(kw and (kw.lower() in title or kw.lower() in snippet) for kw in keywords)


def company_from_hn(text: str | None) -> str:
    if not text:
        return "Unknown"
    plain = html_to_text(text)
    for pattern in _HN_COMPANY_PATTERNS:
        match = pattern.search(plain)
        if match:
            return match.group(1).strip()
    return "Unknown"


def location_from_hn(text: str | None, preferred: Iterable[str]) -> str:
    if not text:
        return "Unknown"
    plain = html_to_text(text)
    if re.search(r"remote", plain, re.IGNORECASE):
        return "Remote"
    low = plain.lower()
    for loc in preferred:
        if loc and loc.lower() in low:
            return loc
    match = _HN_PIPE_LOCATION_RE.search(plain)
    return match.group(1).strip() if match else "Unknown"


_AGO_RE = re.compile(r"(\d+)\+?\s*(minute|hour|day|week|month)s?\s+ago", re.IGNORECASE)
_AGO_UNITS: dict[str, int] = {
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "week": 7 * 86400,
    "month": 30 * 86400,
}


def parse_posted_ago(text: str | None, now: datetime) -> datetime | None:
    """"3 days ago" / "just posted" relative to *now*; None when unrecognised."""
    if not text:
        return None
    low = text.strip().lower()
    if low in ("just posted", "today", "just now"):
        return now
    match = _AGO_RE.search(low)
    if not match:
        return None
    seconds = int(match.group(1)) * _AGO_UNITS[match.group(2).lower()]
    return now - timedelta(seconds=seconds)


_AT_COMPANY_RE = re.compile(r"\bat\s+([A-Z][\w&.' -]*?)\s*(?:$|[-|–(])")
_SUFFIX_COMPANY_RE = re.compile(r"\s(?:-|–|\|)\s+([^|–-]+?)\s*(?:$|[-|–])")


def extract_company(title: str | None) -> str | None:
    """"Job Application for X at Stripe" / "X - Stripe"; None when neither shape fits."""
    if not title:
        return None
    for pattern in (_AT_COMPANY_RE, _SUFFIX_COMPANY_RE):
        match = pattern.search(title)
        if match and match.group(1).strip():
            return match.group(1).strip()
    return None
