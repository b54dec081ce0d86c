"""Preference filter and target-company prioritizer.

Rules run in order and stop at the first one a posting fails:
location, keyword, employment type, minimum salary. Missing data is
permissive: a posting without an employment type or a parseable salary
is kept. Target companies never filter; they only reorder.
"""
from __future__ import annotations

import re
from typing import Iterable, Sequence

from jobfeed.heuristics import REMOTE_TERMS, contains_word, extract_min_salary, mentions_remote
from jobfeed.log import get_logger
from jobfeed.models import JobPosting, UserPreference

log = get_logger(__name__)

# Matched only as the head of a title ("Manager, Platform"), never as a
# modifier's tail ("Marketing Manager").
GENERIC_ROLE_WORDS: frozenset[str] = frozenset({"manager", "engineer"})

_EMPLOYMENT_SYNONYMS: dict[str, tuple[str, ...]] = {
    "full-time": ("full", "full_time", "permanent"),
    "part-time": ("part", "part_time"),
    "contract": ("contract", "freelance", "temporary"),
    "internship": ("intern",),
    "remote": ("remote",),
}


def location_matches(posting: JobPosting, locations: Sequence[str]) -> bool:
    if not locations:
        return True
    job_loc = (posting.location or "").lower()
    job_is_remote = mentions_remote(job_loc)
    for pref in locations:
        pref_low = pref.strip().lower()
        if pref_low in REMOTE_TERMS:
            if job_is_remote:
                return True
        elif job_is_remote or pref_low in job_loc:
            return True
    return False


def _generic_word_ok(title: str, word: str) -> bool:
    tokens = re.findall(r"[\w'+#.-]+,?", title.lower())
    if not tokens:
        return False
    if tokens[0].rstrip(",") == word:
        return True
    return f"{word}," in tokens


def keyword_matches(posting: JobPosting, keyword: str) -> bool:
    kw = keyword.strip().lower()
    if not kw:
        return False
    title = posting.title or ""
    if " " in kw:
        words = kw.split()
        if all(contains_word(title, w) for w in words):
            return True
        return kw in title.lower()
    if contains_word(title, kw):
        if kw in GENERIC_ROLE_WORDS:
            return _generic_word_ok(title, kw)
        return True
    return contains_word(posting.description, kw)


def employment_type_matches(posting: JobPosting, wanted: Sequence[str]) -> bool:
    if not wanted or not posting.employment_type:
        return True
    job_type = posting.employment_type.lower()
    for pref in wanted:
        pref_low = pref.strip().lower()
        if any(s in job_type for s in _EMPLOYMENT_SYNONYMS.get(pref_low, ())):
            return True
        if pref_low in job_type:
            return True
    return False


def salary_matches(posting: JobPosting, min_salary: int | None) -> bool:
    if not min_salary:
        return True
    amount = extract_min_salary(posting.salary)
    return amount is None or amount >= min_salary


def matches(posting: JobPosting, prefs: UserPreference) -> bool:
    if not location_matches(posting, prefs.locations):
        log.debug("Filtered %r: location %r", posting.title, posting.location)
        return False
    if prefs.keywords and not any(keyword_matches(posting, kw) for kw in prefs.keywords):
        log.debug("Filtered %r: no keyword match", posting.title)
        return False
    if not employment_type_matches(posting, prefs.employment_types):
        log.debug("Filtered %r: employment type %r", posting.title, posting.employment_type)
        return False
    if not salary_matches(posting, prefs.min_salary):
        log.debug("Filtered %r: salary %r below floor", posting.title, posting.salary)
        return False
    return True


def filter_postings(postings: Iterable[JobPosting], prefs: UserPreference) -> list[JobPosting]:
    postings = list(postings)
    kept = [p for p in postings if matches(p, prefs)]
    log.info("Preference filter kept %d of %d postings", len(kept), len(postings))
    return kept


def prioritize(postings: Iterable[JobPosting], target_companies: Sequence[str]) -> list[JobPosting]:
    """Stable partition: target-company postings first, each group in its original order."""
    targets = [t.lower() for t in target_companies if t and t.strip()]
    if not targets:
        return list(postings)
    first: list[JobPosting] = []
    rest: list[JobPosting] = []
    for p in postings:
        company = (p.company or "").lower()
        (first if any(t in company for t in targets) else rest).append(p)
    return first + rest
