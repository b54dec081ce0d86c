"""Merge adapter outputs into one list of unique postings."""
from __future__ import annotations

from typing import Iterable

from jobfeed.log import get_logger
from jobfeed.models import JobPosting

log = get_logger(__name__)


def dedupe(postings: Iterable[JobPosting]) -> list[JobPosting]:
    """Keep the first posting for each identity key, in input order.

    Callers concatenate sources in priority order, so the copy from the
    higher-priority source wins.
    """
    seen: set[str] = set()
    unique: list[JobPosting] = []
    dropped = 0
    for posting in postings:
        key = posting.identity_key
        if key in seen:
            dropped += 1
            continue
        seen.add(key)
        unique.append(posting)
    if dropped:
        log.debug("Dropped %d duplicate posting(s)", dropped)
    return unique
