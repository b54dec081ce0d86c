"""Search fingerprints: the cache key for one semantic search."""
from __future__ import annotations

import re
from typing import Iterable

_WS_RE = re.compile(r"\s+")


def _norm(value: str) -> str:
    return _WS_RE.sub("_", value.strip().lower())


def fingerprint(keywords: Iterable[str], locations: Iterable[str]) -> str:
    """``<sorted keywords>|<primary location>|remote|onsite``.

    Pure in its normalized inputs: keyword order, case, duplicates and
    surrounding whitespace do not change the result.
    """
    kws = sorted({_norm(k) for k in keywords if k and k.strip()})
    locs = [_norm(loc) for loc in locations if loc and loc.strip()]
    primary = locs[0] if locs else "remote"
    flag = "remote" if not locs or "remote" in locs else "onsite"
    return f"{','.join(kws)}|{primary}|{flag}"
