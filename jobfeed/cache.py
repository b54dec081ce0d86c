"""TTL cache of posting lists keyed by search fingerprint.

One writer (the batch pipeline or a live user pass) and many readers
share a :class:`CacheStore`. Backends store whole :class:`CacheEntry`
values: a write replaces the entry in one step, so a reader sees either
the old entry or the new one and never a half-written list.
"""
from __future__ import annotations

import json
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any, Mapping, Protocol, Sequence

from jobfeed.db import connect, enable_wal, to_iso_utc
from jobfeed.errors import CacheReadFailure, CacheWriteFailure
from jobfeed.log import get_logger
from jobfeed.models import Clock, JobPosting, parse_timestamp, utcnow

log = get_logger(__name__)

DEFAULT_TTL = timedelta(hours=24)
POPULAR_TTL = timedelta(days=7)
POPULAR_THRESHOLD = 5


@dataclass(frozen=True)
class CacheEntry:
    fingerprint: str
    postings: tuple[JobPosting, ...]
    created_at: datetime
    expires_at: datetime
    search_params: Mapping[str, Any] = field(default_factory=dict)
    access_count: int = 0
    last_accessed_at: datetime | None = None

    def is_live(self, now: datetime) -> bool:
        return now < self.expires_at


class CacheBackend(Protocol):
    def load(self, fingerprint: str) -> CacheEntry | None: ...

    def save(self, entry: CacheEntry) -> None: ...

    def touch(self, fingerprint: str, when: datetime) -> bool: ...

    def delete_expired(self, now: datetime) -> int: ...

    def entries(self) -> list[CacheEntry]: ...


class MemoryCacheBackend:
    """In-process backend; writers swap whole entries under a lock, readers take none."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}
        self._write_lock = threading.Lock()

    def load(self, fingerprint: str) -> CacheEntry | None:
        return self._entries.get(fingerprint)

    def save(self, entry: CacheEntry) -> None:
        with self._write_lock:
            self._entries[entry.fingerprint] = entry

    def touch(self, fingerprint: str, when: datetime) -> bool:
        with self._write_lock:
            entry = self._entries.get(fingerprint)
            if entry is None:
                return False
            self._entries[fingerprint] = replace(
                entry, access_count=entry.access_count + 1, last_accessed_at=when
            )
            return True

    def delete_expired(self, now: datetime) -> int:
        with self._write_lock:
            live = {fp: e for fp, e in self._entries.items() if e.is_live(now)}
            removed = len(self._entries) - len(live)
            self._entries = live
        return removed

    def entries(self) -> list[CacheEntry]:
        return list(self._entries.values())


class SqliteCacheBackend:
    """``job_cache`` table; WAL keeps readers off the writer's lock."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        enable_wal(self.path)
        with connect(self.path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS job_cache (
                    fingerprint TEXT PRIMARY KEY,
                    search_params TEXT NOT NULL,
                    postings TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    expires_at TEXT NOT NULL,
                    access_count INTEGER NOT NULL DEFAULT 0,
                    last_accessed_at TEXT
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_cache_expires ON job_cache(expires_at)")

    @staticmethod
    def _row_to_entry(row) -> CacheEntry:
        return CacheEntry(
            fingerprint=row["fingerprint"],
            postings=tuple(JobPosting.from_dict(p) for p in json.loads(row["postings"])),
            created_at=parse_timestamp(row["created_at"]),
            expires_at=parse_timestamp(row["expires_at"]),
            search_params=json.loads(row["search_params"]),
            access_count=row["access_count"],
            last_accessed_at=parse_timestamp(row["last_accessed_at"]),
        )

    def load(self, fingerprint: str) -> CacheEntry | None:
        with connect(self.path) as conn:
            row = conn.execute(
                "SELECT * FROM job_cache WHERE fingerprint = ?", (fingerprint,)
            ).fetchone()
        return self._row_to_entry(row) if row else None

    def save(self, entry: CacheEntry) -> None:
        with connect(self.path) as conn:
            conn.execute(
                """
                INSERT INTO job_cache
                (fingerprint, search_params, postings, created_at, expires_at, access_count, last_accessed_at)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(fingerprint) DO UPDATE SET
                    search_params = excluded.search_params,
                    postings = excluded.postings,
                    created_at = excluded.created_at,
                    expires_at = excluded.expires_at,
                    access_count = excluded.access_count,
                    last_accessed_at = excluded.last_accessed_at
                """,
                (
                    entry.fingerprint,
                    json.dumps(dict(entry.search_params), sort_keys=True),
                    json.dumps([p.to_dict() for p in entry.postings]),
                    to_iso_utc(entry.created_at),
                    to_iso_utc(entry.expires_at),
                    entry.access_count,
                    to_iso_utc(entry.last_accessed_at),
                ),
            )

    def touch(self, fingerprint: str, when: datetime) -> bool:
        with connect(self.path) as conn:
            cur = conn.execute(
                "UPDATE job_cache SET access_count = access_count + 1, last_accessed_at = ? "
                "WHERE fingerprint = ?",
                (to_iso_utc(when), fingerprint),
            )
        return cur.rowcount > 0

    def delete_expired(self, now: datetime) -> int:
        with connect(self.path) as conn:
            cur = conn.execute("DELETE FROM job_cache WHERE expires_at <= ?", (to_iso_utc(now),))
        return cur.rowcount

    def entries(self) -> list[CacheEntry]:
        with connect(self.path) as conn:
            rows = conn.execute("SELECT * FROM job_cache").fetchall()
        return [self._row_to_entry(r) for r in rows]


class CacheStore:
    """Fingerprint -> postings with expiry, access stats and hit/miss telemetry.

    Backend failures never escape: a failed read is a miss, a failed
    write returns False and the caller keeps the data it already has.
    """

    def __init__(
        self,
        backend: CacheBackend | None = None,
        clock: Clock = utcnow,
        default_ttl: timedelta = DEFAULT_TTL,
        popular_ttl: timedelta = POPULAR_TTL,
        popular_threshold: int = POPULAR_THRESHOLD,
    ) -> None:
        self.backend = backend if backend is not None else MemoryCacheBackend()
        self.clock = clock
        self.default_ttl = default_ttl
        self.popular_ttl = popular_ttl
        self.popular_threshold = popular_threshold
        self._counter_lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._writes = 0
        self._write_failures = 0

    @classmethod
    def from_settings(cls, settings, backend: CacheBackend | None = None, clock: Clock = utcnow) -> CacheStore:
        return cls(
            backend=backend,
            clock=clock,
            default_ttl=timedelta(hours=settings.cache_ttl_hours),
            popular_ttl=timedelta(hours=settings.popular_ttl_hours),
            popular_threshold=settings.popular_threshold,
        )

    def _count(self, attr: str) -> None:
        with self._counter_lock:
            setattr(self, attr, getattr(self, attr) + 1)

    def _load(self, fingerprint: str) -> CacheEntry | None:
        try:
            return self.backend.load(fingerprint)
        except Exception as exc:
            raise CacheReadFailure(f"load {fingerprint!r}: {exc}") from exc

    def entry(self, fingerprint: str) -> CacheEntry | None:
        """Live entry with its metadata, or None. Does not touch the hit/miss counters."""
        try:
            entry = self._load(fingerprint)
        except CacheReadFailure as exc:
            log.warning("Cache read failed: %s", exc)
            return None
        if entry is None or not entry.is_live(self.clock()):
            return None
        return entry

    def get(self, fingerprint: str) -> list[JobPosting] | None:
        """Postings for *fingerprint* while ``now < expires_at``; None on miss."""
        try:
            entry = self._load(fingerprint)
        except CacheReadFailure as exc:
            log.warning("Cache read failed, treating as miss: %s", exc)
            self._count("_misses")
            return None
        if entry is None or not entry.is_live(self.clock()):
            log.debug("Cache miss: %s", fingerprint)
            self._count("_misses")
            return None
        self._count("_hits")
        log.debug("Cache hit: %s (%d postings)", fingerprint, len(entry.postings))
        return list(entry.postings)

    def _ttl_for(self, fingerprint: str) -> timedelta:
        try:
            previous = self._load(fingerprint)
        except CacheReadFailure:
            return self.default_ttl
        if previous is not None and previous.access_count >= self.popular_threshold:
            log.debug("Popular fingerprint %s (%d reads)", fingerprint, previous.access_count)
            return self.popular_ttl
        return self.default_ttl

    def put(
        self,
        fingerprint: str,
        search_params: Mapping[str, Any],
        postings: Sequence[JobPosting],
        ttl: timedelta | None = None,
    ) -> bool:
        """Upsert; expiry restarts and access stats reset. Returns False if the write failed."""
        if ttl is None:
            ttl = self._ttl_for(fingerprint)
        if ttl <= timedelta(0):
            raise ValueError("cache ttl must be positive")
        now = self.clock()
        entry = CacheEntry(
            fingerprint=fingerprint,
            postings=tuple(p.as_cached() for p in postings),
            created_at=now,
            expires_at=now + ttl,
            search_params=dict(search_params),
        )
        try:
            self.backend.save(entry)
        except Exception as exc:
            failure = CacheWriteFailure(f"save {fingerprint!r}: {exc}")
            log.error("Cache write failed: %s", failure)
            self._count("_write_failures")
            return False
        self._count("_writes")
        log.info("Cached %d postings under %s (ttl %s)", len(postings), fingerprint, ttl)
        return True

    def touch(self, fingerprint: str) -> bool:
        try:
            return self.backend.touch(fingerprint, self.clock())
        except Exception as exc:
            log.warning("Cache touch failed for %s: %s", fingerprint, exc)
            return False

    def evict_expired(self) -> int:
        try:
            removed = self.backend.delete_expired(self.clock())
        except Exception as exc:
            log.error("Cache eviction failed: %s", exc)
            return 0
        log.info("Evicted %d expired cache entries", removed)
        return removed

    def _entries(self) -> list[CacheEntry]:
        try:
            return self.backend.entries()
        except Exception as exc:
            log.warning("Cache listing failed: %s", exc)
            return []

    def is_empty(self) -> bool:
        """True when no entry is live."""
        now = self.clock()
        return not any(e.is_live(now) for e in self._entries())

    def last_update(self) -> datetime | None:
        created = [e.created_at for e in self._entries()]
        return max(created) if created else None

    def stats(self) -> dict[str, Any]:
        now = self.clock()
        entries = self._entries()
        live = [e for e in entries if e.is_live(now)]
        with self._counter_lock:
            hits, misses = self._hits, self._misses
            writes, failures = self._writes, self._write_failures
        lookups = hits + misses
        return {
            "entries": len(entries),
            "live_entries": len(live),
            "expired_entries": len(entries) - len(live),
            "cached_postings": sum(len(e.postings) for e in live),
            "popular_entries": sum(1 for e in live if e.access_count >= self.popular_threshold),
            "hits": hits,
            "misses": misses,
            "hit_rate": round(hits / lookups, 3) if lookups else 0.0,
            "writes": writes,
            "write_failures": failures,
        }
