"""Persisted postings: append/delete-only ``scraped_jobs`` table.

Batch runs insert rows with no owning user and ``is_cached = 1``; live
user passes insert rows scoped to that user. Rows are never updated.
"""
from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Iterable

from jobfeed.db import connect, enable_wal, to_iso_utc
from jobfeed.log import get_logger
from jobfeed.models import JobPosting, parse_timestamp

log = get_logger(__name__)

_COLUMNS = (
    "user_id", "source", "external_id", "title", "company", "location",
    "description", "url", "posted_at", "salary", "employment_type",
    "scraped_at", "is_cached",
)


def _row(user_id: str | None, p: JobPosting, cached: bool) -> tuple:
    return (
        user_id, p.source, p.external_id, p.title, p.company, p.location,
        p.description, p.url, to_iso_utc(p.posted_at), p.salary,
        p.employment_type, to_iso_utc(p.scraped_at), int(cached),
    )


def _posting(row) -> JobPosting:
    return JobPosting(
        source=row["source"],
        external_id=row["external_id"],
        title=row["title"],
        company=row["company"],
        location=row["location"] or "",
        description=row["description"] or "",
        url=row["url"] or "",
        posted_at=parse_timestamp(row["posted_at"]),
        salary=row["salary"],
        employment_type=row["employment_type"],
        scraped_at=parse_timestamp(row["scraped_at"]),
        cached=bool(row["is_cached"]),
    )


class PostingStore:
    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        enable_wal(self.path)
        with connect(self.path) as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS scraped_jobs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    user_id TEXT,
                    source TEXT NOT NULL,
                    external_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    company TEXT NOT NULL,
                    location TEXT,
                    description TEXT,
                    url TEXT,
                    posted_at TEXT,
                    salary TEXT,
                    employment_type TEXT,
                    scraped_at TEXT NOT NULL,
                    is_cached INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            conn.execute("CREATE INDEX IF NOT EXISTS idx_scraped_at ON scraped_jobs(scraped_at)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_scraped_cached ON scraped_jobs(is_cached)")
            conn.execute("CREATE INDEX IF NOT EXISTS idx_scraped_user ON scraped_jobs(user_id)")

    def _insert(self, user_id: str | None, postings: Iterable[JobPosting], cached: bool) -> int:
        rows = [_row(user_id, p, cached) for p in postings]
        if not rows:
            return 0
        placeholders = ", ".join("?" for _ in _COLUMNS)
        with connect(self.path) as conn:
            conn.executemany(
                f"INSERT INTO scraped_jobs ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                rows,
            )
        return len(rows)

    def insert_cached(self, postings: Iterable[JobPosting]) -> int:
        """Batch postings, no owning user."""
        n = self._insert(None, postings, cached=True)
        log.info("Stored %d batch postings", n)
        return n

    def insert_for_user(self, user_id: str, postings: Iterable[JobPosting]) -> int:
        n = self._insert(user_id, postings, cached=False)
        log.info("Stored %d live postings for user %s", n, user_id)
        return n

    def recent(
        self,
        since: datetime,
        cached: bool | None = None,
        user_id: str | None = None,
    ) -> list[JobPosting]:
        """Postings scraped at or after *since*, newest first."""
        sql = "SELECT * FROM scraped_jobs WHERE scraped_at >= ?"
        params: list = [to_iso_utc(since)]
        if cached is not None:
            sql += " AND is_cached = ?"
            params.append(int(cached))
        if user_id is not None:
            sql += " AND user_id = ?"
            params.append(user_id)
        sql += " ORDER BY scraped_at DESC, id ASC"
        with connect(self.path) as conn:
            rows = conn.execute(sql, params).fetchall()
        return [_posting(r) for r in rows]

    def delete_scraped_before(self, cutoff: datetime) -> int:
        with connect(self.path) as conn:
            cur = conn.execute("DELETE FROM scraped_jobs WHERE scraped_at < ?", (to_iso_utc(cutoff),))
        log.info("Deleted %d postings scraped before %s", cur.rowcount, cutoff.isoformat())
        return cur.rowcount

    def count(self, cached: bool | None = None) -> int:
        sql = "SELECT COUNT(*) FROM scraped_jobs"
        params: list = []
        if cached is not None:
            sql += " WHERE is_cached = ?"
            params.append(int(cached))
        with connect(self.path) as conn:
            return conn.execute(sql, params).fetchone()[0]

    def latest_scrape(self, cached: bool = True) -> datetime | None:
        with connect(self.path) as conn:
            row = conn.execute(
                "SELECT MAX(scraped_at) FROM scraped_jobs WHERE is_cached = ?", (int(cached),)
            ).fetchone()
        return parse_timestamp(row[0]) if row else None

    def counts_by_source(self, since: datetime) -> dict[str, int]:
        """Batch postings per source scraped since *since*, largest first."""
        with connect(self.path) as conn:
            rows = conn.execute(
                "SELECT source, COUNT(*) AS n FROM scraped_jobs "
                "WHERE is_cached = 1 AND scraped_at >= ? GROUP BY source ORDER BY n DESC, source",
                (to_iso_utc(since),),
            ).fetchall()
        return {r["source"]: r["n"] for r in rows}
