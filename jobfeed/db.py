"""Shared sqlite plumbing for the cache and posting tables."""
from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator


def to_iso_utc(value: datetime | None) -> str | None:
    """UTC ISO-8601 so that stored timestamps compare lexicographically."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


@contextmanager
def connect(path: Path | str) -> Iterator[sqlite3.Connection]:
    """One connection per unit of work: commit on success, rollback on error, always close."""
    conn = sqlite3.connect(str(path), timeout=10.0)
    conn.row_factory = sqlite3.Row
    try:
        with conn:
            yield conn
    finally:
        conn.close()


def enable_wal(path: Path | str) -> None:
    with connect(path) as conn:
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
