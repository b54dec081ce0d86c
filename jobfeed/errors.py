"""Exception taxonomy for the aggregation pipeline.

Most of these never reach a caller: adapters, the cache store and the
search orchestrator absorb them at their own boundary and degrade to
empty or partial output. Only a whole-run failure inside the batch
pipeline is recorded, and even that is reported through the run record
and the health status rather than raised to the scheduler.
"""
from __future__ import annotations


class JobFeedError(Exception):
    """Base class for every error raised by this package."""


class SourceUnavailable(JobFeedError):
    """A source adapter could not produce postings (network, payload, schema)."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class CredentialsMissing(JobFeedError):
    """A paid source or the metered search service has no credentials."""


class QuotaExceeded(JobFeedError):
    """The run-scoped metered search budget is exhausted."""

    def __init__(self, used: int, ceiling: int) -> None:
        super().__init__(f"search quota exhausted ({used}/{ceiling})")
        self.used = used
        self.ceiling = ceiling


class CacheReadFailure(JobFeedError):
    """The cache backend failed on lookup; callers treat it as a miss."""


class CacheWriteFailure(JobFeedError):
    """The cache backend failed on write; the fresh data is still returned."""


class RunDeadlineExceeded(JobFeedError):
    """A batch run went past its overall deadline."""

    def __init__(self, stage: str, timeout: float) -> None:
        super().__init__(f"run exceeded {timeout:.0f}s deadline during {stage}")
        self.stage = stage
        self.timeout = timeout


class RunInProgress(JobFeedError):
    """A batch run was requested while another one holds the run lock."""
