"""Sync adapter contract and the value types shared with the engine."""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import AsyncIterator, Callable, Generic, List, Optional, TypeVar

T = TypeVar("T")

logger = logging.getLogger("agencysync.sync")


class _JobLogAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        return f"[Sync {self.extra['job_id']}] {msg}", kwargs


@dataclass
class SyncContext:
    job_id: int
    provider: str
    sync_type: str = "full"
    triggered_by: Optional[str] = None

    @property
    def log(self) -> logging.LoggerAdapter:
        """Logger whose messages are prefixed with this job's id."""
        return _JobLogAdapter(logger, {"job_id": self.job_id})


@dataclass
class BatchResult:
    synced: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class SyncProgress:
    """Transient, in-process view of a running (or just finished) job."""

    status: str = "running"
    records_found: int = 0
    records_synced: int = 0
    records_failed: int = 0
    current_step: str = "Starting..."
    errors: List[str] = field(default_factory=list)


@dataclass
class SyncStatus:
    """Answer to a status poll: live progress when available, else the stored job."""

    job_id: int
    status: str
    records_found: int
    records_synced: int
    records_failed: int
    current_step: str
    errors: List[str]
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class SyncAdapter(ABC, Generic[T]):
    """
    One (provider, data kind) pairing.

    fetch_all() is an async generator yielding one batch per provider page.
    It is finite and cannot be restarted; an exception while fetching a page
    ends the run. map_and_upsert() handles each item independently and
    reports per-item failures in its BatchResult instead of raising.
    """

    name: str = ""
    provider: str = ""

    @abstractmethod
    def fetch_all(self, context: SyncContext) -> AsyncIterator[List[T]]:
        ...

    @abstractmethod
    async def map_and_upsert(self, batch: List[T], context: SyncContext) -> BatchResult:
        ...

    def _map_each(
        self,
        items: List[T],
        context: SyncContext,
        handler: Callable[[T], bool],
        label: Callable[[T], str],
    ) -> BatchResult:
        """Run handler on every item, isolating failures.

        handler returns True when the item was written and False when it was
        deliberately skipped; skipped items count as neither synced nor failed.
        """
        result = BatchResult()
        for item in items:
            try:
                if handler(item):
                    result.synced += 1
            except Exception as exc:
                message = f"{label(item)}: {exc}"
                result.failed += 1
                result.errors.append(message)
                context.log.error(message)
        return result
