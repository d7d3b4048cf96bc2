"""
In-process registry of live sync progress, polled by status requests.

The registry belongs to one SyncEngine and lives only as long as the
process. A deployment running several API processes must replace it with a
shared store, otherwise a poll served by another process only sees the
persisted SyncJob row.
"""
import asyncio
from dataclasses import replace
from typing import Dict, Optional

from agencysync.sync.types import SyncProgress


class ProgressRegistry:
    """job id -> SyncProgress, with delayed eviction after a job finishes."""

    def __init__(self, ttl_seconds: float = 300.0):
        self.ttl_seconds = ttl_seconds
        self._entries: Dict[int, SyncProgress] = {}

    def set(self, job_id: int, progress: SyncProgress) -> None:
        self._entries[job_id] = progress

    def get(self, job_id: int) -> Optional[SyncProgress]:
        """Return a copy so pollers never observe a half-applied update."""
        progress = self._entries.get(job_id)
        if progress is None:
            return None
        return replace(progress, errors=list(progress.errors))

    def discard(self, job_id: int) -> None:
        self._entries.pop(job_id, None)

    def schedule_eviction(self, job_id: int) -> None:
        """Drop the entry ttl_seconds from now. Needs a running event loop."""
        loop = asyncio.get_running_loop()
        loop.call_later(self.ttl_seconds, self.discard, job_id)

    def __contains__(self, job_id: int) -> bool:
        return job_id in self._entries

    def __len__(self) -> int:
        return len(self._entries)
