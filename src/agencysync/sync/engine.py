"""
SyncEngine — runs one sync adapter in the background and records the outcome.

Flow for a run:
  1. Create SyncJob (status="running") and seed live progress
  2. Spawn the pipeline as an asyncio task; return the job id immediately
  3. For each batch from adapter.fetch_all(): count it, map_and_upsert() it,
     accumulate synced/failed/errors, publish progress
  4. Finalize SyncJob (status="completed") and stamp the provider's
     IntegrationConfig with last_sync_at / last_sync_status

Per-item failures only count towards records_failed; the run still completes.
Any exception escaping the adapter finalizes the job as "failed" with the
counters accumulated so far plus the triggering message. If recording the
completed outcome itself fails, the job is finalized as "failed" instead.

There is no cancellation: a started run ends by completing or failing.
"""
import asyncio
import functools
import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlmodel import Session, select

from agencysync.config import get_settings
from agencysync.models.sync import MAX_JOB_ERRORS, IntegrationConfig, SyncJob
from agencysync.sync.progress import ProgressRegistry
from agencysync.sync.types import SyncAdapter, SyncContext, SyncProgress, SyncStatus

logger = logging.getLogger(__name__)

_STEP_FOR_STATUS = {"running": "Running", "completed": "Completed", "failed": "Failed"}


class SyncEngine:
    """Starts sync runs and answers progress polls for them."""

    def __init__(self, engine, progress: Optional[ProgressRegistry] = None):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            progress: Live progress registry. Defaults to a fresh registry
                      using the configured eviction delay.
        """
        self.engine = engine
        self.progress = progress or ProgressRegistry(
            ttl_seconds=get_settings().progress_ttl_seconds
        )
        self._tasks: Dict[int, asyncio.Task] = {}

    async def run(
        self,
        adapter: SyncAdapter,
        sync_type: str = "full",
        triggered_by: Optional[str] = None,
    ) -> int:
        """
        Start a sync run without waiting for it.

        Args:
            adapter: The provider/data-kind adapter to drive.
            sync_type: "full" or "incremental".
            triggered_by: Free-form actor tag, e.g. "manual" or "scheduler".

        Returns:
            The new SyncJob id.
        """
        job = self._create_job(adapter.provider, sync_type, triggered_by)
        context = SyncContext(
            job_id=job.id,
            provider=adapter.provider,
            sync_type=sync_type,
            triggered_by=triggered_by,
        )
        self.progress.set(job.id, SyncProgress())

        task = asyncio.create_task(
            self._execute(adapter, context), name=f"sync-{job.id}"
        )
        self._tasks[job.id] = task
        task.add_done_callback(functools.partial(self._on_task_done, job.id))

        context.log.info("Started %s (%s)", adapter.name or adapter.provider, sync_type)
        return job.id

    async def wait(self, job_id: int) -> None:
        """Block until the job's pipeline finishes. No-op if it is not in flight."""
        task = self._tasks.get(job_id)
        if task is not None:
            await task

    def is_running(self, job_id: int) -> bool:
        return job_id in self._tasks

    def get_progress(self, job_id: int) -> Optional[SyncProgress]:
        """Live progress, or None once evicted (or if the job is unknown)."""
        return self.progress.get(job_id)

    def get_status(self, job_id: int) -> Optional[SyncStatus]:
        """
        Combine live progress with the persisted SyncJob.

        Counters and step come from the registry while it still holds the job;
        after eviction (or a restart) the SyncJob row is authoritative.
        """
        progress = self.progress.get(job_id)
        with Session(self.engine) as s:
            job = s.get(SyncJob, job_id)

        if job is None and progress is None:
            return None

        if progress is not None:
            return SyncStatus(
                job_id=job_id,
                status=progress.status,
                records_found=progress.records_found,
                records_synced=progress.records_synced,
                records_failed=progress.records_failed,
                current_step=progress.current_step,
                errors=progress.errors,
                started_at=job.started_at if job else None,
                completed_at=job.completed_at if job else None,
            )

        return SyncStatus(
            job_id=job.id,
            status=job.status,
            records_found=job.records_found,
            records_synced=job.records_synced,
            records_failed=job.records_failed,
            current_step=_STEP_FOR_STATUS.get(job.status, "Running"),
            errors=job.errors,
            started_at=job.started_at,
            completed_at=job.completed_at,
        )

    # ─── Pipeline ─────────────────────────────────────────────────────────────

    async def _execute(self, adapter: SyncAdapter, context: SyncContext) -> None:
        found = synced = failed = 0
        errors: List[str] = []

        try:
            async for batch in adapter.fetch_all(context):
                found += len(batch)
                self._publish(
                    context.job_id, found, synced, failed, errors,
                    f"Processing batch ({found} found)...",
                )

                result = await adapter.map_and_upsert(batch, context)
                synced += result.synced
                failed += result.failed
                errors.extend(result.errors)

                self._publish(
                    context.job_id, found, synced, failed, errors,
                    f"Synced {synced}/{found}",
                )

        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            context.log.error("Fatal sync error: %s", message)
            errors.append(message)
            self._finalize(
                context, status="failed",
                found=found, synced=synced, failed=failed, errors=errors,
            )
            return

        try:
            self._finalize(
                context, status="completed",
                found=found, synced=synced, failed=failed, errors=errors,
            )
        except Exception as exc:
            # The completed write rolled back; record the run as failed instead
            message = f"Could not record completion: {str(exc) or exc.__class__.__name__}"
            context.log.error(message)
            errors.append(message)
            self._finalize(
                context, status="failed",
                found=found, synced=synced, failed=failed, errors=errors,
            )
            return

        context.log.info(
            "Completed: %d found, %d synced, %d failed", found, synced, failed
        )

    def _publish(
        self, job_id: int, found: int, synced: int, failed: int, errors: List[str], step: str
    ) -> None:
        self.progress.set(
            job_id,
            SyncProgress(
                status="running",
                records_found=found,
                records_synced=synced,
                records_failed=failed,
                current_step=step,
                errors=errors[-MAX_JOB_ERRORS:],
            ),
        )

    def _on_task_done(self, job_id: int, task: asyncio.Task) -> None:
        self._tasks.pop(job_id, None)
        # Every finished run is evicted, including one whose finalize raised
        self.progress.schedule_eviction(job_id)
        if task.cancelled():
            logger.warning("Sync %s task was cancelled", job_id)
            return
        exc = task.exception()
        if exc is not None:
            # _execute handles adapter errors; this is a bookkeeping failure
            logger.error("Sync %s could not be finalized: %s", job_id, exc, exc_info=exc)

    # ─── Persistence helpers ──────────────────────────────────────────────────

    def _create_job(
        self, provider: str, sync_type: str, triggered_by: Optional[str]
    ) -> SyncJob:
        job = SyncJob(
            provider=provider,
            sync_type=sync_type,
            status="running",
            triggered_by=triggered_by,
            started_at=datetime.utcnow(),
        )
        with Session(self.engine) as s:
            s.add(job)
            s.commit()
            s.refresh(job)
        return job

    def _finalize(
        self,
        context: SyncContext,
        *,
        status: str,
        found: int,
        synced: int,
        failed: int,
        errors: List[str],
    ) -> None:
        now = datetime.utcnow()
        with Session(self.engine) as s:
            job = s.get(SyncJob, context.job_id)
            job.status = status
            job.records_found = found
            job.records_synced = synced
            job.records_failed = failed
            job.set_errors(errors)
            job.completed_at = now
            s.add(job)

            if status == "completed":
                integration = s.exec(
                    select(IntegrationConfig).where(
                        IntegrationConfig.provider == context.provider
                    )
                ).first()
                if integration is not None:
                    integration.last_sync_at = now
                    integration.last_sync_status = "success" if failed == 0 else "partial"
                    integration.updated_at = now
                    s.add(integration)
                else:
                    context.log.warning(
                        "No integration config for %s; last sync not recorded",
                        context.provider,
                    )
            s.commit()

        self.progress.set(
            context.job_id,
            SyncProgress(
                status=status,
                records_found=found,
                records_synced=synced,
                records_failed=failed,
                current_step=_STEP_FOR_STATUS[status],
                errors=errors[-MAX_JOB_ERRORS:],
            ),
        )


_sync_engine: Optional[SyncEngine] = None


def get_sync_engine() -> SyncEngine:
    """Process-wide SyncEngine bound to the application database."""
    global _sync_engine
    if _sync_engine is None:
        from agencysync.db.engine import get_engine
        _sync_engine = SyncEngine(get_engine())
    return _sync_engine
