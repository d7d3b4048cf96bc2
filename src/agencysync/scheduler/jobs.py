"""
APScheduler jobs for background sync.

The nightly sync runs every enabled integration's default data kinds, one
at a time, so that contacts and companies exist before the invoices and
deals that reference them.

The scheduler runs inside the long-lived process started by
`python -m agencysync` (wired in __main__.py).
"""
import logging
from datetime import datetime
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from agencysync.config import get_settings
from agencysync.integrations.config_store import ConfigStore
from agencysync.integrations.registry import DEFAULT_KINDS, create_adapter
from agencysync.sync.engine import SyncEngine

logger = logging.getLogger(__name__)


def build_scheduler(engine, runner: Optional[SyncEngine] = None) -> AsyncIOScheduler:
    """
    Create and configure the APScheduler.

    Args:
        engine: SQLAlchemy engine the sync jobs read and write.
        runner: SyncEngine to run adapters with. Defaults to one bound to `engine`.

    Returns:
        Configured AsyncIOScheduler (not yet started).
    """
    settings = get_settings()
    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        _nightly_sync,
        trigger="cron",
        hour=settings.sync_hour,
        minute=0,
        id="nightly_sync",
        replace_existing=True,
        kwargs={"engine": engine, "runner": runner},
    )

    return scheduler


async def _nightly_sync(engine, runner: Optional[SyncEngine] = None) -> None:
    """
    Nightly job: run the default kinds of every enabled integration.

    A failure in one provider is logged and does not stop the others.
    """
    runner = runner or SyncEngine(engine)
    logger.info("Nightly sync starting at %s", datetime.utcnow().isoformat())

    try:
        providers = ConfigStore(engine).enabled_providers()
    except Exception as exc:
        logger.error("Nightly sync could not list integrations: %s", exc)
        return

    for provider in providers:
        for kind in DEFAULT_KINDS.get(provider, []):
            try:
                adapter = create_adapter(provider, kind, engine)
                job_id = await runner.run(adapter, "full", "scheduler")
                await runner.wait(job_id)
                status = runner.get_status(job_id)
                logger.info(
                    "Nightly %s/%s finished: %s (%d synced, %d failed)",
                    provider, kind, status.status, status.records_synced, status.records_failed,
                )
            except Exception as exc:
                logger.error("Nightly %s/%s sync failed: %s", provider, kind, exc)

    logger.info("Nightly sync done")
