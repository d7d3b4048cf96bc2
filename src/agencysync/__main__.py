"""
Main entrypoint: runs one sync, lists match suggestions, or starts the
nightly scheduler.

The HTTP API runs separately under uvicorn.

Usage:
    python -m agencysync                        # starts the scheduler
    python -m agencysync sync xero invoices     # one sync in the foreground
    python -m agencysync matches clients        # duplicate suggestions
    uvicorn agencysync.api.main:app --host 0.0.0.0 --port 8000  # starts API
"""
import argparse
import asyncio
import logging
import sys

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(name)s %(levelname)s %(message)s",
)
logger = logging.getLogger(__name__)


async def _run_sync(provider: str, kind: str) -> int:
    from agencysync.db.engine import get_engine
    from agencysync.integrations.registry import UnknownSyncKindError, create_adapter
    from agencysync.sync.engine import SyncEngine

    engine = get_engine()
    try:
        adapter = create_adapter(provider, kind, engine)
    except UnknownSyncKindError as exc:
        logger.error("%s", exc)
        return 2

    runner = SyncEngine(engine)
    job_id = await runner.run(adapter, "full", "cli")
    await runner.wait(job_id)

    status = runner.get_status(job_id)
    print(
        f"Job {job_id}: {status.status} | found {status.records_found}, "
        f"synced {status.records_synced}, failed {status.records_failed}"
    )
    for error in status.errors:
        print(f"  - {error}")
    return 0 if status.status == "completed" else 1


def _show_matches(kind: str) -> int:
    from agencysync.db.engine import get_engine
    from agencysync.matching.resolver import EntityResolver

    try:
        suggestions = EntityResolver(get_engine()).find_matches(kind)
    except ValueError as exc:
        logger.error("%s", exc)
        return 2

    if not suggestions:
        print("No match suggestions.")
    for m in suggestions:
        print(
            f"{m.confidence:>3}% {m.status:<9} "
            f"#{m.source_a.id} {m.source_a.name} ({m.source_a.source})  <->  "
            f"#{m.source_b.id} {m.source_b.name} ({m.source_b.source})"
        )
    return 0


async def _run_scheduler() -> None:
    from agencysync.config import get_settings
    from agencysync.db.engine import get_engine
    from agencysync.scheduler.jobs import build_scheduler

    settings = get_settings()
    scheduler = build_scheduler(get_engine())
    scheduler.start()
    logger.info("Scheduler started (nightly sync at %02d:00)", settings.sync_hour)

    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown()


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="agencysync")
    sub = parser.add_subparsers(dest="command")

    sync_cmd = sub.add_parser("sync", help="run one provider sync in the foreground")
    sync_cmd.add_argument("provider")
    sync_cmd.add_argument("kind")

    matches_cmd = sub.add_parser("matches", help="list duplicate suggestions")
    matches_cmd.add_argument("type", choices=["clients", "team"])

    args = parser.parse_args(argv)

    if args.command == "sync":
        return asyncio.run(_run_sync(args.provider, args.kind))
    if args.command == "matches":
        return _show_matches(args.type)

    try:
        asyncio.run(_run_scheduler())
    except KeyboardInterrupt:
        logger.info("Stopped.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
