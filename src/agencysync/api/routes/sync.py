"""Sync trigger and status routes."""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from agencysync.api.deps import get_config_store, get_db_engine, get_runner
from agencysync.integrations.config_store import ConfigStore
from agencysync.integrations.registry import UnknownSyncKindError, create_adapter, kinds_for
from agencysync.sync.engine import SyncEngine

router = APIRouter()


class SyncStartedResponse(BaseModel):
    job_id: int
    provider: str
    type: str


class SyncStatusResponse(BaseModel):
    job_id: int
    status: str
    records_found: int
    records_synced: int
    records_failed: int
    current_step: str
    errors: List[str]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]


@router.post("/{provider}", response_model=SyncStartedResponse)
async def start_sync(
    provider: str,
    kind: Optional[str] = Query(None, alias="type"),
    engine=Depends(get_db_engine),
    store: ConfigStore = Depends(get_config_store),
    runner: SyncEngine = Depends(get_runner),
):
    """
    Start a sync for one provider data kind.
    Returns immediately; poll /sync/status/{job_id} for progress.
    """
    try:
        adapter = create_adapter(provider, kind or "", engine, store=store)
    except UnknownSyncKindError:
        supported = kinds_for(provider)
        if not supported:
            raise HTTPException(status_code=400, detail=f"Unknown provider: {provider}")
        raise HTTPException(
            status_code=400,
            detail=f"Invalid sync type. Must be one of: {', '.join(supported)}",
        )

    if not store.is_enabled(provider):
        raise HTTPException(
            status_code=400, detail=f"{provider.capitalize()} integration is not enabled"
        )

    job_id = await runner.run(adapter, "full", "manual")
    return SyncStartedResponse(job_id=job_id, provider=provider, type=kind)


@router.get("/status/{job_id}", response_model=SyncStatusResponse)
def sync_status(job_id: int, runner: SyncEngine = Depends(get_runner)):
    """Live progress while the job is fresh, the stored job afterwards."""
    status = runner.get_status(job_id)
    if status is None:
        raise HTTPException(status_code=404, detail="Sync job not found")
    return SyncStatusResponse(
        job_id=status.job_id,
        status=status.status,
        records_found=status.records_found,
        records_synced=status.records_synced,
        records_failed=status.records_failed,
        current_step=status.current_step,
        errors=status.errors,
        started_at=status.started_at,
        completed_at=status.completed_at,
    )
