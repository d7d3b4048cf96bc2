"""Sync job audit log and per-provider integration config."""
import json
from datetime import datetime
from typing import List, Optional

from sqlmodel import Field, SQLModel

MAX_JOB_ERRORS = 100


class SyncJob(SQLModel, table=True):
    """One row per sync run. Written only by the sync engine."""

    id: Optional[int] = Field(default=None, primary_key=True)
    provider: str = Field(index=True)
    sync_type: str = "full"  # "full", "incremental"
    status: str = "running"  # "running", "completed", "failed"
    records_found: int = 0
    records_synced: int = 0
    records_failed: int = 0
    error_log: Optional[str] = None  # JSON list of strings, newest last
    started_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: Optional[datetime] = None
    triggered_by: Optional[str] = None

    @property
    def errors(self) -> List[str]:
        return json.loads(self.error_log) if self.error_log else []

    def set_errors(self, errors: List[str]) -> None:
        """Store at most MAX_JOB_ERRORS messages, dropping the oldest."""
        kept = list(errors)[-MAX_JOB_ERRORS:]
        self.error_log = json.dumps(kept) if kept else None


class IntegrationConfig(SQLModel, table=True):
    """
    Connection settings for one external provider.

    config_json holds Fernet ciphertext of a JSON object, or the literal "{}"
    while the integration has never been configured.
    """

    id: Optional[int] = Field(default=None, primary_key=True)
    provider: str = Field(unique=True, index=True)
    enabled: bool = False
    config_json: str = "{}"
    last_sync_at: Optional[datetime] = None
    last_sync_status: Optional[str] = None  # "success", "partial"
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
