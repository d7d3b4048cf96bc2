"""Audit trail for operator actions (entity merges)."""
import json
import logging
from typing import Any, Dict, Optional

from sqlmodel import Session

from agencysync.models.records import AuditLog

logger = logging.getLogger(__name__)


def record_audit(
    engine,
    action: str,
    *,
    actor: Optional[str] = None,
    entity: Optional[str] = None,
    entity_id: Optional[Any] = None,
    details: Optional[Dict[str, Any]] = None,
) -> bool:
    """
    Write one AuditLog row.

    The action being audited has already happened, so a failure here is
    logged and reported through the return value instead of raised.
    """
    row = AuditLog(
        action=action,
        actor=actor,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        details=json.dumps(details, default=str) if details is not None else None,
    )
    try:
        with Session(engine) as s:
            s.add(row)
            s.commit()
    except Exception as exc:
        logger.error("Audit write failed for %s %s: %s", action, entity_id, exc)
        return False
    return True
