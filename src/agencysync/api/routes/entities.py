"""Entity resolution routes: duplicate suggestions and merge/reject decisions."""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from agencysync.api.deps import get_db_engine, get_resolver
from agencysync.audit import record_audit
from agencysync.matching.resolver import (
    EntityNotFoundError,
    EntityResolver,
    MatchSuggestion,
    resolve_kind,
)

logger = logging.getLogger(__name__)

router = APIRouter()


class SuggestionsResponse(BaseModel):
    suggestions: List[MatchSuggestion]


class ResolveRequest(BaseModel):
    action: str  # "confirm" or "reject"
    entity_type: str  # "client" or "team_member"
    keep_id: int
    merge_id: int
    actor: Optional[str] = None


class ResolveResponse(BaseModel):
    success: bool
    action: str  # "merged" or "rejected"


@router.get("/suggestions", response_model=SuggestionsResponse)
def suggestions(type: str = "clients", resolver: EntityResolver = Depends(get_resolver)):
    """Likely cross-source duplicates, highest confidence first."""
    try:
        found = resolver.find_matches(type)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    return SuggestionsResponse(suggestions=found)


@router.post("/resolve", response_model=ResolveResponse)
def resolve(
    request: ResolveRequest,
    engine=Depends(get_db_engine),
    resolver: EntityResolver = Depends(get_resolver),
):
    """Confirm (merge merge_id into keep_id) or reject a suggested pair."""
    try:
        kind = resolve_kind(request.entity_type)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid entity type")

    if request.action not in ("confirm", "reject"):
        raise HTTPException(status_code=400, detail="Invalid action")

    try:
        if request.action == "reject":
            resolver.reject(kind, request.keep_id, request.merge_id)
            return ResolveResponse(success=True, action="rejected")

        result = resolver.merge(kind, request.keep_id, request.merge_id)
    except EntityNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    record_audit(
        engine,
        "entity_resolved",
        actor=request.actor,
        entity=kind,
        entity_id=request.keep_id,
        details={
            "merged_id": request.merge_id,
            "reassigned": result.reassigned,
            "dropped": result.dropped,
            "backfilled": result.backfilled,
        },
    )
    return ResolveResponse(success=True, action="merged")
