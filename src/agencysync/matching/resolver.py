"""
EntityResolver — finds cross-source duplicates and merges them.

Clients and team members arrive from several providers under slightly
different names ("Acme Pty Ltd" in Xero, "ACME" on a Monday board).
find_matches() scores every cross-source pair with the matcher and returns
ranked suggestions; merge() folds one entity into another.

Suggestions are recomputed on every call and never stored. A rejected pair
is remembered in MatchRejection so it is not suggested again.

find_matches() compares every pair, O(n²) in the number of entities. Agency
rosters are tens to low hundreds of rows, so no blocking or indexing is done;
changing that would also change which pairs get scored.

merge() runs as a single transaction:
  1. Bind the merged entity's name + source as an alias of the kept entity
  2. Reassign every dependent foreign key (and the merged entity's aliases)
  3. Backfill empty scalar fields on the kept entity from the merged one
  4. Delete the merged entity
Either all of it is committed or none of it is.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel
from sqlmodel import Session, select

from agencysync.config import get_settings
from agencysync.matching.matcher import is_exact_match, similarity_score
from agencysync.models.entities import (
    Client,
    ClientAlias,
    MatchRejection,
    TeamMember,
    TeamMemberAlias,
)
from agencysync.models.records import (
    ClientAssignment,
    CommunicationLog,
    Deliverable,
    DeliverableAssignment,
    FinancialRecord,
    MeetingLog,
    TimeEntry,
)

logger = logging.getLogger(__name__)

CLIENT = "client"
TEAM_MEMBER = "team_member"

_KIND_ALIASES = {
    "client": CLIENT,
    "clients": CLIENT,
    "team": TEAM_MEMBER,
    "team_member": TEAM_MEMBER,
    "team_members": TEAM_MEMBER,
    "staff": TEAM_MEMBER,
}


class EntityNotFoundError(LookupError):
    """Raised when a merge or rejection names an entity that does not exist."""


# ── Public types ──────────────────────────────────────────────────────────────

class EntityRef(BaseModel):
    id: int
    name: str
    source: str


class MatchSuggestion(BaseModel):
    id: str  # pair key, "<low id>:<high id>"
    entity_type: str
    source_a: EntityRef
    source_b: EntityRef
    confidence: int  # 0-100
    status: str  # "pending", "confirmed", "rejected"


@dataclass
class MergeResult:
    keep_id: int
    merged_id: int
    reassigned: Dict[str, int] = field(default_factory=dict)
    dropped: Dict[str, int] = field(default_factory=dict)
    backfilled: List[str] = field(default_factory=list)


# ── Per-kind wiring ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class _Dependent:
    model: Any
    fk: str
    # Columns that, with fk, form a unique key. A moved row whose key already
    # exists on the kept entity is dropped in favour of the kept row.
    natural_key: Tuple[str, ...] = ()


@dataclass(frozen=True)
class _EntitySpec:
    model: Any
    alias_model: Any
    alias_fk: str
    name_kind: str  # matcher normalization: "company" or "person"
    dependents: Tuple[_Dependent, ...]
    backfill: Tuple[str, ...]
    external_id_fields: Tuple[str, ...]


_SPECS = {
    CLIENT: _EntitySpec(
        model=Client,
        alias_model=ClientAlias,
        alias_fk="client_id",
        name_kind="company",
        dependents=(
            _Dependent(TimeEntry, "client_id"),
            _Dependent(Deliverable, "client_id"),
            _Dependent(FinancialRecord, "client_id", ("month", "type", "category")),
            _Dependent(CommunicationLog, "client_id"),
            _Dependent(MeetingLog, "client_id"),
            _Dependent(ClientAssignment, "client_id", ("team_member_id", "role")),
        ),
        backfill=(
            "hubspot_deal_id",
            "hubspot_company_id",
            "xero_contact_id",
            "monday_item_id",
            "retainer_value",
            "industry",
            "website",
            "deal_stage",
            "notes",
        ),
        external_id_fields=("hubspot_deal_id", "hubspot_company_id", "xero_contact_id"),
    ),
    TEAM_MEMBER: _EntitySpec(
        model=TeamMember,
        alias_model=TeamMemberAlias,
        alias_fk="team_member_id",
        name_kind="person",
        dependents=(
            _Dependent(TimeEntry, "team_member_id", ("monday_item_id", "date")),
            _Dependent(DeliverableAssignment, "team_member_id", ("deliverable_id", "role")),
            _Dependent(ClientAssignment, "team_member_id", ("client_id", "role")),
        ),
        backfill=(
            "email",
            "monday_user_id",
            "slack_user_id",
            "annual_salary",
            "hourly_rate",
            "role",
            "division",
        ),
        external_id_fields=("monday_user_id", "slack_user_id"),
    ),
}


def resolve_kind(value: str) -> str:
    """Map request spellings ("clients", "team", ...) to an entity kind."""
    kind = _KIND_ALIASES.get((value or "").strip().lower())
    if kind is None:
        raise ValueError(f"Invalid entity type: {value!r}")
    return kind


def pair_key(id_a: int, id_b: int) -> str:
    low, high = sorted((id_a, id_b))
    return f"{low}:{high}"


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


# ── Resolver ──────────────────────────────────────────────────────────────────

class EntityResolver:
    """Match suggestions and merges for clients and team members."""

    def __init__(self, engine, threshold: Optional[float] = None):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            threshold: Minimum similarity (0-1) for a pair to be suggested.
                       Defaults to the configured match_threshold (0.8).
        """
        self.engine = engine
        self.threshold = (
            get_settings().match_threshold if threshold is None else threshold
        )

    # ─── Suggestions ──────────────────────────────────────────────────────────

    def find_matches(self, kind: str) -> List[MatchSuggestion]:
        """
        Suggest likely duplicates across sources, highest confidence first.

        Same-source pairs are never suggested. Pairs already linked through
        an alias, or previously rejected, are skipped.
        """
        kind = resolve_kind(kind)
        spec = _SPECS[kind]

        with Session(self.engine) as s:
            entities = s.exec(select(spec.model).order_by(spec.model.id)).all()
            aliases = s.exec(select(spec.alias_model)).all()
            rejected = set(
                s.exec(
                    select(MatchRejection.pair_key).where(
                        MatchRejection.entity_kind == kind
                    )
                ).all()
            )

        linked = {(getattr(a, spec.alias_fk), a.alias) for a in aliases}
        suggestions: List[MatchSuggestion] = []
        seen = set()

        for i, a in enumerate(entities):
            for b in entities[i + 1:]:
                if a.source == b.source:
                    continue

                key = pair_key(a.id, b.id)
                if key in seen:
                    continue
                seen.add(key)

                if key in rejected:
                    continue
                if (a.id, b.name) in linked or (b.id, a.name) in linked:
                    continue

                suggestion = self._score_pair(kind, spec, key, a, b)
                if suggestion is not None:
                    suggestions.append(suggestion)

        suggestions.sort(key=lambda m: m.confidence, reverse=True)
        return suggestions

    def _score_pair(self, kind: str, spec: _EntitySpec, key: str, a, b) -> Optional[MatchSuggestion]:
        if kind == TEAM_MEMBER and a.email and b.email and a.email.lower() == b.email.lower():
            return self._suggestion(kind, key, a, b, confidence=100, status="confirmed")

        score = similarity_score(a.name, b.name, spec.name_kind)
        if score < self.threshold:
            return None

        status = "pending"
        if kind == CLIENT and is_exact_match(a.name, b.name):
            status = "confirmed"
        return self._suggestion(kind, key, a, b, confidence=round(score * 100), status=status)

    @staticmethod
    def _suggestion(kind: str, key: str, a, b, *, confidence: int, status: str) -> MatchSuggestion:
        return MatchSuggestion(
            id=key,
            entity_type=kind,
            source_a=EntityRef(id=a.id, name=a.name, source=a.source),
            source_b=EntityRef(id=b.id, name=b.name, source=b.source),
            confidence=confidence,
            status=status,
        )

    def reject(self, kind: str, id_a: int, id_b: int) -> None:
        """Remember that two entities are not duplicates. Idempotent."""
        kind = resolve_kind(kind)
        spec = _SPECS[kind]
        key = pair_key(id_a, id_b)

        with Session(self.engine) as s:
            for entity_id in (id_a, id_b):
                if s.get(spec.model, entity_id) is None:
                    raise EntityNotFoundError(f"{_label(kind)} {entity_id} not found")

            exists = s.exec(
                select(MatchRejection).where(
                    MatchRejection.entity_kind == kind,
                    MatchRejection.pair_key == key,
                )
            ).first()
            if exists is None:
                s.add(MatchRejection(entity_kind=kind, pair_key=key))
                s.commit()

        logger.info("Rejected %s match %s", kind, key)

    # ─── Merge ────────────────────────────────────────────────────────────────

    def merge(self, kind: str, keep_id: int, merge_id: int) -> MergeResult:
        """
        Fold entity `merge_id` into `keep_id` in one transaction.

        Raises:
            EntityNotFoundError: if either entity does not exist.
            ValueError: if both ids are the same.
        """
        kind = resolve_kind(kind)
        spec = _SPECS[kind]
        if keep_id == merge_id:
            raise ValueError("Cannot merge an entity into itself")

        result = MergeResult(keep_id=keep_id, merged_id=merge_id)

        with Session(self.engine) as s:
            try:
                keep = s.get(spec.model, keep_id)
                merged = s.get(spec.model, merge_id)
                if keep is None or merged is None:
                    raise EntityNotFoundError(f"{_label(kind)} not found")

                self._bind_alias(s, spec, keep, merged)

                for dep in spec.dependents:
                    moved, dropped = self._reassign(s, dep, merge_id, keep_id)
                    table = dep.model.__tablename__
                    if moved:
                        result.reassigned[table] = result.reassigned.get(table, 0) + moved
                    if dropped:
                        result.dropped[table] = result.dropped.get(table, 0) + dropped

                moved_aliases, _ = self._reassign(
                    s, _Dependent(spec.alias_model, spec.alias_fk), merge_id, keep_id
                )
                if moved_aliases:
                    result.reassigned[spec.alias_model.__tablename__] = moved_aliases

                fill = {
                    name: getattr(merged, name)
                    for name in spec.backfill
                    if _is_empty(getattr(keep, name)) and not _is_empty(getattr(merged, name))
                }

                # Provider ids are unique, so the merged row goes before they move
                s.delete(merged)
                s.flush()

                for name, value in fill.items():
                    setattr(keep, name, value)
                keep.updated_at = datetime.utcnow()
                s.add(keep)
                result.backfilled = sorted(fill)

                s.commit()
            except Exception:
                s.rollback()
                raise

        logger.info(
            "Merged %s %s into %s (reassigned=%s dropped=%s backfilled=%s)",
            kind, merge_id, keep_id, result.reassigned, result.dropped, result.backfilled,
        )
        return result

    @staticmethod
    def _bind_alias(s: Session, spec: _EntitySpec, keep, merged) -> None:
        alias_model = spec.alias_model
        alias = s.exec(
            select(alias_model).where(
                alias_model.alias == merged.name,
                alias_model.source == merged.source,
            )
        ).first()
        if alias is None:
            external_id = next(
                (getattr(merged, f) for f in spec.external_id_fields if getattr(merged, f)),
                None,
            )
            alias = alias_model(alias=merged.name, source=merged.source, external_id=external_id)
        setattr(alias, spec.alias_fk, keep.id)
        s.add(alias)
        s.flush()

    @staticmethod
    def _reassign(s: Session, dep: _Dependent, merge_id: int, keep_id: int) -> Tuple[int, int]:
        """Point dep.fk at keep_id for every row owned by merge_id. Returns (moved, dropped)."""
        column = getattr(dep.model, dep.fk)
        rows = s.exec(select(dep.model).where(column == merge_id)).all()
        if not rows:
            return 0, 0

        taken = set()
        if dep.natural_key:
            for row in s.exec(select(dep.model).where(column == keep_id)).all():
                taken.add(_natural_key(row, dep.natural_key))

        moved = dropped = 0
        for row in rows:
            key = _natural_key(row, dep.natural_key) if dep.natural_key else None
            # NULLs never collide in a SQL unique constraint
            if key is not None and None not in key and key in taken:
                s.delete(row)
                dropped += 1
                continue
            setattr(row, dep.fk, keep_id)
            s.add(row)
            if key is not None:
                taken.add(key)
            moved += 1
        s.flush()
        return moved, dropped


def _natural_key(row, columns: Sequence[str]) -> Tuple:
    return tuple(getattr(row, c) for c in columns)


def _label(kind: str) -> str:
    return "Client" if kind == CLIENT else "Team member"
