"""
Monday.com sync adapters.

  time_tracking → TimeEntry, one per (item, assigned person, date)
  creatives     → Deliverable + DeliverableAssignment

Config (decrypted IntegrationConfig for "monday"):
    {
        "api_token": "...",
        "board_ids": {"time_tracking": ["123"], "creatives": ["456"]},
        "column_mappings": {"123": {"time_tracking": "...", "people": "...", "date": "..."}}
    }

Items are attributed to a client through their group title. Groups named
after the studio itself count as overhead.
"""
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlmodel import Session, select

from agencysync.integrations import monday_mapper as mapper
from agencysync.integrations.base import ProviderSyncAdapter, find_client_by_name, touch
from agencysync.integrations.config_store import IntegrationNotConfiguredError
from agencysync.integrations.monday import MondayClient
from agencysync.models.entities import TeamMember
from agencysync.models.records import Deliverable, DeliverableAssignment, TimeEntry
from agencysync.sync.types import BatchResult, SyncContext

Item = Dict[str, Any]

OVERHEAD_GROUP_NAMES = ("swan studio", "swan", "internal", "overhead")
ASSIGNMENT_ROLES = ("editor", "animator", "designer", "reviewer")

BOARD_KEY = "_board_id"


def is_overhead(group_name: str) -> bool:
    return (group_name or "").strip().lower() in OVERHEAD_GROUP_NAMES


def _person_ids(item: Item, column_id: Optional[str]) -> List[str]:
    col = mapper.column(item, column_id, "people")
    if col is None:
        return []
    return [str(p["id"]) for p in mapper.parse_people(col.get("value")) if p["kind"] == "person"]


def _member_id(s: Session, monday_user_id: str) -> Optional[int]:
    member = s.exec(select(TeamMember).where(TeamMember.monday_user_id == monday_user_id)).first()
    return member.id if member else None


class _MondayAdapter(ProviderSyncAdapter[Item]):
    provider = "monday"
    board_kind = ""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._mappings: Dict[str, Dict[str, str]] = {}

    def _config(self) -> Dict[str, Any]:
        config = self.store.load("monday")
        if not config.get("api_token"):
            raise IntegrationNotConfiguredError("Monday.com API token is not configured")
        return config

    def _keep(self, item: Item, board_id: str) -> bool:
        return True

    def _mapping(self, item: Item) -> Dict[str, str]:
        return self._mappings.get(item.get(BOARD_KEY, ""), {})

    async def fetch_all(self, context: SyncContext) -> AsyncIterator[List[Item]]:
        config = self._config()
        self._mappings = config.get("column_mappings") or {}
        board_ids = (config.get("board_ids") or {}).get(self.board_kind) or []
        if not board_ids:
            context.log.info("No %s boards configured", self.board_kind)
            return

        async with self._http_client() as http:
            client = MondayClient(config["api_token"], http=http)
            for board_id in board_ids:
                context.log.info("Fetching items from board %s", board_id)
                async for page in client.board_items(str(board_id)):
                    kept = [item for item in page if self._keep(item, str(board_id))]
                    for item in kept:
                        item[BOARD_KEY] = str(board_id)
                    if kept:
                        yield kept


class TimeTrackingSyncAdapter(_MondayAdapter):
    """
    One TimeEntry per assigned person; an item with nobody assigned gets a
    single entry with no team member. synced counts items, not entries.
    """

    name = "Monday Time Tracking"
    board_kind = "time_tracking"

    def _keep(self, item: Item, board_id: str) -> bool:
        mapping = self._mappings.get(board_id, {})
        return mapper.has_value(mapper.column(item, mapping.get("time_tracking"), "time_tracking"))

    async def map_and_upsert(self, batch: List[Item], context: SyncContext) -> BatchResult:
        return self._map_each(
            batch, context, self._upsert, lambda i: f"Item {i.get('id')} ({i.get('name')})"
        )

    def _upsert(self, item: Item) -> bool:
        mapping = self._mapping(item)
        board_id = item.get(BOARD_KEY)

        tt_col = mapper.column(item, mapping.get("time_tracking"), "time_tracking")
        hours = mapper.parse_time_tracking(tt_col.get("value") or tt_col.get("text")) if tt_col else None
        incomplete = not hours

        date_col = mapper.column(item, mapping.get("date"), "date")
        entry_date = (
            mapper.parse_date(date_col.get("value"), date_col.get("text")) if date_col else None
        ) or datetime.utcnow().replace(hour=0, minute=0, second=0, microsecond=0)

        group = (item.get("group") or {}).get("title") or ""
        people = _person_ids(item, mapping.get("people"))

        with Session(self.engine) as s:
            client = find_client_by_name(s, group.strip(), "monday")
            member_ids = [_member_id(s, p) for p in people] if people else [None]

            for member_id in dict.fromkeys(member_ids):
                query = select(TimeEntry).where(
                    TimeEntry.monday_item_id == item["id"],
                    TimeEntry.date == entry_date,
                )
                if member_id is None:
                    query = query.where(TimeEntry.team_member_id.is_(None))
                else:
                    query = query.where(TimeEntry.team_member_id == member_id)

                entry = s.exec(query).first()
                if entry is None:
                    entry = TimeEntry(
                        monday_item_id=item["id"],
                        team_member_id=member_id,
                        date=entry_date,
                        hours=0,
                        source="monday",
                    )
                entry.hours = hours or 0
                entry.description = item.get("name")
                entry.client_id = client.id if client else None
                entry.monday_board_id = board_id
                entry.is_incomplete = incomplete
                entry.is_overhead = is_overhead(group)
                touch(entry)
                s.add(entry)
            s.commit()
        return True


class CreativesSyncAdapter(_MondayAdapter):
    name = "Monday Creatives"
    board_kind = "creatives"

    async def map_and_upsert(self, batch: List[Item], context: SyncContext) -> BatchResult:
        return self._map_each(
            batch, context, self._upsert, lambda i: f"Item {i.get('id')} ({i.get('name')})"
        )

    def _upsert(self, item: Item) -> bool:
        mapping = self._mapping(item)

        status_col = mapper.column(item, mapping.get("status"), "status")
        status = mapper.parse_status(status_col.get("value"), status_col.get("text")) if status_col else None

        due_col = mapper.column(item, mapping.get("due_date"), "date")
        due_date = mapper.parse_date(due_col.get("value"), due_col.get("text")) if due_col else None

        rev_col = mapper.get_column(item, mapping.get("revision_count"))
        revisions = mapper.parse_number(rev_col.get("value"), rev_col.get("text")) if rev_col else None

        group = (item.get("group") or {}).get("title") or ""

        with Session(self.engine) as s:
            client = find_client_by_name(s, group.strip(), "monday")

            deliverable = s.exec(
                select(Deliverable).where(Deliverable.monday_item_id == item["id"])
            ).first()
            if deliverable is None:
                deliverable = Deliverable(monday_item_id=item["id"], name=item.get("name") or "", source="monday")
            deliverable.name = item.get("name") or deliverable.name
            deliverable.status = status
            deliverable.due_date = due_date
            deliverable.revision_count = int(round(revisions or 0))
            deliverable.client_id = client.id if client else None
            s.add(deliverable)
            s.flush()

            for role, person_id in self._assignees(item, mapping):
                member_id = _member_id(s, person_id)
                if member_id is None:
                    continue
                exists = s.exec(
                    select(DeliverableAssignment).where(
                        DeliverableAssignment.deliverable_id == deliverable.id,
                        DeliverableAssignment.team_member_id == member_id,
                        DeliverableAssignment.role == role,
                    )
                ).first()
                if exists is None:
                    s.add(DeliverableAssignment(
                        deliverable_id=deliverable.id, team_member_id=member_id, role=role
                    ))
            s.commit()
        return True

    @staticmethod
    def _assignees(item: Item, mapping: Dict[str, str]) -> List[tuple]:
        """(role, monday user id) pairs; unmapped boards default everyone to editor."""
        role_columns = [(role, mapping.get(role)) for role in ASSIGNMENT_ROLES if mapping.get(role)]
        if not role_columns:
            return [("editor", pid) for pid in dict.fromkeys(_person_ids(item, mapping.get("people")))]

        pairs = []
        for role, column_id in role_columns:
            col = mapper.get_column(item, column_id)
            if col is None:
                continue
            for person in mapper.parse_people(col.get("value")):
                if person["kind"] == "person":
                    pairs.append((role, str(person["id"])))
        return list(dict.fromkeys(pairs))
