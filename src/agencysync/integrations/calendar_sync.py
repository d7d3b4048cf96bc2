"""
Calendar sync adapter: events → MeetingLog + MeetingAttendee.

A meeting is attributed to a client when an attendee's email domain equals
the client's website domain, or an attendee's email or display name
mentions a client name or alias. Cancelled events are skipped.
"""
import re
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlmodel import Session, select

from agencysync.integrations.base import ProviderSyncAdapter, client_name_index, match_client_id
from agencysync.integrations.calendar import CalendarClient, refresh_google_token
from agencysync.integrations.config_store import load_oauth_config
from agencysync.integrations.utils import parse_datetime
from agencysync.models.entities import Client
from agencysync.models.records import MeetingAttendee, MeetingLog
from agencysync.sync.types import BatchResult, SyncContext

Item = Dict[str, Any]

SUMMARY_LENGTH = 500


def website_domain(website: Optional[str]) -> str:
    """'https://www.acme.com/about' → 'acme.com'."""
    if not website:
        return ""
    domain = re.sub(r"^https?://", "", website.strip().lower())
    domain = re.sub(r"^www\.", "", domain)
    return domain.split("/")[0]


class EventSyncAdapter(ProviderSyncAdapter[Item]):
    name = "Calendar Events"
    provider = "calendar"

    async def fetch_all(self, context: SyncContext) -> AsyncIterator[List[Item]]:
        async with self._http_client() as http:
            config = await load_oauth_config(
                self.store, "calendar", lambda token: refresh_google_token(http, token)
            )
            calendar_id = config.get("calendar_id") or "primary"
            context.log.info("Fetching events from calendar: %s", calendar_id)

            client = CalendarClient(config["access_token"], http=http)
            async for page in client.events(calendar_id):
                yield page

    async def map_and_upsert(self, batch: List[Item], context: SyncContext) -> BatchResult:
        with Session(self.engine) as s:
            index = client_name_index(s)
            domains = {
                website_domain(c.website): c.id
                for c in s.exec(select(Client).where(Client.website.is_not(None))).all()
                if website_domain(c.website)
            }
        return self._map_each(
            batch, context, lambda e: self._upsert(e, index, domains), lambda e: f"Event {e.get('id')}"
        )

    @staticmethod
    def _match_client(attendees: List[Item], index, domains: Dict[str, int]) -> Optional[int]:
        for attendee in attendees:
            email = (attendee.get("email") or "").lower()
            domain = email.split("@")[1] if "@" in email else ""
            if domain and domain in domains:
                return domains[domain]
            client_id = match_client_id(index, email, attendee.get("displayName"))
            if client_id is not None:
                return client_id
        return None

    def _upsert(self, event: Item, index, domains: Dict[str, int]) -> bool:
        if event.get("status") == "cancelled":
            return False

        started = parse_datetime(event.get("start"))
        if started is None:
            raise ValueError(f"unparseable start {event.get('start')!r}")
        external_id = f"calendar-{event['id']}"
        attendees = event.get("attendees") or []
        description = event.get("description")

        with Session(self.engine) as s:
            meeting = s.exec(select(MeetingLog).where(MeetingLog.external_id == external_id)).first()
            if meeting is None:
                meeting = MeetingLog(
                    title=event["summary"], date=started, source="calendar", external_id=external_id
                )
            meeting.client_id = self._match_client(attendees, index, domains)
            meeting.title = event["summary"]
            meeting.date = started
            meeting.duration_minutes = event.get("duration") or None
            meeting.summary = description[:SUMMARY_LENGTH] if description else None
            s.add(meeting)
            s.flush()

            known = {
                a.email: a
                for a in s.exec(
                    select(MeetingAttendee).where(MeetingAttendee.meeting_id == meeting.id)
                ).all()
            }
            for attendee in attendees:
                email = attendee.get("email")
                if not email:
                    continue
                row = known.get(email)
                if row is None:
                    row = MeetingAttendee(meeting_id=meeting.id, email=email)
                    known[email] = row
                row.name = attendee.get("displayName")
                s.add(row)
            s.commit()
        return True
