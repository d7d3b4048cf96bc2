"""Integration tests for the calendar events adapter (MockTransport + in-memory SQLite)."""
import time
from datetime import datetime

import httpx
import pytest
from sqlmodel import Session, select

from agencysync.integrations.calendar_sync import EventSyncAdapter, website_domain
from agencysync.models.entities import Client
from agencysync.models.records import MeetingAttendee, MeetingLog

CONFIG = {"access_token": "g-tok", "refresh_token": "g-r", "calendar_id": "team@studio.com"}

EVENTS = [
    {
        "id": "e1",
        "summary": "Acme kickoff",
        "description": "Scope the launch",
        "start": {"dateTime": "2024-05-01T10:00:00+10:00"},
        "end": {"dateTime": "2024-05-01T11:00:00+10:00"},
        "attendees": [
            {"email": "sam@studio.com", "displayName": "Sam"},
            {"email": "jo@acme.com", "displayName": "Jo"},
        ],
    },
    {
        "id": "e2",
        "summary": "Globex check-in",
        "start": {"dateTime": "2024-05-02T09:00:00Z"},
        "end": {"dateTime": "2024-05-02T09:30:00Z"},
        "attendees": [{"email": "pat@gmail.com", "displayName": "Pat (Globex)"}],
    },
    {
        "id": "e3",
        "summary": "Cancelled sync",
        "status": "cancelled",
        "start": {"dateTime": "2024-05-03T09:00:00Z"},
        "end": {"dateTime": "2024-05-03T09:30:00Z"},
    },
]


def calendar_api(items, calls=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth2.googleapis.com":
            return httpx.Response(200, json={"access_token": "g-new", "expires_in": 3599})
        if calls is not None:
            calls.append(request)
        return httpx.Response(200, json={"items": items})

    return handler


@pytest.fixture(name="clients")
def clients_fixture(engine):
    with Session(engine) as s:
        acme = Client(name="Acme", website="https://www.acme.com/", source="hubspot")
        globex = Client(name="Globex", source="xero")
        s.add_all([acme, globex])
        s.commit()
        return {"acme": acme.id, "globex": globex.id}


class TestWebsiteDomain:
    @pytest.mark.parametrize("website,domain", [
        ("https://www.acme.com/about", "acme.com"),
        ("acme.com", "acme.com"),
        ("HTTP://Acme.com", "acme.com"),
        (None, ""),
    ])
    def test_domain(self, website, domain):
        assert website_domain(website) == domain


class TestEventSync:
    @pytest.mark.asyncio
    async def test_events_become_meetings(self, engine, store, mock_http, run_sync, clients):
        store.save("calendar", CONFIG, enabled=True)
        calls = []

        job = await run_sync(EventSyncAdapter(engine, store=store, http=mock_http(calendar_api(EVENTS, calls))))

        assert job.status == "completed"
        assert (job.records_found, job.records_synced, job.records_failed) == (3, 2, 0)
        assert calls[0].url.path == "/calendar/v3/calendars/team@studio.com/events"

        with Session(engine) as s:
            meetings = {m.external_id: m for m in s.exec(select(MeetingLog)).all()}
            attendees = s.exec(select(MeetingAttendee)).all()
        kickoff = meetings["calendar-e1"]
        assert kickoff.client_id == clients["acme"]
        assert kickoff.date == datetime(2024, 5, 1, 0, 0)
        assert kickoff.duration_minutes == 60
        assert kickoff.summary == "Scope the launch"
        assert meetings["calendar-e2"].client_id == clients["globex"]
        assert "calendar-e3" not in meetings
        assert len(attendees) == 3

    @pytest.mark.asyncio
    async def test_resync_updates_without_duplicates(self, engine, store, mock_http, run_sync, clients):
        store.save("calendar", CONFIG, enabled=True)
        await run_sync(EventSyncAdapter(engine, store=store, http=mock_http(calendar_api(EVENTS[:1]))))
        renamed = [dict(EVENTS[0], summary="Acme kickoff (moved)")]
        await run_sync(EventSyncAdapter(engine, store=store, http=mock_http(calendar_api(renamed))))

        with Session(engine) as s:
            meetings = s.exec(select(MeetingLog)).all()
            attendees = s.exec(select(MeetingAttendee)).all()
        assert [m.title for m in meetings] == ["Acme kickoff (moved)"]
        assert len(attendees) == 2

    @pytest.mark.asyncio
    async def test_expired_token_refreshed_with_google(self, engine, store, mock_http, run_sync, settings):
        store.save("calendar", {**CONFIG, "expires_at": time.time() - 5}, enabled=True)
        calls = []

        job = await run_sync(EventSyncAdapter(engine, store=store, http=mock_http(calendar_api([], calls))))

        assert job.status == "completed"
        assert calls[0].headers["Authorization"] == "Bearer g-new"
        saved = store.load("calendar")
        assert saved["access_token"] == "g-new"
        assert saved["refresh_token"] == "g-r"

    @pytest.mark.asyncio
    async def test_reauthentication_needed(self, engine, store, mock_http, run_sync):
        store.save("calendar", {"access_token": "old", "expires_at": 1}, enabled=True)

        job = await run_sync(EventSyncAdapter(engine, store=store, http=mock_http(calendar_api([]))))

        assert job.status == "failed"
        assert job.errors == ["Calendar refresh token not available. Please re-authenticate."]
