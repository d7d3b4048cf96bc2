"""
Google Calendar v3 client (events.list over REST).

Events are expanded to single instances and paged with nextPageToken.
Raw Google events are flattened by normalize_event() into:

    {"id", "summary", "description", "start", "end", "duration",
     "attendees": [{"email", "displayName"}], "status"}
"""
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncIterator, Dict, List, Optional
from urllib.parse import quote

import httpx

from agencysync.config import get_settings
from agencysync.integrations.http import ProviderClient, refresh_access_token
from agencysync.integrations.utils import parse_datetime
from agencysync.sync.rate_limiter import RateLimiter

BASE_URL = "https://www.googleapis.com/calendar/v3"
TOKEN_URL = "https://oauth2.googleapis.com/token"
PAGE_SIZE = 250
DEFAULT_WINDOW_DAYS = 30


def normalize_event(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Flatten one events.list item; None for items without an id or title."""
    if not item.get("id") or not item.get("summary"):
        return None

    start = (item.get("start") or {}).get("dateTime") or (item.get("start") or {}).get("date") or ""
    end = (item.get("end") or {}).get("dateTime") or (item.get("end") or {}).get("date") or ""
    start_at, end_at = parse_datetime(start), parse_datetime(end)
    duration = 0
    if start_at and end_at:
        duration = max(round((end_at - start_at).total_seconds() / 60), 0)

    return {
        "id": item["id"],
        "summary": item["summary"],
        "description": item.get("description"),
        "start": start,
        "end": end,
        "duration": duration,
        "attendees": [
            {"email": a.get("email") or "", "displayName": a.get("displayName")}
            for a in item.get("attendees") or []
        ],
        "status": item.get("status") or "confirmed",
    }


class CalendarClient(ProviderClient):
    provider = "calendar"
    base_url = BASE_URL

    def __init__(
        self,
        access_token: str,
        http: Optional[httpx.AsyncClient] = None,
        limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(http, limiter)
        self._access_token = access_token

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._access_token}", "Accept": "application/json"}

    async def events(
        self,
        calendar_id: str = "primary",
        time_min: Optional[datetime] = None,
        time_max: Optional[datetime] = None,
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        """Normalized event pages; defaults to the last 30 days."""
        now = datetime.now(timezone.utc)
        time_min = time_min or now - timedelta(days=DEFAULT_WINDOW_DAYS)
        time_max = time_max or now

        page_token = None
        while True:
            params = {
                "timeMin": time_min.isoformat(),
                "timeMax": time_max.isoformat(),
                "maxResults": str(PAGE_SIZE),
                "singleEvents": "true",
                "orderBy": "startTime",
            }
            if page_token:
                params["pageToken"] = page_token
            body = await self._request(
                "GET", f"/calendars/{quote(calendar_id, safe='')}/events", params=params
            )

            items = body.get("items") or []
            if not items:
                return
            events = [e for e in (normalize_event(i) for i in items) if e is not None]
            if events:
                yield events

            page_token = body.get("nextPageToken")
            if not page_token:
                return

    async def calendars(self) -> List[Dict[str, Any]]:
        body = await self._request("GET", "/users/me/calendarList", params={"maxResults": "100"})
        return [
            {"id": c.get("id", ""), "summary": c.get("summary", ""), "primary": bool(c.get("primary"))}
            for c in body.get("items") or []
        ]


async def refresh_google_token(
    http: httpx.AsyncClient, refresh_token: str, provider: str = "calendar"
) -> Dict[str, Any]:
    """Google OAuth refresh, shared by the Calendar and Gmail integrations."""
    settings = get_settings()
    return await refresh_access_token(
        http,
        provider,
        TOKEN_URL,
        settings.google_client_id,
        settings.google_client_secret,
        refresh_token,
    )
