"""
Gmail v1 client (users.messages over REST).

messages.list only returns ids, so every listed message is fetched again
with format=metadata to read its headers. Messages are flattened into:

    {"id", "thread_id", "subject", "from", "to", "date", "snippet"}
"""
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from agencysync.integrations.http import ProviderClient
from agencysync.sync.rate_limiter import RateLimiter

BASE_URL = "https://gmail.googleapis.com/gmail/v1"
MAX_PAGE_SIZE = 100
METADATA_HEADERS = ["Subject", "From", "To", "Date"]


def normalize_message(message: Dict[str, Any]) -> Dict[str, Any]:
    headers = {
        h.get("name", "").lower(): h.get("value", "")
        for h in (message.get("payload") or {}).get("headers") or []
    }
    return {
        "id": message.get("id", ""),
        "thread_id": message.get("threadId", ""),
        "subject": headers.get("subject", ""),
        "from": headers.get("from", ""),
        "to": headers.get("to", ""),
        "date": headers.get("date", ""),
        "snippet": message.get("snippet", ""),
    }


class GmailClient(ProviderClient):
    provider = "gmail"
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

    async def messages(
        self, query: str = "in:inbox", page_size: int = MAX_PAGE_SIZE
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        """One page of normalized messages per messages.list call."""
        page_token = None
        while True:
            params = {"q": query, "maxResults": str(min(page_size, MAX_PAGE_SIZE))}
            if page_token:
                params["pageToken"] = page_token
            body = await self._request("GET", "/users/me/messages", params=params)

            listed = body.get("messages") or []
            if not listed:
                return
            page = []
            for ref in listed:
                page.append(normalize_message(await self.message(ref["id"])))
            yield page

            page_token = body.get("nextPageToken")
            if not page_token:
                return

    async def message(self, message_id: str) -> Dict[str, Any]:
        return await self._request(
            "GET",
            f"/users/me/messages/{message_id}",
            params={"format": "metadata", "metadataHeaders": METADATA_HEADERS},
        )
