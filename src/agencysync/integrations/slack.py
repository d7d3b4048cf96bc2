"""
Slack Web API client.

Slack answers HTTP 200 with {"ok": false, "error": "..."} on API errors;
both that and non-2xx responses raise ProviderAPIError. Lists page through
response_metadata.next_cursor.
"""
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from agencysync.integrations.http import ProviderAPIError, ProviderClient
from agencysync.sync.rate_limiter import RateLimiter

BASE_URL = "https://slack.com/api"
PAGE_SIZE = 200


def _next_cursor(body: Dict[str, Any]) -> Optional[str]:
    return (body.get("response_metadata") or {}).get("next_cursor") or None


class SlackClient(ProviderClient):
    provider = "slack"
    base_url = BASE_URL

    def __init__(
        self,
        bot_token: str,
        http: Optional[httpx.AsyncClient] = None,
        limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(http, limiter)
        self._bot_token = bot_token

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._bot_token}"}

    async def call(self, method: str, **params: str) -> Dict[str, Any]:
        body = await self._request("GET", f"/{method}", params=params)
        if not body.get("ok"):
            raise ProviderAPIError(self.provider, None, body.get("error") or "unknown error")
        return body

    async def channels(self) -> List[Dict[str, Any]]:
        channels: List[Dict[str, Any]] = []
        cursor = None
        while True:
            params = {
                "types": "public_channel,private_channel",
                "exclude_archived": "true",
                "limit": str(PAGE_SIZE),
            }
            if cursor:
                params["cursor"] = cursor
            body = await self.call("conversations.list", **params)
            channels.extend(body.get("channels") or [])
            cursor = _next_cursor(body)
            if not cursor:
                return channels

    async def channel_history(
        self, channel_id: str, oldest: Optional[str] = None
    ) -> AsyncIterator[List[Dict[str, Any]]]:
        """Message pages for one channel; each message is tagged with its channel id."""
        cursor = None
        while True:
            params = {"channel": channel_id, "limit": str(PAGE_SIZE)}
            if oldest:
                params["oldest"] = oldest
            if cursor:
                params["cursor"] = cursor
            body = await self.call("conversations.history", **params)

            messages = [{**m, "channel": channel_id} for m in body.get("messages") or []]
            if messages:
                yield messages

            cursor = _next_cursor(body)
            if not body.get("has_more") or not cursor:
                return

    async def users(self) -> AsyncIterator[List[Dict[str, Any]]]:
        """Pages of human, non-deleted workspace members."""
        cursor = None
        while True:
            params = {"limit": str(PAGE_SIZE)}
            if cursor:
                params["cursor"] = cursor
            body = await self.call("users.list", **params)

            members = [
                u for u in body.get("members") or []
                if not u.get("is_bot") and not u.get("deleted")
            ]
            if members:
                yield members

            cursor = _next_cursor(body)
            if not cursor:
                return
