"""
Monday.com GraphQL client.

Board items are read with items_page, then next_items_page while the
returned cursor is set and the page was full.
"""
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from agencysync.integrations.http import ProviderAPIError, ProviderClient
from agencysync.sync.rate_limiter import RateLimiter

API_URL = "https://api.monday.com/v2"
API_VERSION = "2024-10"
PAGE_SIZE = 100

_ITEM_FIELDS = """
          cursor
          items {
            id
            name
            group { id title }
            column_values { id type text value }
          }
"""

FIRST_PAGE_QUERY = (
    "query ($boardId: [ID!]!) { boards(ids: $boardId) { items_page(limit: %d) {%s} } }"
    % (PAGE_SIZE, _ITEM_FIELDS)
)
NEXT_PAGE_QUERY = (
    "query ($cursor: String!) { next_items_page(cursor: $cursor, limit: %d) {%s} }"
    % (PAGE_SIZE, _ITEM_FIELDS)
)


class MondayClient(ProviderClient):
    provider = "monday"
    base_url = API_URL

    def __init__(
        self,
        api_token: str,
        http: Optional[httpx.AsyncClient] = None,
        limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(http, limiter)
        self._api_token = api_token

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": self._api_token,
            "API-Version": API_VERSION,
            "Content-Type": "application/json",
        }

    async def query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Run a GraphQL query and return its `data` object."""
        body = await self._request("POST", "", json={"query": query, "variables": variables or {}})
        errors = body.get("errors") or []
        if errors:
            messages = ", ".join(e.get("message", "unknown") for e in errors)
            raise ProviderAPIError(self.provider, None, f"GraphQL error: {messages}")
        if body.get("data") is None:
            raise ProviderAPIError(self.provider, None, "API returned no data")
        return body["data"]

    async def boards(self) -> List[Dict[str, Any]]:
        data = await self.query("query { boards(limit: 200) { id name } }")
        return data.get("boards") or []

    async def board_items(self, board_id: str) -> AsyncIterator[List[Dict[str, Any]]]:
        data = await self.query(FIRST_PAGE_QUERY, {"boardId": [board_id]})
        boards = data.get("boards") or []
        if not boards:
            return

        page = boards[0].get("items_page") or {}
        while True:
            items = page.get("items") or []
            if items:
                yield items

            cursor = page.get("cursor")
            if not cursor or len(items) < PAGE_SIZE:
                return
            data = await self.query(NEXT_PAGE_QUERY, {"cursor": cursor})
            page = data.get("next_items_page") or {}
