"""
Xero accounting API client.

Reads are paginated with a `page` counter; Xero returns at most 100 rows
per page, so a shorter page is the last one.
"""
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from agencysync.config import get_settings
from agencysync.integrations.http import ProviderClient, refresh_access_token
from agencysync.sync.rate_limiter import RateLimiter

BASE_URL = "https://api.xero.com/api.xro/2.0"
TOKEN_URL = "https://identity.xero.com/connect/token"
PAGE_SIZE = 100


class XeroClient(ProviderClient):
    provider = "xero"
    base_url = BASE_URL

    def __init__(
        self,
        access_token: str,
        tenant_id: str,
        http: Optional[httpx.AsyncClient] = None,
        limiter: Optional[RateLimiter] = None,
    ):
        super().__init__(http, limiter)
        self._access_token = access_token
        self._tenant_id = tenant_id

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self._access_token}",
            "xero-tenant-id": self._tenant_id,
            "Accept": "application/json",
        }

    async def _pages(self, path: str, key: str, params: Dict[str, str]) -> AsyncIterator[List[Dict[str, Any]]]:
        page = 1
        while True:
            body = await self._request("GET", path, params={**params, "page": str(page)})
            rows = body.get(key) or []
            if not rows:
                return
            yield rows
            if len(rows) < PAGE_SIZE:
                return
            page += 1

    def invoices(self) -> AsyncIterator[List[Dict[str, Any]]]:
        return self._pages("/Invoices", "Invoices", {"order": "UpdatedDateUTC DESC"})

    def expenses(self) -> AsyncIterator[List[Dict[str, Any]]]:
        """Spend-type bank transactions."""
        return self._pages("/BankTransactions", "BankTransactions", {"where": 'Type=="SPEND"'})

    def contacts(self) -> AsyncIterator[List[Dict[str, Any]]]:
        return self._pages("/Contacts", "Contacts", {})

    async def get_organisation(self) -> Dict[str, Any]:
        body = await self._request("GET", "/Organisation")
        orgs = body.get("Organisations") or []
        return orgs[0] if orgs else {}


async def refresh_xero_token(http: httpx.AsyncClient, refresh_token: str) -> Dict[str, Any]:
    settings = get_settings()
    return await refresh_access_token(
        http,
        "xero",
        TOKEN_URL,
        settings.xero_client_id,
        settings.xero_client_secret,
        refresh_token,
        basic_auth=True,
    )
