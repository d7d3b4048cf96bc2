"""HubSpot CRM v3 client. Lists are cursor-paginated via paging.next.after."""
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx

from agencysync.integrations.http import ProviderClient
from agencysync.sync.rate_limiter import RateLimiter

BASE_URL = "https://api.hubapi.com"
PAGE_SIZE = 100

DEAL_PROPERTIES = "dealname,amount,dealstage,closedate,pipeline,hs_object_id"
COMPANY_PROPERTIES = "name,domain,industry,hs_object_id"
CONTACT_PROPERTIES = "firstname,lastname,email,company,hs_object_id"


class HubSpotClient(ProviderClient):
    provider = "hubspot"
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

    async def _list(self, path: str, params: Dict[str, str]) -> AsyncIterator[List[Dict[str, Any]]]:
        after: Optional[str] = None
        while True:
            query = {"limit": str(PAGE_SIZE), **params}
            if after:
                query["after"] = after
            body = await self._request("GET", path, params=query)

            results = body.get("results") or []
            if results:
                yield results

            after = ((body.get("paging") or {}).get("next") or {}).get("after")
            if not after:
                return

    async def deals(self, pipeline_id: Optional[str] = None) -> AsyncIterator[List[Dict[str, Any]]]:
        """Deal pages, optionally narrowed to one pipeline (filtered client-side)."""
        params = {"properties": DEAL_PROPERTIES, "associations": "companies"}
        async for page in self._list("/crm/v3/objects/deals", params):
            if pipeline_id:
                page = [d for d in page if (d.get("properties") or {}).get("pipeline") == pipeline_id]
            if page:
                yield page

    def companies(self) -> AsyncIterator[List[Dict[str, Any]]]:
        return self._list("/crm/v3/objects/companies", {"properties": COMPANY_PROPERTIES})

    def contacts(self) -> AsyncIterator[List[Dict[str, Any]]]:
        return self._list("/crm/v3/objects/contacts", {"properties": CONTACT_PROPERTIES})

    async def pipelines(self) -> List[Dict[str, Any]]:
        body = await self._request("GET", "/crm/v3/pipelines/deals")
        return body.get("results") or []
