"""
Shared plumbing for the provider clients.

Every outbound request goes through ProviderClient._request(), which waits
on the provider's shared rate limiter first and turns transport failures,
non-2xx responses and undecodable bodies into ProviderAPIError.
"""
import base64
import logging
from typing import Any, Dict, Optional

import httpx

from agencysync.config import get_settings
from agencysync.sync.rate_limiter import RateLimiter, get_rate_limiter

logger = logging.getLogger(__name__)


class ProviderAPIError(RuntimeError):
    """Raised when a provider's API call fails."""

    def __init__(self, provider: str, status_code: Optional[int], message: str):
        self.provider = provider
        self.status_code = status_code
        self.message = message
        prefix = f"{provider} API error"
        if status_code is not None:
            prefix += f" {status_code}"
        super().__init__(f"{prefix}: {message}")


class ProviderClient:
    """
    Base class for the narrow async HTTP wrappers around each provider.

    Subclasses set `provider` and `base_url` and override _headers().
    """

    provider: str = ""
    base_url: str = ""

    def __init__(
        self,
        http: Optional[httpx.AsyncClient] = None,
        limiter: Optional[RateLimiter] = None,
    ):
        """
        Args:
            http: Shared httpx client. When omitted one is created and owned
                  by this instance; close it with aclose().
            limiter: Rate limiter. Defaults to the provider's shared bucket.
        """
        self._owns_http = http is None
        self._http = http or httpx.AsyncClient(timeout=get_settings().http_timeout_seconds)
        self._limiter = limiter or get_rate_limiter(self.provider)

    async def aclose(self) -> None:
        if self._owns_http:
            await self._http.aclose()

    def _headers(self) -> Dict[str, str]:
        return {"Accept": "application/json"}

    def _error_message(self, response: httpx.Response) -> str:
        """Best-effort human message from an error response."""
        try:
            body = response.json()
        except ValueError:
            return response.text[:200] or response.reason_phrase
        if isinstance(body, dict):
            for key in ("message", "Message", "Detail", "error_description", "error"):
                value = body.get(key)
                if isinstance(value, str) and value:
                    return value
                if isinstance(value, dict) and value.get("message"):
                    return str(value["message"])
        return response.reason_phrase

    async def _request(self, method: str, path_or_url: str, **kwargs) -> Any:
        """Rate-limited request; returns the decoded JSON body."""
        url = path_or_url if path_or_url.startswith("http") else f"{self.base_url}{path_or_url}"
        headers = {**self._headers(), **kwargs.pop("headers", {})}

        await self._limiter.acquire()
        try:
            response = await self._http.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderAPIError(self.provider, None, str(exc) or exc.__class__.__name__) from exc

        if response.status_code >= 400:
            raise ProviderAPIError(self.provider, response.status_code, self._error_message(response))

        try:
            return response.json()
        except ValueError as exc:
            raise ProviderAPIError(
                self.provider, response.status_code, "Response body is not valid JSON"
            ) from exc


async def refresh_access_token(
    http: httpx.AsyncClient,
    provider: str,
    token_url: str,
    client_id: str,
    client_secret: str,
    refresh_token: str,
    *,
    basic_auth: bool = False,
) -> Dict[str, Any]:
    """
    OAuth2 refresh_token grant.

    Xero wants the client credentials as HTTP basic auth, Google wants them
    in the form body; `basic_auth` picks which.

    Returns:
        {"access_token", "refresh_token", "expires_in"}; refresh_token falls
        back to the one passed in when the provider does not rotate it.
    """
    if not client_id or not client_secret:
        raise ProviderAPIError(provider, None, "OAuth client credentials are not set")

    data = {"grant_type": "refresh_token", "refresh_token": refresh_token}
    headers = {"Content-Type": "application/x-www-form-urlencoded"}
    if basic_auth:
        creds = base64.b64encode(f"{client_id}:{client_secret}".encode()).decode()
        headers["Authorization"] = f"Basic {creds}"
    else:
        data["client_id"] = client_id
        data["client_secret"] = client_secret

    try:
        response = await http.post(token_url, data=data, headers=headers)
    except httpx.HTTPError as exc:
        raise ProviderAPIError(provider, None, f"Failed to refresh token: {exc}") from exc
    if response.status_code >= 400:
        raise ProviderAPIError(
            provider, response.status_code, f"Failed to refresh token: {response.text[:200]}"
        )

    tokens = response.json()
    logger.info("Refreshed %s access token", provider)
    return {
        "access_token": tokens["access_token"],
        "refresh_token": tokens.get("refresh_token") or refresh_token,
        "expires_in": int(tokens.get("expires_in", 1800)),
    }
