"""
Google Sheets v4 client, authenticated as a service account.

The service account's private key signs an RS256 JWT which Google's token
endpoint exchanges for a short-lived access token (the jwt-bearer grant).
Cell values are read unformatted and returned as strings, "" for blanks.
"""
import base64
import json
import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding

from agencysync.integrations.http import ProviderAPIError, ProviderClient
from agencysync.sync.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

BASE_URL = "https://sheets.googleapis.com/v4"
TOKEN_URL = "https://oauth2.googleapis.com/token"
SCOPE = "https://www.googleapis.com/auth/spreadsheets.readonly"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
ASSERTION_LIFETIME_SECONDS = 3600


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode()


def service_account_assertion(email: str, private_key: str, now: Optional[float] = None) -> str:
    """
    Signed JWT asserting the service account's identity for SCOPE.

    Args:
        email: Service account email (the token issuer).
        private_key: PEM private key. Literal "\\n" sequences, as found in
                     keys pasted from a JSON key file, are accepted.
        now: Epoch seconds for iat (injectable for tests).

    Raises:
        ProviderAPIError: the key cannot be loaded.
    """
    issued = int(now if now is not None else time.time())
    header = {"alg": "RS256", "typ": "JWT"}
    claims = {
        "iss": email,
        "scope": SCOPE,
        "aud": TOKEN_URL,
        "iat": issued,
        "exp": issued + ASSERTION_LIFETIME_SECONDS,
    }
    signing_input = (
        f"{_b64url(json.dumps(header).encode())}.{_b64url(json.dumps(claims).encode())}"
    )

    try:
        key = serialization.load_pem_private_key(
            private_key.replace("\\n", "\n").encode(), password=None
        )
    except (TypeError, ValueError) as exc:
        raise ProviderAPIError("sheets", None, "Service account private key is invalid") from exc

    signature = key.sign(signing_input.encode(), padding.PKCS1v15(), hashes.SHA256())
    return f"{signing_input}.{_b64url(signature)}"


async def service_account_token(http: httpx.AsyncClient, email: str, private_key: str) -> str:
    """Exchange a signed assertion for an access token."""
    data = {"grant_type": JWT_BEARER_GRANT, "assertion": service_account_assertion(email, private_key)}
    try:
        response = await http.post(TOKEN_URL, data=data)
    except httpx.HTTPError as exc:
        raise ProviderAPIError("sheets", None, f"Failed to get access token: {exc}") from exc
    if response.status_code >= 400:
        raise ProviderAPIError(
            "sheets", response.status_code, f"Failed to get access token: {response.text[:200]}"
        )
    logger.info("Obtained Sheets access token for %s", email)
    return response.json()["access_token"]


def _cell(value: Any) -> str:
    return "" if value is None else str(value)


class SheetsClient(ProviderClient):
    provider = "sheets"
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

    async def values(self, sheet_id: str, range_: str) -> List[List[str]]:
        body = await self._request(
            "GET",
            f"/spreadsheets/{sheet_id}/values/{quote(range_, safe='')}",
            params={
                "valueRenderOption": "UNFORMATTED_VALUE",
                "dateTimeRenderOption": "FORMATTED_STRING",
            },
        )
        return [[_cell(c) for c in row] for row in body.get("values") or []]

    async def read_named_sheet(self, sheet_id: str, tab: str) -> Tuple[List[str], List[List[str]]]:
        """(headers, data rows) of a whole tab; the first row holds the headers."""
        rows = await self.values(sheet_id, tab)
        if not rows:
            return [], []
        return [h.strip() for h in rows[0]], rows[1:]

    async def tabs(self, sheet_id: str) -> List[str]:
        body = await self._request(
            "GET", f"/spreadsheets/{sheet_id}", params={"fields": "sheets.properties.title"}
        )
        titles = ((s.get("properties") or {}).get("title") for s in body.get("sheets") or [])
        return [t for t in titles if t]
