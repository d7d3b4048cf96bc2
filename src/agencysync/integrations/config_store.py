"""
Encrypted per-provider integration settings.

IntegrationConfig.config_json holds a Fernet token wrapping a JSON object
(API keys, OAuth tokens, board/channel ids). "{}" means never configured.

OAuth providers keep these keys in the object:
    access_token, refresh_token, expires_at (epoch seconds, optional)
"""
import json
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlmodel import Session, select

from agencysync.config import get_settings
from agencysync.models.sync import IntegrationConfig

logger = logging.getLogger(__name__)

UNCONFIGURED = "{}"


# ── Exceptions ────────────────────────────────────────────────────────────────

class IntegrationNotConfiguredError(RuntimeError):
    """Raised when a provider has no stored configuration."""


class ReauthenticationRequiredError(RuntimeError):
    """Raised when an OAuth token expired and cannot be refreshed."""


# ── Cipher ────────────────────────────────────────────────────────────────────

class Cipher:
    """JSON-object encryption with a Fernet key (ENCRYPTION_KEY)."""

    def __init__(self, key: str):
        if not key:
            raise ValueError(
                "ENCRYPTION_KEY is not set. Generate one with "
                "`python -c 'from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())'`."
            )
        self._fernet = Fernet(key.encode() if isinstance(key, str) else key)

    @classmethod
    def from_settings(cls) -> "Cipher":
        return cls(get_settings().encryption_key)

    def encrypt(self, data: Dict[str, Any]) -> str:
        return self._fernet.encrypt(json.dumps(data).encode()).decode()

    def decrypt(self, token: str) -> Dict[str, Any]:
        try:
            plain = self._fernet.decrypt(token.encode())
        except InvalidToken as exc:
            raise ValueError("Integration config could not be decrypted; check ENCRYPTION_KEY") from exc
        return json.loads(plain)


# ── Store ─────────────────────────────────────────────────────────────────────

class ConfigStore:
    """Reads and writes IntegrationConfig rows, encrypting config_json."""

    def __init__(self, engine, cipher: Optional[Cipher] = None):
        self.engine = engine
        self._cipher = cipher

    @property
    def cipher(self) -> Cipher:
        if self._cipher is None:
            self._cipher = Cipher.from_settings()
        return self._cipher

    def get(self, provider: str) -> Optional[IntegrationConfig]:
        with Session(self.engine) as s:
            return s.exec(
                select(IntegrationConfig).where(IntegrationConfig.provider == provider)
            ).first()

    def is_enabled(self, provider: str) -> bool:
        row = self.get(provider)
        return bool(row and row.enabled)

    def enabled_providers(self) -> List[str]:
        with Session(self.engine) as s:
            rows = s.exec(
                select(IntegrationConfig).where(IntegrationConfig.enabled == True)  # noqa: E712
            ).all()
        return sorted(r.provider for r in rows)

    def load(self, provider: str) -> Dict[str, Any]:
        """
        Decrypted config for a provider.

        Raises:
            IntegrationNotConfiguredError: no row, or the row was never configured.
        """
        row = self.get(provider)
        if row is None or not row.config_json or row.config_json == UNCONFIGURED:
            raise IntegrationNotConfiguredError(
                f"{provider.capitalize()} integration is not configured"
            )
        return self.cipher.decrypt(row.config_json)

    def save(self, provider: str, data: Dict[str, Any], enabled: Optional[bool] = None) -> None:
        """Encrypt and store config, creating the row if needed."""
        now = datetime.utcnow()
        with Session(self.engine) as s:
            row = s.exec(
                select(IntegrationConfig).where(IntegrationConfig.provider == provider)
            ).first()
            if row is None:
                row = IntegrationConfig(provider=provider)
            row.config_json = self.cipher.encrypt(data)
            if enabled is not None:
                row.enabled = enabled
            row.updated_at = now
            s.add(row)
            s.commit()


# ── OAuth ─────────────────────────────────────────────────────────────────────

Refresher = Callable[[str], Awaitable[Dict[str, Any]]]


async def load_oauth_config(
    store: ConfigStore,
    provider: str,
    refresh: Refresher,
    now: Optional[Callable[[], float]] = None,
) -> Dict[str, Any]:
    """
    Load an OAuth provider's config, refreshing an expired access token.

    Args:
        store: Config store to read from and persist refreshed tokens to.
        provider: Provider name ("xero", "calendar").
        refresh: Coroutine taking a refresh token and returning
                 {"access_token", "refresh_token", "expires_in"}.
        now: Clock returning epoch seconds (injectable for tests).

    Raises:
        IntegrationNotConfiguredError: nothing stored, or no access token.
        ReauthenticationRequiredError: token expired and no refresh token.
    """
    clock = now or time.time
    config = store.load(provider)
    label = provider.capitalize()

    if not config.get("access_token") and not config.get("refresh_token"):
        raise IntegrationNotConfiguredError(f"{label} access token is not configured")

    expires_at = config.get("expires_at")
    expired = not config.get("access_token") or (expires_at is not None and clock() > float(expires_at))
    if not expired:
        return config

    refresh_token = config.get("refresh_token")
    if not refresh_token:
        raise ReauthenticationRequiredError(
            f"{label} refresh token not available. Please re-authenticate."
        )

    tokens = await refresh(refresh_token)
    config = {
        **config,
        "access_token": tokens["access_token"],
        "refresh_token": tokens.get("refresh_token") or refresh_token,
        "expires_at": clock() + int(tokens.get("expires_in", 1800)),
    }
    store.save(provider, config)
    logger.info("Persisted refreshed %s tokens", provider)
    return config
