"""
Base class and lookup helpers shared by the provider sync adapters.

Each item is written in its own Session and committed on its own, so a
constraint violation on one item cannot poison the rest of the batch.
"""
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, List, Optional, Tuple, TypeVar

import httpx
from sqlalchemy import func
from sqlmodel import Session, select

from agencysync.config import get_settings
from agencysync.integrations.config_store import ConfigStore
from agencysync.models.entities import Client, ClientAlias
from agencysync.sync.types import SyncAdapter

T = TypeVar("T")


class ProviderSyncAdapter(SyncAdapter[T]):
    """SyncAdapter wired to the database, the config store and an HTTP client."""

    def __init__(
        self,
        engine,
        store: Optional[ConfigStore] = None,
        http: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            engine: SQLAlchemy engine (SQLModel create_engine result).
            store: Integration config store. Defaults to one over `engine`.
            http: httpx client for provider calls (a MockTransport client in
                  tests). When omitted each run opens and closes its own.
        """
        self.engine = engine
        self.store = store or ConfigStore(engine)
        self.http = http

    @asynccontextmanager
    async def _http_client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self.http is not None:
            yield self.http
            return
        async with httpx.AsyncClient(timeout=get_settings().http_timeout_seconds) as http:
            yield http


# ─── Client lookup ────────────────────────────────────────────────────────────

def find_client_by_name(s: Session, name: str, source: Optional[str] = None) -> Optional[Client]:
    """
    Resolve a provider's client label to a Client.

    Tries, in order: an alias recorded for `source`, an exact name, then a
    case-insensitive name.
    """
    if not name:
        return None

    if source:
        alias = s.exec(
            select(ClientAlias).where(ClientAlias.alias == name, ClientAlias.source == source)
        ).first()
        if alias is not None:
            client = s.get(Client, alias.client_id)
            if client is not None:
                return client

    client = s.exec(select(Client).where(Client.name == name)).first()
    if client is not None:
        return client

    return s.exec(select(Client).where(func.lower(Client.name) == name.lower())).first()


def client_name_index(s: Session) -> List[Tuple[str, int]]:
    """
    (lowercased name or alias, client id) pairs for substring matching.

    Longest names come first so "Acme Group" wins over "Acme". Names of two
    characters or fewer are left out; they match too much.
    """
    pairs = [(c.name, c.id) for c in s.exec(select(Client)).all()]
    pairs += [(a.alias, a.client_id) for a in s.exec(select(ClientAlias)).all()]
    index = [(name.lower(), client_id) for name, client_id in pairs if name and len(name) > 2]
    return sorted(index, key=lambda pair: len(pair[0]), reverse=True)


def match_client_id(index: List[Tuple[str, int]], *texts: Optional[str]) -> Optional[int]:
    """First client whose name or alias occurs in any of `texts`."""
    haystack = " ".join(t for t in texts if t).lower()
    if not haystack:
        return None
    return next((client_id for name, client_id in index if name in haystack), None)


def upsert_alias(
    s: Session, client_id: int, alias: str, source: str, external_id: Optional[str] = None
) -> ClientAlias:
    """Bind (alias, source) to a client, repointing an existing binding."""
    row = s.exec(
        select(ClientAlias).where(ClientAlias.alias == alias, ClientAlias.source == source)
    ).first()
    if row is None:
        row = ClientAlias(client_id=client_id, alias=alias, source=source, external_id=external_id)
    else:
        row.client_id = client_id
        row.external_id = external_id
    s.add(row)
    return row


def touch(row, now: Optional[datetime] = None) -> None:
    row.updated_at = now or datetime.utcnow()
