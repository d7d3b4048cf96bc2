"""Maps (provider, data kind) to its sync adapter class."""
from typing import Dict, List, Optional, Tuple, Type

import httpx

from agencysync.integrations import (
    calendar_sync,
    gmail_sync,
    hubspot_sync,
    monday_sync,
    sheets_sync,
    slack_sync,
    xero_sync,
)
from agencysync.integrations.config_store import ConfigStore
from agencysync.sync.types import SyncAdapter

ADAPTERS: Dict[Tuple[str, str], Type[SyncAdapter]] = {
    ("xero", "invoices"): xero_sync.InvoiceSyncAdapter,
    ("xero", "expenses"): xero_sync.ExpenseSyncAdapter,
    ("xero", "contacts"): xero_sync.ContactSyncAdapter,
    ("hubspot", "deals"): hubspot_sync.DealsSyncAdapter,
    ("hubspot", "companies"): hubspot_sync.CompaniesSyncAdapter,
    ("hubspot", "contacts"): hubspot_sync.ContactsSyncAdapter,
    ("monday", "time_tracking"): monday_sync.TimeTrackingSyncAdapter,
    ("monday", "creatives"): monday_sync.CreativesSyncAdapter,
    ("slack", "messages"): slack_sync.MessageSyncAdapter,
    ("slack", "users"): slack_sync.UserSyncAdapter,
    ("calendar", "events"): calendar_sync.EventSyncAdapter,
    ("gmail", "emails"): gmail_sync.EmailSyncAdapter,
    ("sheets", "costs"): sheets_sync.CostSyncAdapter,
}

# Kinds the nightly job runs, in order. Contacts/companies go first so that
# invoices and deals attach to clients that already exist.
DEFAULT_KINDS: Dict[str, List[str]] = {
    "xero": ["contacts", "invoices", "expenses"],
    "hubspot": ["companies", "deals"],
    "monday": ["time_tracking", "creatives"],
    "slack": ["users", "messages"],
    "calendar": ["events"],
    "gmail": ["emails"],
    "sheets": ["costs"],
}


class UnknownSyncKindError(ValueError):
    """Raised for a (provider, kind) pair with no adapter."""


def kinds_for(provider: str) -> List[str]:
    return sorted(kind for (p, kind) in ADAPTERS if p == provider)


def create_adapter(
    provider: str,
    kind: str,
    engine,
    store: Optional[ConfigStore] = None,
    http: Optional[httpx.AsyncClient] = None,
) -> SyncAdapter:
    """
    Build the adapter for one provider/data kind.

    Raises:
        UnknownSyncKindError: if the combination is not supported.
    """
    adapter_cls = ADAPTERS.get((provider, kind))
    if adapter_cls is None:
        supported = kinds_for(provider)
        if supported:
            raise UnknownSyncKindError(
                f"Unknown {provider} sync type: {kind!r} (expected one of {', '.join(supported)})"
            )
        raise UnknownSyncKindError(f"Unknown provider: {provider!r}")
    return adapter_cls(engine, store=store, http=http)
