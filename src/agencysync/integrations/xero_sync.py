"""
Xero sync adapters: invoices, expenses and contacts.

  invoices → FinancialRecord(type="retainer", category="invoice-<number>")
  expenses → FinancialRecord(type="cost", category="expense-<id>")
  contacts → Client (keyed by xero_contact_id) + ClientAlias

Only accounts-receivable invoices are synced. Deleted/voided invoices,
deleted expenses and archived contacts are skipped without counting as
failures.
"""
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List

from sqlmodel import Session, select

from agencysync.integrations.base import ProviderSyncAdapter, touch, upsert_alias
from agencysync.integrations.config_store import (
    IntegrationNotConfiguredError,
    load_oauth_config,
)
from agencysync.integrations.utils import parse_datetime, to_month_key
from agencysync.integrations.xero import XeroClient, refresh_xero_token
from agencysync.models.entities import Client
from agencysync.models.records import FinancialRecord
from agencysync.sync.types import BatchResult, SyncContext

Item = Dict[str, Any]


class _XeroAdapter(ProviderSyncAdapter[Item]):
    provider = "xero"
    resource = ""

    async def fetch_all(self, context: SyncContext) -> AsyncIterator[List[Item]]:
        async with self._http_client() as http:
            config = await load_oauth_config(
                self.store, "xero", lambda token: refresh_xero_token(http, token)
            )
            if not config.get("tenant_id"):
                raise IntegrationNotConfiguredError("Xero tenant ID is not configured")

            client = XeroClient(config["access_token"], config["tenant_id"], http=http)
            context.log.info("Fetching %s from Xero", self.resource)
            async for page in getattr(client, self.resource)():
                yield page


def _client_for_contact(s: Session, contact_id: str, name: str) -> Client:
    client = s.exec(select(Client).where(Client.xero_contact_id == contact_id)).first()
    if client is None:
        client = Client(name=name, xero_contact_id=contact_id, source="xero", status="active")
        s.add(client)
        s.flush()
    return client


def _month_of(item: Item) -> str:
    when = parse_datetime(item.get("DateString")) or parse_datetime(item.get("Date"))
    return to_month_key(when or datetime.utcnow())


def _upsert_financial(
    s: Session,
    client_id: int,
    month: str,
    type_: str,
    category: str,
    amount: float,
    description: str,
    external_id: str,
) -> None:
    record = s.exec(
        select(FinancialRecord).where(
            FinancialRecord.client_id == client_id,
            FinancialRecord.month == month,
            FinancialRecord.type == type_,
            FinancialRecord.category == category,
        )
    ).first()
    if record is None:
        record = FinancialRecord(
            client_id=client_id, month=month, type=type_, category=category,
            amount=amount, source="xero",
        )
    record.amount = amount
    record.description = description
    record.external_id = external_id
    touch(record)
    s.add(record)


class InvoiceSyncAdapter(_XeroAdapter):
    name = "Xero Invoices"
    resource = "invoices"

    async def map_and_upsert(self, batch: List[Item], context: SyncContext) -> BatchResult:
        return self._map_each(
            batch, context, self._upsert, lambda inv: f"Invoice {inv.get('InvoiceID')}"
        )

    def _upsert(self, invoice: Item) -> bool:
        if invoice.get("Type") != "ACCREC":
            return False
        if invoice.get("Status") in ("DELETED", "VOIDED"):
            return False

        contact = invoice.get("Contact") or {}
        contact_id = contact.get("ContactID")
        if not contact_id:
            raise ValueError("missing contact")
        contact_name = contact.get("Name") or "Unknown"
        number = invoice.get("InvoiceNumber") or invoice["InvoiceID"]

        with Session(self.engine) as s:
            client = _client_for_contact(s, contact_id, contact_name)
            _upsert_financial(
                s,
                client.id,
                _month_of(invoice),
                "retainer",
                f"invoice-{number}",
                float(invoice.get("Total") or 0),
                f"Xero invoice: {number} - {contact_name}",
                invoice["InvoiceID"],
            )
            s.commit()
        return True


class ExpenseSyncAdapter(_XeroAdapter):
    name = "Xero Expenses"
    resource = "expenses"

    async def map_and_upsert(self, batch: List[Item], context: SyncContext) -> BatchResult:
        return self._map_each(
            batch, context, self._upsert, lambda exp: f"Expense {exp.get('BankTransactionID')}"
        )

    def _upsert(self, expense: Item) -> bool:
        if expense.get("Status") == "DELETED":
            return False

        contact = expense.get("Contact") or {}
        contact_id = contact.get("ContactID")
        if not contact_id:
            raise ValueError("no client match")

        line_items = expense.get("LineItems") or []
        description = (line_items[0].get("Description") if line_items else None) or "Xero expense"
        transaction_id = expense["BankTransactionID"]

        with Session(self.engine) as s:
            client = _client_for_contact(s, contact_id, contact.get("Name") or "Unknown")
            _upsert_financial(
                s,
                client.id,
                _month_of(expense),
                "cost",
                f"expense-{transaction_id}",
                float(expense.get("Total") or 0),
                f"Xero expense: {description}",
                transaction_id,
            )
            s.commit()
        return True


class ContactSyncAdapter(_XeroAdapter):
    name = "Xero Contacts"
    resource = "contacts"

    async def map_and_upsert(self, batch: List[Item], context: SyncContext) -> BatchResult:
        return self._map_each(
            batch, context, self._upsert, lambda c: f"Contact {c.get('ContactID')}"
        )

    def _upsert(self, contact: Item) -> bool:
        if contact.get("ContactStatus") == "ARCHIVED":
            return False

        name = contact.get("Name")
        if not name:
            raise ValueError("missing name")
        contact_id = contact["ContactID"]

        with Session(self.engine) as s:
            client = s.exec(select(Client).where(Client.xero_contact_id == contact_id)).first()
            if client is None:
                client = Client(name=name, xero_contact_id=contact_id, source="xero", status="active")
            else:
                client.name = name
                touch(client)
            s.add(client)
            s.flush()

            upsert_alias(s, client.id, name, "xero", contact_id)
            s.commit()
        return True
