"""
Integration tests for the Xero adapters.

Xero and its token endpoint are served by an httpx.MockTransport handler;
data lands in an in-memory SQLite DB.
"""
import time

import httpx
import pytest
from sqlmodel import Session, select

from agencysync.integrations.config_store import (
    IntegrationNotConfiguredError,
    ReauthenticationRequiredError,
    load_oauth_config,
)
from agencysync.integrations.xero_sync import (
    ContactSyncAdapter,
    ExpenseSyncAdapter,
    InvoiceSyncAdapter,
)
from agencysync.models.entities import Client, ClientAlias
from agencysync.models.records import FinancialRecord

FRESH = {"access_token": "tok", "refresh_token": "r1", "tenant_id": "tenant-1"}

INVOICES = [
    {
        "InvoiceID": "inv-1",
        "InvoiceNumber": "INV-001",
        "Type": "ACCREC",
        "Status": "AUTHORISED",
        "Total": 5500.0,
        "DateString": "2024-03-15T00:00:00",
        "Contact": {"ContactID": "c-1", "Name": "Acme Pty Ltd"},
    },
    {
        "InvoiceID": "inv-2",
        "Type": "ACCPAY",  # supplier bill
        "Status": "AUTHORISED",
        "Total": 100.0,
        "Contact": {"ContactID": "c-2", "Name": "Supplier"},
    },
    {
        "InvoiceID": "inv-3",
        "InvoiceNumber": "INV-003",
        "Type": "ACCREC",
        "Status": "VOIDED",
        "Total": 10.0,
        "Contact": {"ContactID": "c-1", "Name": "Acme Pty Ltd"},
    },
    {
        "InvoiceID": "inv-4",
        "InvoiceNumber": "INV-004",
        "Type": "ACCREC",
        "Status": "PAID",
        "Total": 1200,
        "Date": "/Date(1714521600000+0000)/",  # 2024-05-01
        "Contact": {},
    },
]


def xero_api(routes):
    """Handler answering GET <path> with routes[path] as the page-1 body."""

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params.get("page", "1") != "1":
            return httpx.Response(200, json={})
        for suffix, body in routes.items():
            if request.url.path.endswith(suffix):
                return httpx.Response(200, json=body)
        return httpx.Response(404, json={"Detail": "not found"})

    return handler


class TestInvoiceSync:
    @pytest.mark.asyncio
    async def test_receivable_invoices_become_retainer_records(self, engine, store, mock_http, run_sync):
        store.save("xero", FRESH, enabled=True)
        http = mock_http(xero_api({"/Invoices": {"Invoices": INVOICES}}))

        job = await run_sync(InvoiceSyncAdapter(engine, store=store, http=http))

        assert job.status == "completed"
        assert (job.records_found, job.records_synced, job.records_failed) == (4, 1, 1)
        assert job.errors == ["Invoice inv-4: missing contact"]

        with Session(engine) as s:
            record = s.exec(select(FinancialRecord)).one()
            client = s.get(Client, record.client_id)
        assert (record.month, record.type, record.category) == ("2024-03", "retainer", "invoice-INV-001")
        assert record.amount == 5500.0
        assert record.description == "Xero invoice: INV-001 - Acme Pty Ltd"
        assert record.external_id == "inv-1"
        assert client.xero_contact_id == "c-1"
        assert client.source == "xero"

    @pytest.mark.asyncio
    async def test_resync_updates_in_place(self, engine, store, mock_http, run_sync):
        store.save("xero", FRESH, enabled=True)
        first = [dict(INVOICES[0])]
        second = [dict(INVOICES[0], Total=6000.0)]

        await run_sync(InvoiceSyncAdapter(engine, store=store, http=mock_http(xero_api({"/Invoices": {"Invoices": first}}))))
        await run_sync(InvoiceSyncAdapter(engine, store=store, http=mock_http(xero_api({"/Invoices": {"Invoices": second}}))))

        with Session(engine) as s:
            records = s.exec(select(FinancialRecord)).all()
            clients = s.exec(select(Client)).all()
        assert [r.amount for r in records] == [6000.0]
        assert len(clients) == 1

    @pytest.mark.asyncio
    async def test_missing_tenant_fails_job(self, engine, store, mock_http, run_sync):
        store.save("xero", {"access_token": "tok"}, enabled=True)
        job = await run_sync(InvoiceSyncAdapter(engine, store=store, http=mock_http(xero_api({}))))

        assert job.status == "failed"
        assert job.errors == ["Xero tenant ID is not configured"]

    @pytest.mark.asyncio
    async def test_api_error_fails_job(self, engine, store, mock_http, run_sync):
        store.save("xero", FRESH, enabled=True)
        http = mock_http(lambda r: httpx.Response(403, json={"Detail": "AuthorizationUnsuccessful"}))

        job = await run_sync(InvoiceSyncAdapter(engine, store=store, http=http))

        assert job.status == "failed"
        assert job.errors == ["xero API error 403: AuthorizationUnsuccessful"]


class TestExpenseSync:
    @pytest.mark.asyncio
    async def test_spend_transactions_become_costs(self, engine, store, mock_http, run_sync):
        store.save("xero", FRESH, enabled=True)
        expenses = [
            {
                "BankTransactionID": "bt-1",
                "Type": "SPEND",
                "Status": "AUTHORISED",
                "Total": 250.0,
                "DateString": "2024-04-02T00:00:00",
                "Contact": {"ContactID": "c-1", "Name": "Acme Pty Ltd"},
                "LineItems": [{"Description": "Stock footage"}],
            },
            {"BankTransactionID": "bt-2", "Status": "DELETED", "Contact": {"ContactID": "c-1"}},
            {"BankTransactionID": "bt-3", "Status": "AUTHORISED", "Total": 5},
        ]
        http = mock_http(xero_api({"/BankTransactions": {"BankTransactions": expenses}}))

        job = await run_sync(ExpenseSyncAdapter(engine, store=store, http=http))

        assert (job.records_synced, job.records_failed) == (1, 1)
        assert job.errors == ["Expense bt-3: no client match"]
        with Session(engine) as s:
            record = s.exec(select(FinancialRecord)).one()
        assert (record.month, record.type, record.category) == ("2024-04", "cost", "expense-bt-1")
        assert record.description == "Xero expense: Stock footage"


class TestContactSync:
    @pytest.mark.asyncio
    async def test_contacts_become_clients_with_aliases(self, engine, store, mock_http, run_sync):
        store.save("xero", FRESH, enabled=True)
        contacts = [
            {"ContactID": "c-1", "Name": "Acme Pty Ltd", "ContactStatus": "ACTIVE"},
            {"ContactID": "c-2", "Name": "Old Co", "ContactStatus": "ARCHIVED"},
            {"ContactID": "c-3", "ContactStatus": "ACTIVE"},
        ]
        http = mock_http(xero_api({"/Contacts": {"Contacts": contacts}}))

        job = await run_sync(ContactSyncAdapter(engine, store=store, http=http))

        assert (job.records_found, job.records_synced, job.records_failed) == (3, 1, 1)
        with Session(engine) as s:
            client = s.exec(select(Client)).one()
            alias = s.exec(select(ClientAlias)).one()
        assert (client.name, client.xero_contact_id) == ("Acme Pty Ltd", "c-1")
        assert (alias.alias, alias.source, alias.external_id, alias.client_id) == (
            "Acme Pty Ltd", "xero", "c-1", client.id,
        )

    @pytest.mark.asyncio
    async def test_rename_updates_existing_client(self, engine, store, mock_http, run_sync):
        store.save("xero", FRESH, enabled=True)
        with Session(engine) as s:
            s.add(Client(name="Acme", xero_contact_id="c-1", source="xero"))
            s.commit()
        http = mock_http(xero_api({"/Contacts": {"Contacts": [{"ContactID": "c-1", "Name": "Acme Studios"}]}}))

        await run_sync(ContactSyncAdapter(engine, store=store, http=http))

        with Session(engine) as s:
            assert [c.name for c in s.exec(select(Client)).all()] == ["Acme Studios"]


class TestTokenRefresh:
    @pytest.mark.asyncio
    async def test_expired_token_is_refreshed_and_persisted(self, engine, store, mock_http, run_sync, settings):
        store.save("xero", {**FRESH, "access_token": "old", "expires_at": time.time() - 60}, enabled=True)
        seen_tokens = []

        def handler(request):
            if request.url.host == "identity.xero.com":
                return httpx.Response(200, json={"access_token": "new", "refresh_token": "r2", "expires_in": 1800})
            seen_tokens.append(request.headers["Authorization"])
            return httpx.Response(200, json={"Contacts": []})

        job = await run_sync(ContactSyncAdapter(engine, store=store, http=mock_http(handler)))

        assert job.status == "completed"
        assert seen_tokens == ["Bearer new"]
        saved = store.load("xero")
        assert saved["access_token"] == "new"
        assert saved["refresh_token"] == "r2"
        assert saved["expires_at"] > time.time() + 1700
        assert saved["tenant_id"] == "tenant-1"

    @pytest.mark.asyncio
    async def test_valid_token_is_not_refreshed(self, store):
        store.save("xero", {**FRESH, "expires_at": 2_000_000_000})

        async def refresh(token):
            raise AssertionError("should not refresh")

        config = await load_oauth_config(store, "xero", refresh, now=lambda: 1_000_000_000)
        assert config["access_token"] == "tok"

    @pytest.mark.asyncio
    async def test_expired_without_refresh_token(self, store):
        store.save("xero", {"access_token": "old", "expires_at": 10, "tenant_id": "t"})

        with pytest.raises(ReauthenticationRequiredError, match="Xero refresh token not available"):
            await load_oauth_config(store, "xero", None, now=lambda: 100)

    @pytest.mark.asyncio
    async def test_unconfigured_fails_job(self, engine, store, mock_http, run_sync):
        job = await run_sync(ContactSyncAdapter(engine, store=store, http=mock_http(xero_api({}))))
        assert job.status == "failed"
        assert job.errors == ["Xero integration is not configured"]

    @pytest.mark.asyncio
    async def test_unconfigured_raises(self, store):
        with pytest.raises(IntegrationNotConfiguredError):
            await load_oauth_config(store, "xero", None)
