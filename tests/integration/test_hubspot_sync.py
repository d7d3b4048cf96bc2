"""Integration tests for the HubSpot adapters (MockTransport + in-memory SQLite)."""
import httpx
import pytest
from sqlmodel import Session, select

from agencysync.integrations.hubspot_sync import (
    CompaniesSyncAdapter,
    ContactsSyncAdapter,
    DealsSyncAdapter,
    _HubSpotAdapter,
    deal_stage_to_status,
)
from agencysync.models.entities import Client, ClientAlias
from agencysync.models.records import FinancialRecord
from agencysync.sync.types import BatchResult


def hubspot_api(results_by_object):
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.headers["Authorization"] == "Bearer hs-token"
        obj = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(200, json={"results": results_by_object.get(obj, [])})

    return handler


class TestDealStageToStatus:
    @pytest.mark.parametrize("stage,status", [
        ("closedwon", "active"),
        ("Closed Won", "active"),
        ("closedlost", "churned"),
        ("appointmentscheduled", "prospect"),
        (None, "prospect"),
    ])
    def test_mapping(self, stage, status):
        assert deal_stage_to_status(stage) == status


class TestHubSpotAdapterBase:
    def test_adapter_without_pages_cannot_be_built(self, engine):
        class NoPages(_HubSpotAdapter):
            name = "No pages"

            async def map_and_upsert(self, batch, context):
                return BatchResult()

        with pytest.raises(TypeError):
            NoPages(engine)


class TestDealsSync:
    @pytest.mark.asyncio
    async def test_deals_create_clients_and_retainers(self, engine, store, mock_http, run_sync):
        store.save("hubspot", {"access_token": "hs-token"}, enabled=True)
        deals = [
            {"id": "d1", "properties": {
                "dealname": "Acme Retainer", "amount": "4000", "dealstage": "closedwon",
                "closedate": "2024-02-10T12:00:00.000Z", "hs_object_id": "d1",
            }},
            {"id": "d2", "properties": {"dealname": "Globex Pitch", "amount": "", "dealstage": "qualifiedtobuy"}},
            {"id": "d3", "properties": {"amount": "10"}},
        ]
        http = mock_http(hubspot_api({"deals": deals}))

        job = await run_sync(DealsSyncAdapter(engine, store=store, http=http))

        assert (job.records_found, job.records_synced, job.records_failed) == (3, 2, 1)
        assert job.errors == ["Deal d3: missing deal name"]

        with Session(engine) as s:
            clients = {c.hubspot_deal_id: c for c in s.exec(select(Client)).all()}
            record = s.exec(select(FinancialRecord)).one()
        assert clients["d1"].status == "active"
        assert clients["d1"].retainer_value == 4000.0
        assert clients["d2"].status == "prospect"
        assert clients["d2"].retainer_value is None
        assert (record.client_id, record.month, record.type, record.category, record.amount) == (
            clients["d1"].id, "2024-02", "retainer", "deal", 4000.0,
        )

    @pytest.mark.asyncio
    async def test_status_is_set_only_on_create(self, engine, store, mock_http, run_sync):
        store.save("hubspot", {"access_token": "hs-token"}, enabled=True)
        with Session(engine) as s:
            s.add(Client(name="Acme", hubspot_deal_id="d1", source="hubspot", status="churned"))
            s.commit()
        deals = [{"id": "d1", "properties": {"dealname": "Acme", "dealstage": "closedwon"}}]

        await run_sync(DealsSyncAdapter(engine, store=store, http=mock_http(hubspot_api({"deals": deals}))))

        with Session(engine) as s:
            client = s.exec(select(Client)).one()
        assert client.status == "churned"
        assert client.deal_stage == "closedwon"

    @pytest.mark.asyncio
    async def test_pipeline_filter(self, engine, store, mock_http, run_sync):
        store.save("hubspot", {"access_token": "hs-token", "pipeline_id": "retainers"}, enabled=True)
        deals = [
            {"id": "d1", "properties": {"dealname": "A", "pipeline": "default"}},
            {"id": "d2", "properties": {"dealname": "B", "pipeline": "retainers"}},
        ]

        job = await run_sync(DealsSyncAdapter(engine, store=store, http=mock_http(hubspot_api({"deals": deals}))))

        assert job.records_found == 1
        with Session(engine) as s:
            assert [c.hubspot_deal_id for c in s.exec(select(Client)).all()] == ["d2"]

    @pytest.mark.asyncio
    async def test_missing_token_fails(self, engine, store, mock_http, run_sync):
        store.save("hubspot", {"pipeline_id": "x"}, enabled=True)
        job = await run_sync(DealsSyncAdapter(engine, store=store, http=mock_http(hubspot_api({}))))
        assert job.status == "failed"
        assert job.errors == ["HubSpot access token is not configured"]


class TestCompaniesSync:
    @pytest.mark.asyncio
    async def test_companies_become_clients(self, engine, store, mock_http, run_sync):
        store.save("hubspot", {"access_token": "hs-token"}, enabled=True)
        companies = [{"id": "co1", "properties": {"name": "Acme", "domain": "acme.com", "industry": "Retail"}}]

        job = await run_sync(CompaniesSyncAdapter(engine, store=store, http=mock_http(hubspot_api({"companies": companies}))))

        assert job.records_synced == 1
        with Session(engine) as s:
            client = s.exec(select(Client)).one()
            alias = s.exec(select(ClientAlias)).one()
        assert (client.hubspot_company_id, client.website, client.industry) == ("co1", "acme.com", "Retail")
        assert (alias.alias, alias.source, alias.external_id) == ("Acme", "hubspot", "co1")


class TestContactsSync:
    @pytest.mark.asyncio
    async def test_contacts_are_counted_not_stored(self, engine, store, mock_http, run_sync):
        store.save("hubspot", {"access_token": "hs-token"}, enabled=True)
        contacts = [
            {"id": "1", "properties": {"email": "a@acme.com", "company": "Acme"}},
            {"id": "2", "properties": {"email": "b@x.com"}},
        ]

        job = await run_sync(ContactsSyncAdapter(engine, store=store, http=mock_http(hubspot_api({"contacts": contacts}))))

        assert (job.records_found, job.records_synced, job.records_failed) == (2, 2, 0)
        with Session(engine) as s:
            assert s.exec(select(Client)).all() == []
