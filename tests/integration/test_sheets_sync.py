"""Integration tests for the Google Sheets costs adapter (MockTransport + in-memory SQLite)."""
import httpx
import pytest
from sqlmodel import Session, select

from agencysync.integrations.sheets_sync import CostSyncAdapter, parse_amount
from agencysync.integrations.utils import normalize_month
from agencysync.models.entities import Client, ClientAlias
from agencysync.models.records import FinancialRecord

HEADERS = ["Client Name", "Month", "Cost", "Category", "Hours"]

ROWS = [
    ["Acme", "Jan 2024", "$1,250.50", "Design", "10"],
    ["GLX", "2024-02", 800, "", ""],
    ["", "2024-02", 100],
    ["Acme", "Q1", 100],
    ["Initech", "2024-03", 50],
    ["Acme", "2024-03", "n/a"],
    ["Acme", "2024-03"],
]


def sheets_api(rows, calls=None):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.host == "oauth2.googleapis.com":
            return httpx.Response(200, json={"access_token": "ya29", "expires_in": 3599})
        if calls is not None:
            calls.append(request)
        assert request.headers["Authorization"] == "Bearer ya29"
        return httpx.Response(200, json={"values": [HEADERS] + rows})

    return handler


@pytest.fixture(name="config")
def config_fixture(store, service_account_key):
    config = {
        "service_account_email": "bot@proj.iam.gserviceaccount.com",
        "private_key": service_account_key,
        "sheet_id": "sheet-1",
    }
    store.save("sheets", config, enabled=True)
    return config


@pytest.fixture(name="clients")
def clients_fixture(engine):
    with Session(engine) as s:
        acme = Client(name="Acme", source="hubspot")
        globex = Client(name="Globex", source="xero")
        s.add_all([acme, globex])
        s.commit()
        s.add(ClientAlias(client_id=globex.id, alias="GLX", source="sheets"))
        s.commit()
        return {"acme": acme.id, "globex": globex.id}


class TestCellParsing:
    @pytest.mark.parametrize("value,month", [
        ("2024-01", "2024-01"),
        ("2024-01-15", "2024-01"),
        ("3/2024", "2024-03"),
        ("Jan 2024", "2024-01"),
        ("september2024", "2024-09"),
        ("Q1 2024", None),
        ("", None),
    ])
    def test_normalize_month(self, value, month):
        assert normalize_month(value) == month

    @pytest.mark.parametrize("value,amount", [
        ("$1,250.50", 1250.5),
        ("800", 800.0),
        ("-12", -12.0),
        ("n/a", None),
        ("", None),
    ])
    def test_parse_amount(self, value, amount):
        assert parse_amount(value) == amount


class TestCostSync:
    @pytest.mark.asyncio
    async def test_cost_rows_become_financial_records(
        self, engine, store, mock_http, run_sync, config, clients
    ):
        calls = []

        job = await run_sync(CostSyncAdapter(engine, store=store, http=mock_http(sheets_api(ROWS, calls))))

        assert job.status == "completed"
        assert (job.records_found, job.records_synced, job.records_failed) == (7, 2, 2)
        assert job.errors == [
            'Row 5: Unable to parse month value "Q1"',
            'Row 6: Client not found: "Initech"',
        ]
        assert calls[0].url.path == "/v4/spreadsheets/sheet-1/values/4.4 Segmented Cost Data"

        with Session(engine) as s:
            records = {(r.client_id, r.month, r.category): r for r in s.exec(select(FinancialRecord)).all()}
        assert set(records) == {
            (clients["acme"], "2024-01", "Design"),
            (clients["globex"], "2024-02", "general"),
        }
        design = records[(clients["acme"], "2024-01", "Design")]
        assert design.type == "cost"
        assert design.amount == 1250.5
        assert design.source == "sheets"
        assert design.description == "Imported from Sheets row 2"

    @pytest.mark.asyncio
    async def test_resync_updates_amount(self, engine, store, mock_http, run_sync, config, clients):
        await run_sync(CostSyncAdapter(engine, store=store, http=mock_http(sheets_api(ROWS[:1]))))
        revised = [["Acme", "2024-01", "1400", "Design"]]
        await run_sync(CostSyncAdapter(engine, store=store, http=mock_http(sheets_api(revised))))

        with Session(engine) as s:
            records = s.exec(select(FinancialRecord)).all()
        assert [r.amount for r in records] == [1400.0]

    @pytest.mark.asyncio
    async def test_custom_tab_name(self, engine, store, mock_http, run_sync, config, clients):
        store.save("sheets", {**config, "costs_tab": "Costs"})
        calls = []

        await run_sync(CostSyncAdapter(engine, store=store, http=mock_http(sheets_api([], calls))))

        assert calls[0].url.path == "/v4/spreadsheets/sheet-1/values/Costs"

    @pytest.mark.asyncio
    async def test_incomplete_config(self, engine, store, mock_http, run_sync):
        store.save("sheets", {"sheet_id": "sheet-1"}, enabled=True)

        job = await run_sync(CostSyncAdapter(engine, store=store, http=mock_http(sheets_api([]))))

        assert job.status == "failed"
        assert "need service_account_email, private_key and sheet_id" in job.errors[0]
