"""
Google Sheets sync adapter: the segmented cost tab → FinancialRecord.

Each data row becomes FinancialRecord(type="cost") keyed by client, month
and category ("general" when the row has none). Columns are found by
header name, case-insensitively, trying each accepted spelling in turn:

    client: "client name", "client", "name"
    month:  "month", "period"
    amount: "cost", "cost amount", "amount"
    category: "category", "cost category"

Rows without a client, month or amount are skipped. An unparseable month
or an unknown client fails the row.
"""
import re
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlmodel import Session, select

from agencysync.integrations.base import ProviderSyncAdapter, find_client_by_name, touch
from agencysync.integrations.config_store import IntegrationNotConfiguredError
from agencysync.integrations.sheets import SheetsClient, service_account_token
from agencysync.integrations.utils import normalize_month
from agencysync.models.records import FinancialRecord
from agencysync.sync.types import BatchResult, SyncContext

Item = Dict[str, Any]

COSTS_TAB = "4.4 Segmented Cost Data"
BATCH_SIZE = 50

CLIENT_COLUMNS = ("client name", "client", "name")
MONTH_COLUMNS = ("month", "period")
AMOUNT_COLUMNS = ("cost", "cost amount", "amount")
CATEGORY_COLUMNS = ("category", "cost category")


def parse_amount(value: Optional[str]) -> Optional[float]:
    """'$1,250.50' → 1250.5; None for blank or non-numeric cells."""
    cleaned = re.sub(r"[$,\s]", "", value or "")
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def _first(cells: Dict[str, str], columns) -> str:
    return next((cells[c] for c in columns if cells.get(c)), "")


class CostSyncAdapter(ProviderSyncAdapter[Item]):
    name = "Google Sheets Costs"
    provider = "sheets"

    def _config(self) -> Dict[str, Any]:
        config = self.store.load("sheets")
        if not (config.get("service_account_email") and config.get("private_key") and config.get("sheet_id")):
            raise IntegrationNotConfiguredError(
                "Google Sheets config incomplete: need service_account_email, private_key and sheet_id"
            )
        return config

    async def fetch_all(self, context: SyncContext) -> AsyncIterator[List[Item]]:
        config = self._config()
        tab = config.get("costs_tab") or COSTS_TAB

        async with self._http_client() as http:
            token = await service_account_token(
                http, config["service_account_email"], config["private_key"]
            )
            context.log.info("Reading '%s' tab", tab)
            headers, rows = await SheetsClient(token, http=http).read_named_sheet(config["sheet_id"], tab)

        if not headers:
            context.log.info("No headers found in '%s'", tab)
            return

        columns = [h.lower() for h in headers]
        # Row 1 holds the headers, so data starts at sheet row 2
        items = [
            {"row": number, "cells": {c: v.strip() for c, v in zip(columns, row)}}
            for number, row in enumerate(rows, start=2)
        ]
        for start in range(0, len(items), BATCH_SIZE):
            yield items[start:start + BATCH_SIZE]

    async def map_and_upsert(self, batch: List[Item], context: SyncContext) -> BatchResult:
        return self._map_each(batch, context, self._upsert, lambda item: f"Row {item['row']}")

    def _upsert(self, item: Item) -> bool:
        cells = item["cells"]
        client_name = _first(cells, CLIENT_COLUMNS)
        month = _first(cells, MONTH_COLUMNS)
        if not client_name or not month:
            return False

        month_key = normalize_month(month)
        if month_key is None:
            raise ValueError(f'Unable to parse month value "{month}"')

        amount = next(
            (a for a in (parse_amount(cells.get(c)) for c in AMOUNT_COLUMNS) if a is not None), None
        )
        if amount is None:
            return False
        category = _first(cells, CATEGORY_COLUMNS) or "general"

        with Session(self.engine) as s:
            client = find_client_by_name(s, client_name, source="sheets")
            if client is None:
                raise LookupError(f'Client not found: "{client_name}"')

            record = s.exec(
                select(FinancialRecord).where(
                    FinancialRecord.client_id == client.id,
                    FinancialRecord.month == month_key,
                    FinancialRecord.type == "cost",
                    FinancialRecord.category == category,
                )
            ).first()
            if record is None:
                record = FinancialRecord(
                    client_id=client.id,
                    month=month_key,
                    type="cost",
                    category=category,
                    amount=amount,
                    source="sheets",
                    description=f"Imported from Sheets row {item['row']}",
                )
            record.amount = amount
            record.source = "sheets"
            touch(record)
            s.add(record)
            s.commit()
        return True
