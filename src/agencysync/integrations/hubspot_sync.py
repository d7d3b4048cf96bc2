"""
HubSpot sync adapters.

  deals     → Client (keyed by hubspot_deal_id) + FinancialRecord(category="deal")
  companies → Client (keyed by hubspot_company_id) + ClientAlias
  contacts  → counted only; contacts are not persisted
"""
from abc import abstractmethod
from datetime import datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlmodel import Session, select

from agencysync.integrations.base import ProviderSyncAdapter, touch, upsert_alias
from agencysync.integrations.config_store import IntegrationNotConfiguredError
from agencysync.integrations.hubspot import HubSpotClient
from agencysync.integrations.utils import parse_datetime, to_month_key
from agencysync.models.entities import Client
from agencysync.models.records import FinancialRecord
from agencysync.sync.types import BatchResult, SyncContext

Item = Dict[str, Any]


def deal_stage_to_status(stage: Optional[str]) -> str:
    """Closed-won deals are active clients, closed-lost are churned, the rest prospects."""
    if not stage:
        return "prospect"
    lowered = stage.lower()
    if "closed" in lowered and "won" in lowered:
        return "active"
    if "closed" in lowered and "lost" in lowered:
        return "churned"
    return "prospect"


def _parse_amount(value: Any) -> Optional[float]:
    if value in (None, ""):
        return None
    return float(value)


class _HubSpotAdapter(ProviderSyncAdapter[Item]):
    provider = "hubspot"

    def _config(self) -> Dict[str, Any]:
        config = self.store.load("hubspot")
        if not config.get("access_token"):
            raise IntegrationNotConfiguredError("HubSpot access token is not configured")
        return config

    @abstractmethod
    def _pages(self, client: HubSpotClient, config: Dict[str, Any]) -> AsyncIterator[List[Item]]:
        ...

    async def fetch_all(self, context: SyncContext) -> AsyncIterator[List[Item]]:
        config = self._config()
        async with self._http_client() as http:
            client = HubSpotClient(config["access_token"], http=http)
            context.log.info("Fetching %s from HubSpot", self.name)
            async for page in self._pages(client, config):
                yield page


class DealsSyncAdapter(_HubSpotAdapter):
    name = "HubSpot Deals"

    def _pages(self, client, config):
        return client.deals(config.get("pipeline_id"))

    async def map_and_upsert(self, batch: List[Item], context: SyncContext) -> BatchResult:
        return self._map_each(batch, context, self._upsert, lambda d: f"Deal {d.get('id')}")

    def _upsert(self, deal: Item) -> bool:
        props = deal.get("properties") or {}
        name = props.get("dealname")
        deal_id = props.get("hs_object_id") or deal["id"]
        if not name:
            raise ValueError("missing deal name")
        amount = _parse_amount(props.get("amount"))
        stage = props.get("dealstage")

        with Session(self.engine) as s:
            client = s.exec(select(Client).where(Client.hubspot_deal_id == deal_id)).first()
            if client is None:
                client = Client(
                    name=name,
                    hubspot_deal_id=deal_id,
                    source="hubspot",
                    status=deal_stage_to_status(stage),
                )
            client.name = name
            if stage is not None:
                client.deal_stage = stage
            if amount is not None:
                client.retainer_value = amount
            touch(client)
            s.add(client)
            s.flush()

            if amount and amount > 0:
                closed = parse_datetime(props.get("closedate"))
                month = to_month_key(closed or datetime.utcnow())
                record = s.exec(
                    select(FinancialRecord).where(
                        FinancialRecord.client_id == client.id,
                        FinancialRecord.month == month,
                        FinancialRecord.type == "retainer",
                        FinancialRecord.category == "deal",
                    )
                ).first()
                if record is None:
                    record = FinancialRecord(
                        client_id=client.id, month=month, type="retainer",
                        category="deal", amount=amount, source="hubspot",
                    )
                record.amount = amount
                record.description = f"HubSpot deal: {name}"
                record.external_id = deal_id
                touch(record)
                s.add(record)

            s.commit()
        return True


class CompaniesSyncAdapter(_HubSpotAdapter):
    name = "HubSpot Companies"

    def _pages(self, client, config):
        return client.companies()

    async def map_and_upsert(self, batch: List[Item], context: SyncContext) -> BatchResult:
        return self._map_each(batch, context, self._upsert, lambda c: f"Company {c.get('id')}")

    def _upsert(self, company: Item) -> bool:
        props = company.get("properties") or {}
        name = props.get("name")
        company_id = props.get("hs_object_id") or company["id"]
        if not name:
            raise ValueError("missing company name")

        with Session(self.engine) as s:
            client = s.exec(select(Client).where(Client.hubspot_company_id == company_id)).first()
            if client is None:
                client = Client(
                    name=name, hubspot_company_id=company_id, source="hubspot", status="active"
                )
            client.name = name
            if props.get("industry") is not None:
                client.industry = props["industry"]
            if props.get("domain") is not None:
                client.website = props["domain"]
            touch(client)
            s.add(client)
            s.flush()

            upsert_alias(s, client.id, name, "hubspot", company_id)
            s.commit()
        return True


class ContactsSyncAdapter(_HubSpotAdapter):
    name = "HubSpot Contacts"

    def _pages(self, client, config):
        return client.contacts()

    async def map_and_upsert(self, batch: List[Item], context: SyncContext) -> BatchResult:
        with_company = sum(1 for c in batch if (c.get("properties") or {}).get("company"))
        context.log.info(
            "Contacts batch: %d total, %d with company, %d without",
            len(batch), with_company, len(batch) - with_company,
        )
        return BatchResult(synced=len(batch))
