"""
Gmail sync adapter: emails from the last 30 days → CommunicationLog.

An email is attributed to a client when the sender's or recipient's domain
equals the client's website domain, or either address mentions a client
name or alias. Emails matching no client are skipped.
"""
import re
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlmodel import Session, select

from agencysync.integrations.base import ProviderSyncAdapter, client_name_index, match_client_id
from agencysync.integrations.calendar import refresh_google_token
from agencysync.integrations.calendar_sync import website_domain
from agencysync.integrations.config_store import load_oauth_config
from agencysync.integrations.gmail import GmailClient
from agencysync.models.entities import Client
from agencysync.models.records import CommunicationLog
from agencysync.sync.types import BatchResult, SyncContext

Item = Dict[str, Any]

HISTORY_DAYS = 30

_ANGLE_ADDRESS = re.compile(r"<([^>]+)>")


def extract_email(header: Optional[str]) -> str:
    """'Jo Smith <Jo@Acme.com>' → 'jo@acme.com'; '' when there is no address."""
    if not header:
        return ""
    match = _ANGLE_ADDRESS.search(header)
    if match:
        return match.group(1).strip().lower()
    header = header.strip()
    return header.lower() if "@" in header else ""


def parse_email_date(value: Optional[str]) -> Optional[datetime]:
    """RFC 2822 Date header → naive UTC datetime."""
    if not value:
        return None
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


class EmailSyncAdapter(ProviderSyncAdapter[Item]):
    name = "Gmail Emails"
    provider = "gmail"

    async def fetch_all(self, context: SyncContext) -> AsyncIterator[List[Item]]:
        async with self._http_client() as http:
            config = await load_oauth_config(
                self.store, "gmail", lambda token: refresh_google_token(http, token, "gmail")
            )
            after = int(time.time() - HISTORY_DAYS * 24 * 3600)
            context.log.info("Fetching emails from the last %d days", HISTORY_DAYS)

            client = GmailClient(config["access_token"], http=http)
            async for page in client.messages(f"after:{after}"):
                yield page

    async def map_and_upsert(self, batch: List[Item], context: SyncContext) -> BatchResult:
        with Session(self.engine) as s:
            index = client_name_index(s)
            domains = {
                website_domain(c.website): c.id
                for c in s.exec(select(Client).where(Client.website.is_not(None))).all()
                if website_domain(c.website)
            }
        return self._map_each(
            batch, context, lambda e: self._upsert(e, index, domains), lambda e: f"Email {e.get('id')}"
        )

    @staticmethod
    def _match_client(addresses: List[str], index, domains: Dict[str, int]) -> Optional[int]:
        for address in addresses:
            domain = address.split("@")[1] if "@" in address else ""
            if domain and domain in domains:
                return domains[domain]
        return match_client_id(index, *addresses)

    def _upsert(self, email: Item, index, domains: Dict[str, int]) -> bool:
        addresses = [a for a in (extract_email(email.get("from")), extract_email(email.get("to"))) if a]
        client_id = self._match_client(addresses, index, domains)
        if client_id is None:
            return False

        external_id = f"gmail-{email['id']}"
        subject = email.get("subject") or "(no subject)"
        snippet = email.get("snippet") or None

        with Session(self.engine) as s:
            log = s.exec(
                select(CommunicationLog).where(CommunicationLog.external_id == external_id)
            ).first()
            if log is None:
                log = CommunicationLog(
                    client_id=client_id,
                    type="email",
                    date=parse_email_date(email.get("date")) or datetime.utcnow(),
                    source="gmail",
                    external_id=external_id,
                )
            log.subject = subject
            log.summary = snippet
            s.add(log)
            s.commit()
        return True
