"""
Slack sync adapters.

  messages → CommunicationLog for messages in the configured channels from
             the last 30 days that mention a known client name or alias
  users    → TeamMember, matched by slack_user_id, then email

Messages with no text or no client mention are skipped.
"""
import time
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, List, Optional

from sqlmodel import Session, select

from agencysync.integrations.base import (
    ProviderSyncAdapter,
    client_name_index,
    match_client_id,
    touch,
)
from agencysync.integrations.config_store import IntegrationNotConfiguredError
from agencysync.integrations.slack import SlackClient
from agencysync.models.entities import TeamMember
from agencysync.models.records import CommunicationLog
from agencysync.sync.types import BatchResult, SyncContext

Item = Dict[str, Any]

HISTORY_DAYS = 30
SUBJECT_LENGTH = 200
SUMMARY_LENGTH = 500


class _SlackAdapter(ProviderSyncAdapter[Item]):
    provider = "slack"

    def _config(self) -> Dict[str, Any]:
        config = self.store.load("slack")
        if not config.get("bot_token"):
            raise IntegrationNotConfiguredError("Slack bot token is not configured")
        return config


class MessageSyncAdapter(_SlackAdapter):
    name = "Slack Messages"

    async def fetch_all(self, context: SyncContext) -> AsyncIterator[List[Item]]:
        config = self._config()
        channel_ids = config.get("channel_ids") or []
        if not channel_ids:
            context.log.info("No channels configured for Slack sync")
            return

        oldest = str(int(time.time() - HISTORY_DAYS * 24 * 3600))
        context.log.info("Fetching messages from %d channel(s)", len(channel_ids))

        async with self._http_client() as http:
            client = SlackClient(config["bot_token"], http=http)
            for channel_id in channel_ids:
                async for page in client.channel_history(channel_id, oldest):
                    yield page

    async def map_and_upsert(self, batch: List[Item], context: SyncContext) -> BatchResult:
        with Session(self.engine) as s:
            index = client_name_index(s)
        return self._map_each(
            batch, context, lambda m: self._upsert(m, index), lambda m: f"Message {m.get('ts')}"
        )

    def _upsert(self, message: Item, index) -> bool:
        text = (message.get("text") or "").strip()
        if not text:
            return False

        client_id = match_client_id(index, text)
        if client_id is None:
            return False

        external_id = f"slack-{message.get('channel')}-{message['ts']}"
        sent_at = datetime.fromtimestamp(float(message["ts"]), tz=timezone.utc).replace(tzinfo=None)

        with Session(self.engine) as s:
            log = s.exec(
                select(CommunicationLog).where(CommunicationLog.external_id == external_id)
            ).first()
            if log is None:
                log = CommunicationLog(
                    client_id=client_id,
                    type="slack",
                    date=sent_at,
                    source="slack",
                    external_id=external_id,
                )
            log.subject = text[:SUBJECT_LENGTH]
            log.summary = text[:SUMMARY_LENGTH]
            s.add(log)
            s.commit()
        return True


class UserSyncAdapter(_SlackAdapter):
    name = "Slack Users"

    async def fetch_all(self, context: SyncContext) -> AsyncIterator[List[Item]]:
        config = self._config()
        context.log.info("Fetching users from Slack")
        async with self._http_client() as http:
            client = SlackClient(config["bot_token"], http=http)
            async for page in client.users():
                yield page

    async def map_and_upsert(self, batch: List[Item], context: SyncContext) -> BatchResult:
        return self._map_each(batch, context, self._upsert, lambda u: f"User {u.get('id')}")

    def _upsert(self, user: Item) -> bool:
        profile = user.get("profile") or {}
        name = user.get("real_name") or profile.get("real_name") or user.get("name")
        if not name:
            raise ValueError("missing name")
        email: Optional[str] = profile.get("email") or None

        with Session(self.engine) as s:
            member = s.exec(select(TeamMember).where(TeamMember.slack_user_id == user["id"])).first()
            if member is None and email:
                member = s.exec(select(TeamMember).where(TeamMember.email == email)).first()

            if member is None:
                member = TeamMember(name=name, email=email, slack_user_id=user["id"], source="slack")
            else:
                member.slack_user_id = user["id"]
                member.name = member.name or name
                member.email = member.email or email
                touch(member)
            s.add(member)
            s.commit()
        return True
