"""Shared test fixtures."""
from typing import Callable, Generator

import httpx
import pytest
from cryptography.fernet import Fernet
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

# Import all models so SQLModel.metadata knows about them
from agencysync.models.entities import Client, ClientAlias, MatchRejection, TeamMember, TeamMemberAlias  # noqa: F401
from agencysync.models.records import (  # noqa: F401
    AuditLog,
    ClientAssignment,
    CommunicationLog,
    Deliverable,
    DeliverableAssignment,
    FinancialRecord,
    MeetingAttendee,
    MeetingLog,
    TimeEntry,
)
from agencysync.models.sync import IntegrationConfig, SyncJob  # noqa: F401
from agencysync import config
from agencysync.config import Settings
from agencysync.integrations.config_store import Cipher, ConfigStore
from agencysync.sync import rate_limiter
from agencysync.sync.engine import SyncEngine
from agencysync.sync.progress import ProgressRegistry


@pytest.fixture(name="engine")
def engine_fixture():
    """In-memory SQLite engine. Tables recreated fresh for each test."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture(name="test_session")
def test_session_fixture(engine) -> Generator[Session, None, None]:
    """Provides a DB session connected to in-memory SQLite."""
    with Session(engine) as session:
        yield session


@pytest.fixture(autouse=True)
def fresh_rate_limiters():
    """Every test starts with full provider buckets."""
    rate_limiter._limiters.clear()
    yield
    rate_limiter._limiters.clear()


@pytest.fixture(name="cipher")
def cipher_fixture() -> Cipher:
    return Cipher(Fernet.generate_key().decode())


@pytest.fixture(name="store")
def store_fixture(engine, cipher) -> ConfigStore:
    return ConfigStore(engine, cipher)


@pytest.fixture(name="service_account_key", scope="session")
def service_account_key_fixture() -> str:
    """PEM private key standing in for a Google service account key."""
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        serialization.Encoding.PEM,
        serialization.PrivateFormat.PKCS8,
        serialization.NoEncryption(),
    ).decode()


@pytest.fixture(name="mock_http")
def mock_http_fixture() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Factory for an httpx.AsyncClient whose requests are answered by `handler`."""

    def build(handler):
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return build


@pytest.fixture(name="settings")
def settings_fixture(monkeypatch):
    """Settings with OAuth client credentials, installed as the process settings."""
    test_settings = Settings(
        xero_client_id="xero-id",
        xero_client_secret="xero-secret",
        google_client_id="google-id",
        google_client_secret="google-secret",
    )
    monkeypatch.setattr(config, "_settings", test_settings)
    return test_settings


@pytest.fixture(name="run_sync")
def run_sync_fixture(engine):
    """Run an adapter through a SyncEngine to completion; returns the SyncJob."""

    async def run(adapter) -> SyncJob:
        runner = SyncEngine(engine, progress=ProgressRegistry(ttl_seconds=300))
        job_id = await runner.run(adapter, "full", "test")
        await runner.wait(job_id)
        with Session(engine) as s:
            return s.get(SyncJob, job_id)

    return run
