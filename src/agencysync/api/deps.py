"""FastAPI dependencies. Tests swap these out via app.dependency_overrides."""
from fastapi import Depends

from agencysync.db.engine import get_engine
from agencysync.integrations.config_store import ConfigStore
from agencysync.matching.resolver import EntityResolver
from agencysync.sync.engine import SyncEngine, get_sync_engine


def get_db_engine():
    return get_engine()


def get_runner() -> SyncEngine:
    return get_sync_engine()


def get_config_store(engine=Depends(get_db_engine)) -> ConfigStore:
    return ConfigStore(engine)


def get_resolver(engine=Depends(get_db_engine)) -> EntityResolver:
    return EntityResolver(engine)
