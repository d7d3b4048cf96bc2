from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./agencysync.db"
    encryption_key: str = ""  # Fernet key; see integrations.config_store
    xero_client_id: str = ""
    xero_client_secret: str = ""
    google_client_id: str = ""
    google_client_secret: str = ""
    sync_hour: int = 2
    progress_ttl_seconds: float = 300.0
    match_threshold: float = 0.8
    http_timeout_seconds: float = 30.0

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
