"""Application configuration."""

from functools import lru_cache
from typing import List, Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime settings loaded from ``MESSAGING_*`` environment variables."""

    app_name: str = "OnlyIf Messaging API"
    storage_backend: Literal["memory", "mongo"] = "memory"
    mongo_url: str = "mongodb://localhost:27017"
    mongo_db_name: str = "onlyif"
    mongo_timeout_ms: int = 5000
    # seed sample threads and enable the seller inbox fallback
    demo_mode: bool = False
    # accept request-supplied roles for users the registry does not know
    trust_declared_roles: bool = False
    log_level: str = "INFO"
    cors_origins: List[str] = ["http://localhost:3000", "http://127.0.0.1:3000"]

    model_config = SettingsConfigDict(
        env_prefix="MESSAGING_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    """Return a cached settings instance."""

    return Settings()
