"""
Library configuration loaded from environment variables.
"""
from functools import lru_cache
from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class IdentitySettings(BaseSettings):
    """Identity store settings from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="IDENTITY_",
        env_file=".env",
        extra="ignore",
    )

    # MongoDB
    mongo_uri: str = "mongodb://localhost:27017"
    database_name: Optional[str] = None
    server_selection_timeout_ms: int = 30000

    # Collection name overrides
    users_collection: str = "users"
    roles_collection: str = "roles"
    migration_collection: str = "_migrations"

    # Migrations
    migration_batch_size: int = 500

    # Logging
    log_level: str = "INFO"


@lru_cache
def get_settings() -> IdentitySettings:
    """Get cached settings instance."""
    return IdentitySettings()
