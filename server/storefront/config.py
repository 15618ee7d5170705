"""
Configuration and settings for the storefront backend.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings for the FastAPI service."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    api_prefix: str = Field(default="/api")
    log_level: str = Field(default="INFO")

    # Database (Postgres expected)
    database_url: Optional[str] = Field(default=None, env="DATABASE_URL")

    # S3-compatible object storage
    storage_endpoint: Optional[str] = Field(default=None, env="STORAGE_ENDPOINT")
    storage_region: Optional[str] = Field(default=None, env="STORAGE_REGION")
    storage_bucket: str = Field(default="product-images", env="STORAGE_BUCKET")
    storage_public_base_url: Optional[str] = Field(
        default=None, env="STORAGE_PUBLIC_BASE_URL"
    )
    aws_access_key_id: Optional[str] = Field(
        default=None, env="AWS_ACCESS_KEY_ID"
    )
    aws_secret_access_key: Optional[str] = Field(
        default=None, env="AWS_SECRET_ACCESS_KEY"
    )
    upload_grant_ttl_seconds: int = Field(
        default=7200, env="UPLOAD_GRANT_TTL_SECONDS"
    )

    # Development toggles
    use_in_memory_backends: bool = Field(
        default=False,
        validation_alias=AliasChoices(
            "STOREFRONT_USE_IN_MEMORY_BACKENDS", "use_in_memory_backends"
        ),
    )

    # Rendered storefront cache (Redis)
    redis_url: Optional[str] = Field(default=None, env="REDIS_URL")
    cache_key_prefix: str = Field(default="storefront:theme", env="CACHE_KEY_PREFIX")
    cache_ttl_seconds: int = Field(default=300, env="CACHE_TTL_SECONDS")

    # Theme editor
    draft_debounce_seconds: float = Field(default=1.0, env="DRAFT_DEBOUNCE_SECONDS")
    preview_allowed_origins: list[str] = Field(
        default=["http://localhost:3000"], env="PREVIEW_ALLOWED_ORIGINS"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
