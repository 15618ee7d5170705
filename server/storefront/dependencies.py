"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from storefront.cache import InMemoryRenderCache, RedisRenderCache, RenderCache
from storefront.config import get_settings
from storefront.db import DbClient, InMemoryDbClient, PostgresDbClient
from storefront.storage import InMemoryStorageClient, S3StorageClient, StorageClient
from storefront.themes import ThemeService

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_render_cache: RenderCache | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so theme and catalog state persists across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.aws_access_key_id:
        _storage_client = InMemoryStorageClient(bucket=settings.storage_bucket)
    else:
        _storage_client = S3StorageClient(
            bucket=settings.storage_bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint,
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.storage_public_base_url,
        )
    return _storage_client


def get_render_cache() -> RenderCache:
    """
    Return a singleton cache for rendered storefront themes.
    """
    global _render_cache
    if _render_cache:
        return _render_cache

    settings = get_settings()
    if settings.redis_url and not settings.use_in_memory_backends:
        _render_cache = RedisRenderCache(
            url=settings.redis_url,
            key_prefix=settings.cache_key_prefix,
            ttl_seconds=settings.cache_ttl_seconds,
        )
    else:
        _render_cache = InMemoryRenderCache()
    return _render_cache


def get_theme_service() -> ThemeService:
    return ThemeService(get_db_client(), get_render_cache())
