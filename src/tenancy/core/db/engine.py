"""Database engine management."""

import ssl
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from src.tenancy.core.config import Settings, get_settings

_engine: AsyncEngine | None = None


def _get_connect_args(settings: Settings | None = None) -> dict[str, Any]:
    """Get connection arguments including SSL configuration."""
    settings = settings or get_settings()
    connect_args: dict[str, Any] = {
        "statement_cache_size": settings.database_statement_cache_size,
    }

    ssl_mode = settings.database_ssl_mode
    if ssl_mode != "disable":
        ssl_context = ssl.create_default_context()
        if ssl_mode == "prefer" or ssl_mode == "require":
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE
        elif ssl_mode in ("verify-ca", "verify-full"):
            ssl_context.check_hostname = ssl_mode == "verify-full"
            ssl_context.verify_mode = ssl.CERT_REQUIRED
        connect_args["ssl"] = ssl_context

    return connect_args


def get_engine() -> AsyncEngine:
    """Get or create the public-schema engine singleton."""
    global _engine
    if _engine is None:
        settings = get_settings()
        _engine = create_async_engine(
            settings.database_url,
            pool_size=settings.database_pool_size,
            max_overflow=settings.database_max_overflow,
            pool_pre_ping=True,
            connect_args=_get_connect_args(settings),
        )
    return _engine


async def dispose_engine() -> None:
    """Dispose the database engine. Call during shutdown."""
    global _engine
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def create_admin_engine(database_url: str, settings: Settings | None = None) -> AsyncEngine:
    """Create an unpooled engine for schema DDL.

    DDL is infrequent, so connections are opened per operation instead of
    holding idle ones in a pool.
    """
    return create_async_engine(
        database_url,
        poolclass=NullPool,
        connect_args=_get_connect_args(settings),
    )


def create_client_engine(
    database_url: str,
    *,
    pool_size: int,
    max_overflow: int,
    settings: Settings | None = None,
) -> AsyncEngine:
    """Create the small pooled engine owned by one tenant client."""
    return create_async_engine(
        database_url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        pool_pre_ping=True,
        connect_args=_get_connect_args(settings),
    )
