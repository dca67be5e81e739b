"""Sessions pinned to one schema through ``search_path``."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine, AsyncSession, async_sessionmaker

from src.tenancy.core.db.engine import get_engine
from src.tenancy.core.security.validators import validate_schema_name

PUBLIC_SCHEMA = "public"


async def set_search_path(connection: AsyncConnection, schema_name: str) -> None:
    """Point ``connection`` at ``schema_name`` only, and commit the change.

    The name is validated, then quoted server-side with ``quote_ident``
    because identifiers cannot be bound as parameters.
    """
    if schema_name != PUBLIC_SCHEMA:
        validate_schema_name(schema_name)
    quoted = await connection.scalar(
        text("SELECT quote_ident(:schema)").bindparams(schema=schema_name)
    )
    await connection.execute(text(f"SET search_path TO {quoted}"))
    await connection.commit()


@asynccontextmanager
async def get_session(
    tenant_schema: str | None = None,
    engine: AsyncEngine | None = None,
) -> AsyncGenerator[AsyncSession]:
    """Open a session on its own connection, scoped to ``tenant_schema``.

    Without a schema the session sees ``public`` only. With one, ``public``
    is not on the path either, so directory tables must be qualified
    (``public.tenants``). The path is reset to ``public`` before the
    connection returns to the engine's pool.

    Args:
        tenant_schema: Tenant schema to scope to, or None for ``public``.
        engine: Engine to connect with; defaults to the global engine.
    """
    engine = engine or get_engine()

    async with engine.connect() as connection:
        await set_search_path(connection, tenant_schema or PUBLIC_SCHEMA)
        factory = async_sessionmaker(
            bind=connection, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )
        try:
            async with factory() as session:
                yield session
        finally:
            if tenant_schema is not None and not connection.closed:
                await set_search_path(connection, PUBLIC_SCHEMA)
