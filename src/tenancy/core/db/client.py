"""Schema-scoped database client used by the tenant client pool."""

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from src.tenancy.core.config import Settings, get_settings
from src.tenancy.core.db.engine import create_client_engine
from src.tenancy.core.db.session import get_session
from src.tenancy.core.security.validators import validate_schema_name


class DatabaseClient:
    """An engine plus the schema every session it hands out is scoped to.

    ``schema_name=None`` gives a public-schema client (used for the shared
    directory connection in request contexts).
    """

    def __init__(
        self,
        database_url: str,
        schema_name: str | None,
        *,
        pool_size: int = 2,
        max_overflow: int = 3,
        settings: Settings | None = None,
    ):
        if schema_name is not None:
            validate_schema_name(schema_name)
        self.schema_name = schema_name
        self._database_url = database_url
        self._pool_size = pool_size
        self._max_overflow = max_overflow
        self._settings = settings
        self._engine: AsyncEngine | None = None

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_client_engine(
                self._database_url,
                pool_size=self._pool_size,
                max_overflow=self._max_overflow,
                settings=self._settings,
            )
        return self._engine

    @property
    def connected(self) -> bool:
        return self._engine is not None

    async def connect(self) -> None:
        """Open the engine and check a connection can be made."""
        async with self.engine.connect() as connection:
            await connection.execute(text("SELECT 1"))

    async def disconnect(self) -> None:
        if self._engine is not None:
            engine, self._engine = self._engine, None
            await engine.dispose()

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession]:
        """Yield a session with search_path set to this client's schema."""
        async with get_session(tenant_schema=self.schema_name, engine=self.engine) as session:
            yield session

    def __repr__(self) -> str:
        return f"DatabaseClient(schema_name={self.schema_name!r}, connected={self.connected})"


def database_client_factory(settings: Settings | None = None) -> Callable[[str], DatabaseClient]:
    """Build the default ``create_client`` callable for ``TenantClientPool``."""
    settings = settings or get_settings()

    def create_client(schema_name: str) -> DatabaseClient:
        return DatabaseClient(
            settings.database_url,
            schema_name,
            pool_size=settings.tenant_client_pool_size,
            max_overflow=settings.tenant_client_max_overflow,
            settings=settings,
        )

    return create_client
