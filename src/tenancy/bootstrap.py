"""Wiring: build the tenancy components and attach them to a FastAPI app."""

from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any

from fastapi import FastAPI

from src.tenancy.api.middlewares import setup_middlewares
from src.tenancy.api.middlewares.tenant import (
    GetTenantId,
    TenantMiddleware,
    VerifyTenantAccess,
    default_tenant_id,
)
from src.tenancy.core.config import Settings, get_settings
from src.tenancy.core.db import DatabaseClient, database_client_factory, get_engine
from src.tenancy.core.db.engine import dispose_engine
from src.tenancy.core.exceptions import setup_exception_handlers
from src.tenancy.core.logging import get_logger, setup_logging
from src.tenancy.repositories.tenant import SqlTenantDirectory, TenantDirectory
from src.tenancy.services.client_pool import TenantClientPool
from src.tenancy.services.provisioner import TenantProvisioner
from src.tenancy.services.schema_manager import SchemaManager

logger = get_logger(__name__)


@dataclass
class Tenancy:
    """Owns every tenancy component for one application."""

    settings: Settings
    schema_manager: SchemaManager
    directory: TenantDirectory
    client_pool: TenantClientPool[Any]
    provisioner: TenantProvisioner
    middleware: TenantMiddleware
    public_client: Any = None

    async def shutdown(self) -> None:
        """Disconnect pooled clients, then release shared engines.

        Client disconnect failures are logged; the remaining resources are
        still released.
        """
        try:
            await self.client_pool.disconnect_all()
        except ExceptionGroup as eg:
            for error in eg.exceptions:
                logger.warning("Tenant client disconnect failed", error=str(error))
        await self.schema_manager.dispose()
        if isinstance(self.public_client, DatabaseClient):
            await self.public_client.disconnect()
        await dispose_engine()


def build_tenancy(
    settings: Settings | None = None,
    *,
    client_factory: Callable[[str], Any] | None = None,
    directory: TenantDirectory | None = None,
    get_tenant_id: GetTenantId = default_tenant_id,
    allow_no_tenant: bool = False,
    verify_tenant_access: VerifyTenantAccess | None = None,
) -> Tenancy:
    """Build a ``Tenancy`` from settings. Nothing connects until first use.

    ``verify_tenant_access`` checks that the caller may act for the tenant
    its claims name; it runs before the tenant status is revealed.
    """
    settings = settings or get_settings()
    schema_manager = SchemaManager.from_settings(settings)
    directory = directory or SqlTenantDirectory(get_engine())
    client_pool = TenantClientPool.from_settings(
        client_factory or database_client_factory(settings), settings
    )
    provisioner = TenantProvisioner(
        schema_manager,
        directory,
        client_pool,
        verify_connectivity=settings.tenant_verify_connectivity,
        migrate_concurrency=settings.tenant_migrate_concurrency,
    )
    public_client = DatabaseClient(
        settings.database_url,
        None,
        pool_size=settings.tenant_client_pool_size,
        max_overflow=settings.tenant_client_max_overflow,
        settings=settings,
    )
    middleware = TenantMiddleware(
        directory.find_by_id_or_slug,
        client_pool,
        public_client=public_client,
        get_tenant_id=get_tenant_id,
        allow_no_tenant=allow_no_tenant,
        verify_tenant_access=verify_tenant_access,
    )
    return Tenancy(
        settings=settings,
        schema_manager=schema_manager,
        directory=directory,
        client_pool=client_pool,
        provisioner=provisioner,
        middleware=middleware,
        public_client=public_client,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Application lifespan - build tenancy on startup, tear it down on shutdown.

    An already-attached ``app.state.tenancy`` is reused (tests inject one).
    """
    settings = get_settings()
    setup_logging(settings.debug)
    tenancy: Tenancy | None = getattr(app.state, "tenancy", None)
    if tenancy is None:
        tenancy = build_tenancy(settings)
        app.state.tenancy = tenancy
    tenancy.client_pool.start()
    logger.info(f"Starting {settings.app_name}", max_clients=tenancy.client_pool.max_clients)

    yield

    logger.info("Closing tenant connections...")
    await tenancy.shutdown()
    logger.info("Shutdown complete")


def install_tenancy(app: FastAPI) -> None:
    """Add request correlation, log context and tenant error handlers to ``app``."""
    setup_middlewares(app)
    setup_exception_handlers(app)


def create_app() -> FastAPI:
    settings = get_settings()
    app = FastAPI(title=settings.app_name, lifespan=lifespan)
    install_tenancy(app)
    return app
