"""Integration test fixtures for database operations.

These fixtures require external resources: a disposable PostgreSQL database
in TEST_DATABASE_URL and the ``alembic`` executable on PATH.
"""

import asyncio
import os
import shutil
from collections.abc import AsyncGenerator
from pathlib import Path
from uuid import uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.pool import NullPool

from src.tenancy.core.config import get_settings
from src.tenancy.core.db import database_client_factory
from src.tenancy.core.db.engine import dispose_engine
from src.tenancy.repositories.tenant import SqlTenantDirectory
from src.tenancy.services.client_pool import TenantClientPool
from src.tenancy.services.provisioner import TenantProvisioner
from src.tenancy.services.schema_manager import SchemaManager

PROJECT_ROOT = Path(__file__).resolve().parents[2]


@pytest.fixture(autouse=True)
def _require_database() -> None:
    if not os.environ.get("TEST_DATABASE_URL"):
        pytest.skip("TEST_DATABASE_URL is not set")
    if shutil.which("alembic") is None:
        pytest.skip("alembic executable not found")


async def run_public_migrations() -> None:
    """Apply public schema migrations (the tenant directory table)."""
    proc = await asyncio.create_subprocess_exec(
        "alembic",
        f"--config={PROJECT_ROOT / 'alembic.ini'}",
        "upgrade",
        "head",
        cwd=PROJECT_ROOT,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    _, stderr = await proc.communicate()
    assert proc.returncode == 0, stderr.decode()


@pytest.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine]:
    """Create test database engine and ensure public schema migrations are applied."""
    await dispose_engine()
    await run_public_migrations()

    test_engine = create_async_engine(get_settings().database_url, poolclass=NullPool)
    yield test_engine
    await test_engine.dispose()
    await dispose_engine()


@pytest.fixture
def unique_slug() -> str:
    # Unique per test run to avoid parallel test interference
    return f"it-{uuid4().hex[:10]}"


@pytest.fixture
async def schema_manager(engine: AsyncEngine) -> AsyncGenerator[SchemaManager]:
    settings = get_settings()
    manager = SchemaManager(
        settings.database_url,
        schema_prefix=settings.tenant_schema_prefix,
        migrations_config=str(PROJECT_ROOT / "alembic.ini"),
        engine=engine,
        settings=settings,
    )
    yield manager
    await manager.dispose()


@pytest.fixture
def sql_directory(engine: AsyncEngine) -> SqlTenantDirectory:
    return SqlTenantDirectory(engine)


@pytest.fixture
async def db_client_pool() -> AsyncGenerator[TenantClientPool]:
    pool = TenantClientPool.from_settings(database_client_factory(get_settings()))
    yield pool
    await pool.disconnect_all()


@pytest.fixture
def provisioner(
    schema_manager: SchemaManager,
    sql_directory: SqlTenantDirectory,
    db_client_pool: TenantClientPool,
) -> TenantProvisioner:
    return TenantProvisioner(schema_manager, sql_directory, db_client_pool)
