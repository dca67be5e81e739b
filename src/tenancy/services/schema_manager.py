"""Schema lifecycle for tenants: create, migrate, delete, list."""

import asyncio
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Self

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine

from src.tenancy.core.config import Settings, get_settings
from src.tenancy.core.db.engine import create_admin_engine
from src.tenancy.core.errors import (
    InvalidSchemaNameError,
    SchemaCreateError,
    SchemaDeleteError,
    SchemaMigrateError,
    SchemaNotFoundError,
)
from src.tenancy.core.logging import get_logger
from src.tenancy.core.security import (
    TENANT_SCHEMA_PREFIX,
    build_schema_url,
    sanitize_error,
    sanitize_error_message,
    slug_to_schema_name,
    validate_database_url,
    validate_migrations_config_path,
    validate_schema_name,
    validate_schema_prefix,
    validate_slug,
)

logger = get_logger(__name__)

DEFAULT_MIGRATION_TIMEOUT = 120.0
_MIGRATIONS_APPLIED_PATTERN = re.compile(r"(\d+) migrations? applied", re.IGNORECASE)


@dataclass(frozen=True)
class SchemaCreateResult:
    schema_name: str
    created: bool


@dataclass(frozen=True)
class SchemaMigrateResult:
    schema_name: str
    migrations_applied: int = 0
    error: str | None = None

    @property
    def success(self) -> bool:
        return self.error is None


def parse_migrations_applied(output: str) -> int:
    """Extract the applied-migrations count from migration tool output.

    >>> parse_migrations_applied("INFO ... 3 migrations applied")
    3
    >>> parse_migrations_applied("nothing to do")
    0
    """
    match = _MIGRATIONS_APPLIED_PATTERN.search(output)
    return int(match.group(1)) if match else 0


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SchemaManager:
    """Creates, migrates and drops per-tenant PostgreSQL schemas.

    Identifiers are validated and then quoted with ``quote_ident`` before
    being interpolated into DDL; every other value is a bound parameter.
    Migrations run the migration tool as a subprocess with an argument list
    and the schema-scoped URL in its environment, never through a shell.
    """

    def __init__(
        self,
        database_url: str,
        *,
        schema_prefix: str = TENANT_SCHEMA_PREFIX,
        migrations_config: str = "alembic.ini",
        migration_executable: str = "alembic",
        migration_timeout: float = DEFAULT_MIGRATION_TIMEOUT,
        engine: AsyncEngine | None = None,
        settings: Settings | None = None,
    ):
        self.database_url = validate_database_url(database_url)
        self.schema_prefix = validate_schema_prefix(schema_prefix)
        self.migrations_config = validate_migrations_config_path(migrations_config)
        if not migration_executable:
            raise ValueError("migration_executable cannot be empty")
        self.migration_executable = migration_executable
        self.migration_timeout = migration_timeout
        self._engine = engine
        self._owns_engine = engine is None
        self._settings = settings

    @classmethod
    def from_settings(cls, settings: Settings | None = None, engine: AsyncEngine | None = None) -> Self:
        settings = settings or get_settings()
        return cls(
            settings.database_url,
            schema_prefix=settings.tenant_schema_prefix,
            migrations_config=settings.tenant_migrations_config,
            migration_executable=settings.tenant_migration_executable,
            migration_timeout=settings.tenant_migration_timeout_seconds,
            engine=engine,
            settings=settings,
        )

    @property
    def engine(self) -> AsyncEngine:
        if self._engine is None:
            self._engine = create_admin_engine(self.database_url, self._settings)
        return self._engine

    async def dispose(self) -> None:
        """Release the manager's engine if it created one."""
        if self._engine is not None and self._owns_engine:
            await self._engine.dispose()
            self._engine = None

    def schema_name_for(self, slug: str) -> str:
        return slug_to_schema_name(slug, self.schema_prefix)

    # --- SQL seams ---

    async def _scalar(self, sql: str, **params: Any) -> Any:
        async with self.engine.connect() as connection:
            return await connection.scalar(text(sql).bindparams(**params))

    async def _fetch_all(self, sql: str, **params: Any) -> list[Any]:
        async with self.engine.connect() as connection:
            result = await connection.execute(text(sql).bindparams(**params))
            return [row[0] for row in result]

    async def _run_ddl(self, schema_name: str, statement: str) -> None:
        """Execute ``statement`` with ``{schema}`` replaced by the quoted identifier."""
        async with self.engine.begin() as connection:
            quoted = await connection.scalar(
                text("SELECT quote_ident(:schema)").bindparams(schema=schema_name)
            )
            await connection.execute(text(statement.format(schema=quoted)))

    async def _schema_exists_or_raise(self, schema_name: str) -> bool:
        result = await self._scalar(
            "SELECT EXISTS(SELECT 1 FROM information_schema.schemata "
            "WHERE schema_name = :schema)",
            schema=schema_name,
        )
        return bool(result)

    # --- Operations ---

    async def create_schema(self, slug: str) -> SchemaCreateResult:
        """Create the schema for ``slug`` if it does not exist yet.

        Raises:
            InvalidSlugError: If the slug is invalid (before any DB call).
            SchemaCreateError: On any database failure.
        """
        validate_slug(slug, self.schema_prefix)
        schema_name = self.schema_name_for(slug)

        try:
            if await self._schema_exists_or_raise(schema_name):
                logger.debug("Schema already exists", schema_name=schema_name)
                return SchemaCreateResult(schema_name=schema_name, created=False)
            await self._run_ddl(schema_name, "CREATE SCHEMA {schema}")
        except Exception as e:
            detail = sanitize_error(e)
            logger.error("Failed to create schema", schema_name=schema_name, error=detail)
            raise SchemaCreateError(schema_name, detail) from None

        logger.info("Schema created", schema_name=schema_name)
        return SchemaCreateResult(schema_name=schema_name, created=True)

    async def migrate_schema(self, schema_name: str) -> SchemaMigrateResult:
        """Bring ``schema_name`` up to the latest migration.

        Raises:
            InvalidSchemaNameError: If the name fails validation.
            SchemaMigrateError: On non-zero exit, timeout or spawn failure.
        """
        validate_schema_name(schema_name)
        schema_url = build_schema_url(self.database_url, schema_name)
        config_path = Path(self.migrations_config).resolve()

        env = os.environ.copy()
        env["DATABASE_URL"] = schema_url

        logger.info("Running migrations", schema_name=schema_name)
        try:
            proc = await asyncio.create_subprocess_exec(
                self.migration_executable,
                f"--config={config_path}",
                "upgrade",
                "head",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
                cwd=config_path.parent,
            )
        except OSError as e:
            raise SchemaMigrateError(schema_name, sanitize_error(e)) from None

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(), timeout=self.migration_timeout
            )
        except TimeoutError:
            proc.kill()
            await proc.wait()
            logger.error(
                "Migration timed out", schema_name=schema_name, timeout=self.migration_timeout
            )
            raise SchemaMigrateError(
                schema_name, f"timed out after {self.migration_timeout:g}s"
            ) from None

        output = stdout.decode(errors="replace")
        if proc.returncode != 0:
            detail = sanitize_error_message(
                stderr.decode(errors="replace").strip() or f"exit code {proc.returncode}"
            )
            logger.error(
                "Migration failed",
                schema_name=schema_name,
                returncode=proc.returncode,
                error=detail,
            )
            raise SchemaMigrateError(schema_name, detail)

        applied = parse_migrations_applied(output)
        logger.info("Migrations complete", schema_name=schema_name, migrations_applied=applied)
        return SchemaMigrateResult(schema_name=schema_name, migrations_applied=applied)

    async def delete_schema(self, schema_name: str) -> None:
        """Drop ``schema_name`` and everything in it.

        Raises:
            InvalidSchemaNameError: For invalid or reserved names, ``public`` included.
            SchemaNotFoundError: If the schema does not exist.
            SchemaDeleteError: On any database failure.
        """
        if schema_name == "public":
            raise InvalidSchemaNameError(schema_name, "refusing to drop the public schema")
        validate_schema_name(schema_name)

        try:
            exists = await self._schema_exists_or_raise(schema_name)
        except Exception as e:
            raise SchemaDeleteError(schema_name, sanitize_error(e)) from None
        if not exists:
            raise SchemaNotFoundError(schema_name)

        try:
            await self._run_ddl(schema_name, "DROP SCHEMA {schema} CASCADE")
        except Exception as e:
            detail = sanitize_error(e)
            logger.error("Failed to drop schema", schema_name=schema_name, error=detail)
            raise SchemaDeleteError(schema_name, detail) from None

        logger.info("Schema dropped", schema_name=schema_name)

    async def list_schemas(self) -> list[str]:
        """List schema names with the tenant prefix. Returns [] on failure."""
        try:
            return await self._fetch_all(
                "SELECT schema_name FROM information_schema.schemata "
                "WHERE schema_name LIKE :pattern ESCAPE '\\' ORDER BY schema_name",
                pattern=f"{_escape_like(self.schema_prefix)}%",
            )
        except Exception as e:
            logger.warning("Failed to list tenant schemas", error=sanitize_error(e))
            return []

    async def schema_exists(self, schema_name: str) -> bool:
        """Check whether ``schema_name`` exists. Returns False on failure."""
        try:
            return await self._schema_exists_or_raise(schema_name)
        except Exception as e:
            logger.warning(
                "Failed to check schema existence",
                schema_name=schema_name,
                error=sanitize_error(e),
            )
            return False
