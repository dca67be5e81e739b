import os
from logging.config import fileConfig

from sqlalchemy import create_engine, pool, text
from sqlalchemy.engine import URL, make_url
from sqlmodel import SQLModel

from alembic import context
from src.tenancy.core.config import get_settings
from src.tenancy.core.security import validate_schema_name

# Import all models for metadata
from src.tenancy.models import Tenant  # noqa: F401

config = context.config

if config.config_file_name is not None and os.path.exists(config.config_file_name):
    fileConfig(config.config_file_name)

target_metadata = SQLModel.metadata

# Attribute read by migration_utils.is_tenant_migration()
TENANT_SCHEMA_ATTRIBUTE = "tenant_schema"

_applied_steps = 0


def _parse_url() -> tuple[URL, str | None]:
    """Split DATABASE_URL into a sync URL and the optional ``schema`` query parameter."""
    url = make_url(get_settings().database_url)
    schema = url.query.get("schema")
    if isinstance(schema, tuple):
        schema = schema[-1]
    url = url.difference_update_query(["schema"])
    # Alembic runs synchronously (asyncpg -> psycopg2)
    url = url.set(drivername=url.drivername.replace("+asyncpg", ""))
    return url, schema or None


def _count_step(ctx, step, heads, run_args) -> None:  # type: ignore[no-untyped-def]
    global _applied_steps
    _applied_steps += 1


def include_object(obj, name, type_, reflected, compare_to):  # type: ignore[no-untyped-def]
    """
    Prevent cross-schema contamination.

    - Public migrations (no schema in DATABASE_URL): only public schema tables.
    - Tenant migrations: only tenant tables, and only the active tenant schema
      on the reflected side.
    """
    tenant_schema = config.attributes.get(TENANT_SCHEMA_ATTRIBUTE)

    if type_ != "table":
        return True

    object_schema = getattr(obj, "schema", None)

    if not tenant_schema:
        return object_schema == "public"

    if reflected:
        return object_schema == tenant_schema

    return object_schema != "public"


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode."""
    url, schema = _parse_url()
    config.attributes[TENANT_SCHEMA_ATTRIBUTE] = schema
    context.configure(
        url=url.render_as_string(hide_password=False),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        version_table_schema=schema or "public",
    )

    with context.begin_transaction():
        context.run_migrations()


def do_run_migrations(connection, schema: str | None = None) -> None:  # type: ignore[no-untyped-def]
    """Run migrations for the public schema or a single tenant schema."""
    if schema:
        validate_schema_name(schema)

        quoted_schema = connection.execute(
            text("SELECT quote_ident(:schema)").bindparams(schema=schema)
        ).scalar()

        connection.execute(text(f"CREATE SCHEMA IF NOT EXISTS {quoted_schema}"))
        connection.execute(text(f"SET search_path TO {quoted_schema}"))
        connection.commit()
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            version_table_schema=schema,
            include_schemas=True,
            compare_type=True,
            include_object=include_object,
            on_version_apply=_count_step,
        )
    else:
        # Explicit search_path so public tables never land in another schema
        connection.execute(text("SET search_path TO public"))
        connection.commit()
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            version_table_schema="public",
            compare_type=True,
            include_object=include_object,
            on_version_apply=_count_step,
        )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode with sync engine."""
    url, schema = _parse_url()
    config.attributes[TENANT_SCHEMA_ATTRIBUTE] = schema

    connectable = create_engine(url, poolclass=pool.NullPool)

    with connectable.connect() as connection:
        do_run_migrations(connection, schema)

    connectable.dispose()

    # Parsed by SchemaManager.migrate_schema
    print(f"{_applied_steps} migrations applied")


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
