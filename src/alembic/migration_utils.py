from alembic import context


def is_tenant_migration() -> bool:
    """True when DATABASE_URL carries a ``schema`` query parameter.

    env.py stores that schema in ``config.attributes``. Public-schema
    migrations must no-op in that mode and tenant migrations must no-op
    otherwise.
    """
    return bool(context.config.attributes.get("tenant_schema"))
