"""Database utilities - engines, sessions, schema-scoped clients."""

from src.tenancy.core.db.client import DatabaseClient, database_client_factory
from src.tenancy.core.db.engine import (
    create_admin_engine,
    create_client_engine,
    dispose_engine,
    get_engine,
)
from src.tenancy.core.db.session import get_session

__all__ = [
    # Engine
    "create_admin_engine",
    "create_client_engine",
    "dispose_engine",
    "get_engine",
    # Session
    "get_session",
    # Tenant clients
    "DatabaseClient",
    "database_client_factory",
]
