"""Repository exports."""

from src.tenancy.repositories.base import BaseRepository
from src.tenancy.repositories.tenant import SqlTenantDirectory, TenantDirectory, TenantRepository

__all__ = [
    "BaseRepository",
    "SqlTenantDirectory",
    "TenantDirectory",
    "TenantRepository",
]
