"""Tenant services - schema lifecycle, client pool, provisioning."""

from src.tenancy.services.client_pool import CachedClient, PoolStats, TenantClient, TenantClientPool
from src.tenancy.services.provisioner import (
    TenantAuditReport,
    TenantProvisioner,
    TenantProvisionInput,
    TenantProvisionResult,
)
from src.tenancy.services.schema_manager import (
    SchemaCreateResult,
    SchemaManager,
    SchemaMigrateResult,
)

__all__ = [
    "CachedClient",
    "PoolStats",
    "SchemaCreateResult",
    "SchemaManager",
    "SchemaMigrateResult",
    "TenantAuditReport",
    "TenantClient",
    "TenantClientPool",
    "TenantProvisionInput",
    "TenantProvisionResult",
    "TenantProvisioner",
]
