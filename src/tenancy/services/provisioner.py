"""Tenant provisioning: directory row, schema, migrations, connectivity."""

import asyncio
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from src.tenancy.core.errors import (
    DeprovisionError,
    ProvisionError,
    SchemaNotFoundError,
    TenantAlreadyExistsError,
    TenantError,
    TenantNotFoundError,
    TenantStateError,
)
from src.tenancy.core.logging import get_logger
from src.tenancy.core.security import sanitize_error, validate_slug
from src.tenancy.models import Tenant, TenantStatus
from src.tenancy.repositories.tenant import TenantDirectory
from src.tenancy.services.client_pool import TenantClientPool
from src.tenancy.services.schema_manager import SchemaManager, SchemaMigrateResult

logger = get_logger(__name__)


def _failure_detail(error: Exception) -> str:
    if isinstance(error, TenantError):
        return error.detail or error.message
    return sanitize_error(error)


def _failure_cause(error: Exception) -> Exception | None:
    # Only chain errors whose messages are already sanitized
    return error if isinstance(error, TenantError) else None


@dataclass(frozen=True)
class TenantProvisionInput:
    slug: str
    name: str
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class TenantProvisionResult:
    tenant: Tenant
    schema_created: bool
    migrations_applied: int


@dataclass(frozen=True)
class TenantAuditReport:
    """Drift between tenant schemas and directory rows.

    orphaned_schemas: prefixed schemas with no directory row.
    orphaned_tenants: directory rows whose schema does not exist.
    """

    orphaned_schemas: list[str]
    orphaned_tenants: list[Tenant]

    @property
    def clean(self) -> bool:
        return not self.orphaned_schemas and not self.orphaned_tenants


class TenantProvisioner:
    """Orchestrates the tenant lifecycle across directory, schema and pool.

    Provisioning is not transactional: a failure after the directory row is
    written leaves the row in ``pending`` or ``migrating`` and raises
    ``ProvisionError`` carrying the tenant id. ``resume`` re-drives such a
    tenant; nothing is rolled back or retried automatically.
    """

    def __init__(
        self,
        schema_manager: SchemaManager,
        directory: TenantDirectory,
        client_pool: TenantClientPool[Any],
        *,
        verify_connectivity: bool = True,
        migrate_concurrency: int = 1,
    ):
        if migrate_concurrency < 1:
            raise ValueError("migrate_concurrency must be at least 1")
        self.schema_manager = schema_manager
        self.directory = directory
        self.client_pool = client_pool
        self.verify_connectivity = verify_connectivity
        self.migrate_concurrency = migrate_concurrency

    async def _get_tenant(self, tenant_id: str | UUID) -> Tenant:
        tenant = await self.directory.find_by_id_or_slug(str(tenant_id))
        if tenant is None:
            raise TenantNotFoundError(str(tenant_id))
        return tenant

    async def _set_status(self, tenant: Tenant, status: TenantStatus) -> Tenant:
        return await self.directory.update(tenant.id, status=status)

    async def _check_connectivity(self, schema_name: str) -> None:
        if not self.verify_connectivity:
            return
        await self.client_pool.get_client(schema_name)
        self.client_pool.release_client(schema_name)

    async def provision(self, input: TenantProvisionInput) -> TenantProvisionResult:
        """Create a tenant end to end.

        Steps:
        1. Insert the directory row as ``pending``
        2. Create the schema
        3. Mark ``migrating`` and run migrations
        4. Optionally open a client to check connectivity
        5. Mark ``active``

        Raises:
            InvalidSlugError: If the slug is invalid.
            ProvisionError: If the name is blank, or any step after 1 fails.
            TenantAlreadyExistsError: If the slug is already taken.
        """
        validate_slug(input.slug, self.schema_manager.schema_prefix)
        if not input.name or not input.name.strip():
            raise ProvisionError(input.slug, "tenant name cannot be empty")

        if await self.directory.find_by_id_or_slug(input.slug) is not None:
            raise TenantAlreadyExistsError(input.slug)

        schema_name = self.schema_manager.schema_name_for(input.slug)
        tenant = await self.directory.create(
            slug=input.slug,
            name=input.name.strip(),
            schema_name=schema_name,
            status=TenantStatus.PENDING,
            properties=dict(input.metadata),
        )
        logger.info("Provisioning tenant", tenant_id=str(tenant.id), schema_name=schema_name)

        try:
            created = await self.schema_manager.create_schema(input.slug)
            tenant = await self._set_status(tenant, TenantStatus.MIGRATING)
            migrated = await self.schema_manager.migrate_schema(schema_name)
            await self._check_connectivity(schema_name)
            tenant = await self._set_status(tenant, TenantStatus.ACTIVE)
        except Exception as e:
            detail = _failure_detail(e)
            logger.error(
                "Tenant provisioning failed",
                tenant_id=str(tenant.id),
                schema_name=schema_name,
                error=detail,
            )
            raise ProvisionError(input.slug, detail, tenant_id=str(tenant.id)) from _failure_cause(e)

        logger.info("Tenant provisioned", tenant_id=str(tenant.id), schema_name=schema_name)
        return TenantProvisionResult(
            tenant=tenant,
            schema_created=created.created,
            migrations_applied=migrated.migrations_applied,
        )

    async def resume(self, tenant_id: str | UUID) -> TenantProvisionResult:
        """Re-drive a tenant left ``pending`` or ``migrating`` by a failed provision."""
        tenant = await self._get_tenant(tenant_id)
        status = tenant.status_enum
        if status not in (TenantStatus.PENDING, TenantStatus.MIGRATING):
            raise TenantStateError(str(tenant.id), status.value, TenantStatus.ACTIVE.value)

        try:
            created = await self.schema_manager.create_schema(tenant.slug)
            tenant = await self._set_status(tenant, TenantStatus.MIGRATING)
            migrated = await self.schema_manager.migrate_schema(tenant.schema_name)
            await self._check_connectivity(tenant.schema_name)
            tenant = await self._set_status(tenant, TenantStatus.ACTIVE)
        except Exception as e:
            raise ProvisionError(
                tenant.slug, _failure_detail(e), tenant_id=str(tenant.id)
            ) from _failure_cause(e)

        logger.info("Tenant provisioning resumed", tenant_id=str(tenant.id))
        return TenantProvisionResult(
            tenant=tenant,
            schema_created=created.created,
            migrations_applied=migrated.migrations_applied,
        )

    async def deprovision(self, tenant_id: str | UUID) -> None:
        """Suspend the tenant, drop its schema, then delete its row.

        The row is only deleted once the schema is gone, so a failed drop
        leaves a ``suspended`` row to retry against.

        Raises:
            TenantNotFoundError: If no tenant matches ``tenant_id``.
            DeprovisionError: If the schema could not be dropped.
        """
        tenant = await self._get_tenant(tenant_id)
        if tenant.status_enum != TenantStatus.SUSPENDED:
            tenant = await self._set_status(tenant, TenantStatus.SUSPENDED)

        try:
            await self.schema_manager.delete_schema(tenant.schema_name)
        except SchemaNotFoundError:
            logger.warning(
                "Schema already gone during deprovision",
                tenant_id=str(tenant.id),
                schema_name=tenant.schema_name,
            )
        except TenantError as e:
            raise DeprovisionError(str(tenant.id), e.detail or e.message) from e

        await self.directory.delete(tenant.id)
        logger.info("Tenant deprovisioned", tenant_id=str(tenant.id), schema_name=tenant.schema_name)

    async def _transition(
        self, tenant_id: str | UUID, target: TenantStatus, allowed_from: TenantStatus
    ) -> Tenant:
        tenant = await self._get_tenant(tenant_id)
        current = tenant.status_enum
        if current == target:
            return tenant
        if current != allowed_from or not current.can_transition_to(target):
            raise TenantStateError(str(tenant.id), current.value, target.value)
        tenant = await self._set_status(tenant, target)
        logger.info(
            "Tenant status changed", tenant_id=str(tenant.id), old=current.value, new=target.value
        )
        return tenant

    async def suspend(self, tenant_id: str | UUID) -> Tenant:
        """Suspend an active tenant. Requests for it are rejected until activated."""
        return await self._transition(tenant_id, TenantStatus.SUSPENDED, TenantStatus.ACTIVE)

    async def activate(self, tenant_id: str | UUID) -> Tenant:
        """Reactivate a suspended tenant."""
        return await self._transition(tenant_id, TenantStatus.ACTIVE, TenantStatus.SUSPENDED)

    async def _migrate_one(self, tenant: Tenant, semaphore: asyncio.Semaphore) -> SchemaMigrateResult:
        async with semaphore:
            try:
                await self._set_status(tenant, TenantStatus.MIGRATING)
                result = await self.schema_manager.migrate_schema(tenant.schema_name)
                await self._set_status(tenant, TenantStatus.ACTIVE)
            except Exception as e:
                detail = _failure_detail(e)
                logger.error(
                    "Tenant migration failed",
                    tenant_id=str(tenant.id),
                    schema_name=tenant.schema_name,
                    error=detail,
                )
                return SchemaMigrateResult(schema_name=tenant.schema_name, error=detail)
            return result

    async def migrate_all(self) -> list[SchemaMigrateResult]:
        """Migrate every non-suspended tenant.

        A failing tenant is reported in its result and left ``migrating``;
        it never stops the others. Results are in directory order.
        """
        tenants = [
            tenant
            for tenant in await self.directory.find_many()
            if tenant.status_enum != TenantStatus.SUSPENDED
        ]
        semaphore = asyncio.Semaphore(self.migrate_concurrency)
        results = await asyncio.gather(*(self._migrate_one(t, semaphore) for t in tenants))

        failed = sum(1 for result in results if not result.success)
        logger.info("Tenant migrations finished", total=len(results), failed=failed)
        return list(results)

    async def audit(self) -> TenantAuditReport:
        """Report schemas without rows and rows without schemas. Repairs nothing."""
        schemas = set(await self.schema_manager.list_schemas())
        tenants = await self.directory.find_many()
        known = {tenant.schema_name for tenant in tenants}

        report = TenantAuditReport(
            orphaned_schemas=sorted(schemas - known),
            orphaned_tenants=[tenant for tenant in tenants if tenant.schema_name not in schemas],
        )
        if not report.clean:
            logger.warning(
                "Tenant drift detected",
                orphaned_schemas=report.orphaned_schemas,
                orphaned_tenants=[str(t.id) for t in report.orphaned_tenants],
            )
        return report
