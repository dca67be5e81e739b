"""Integration tests for the tenant provisioning lifecycle."""

from uuid import uuid4

import pytest
from sqlalchemy import text

from src.tenancy.core.errors import TenantAlreadyExistsError, TenantNotFoundError
from src.tenancy.models import TenantStatus
from src.tenancy.services.provisioner import TenantProvisionInput

pytestmark = pytest.mark.integration


class TestProvisioningLifecycle:
    async def test_provision_then_deprovision(
        self, provisioner, sql_directory, schema_manager, db_client_pool, unique_slug
    ):
        result = await provisioner.provision(
            TenantProvisionInput(slug=unique_slug, name="Integration Tenant")
        )
        tenant = result.tenant
        try:
            assert tenant.status_enum is TenantStatus.ACTIVE
            assert result.schema_created is True
            assert result.migrations_applied >= 1
            assert await schema_manager.schema_exists(tenant.schema_name)
            assert db_client_pool.has_client(tenant.schema_name)

            client = await db_client_pool.get_client(tenant.schema_name)
            async with client.session() as session:
                # Tenant tables resolve through search_path
                count = await session.scalar(text("SELECT count(*) FROM settings"))
            assert count == 0
        finally:
            await provisioner.deprovision(tenant.id)

        assert await sql_directory.find_by_id_or_slug(unique_slug) is None
        assert not await schema_manager.schema_exists(tenant.schema_name)

    async def test_duplicate_slug_is_rejected(self, provisioner, unique_slug):
        result = await provisioner.provision(TenantProvisionInput(slug=unique_slug, name="First"))
        try:
            with pytest.raises(TenantAlreadyExistsError):
                await provisioner.provision(TenantProvisionInput(slug=unique_slug, name="Second"))
        finally:
            await provisioner.deprovision(result.tenant.id)

    async def test_deprovision_unknown_tenant(self, provisioner, unique_slug):
        with pytest.raises(TenantNotFoundError):
            await provisioner.deprovision(unique_slug)


class TestSqlTenantDirectory:
    async def test_create_update_delete(self, sql_directory, unique_slug):
        tenant = await sql_directory.create(
            slug=unique_slug,
            name="Directory Tenant",
            schema_name=f"tenant_{unique_slug.replace('-', '_')}",
            properties={"plan": "pro"},
        )
        try:
            by_id = await sql_directory.find_by_id_or_slug(str(tenant.id))
            assert by_id is not None
            assert by_id.slug == unique_slug
            assert by_id.properties == {"plan": "pro"}

            updated = await sql_directory.update(tenant.id, status=TenantStatus.ACTIVE, name="Renamed")
            assert updated.status_enum is TenantStatus.ACTIVE
            assert updated.name == "Renamed"
            assert updated.updated_at >= tenant.updated_at

            active = await sql_directory.find_many(TenantStatus.ACTIVE)
            assert tenant.id in {t.id for t in active}

            with pytest.raises(TenantAlreadyExistsError):
                await sql_directory.create(
                    slug=unique_slug, name="Duplicate", schema_name=f"{tenant.schema_name}_x"
                )
        finally:
            await sql_directory.delete(tenant.id)

        assert await sql_directory.find_by_id_or_slug(unique_slug) is None

    async def test_update_missing_tenant(self, sql_directory):
        with pytest.raises(TenantNotFoundError):
            await sql_directory.update(uuid4(), status=TenantStatus.ACTIVE)
