"""SchemaManager against a real PostgreSQL database."""

import pytest

from src.tenancy.core.errors import SchemaNotFoundError

pytestmark = pytest.mark.integration


class TestSchemaLifecycle:
    async def test_create_list_delete(self, schema_manager, unique_slug):
        schema_name = schema_manager.schema_name_for(unique_slug)

        result = await schema_manager.create_schema(unique_slug)
        try:
            assert result.created is True
            assert await schema_manager.schema_exists(schema_name)
            assert schema_name in await schema_manager.list_schemas()

            again = await schema_manager.create_schema(unique_slug)
            assert again.created is False
        finally:
            await schema_manager.delete_schema(schema_name)

        assert not await schema_manager.schema_exists(schema_name)
        assert schema_name not in await schema_manager.list_schemas()

    async def test_delete_missing_schema(self, schema_manager, unique_slug):
        with pytest.raises(SchemaNotFoundError):
            await schema_manager.delete_schema(schema_manager.schema_name_for(unique_slug))

    async def test_public_schema_is_never_listed(self, schema_manager):
        assert "public" not in await schema_manager.list_schemas()


class TestSchemaMigrations:
    async def test_migrate_twice_applies_nothing_the_second_time(
        self, schema_manager, unique_slug
    ):
        schema_name = (await schema_manager.create_schema(unique_slug)).schema_name
        try:
            first = await schema_manager.migrate_schema(schema_name)
            second = await schema_manager.migrate_schema(schema_name)

            assert first.success
            assert first.migrations_applied >= 1
            assert second.success
            assert second.migrations_applied == 0
        finally:
            await schema_manager.delete_schema(schema_name)
