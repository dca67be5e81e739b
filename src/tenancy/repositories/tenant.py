"""Tenant directory store.

``TenantRepository`` works inside a caller-owned session.
``SqlTenantDirectory`` is the ``TenantDirectory`` used by the provisioner and
the middleware: each call opens its own public-schema session and commits.
"""

from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncEngine
from sqlmodel import select

from src.tenancy.core.db.session import get_session
from src.tenancy.core.errors import TenantAlreadyExistsError, TenantNotFoundError
from src.tenancy.models import Tenant, TenantStatus, utc_now
from src.tenancy.repositories.base import BaseRepository


class TenantDirectory(Protocol):
    """Persistence contract for tenant rows."""

    async def find_by_id_or_slug(self, id_or_slug: str) -> Tenant | None: ...

    async def find_many(self, status: TenantStatus | None = None) -> list[Tenant]: ...

    async def create(
        self,
        *,
        slug: str,
        name: str,
        schema_name: str,
        status: TenantStatus = TenantStatus.PENDING,
        properties: dict[str, Any] | None = None,
    ) -> Tenant: ...

    async def update(
        self,
        tenant_id: UUID,
        *,
        status: TenantStatus | None = None,
        name: str | None = None,
    ) -> Tenant: ...

    async def delete(self, tenant_id: UUID) -> None: ...


def _parse_uuid(value: str) -> UUID | None:
    try:
        return UUID(value)
    except ValueError:
        return None


class TenantRepository(BaseRepository[Tenant]):
    """Repository for Tenant entity in public schema."""

    model = Tenant

    async def get_by_slug(self, slug: str) -> Tenant | None:
        """Get tenant by slug."""
        result = await self.session.execute(select(Tenant).where(Tenant.slug == slug))
        return result.scalar_one_or_none()

    async def get_by_id_or_slug(self, id_or_slug: str) -> Tenant | None:
        """Get tenant by id when the value parses as a UUID, else by slug."""
        tenant_id = _parse_uuid(id_or_slug)
        if tenant_id is None:
            return await self.get_by_slug(id_or_slug)
        result = await self.session.execute(
            select(Tenant).where(or_(Tenant.id == tenant_id, Tenant.slug == id_or_slug))
        )
        return result.scalars().first()

    async def list_all(self, status: TenantStatus | None = None) -> list[Tenant]:
        """List tenants, optionally filtered by status, oldest first."""
        query = select(Tenant)
        if status is not None:
            query = query.where(Tenant.status == status.value)
        query = query.order_by(Tenant.created_at)  # type: ignore[arg-type]
        result = await self.session.execute(query)
        return list(result.scalars().all())


class SqlTenantDirectory:
    """``TenantDirectory`` backed by the ``public.tenants`` table."""

    def __init__(self, engine: AsyncEngine | None = None):
        self._engine = engine

    async def find_by_id_or_slug(self, id_or_slug: str) -> Tenant | None:
        async with get_session(engine=self._engine) as session:
            return await TenantRepository(session).get_by_id_or_slug(id_or_slug)

    async def find_many(self, status: TenantStatus | None = None) -> list[Tenant]:
        async with get_session(engine=self._engine) as session:
            return await TenantRepository(session).list_all(status)

    async def create(
        self,
        *,
        slug: str,
        name: str,
        schema_name: str,
        status: TenantStatus = TenantStatus.PENDING,
        properties: dict[str, Any] | None = None,
    ) -> Tenant:
        tenant = Tenant(
            slug=slug,
            name=name,
            schema_name=schema_name,
            status=status.value,
            properties=properties or {},
        )
        async with get_session(engine=self._engine) as session:
            TenantRepository(session).add(tenant)
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                raise TenantAlreadyExistsError(slug) from None
            await session.refresh(tenant)
        return tenant

    async def update(
        self,
        tenant_id: UUID,
        *,
        status: TenantStatus | None = None,
        name: str | None = None,
    ) -> Tenant:
        async with get_session(engine=self._engine) as session:
            tenant = await TenantRepository(session).get_by_id(tenant_id)
            if tenant is None:
                raise TenantNotFoundError(str(tenant_id))
            if status is not None:
                tenant.status = status.value
            if name is not None:
                tenant.name = name
            tenant.updated_at = utc_now()
            await session.commit()
            await session.refresh(tenant)
        return tenant

    async def delete(self, tenant_id: UUID) -> None:
        async with get_session(engine=self._engine) as session:
            repo = TenantRepository(session)
            tenant = await repo.get_by_id(tenant_id)
            if tenant is None:
                return
            await repo.remove(tenant)
            await session.commit()
