"""Per-request tenant resolution.

Framework-agnostic: callers build a ``RequestContext`` from whatever their
transport carries and get back a ``TenantContext`` holding the tenant row and
the client scoped to its schema. The FastAPI adapter lives in
``src.tenancy.api.dependencies.tenant``.
"""

import inspect
from collections.abc import AsyncGenerator, Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any

from src.tenancy.core.errors import (
    TenantAccessDeniedError,
    TenantIdMissingError,
    TenantMigratingError,
    TenantNotFoundError,
    TenantPendingError,
    TenantSuspendedError,
)
from src.tenancy.core.logging import bind_tenant_context, clear_tenant_context, get_logger
from src.tenancy.models import Tenant, TenantStatus
from src.tenancy.services.client_pool import TenantClientPool

logger = get_logger(__name__)

TENANT_ID_CLAIM = "tenant_id"
TENANT_HEADER = "x-tenant-slug"


@dataclass(frozen=True)
class RequestContext:
    """What the middleware needs from an incoming request."""

    claims: Mapping[str, Any] = field(default_factory=dict)
    user: Any = None
    headers: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class TenantContext:
    tenant: Tenant
    db: Any
    public_db: Any = None

    @property
    def schema_name(self) -> str:
        return self.tenant.schema_name


type LoadTenant = Callable[[str], Awaitable[Tenant | None]]
type GetTenantId = Callable[[RequestContext], str | None]
type VerifyTenantAccess = Callable[[RequestContext, Tenant], bool | Awaitable[bool]]


def default_tenant_id(request: RequestContext) -> str | None:
    """Read the tenant id from the authenticated claims."""
    value = request.claims.get(TENANT_ID_CLAIM)
    return str(value) if value else None


def header_tenant_id(header: str = TENANT_HEADER) -> GetTenantId:
    """Build a ``get_tenant_id`` that reads a request header (case-insensitive)."""
    header = header.lower()

    def get_tenant_id(request: RequestContext) -> str | None:
        for name, value in request.headers.items():
            if name.lower() == header:
                return value or None
        return None

    return get_tenant_id


_STATUS_ERRORS = {
    TenantStatus.SUSPENDED: TenantSuspendedError,
    TenantStatus.PENDING: TenantPendingError,
    TenantStatus.MIGRATING: TenantMigratingError,
}


class TenantMiddleware:
    """Resolves the tenant for a request and hands out its pooled client."""

    def __init__(
        self,
        load_tenant: LoadTenant,
        client_pool: TenantClientPool[Any],
        *,
        public_client: Any = None,
        get_tenant_id: GetTenantId = default_tenant_id,
        allow_no_tenant: bool = False,
        verify_tenant_access: VerifyTenantAccess | None = None,
    ):
        self.load_tenant = load_tenant
        self.client_pool = client_pool
        self.public_client = public_client
        self.get_tenant_id = get_tenant_id
        self.allow_no_tenant = allow_no_tenant
        self.verify_tenant_access = verify_tenant_access

    async def _check_access(self, request: RequestContext, tenant: Tenant) -> None:
        if self.verify_tenant_access is None:
            return
        allowed = self.verify_tenant_access(request, tenant)
        if inspect.isawaitable(allowed):
            allowed = await allowed
        if not allowed:
            raise TenantAccessDeniedError(str(tenant.id))

    async def resolve(self, request: RequestContext) -> TenantContext | None:
        """Resolve the tenant for ``request``.

        Returns None only when no tenant id is present and
        ``allow_no_tenant`` is set.

        Raises:
            TenantIdMissingError: No tenant id and ``allow_no_tenant`` is False.
            TenantNotFoundError: ``load_tenant`` returned None.
            TenantAccessDeniedError: ``verify_tenant_access`` returned falsy.
            TenantSuspendedError, TenantPendingError, TenantMigratingError:
                The tenant is not active.
            ClientCreateError: The schema client could not be created.
        """
        tenant_id = self.get_tenant_id(request)
        if not tenant_id:
            if self.allow_no_tenant:
                return None
            raise TenantIdMissingError()

        tenant = await self.load_tenant(tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)

        await self._check_access(request, tenant)

        error = _STATUS_ERRORS.get(tenant.status_enum)
        if error is not None:
            raise error(str(tenant.id))

        db = await self.client_pool.get_client(tenant.schema_name)
        bind_tenant_context(str(tenant.id), tenant.schema_name)
        logger.debug("Tenant resolved", slug=tenant.slug)
        return TenantContext(tenant=tenant, db=db, public_db=self.public_client)

    @asynccontextmanager
    async def scope(self, request: RequestContext) -> AsyncGenerator[TenantContext | None]:
        """Resolve the tenant and release its client when the block exits."""
        ctx = await self.resolve(request)
        try:
            yield ctx
        finally:
            if ctx is not None:
                self.client_pool.release_client(ctx.schema_name)
            clear_tenant_context()


def has_tenant(ctx: TenantContext | None) -> bool:
    return ctx is not None


def get_tenant_or_raise(ctx: TenantContext | None) -> TenantContext:
    """Return ``ctx``, raising ``TenantIdMissingError`` when no tenant was resolved."""
    if ctx is None:
        raise TenantIdMissingError()
    return ctx
