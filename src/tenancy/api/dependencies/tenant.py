"""Tenant context dependency for FastAPI routes."""

from collections.abc import AsyncGenerator
from typing import Annotated, Any

from fastapi import Depends, Request

from src.tenancy.api.middlewares.tenant import RequestContext, TenantContext, TenantMiddleware


def get_tenant_middleware(request: Request) -> TenantMiddleware:
    """Get the middleware owned by the app's ``Tenancy`` container."""
    return request.app.state.tenancy.middleware


def build_request_context(request: Request) -> RequestContext:
    """Build a ``RequestContext`` from request state set by auth dependencies.

    Expects ``request.state.token_claims`` (decoded token payload) and
    optionally ``request.state.user``; both default to empty.
    """
    claims: dict[str, Any] = getattr(request.state, "token_claims", None) or {}
    return RequestContext(
        claims=claims,
        user=getattr(request.state, "user", None),
        headers=dict(request.headers),
    )


async def get_tenant_context(
    request: Request,
    middleware: Annotated[TenantMiddleware, Depends(get_tenant_middleware)],
) -> AsyncGenerator[TenantContext | None]:
    """Resolve the tenant for this request; the client is released after the response.

    Tenant errors propagate to the handlers installed by
    ``setup_exception_handlers``.
    """
    async with middleware.scope(build_request_context(request)) as ctx:
        request.state.tenant = ctx
        yield ctx


TenantScope = Annotated[TenantContext | None, Depends(get_tenant_context)]
