"""Tenant middlewares."""

from asgi_correlation_id import CorrelationIdMiddleware
from fastapi import FastAPI

from .logging_context import logging_context_middleware
from .tenant import (
    RequestContext,
    TenantContext,
    TenantMiddleware,
    default_tenant_id,
    get_tenant_or_raise,
    has_tenant,
    header_tenant_id,
)

__all__ = [
    "setup_middlewares",
    "RequestContext",
    "TenantContext",
    "TenantMiddleware",
    "default_tenant_id",
    "get_tenant_or_raise",
    "has_tenant",
    "header_tenant_id",
    "logging_context_middleware",
]


def setup_middlewares(app: FastAPI) -> None:
    """Configure request correlation and log context.

    Middleware order matters - outermost middleware runs first.
    """

    # Logging context - binds request_id to structlog context
    @app.middleware("http")
    async def _logging_context(request, call_next):  # type: ignore[no-untyped-def]
        return await logging_context_middleware(request, call_next)

    # Correlation ID - generates/propagates X-Request-ID; added last so it is outermost
    app.add_middleware(CorrelationIdMiddleware)
