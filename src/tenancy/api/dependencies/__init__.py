"""FastAPI dependencies."""

from src.tenancy.api.dependencies.tenant import (
    TenantScope,
    build_request_context,
    get_tenant_context,
    get_tenant_middleware,
)

__all__ = [
    "TenantScope",
    "build_request_context",
    "get_tenant_context",
    "get_tenant_middleware",
]
