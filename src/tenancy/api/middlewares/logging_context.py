"""Per-request log context: correlation id, and the tenant once resolved."""

from asgi_correlation_id import correlation_id
from fastapi import Request, Response
from starlette.middleware.base import RequestResponseEndpoint

from src.tenancy.core.logging import bind_request_context, clear_request_context, get_logger

logger = get_logger(__name__)


def _tenant_schema(request: Request) -> str | None:
    ctx = getattr(request.state, "tenant", None)
    return ctx.schema_name if ctx is not None else None


async def logging_context_middleware(
    request: Request, call_next: RequestResponseEndpoint
) -> Response:
    """Bind request_id for the whole request and drop all context afterwards.

    Server errors are logged with the tenant schema, which the tenant
    dependency leaves on ``request.state.tenant``.
    """
    clear_request_context()
    bind_request_context(correlation_id.get())
    try:
        response = await call_next(request)
        if response.status_code >= 500:
            logger.warning(
                "Request failed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                schema_name=_tenant_schema(request),
            )
        return response
    finally:
        # Also drops tenant keys bound during resolution
        clear_request_context()
