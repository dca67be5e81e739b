"""Exception handlers with request_id in responses."""

from asgi_correlation_id import correlation_id
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.tenancy.core.errors import TenantError, TenantErrorCode
from src.tenancy.core.logging import get_logger

logger = get_logger(__name__)

TENANT_ERROR_STATUS: dict[TenantErrorCode, int] = {
    TenantErrorCode.TENANT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    TenantErrorCode.TENANT_ALREADY_EXISTS: status.HTTP_409_CONFLICT,
    TenantErrorCode.TENANT_SUSPENDED: status.HTTP_403_FORBIDDEN,
    TenantErrorCode.TENANT_PENDING: status.HTTP_503_SERVICE_UNAVAILABLE,
    TenantErrorCode.TENANT_MIGRATING: status.HTTP_503_SERVICE_UNAVAILABLE,
    TenantErrorCode.TENANT_ID_MISSING: status.HTTP_400_BAD_REQUEST,
    TenantErrorCode.TENANT_ACCESS_DENIED: status.HTTP_403_FORBIDDEN,
    TenantErrorCode.TENANT_INVALID_STATE: status.HTTP_409_CONFLICT,
    TenantErrorCode.INVALID_SLUG: status.HTTP_400_BAD_REQUEST,
    TenantErrorCode.INVALID_SCHEMA_NAME: status.HTTP_400_BAD_REQUEST,
    TenantErrorCode.SCHEMA_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    TenantErrorCode.CLIENT_CREATE_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(exc: TenantError) -> int:
    return TENANT_ERROR_STATUS.get(exc.code, status.HTTP_500_INTERNAL_SERVER_ERROR)


def setup_exception_handlers(app: FastAPI) -> None:
    """Map ``TenantError`` to JSON responses that include the request_id.

    Only ``message`` is returned to the client; the sanitized ``detail`` is
    logged.
    """

    @app.exception_handler(TenantError)
    async def tenant_exception_handler(request: Request, exc: TenantError) -> JSONResponse:
        request_id = correlation_id.get()
        status_code = status_for(exc)
        log = logger.error if status_code >= 500 else logger.info
        log(
            "Tenant error",
            code=exc.code.value,
            detail=exc.detail,
            tenant_id=exc.tenant_id,
            schema_name=exc.schema_name,
            request_id=request_id,
            path=request.url.path,
        )
        return JSONResponse(
            status_code=status_code,
            content={
                "detail": exc.message,
                "code": exc.code.value,
                "request_id": request_id,
            },
        )
