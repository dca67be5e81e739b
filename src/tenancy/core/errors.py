"""Tenant subsystem errors.

Every error carries a stable ``code`` plus the tenant id and/or schema name it
concerns. ``detail`` holds an already-sanitized description of the underlying
cause; raw driver or subprocess exceptions are never chained onto these errors.
"""

from enum import Enum


class TenantErrorCode(str, Enum):
    """Error codes for tenant operations."""

    TENANT_NOT_FOUND = "TENANT_NOT_FOUND"
    TENANT_ALREADY_EXISTS = "TENANT_ALREADY_EXISTS"
    TENANT_SUSPENDED = "TENANT_SUSPENDED"
    TENANT_PENDING = "TENANT_PENDING"
    TENANT_MIGRATING = "TENANT_MIGRATING"
    TENANT_ID_MISSING = "TENANT_ID_MISSING"
    TENANT_ACCESS_DENIED = "TENANT_ACCESS_DENIED"
    TENANT_INVALID_STATE = "TENANT_INVALID_STATE"
    INVALID_SLUG = "INVALID_SLUG"
    INVALID_SCHEMA_NAME = "INVALID_SCHEMA_NAME"
    SCHEMA_CREATE_FAILED = "SCHEMA_CREATE_FAILED"
    SCHEMA_DELETE_FAILED = "SCHEMA_DELETE_FAILED"
    SCHEMA_MIGRATE_FAILED = "SCHEMA_MIGRATE_FAILED"
    SCHEMA_NOT_FOUND = "SCHEMA_NOT_FOUND"
    CLIENT_CREATE_FAILED = "CLIENT_CREATE_FAILED"
    CLIENT_DISCONNECT_FAILED = "CLIENT_DISCONNECT_FAILED"
    PROVISION_FAILED = "PROVISION_FAILED"
    DEPROVISION_FAILED = "DEPROVISION_FAILED"


class TenantError(Exception):
    """Base class for tenant-related errors."""

    def __init__(
        self,
        message: str,
        code: TenantErrorCode,
        *,
        tenant_id: str | None = None,
        schema_name: str | None = None,
        detail: str | None = None,
    ):
        super().__init__(f"{message}: {detail}" if detail else message)
        self.message = message
        self.code = code
        self.tenant_id = tenant_id
        self.schema_name = schema_name
        self.detail = detail


# --- Tenant resolution ---


class TenantNotFoundError(TenantError):
    def __init__(self, tenant_id: str):
        super().__init__(
            f"Tenant not found: {tenant_id}", TenantErrorCode.TENANT_NOT_FOUND, tenant_id=tenant_id
        )


class TenantAlreadyExistsError(TenantError):
    def __init__(self, slug: str):
        super().__init__(
            f"Tenant with slug '{slug}' already exists", TenantErrorCode.TENANT_ALREADY_EXISTS
        )
        self.slug = slug


class TenantSuspendedError(TenantError):
    def __init__(self, tenant_id: str):
        super().__init__(
            f"Tenant is suspended: {tenant_id}", TenantErrorCode.TENANT_SUSPENDED, tenant_id=tenant_id
        )


class TenantPendingError(TenantError):
    def __init__(self, tenant_id: str):
        super().__init__(
            f"Tenant is pending activation: {tenant_id}",
            TenantErrorCode.TENANT_PENDING,
            tenant_id=tenant_id,
        )


class TenantMigratingError(TenantError):
    def __init__(self, tenant_id: str):
        super().__init__(
            f"Tenant is currently migrating: {tenant_id}",
            TenantErrorCode.TENANT_MIGRATING,
            tenant_id=tenant_id,
        )


class TenantIdMissingError(TenantError):
    def __init__(self) -> None:
        super().__init__(
            "Tenant ID is required but was not found in request context",
            TenantErrorCode.TENANT_ID_MISSING,
        )


class TenantAccessDeniedError(TenantError):
    """Raised when the caller presents a tenant claim it does not belong to."""

    def __init__(self, tenant_id: str, reason: str | None = None):
        super().__init__(
            f"Access denied to tenant: {tenant_id}",
            TenantErrorCode.TENANT_ACCESS_DENIED,
            tenant_id=tenant_id,
            detail=reason,
        )


class TenantStateError(TenantError):
    def __init__(self, tenant_id: str, current: str, target: str):
        super().__init__(
            f"Cannot move tenant {tenant_id} from '{current}' to '{target}'",
            TenantErrorCode.TENANT_INVALID_STATE,
            tenant_id=tenant_id,
        )
        self.current = current
        self.target = target


# --- Input validation ---


class InvalidSlugError(TenantError, ValueError):
    def __init__(self, slug: str, reason: str):
        super().__init__(f"Invalid tenant slug '{slug}': {reason}", TenantErrorCode.INVALID_SLUG)
        self.slug = slug
        self.reason = reason


class InvalidSchemaNameError(TenantError, ValueError):
    def __init__(self, schema_name: str, reason: str):
        super().__init__(
            f"Invalid schema name '{schema_name}': {reason}",
            TenantErrorCode.INVALID_SCHEMA_NAME,
            schema_name=schema_name,
        )
        self.reason = reason


# --- Schema DDL and migrations ---


class SchemaCreateError(TenantError):
    def __init__(self, schema_name: str, detail: str | None = None):
        super().__init__(
            f"Failed to create schema: {schema_name}",
            TenantErrorCode.SCHEMA_CREATE_FAILED,
            schema_name=schema_name,
            detail=detail,
        )


class SchemaDeleteError(TenantError):
    def __init__(self, schema_name: str, detail: str | None = None):
        super().__init__(
            f"Failed to delete schema: {schema_name}",
            TenantErrorCode.SCHEMA_DELETE_FAILED,
            schema_name=schema_name,
            detail=detail,
        )


class SchemaMigrateError(TenantError):
    def __init__(self, schema_name: str, detail: str | None = None):
        super().__init__(
            f"Failed to migrate schema: {schema_name}",
            TenantErrorCode.SCHEMA_MIGRATE_FAILED,
            schema_name=schema_name,
            detail=detail,
        )


class SchemaNotFoundError(TenantError):
    def __init__(self, schema_name: str):
        super().__init__(
            f"Schema not found: {schema_name}",
            TenantErrorCode.SCHEMA_NOT_FOUND,
            schema_name=schema_name,
        )


# --- Client pool ---


class ClientCreateError(TenantError):
    def __init__(self, schema_name: str, detail: str | None = None):
        super().__init__(
            f"Failed to create client for schema: {schema_name}",
            TenantErrorCode.CLIENT_CREATE_FAILED,
            schema_name=schema_name,
            detail=detail,
        )


class ClientDisconnectError(TenantError):
    def __init__(self, schema_name: str, detail: str | None = None):
        super().__init__(
            f"Failed to disconnect client for schema: {schema_name}",
            TenantErrorCode.CLIENT_DISCONNECT_FAILED,
            schema_name=schema_name,
            detail=detail,
        )


# --- Provisioning ---


class ProvisionError(TenantError):
    """Provisioning stopped part-way; ``tenant_id`` is set once the row exists."""

    def __init__(self, slug: str, detail: str | None = None, *, tenant_id: str | None = None):
        super().__init__(
            f"Failed to provision tenant: {slug}",
            TenantErrorCode.PROVISION_FAILED,
            tenant_id=tenant_id,
            detail=detail,
        )
        self.slug = slug


class DeprovisionError(TenantError):
    def __init__(self, tenant_id: str, detail: str | None = None):
        super().__init__(
            f"Failed to deprovision tenant: {tenant_id}",
            TenantErrorCode.DEPROVISION_FAILED,
            tenant_id=tenant_id,
            detail=detail,
        )
