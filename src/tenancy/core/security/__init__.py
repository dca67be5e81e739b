"""Security utilities - validators and error sanitization.

Re-exports all security-related functions for convenience.
"""

from src.tenancy.core.security.sanitize import sanitize_error, sanitize_error_message
from src.tenancy.core.security.validators import (
    MAX_SCHEMA_LENGTH,
    MAX_TENANT_SLUG_LENGTH,
    RESERVED_SCHEMAS,
    TENANT_SCHEMA_PREFIX,
    build_schema_url,
    slug_to_schema_name,
    validate_database_url,
    validate_migrations_config_path,
    validate_schema_name,
    validate_schema_prefix,
    validate_slug,
)

__all__ = [
    # Constants
    "MAX_SCHEMA_LENGTH",
    "MAX_TENANT_SLUG_LENGTH",
    "RESERVED_SCHEMAS",
    "TENANT_SCHEMA_PREFIX",
    # Sanitization
    "sanitize_error",
    "sanitize_error_message",
    # Validators
    "build_schema_url",
    "slug_to_schema_name",
    "validate_database_url",
    "validate_migrations_config_path",
    "validate_schema_name",
    "validate_schema_prefix",
    "validate_slug",
]
