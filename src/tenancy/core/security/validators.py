"""Security validators for tenant slugs, schema names and configuration.

Schema identifiers cannot be bound as query parameters, so every name that is
interpolated into DDL must first pass ``validate_schema_name``.
"""

import re
from typing import Final
from urllib.parse import urlparse

from sqlalchemy.engine import make_url

from src.tenancy.core.errors import InvalidSchemaNameError, InvalidSlugError

MAX_SCHEMA_LENGTH: Final[int] = 63  # PostgreSQL identifier limit
MAX_TENANT_SLUG_LENGTH: Final[int] = 50
TENANT_SCHEMA_PREFIX: Final[str] = "tenant_"
MIGRATIONS_CONFIG_SUFFIX: Final[str] = ".ini"

TENANT_SLUG_REGEX: Final[str] = r"^[a-z0-9][a-z0-9-]*[a-z0-9]$|^[a-z0-9]$"
SCHEMA_NAME_REGEX: Final[str] = r"^[a-z_][a-z0-9_]*$"

RESERVED_SCHEMAS: Final[frozenset[str]] = frozenset(
    {"public", "pg_catalog", "pg_toast", "pg_temp", "information_schema"}
)
ALLOWED_DATABASE_SCHEMES: Final[frozenset[str]] = frozenset({"postgres", "postgresql"})

_TENANT_SLUG_PATTERN: Final[re.Pattern[str]] = re.compile(TENANT_SLUG_REGEX)
_SCHEMA_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(SCHEMA_NAME_REGEX)

# Shell metacharacters, quotes, null bytes, path traversal, path separators
_DANGEROUS_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"[;|&$`<>]"),
    re.compile(r"['\"`]"),
    re.compile(r"\x00"),
    re.compile(r"\.\."),
    re.compile(r"[\\/]"),
)
# "&" separates query parameters and is allowed
_URL_DANGEROUS_CHARS: Final[re.Pattern[str]] = re.compile(r"[;|$`<>(){}\[\]!\s]")
_PATH_DANGEROUS_CHARS: Final[re.Pattern[str]] = re.compile(r"[;|&$`<>(){}\[\]!'\"]")


def _has_dangerous_characters(value: str) -> bool:
    return any(pattern.search(value) for pattern in _DANGEROUS_PATTERNS)


def slug_to_schema_name(slug: str, prefix: str = TENANT_SCHEMA_PREFIX) -> str:
    """Convert a tenant slug to a PostgreSQL schema name.

    Pure and deterministic: the same slug always yields the same name, so it
    is safe to use both when provisioning and when looking a tenant up.
    E.g., 'acme-corp' -> 'tenant_acme_corp', '42labs' -> 'tenant__42labs'
    """
    cleaned = re.sub(r"[^a-z0-9_]", "", slug.lower().replace("-", "_"))
    if not re.match(r"^[a-z_]", cleaned):
        cleaned = f"_{cleaned}"
    return f"{prefix}{cleaned}"


def validate_schema_name(schema_name: str) -> None:
    """Validate a schema name before it is interpolated into SQL.

    Applies to names that never went through slug derivation as well (for
    example operator-supplied names for delete or migrate).

    Raises:
        InvalidSchemaNameError: If the name is malformed, too long, contains
            forbidden characters or is a reserved/system schema.

    Examples:
        >>> validate_schema_name("tenant_acme")  # Valid
        >>> validate_schema_name("tenant__42labs")  # Valid
        >>> validate_schema_name("public")  # Invalid - reserved
        >>> validate_schema_name("tenant_acme; DROP")  # Invalid - format
    """
    if not schema_name:
        raise InvalidSchemaNameError(schema_name, "schema name cannot be empty")

    if not _SCHEMA_NAME_PATTERN.match(schema_name):
        raise InvalidSchemaNameError(
            schema_name, "must contain only lowercase letters, numbers and underscores"
        )

    if len(schema_name) > MAX_SCHEMA_LENGTH:
        raise InvalidSchemaNameError(
            schema_name,
            f"exceeds PostgreSQL limit: {len(schema_name)} > {MAX_SCHEMA_LENGTH}",
        )

    # Defense in depth - the regex above already excludes these
    if _has_dangerous_characters(schema_name):
        raise InvalidSchemaNameError(schema_name, "contains forbidden characters")

    lowered = schema_name.lower()
    if lowered in RESERVED_SCHEMAS or lowered.startswith("pg_"):
        raise InvalidSchemaNameError(schema_name, "reserved schema name")


def validate_slug(slug: str, prefix: str = TENANT_SCHEMA_PREFIX) -> str:
    """Validate a tenant slug with strict whitelist and blacklist checks.

    Returns the slug unchanged so it can be used as a pydantic/attrs validator.

    Raises:
        InvalidSlugError: On any failure, before any database call is made.
    """
    if not slug or not slug.strip():
        raise InvalidSlugError(slug or "", "slug cannot be empty")

    if len(slug) > MAX_TENANT_SLUG_LENGTH:
        raise InvalidSlugError(slug, f"slug cannot exceed {MAX_TENANT_SLUG_LENGTH} characters")

    if not _TENANT_SLUG_PATTERN.match(slug):
        raise InvalidSlugError(
            slug, "slug must contain only lowercase letters, numbers, and hyphens"
        )

    # Defense in depth - the slug is later interpolated into DDL
    if _has_dangerous_characters(slug):
        raise InvalidSlugError(slug, "slug contains forbidden characters")

    schema_name = slug_to_schema_name(slug, prefix)
    try:
        validate_schema_name(schema_name)
    except InvalidSchemaNameError as e:
        raise InvalidSlugError(slug, f"results in invalid schema name ({e.reason})") from None

    return slug


def validate_schema_prefix(prefix: str) -> str:
    """Validate the configured schema prefix."""
    if not prefix or not _SCHEMA_NAME_PATTERN.match(prefix):
        raise ValueError(
            f"Invalid schema prefix '{prefix}': must start with a letter or underscore and "
            "contain only lowercase letters, numbers and underscores"
        )
    if prefix.startswith("pg_"):
        raise ValueError(f"Invalid schema prefix '{prefix}': 'pg_' is reserved by PostgreSQL")
    if len(prefix) >= MAX_SCHEMA_LENGTH:
        raise ValueError(f"Schema prefix is too long: {len(prefix)} >= {MAX_SCHEMA_LENGTH}")
    return prefix


def validate_database_url(url: str) -> str:
    """Validate the base database URL.

    Only PostgreSQL URLs (optionally with a ``+driver`` suffix) are accepted.
    Shell metacharacters are rejected, except ``&`` which joins query
    parameters; the URL reaches the migration subprocess through its
    environment, never a shell.
    """
    parsed = urlparse(url)
    scheme = parsed.scheme.split("+", 1)[0].lower()
    if scheme not in ALLOWED_DATABASE_SCHEMES:
        raise ValueError("Invalid database URL: only postgresql:// URLs are supported")

    if _URL_DANGEROUS_CHARS.search(url):
        raise ValueError("Invalid database URL: contains dangerous characters")

    if not parsed.hostname and not parsed.path.strip("/"):
        raise ValueError("Invalid database URL: missing host or database name")

    return url


def validate_migrations_config_path(path: str) -> str:
    """Validate the migration tool config path against traversal and injection."""
    if ".." in path or "\x00" in path:
        raise ValueError("Invalid migrations config path: path traversal detected")

    if _PATH_DANGEROUS_CHARS.search(path):
        raise ValueError("Invalid migrations config path: dangerous characters detected")

    if not path.endswith(MIGRATIONS_CONFIG_SUFFIX):
        raise ValueError(
            f"Invalid migrations config path: must end with {MIGRATIONS_CONFIG_SUFFIX}"
        )
    return path


def build_schema_url(database_url: str, schema_name: str) -> str:
    """Return ``database_url`` with its ``schema`` query parameter set.

    E.g., 'postgresql+asyncpg://u:p@db/app' + 'tenant_acme'
        -> 'postgresql+asyncpg://u:p@db/app?schema=tenant_acme'
    """
    validate_schema_name(schema_name)
    url = make_url(database_url).update_query_dict({"schema": schema_name})
    return url.render_as_string(hide_password=False)
