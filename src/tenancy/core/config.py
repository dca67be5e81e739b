from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.tenancy.core.security.validators import (
    TENANT_SCHEMA_PREFIX,
    validate_database_url,
    validate_migrations_config_path,
    validate_schema_prefix,
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # App
    app_name: str = "Tenancy"
    app_env: str = "development"  # development, testing, production
    debug: bool = False

    # Database
    database_url: str
    database_pool_size: int = 5
    database_max_overflow: int = 10
    database_ssl_mode: str = "prefer"  # disable, prefer, require, verify-ca, verify-full
    database_statement_cache_size: int = 100

    # Tenant schemas
    tenant_schema_prefix: str = TENANT_SCHEMA_PREFIX
    tenant_migrations_config: str = "alembic.ini"
    tenant_migration_executable: str = "alembic"
    tenant_migration_timeout_seconds: float = 120.0

    # Tenant client pool
    tenant_pool_max_clients: int = 50
    tenant_pool_idle_timeout_seconds: float = 300.0
    tenant_pool_cleanup_interval_seconds: float = 60.0
    tenant_client_pool_size: int = 2  # Connections per tenant engine
    tenant_client_max_overflow: int = 3

    # Provisioning
    tenant_migrate_concurrency: int = 1  # 1 = migrate tenants sequentially
    tenant_verify_connectivity: bool = True

    @field_validator("database_url")
    @classmethod
    def check_database_url(cls, v: str) -> str:
        return validate_database_url(v)

    @field_validator("tenant_schema_prefix")
    @classmethod
    def check_tenant_schema_prefix(cls, v: str) -> str:
        return validate_schema_prefix(v)

    @field_validator("tenant_migrations_config")
    @classmethod
    def check_tenant_migrations_config(cls, v: str) -> str:
        return validate_migrations_config_path(v)

    @field_validator("tenant_migration_executable")
    @classmethod
    def check_tenant_migration_executable(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("TENANT_MIGRATION_EXECUTABLE cannot be empty")
        return v

    @field_validator(
        "tenant_pool_max_clients",
        "tenant_migrate_concurrency",
        "tenant_client_pool_size",
    )
    @classmethod
    def validate_positive_int(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be at least 1")
        return v

    @field_validator(
        "tenant_migration_timeout_seconds",
        "tenant_pool_idle_timeout_seconds",
        "tenant_pool_cleanup_interval_seconds",
    )
    @classmethod
    def validate_positive_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("must be greater than 0")
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()
