"""Tenant model - directory in public schema."""

from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from src.tenancy.core.security.validators import MAX_SCHEMA_LENGTH, MAX_TENANT_SLUG_LENGTH
from src.tenancy.models.base import utc_now
from src.tenancy.models.enums import TenantStatus


class Tenant(SQLModel, table=True):
    """Tenant directory row in public schema.

    ``schema_name`` is stored for lookups but is only ever written from
    ``slug_to_schema_name(slug)`` by the directory store.
    """

    __tablename__ = "tenants"
    __table_args__ = {"schema": "public"}

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    slug: str = Field(max_length=MAX_TENANT_SLUG_LENGTH, unique=True, index=True)
    name: str = Field(max_length=100)
    schema_name: str = Field(max_length=MAX_SCHEMA_LENGTH, unique=True)
    status: str = Field(default=TenantStatus.PENDING.value, max_length=20)
    properties: dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def status_enum(self) -> TenantStatus:
        """Get status as TenantStatus enum."""
        return TenantStatus(self.status)

    @property
    def is_active(self) -> bool:
        return self.status == TenantStatus.ACTIVE.value
