"""Public schema models.

The tenant directory lives here; tenant data lives in per-tenant schemas.
"""

from src.tenancy.models.enums import TenantStatus
from src.tenancy.models.public.tenant import Tenant

__all__ = [
    "Tenant",
    "TenantStatus",
]
