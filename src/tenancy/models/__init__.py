"""Model exports.

Import from here: `from src.tenancy.models import Tenant, TenantStatus`
"""

from src.tenancy.models.base import utc_now
from src.tenancy.models.enums import TenantStatus
from src.tenancy.models.public import Tenant

__all__ = [
    "Tenant",
    "TenantStatus",
    "utc_now",
]
