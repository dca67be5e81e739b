"""Shared enums for models."""

from enum import Enum


class TenantStatus(str, Enum):
    """Tenant lifecycle status.

    pending -> migrating -> active, and active <-> suspended administratively.
    A failed provision stays in pending/migrating so it can be re-driven.
    """

    PENDING = "pending"
    MIGRATING = "migrating"
    ACTIVE = "active"
    SUSPENDED = "suspended"

    def can_transition_to(self, target: "TenantStatus") -> bool:
        """Check whether moving from this status to ``target`` is allowed."""
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[TenantStatus, frozenset[TenantStatus]] = {
    TenantStatus.PENDING: frozenset({TenantStatus.MIGRATING, TenantStatus.ACTIVE}),
    TenantStatus.MIGRATING: frozenset({TenantStatus.MIGRATING, TenantStatus.ACTIVE}),
    TenantStatus.ACTIVE: frozenset({TenantStatus.MIGRATING, TenantStatus.SUSPENDED}),
    TenantStatus.SUSPENDED: frozenset({TenantStatus.ACTIVE}),
}
