"""
Role model and privilege checks.

Roles are looked up per user from the profiles table. Privilege is a pure
function of the caller's identity and the injected settings, so no handler
compares against a hard-coded administrator address.
"""

import enum
from dataclasses import dataclass
from typing import Iterable, Optional
from uuid import UUID

from fulfillment.core.config import Settings


class UserRole(str, enum.Enum):
    """User role enumeration for role-based access control."""

    ADMIN = "admin"
    ORDER_MANAGER = "order_manager"
    SALES_STAFF = "sales_staff"
    SALES_MANAGER = "sales_manager"
    DELIVERY_MANAGER = "delivery_manager"
    RIDER = "rider"
    CUSTOMER = "customer"

    @classmethod
    def from_string(cls, value: str) -> "UserRole":
        """
        Convert string to UserRole enum.

        Args:
            value: String representation of role

        Returns:
            UserRole enum value

        Raises:
            ValueError: If value is not a valid role
        """
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Invalid role: {value}")


@dataclass(frozen=True)
class Identity:
    """Authenticated caller as resolved from the bearer token and profile."""

    user_id: UUID
    email: Optional[str]
    role: UserRole


ORDER_STATUS_ROLES = frozenset(
    {UserRole.ADMIN, UserRole.ORDER_MANAGER, UserRole.SALES_STAFF}
)
ORDER_APPROVAL_ROLES = frozenset({UserRole.ADMIN, UserRole.ORDER_MANAGER})
ORDER_READ_ROLES = frozenset(
    {
        UserRole.ADMIN,
        UserRole.ORDER_MANAGER,
        UserRole.SALES_STAFF,
        UserRole.SALES_MANAGER,
        UserRole.DELIVERY_MANAGER,
    }
)
DELIVERY_MANAGEMENT_ROLES = frozenset({UserRole.ADMIN, UserRole.DELIVERY_MANAGER})
INVOICE_ROLES = frozenset({UserRole.ADMIN, UserRole.SALES_MANAGER})
RIDER_ROLES = frozenset({UserRole.RIDER})
CUSTOMER_ROLES = frozenset({UserRole.CUSTOMER})


def is_privileged(identity: Identity, settings: Settings) -> bool:
    """
    Check whether the caller has administrator privileges.

    Args:
        identity: Authenticated caller
        settings: Application settings carrying the administrator emails

    Returns:
        True for the admin role or a configured administrator email
    """
    if identity.role == UserRole.ADMIN:
        return True
    if identity.email and identity.email.lower() in settings.admin_emails:
        return True
    return False


def has_any_role(
    identity: Identity,
    allowed_roles: Iterable[UserRole],
    settings: Settings,
) -> bool:
    """
    Check whether the caller holds one of the allowed roles.

    Privileged callers always pass.
    """
    return is_privileged(identity, settings) or identity.role in set(allowed_roles)
