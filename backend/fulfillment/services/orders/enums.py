"""Status enums and transition tables for order fulfillment.

Each record taking part in fulfillment (order, delivery, rider, sales
invoice, material allocation) has one closed status type. Legal moves for
orders and deliveries live in the central transition tables below; route
handlers and services never compare raw status strings.
"""

from enum import Enum
from typing import Dict, Optional, Set


class _LabelEnum(str, Enum):
    """String enum whose values are the human-readable labels stored in rows."""

    @classmethod
    def from_string(cls, value: str):
        """Convert a label or member name to the enum, ignoring case.

        Accepts both ``"On Delivery"`` and ``"on_delivery"``.

        Raises:
            ValueError: If value matches no member
        """
        normalized = (value or "").strip().lower().replace("_", " ")
        for member in cls:
            if member.value.lower() == normalized:
                return member
        valid_values = ", ".join(member.value for member in cls)
        raise ValueError(
            f"Invalid {cls.__name__}: {value}. Valid values are: {valid_values}"
        )


class OrderStatus(_LabelEnum):
    """Order lifecycle status.

    Valid transitions:
    - QUOTED -> PENDING (quotation conversion only)
    - PENDING -> CONFIRMED, PAID, ON_DELIVERY, CANCELLED
    - CONFIRMED -> PENDING, PAID, ON_DELIVERY, COMPLETED, CANCELLED
    - PAID -> PENDING, ON_DELIVERY, COMPLETED, CANCELLED
    - ON_DELIVERY -> PENDING (delivery rollback), COMPLETED, CANCELLED
    - COMPLETED -> (terminal state)
    - CANCELLED -> (terminal state)
    """

    QUOTED = "Quoted"
    PENDING = "Pending"
    CONFIRMED = "Confirmed"
    PAID = "Paid"
    ON_DELIVERY = "On Delivery"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    def is_terminal(self) -> bool:
        return self in {OrderStatus.COMPLETED, OrderStatus.CANCELLED}


class DeliveryStatus(_LabelEnum):
    """Delivery assignment status.

    Valid transitions:
    - ASSIGNED -> IN_TRANSIT, DELIVERED, FAILED
    - IN_TRANSIT -> DELIVERED, FAILED
    - DELIVERED, FAILED -> (terminal states)
    """

    ASSIGNED = "Assigned"
    IN_TRANSIT = "In Transit"
    DELIVERED = "Delivered"
    FAILED = "Failed"

    def is_terminal(self) -> bool:
        return self in {DeliveryStatus.DELIVERED, DeliveryStatus.FAILED}

    def is_active(self) -> bool:
        """Active deliveries hold their rider."""
        return not self.is_terminal()


class RiderStatus(_LabelEnum):
    """Binary rider availability."""

    AVAILABLE = "Available"
    NOT_AVAILABLE = "Not Available"


class InvoiceStatus(_LabelEnum):
    """Sales invoice payment status, derived from the order status."""

    UNPAID = "Unpaid"
    PAID = "Paid"

    @classmethod
    def for_order_status(cls, order_status: OrderStatus) -> "InvoiceStatus":
        """Derive the invoice status for an order status.

        Completed orders are paid, every other status is unpaid.
        """
        if order_status == OrderStatus.COMPLETED:
            return cls.PAID
        return cls.UNPAID


class AllocationStatus(_LabelEnum):
    """Raw-material reservation held against an order."""

    ALLOCATED = "Allocated"
    RELEASED = "Released"
    CONSUMED = "Consumed"


class StockItemKind(str, Enum):
    """Counter families owned by the stock ledger."""

    PRODUCT = "product"
    RAW_MATERIAL = "raw_material"


# Statuses the general order-status endpoint accepts.
EXTERNALLY_SETTABLE_ORDER_STATUSES: frozenset = frozenset(
    {OrderStatus.PENDING, OrderStatus.PAID, OrderStatus.ON_DELIVERY}
)

# Statuses the admin approval endpoint accepts.
APPROVAL_ORDER_STATUSES: frozenset = frozenset(
    {OrderStatus.CONFIRMED, OrderStatus.CANCELLED}
)

RIDER_SETTABLE_DELIVERY_STATUSES: frozenset = frozenset(
    {DeliveryStatus.IN_TRANSIT, DeliveryStatus.DELIVERED}
)

STAFF_SETTABLE_DELIVERY_STATUSES: frozenset = frozenset(
    RIDER_SETTABLE_DELIVERY_STATUSES | {DeliveryStatus.FAILED}
)


ORDER_STATUS_TRANSITIONS: Dict[OrderStatus, Set[OrderStatus]] = {
    OrderStatus.QUOTED: {OrderStatus.PENDING},
    OrderStatus.PENDING: {
        OrderStatus.CONFIRMED,
        OrderStatus.PAID,
        OrderStatus.ON_DELIVERY,
        OrderStatus.CANCELLED,
    },
    OrderStatus.CONFIRMED: {
        OrderStatus.PENDING,
        OrderStatus.PAID,
        OrderStatus.ON_DELIVERY,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PAID: {
        OrderStatus.PENDING,
        OrderStatus.ON_DELIVERY,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.ON_DELIVERY: {
        OrderStatus.PENDING,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    },
    OrderStatus.COMPLETED: set(),  # Terminal
    OrderStatus.CANCELLED: set(),  # Terminal
}

DELIVERY_STATUS_TRANSITIONS: Dict[DeliveryStatus, Set[DeliveryStatus]] = {
    DeliveryStatus.ASSIGNED: {
        DeliveryStatus.IN_TRANSIT,
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
    },
    DeliveryStatus.IN_TRANSIT: {
        DeliveryStatus.DELIVERED,
        DeliveryStatus.FAILED,
    },
    DeliveryStatus.DELIVERED: set(),  # Terminal
    DeliveryStatus.FAILED: set(),  # Terminal
}


def validate_order_status_transition(
    current: OrderStatus,
    new: OrderStatus,
) -> bool:
    """Validate if an order status transition is allowed.

    Re-affirming the current status is always allowed.

    Args:
        current: Current order status
        new: Desired new status

    Returns:
        True if transition is valid
    """
    if current == new:
        return True
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())


def validate_delivery_status_transition(
    current: DeliveryStatus,
    new: DeliveryStatus,
) -> bool:
    """Validate if a delivery status transition is allowed.

    Re-affirming a non-terminal status is allowed; terminal deliveries
    accept nothing.
    """
    if current == new:
        return not current.is_terminal()
    return new in DELIVERY_STATUS_TRANSITIONS.get(current, set())


def get_allowed_order_transitions(current: OrderStatus) -> Set[OrderStatus]:
    """Get all allowed transitions from the current order status."""
    return ORDER_STATUS_TRANSITIONS.get(current, set()).copy()


def get_allowed_delivery_transitions(
    current: DeliveryStatus,
) -> Set[DeliveryStatus]:
    """Get all allowed transitions from the current delivery status."""
    return DELIVERY_STATUS_TRANSITIONS.get(current, set()).copy()


def order_status_for_delivery(status: DeliveryStatus) -> Optional[OrderStatus]:
    """Order status a delivery status drives the order into, if any.

    Failed deliveries leave the order untouched for manual follow-up.
    """
    if status == DeliveryStatus.DELIVERED:
        return OrderStatus.COMPLETED
    return None
