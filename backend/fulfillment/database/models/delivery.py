"""
Delivery and rider models.

A delivery links exactly one order to one rider; the unique constraint on
order_id keeps an order from being assigned twice. A rider's status is
Not Available while it holds an active delivery.
"""

import uuid
from datetime import date
from typing import Optional

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment.database.base import AuditedModel, BaseModel, label_enum
from fulfillment.services.orders.enums import DeliveryStatus, RiderStatus


class Rider(BaseModel):
    """
    Delivery rider.

    Attributes:
        user_id: Account of the rider, one rider per user
        cellphone_number: Contact number
        status: Availability for new assignments
    """

    __tablename__ = "riders"

    user_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        nullable=False,
        unique=True,
        comment="User account of the rider",
    )

    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    cellphone_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    status: Mapped[RiderStatus] = mapped_column(
        label_enum(RiderStatus, "rider_status"),
        nullable=False,
        default=RiderStatus.AVAILABLE,
        index=True,
    )

    deliveries: Mapped[list["Delivery"]] = relationship(
        "Delivery",
        back_populates="rider",
        lazy="noload",
    )


class Delivery(AuditedModel):
    """
    Delivery assignment of an order to a rider.

    order_number and customer_name are copied from the order when the
    delivery is created so rider listings need no join.
    """

    __tablename__ = "deliveries"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
        comment="At most one delivery per order",
    )

    rider_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("riders.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )

    status: Mapped[DeliveryStatus] = mapped_column(
        label_enum(DeliveryStatus, "delivery_status"),
        nullable=False,
        default=DeliveryStatus.ASSIGNED,
    )

    delivery_date: Mapped[date] = mapped_column(Date, nullable=False)

    quantity: Mapped[int] = mapped_column(nullable=False, default=1)

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    order_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    rider: Mapped["Rider"] = relationship("Rider", back_populates="deliveries")

    __table_args__ = (
        Index("ix_deliveries_rider_status", "rider_id", "status"),
        CheckConstraint("quantity > 0", name="ck_deliveries_quantity_positive"),
        {"comment": "Order delivery assignments"},
    )
