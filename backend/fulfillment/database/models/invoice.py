"""
Sales invoice models.

An invoice is created lazily the first time an order needs one and is then
updated in place; the unique constraint on order_id keeps it single.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy import DateTime, ForeignKey, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment.database.base import BaseModel, JSONDocument, label_enum
from fulfillment.services.orders.enums import InvoiceStatus


class SalesInvoice(BaseModel):
    """Sales invoice mirroring an order's amounts and customer details."""

    __tablename__ = "sales_invoices"

    invoice_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Generated number, INV-YYYYMMDD-NNNN",
    )

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
        unique=True,
    )

    order_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    status: Mapped[InvoiceStatus] = mapped_column(
        label_enum(InvoiceStatus, "invoice_status"),
        nullable=False,
        default=InvoiceStatus.UNPAID,
    )

    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    shipping_address: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONDocument,
        nullable=True,
    )
    billing_address: Mapped[Optional[dict[str, Any]]] = mapped_column(
        JSONDocument,
        nullable=True,
    )
    payment_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    delivery_method: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )
    shipping_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )
    total_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
    )

    invoice_date: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    items: Mapped[list["SalesInvoiceItem"]] = relationship(
        "SalesInvoiceItem",
        back_populates="invoice",
        lazy="selectin",
        cascade="all, delete-orphan",
    )


class SalesInvoiceItem(BaseModel):
    """Invoice line mirrored from an order item."""

    __tablename__ = "sales_invoice_items"

    sales_invoice_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("sales_invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    product_name: Mapped[str] = mapped_column(String(255), nullable=False)
    product_description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    quantity: Mapped[int] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=2), nullable=False)
    total_price: Mapped[Decimal] = mapped_column(Numeric(precision=12, scale=2), nullable=False)

    invoice: Mapped["SalesInvoice"] = relationship("SalesInvoice", back_populates="items")
