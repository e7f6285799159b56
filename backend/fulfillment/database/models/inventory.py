"""
Stock models: finished products, raw materials, bill-of-materials and
per-order material allocations.

Stock counters carry non-negative check constraints; the stock ledger is the
only writer.
"""

import uuid
from decimal import Decimal
from typing import Optional

from sqlalchemy import CheckConstraint, ForeignKey, Index, Numeric, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fulfillment.database.base import BaseModel, label_enum
from fulfillment.services.orders.enums import AllocationStatus


class Product(BaseModel):
    """Finished good sold to customers."""

    __tablename__ = "products"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=12, scale=2),
        nullable=False,
        default=Decimal("0.00"),
    )
    stock: Mapped[int] = mapped_column(nullable=False, default=0)

    bill_of_materials: Mapped[list["ProductBOM"]] = relationship(
        "ProductBOM",
        back_populates="product",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_products_stock_non_negative"),
    )


class RawMaterial(BaseModel):
    """Raw material consumed by production."""

    __tablename__ = "raw_materials"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    unit: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    stock: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=3),
        nullable=False,
        default=Decimal("0"),
    )

    __table_args__ = (
        CheckConstraint("stock >= 0", name="ck_raw_materials_stock_non_negative"),
    )


class ProductBOM(BaseModel):
    """Quantity of a raw material consumed per unit of a product."""

    __tablename__ = "product_bom"

    product_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
    )

    raw_material_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("raw_materials.id", ondelete="RESTRICT"),
        nullable=False,
    )

    quantity_per_unit: Mapped[Decimal] = mapped_column(
        Numeric(precision=14, scale=4),
        nullable=False,
    )

    product: Mapped["Product"] = relationship("Product", back_populates="bill_of_materials")

    __table_args__ = (
        UniqueConstraint("product_id", "raw_material_id", name="uq_product_bom_pair"),
        CheckConstraint("quantity_per_unit > 0", name="ck_product_bom_quantity_positive"),
    )


class MaterialAllocation(BaseModel):
    """Raw material reserved against a confirmed order."""

    __tablename__ = "material_allocations"

    order_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="CASCADE"),
        nullable=False,
    )

    raw_material_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("raw_materials.id", ondelete="RESTRICT"),
        nullable=False,
    )

    quantity: Mapped[Decimal] = mapped_column(Numeric(precision=14, scale=3), nullable=False)

    status: Mapped[AllocationStatus] = mapped_column(
        label_enum(AllocationStatus, "allocation_status"),
        nullable=False,
        default=AllocationStatus.ALLOCATED,
    )

    __table_args__ = (
        Index("ix_material_allocations_order_status", "order_id", "status"),
        CheckConstraint("quantity > 0", name="ck_material_allocations_quantity_positive"),
    )
