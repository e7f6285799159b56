"""
Database models package initialization.

Imports every model so they register with the Base metadata for Alembic and
relationship resolution.
"""

from fulfillment.database.base import (
    Base,
    BaseModel,
    AuditedModel,
    TimestampMixin,
    UUIDMixin,
    AuditMixin,
)
from fulfillment.database.models.user import Profile
from fulfillment.database.models.order import Order, OrderItem, OrderStatusHistory
from fulfillment.database.models.delivery import Delivery, Rider
from fulfillment.database.models.invoice import SalesInvoice, SalesInvoiceItem
from fulfillment.database.models.inventory import (
    MaterialAllocation,
    Product,
    ProductBOM,
    RawMaterial,
)

__all__ = [
    "Base",
    "BaseModel",
    "AuditedModel",
    "TimestampMixin",
    "UUIDMixin",
    "AuditMixin",
    "Profile",
    "Order",
    "OrderItem",
    "OrderStatusHistory",
    "Delivery",
    "Rider",
    "SalesInvoice",
    "SalesInvoiceItem",
    "Product",
    "RawMaterial",
    "ProductBOM",
    "MaterialAllocation",
]
