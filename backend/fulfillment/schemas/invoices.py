"""
Sales invoice Pydantic schemas.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from fulfillment.services.orders.enums import InvoiceStatus


class InvoiceCreateRequest(BaseModel):
    """Request schema for invoicing a completed order."""

    order_id: UUID = Field(..., description="Completed order to invoice")


class InvoiceItemResponse(BaseModel):
    """Invoice line item."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: Optional[UUID] = None
    product_name: str
    product_description: Optional[str] = None
    quantity: int
    unit_price: Decimal
    total_price: Decimal


class InvoiceResponse(BaseModel):
    """Sales invoice response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    invoice_number: str
    order_id: UUID
    order_number: Optional[str] = None
    status: InvoiceStatus
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    shipping_address: Optional[dict[str, Any]] = None
    billing_address: Optional[dict[str, Any]] = None
    payment_method: Optional[str] = None
    delivery_method: Optional[str] = None
    subtotal: Decimal
    tax_amount: Decimal
    shipping_amount: Decimal
    total_amount: Decimal
    invoice_date: datetime
    notes: Optional[str] = None
    items: list[InvoiceItemResponse] = Field(default_factory=list)
