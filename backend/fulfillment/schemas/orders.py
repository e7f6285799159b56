"""
Order Pydantic schemas for status change requests and order responses.

Status fields accept either the display label ("On Delivery") or the member
name ("ON_DELIVERY").
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from fulfillment.services.orders.enums import DeliveryStatus, OrderStatus


def _parse_order_status(value: Any) -> Any:
    if isinstance(value, str):
        return OrderStatus.from_string(value)
    return value


class OrderStatusUpdate(BaseModel):
    """Request schema for the general status endpoint."""

    model_config = ConfigDict(str_strip_whitespace=True)

    status: OrderStatus = Field(
        ...,
        description="New order status: Pending, Paid or On Delivery",
    )
    notes: Optional[str] = Field(
        None,
        max_length=500,
        description="Status change notes",
    )

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> Any:
        return _parse_order_status(v)


class OrderApprovalRequest(BaseModel):
    """Request schema for confirming or cancelling an order."""

    model_config = ConfigDict(str_strip_whitespace=True)

    status: OrderStatus = Field(
        ...,
        description="Approval decision: Confirmed or Cancelled",
    )
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> Any:
        return _parse_order_status(v)


class OrderCancelRequest(BaseModel):
    """Customer cancellation request."""

    notes: Optional[str] = Field(None, max_length=500)


class OrderItemResponse(BaseModel):
    """Order item response."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    product_id: UUID
    quantity: int
    unit_price: Decimal


class OrderStatusHistoryResponse(BaseModel):
    """Status history entry."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    old_status: Optional[OrderStatus] = None
    new_status: OrderStatus
    changed_by: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: datetime


class OrderResponse(BaseModel):
    """Order response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    user_id: Optional[UUID] = None
    status: OrderStatus
    delivery_status: Optional[DeliveryStatus] = None
    customer_name: Optional[str] = None
    customer_email: Optional[str] = None
    customer_phone: Optional[str] = None
    payment_method: Optional[str] = None
    delivery_method: Optional[str] = None
    items: list[OrderItemResponse] = Field(default_factory=list)
    subtotal: Optional[Decimal] = None
    tax_amount: Decimal
    shipping_amount: Decimal
    total_amount: Decimal
    notes: Optional[str] = None
    approved_by: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class OrderDetailResponse(OrderResponse):
    """Order response including its status history, newest first."""

    status_history: list[OrderStatusHistoryResponse] = Field(default_factory=list)


class OrderStatusChangeResponse(BaseModel):
    """Result of a status change request."""

    order: OrderResponse
    old_status: OrderStatus
    changed: bool
    failed_effects: list[str] = Field(
        default_factory=list,
        description="Follow-up steps that failed and need reconciliation",
    )
