"""
Delivery and rider Pydantic schemas.
"""

from datetime import date, datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from fulfillment.services.orders.enums import DeliveryStatus, RiderStatus


def _parse_delivery_status(value: Any) -> Any:
    if isinstance(value, str):
        return DeliveryStatus.from_string(value)
    return value


class DeliveryCreateRequest(BaseModel):
    """Request schema for assigning an order to a rider."""

    model_config = ConfigDict(str_strip_whitespace=True)

    order_id: UUID = Field(..., description="Pending order to deliver")
    rider_id: UUID = Field(..., description="Available rider")
    delivery_date: date = Field(..., description="Planned delivery date")
    quantity: int = Field(1, ge=1, description="Number of packages")
    notes: Optional[str] = Field(None, max_length=1000)


class DeliveryUpdateRequest(BaseModel):
    """Request schema for editing a delivery."""

    model_config = ConfigDict(str_strip_whitespace=True)

    delivery_date: Optional[date] = None
    quantity: Optional[int] = Field(None, ge=1)
    status: Optional[DeliveryStatus] = Field(
        None,
        description="In Transit, Delivered or Failed",
    )
    notes: Optional[str] = Field(None, max_length=1000)

    @field_validator("status", mode="before")
    @classmethod
    def parse_status(cls, v: Any) -> Any:
        return _parse_delivery_status(v)

    @model_validator(mode="after")
    def validate_has_changes(self) -> "DeliveryUpdateRequest":
        """Ensure at least one field is provided."""
        if not self.model_dump(exclude_none=True):
            raise ValueError("At least one field must be provided for update")
        return self


class RiderStatusUpdateRequest(BaseModel):
    """Request schema for a rider reporting delivery progress."""

    delivery_id: UUID
    new_status: DeliveryStatus = Field(..., description="In Transit or Delivered")

    @field_validator("new_status", mode="before")
    @classmethod
    def parse_new_status(cls, v: Any) -> Any:
        return _parse_delivery_status(v)


class DeliveryResponse(BaseModel):
    """Delivery response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_id: UUID
    rider_id: UUID
    status: DeliveryStatus
    delivery_date: date
    quantity: int
    notes: Optional[str] = None
    order_number: Optional[str] = None
    customer_name: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RiderResponse(BaseModel):
    """Rider response schema."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    name: Optional[str] = None
    cellphone_number: Optional[str] = None
    status: RiderStatus


class PendingOrderResponse(BaseModel):
    """Order awaiting a delivery assignment."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    order_number: str
    customer_name: Optional[str] = None
    shipping_address: Optional[dict[str, Any]] = None
    delivery_method: Optional[str] = None
    created_at: datetime
