"""
Delivery management API endpoints.

Delivery managers assign pending orders to available riders, edit or
remove deliveries, and list what is waiting for assignment.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status

from fulfillment.api.deps import DeliveryManager, require_role
from fulfillment.core.exceptions import ValidationError
from fulfillment.core.logging import get_logger
from fulfillment.core.permissions import DELIVERY_MANAGEMENT_ROLES, Identity
from fulfillment.schemas.deliveries import (
    DeliveryCreateRequest,
    DeliveryResponse,
    DeliveryUpdateRequest,
    PendingOrderResponse,
    RiderResponse,
)
from fulfillment.services.orders.enums import DeliveryStatus

logger = get_logger(__name__)

router = APIRouter(prefix="/deliveries", tags=["deliveries"])

DeliveryStaff = Annotated[Identity, Depends(require_role(*DELIVERY_MANAGEMENT_ROLES))]


@router.post(
    "",
    response_model=DeliveryResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Assign order to rider",
)
async def create_delivery(
    request: DeliveryCreateRequest,
    identity: DeliveryStaff,
    manager: DeliveryManager,
) -> DeliveryResponse:
    """
    Create a delivery for a pending order.

    Args:
        request: Order, rider, date, quantity and notes
        identity: Caller with delivery management role
        manager: Delivery assignment manager

    Returns:
        DeliveryResponse: Created delivery
    """
    logger.info(
        "Creating delivery",
        order_id=str(request.order_id),
        rider_id=str(request.rider_id),
        user_id=str(identity.user_id),
    )
    delivery = await manager.create(
        order_id=request.order_id,
        rider_id=request.rider_id,
        delivery_date=request.delivery_date,
        quantity=request.quantity,
        notes=request.notes,
        actor_id=identity.user_id,
    )
    return DeliveryResponse.model_validate(delivery)


@router.get(
    "",
    response_model=list[DeliveryResponse],
    summary="List deliveries",
)
async def list_deliveries(
    identity: DeliveryStaff,
    manager: DeliveryManager,
    delivery_status: Optional[str] = Query(
        None, alias="status", description="Filter by delivery status"
    ),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
) -> list[DeliveryResponse]:
    status_filter = None
    if delivery_status:
        try:
            status_filter = DeliveryStatus.from_string(delivery_status)
        except ValueError as e:
            raise ValidationError(str(e), status=delivery_status) from e

    deliveries = await manager.list_deliveries(
        status=status_filter, skip=skip, limit=limit
    )
    return [DeliveryResponse.model_validate(delivery) for delivery in deliveries]


@router.get(
    "/pending-orders",
    response_model=list[PendingOrderResponse],
    summary="Orders awaiting delivery",
)
async def list_pending_orders(
    identity: DeliveryStaff,
    manager: DeliveryManager,
) -> list[PendingOrderResponse]:
    orders = await manager.pending_orders()
    return [PendingOrderResponse.model_validate(order) for order in orders]


@router.get(
    "/available-riders",
    response_model=list[RiderResponse],
    summary="Riders free for assignment",
)
async def list_available_riders(
    identity: DeliveryStaff,
    manager: DeliveryManager,
) -> list[RiderResponse]:
    riders = await manager.available_riders()
    return [RiderResponse.model_validate(rider) for rider in riders]


@router.patch(
    "/{delivery_id}",
    response_model=DeliveryResponse,
    summary="Update delivery",
)
async def update_delivery(
    delivery_id: UUID,
    request: DeliveryUpdateRequest,
    identity: DeliveryStaff,
    manager: DeliveryManager,
) -> DeliveryResponse:
    delivery = await manager.update(
        delivery_id,
        request.model_dump(exclude_none=True),
        identity,
    )
    return DeliveryResponse.model_validate(delivery)


@router.delete(
    "",
    response_model=DeliveryResponse,
    summary="Remove delivery",
    description="Delete a delivery, returning the order to Pending and the rider to the pool",
)
async def delete_delivery(
    identity: DeliveryStaff,
    manager: DeliveryManager,
    delivery_id: UUID = Query(..., alias="id"),
) -> DeliveryResponse:
    logger.info(
        "Deleting delivery",
        delivery_id=str(delivery_id),
        user_id=str(identity.user_id),
    )
    delivery = await manager.delete(delivery_id, identity)
    return DeliveryResponse.model_validate(delivery)
