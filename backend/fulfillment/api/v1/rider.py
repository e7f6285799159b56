"""
Rider API endpoints.

Riders see their own deliveries and report progress on them.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from fulfillment.api.deps import DeliveryManager, require_role
from fulfillment.core.logging import get_logger
from fulfillment.core.permissions import RIDER_ROLES, Identity
from fulfillment.schemas.deliveries import DeliveryResponse, RiderStatusUpdateRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/rider", tags=["rider"])

RiderIdentity = Annotated[Identity, Depends(require_role(*RIDER_ROLES))]


@router.get(
    "/deliveries",
    response_model=list[DeliveryResponse],
    summary="List own deliveries",
)
async def list_my_deliveries(
    identity: RiderIdentity,
    manager: DeliveryManager,
) -> list[DeliveryResponse]:
    deliveries = await manager.list_rider_deliveries(identity.user_id)
    return [DeliveryResponse.model_validate(delivery) for delivery in deliveries]


@router.patch(
    "/deliveries/status",
    response_model=DeliveryResponse,
    summary="Report delivery progress",
    description="Move an own delivery to In Transit or Delivered",
)
async def update_delivery_status(
    request: RiderStatusUpdateRequest,
    identity: RiderIdentity,
    manager: DeliveryManager,
) -> DeliveryResponse:
    """
    Update the status of one of the caller's deliveries.

    Marking a delivery Delivered completes its order and frees the rider.
    """
    logger.info(
        "Rider updating delivery status",
        delivery_id=str(request.delivery_id),
        new_status=request.new_status.value,
        user_id=str(identity.user_id),
    )
    delivery = await manager.report_progress(
        request.delivery_id, request.new_status, identity
    )
    return DeliveryResponse.model_validate(delivery)
