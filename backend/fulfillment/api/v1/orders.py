"""
Order status API endpoints.

Staff change order status through the general status endpoint or the
approval endpoint; customers can cancel their own pending orders. All
changes go through the order status controller.
"""

from typing import Annotated, Optional
from uuid import UUID

from fastapi import APIRouter, Depends

from fulfillment.api.deps import CurrentIdentity, OrderController, require_role
from fulfillment.core.logging import get_logger
from fulfillment.core.permissions import (
    ORDER_APPROVAL_ROLES,
    ORDER_READ_ROLES,
    ORDER_STATUS_ROLES,
    Identity,
)
from fulfillment.schemas.orders import (
    OrderApprovalRequest,
    OrderCancelRequest,
    OrderDetailResponse,
    OrderResponse,
    OrderStatusChangeResponse,
    OrderStatusHistoryResponse,
    OrderStatusUpdate,
)
from fulfillment.services.orders.service import TransitionResult

logger = get_logger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])


def _change_response(result: TransitionResult) -> OrderStatusChangeResponse:
    return OrderStatusChangeResponse(
        order=OrderResponse.model_validate(result.order),
        old_status=result.old_status,
        changed=result.changed,
        failed_effects=[outcome.name for outcome in result.effects.failures],
    )


@router.get(
    "/{order_id}",
    response_model=OrderDetailResponse,
    summary="Get order",
    description="Get an order with its status history",
)
async def get_order(
    order_id: UUID,
    identity: Annotated[Identity, Depends(require_role(*ORDER_READ_ROLES))],
    controller: OrderController,
) -> OrderDetailResponse:
    order, history = await controller.get_order_with_history(order_id)
    response = OrderDetailResponse.model_validate(order)
    response.status_history = [
        OrderStatusHistoryResponse.model_validate(entry) for entry in history
    ]
    return response


@router.patch(
    "/{order_id}/status",
    response_model=OrderStatusChangeResponse,
    summary="Update order status",
    description="Set an order to Pending, Paid or On Delivery",
)
async def update_order_status(
    order_id: UUID,
    request: OrderStatusUpdate,
    identity: Annotated[Identity, Depends(require_role(*ORDER_STATUS_ROLES))],
    controller: OrderController,
) -> OrderStatusChangeResponse:
    """
    Update order status.

    Args:
        order_id: Order identifier
        request: New status and notes
        identity: Caller with an order status role
        controller: Order status controller

    Returns:
        OrderStatusChangeResponse: Updated order and effect outcome
    """
    logger.info(
        "Updating order status",
        order_id=str(order_id),
        new_status=request.status.value,
        user_id=str(identity.user_id),
    )
    result = await controller.set_status(
        order_id, request.status, identity.user_id, request.notes
    )
    return _change_response(result)


@router.post(
    "/{order_id}/approval",
    response_model=OrderStatusChangeResponse,
    summary="Approve or cancel order",
)
async def approve_order(
    order_id: UUID,
    request: OrderApprovalRequest,
    identity: Annotated[Identity, Depends(require_role(*ORDER_APPROVAL_ROLES))],
    controller: OrderController,
) -> OrderStatusChangeResponse:
    logger.info(
        "Order approval decision",
        order_id=str(order_id),
        decision=request.status.value,
        user_id=str(identity.user_id),
    )
    result = await controller.approve(
        order_id, request.status, identity.user_id, request.notes
    )
    return _change_response(result)


@router.post(
    "/{order_id}/convert-quotation",
    response_model=OrderStatusChangeResponse,
    summary="Convert quotation to order",
)
async def convert_quotation(
    order_id: UUID,
    identity: Annotated[Identity, Depends(require_role(*ORDER_APPROVAL_ROLES))],
    controller: OrderController,
) -> OrderStatusChangeResponse:
    result = await controller.convert_quotation(order_id, identity.user_id)
    return _change_response(result)


@router.post(
    "/{order_id}/cancel",
    response_model=OrderStatusChangeResponse,
    summary="Cancel own order",
    description="Cancel a pending order placed by the caller",
)
async def cancel_order(
    order_id: UUID,
    identity: CurrentIdentity,
    controller: OrderController,
    request: Optional[OrderCancelRequest] = None,
) -> OrderStatusChangeResponse:
    result = await controller.customer_cancel(
        order_id, identity, request.notes if request else None
    )
    return _change_response(result)
