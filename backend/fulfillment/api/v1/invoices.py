"""
Sales invoice API endpoints.
"""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, status

from fulfillment.api.deps import Invoices, require_role
from fulfillment.core.logging import get_logger
from fulfillment.core.permissions import INVOICE_ROLES, Identity
from fulfillment.schemas.invoices import InvoiceCreateRequest, InvoiceResponse

logger = get_logger(__name__)

router = APIRouter(prefix="/sales-invoices", tags=["sales-invoices"])

InvoiceStaff = Annotated[Identity, Depends(require_role(*INVOICE_ROLES))]


@router.get(
    "/{invoice_id}",
    response_model=InvoiceResponse,
    summary="Get sales invoice",
)
async def get_invoice(
    invoice_id: UUID,
    identity: InvoiceStaff,
    invoices: Invoices,
) -> InvoiceResponse:
    invoice = await invoices.get_invoice(invoice_id)
    return InvoiceResponse.model_validate(invoice)


@router.post(
    "",
    response_model=InvoiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Invoice a completed order",
)
async def create_invoice(
    request: InvoiceCreateRequest,
    identity: InvoiceStaff,
    invoices: Invoices,
) -> InvoiceResponse:
    logger.info(
        "Creating sales invoice",
        order_id=str(request.order_id),
        user_id=str(identity.user_id),
    )
    invoice = await invoices.create_for_order(request.order_id)
    return InvoiceResponse.model_validate(invoice)
