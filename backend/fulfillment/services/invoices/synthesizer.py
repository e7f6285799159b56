"""Invoice synthesizer.

Derives the sales invoice of an order from the order's current status.
Invoices are created lazily, then only their status is kept in step with
the order; an order never gets a second invoice.
"""

import secrets
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from functools import partial
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.config import Settings, get_settings
from fulfillment.core.exceptions import (
    ConflictError,
    ConstraintViolationError,
    DependencyFailure,
    NotFoundError,
    ValidationError,
)
from fulfillment.core.logging import get_logger
from fulfillment.database.models.invoice import SalesInvoice
from fulfillment.database.models.order import Order
from fulfillment.services.effects import EffectPolicy, SideEffect, run_effects
from fulfillment.services.invoices.repository import InvoiceRepository
from fulfillment.services.orders.enums import InvoiceStatus, OrderStatus
from fulfillment.services.orders.repository import OrderRepository

logger = get_logger(__name__)

UNKNOWN_PRODUCT = "Unknown Product"
MAX_NUMBER_ATTEMPTS = 5
CENT = Decimal("0.01")


def compute_subtotal(order: Order) -> Decimal:
    """Sum item quantity times unit price.

    Orders without items fall back to the order-level subtotal, or to
    total minus tax minus shipping when that is missing too.
    """
    if order.items:
        total = sum((item.line_total for item in order.items), Decimal("0"))
        return total.quantize(CENT)

    if order.subtotal is not None:
        return Decimal(order.subtotal).quantize(CENT)

    fallback = (
        Decimal(order.total_amount or 0)
        - Decimal(order.tax_amount or 0)
        - Decimal(order.shipping_amount or 0)
    )
    return max(fallback, Decimal("0")).quantize(CENT)


def build_line_items(order: Order) -> list[dict[str, Any]]:
    """Mirror order items as invoice line items."""
    lines = []
    for item in order.items:
        product = item.product
        lines.append(
            {
                "product_id": item.product_id,
                "product_name": product.name if product else UNKNOWN_PRODUCT,
                "product_description": product.description if product else None,
                "quantity": item.quantity,
                "unit_price": Decimal(item.unit_price),
                "total_price": item.line_total.quantize(CENT),
            }
        )
    return lines


def build_invoice_fields(order: Order, status: InvoiceStatus) -> dict[str, Any]:
    """Copy the order header onto invoice columns."""
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "status": status,
        "customer_name": order.customer_name,
        "customer_email": order.customer_email,
        "customer_phone": order.customer_phone,
        "shipping_address": order.shipping_address,
        "billing_address": order.billing_address,
        "payment_method": order.payment_method,
        "delivery_method": order.delivery_method,
        "subtotal": compute_subtotal(order),
        "tax_amount": Decimal(order.tax_amount or 0),
        "shipping_amount": Decimal(order.shipping_amount or 0),
        "total_amount": Decimal(order.total_amount or 0),
        "notes": f"Generated from order {order.order_number}",
    }


class InvoiceSynthesizer:
    """Creates and updates sales invoices from order state."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        repository: Optional[InvoiceRepository] = None,
        orders: Optional[OrderRepository] = None,
    ):
        self.settings = settings or get_settings()
        self.repository = repository or InvoiceRepository(session)
        self.orders = orders or OrderRepository(session)

    def generate_invoice_number(self, on: Optional[date] = None) -> str:
        """
        Generate an invoice number such as ``INV-20240131-0042``.

        Args:
            on: Invoice date, today (UTC) by default
        """
        on = on or datetime.now(timezone.utc).date()
        return (
            f"{self.settings.invoice_number_prefix}-{on:%Y%m%d}-"
            f"{secrets.randbelow(10000):04d}"
        )

    async def get_invoice(self, invoice_id: uuid.UUID) -> SalesInvoice:
        """
        Get an invoice or fail.

        Raises:
            NotFoundError: If the invoice does not exist
        """
        invoice = await self.repository.get_invoice(invoice_id)
        if invoice is None:
            raise NotFoundError("Invoice not found", invoice_id=str(invoice_id))
        return invoice

    async def _get_order(self, order_id: uuid.UUID) -> Order:
        order = await self.orders.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found", order_id=str(order_id))
        return order

    async def sync(
        self,
        order_id: uuid.UUID,
        create_if_missing: bool = True,
    ) -> Optional[SalesInvoice]:
        """
        Bring an order's invoice in line with the order status.

        Args:
            order_id: Order identifier
            create_if_missing: Create the invoice when the order has none

        Returns:
            The order's invoice, None when it has none and creation was
            not requested

        Raises:
            NotFoundError: If the order does not exist
            DependencyFailure: If creating the invoice failed; a half
                written invoice is removed first
        """
        order = await self._get_order(order_id)
        target = InvoiceStatus.for_order_status(order.status)

        invoice = await self.repository.get_by_order(order_id)
        if invoice is not None:
            return await self._apply_status(invoice, target)

        if not create_if_missing:
            return None

        return await self._create(order, target)

    async def create_for_order(self, order_id: uuid.UUID) -> SalesInvoice:
        """
        Explicitly create the invoice of a completed order.

        Raises:
            NotFoundError: If the order does not exist
            ValidationError: If the order is not Completed
            ConflictError: If the order already has an invoice
        """
        order = await self._get_order(order_id)
        if order.status != OrderStatus.COMPLETED:
            raise ValidationError(
                "Invoices can only be created for completed orders",
                order_id=str(order_id),
                status=order.status.value,
            )

        existing = await self.repository.get_by_order(order_id)
        if existing is not None:
            raise ConflictError(
                "Invoice already exists for this order",
                order_id=str(order_id),
                invoice_number=existing.invoice_number,
            )

        return await self._create(order, InvoiceStatus.for_order_status(order.status))

    async def _apply_status(
        self,
        invoice: SalesInvoice,
        target: InvoiceStatus,
    ) -> SalesInvoice:
        old_status = invoice.status
        if old_status == target:
            return invoice

        updated = await self.repository.update_status(invoice.id, target)
        logger.info(
            "Invoice status updated",
            invoice_id=str(invoice.id),
            order_id=str(invoice.order_id),
            old_status=old_status.value,
            new_status=target.value,
        )
        return updated or invoice

    async def _create(self, order: Order, status: InvoiceStatus) -> SalesInvoice:
        # Everything is read off the order before the first write; a rejected
        # insert rolls the session back and expires the order.
        order_id = order.id
        fields = build_invoice_fields(order, status)
        lines = build_line_items(order)

        header, created = await self._insert_header(order_id, fields)
        if not created:
            return header

        header_id = header.id
        if lines:
            await run_effects(
                [
                    SideEffect(
                        name="insert_invoice_items",
                        action=partial(self.repository.add_items, header_id, lines),
                        policy=EffectPolicy.COMPENSATE,
                    )
                ],
                operation="create_invoice",
                applied=[
                    SideEffect.applied(
                        "insert_invoice",
                        partial(self.repository.delete_invoice, header_id),
                    )
                ],
                order_id=str(order_id),
                invoice_id=str(header_id),
            )

        return await self.get_invoice(header_id)

    async def _insert_header(
        self,
        order_id: uuid.UUID,
        fields: dict[str, Any],
    ) -> tuple[SalesInvoice, bool]:
        """
        Insert the invoice header with a fresh number.

        A unique violation means either the number was taken, in which case
        a new one is drawn, or another request created this order's invoice
        first, in which case that invoice is brought to the target status
        and returned.

        Returns:
            The invoice and whether this call created it
        """
        for attempt in range(1, MAX_NUMBER_ATTEMPTS + 1):
            invoice_number = self.generate_invoice_number()
            try:
                invoice = await self.repository.create_invoice(
                    invoice_number=invoice_number, **fields
                )
                return invoice, True
            except ConstraintViolationError:
                existing = await self.repository.get_by_order(order_id)
                if existing is not None:
                    logger.info(
                        "Invoice created concurrently, reusing it",
                        order_id=str(order_id),
                        invoice_id=str(existing.id),
                    )
                    return await self._apply_status(existing, fields["status"]), False
                logger.warning(
                    "Invoice number collision",
                    order_id=str(order_id),
                    invoice_number=invoice_number,
                    attempt=attempt,
                )

        raise DependencyFailure(
            "Could not allocate a unique invoice number",
            order_id=str(order_id),
            attempts=MAX_NUMBER_ATTEMPTS,
        )
