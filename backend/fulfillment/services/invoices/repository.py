"""
Sales invoice data access repository.

Invoice numbers and order IDs are both unique in the store; inserts that
collide surface as ConstraintViolationError.
"""

import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from fulfillment.core.logging import get_logger
from fulfillment.database.models.invoice import SalesInvoice, SalesInvoiceItem
from fulfillment.database.repository import BaseRepository
from fulfillment.services.orders.enums import InvoiceStatus

logger = get_logger(__name__)


class InvoiceRepository(BaseRepository):
    """Repository for sales invoices and their line items."""

    async def get_invoice(self, invoice_id: uuid.UUID) -> Optional[SalesInvoice]:
        """Get invoice by ID with its items."""
        try:
            result = await self.session.execute(
                select(SalesInvoice)
                .where(SalesInvoice.id == invoice_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._fail("fetch invoice", e, invoice_id=str(invoice_id))

    async def get_by_order(self, order_id: uuid.UUID) -> Optional[SalesInvoice]:
        """
        Get the invoice of an order.

        Raises:
            RepositoryError: If query fails
        """
        try:
            result = await self.session.execute(
                select(SalesInvoice)
                .where(SalesInvoice.order_id == order_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._fail("fetch invoice by order", e, order_id=str(order_id))

    async def create_invoice(self, **fields: Any) -> SalesInvoice:
        """
        Insert an invoice header.

        Raises:
            ConstraintViolationError: If the order already has an invoice or
                the number is taken
            RepositoryError: If the insert fails
        """
        invoice = SalesInvoice(**fields)
        try:
            self.session.add(invoice)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._fail(
                "insert invoice",
                e,
                order_id=str(fields.get("order_id")),
                invoice_number=fields.get("invoice_number"),
            )

        logger.info(
            "Invoice created",
            invoice_id=str(invoice.id),
            invoice_number=invoice.invoice_number,
            order_id=str(invoice.order_id),
        )
        return invoice

    async def add_items(
        self,
        invoice_id: uuid.UUID,
        items: Sequence[dict[str, Any]],
    ) -> list[SalesInvoiceItem]:
        """
        Insert invoice line items in one commit.

        Raises:
            RepositoryError: If the insert fails
        """
        rows = [SalesInvoiceItem(sales_invoice_id=invoice_id, **item) for item in items]
        try:
            self.session.add_all(rows)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._fail(
                "insert invoice items",
                e,
                invoice_id=str(invoice_id),
                item_count=len(rows),
            )
        return rows

    async def update_status(
        self,
        invoice_id: uuid.UUID,
        status: InvoiceStatus,
    ) -> Optional[SalesInvoice]:
        """
        Set invoice status.

        Returns:
            Updated invoice, None if no row matched

        Raises:
            RepositoryError: If the update fails
        """
        try:
            result = await self.session.execute(
                update(SalesInvoice)
                .where(SalesInvoice.id == invoice_id)
                .values(status=status)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._fail(
                "update invoice status",
                e,
                invoice_id=str(invoice_id),
                status=status.value,
            )

        if result.rowcount == 0:
            return None
        return await self.get_invoice(invoice_id)

    async def delete_invoice(self, invoice_id: uuid.UUID) -> bool:
        """
        Delete an invoice and its items.

        Returns:
            True if a row was deleted

        Raises:
            RepositoryError: If the delete fails
        """
        try:
            await self.session.execute(
                delete(SalesInvoiceItem).where(
                    SalesInvoiceItem.sales_invoice_id == invoice_id
                )
            )
            result = await self.session.execute(
                delete(SalesInvoice).where(SalesInvoice.id == invoice_id)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._fail("delete invoice", e, invoice_id=str(invoice_id))

        return result.rowcount > 0
