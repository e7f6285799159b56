"""
Tests for InvoiceRepository and InvoiceSynthesizer against a SQLite session.

Tests cover the unique invoice number and one-invoice-per-order
constraints, line items, removal, and invoice creation after a number
collision has rolled the session back.
"""

from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

import pytest

from fulfillment.core.exceptions import ConstraintViolationError
from fulfillment.database.models.inventory import Product
from fulfillment.database.models.order import Order, OrderItem
from fulfillment.schemas.invoices import InvoiceResponse
from fulfillment.services.invoices.repository import InvoiceRepository
from fulfillment.services.invoices.synthesizer import InvoiceSynthesizer
from fulfillment.services.orders.enums import InvoiceStatus, OrderStatus


@pytest.fixture
def repository(db_session):
    return InvoiceRepository(db_session)


def _header(order_id, number, status=InvoiceStatus.UNPAID):
    return {
        "invoice_number": number,
        "order_id": order_id,
        "status": status,
        "subtotal": Decimal("80.00"),
        "tax_amount": Decimal("10.00"),
        "shipping_amount": Decimal("5.00"),
        "total_amount": Decimal("95.00"),
    }


def _line(product_id=None, name="Chair"):
    return {
        "product_id": product_id,
        "product_name": name,
        "quantity": 2,
        "unit_price": Decimal("40.00"),
        "total_price": Decimal("80.00"),
    }


# ============================================================================
# Repository
# ============================================================================


class TestInvoiceRepository:
    """Test invoice rows in the store."""

    @pytest.mark.asyncio
    async def test_invoice_with_items(self, repository):
        order_id = uuid4()
        invoice = await repository.create_invoice(**_header(order_id, "INV-20240601-0001"))
        await repository.add_items(invoice.id, [_line()])

        loaded = await repository.get_by_order(order_id)

        assert loaded.invoice_number == "INV-20240601-0001"
        (line,) = loaded.items
        assert line.product_name == "Chair"
        assert line.total_price == Decimal("80.00")

    @pytest.mark.asyncio
    async def test_taken_number_is_rejected(self, repository):
        await repository.create_invoice(**_header(uuid4(), "INV-20240601-0001"))
        other_order = uuid4()

        with pytest.raises(ConstraintViolationError):
            await repository.create_invoice(**_header(other_order, "INV-20240601-0001"))

        # The session was rolled back and keeps working
        assert await repository.get_by_order(other_order) is None

    @pytest.mark.asyncio
    async def test_second_invoice_for_order_is_rejected(self, repository):
        order_id = uuid4()
        first = await repository.create_invoice(**_header(order_id, "INV-20240601-0001"))
        first_id = first.id

        with pytest.raises(ConstraintViolationError):
            await repository.create_invoice(**_header(order_id, "INV-20240601-0002"))

        assert (await repository.get_by_order(order_id)).id == first_id

    @pytest.mark.asyncio
    async def test_update_status(self, repository):
        invoice = await repository.create_invoice(**_header(uuid4(), "INV-20240601-0001"))

        updated = await repository.update_status(invoice.id, InvoiceStatus.PAID)

        assert updated.status == InvoiceStatus.PAID
        assert await repository.update_status(uuid4(), InvoiceStatus.PAID) is None

    @pytest.mark.asyncio
    async def test_delete_removes_items(self, repository):
        invoice = await repository.create_invoice(**_header(uuid4(), "INV-20240601-0001"))
        invoice_id = invoice.id
        await repository.add_items(invoice_id, [_line(), _line(name="Table")])

        assert await repository.delete_invoice(invoice_id) is True
        assert await repository.get_invoice(invoice_id) is None
        assert await repository.delete_invoice(invoice_id) is False


# ============================================================================
# Synthesizer
# ============================================================================


class TestSynthesizerAfterCollision:
    """Test invoice creation once a taken number rolled the session back."""

    @pytest.mark.asyncio
    async def test_creates_invoice_with_next_number(self, repository, seed, settings, db_session):
        product = Product(id=uuid4(), name="Chair", price=Decimal("40.00"), stock=5)
        order = Order(
            id=uuid4(),
            order_number="ORD-1001",
            status=OrderStatus.COMPLETED,
            customer_email="joana@example.com",
            total_amount=Decimal("95.00"),
            tax_amount=Decimal("10.00"),
            shipping_amount=Decimal("5.00"),
        )
        await seed(
            product,
            order,
            OrderItem(
                order_id=order.id,
                product_id=product.id,
                quantity=2,
                unit_price=Decimal("40.00"),
            ),
        )
        order_id = order.id
        await repository.create_invoice(**_header(uuid4(), "INV-20240601-0001"))
        synthesizer = InvoiceSynthesizer(db_session, settings)

        with patch.object(
            synthesizer,
            "generate_invoice_number",
            side_effect=["INV-20240601-0001", "INV-20240601-0002"],
        ):
            invoice = await synthesizer.sync(order_id)

        response = InvoiceResponse.model_validate(invoice)
        assert response.invoice_number == "INV-20240601-0002"
        assert response.order_id == order_id
        assert response.status == InvoiceStatus.PAID
        assert response.customer_email == "joana@example.com"
        assert response.subtotal == Decimal("80.00")
        assert [line.product_name for line in response.items] == ["Chair"]
