"""
API tests for the sales invoice endpoints.
"""

from decimal import Decimal
from uuid import uuid4

from fastapi import status

from fulfillment.core.permissions import UserRole
from fulfillment.services.orders.enums import OrderStatus

PREFIX = "/api/v1/sales-invoices"


class TestCreateInvoiceEndpoint:
    """Test POST /sales-invoices."""

    def test_invoices_completed_order(self, api, store):
        product = store.add_product(name="Lamp")
        order = store.add_order(OrderStatus.COMPLETED, items=[(product, 1, Decimal("30.00"))])

        response = api.client.post(PREFIX, json={"order_id": str(order.id)})

        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["status"] == "Paid"
        assert data["invoice_number"].startswith("INV-")
        assert data["items"][0]["product_name"] == "Lamp"

    def test_second_invoice_is_409(self, api, store):
        order = store.add_order(OrderStatus.COMPLETED)
        api.client.post(PREFIX, json={"order_id": str(order.id)})

        response = api.client.post(PREFIX, json={"order_id": str(order.id)})

        assert response.status_code == status.HTTP_409_CONFLICT

    def test_incomplete_order_is_400(self, api, store):
        order = store.add_order(OrderStatus.PAID)

        response = api.client.post(PREFIX, json={"order_id": str(order.id)})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_sales_manager_may_invoice(self, api, store, make_identity):
        order = store.add_order(OrderStatus.COMPLETED)
        api.act_as(make_identity(UserRole.SALES_MANAGER))

        response = api.client.post(PREFIX, json={"order_id": str(order.id)})

        assert response.status_code == status.HTTP_201_CREATED

    def test_rider_is_forbidden(self, api, store, make_identity):
        order = store.add_order(OrderStatus.COMPLETED)
        api.act_as(make_identity(UserRole.RIDER))

        response = api.client.post(PREFIX, json={"order_id": str(order.id)})

        assert response.status_code == status.HTTP_403_FORBIDDEN


class TestGetInvoiceEndpoint:
    """Test GET /sales-invoices/{id}."""

    def test_returns_invoice(self, api, store):
        order = store.add_order(OrderStatus.COMPLETED)
        invoice_id = api.client.post(PREFIX, json={"order_id": str(order.id)}).json()["id"]

        response = api.client.get(f"{PREFIX}/{invoice_id}")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["order_id"] == str(order.id)

    def test_unknown_invoice_is_404(self, api):
        response = api.client.get(f"{PREFIX}/{uuid4()}")

        assert response.status_code == status.HTTP_404_NOT_FOUND
