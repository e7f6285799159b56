"""
API tests for the order status endpoints.

Tests cover role guards, request validation, status codes for every
error family, and the response body of a status change.
"""

from decimal import Decimal
from uuid import uuid4

from fastapi import status

from fulfillment.core.permissions import UserRole
from fulfillment.services.orders.enums import OrderStatus

PREFIX = "/api/v1/orders"


# ============================================================================
# Reads
# ============================================================================


class TestGetOrderEndpoint:
    """Test GET /orders/{id}."""

    def test_returns_order_with_history(self, api, store):
        product = store.add_product()
        order = store.add_order(OrderStatus.PENDING, items=[(product, 2, Decimal("9.99"))])
        api.client.patch(f"{PREFIX}/{order.id}/status", json={"status": "Paid"})

        response = api.client.get(f"{PREFIX}/{order.id}")

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["status"] == "Paid"
        assert len(data["items"]) == 1
        assert [entry["new_status"] for entry in data["status_history"]] == ["Paid"]

    def test_unknown_order_is_404(self, api):
        response = api.client.get(f"{PREFIX}/{uuid4()}")

        assert response.status_code == status.HTTP_404_NOT_FOUND
        body = response.json()
        assert body["error"] == "NOT_FOUND"
        assert "request_id" in body

    def test_customer_cannot_read(self, api, store, make_identity):
        order = store.add_order()
        api.act_as(make_identity(UserRole.CUSTOMER))

        response = api.client.get(f"{PREFIX}/{order.id}")

        assert response.status_code == status.HTTP_403_FORBIDDEN


# ============================================================================
# Status changes
# ============================================================================


class TestUpdateStatusEndpoint:
    """Test PATCH /orders/{id}/status."""

    def test_sales_staff_sets_paid(self, api, store, make_identity):
        order = store.add_order(OrderStatus.PENDING)
        api.act_as(make_identity(UserRole.SALES_STAFF))

        response = api.client.patch(
            f"{PREFIX}/{order.id}/status", json={"status": "Paid", "notes": "cash"}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert data["order"]["status"] == "Paid"
        assert data["old_status"] == "Pending"
        assert data["changed"] is True
        assert data["failed_effects"] == []

    def test_accepts_member_names(self, api, store):
        order = store.add_order(OrderStatus.PENDING)

        response = api.client.patch(
            f"{PREFIX}/{order.id}/status", json={"status": "on_delivery"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["order"]["status"] == "On Delivery"

    def test_confirm_is_not_settable_here(self, api, store):
        order = store.add_order(OrderStatus.PENDING)

        response = api.client.patch(
            f"{PREFIX}/{order.id}/status", json={"status": "Confirmed"}
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["error"] == "VALIDATION_ERROR"

    def test_unknown_status_is_422(self, api, store):
        order = store.add_order(OrderStatus.PENDING)

        response = api.client.patch(
            f"{PREFIX}/{order.id}/status", json={"status": "Shipped"}
        )

        assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY

    def test_invalid_transition_is_409(self, api, store):
        order = store.add_order(OrderStatus.CANCELLED)

        response = api.client.patch(
            f"{PREFIX}/{order.id}/status", json={"status": "Pending"}
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        body = response.json()
        assert body["error"] == "INVALID_TRANSITION"
        assert body["details"]["current_status"] == "Cancelled"

    def test_store_failure_is_500(self, api, store):
        order = store.add_order(OrderStatus.PENDING)
        store.fail("update_order")

        response = api.client.patch(
            f"{PREFIX}/{order.id}/status", json={"status": "Paid"}
        )

        assert response.status_code == status.HTTP_500_INTERNAL_SERVER_ERROR
        assert response.json()["error"] == "DEPENDENCY_FAILURE"

    def test_failed_side_effect_is_reported(self, api, store):
        order = store.add_order(OrderStatus.PENDING)
        store.fail("add_status_history")

        response = api.client.patch(
            f"{PREFIX}/{order.id}/status", json={"status": "Paid"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["failed_effects"] == ["record_history"]

    def test_rider_is_forbidden(self, api, store, make_identity):
        order = store.add_order(OrderStatus.PENDING)
        api.act_as(make_identity(UserRole.RIDER))

        response = api.client.patch(
            f"{PREFIX}/{order.id}/status", json={"status": "Paid"}
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert store.orders[order.id].status == OrderStatus.PENDING

    def test_admin_email_overrides_role(self, api, store, make_identity):
        order = store.add_order(OrderStatus.PENDING)
        api.act_as(make_identity(UserRole.CUSTOMER, email="owner@example.com"))

        response = api.client.patch(
            f"{PREFIX}/{order.id}/status", json={"status": "Paid"}
        )

        assert response.status_code == status.HTTP_200_OK


class TestApprovalEndpoint:
    """Test POST /orders/{id}/approval."""

    def test_order_manager_confirms(self, api, store, make_identity):
        order = store.add_order(OrderStatus.PENDING)
        manager = make_identity(UserRole.ORDER_MANAGER)
        api.act_as(manager)

        response = api.client.post(
            f"{PREFIX}/{order.id}/approval", json={"status": "Confirmed"}
        )

        assert response.status_code == status.HTTP_200_OK
        data = response.json()["order"]
        assert data["status"] == "Confirmed"
        assert data["approved_by"] == str(manager.user_id)

    def test_sales_staff_cannot_approve(self, api, store, make_identity):
        order = store.add_order(OrderStatus.PENDING)
        api.act_as(make_identity(UserRole.SALES_STAFF))

        response = api.client.post(
            f"{PREFIX}/{order.id}/approval", json={"status": "Confirmed"}
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_paid_is_not_a_decision(self, api, store):
        order = store.add_order(OrderStatus.PENDING)

        response = api.client.post(f"{PREFIX}/{order.id}/approval", json={"status": "Paid"})

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestConvertQuotationEndpoint:
    """Test POST /orders/{id}/convert-quotation."""

    def test_converts_quotation(self, api, store):
        order = store.add_order(OrderStatus.QUOTED)

        response = api.client.post(f"{PREFIX}/{order.id}/convert-quotation")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["order"]["status"] == "Pending"

    def test_rejects_regular_order(self, api, store):
        order = store.add_order(OrderStatus.PENDING)

        response = api.client.post(f"{PREFIX}/{order.id}/convert-quotation")

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestCancelEndpoint:
    """Test POST /orders/{id}/cancel."""

    def test_customer_cancels_own_order(self, api, store, make_identity):
        customer = make_identity(UserRole.CUSTOMER)
        order = store.add_order(OrderStatus.PENDING, user_id=customer.user_id)
        api.act_as(customer)

        response = api.client.post(
            f"{PREFIX}/{order.id}/cancel", json={"notes": "changed my mind"}
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["order"]["status"] == "Cancelled"

    def test_cancel_without_body(self, api, store, make_identity):
        customer = make_identity(UserRole.CUSTOMER)
        order = store.add_order(OrderStatus.PENDING, user_id=customer.user_id)
        api.act_as(customer)

        response = api.client.post(f"{PREFIX}/{order.id}/cancel")

        assert response.status_code == status.HTTP_200_OK

    def test_other_customers_order_is_403(self, api, store, make_identity):
        order = store.add_order(OrderStatus.PENDING)
        api.act_as(make_identity(UserRole.CUSTOMER))

        response = api.client.post(f"{PREFIX}/{order.id}/cancel")

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.json()["error"] == "FORBIDDEN"

    def test_confirmed_order_cannot_be_cancelled_by_customer(
        self, api, store, make_identity
    ):
        customer = make_identity(UserRole.CUSTOMER)
        order = store.add_order(OrderStatus.CONFIRMED, user_id=customer.user_id)
        api.act_as(customer)

        response = api.client.post(f"{PREFIX}/{order.id}/cancel")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
