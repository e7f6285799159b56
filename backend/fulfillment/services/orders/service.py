"""
Order status controller.

Single owner of order status. Every path that changes an order's status,
whether an admin request, a customer cancellation or a delivery event, goes
through OrderStatusController so the transition table, the status history
and the downstream invoice and stock effects stay consistent. The status
write is the primary mutation; everything after it follows the policy
declared by the state machine.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.config import Settings, get_settings
from fulfillment.core.exceptions import (
    AuthorizationError,
    DependencyFailure,
    NotFoundError,
    RepositoryError,
    ValidationError,
)
from fulfillment.core.logging import get_logger, log_performance
from fulfillment.core.permissions import Identity, is_privileged
from fulfillment.database.models.order import Order, OrderStatusHistory
from fulfillment.services.effects import EffectReport, run_effects
from fulfillment.services.inventory.ledger import StockLedger
from fulfillment.services.invoices.synthesizer import InvoiceSynthesizer
from fulfillment.services.orders.enums import (
    APPROVAL_ORDER_STATUSES,
    EXTERNALLY_SETTABLE_ORDER_STATUSES,
    DeliveryStatus,
    OrderStatus,
)
from fulfillment.services.orders.repository import OrderRepository
from fulfillment.services.orders.state_machine import OrderStateMachine

logger = get_logger(__name__)


@dataclass
class TransitionResult:
    """Order after a status change together with its side-effect report."""

    order: Order
    old_status: OrderStatus
    effects: EffectReport

    @property
    def changed(self) -> bool:
        return self.order.status != self.old_status


class OrderStatusController:
    """Applies order status changes and their side effects."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        repository: Optional[OrderRepository] = None,
        invoices: Optional[InvoiceSynthesizer] = None,
        stock: Optional[StockLedger] = None,
    ):
        """
        Initialize the controller.

        Args:
            session: Async database session
            settings: Application settings
            repository: Order repository, built from the session by default
            invoices: Invoice synthesizer, built from the session by default
            stock: Stock ledger, built from the session by default
        """
        self.settings = settings or get_settings()
        self.repository = repository or OrderRepository(session)
        self.invoices = invoices or InvoiceSynthesizer(
            session, self.settings, orders=self.repository
        )
        self.stock = stock or StockLedger(session)
        self.state_machine = OrderStateMachine(
            self.repository, self.invoices, self.stock
        )

    async def get_order(self, order_id: uuid.UUID) -> Order:
        """
        Get an order or fail.

        Raises:
            NotFoundError: If the order does not exist
        """
        order = await self.repository.get_order(order_id)
        if order is None:
            raise NotFoundError("Order not found", order_id=str(order_id))
        return order

    async def get_order_with_history(
        self,
        order_id: uuid.UUID,
    ) -> tuple[Order, Sequence[OrderStatusHistory]]:
        order = await self.get_order(order_id)
        history = await self.repository.get_status_history(order_id)
        return order, history

    async def set_status(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        actor_id: Optional[uuid.UUID],
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """
        Change order status through the general status endpoint.

        Only Pending, Paid and On Delivery may be set this way; confirmation
        and cancellation go through approval, completion through delivery.

        Args:
            order_id: Order identifier
            new_status: Requested status
            actor_id: User making the change
            notes: Optional history note

        Returns:
            Transition result

        Raises:
            ValidationError: If the status cannot be set on this path
            NotFoundError: If the order does not exist
            StateTransitionError: If the transition is not allowed
            DependencyFailure: If the status write fails
        """
        if new_status not in EXTERNALLY_SETTABLE_ORDER_STATUSES:
            raise ValidationError(
                f"Status {new_status.value} cannot be set directly",
                order_id=str(order_id),
                status=new_status.value,
                allowed_statuses=sorted(
                    status.value for status in EXTERNALLY_SETTABLE_ORDER_STATUSES
                ),
            )
        return await self._transition(order_id, new_status, actor_id, notes)

    async def approve(
        self,
        order_id: uuid.UUID,
        decision: OrderStatus,
        actor_id: Optional[uuid.UUID],
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """
        Apply an admin approval decision.

        Raises:
            ValidationError: If the decision is not Confirmed or Cancelled
        """
        if decision not in APPROVAL_ORDER_STATUSES:
            raise ValidationError(
                "Approval status must be Confirmed or Cancelled",
                order_id=str(order_id),
                status=decision.value,
            )
        if decision == OrderStatus.CONFIRMED:
            return await self.confirm(order_id, actor_id, notes)
        return await self.cancel(order_id, actor_id, notes)

    async def confirm(
        self,
        order_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """Confirm a Pending order and reserve its raw materials."""
        return await self._transition(
            order_id,
            OrderStatus.CONFIRMED,
            actor_id,
            notes,
            approved_by=actor_id,
            approved_at=datetime.now(timezone.utc),
        )

    async def cancel(
        self,
        order_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """Cancel an order and return its reserved raw materials."""
        return await self._transition(order_id, OrderStatus.CANCELLED, actor_id, notes)

    async def customer_cancel(
        self,
        order_id: uuid.UUID,
        identity: Identity,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """
        Cancel an order on behalf of the customer who placed it.

        Raises:
            NotFoundError: If the order does not exist
            AuthorizationError: If the caller does not own the order
            ValidationError: If the order is no longer Pending
        """
        order = await self.get_order(order_id)
        if order.user_id != identity.user_id and not is_privileged(
            identity, self.settings
        ):
            raise AuthorizationError(
                "Order does not belong to the caller",
                order_id=str(order_id),
                user_id=str(identity.user_id),
            )
        if order.status != OrderStatus.PENDING:
            raise ValidationError(
                "Only pending orders can be cancelled",
                order_id=str(order_id),
                status=order.status.value,
            )
        return await self.cancel(
            order_id, identity.user_id, notes or "Cancelled by customer"
        )

    async def complete(
        self,
        order_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
        notes: Optional[str] = None,
        delivery_status: Optional[DeliveryStatus] = None,
    ) -> TransitionResult:
        """Mark an order Completed, invoicing it and consuming its stock."""
        extra = {}
        if delivery_status is not None:
            extra["delivery_status"] = delivery_status
        return await self._transition(
            order_id, OrderStatus.COMPLETED, actor_id, notes, **extra
        )

    async def revert_to_pending(
        self,
        order_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """Return an order to Pending after its delivery was removed."""
        return await self._transition(
            order_id,
            OrderStatus.PENDING,
            actor_id,
            notes,
            delivery_status=None,
        )

    async def mark_on_delivery(
        self,
        order_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
        delivery_status: DeliveryStatus = DeliveryStatus.ASSIGNED,
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """Move an order to On Delivery when a delivery is assigned."""
        return await self._transition(
            order_id,
            OrderStatus.ON_DELIVERY,
            actor_id,
            notes,
            delivery_status=delivery_status,
        )

    async def convert_quotation(
        self,
        order_id: uuid.UUID,
        actor_id: Optional[uuid.UUID],
        notes: Optional[str] = None,
    ) -> TransitionResult:
        """
        Turn a quotation into a Pending order.

        Raises:
            ValidationError: If the order is not a quotation
        """
        order = await self.get_order(order_id)
        if order.status != OrderStatus.QUOTED:
            raise ValidationError(
                "Only quotations can be converted",
                order_id=str(order_id),
                status=order.status.value,
            )
        return await self._transition(
            order_id,
            OrderStatus.PENDING,
            actor_id,
            notes or "Converted from quotation",
        )

    async def mirror_delivery_status(
        self,
        order_id: uuid.UUID,
        delivery_status: Optional[DeliveryStatus],
    ) -> Order:
        """
        Copy a delivery status onto its order without changing order status.

        Raises:
            NotFoundError: If the order does not exist
            RepositoryError: If the write fails
        """
        order = await self.repository.update_order(
            order_id, delivery_status=delivery_status
        )
        if order is None:
            raise NotFoundError("Order not found", order_id=str(order_id))
        return order

    async def _transition(
        self,
        order_id: uuid.UUID,
        new_status: OrderStatus,
        actor_id: Optional[uuid.UUID],
        notes: Optional[str] = None,
        **extra: Any,
    ) -> TransitionResult:
        order = await self.get_order(order_id)
        old_status = order.status
        self.state_machine.validate_transition(order, new_status)

        with log_performance(
            logger,
            "order_transition",
            order_id=str(order_id),
            old_status=old_status.value,
            new_status=new_status.value,
        ):
            try:
                updated = await self.repository.update_order(
                    order_id, status=new_status, **extra
                )
            except RepositoryError as e:
                raise DependencyFailure(
                    "Failed to update order status",
                    order_id=str(order_id),
                    status=new_status.value,
                ) from e

            if updated is None:
                raise NotFoundError("Order not found", order_id=str(order_id))

            report = await run_effects(
                self.state_machine.build_side_effects(
                    updated, old_status, actor_id, notes
                ),
                operation="order_status_change",
                order_id=str(order_id),
                old_status=old_status.value,
                new_status=new_status.value,
            )

        if report.failures:
            logger.warning(
                "Order status changed with failed side effects",
                order_id=str(order_id),
                new_status=new_status.value,
                failed_effects=[outcome.name for outcome in report.failures],
                remediation="manual_reconciliation",
            )
        else:
            logger.info(
                "Order status changed",
                order_id=str(order_id),
                old_status=old_status.value,
                new_status=new_status.value,
                actor_id=str(actor_id) if actor_id else None,
            )

        # A failed store write inside an effect rolls the session back and
        # expires every loaded row, so the order is read again.
        order = await self.get_order(order_id)
        return TransitionResult(order=order, old_status=old_status, effects=report)
