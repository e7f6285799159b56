"""Order state machine with transition validation and declared side effects.

Validates order status changes against the central transition table and
describes, per target status, the side effects a change triggers together
with their failure policy. The controller persists the status first and
then runs the effects built here.
"""

import uuid
from functools import partial
from typing import Any, Callable, Dict, Optional, Set

from fulfillment.core.exceptions import ConflictError
from fulfillment.core.logging import get_logger
from fulfillment.database.models.order import Order
from fulfillment.services.effects import EffectPolicy, SideEffect
from fulfillment.services.inventory.ledger import StockLedger, item_quantities
from fulfillment.services.invoices.synthesizer import InvoiceSynthesizer
from fulfillment.services.orders.enums import (
    OrderStatus,
    get_allowed_order_transitions,
    validate_order_status_transition,
)
from fulfillment.services.orders.repository import OrderRepository

logger = get_logger(__name__)

# Order statuses whose invoice must exist once reached.
INVOICED_ORDER_STATUSES = frozenset({OrderStatus.COMPLETED})


class StateTransitionError(ConflictError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"

    def __init__(
        self,
        message: str,
        current_state: OrderStatus,
        target_state: OrderStatus,
        **context: Any,
    ):
        super().__init__(
            message,
            current_status=current_state.value,
            target_status=target_state.value,
            **context,
        )
        self.current_state = current_state
        self.target_state = target_state


class OrderStateMachine:
    """State machine for order status transitions.

    Side effects by target status:

    - CONFIRMED: reserve raw materials (best effort)
    - CANCELLED: return reserved raw materials (best effort)
    - COMPLETED: create or update the invoice, then consume stock (both
      best effort, stock only when the order was not already Completed)

    Every other real change refreshes an existing invoice, and every
    request appends a history row (best effort).
    """

    def __init__(
        self,
        repository: OrderRepository,
        invoices: InvoiceSynthesizer,
        stock: StockLedger,
    ):
        self.repository = repository
        self.invoices = invoices
        self.stock = stock
        self._side_effects: Dict[
            OrderStatus,
            Callable[[Order, OrderStatus], list[SideEffect]],
        ] = self._initialize_side_effects()

    def _initialize_side_effects(
        self,
    ) -> Dict[OrderStatus, Callable[[Order, OrderStatus], list[SideEffect]]]:
        return {
            OrderStatus.CONFIRMED: self._effects_confirmed,
            OrderStatus.CANCELLED: self._effects_cancelled,
            OrderStatus.COMPLETED: self._effects_completed,
        }

    def validate_transition(self, order: Order, target_status: OrderStatus) -> bool:
        """Validate if a transition to the target status is allowed.

        Args:
            order: Order in its current state
            target_status: Desired target status

        Returns:
            True if the transition is valid

        Raises:
            StateTransitionError: If the transition is invalid
        """
        current_status = order.status
        if not validate_order_status_transition(current_status, target_status):
            allowed = get_allowed_order_transitions(current_status)
            raise StateTransitionError(
                f"Invalid transition from {current_status.value} to "
                f"{target_status.value}",
                current_state=current_status,
                target_state=target_status,
                order_id=str(order.id),
                allowed_transitions=sorted(status.value for status in allowed),
            )
        return True

    def get_allowed_transitions(self, order: Order) -> Set[OrderStatus]:
        return get_allowed_order_transitions(order.status)

    def build_side_effects(
        self,
        order: Order,
        old_status: OrderStatus,
        actor_id: Optional[uuid.UUID],
        notes: Optional[str] = None,
    ) -> list[SideEffect]:
        """Describe the side effects of a persisted status change.

        Args:
            order: Order after the status write
            old_status: Status before the write
            actor_id: User who requested the change
            notes: Free text stored in the history row

        Returns:
            Side effects in execution order
        """
        new_status = order.status
        effects: list[SideEffect] = []

        if new_status != old_status:
            factory = self._side_effects.get(new_status)
            if factory is not None:
                effects.extend(factory(order, old_status))
            if new_status not in INVOICED_ORDER_STATUSES:
                effects.append(
                    SideEffect(
                        name="refresh_invoice",
                        action=partial(
                            self.invoices.sync, order.id, create_if_missing=False
                        ),
                        policy=EffectPolicy.BEST_EFFORT,
                    )
                )

        effects.append(
            SideEffect(
                name="record_history",
                action=partial(
                    self.repository.add_status_history,
                    order.id,
                    old_status,
                    new_status,
                    actor_id,
                    notes,
                ),
                policy=EffectPolicy.BEST_EFFORT,
            )
        )
        return effects

    # Side effects

    def _effects_confirmed(self, order: Order, old_status: OrderStatus) -> list[SideEffect]:
        return [
            SideEffect(
                name="allocate_materials",
                action=partial(
                    self.stock.allocate_for_order, order.id, item_quantities(order.items)
                ),
                policy=EffectPolicy.BEST_EFFORT,
            )
        ]

    def _effects_cancelled(self, order: Order, old_status: OrderStatus) -> list[SideEffect]:
        return [
            SideEffect(
                name="reverse_allocations",
                action=partial(self.stock.reverse_allocations, order.id),
                policy=EffectPolicy.BEST_EFFORT,
            )
        ]

    def _effects_completed(self, order: Order, old_status: OrderStatus) -> list[SideEffect]:
        effects = [
            SideEffect(
                name="sync_invoice",
                action=partial(self.invoices.sync, order.id),
                policy=EffectPolicy.BEST_EFFORT,
            )
        ]
        if old_status != OrderStatus.COMPLETED:
            effects.append(
                SideEffect(
                    name="subtract_stock",
                    action=partial(
                        self.stock.subtract_on_completion,
                        order.id,
                        item_quantities(order.items),
                    ),
                    policy=EffectPolicy.BEST_EFFORT,
                )
            )
        return effects
