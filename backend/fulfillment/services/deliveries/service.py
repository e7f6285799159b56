"""
Delivery assignment manager.

Creates, updates and removes deliveries and keeps the linked order and rider
in step: a new delivery puts its order On Delivery and takes its rider out
of the pool; a finished or deleted delivery gives the rider back. Order
status changes are delegated to the order status controller.
"""

import uuid
from datetime import date
from functools import partial
from typing import Any, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.config import Settings, get_settings
from fulfillment.core.exceptions import (
    AuthorizationError,
    ConflictError,
    ConstraintViolationError,
    DependencyFailure,
    NotFoundError,
    RepositoryError,
    ValidationError,
)
from fulfillment.core.logging import get_logger, log_performance
from fulfillment.core.permissions import (
    DELIVERY_MANAGEMENT_ROLES,
    Identity,
    UserRole,
    has_any_role,
)
from fulfillment.database.models.delivery import Delivery, Rider
from fulfillment.database.models.order import Order
from fulfillment.services.deliveries.repository import DeliveryRepository
from fulfillment.services.effects import EffectPolicy, SideEffect, run_effects
from fulfillment.services.orders.enums import (
    RIDER_SETTABLE_DELIVERY_STATUSES,
    STAFF_SETTABLE_DELIVERY_STATUSES,
    DeliveryStatus,
    OrderStatus,
    get_allowed_delivery_transitions,
    order_status_for_delivery,
    validate_delivery_status_transition,
)
from fulfillment.services.orders.service import OrderStatusController
from fulfillment.services.riders.registry import (
    RiderAvailabilityRegistry,
    RiderUnavailableError,
)

logger = get_logger(__name__)

EDITABLE_FIELDS = frozenset({"delivery_date", "quantity", "notes", "status"})


class DeliveryAssignmentManager:
    """Owns delivery records and their effect on orders and riders."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Optional[Settings] = None,
        repository: Optional[DeliveryRepository] = None,
        riders: Optional[RiderAvailabilityRegistry] = None,
        orders: Optional[OrderStatusController] = None,
    ):
        self.settings = settings or get_settings()
        self.repository = repository or DeliveryRepository(session)
        self.riders = riders or RiderAvailabilityRegistry(session)
        self.orders = orders or OrderStatusController(session, self.settings)

    async def get_delivery(self, delivery_id: uuid.UUID) -> Delivery:
        """
        Get a delivery or fail.

        Raises:
            NotFoundError: If the delivery does not exist
        """
        delivery = await self.repository.get_delivery(delivery_id)
        if delivery is None:
            raise NotFoundError("Delivery not found", delivery_id=str(delivery_id))
        return delivery

    async def create(
        self,
        order_id: uuid.UUID,
        rider_id: uuid.UUID,
        delivery_date: date,
        quantity: int = 1,
        notes: Optional[str] = None,
        actor_id: Optional[uuid.UUID] = None,
    ) -> Delivery:
        """
        Assign a Pending order to an Available rider.

        All preconditions are checked before anything is written. After the
        delivery insert, the order moves to On Delivery; if that fails the
        delivery is deleted again. The rider is then claimed; losing the
        rider to a concurrent assignment undoes the order and delivery
        writes, while a storage failure on the rider write is only logged.

        Args:
            order_id: Order to deliver
            rider_id: Rider to assign
            delivery_date: Planned delivery date
            quantity: Number of packages
            notes: Free text for the rider
            actor_id: User making the assignment

        Returns:
            Created delivery

        Raises:
            ValidationError: If quantity is not positive
            NotFoundError: If the order or rider does not exist
            ConflictError: If the order is not Pending, already has a
                delivery, or the rider is not Available
            DependencyFailure: If a store write fails
        """
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1", quantity=quantity)

        order = await self.orders.get_order(order_id)
        if order.status != OrderStatus.PENDING:
            raise ConflictError(
                "Only pending orders can be assigned for delivery",
                order_id=str(order_id),
                status=order.status.value,
            )

        existing = await self.repository.get_by_order(order_id)
        if existing is not None:
            raise ConflictError(
                "Order already has a delivery",
                order_id=str(order_id),
                delivery_id=str(existing.id),
            )

        await self.riders.ensure_available(rider_id)

        with log_performance(
            logger,
            "create_delivery",
            order_id=str(order_id),
            rider_id=str(rider_id),
        ):
            delivery = await self._insert(
                order, rider_id, delivery_date, quantity, notes, actor_id
            )
            delivery_id = delivery.id

            await run_effects(
                [
                    SideEffect(
                        name="mark_order_on_delivery",
                        action=partial(
                            self.orders.mark_on_delivery,
                            order_id,
                            actor_id,
                            DeliveryStatus.ASSIGNED,
                        ),
                        policy=EffectPolicy.COMPENSATE,
                        compensation=partial(
                            self.orders.revert_to_pending,
                            order_id,
                            actor_id,
                            "Delivery assignment rolled back",
                        ),
                    ),
                    SideEffect(
                        name="assign_rider",
                        action=partial(self.riders.assign, rider_id),
                        policy=EffectPolicy.BEST_EFFORT,
                        escalate_on=(RiderUnavailableError,),
                    ),
                ],
                operation="create_delivery",
                applied=[
                    SideEffect.applied(
                        "insert_delivery",
                        partial(self.repository.delete_delivery, delivery_id),
                    )
                ],
                order_id=str(order_id),
                rider_id=str(rider_id),
                delivery_id=str(delivery_id),
            )

        # A failed rider write rolls the session back and expires the row.
        return await self.get_delivery(delivery_id)

    async def _insert(
        self,
        order: Order,
        rider_id: uuid.UUID,
        delivery_date: date,
        quantity: int,
        notes: Optional[str],
        actor_id: Optional[uuid.UUID],
    ) -> Delivery:
        order_id = order.id
        try:
            return await self.repository.create_delivery(
                order_id=order_id,
                rider_id=rider_id,
                delivery_date=delivery_date,
                quantity=quantity,
                notes=notes,
                order_number=order.order_number,
                customer_name=order.customer_name,
                created_by=str(actor_id) if actor_id else None,
            )
        except ConstraintViolationError as e:
            raise ConflictError(
                "Order already has a delivery",
                order_id=str(order_id),
            ) from e
        except RepositoryError as e:
            raise DependencyFailure(
                "Failed to create delivery",
                order_id=str(order_id),
                rider_id=str(rider_id),
            ) from e

    async def update(
        self,
        delivery_id: uuid.UUID,
        changes: dict[str, Any],
        actor: Identity,
    ) -> Delivery:
        """
        Apply an admin edit to a delivery.

        Args:
            delivery_id: Delivery identifier
            changes: Any of delivery_date, quantity, notes and status
            actor: Caller making the edit

        Returns:
            Updated delivery

        Raises:
            ValidationError: If no field is given, a field is unknown, or the
                status is not settable by staff
            NotFoundError: If the delivery does not exist
            ConflictError: If the status transition is not allowed
        """
        changes = {key: value for key, value in changes.items() if value is not None}
        if not changes:
            raise ValidationError(
                "At least one field must be provided",
                delivery_id=str(delivery_id),
            )

        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(
                "Unknown delivery fields",
                delivery_id=str(delivery_id),
                fields=sorted(unknown),
            )

        new_status = changes.pop("status", None)
        if new_status is not None and new_status not in STAFF_SETTABLE_DELIVERY_STATUSES:
            raise ValidationError(
                f"Status {new_status.value} cannot be set on a delivery",
                delivery_id=str(delivery_id),
                status=new_status.value,
            )
        if "quantity" in changes and changes["quantity"] < 1:
            raise ValidationError("Quantity must be at least 1", quantity=changes["quantity"])

        delivery = await self.get_delivery(delivery_id)
        if new_status is not None:
            self._validate_transition(delivery, new_status)

        if changes:
            delivery = await self._write(
                delivery_id, updated_by=str(actor.user_id), **changes
            )

        if new_status is not None:
            delivery = await self.update_status(delivery_id, new_status, actor)

        return delivery

    async def update_status(
        self,
        delivery_id: uuid.UUID,
        new_status: DeliveryStatus,
        actor: Identity,
    ) -> Delivery:
        """
        Change delivery status and propagate it to the order and rider.

        Riders may move their own deliveries to In Transit or Delivered;
        delivery managers may also mark any delivery Failed. The order
        mirrors every change; Delivered completes the order and frees the
        rider, Failed only frees the rider. Propagation is best effort.

        Raises:
            NotFoundError: If the delivery, or the caller's rider record,
                does not exist
            AuthorizationError: If the caller may not change this delivery
            ValidationError: If the caller may not set this status
            ConflictError: If the transition is not allowed
            DependencyFailure: If the status write fails
        """
        delivery = await self.get_delivery(delivery_id)
        allowed = await self._settable_statuses(delivery, actor)
        if new_status not in allowed:
            raise ValidationError(
                f"Status {new_status.value} cannot be set by this user",
                delivery_id=str(delivery_id),
                status=new_status.value,
                allowed_statuses=sorted(status.value for status in allowed),
            )
        old_status = delivery.status
        order_id = delivery.order_id
        rider_id = delivery.rider_id
        self._validate_transition(delivery, new_status)

        await self._write(delivery_id, status=new_status, updated_by=str(actor.user_id))

        effects = [
            SideEffect(
                name="mirror_delivery_status",
                action=partial(self.orders.mirror_delivery_status, order_id, new_status),
            )
        ]
        if new_status != old_status:
            if order_status_for_delivery(new_status) == OrderStatus.COMPLETED:
                effects.append(
                    SideEffect(
                        name="complete_order",
                        action=partial(
                            self.orders.complete,
                            order_id,
                            actor.user_id,
                            "Delivered",
                        ),
                    )
                )
            if new_status.is_terminal():
                effects.append(
                    SideEffect(
                        name="release_rider",
                        action=partial(self.riders.release, rider_id),
                    )
                )

        await run_effects(
            effects,
            operation="update_delivery_status",
            delivery_id=str(delivery_id),
            order_id=str(order_id),
            rider_id=str(rider_id),
            new_status=new_status.value,
        )

        logger.info(
            "Delivery status updated",
            delivery_id=str(delivery_id),
            old_status=old_status.value,
            new_status=new_status.value,
            actor_id=str(actor.user_id),
        )
        return await self.get_delivery(delivery_id)

    async def report_progress(
        self,
        delivery_id: uuid.UUID,
        new_status: DeliveryStatus,
        actor: Identity,
    ) -> Delivery:
        """
        Apply a status change reported through the rider endpoint.

        Only In Transit and Delivered can be reported this way, whatever the
        caller's role; marking a delivery Failed goes through the delivery
        management endpoint.

        Raises:
            ValidationError: If the status is not one riders report
        """
        if new_status not in RIDER_SETTABLE_DELIVERY_STATUSES:
            raise ValidationError(
                f"Status {new_status.value} cannot be reported by a rider",
                delivery_id=str(delivery_id),
                status=new_status.value,
                allowed_statuses=sorted(
                    status.value for status in RIDER_SETTABLE_DELIVERY_STATUSES
                ),
            )
        return await self.update_status(delivery_id, new_status, actor)

    async def delete(self, delivery_id: uuid.UUID, actor: Identity) -> Delivery:
        """
        Remove a delivery, returning its order to Pending and, when the
        delivery was still active, its rider to the pool. Both follow-ups are
        best effort.

        A finished delivery no longer holds its rider, who may already be out
        on another one, so the rider is left as is.

        Returns:
            The deleted delivery

        Raises:
            NotFoundError: If the delivery does not exist
            DependencyFailure: If the delete fails
        """
        delivery = await self.get_delivery(delivery_id)
        self.repository.detach(delivery)

        try:
            deleted = await self.repository.delete_delivery(delivery_id)
        except RepositoryError as e:
            raise DependencyFailure(
                "Failed to delete delivery",
                delivery_id=str(delivery_id),
            ) from e
        if not deleted:
            raise NotFoundError("Delivery not found", delivery_id=str(delivery_id))

        effects = [
            SideEffect(
                name="revert_order_to_pending",
                action=partial(
                    self.orders.revert_to_pending,
                    delivery.order_id,
                    actor.user_id,
                    "Delivery removed",
                ),
            )
        ]
        if delivery.status.is_active():
            effects.append(
                SideEffect(
                    name="release_rider",
                    action=partial(self.riders.release, delivery.rider_id),
                )
            )

        await run_effects(
            effects,
            operation="delete_delivery",
            delivery_id=str(delivery_id),
            order_id=str(delivery.order_id),
            rider_id=str(delivery.rider_id),
            delivery_status=delivery.status.value,
        )
        return delivery

    async def list_deliveries(
        self,
        status: Optional[DeliveryStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Sequence[Delivery]:
        return await self.repository.list_deliveries(status=status, skip=skip, limit=limit)

    async def list_rider_deliveries(self, user_id: uuid.UUID) -> Sequence[Delivery]:
        """
        List the deliveries of the rider behind a user account.

        Raises:
            NotFoundError: If the user has no rider record
        """
        rider = await self.riders.get_rider_for_user(user_id)
        return await self.repository.list_for_rider(rider.id)

    async def pending_orders(self) -> Sequence[Order]:
        """Orders waiting for a delivery assignment."""
        return await self.orders.repository.list_pending_without_delivery()

    async def available_riders(self) -> Sequence[Rider]:
        return await self.riders.list_available()

    async def _settable_statuses(
        self,
        delivery: Delivery,
        actor: Identity,
    ) -> frozenset:
        if has_any_role(actor, DELIVERY_MANAGEMENT_ROLES, self.settings):
            return STAFF_SETTABLE_DELIVERY_STATUSES

        if actor.role != UserRole.RIDER:
            raise AuthorizationError(
                "Not allowed to update deliveries",
                user_id=str(actor.user_id),
            )

        rider = await self.riders.get_rider_for_user(actor.user_id)
        if delivery.rider_id != rider.id:
            raise AuthorizationError(
                "Delivery is assigned to another rider",
                delivery_id=str(delivery.id),
                user_id=str(actor.user_id),
            )
        return RIDER_SETTABLE_DELIVERY_STATUSES

    def _validate_transition(self, delivery: Delivery, new_status: DeliveryStatus) -> None:
        if not validate_delivery_status_transition(delivery.status, new_status):
            allowed = get_allowed_delivery_transitions(delivery.status)
            raise ConflictError(
                f"Invalid delivery transition from {delivery.status.value} "
                f"to {new_status.value}",
                delivery_id=str(delivery.id),
                current_status=delivery.status.value,
                target_status=new_status.value,
                allowed_transitions=sorted(status.value for status in allowed),
            )

    async def _write(self, delivery_id: uuid.UUID, **values: Any) -> Delivery:
        try:
            updated = await self.repository.update_delivery(delivery_id, **values)
        except RepositoryError as e:
            raise DependencyFailure(
                "Failed to update delivery",
                delivery_id=str(delivery_id),
                fields=sorted(values),
            ) from e
        if updated is None:
            raise NotFoundError("Delivery not found", delivery_id=str(delivery_id))
        return updated
