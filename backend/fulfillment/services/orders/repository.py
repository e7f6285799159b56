"""
Order data access repository.

Reads orders with their items, applies single-statement status updates and
appends status history rows. Every write commits on its own.
"""

import uuid
from typing import Any, Optional, Sequence

from sqlalchemy import exists, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import selectinload

from fulfillment.core.logging import get_logger
from fulfillment.database.models.delivery import Delivery
from fulfillment.database.models.order import Order, OrderStatusHistory
from fulfillment.database.repository import BaseRepository
from fulfillment.services.orders.enums import OrderStatus

logger = get_logger(__name__)


class OrderRepository(BaseRepository):
    """Repository for order reads, status writes and history."""

    async def get_order(
        self,
        order_id: uuid.UUID,
        include_history: bool = False,
    ) -> Optional[Order]:
        """
        Get order by ID with its items.

        Args:
            order_id: Order identifier
            include_history: Whether to load status history

        Returns:
            Order if found, None otherwise

        Raises:
            RepositoryError: If query fails
        """
        try:
            stmt = (
                select(Order)
                .where(Order.id == order_id)
                .execution_options(populate_existing=True)
            )
            if include_history:
                stmt = stmt.options(selectinload(Order.status_history))

            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._fail("fetch order", e, order_id=str(order_id))

    async def update_order(
        self,
        order_id: uuid.UUID,
        **values: Any,
    ) -> Optional[Order]:
        """
        Update order columns in a single statement.

        Args:
            order_id: Order identifier
            **values: Column values to set

        Returns:
            Updated order, None if no row matched

        Raises:
            RepositoryError: If the update fails
        """
        try:
            result = await self.session.execute(
                update(Order)
                .where(Order.id == order_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._fail(
                "update order",
                e,
                order_id=str(order_id),
                fields=sorted(values),
            )

        if result.rowcount == 0:
            return None

        logger.info(
            "Order updated",
            order_id=str(order_id),
            fields=sorted(values),
            status=values["status"].value if "status" in values else None,
        )
        return await self.get_order(order_id)

    async def add_status_history(
        self,
        order_id: uuid.UUID,
        old_status: Optional[OrderStatus],
        new_status: OrderStatus,
        changed_by: Optional[uuid.UUID],
        notes: Optional[str] = None,
    ) -> OrderStatusHistory:
        """
        Append an audit row for a status change.

        Raises:
            RepositoryError: If the insert fails
        """
        entry = OrderStatusHistory(
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            changed_by=changed_by,
            notes=notes,
        )
        try:
            self.session.add(entry)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._fail("insert status history", e, order_id=str(order_id))

        return entry

    async def get_status_history(
        self,
        order_id: uuid.UUID,
    ) -> Sequence[OrderStatusHistory]:
        """Get status history for an order, newest first."""
        try:
            result = await self.session.execute(
                select(OrderStatusHistory)
                .where(OrderStatusHistory.order_id == order_id)
                .order_by(OrderStatusHistory.created_at.desc())
            )
            return result.scalars().all()
        except SQLAlchemyError as e:
            await self._fail("fetch status history", e, order_id=str(order_id))

    async def list_pending_without_delivery(self) -> Sequence[Order]:
        """
        Get Pending orders that have no delivery yet, oldest first.

        Raises:
            RepositoryError: If query fails
        """
        try:
            has_delivery = exists().where(Delivery.order_id == Order.id)
            result = await self.session.execute(
                select(Order)
                .where(Order.status == OrderStatus.PENDING, ~has_delivery)
                .order_by(Order.created_at.asc())
            )
            return result.scalars().all()
        except SQLAlchemyError as e:
            await self._fail("list pending orders", e)
