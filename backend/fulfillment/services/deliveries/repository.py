"""
Delivery data access repository.

The store holds at most one delivery per order; a second insert for the same
order surfaces as ConstraintViolationError.
"""

import uuid
from datetime import date
from typing import Any, Optional, Sequence

from sqlalchemy import delete, select, update
from sqlalchemy.exc import SQLAlchemyError

from fulfillment.core.logging import get_logger
from fulfillment.database.models.delivery import Delivery
from fulfillment.database.repository import BaseRepository
from fulfillment.services.orders.enums import DeliveryStatus

logger = get_logger(__name__)


class DeliveryRepository(BaseRepository):
    """Repository for delivery assignments."""

    async def get_delivery(self, delivery_id: uuid.UUID) -> Optional[Delivery]:
        """
        Get delivery by ID.

        Raises:
            RepositoryError: If query fails
        """
        try:
            result = await self.session.execute(
                select(Delivery)
                .where(Delivery.id == delivery_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._fail("fetch delivery", e, delivery_id=str(delivery_id))

    async def get_by_order(self, order_id: uuid.UUID) -> Optional[Delivery]:
        """Get the delivery assigned to an order, if any."""
        try:
            result = await self.session.execute(
                select(Delivery).where(Delivery.order_id == order_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._fail("fetch delivery by order", e, order_id=str(order_id))

    async def create_delivery(
        self,
        order_id: uuid.UUID,
        rider_id: uuid.UUID,
        delivery_date: date,
        quantity: int = 1,
        notes: Optional[str] = None,
        order_number: Optional[str] = None,
        customer_name: Optional[str] = None,
        created_by: Optional[str] = None,
    ) -> Delivery:
        """
        Insert a delivery in Assigned status.

        Raises:
            ConstraintViolationError: If the order already has a delivery
            RepositoryError: If the insert fails
        """
        delivery = Delivery(
            order_id=order_id,
            rider_id=rider_id,
            status=DeliveryStatus.ASSIGNED,
            delivery_date=delivery_date,
            quantity=quantity,
            notes=notes,
            order_number=order_number,
            customer_name=customer_name,
            created_by=created_by,
        )
        try:
            self.session.add(delivery)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._fail(
                "insert delivery",
                e,
                order_id=str(order_id),
                rider_id=str(rider_id),
            )

        logger.info(
            "Delivery created",
            delivery_id=str(delivery.id),
            order_id=str(order_id),
            rider_id=str(rider_id),
        )
        return delivery

    async def update_delivery(
        self,
        delivery_id: uuid.UUID,
        **values: Any,
    ) -> Optional[Delivery]:
        """
        Update delivery columns in a single statement.

        Returns:
            Updated delivery, None if no row matched

        Raises:
            RepositoryError: If the update fails
        """
        try:
            result = await self.session.execute(
                update(Delivery)
                .where(Delivery.id == delivery_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._fail(
                "update delivery",
                e,
                delivery_id=str(delivery_id),
                fields=sorted(values),
            )

        if result.rowcount == 0:
            return None
        return await self.get_delivery(delivery_id)

    async def delete_delivery(self, delivery_id: uuid.UUID) -> bool:
        """
        Delete a delivery.

        Returns:
            True if a row was deleted

        Raises:
            RepositoryError: If the delete fails
        """
        try:
            result = await self.session.execute(
                delete(Delivery).where(Delivery.id == delivery_id)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._fail("delete delivery", e, delivery_id=str(delivery_id))

        deleted = result.rowcount > 0
        if deleted:
            logger.info("Delivery deleted", delivery_id=str(delivery_id))
        return deleted

    async def list_deliveries(
        self,
        status: Optional[DeliveryStatus] = None,
        skip: int = 0,
        limit: int = 100,
    ) -> Sequence[Delivery]:
        """List deliveries, newest first, optionally filtered by status."""
        stmt = select(Delivery).order_by(Delivery.created_at.desc())
        if status is not None:
            stmt = stmt.where(Delivery.status == status)

        try:
            result = await self.session.execute(stmt.offset(skip).limit(limit))
            return result.scalars().all()
        except SQLAlchemyError as e:
            await self._fail(
                "list deliveries",
                e,
                status=status.value if status else None,
            )

    async def list_for_rider(self, rider_id: uuid.UUID) -> Sequence[Delivery]:
        """List a rider's deliveries by delivery date."""
        try:
            result = await self.session.execute(
                select(Delivery)
                .where(Delivery.rider_id == rider_id)
                .order_by(Delivery.delivery_date.asc(), Delivery.created_at.asc())
            )
            return result.scalars().all()
        except SQLAlchemyError as e:
            await self._fail("list rider deliveries", e, rider_id=str(rider_id))
