"""
Stock data access repository.

Counter writes are single UPDATE statements evaluated by the database, so a
decrement can never leave a counter below zero regardless of concurrent
writers.
"""

import uuid
from decimal import Decimal
from typing import Optional, Sequence, Union

from sqlalchemy import case, select, update
from sqlalchemy.exc import SQLAlchemyError

from fulfillment.core.logging import get_logger
from fulfillment.database.models.inventory import (
    MaterialAllocation,
    Product,
    ProductBOM,
    RawMaterial,
)
from fulfillment.database.repository import BaseRepository
from fulfillment.services.orders.enums import AllocationStatus, StockItemKind

logger = get_logger(__name__)

Quantity = Union[int, Decimal]

STOCK_MODELS = {
    StockItemKind.PRODUCT: Product,
    StockItemKind.RAW_MATERIAL: RawMaterial,
}


class StockRepository(BaseRepository):
    """Repository for stock counters, bills of materials and allocations."""

    async def apply_delta(
        self,
        kind: StockItemKind,
        item_id: uuid.UUID,
        delta: Quantity,
    ) -> Optional[Quantity]:
        """
        Add a delta to a stock counter unless the result would be negative.

        Args:
            kind: Counter family
            item_id: Product or raw material identifier
            delta: Signed quantity to add

        Returns:
            New stock value, None when the item is missing or the counter
            would go negative

        Raises:
            RepositoryError: If the update fails
        """
        model = STOCK_MODELS[kind]
        try:
            result = await self.session.execute(
                update(model)
                .where(model.id == item_id, model.stock + delta >= 0)
                .values(stock=model.stock + delta)
                .returning(model.stock)
                .execution_options(synchronize_session=False)
            )
            new_stock = result.scalar_one_or_none()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._fail(
                "apply stock delta",
                e,
                kind=kind.value,
                item_id=str(item_id),
                delta=str(delta),
            )
        return new_stock

    async def subtract_clamped(
        self,
        kind: StockItemKind,
        item_id: uuid.UUID,
        quantity: Quantity,
    ) -> Optional[Quantity]:
        """
        Subtract a quantity from a stock counter, stopping at zero.

        Returns:
            New stock value, None when the item is missing

        Raises:
            RepositoryError: If the update fails
        """
        model = STOCK_MODELS[kind]
        try:
            result = await self.session.execute(
                update(model)
                .where(model.id == item_id)
                .values(
                    stock=case(
                        (model.stock > quantity, model.stock - quantity),
                        else_=0,
                    )
                )
                .returning(model.stock)
                .execution_options(synchronize_session=False)
            )
            new_stock = result.scalar_one_or_none()
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._fail(
                "subtract stock",
                e,
                kind=kind.value,
                item_id=str(item_id),
                quantity=str(quantity),
            )
        return new_stock

    async def get_stock(
        self,
        kind: StockItemKind,
        item_id: uuid.UUID,
    ) -> Optional[Quantity]:
        """Get the current value of a stock counter, None if missing."""
        model = STOCK_MODELS[kind]
        try:
            result = await self.session.execute(
                select(model.stock).where(model.id == item_id)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self._fail("fetch stock", e, kind=kind.value, item_id=str(item_id))

    async def get_bill_of_materials(
        self,
        product_ids: Sequence[uuid.UUID],
    ) -> Sequence[ProductBOM]:
        """Get BOM rows for a set of products."""
        if not product_ids:
            return []
        try:
            result = await self.session.execute(
                select(ProductBOM).where(ProductBOM.product_id.in_(list(product_ids)))
            )
            return result.scalars().all()
        except SQLAlchemyError as e:
            await self._fail("fetch bill of materials", e, product_count=len(product_ids))

    async def get_allocations(
        self,
        order_id: uuid.UUID,
        status: AllocationStatus,
    ) -> Sequence[MaterialAllocation]:
        """Get an order's allocations in the given state."""
        try:
            result = await self.session.execute(
                select(MaterialAllocation).where(
                    MaterialAllocation.order_id == order_id,
                    MaterialAllocation.status == status,
                )
            )
            return result.scalars().all()
        except SQLAlchemyError as e:
            await self._fail(
                "fetch allocations",
                e,
                order_id=str(order_id),
                status=status.value,
            )

    async def create_allocations(
        self,
        order_id: uuid.UUID,
        quantities: dict[uuid.UUID, Decimal],
    ) -> list[MaterialAllocation]:
        """
        Record Allocated rows for an order in one commit.

        Args:
            order_id: Order identifier
            quantities: Allocated quantity per raw material

        Raises:
            RepositoryError: If the insert fails
        """
        allocations = [
            MaterialAllocation(
                order_id=order_id,
                raw_material_id=material_id,
                quantity=quantity,
                status=AllocationStatus.ALLOCATED,
            )
            for material_id, quantity in quantities.items()
        ]
        try:
            self.session.add_all(allocations)
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._fail("record allocations", e, order_id=str(order_id))
        return allocations

    async def set_allocation_status(
        self,
        allocation_ids: Sequence[uuid.UUID],
        status: AllocationStatus,
    ) -> int:
        """
        Move allocations to a new state.

        Returns:
            Number of rows updated

        Raises:
            RepositoryError: If the update fails
        """
        if not allocation_ids:
            return 0
        try:
            result = await self.session.execute(
                update(MaterialAllocation)
                .where(MaterialAllocation.id.in_(list(allocation_ids)))
                .values(status=status)
                .execution_options(synchronize_session=False)
            )
            await self.session.commit()
        except SQLAlchemyError as e:
            await self._fail(
                "update allocation status",
                e,
                allocation_count=len(allocation_ids),
                status=status.value,
            )
        return result.rowcount
