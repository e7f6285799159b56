"""Stock ledger.

Sole writer of product and raw-material counters. Confirmation reserves raw
materials through the bill of materials, cancellation returns them, and
completion consumes finished-good stock. No counter is ever driven below
zero.
"""

import math
import uuid
from collections import defaultdict
from dataclasses import dataclass, field
from decimal import Decimal
from functools import partial
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from fulfillment.core.exceptions import (
    FulfillmentError,
    InsufficientStockError,
    NotFoundError,
    RepositoryError,
)
from fulfillment.core.logging import get_logger
from fulfillment.database.models.inventory import MaterialAllocation, ProductBOM
from fulfillment.services.effects import EffectPolicy, SideEffect, run_effects
from fulfillment.services.inventory.repository import Quantity, StockRepository
from fulfillment.services.orders.enums import AllocationStatus, StockItemKind

logger = get_logger(__name__)


@dataclass(frozen=True)
class ItemQuantity:
    """Product and quantity of one order line."""

    product_id: uuid.UUID
    quantity: int


def item_quantities(items: Iterable[Any]) -> list[ItemQuantity]:
    """Copy order lines into plain values that outlive the session state."""
    return [ItemQuantity(item.product_id, item.quantity) for item in items]


@dataclass
class StockAdjustment:
    """One counter change made by the ledger."""

    kind: StockItemKind
    item_id: uuid.UUID
    delta: Quantity
    new_stock: Optional[Quantity] = None


@dataclass
class StockAdjustmentResult:
    """Outcome of a multi-counter ledger operation."""

    adjustments: list[StockAdjustment] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors


def expand_bill_of_materials(
    items: Iterable[Any],
    bom_rows: Iterable[ProductBOM],
) -> dict[uuid.UUID, Decimal]:
    """Compute raw material needs for order items.

    Each item needs ``ceil(quantity * quantity_per_unit)`` of every material
    in its product's bill of materials; needs are summed per material.

    Args:
        items: Objects with ``product_id`` and ``quantity``
        bom_rows: Bill-of-materials rows for the items' products

    Returns:
        Required quantity per raw material
    """
    bom_by_product: dict[uuid.UUID, list[ProductBOM]] = defaultdict(list)
    for row in bom_rows:
        bom_by_product[row.product_id].append(row)

    needed: dict[uuid.UUID, Decimal] = defaultdict(Decimal)
    for item in items:
        for row in bom_by_product.get(item.product_id, []):
            amount = Decimal(item.quantity) * Decimal(row.quantity_per_unit)
            needed[row.raw_material_id] += Decimal(math.ceil(amount))

    return {material_id: qty for material_id, qty in needed.items() if qty > 0}


class StockLedger:
    """Owns every stock counter mutation."""

    def __init__(
        self,
        session: AsyncSession,
        repository: Optional[StockRepository] = None,
    ):
        self.repository = repository or StockRepository(session)

    async def apply_delta(
        self,
        kind: StockItemKind,
        item_id: uuid.UUID,
        delta: Quantity,
    ) -> Quantity:
        """
        Apply a signed delta to one counter.

        Args:
            kind: Counter family
            item_id: Product or raw material identifier
            delta: Signed quantity to add

        Returns:
            New stock value

        Raises:
            NotFoundError: If the item does not exist
            InsufficientStockError: If the counter would go negative
            RepositoryError: If the store write fails
        """
        new_stock = await self.repository.apply_delta(kind, item_id, delta)
        if new_stock is not None:
            return new_stock

        current = await self.repository.get_stock(kind, item_id)
        if current is None:
            raise NotFoundError(
                "Stock item not found",
                kind=kind.value,
                item_id=str(item_id),
            )
        raise InsufficientStockError(
            "Insufficient stock",
            kind=kind.value,
            item_id=str(item_id),
            available=current,
            requested=-delta,
        )

    async def _material_needs(self, items: Sequence[Any]) -> dict[uuid.UUID, Decimal]:
        product_ids = list({item.product_id for item in items})
        bom_rows = await self.repository.get_bill_of_materials(product_ids)
        return expand_bill_of_materials(items, bom_rows)

    async def allocate_for_order(
        self,
        order_id: uuid.UUID,
        items: Sequence[Any],
    ) -> Sequence[MaterialAllocation]:
        """
        Reserve raw materials for an order through its bill of materials.

        All-or-nothing: if any material is short or a write fails, the
        reservations already made are returned before the error propagates.
        Calling it again for an order with active allocations is a no-op.

        Args:
            order_id: Order identifier
            items: Order items with ``product_id`` and ``quantity``

        Returns:
            Allocation rows held for the order

        Raises:
            InsufficientStockError: If a material is short
            NotFoundError: If a material row is missing
            DependencyFailure: If a store write fails
        """
        existing = await self.repository.get_allocations(
            order_id, AllocationStatus.ALLOCATED
        )
        if existing:
            logger.info(
                "Materials already allocated",
                order_id=str(order_id),
                allocation_count=len(existing),
            )
            return existing

        needs = await self._material_needs(items)
        if not needs:
            logger.info("No bill of materials for order", order_id=str(order_id))
            return []

        steps = [
            SideEffect(
                name=f"reserve_{material_id}",
                action=partial(
                    self.apply_delta, StockItemKind.RAW_MATERIAL, material_id, -quantity
                ),
                policy=EffectPolicy.COMPENSATE,
                compensation=partial(
                    self.repository.apply_delta,
                    StockItemKind.RAW_MATERIAL,
                    material_id,
                    quantity,
                ),
            )
            for material_id, quantity in needs.items()
        ]
        steps.append(
            SideEffect(
                name="record_allocations",
                action=partial(self.repository.create_allocations, order_id, needs),
                policy=EffectPolicy.COMPENSATE,
            )
        )

        report = await run_effects(
            steps,
            operation="allocate_materials",
            order_id=str(order_id),
        )

        logger.info(
            "Materials allocated",
            order_id=str(order_id),
            material_count=len(needs),
        )
        return report.result_of("record_allocations")

    async def reverse_allocations(self, order_id: uuid.UUID) -> StockAdjustmentResult:
        """
        Return an order's reserved materials to stock.

        Each allocation is restored and marked Released independently; the
        ones that fail stay Allocated and are reported in the result.
        """
        result = StockAdjustmentResult()
        allocations = await self.repository.get_allocations(
            order_id, AllocationStatus.ALLOCATED
        )

        released: list[uuid.UUID] = []
        for allocation in allocations:
            try:
                new_stock = await self.apply_delta(
                    StockItemKind.RAW_MATERIAL,
                    allocation.raw_material_id,
                    allocation.quantity,
                )
            except (FulfillmentError, RepositoryError) as e:
                result.errors.append(
                    f"Failed to restore raw material {allocation.raw_material_id}: {e}"
                )
                continue

            released.append(allocation.id)
            result.adjustments.append(
                StockAdjustment(
                    kind=StockItemKind.RAW_MATERIAL,
                    item_id=allocation.raw_material_id,
                    delta=allocation.quantity,
                    new_stock=new_stock,
                )
            )

        await self.repository.set_allocation_status(released, AllocationStatus.RELEASED)

        logger.info(
            "Allocations reversed",
            order_id=str(order_id),
            released=len(released),
            failed=len(result.errors),
        )
        return result

    async def subtract_on_completion(
        self,
        order_id: uuid.UUID,
        items: Sequence[Any],
    ) -> StockAdjustmentResult:
        """
        Consume stock for a completed order.

        Finished-good stock drops by each item's quantity, stopping at zero.
        Raw materials reserved at confirmation are marked Consumed; when
        nothing was reserved, the bill-of-materials needs are subtracted
        directly, also stopping at zero. Failures are collected, not raised.

        Args:
            order_id: Order identifier
            items: Order items with ``product_id`` and ``quantity``

        Returns:
            Adjustments made and errors met
        """
        result = StockAdjustmentResult()

        for item in items:
            await self._subtract(result, StockItemKind.PRODUCT, item.product_id, item.quantity)

        try:
            allocations = await self.repository.get_allocations(
                order_id, AllocationStatus.ALLOCATED
            )
            if allocations:
                await self.repository.set_allocation_status(
                    [allocation.id for allocation in allocations],
                    AllocationStatus.CONSUMED,
                )
            else:
                needs = await self._material_needs(items)
                for material_id, quantity in needs.items():
                    await self._subtract(
                        result, StockItemKind.RAW_MATERIAL, material_id, quantity
                    )
        except RepositoryError as e:
            result.errors.append(f"Failed to consume raw materials: {e}")

        if result.errors:
            logger.error(
                "Stock subtraction completed with errors",
                order_id=str(order_id),
                errors=result.errors,
            )
        else:
            logger.info(
                "Stock subtracted for completed order",
                order_id=str(order_id),
                adjustments=len(result.adjustments),
            )
        return result

    async def _subtract(
        self,
        result: StockAdjustmentResult,
        kind: StockItemKind,
        item_id: uuid.UUID,
        quantity: Quantity,
    ) -> None:
        try:
            new_stock = await self.repository.subtract_clamped(kind, item_id, quantity)
        except RepositoryError as e:
            result.errors.append(f"Failed to update {kind.value} {item_id}: {e}")
            return

        if new_stock is None:
            result.errors.append(f"{kind.value} {item_id} not found")
            return

        result.adjustments.append(
            StockAdjustment(kind=kind, item_id=item_id, delta=-quantity, new_stock=new_stock)
        )
