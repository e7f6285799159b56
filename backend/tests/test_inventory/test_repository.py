"""
Tests for StockRepository against a SQLite session.

Tests cover the guarded counter update, the clamped subtraction, bill of
materials reads and the allocation rows.
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from fulfillment.database.models.inventory import Product, ProductBOM, RawMaterial
from fulfillment.services.inventory.repository import StockRepository
from fulfillment.services.orders.enums import AllocationStatus, StockItemKind


@pytest.fixture
def repository(db_session):
    return StockRepository(db_session)


class TestApplyDelta:
    """Test the non-negative counter update."""

    @pytest.mark.asyncio
    async def test_positive_delta_returns_new_stock(self, repository, seed):
        product = await seed(Product(name="Table", price=Decimal("120.00"), stock=5))

        assert await repository.apply_delta(StockItemKind.PRODUCT, product.id, 3) == 8
        assert await repository.get_stock(StockItemKind.PRODUCT, product.id) == 8

    @pytest.mark.asyncio
    async def test_delta_down_to_zero(self, repository, seed):
        product = await seed(Product(name="Table", price=Decimal("120.00"), stock=5))

        assert await repository.apply_delta(StockItemKind.PRODUCT, product.id, -5) == 0

    @pytest.mark.asyncio
    async def test_negative_result_is_refused(self, repository, seed):
        product = await seed(Product(name="Table", price=Decimal("120.00"), stock=5))

        assert await repository.apply_delta(StockItemKind.PRODUCT, product.id, -6) is None
        assert await repository.get_stock(StockItemKind.PRODUCT, product.id) == 5

    @pytest.mark.asyncio
    async def test_missing_item_returns_none(self, repository):
        assert await repository.apply_delta(StockItemKind.PRODUCT, uuid4(), 1) is None
        assert await repository.get_stock(StockItemKind.PRODUCT, uuid4()) is None

    @pytest.mark.asyncio
    async def test_raw_material_counter(self, repository, seed):
        wood = await seed(RawMaterial(name="Wood", unit="kg", stock=Decimal("10.5")))

        new_stock = await repository.apply_delta(
            StockItemKind.RAW_MATERIAL, wood.id, Decimal("-2.5")
        )

        assert new_stock == Decimal("8")
        assert await repository.apply_delta(
            StockItemKind.RAW_MATERIAL, wood.id, Decimal("-9")
        ) is None


class TestSubtractClamped:
    """Test subtraction that stops at zero."""

    @pytest.mark.asyncio
    async def test_subtracts_within_stock(self, repository, seed):
        product = await seed(Product(name="Table", price=Decimal("120.00"), stock=5))

        assert await repository.subtract_clamped(StockItemKind.PRODUCT, product.id, 2) == 3

    @pytest.mark.asyncio
    async def test_clamps_at_zero(self, repository, seed):
        product = await seed(Product(name="Table", price=Decimal("120.00"), stock=2))

        assert await repository.subtract_clamped(StockItemKind.PRODUCT, product.id, 7) == 0
        assert await repository.get_stock(StockItemKind.PRODUCT, product.id) == 0

    @pytest.mark.asyncio
    async def test_missing_item_returns_none(self, repository):
        assert await repository.subtract_clamped(StockItemKind.PRODUCT, uuid4(), 1) is None


class TestMaterialsAndAllocations:
    """Test BOM reads and allocation state changes."""

    @pytest.mark.asyncio
    async def test_bill_of_materials_for_products(self, repository, seed):
        table = Product(id=uuid4(), name="Table", price=Decimal("120.00"), stock=5)
        chair = Product(id=uuid4(), name="Chair", price=Decimal("40.00"), stock=5)
        wood = RawMaterial(id=uuid4(), name="Wood", stock=Decimal("10"))
        await seed(
            table,
            chair,
            wood,
            ProductBOM(
                product_id=table.id,
                raw_material_id=wood.id,
                quantity_per_unit=Decimal("2.5"),
            ),
            ProductBOM(
                product_id=chair.id,
                raw_material_id=wood.id,
                quantity_per_unit=Decimal("1"),
            ),
        )

        rows = await repository.get_bill_of_materials([table.id])

        assert [(row.product_id, row.quantity_per_unit) for row in rows] == [
            (table.id, Decimal("2.5"))
        ]
        assert await repository.get_bill_of_materials([]) == []

    @pytest.mark.asyncio
    async def test_allocations_move_between_states(self, repository, seed):
        wood = await seed(RawMaterial(name="Wood", stock=Decimal("10")))
        order_id = uuid4()

        created = await repository.create_allocations(order_id, {wood.id: Decimal("3")})
        moved = await repository.set_allocation_status(
            [allocation.id for allocation in created], AllocationStatus.RELEASED
        )

        assert moved == 1
        assert await repository.get_allocations(order_id, AllocationStatus.ALLOCATED) == []
        (released,) = await repository.get_allocations(order_id, AllocationStatus.RELEASED)
        assert released.raw_material_id == wood.id
        assert released.quantity == Decimal("3")

    @pytest.mark.asyncio
    async def test_no_allocation_ids_updates_nothing(self, repository):
        assert await repository.set_allocation_status([], AllocationStatus.CONSUMED) == 0
