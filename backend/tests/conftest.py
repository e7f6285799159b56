"""
Pytest configuration and shared test fixtures.

Provides in-memory stand-ins for the repositories so the fulfillment
services can be exercised end to end without a database, plus factories
for orders, riders, stock and identities, an API client whose
dependencies are wired to the same in-memory store, and a real async
session on a throwaway SQLite database for the SQL repositories.
"""

import os

os.environ.setdefault("APP_ENVIRONMENT", "test")

import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, AsyncGenerator, Callable, Generator, Optional, Sequence
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from fulfillment.core.config import Settings, get_settings
from fulfillment.core.exceptions import ConstraintViolationError, RepositoryError
from fulfillment.core.permissions import Identity, UserRole
from fulfillment.database.models import Base
from fulfillment.database.models.delivery import Delivery, Rider
from fulfillment.database.models.inventory import (
    MaterialAllocation,
    Product,
    ProductBOM,
    RawMaterial,
)
from fulfillment.database.models.invoice import SalesInvoice, SalesInvoiceItem
from fulfillment.database.models.order import Order, OrderItem, OrderStatusHistory
from fulfillment.services.deliveries.service import DeliveryAssignmentManager
from fulfillment.services.inventory.ledger import StockLedger
from fulfillment.services.invoices.synthesizer import InvoiceSynthesizer
from fulfillment.services.orders.enums import (
    AllocationStatus,
    DeliveryStatus,
    InvoiceStatus,
    OrderStatus,
    RiderStatus,
    StockItemKind,
)
from fulfillment.services.orders.service import OrderStatusController
from fulfillment.services.riders.registry import RiderAvailabilityRegistry

ADMIN_EMAIL = "owner@example.com"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# In-memory store
# ============================================================================


class FakeStore:
    """
    Shared in-memory tables behind the fake repositories.

    Failures can be injected per repository method with ``fail`` and code
    can be run right before a method with ``before``.
    """

    def __init__(self):
        self.orders: dict[uuid.UUID, Order] = {}
        self.history: list[OrderStatusHistory] = []
        self.deliveries: dict[uuid.UUID, Delivery] = {}
        self.riders: dict[uuid.UUID, Rider] = {}
        self.invoices: dict[uuid.UUID, SalesInvoice] = {}
        self.products: dict[uuid.UUID, Product] = {}
        self.raw_materials: dict[uuid.UUID, RawMaterial] = {}
        self.boms: list[ProductBOM] = []
        self.allocations: dict[uuid.UUID, MaterialAllocation] = {}
        self.calls: list[str] = []
        self._failures: dict[str, list[Exception]] = {}
        self._hooks: dict[str, Callable[[], None]] = {}

    def fail(self, method: str, error: Optional[Exception] = None, times: int = 1) -> None:
        error = error or RepositoryError(f"{method} failed")
        self._failures.setdefault(method, []).extend([error] * times)

    def before(self, method: str, hook: Callable[[], None]) -> None:
        self._hooks[method] = hook

    def enter(self, method: str) -> None:
        self.calls.append(method)
        hook = self._hooks.pop(method, None)
        if hook is not None:
            hook()
        pending = self._failures.get(method)
        if pending:
            raise pending.pop(0)

    def table(self, kind: StockItemKind) -> dict:
        if kind == StockItemKind.PRODUCT:
            return self.products
        return self.raw_materials

    # Factories

    def add_product(
        self,
        stock: int = 10,
        name: str = "Widget",
        price: Decimal = Decimal("25.00"),
    ) -> Product:
        product = Product(
            id=uuid.uuid4(),
            name=name,
            description=f"{name} description",
            price=price,
            stock=stock,
        )
        self.products[product.id] = product
        return product

    def add_raw_material(self, stock: Decimal = Decimal("100"), name: str = "Steel") -> RawMaterial:
        material = RawMaterial(id=uuid.uuid4(), name=name, unit="kg", stock=Decimal(stock))
        self.raw_materials[material.id] = material
        return material

    def add_bom(
        self,
        product: Product,
        material: RawMaterial,
        quantity_per_unit: Decimal,
    ) -> ProductBOM:
        row = ProductBOM(
            id=uuid.uuid4(),
            product_id=product.id,
            raw_material_id=material.id,
            quantity_per_unit=Decimal(quantity_per_unit),
        )
        self.boms.append(row)
        return row

    def add_order(
        self,
        status: OrderStatus = OrderStatus.PENDING,
        items: Sequence[tuple[Product, int, Decimal]] = (),
        user_id: Optional[uuid.UUID] = None,
        total_amount: Decimal = Decimal("0.00"),
        tax_amount: Decimal = Decimal("0.00"),
        shipping_amount: Decimal = Decimal("0.00"),
        subtotal: Optional[Decimal] = None,
    ) -> Order:
        order_id = uuid.uuid4()
        order = Order(
            id=order_id,
            order_number=f"ORD-{str(order_id)[:8].upper()}",
            user_id=user_id or uuid.uuid4(),
            status=status,
            delivery_status=None,
            total_amount=total_amount,
            subtotal=subtotal,
            tax_amount=tax_amount,
            shipping_amount=shipping_amount,
            customer_name="Jane Customer",
            customer_email="jane@example.com",
            customer_phone="555-0100",
            shipping_address={"street": "1 Main St", "city": "Springfield"},
            payment_method="cash",
            delivery_method="delivery",
            created_at=_now(),
            updated_at=_now(),
        )
        order.items = [
            OrderItem(
                id=uuid.uuid4(),
                order_id=order_id,
                product_id=product.id,
                product=product,
                quantity=quantity,
                unit_price=Decimal(unit_price),
            )
            for product, quantity, unit_price in items
        ]
        self.orders[order.id] = order
        return order

    def add_rider(
        self,
        status: RiderStatus = RiderStatus.AVAILABLE,
        user_id: Optional[uuid.UUID] = None,
        name: str = "Ray Rider",
    ) -> Rider:
        rider = Rider(
            id=uuid.uuid4(),
            user_id=user_id or uuid.uuid4(),
            name=name,
            cellphone_number="555-0199",
            status=status,
        )
        self.riders[rider.id] = rider
        return rider

    def invoices_for(self, order_id: uuid.UUID) -> list[SalesInvoice]:
        return [invoice for invoice in self.invoices.values() if invoice.order_id == order_id]

    def history_for(self, order_id: uuid.UUID) -> list[OrderStatusHistory]:
        return [entry for entry in self.history if entry.order_id == order_id]

    def allocations_for(
        self,
        order_id: uuid.UUID,
        status: Optional[AllocationStatus] = None,
    ) -> list[MaterialAllocation]:
        return [
            allocation
            for allocation in self.allocations.values()
            if allocation.order_id == order_id
            and (status is None or allocation.status == status)
        ]

    def active_deliveries_for(self, rider_id: uuid.UUID) -> list[Delivery]:
        return [
            delivery
            for delivery in self.deliveries.values()
            if delivery.rider_id == rider_id and delivery.status.is_active()
        ]


# ============================================================================
# Fake repositories
# ============================================================================


class FakeOrderRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def get_order(self, order_id, include_history=False):
        self.store.enter("get_order")
        return self.store.orders.get(order_id)

    async def update_order(self, order_id, **values):
        self.store.enter("update_order")
        order = self.store.orders.get(order_id)
        if order is None:
            return None
        for key, value in values.items():
            setattr(order, key, value)
        order.updated_at = _now()
        return order

    async def add_status_history(self, order_id, old_status, new_status, changed_by, notes=None):
        self.store.enter("add_status_history")
        entry = OrderStatusHistory(
            id=uuid.uuid4(),
            order_id=order_id,
            old_status=old_status,
            new_status=new_status,
            changed_by=changed_by,
            notes=notes,
            created_at=_now(),
        )
        self.store.history.append(entry)
        return entry

    async def get_status_history(self, order_id):
        self.store.enter("get_status_history")
        return list(reversed(self.store.history_for(order_id)))

    async def list_pending_without_delivery(self):
        self.store.enter("list_pending_without_delivery")
        assigned = {delivery.order_id for delivery in self.store.deliveries.values()}
        return [
            order
            for order in self.store.orders.values()
            if order.status == OrderStatus.PENDING and order.id not in assigned
        ]


class FakeInvoiceRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def get_invoice(self, invoice_id):
        self.store.enter("get_invoice")
        return self.store.invoices.get(invoice_id)

    async def get_by_order(self, order_id):
        self.store.enter("get_invoice_by_order")
        matches = self.store.invoices_for(order_id)
        return matches[0] if matches else None

    async def create_invoice(self, **fields):
        self.store.enter("create_invoice")
        for invoice in self.store.invoices.values():
            if (
                invoice.order_id == fields["order_id"]
                or invoice.invoice_number == fields["invoice_number"]
            ):
                raise ConstraintViolationError("insert invoice violated a constraint")
        invoice = SalesInvoice(id=uuid.uuid4(), invoice_date=_now(), **fields)
        invoice.items = []
        self.store.invoices[invoice.id] = invoice
        return invoice

    async def add_items(self, invoice_id, items):
        self.store.enter("add_invoice_items")
        invoice = self.store.invoices[invoice_id]
        rows = [
            SalesInvoiceItem(id=uuid.uuid4(), sales_invoice_id=invoice_id, **item)
            for item in items
        ]
        invoice.items.extend(rows)
        return rows

    async def update_status(self, invoice_id, status):
        self.store.enter("update_invoice_status")
        invoice = self.store.invoices.get(invoice_id)
        if invoice is None:
            return None
        invoice.status = status
        return invoice

    async def delete_invoice(self, invoice_id):
        self.store.enter("delete_invoice")
        return self.store.invoices.pop(invoice_id, None) is not None


class FakeStockRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def apply_delta(self, kind, item_id, delta):
        self.store.enter("apply_delta")
        item = self.store.table(kind).get(item_id)
        if item is None or item.stock + delta < 0:
            return None
        item.stock = item.stock + delta
        return item.stock

    async def subtract_clamped(self, kind, item_id, quantity):
        self.store.enter("subtract_clamped")
        item = self.store.table(kind).get(item_id)
        if item is None:
            return None
        item.stock = max(item.stock - quantity, 0)
        return item.stock

    async def get_stock(self, kind, item_id):
        self.store.enter("get_stock")
        item = self.store.table(kind).get(item_id)
        return item.stock if item is not None else None

    async def get_bill_of_materials(self, product_ids):
        self.store.enter("get_bill_of_materials")
        wanted = set(product_ids)
        return [row for row in self.store.boms if row.product_id in wanted]

    async def get_allocations(self, order_id, status):
        self.store.enter("get_allocations")
        return self.store.allocations_for(order_id, status)

    async def create_allocations(self, order_id, quantities):
        self.store.enter("create_allocations")
        rows = []
        for material_id, quantity in quantities.items():
            row = MaterialAllocation(
                id=uuid.uuid4(),
                order_id=order_id,
                raw_material_id=material_id,
                quantity=quantity,
                status=AllocationStatus.ALLOCATED,
            )
            self.store.allocations[row.id] = row
            rows.append(row)
        return rows

    async def set_allocation_status(self, allocation_ids, status):
        self.store.enter("set_allocation_status")
        count = 0
        for allocation_id in allocation_ids:
            allocation = self.store.allocations.get(allocation_id)
            if allocation is not None:
                allocation.status = status
                count += 1
        return count


class FakeRiderRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def get_rider(self, rider_id):
        self.store.enter("get_rider")
        return self.store.riders.get(rider_id)

    async def get_rider_by_user(self, user_id):
        self.store.enter("get_rider_by_user")
        for rider in self.store.riders.values():
            if rider.user_id == user_id:
                return rider
        return None

    async def list_by_status(self, status):
        self.store.enter("list_riders")
        return [rider for rider in self.store.riders.values() if rider.status == status]

    async def transition_status(self, rider_id, new_status, expected_status=None):
        self.store.enter("transition_rider_status")
        rider = self.store.riders.get(rider_id)
        if rider is None:
            return False
        if expected_status is not None and rider.status != expected_status:
            return False
        rider.status = new_status
        return True


class FakeDeliveryRepository:
    def __init__(self, store: FakeStore):
        self.store = store

    async def get_delivery(self, delivery_id):
        self.store.enter("get_delivery")
        return self.store.deliveries.get(delivery_id)

    async def get_by_order(self, order_id):
        self.store.enter("get_delivery_by_order")
        for delivery in self.store.deliveries.values():
            if delivery.order_id == order_id:
                return delivery
        return None

    async def create_delivery(self, order_id, rider_id, delivery_date, **fields):
        self.store.enter("create_delivery")
        for delivery in self.store.deliveries.values():
            if delivery.order_id == order_id:
                raise ConstraintViolationError("insert delivery violated a constraint")
        delivery = Delivery(
            id=uuid.uuid4(),
            order_id=order_id,
            rider_id=rider_id,
            delivery_date=delivery_date,
            status=DeliveryStatus.ASSIGNED,
            created_at=_now(),
            updated_at=_now(),
            **fields,
        )
        self.store.deliveries[delivery.id] = delivery
        return delivery

    async def update_delivery(self, delivery_id, **values):
        self.store.enter("update_delivery")
        delivery = self.store.deliveries.get(delivery_id)
        if delivery is None:
            return None
        for key, value in values.items():
            setattr(delivery, key, value)
        delivery.updated_at = _now()
        return delivery

    def detach(self, instance):
        pass

    async def delete_delivery(self, delivery_id):
        self.store.enter("delete_delivery")
        return self.store.deliveries.pop(delivery_id, None) is not None

    async def list_deliveries(self, status=None, skip=0, limit=100):
        self.store.enter("list_deliveries")
        rows = [
            delivery
            for delivery in self.store.deliveries.values()
            if status is None or delivery.status == status
        ]
        return rows[skip : skip + limit]

    async def list_for_rider(self, rider_id):
        self.store.enter("list_rider_deliveries")
        return [
            delivery
            for delivery in self.store.deliveries.values()
            if delivery.rider_id == rider_id
        ]


# ============================================================================
# Wiring
# ============================================================================


@dataclass
class FulfillmentWorld:
    """Fulfillment services sharing one in-memory store."""

    store: FakeStore
    settings: Settings
    controller: OrderStatusController
    invoices: InvoiceSynthesizer
    stock: StockLedger
    riders: RiderAvailabilityRegistry
    deliveries: DeliveryAssignmentManager


def build_world(settings: Settings) -> FulfillmentWorld:
    store = FakeStore()
    session = AsyncMock()
    orders = FakeOrderRepository(store)
    invoices = InvoiceSynthesizer(
        session,
        settings,
        repository=FakeInvoiceRepository(store),
        orders=orders,
    )
    stock = StockLedger(session, repository=FakeStockRepository(store))
    controller = OrderStatusController(
        session,
        settings,
        repository=orders,
        invoices=invoices,
        stock=stock,
    )
    riders = RiderAvailabilityRegistry(session, repository=FakeRiderRepository(store))
    deliveries = DeliveryAssignmentManager(
        session,
        settings,
        repository=FakeDeliveryRepository(store),
        riders=riders,
        orders=controller,
    )
    return FulfillmentWorld(
        store=store,
        settings=settings,
        controller=controller,
        invoices=invoices,
        stock=stock,
        riders=riders,
        deliveries=deliveries,
    )


@pytest.fixture
def settings() -> Settings:
    """Settings for tests with one configured administrator email."""
    return Settings(environment="test", admin_emails=[ADMIN_EMAIL])


@pytest.fixture
def world(settings: Settings) -> FulfillmentWorld:
    return build_world(settings)


@pytest.fixture
def store(world: FulfillmentWorld) -> FakeStore:
    return world.store


@pytest.fixture
def make_identity() -> Callable[..., Identity]:
    """
    Factory for authenticated callers.

    Example:
        def test_rider(make_identity):
            rider = make_identity(UserRole.RIDER)
    """

    def factory(
        role: UserRole = UserRole.ADMIN,
        user_id: Optional[uuid.UUID] = None,
        email: Optional[str] = None,
    ) -> Identity:
        return Identity(
            user_id=user_id or uuid.uuid4(),
            email=email or f"{role.value}@example.com",
            role=role,
        )

    return factory


@pytest.fixture
def admin(make_identity) -> Identity:
    return make_identity(UserRole.ADMIN)


@pytest.fixture
def delivery_date() -> date:
    return date(2024, 6, 1)


# ============================================================================
# API client
# ============================================================================


@dataclass
class ApiHarness:
    """Test client plus the identity every request is made as."""

    client: TestClient
    world: FulfillmentWorld
    identity: Identity

    def act_as(self, identity: Identity) -> None:
        self.identity = identity


@pytest.fixture
def api(world: FulfillmentWorld, admin: Identity) -> Generator[ApiHarness, None, None]:
    """
    Test client with authentication and services wired to the fake store.

    Example:
        def test_health(api):
            assert api.client.get("/health").status_code == 200
    """
    from fulfillment.api.deps import (
        get_current_identity,
        get_delivery_manager,
        get_invoice_synthesizer,
        get_order_controller,
    )
    from fulfillment.database.connection import get_db
    from fulfillment.main import app

    harness = ApiHarness(client=None, world=world, identity=admin)

    async def fake_db() -> Any:
        yield AsyncMock()

    app.dependency_overrides[get_db] = fake_db
    app.dependency_overrides[get_settings] = lambda: world.settings
    app.dependency_overrides[get_current_identity] = lambda: harness.identity
    app.dependency_overrides[get_order_controller] = lambda: world.controller
    app.dependency_overrides[get_delivery_manager] = lambda: world.deliveries
    app.dependency_overrides[get_invoice_synthesizer] = lambda: world.invoices

    with TestClient(app, raise_server_exceptions=False) as client:
        harness.client = client
        yield harness

    app.dependency_overrides.clear()


# ============================================================================
# Database
# ============================================================================


@pytest_asyncio.fixture
async def db_session(tmp_path) -> AsyncGenerator[AsyncSession, None]:
    """
    Async session on a throwaway SQLite database with the full schema.

    Configured like the application session factory, so commits keep
    loaded rows and rollbacks expire them.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'fulfillment.db'}")
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def seed(db_session: AsyncSession) -> Callable[..., Any]:
    """
    Insert rows and commit them.

    Example:
        async def test_rider(seed):
            rider = await seed(Rider(user_id=uuid.uuid4()))
    """

    async def insert(*rows: Any) -> Any:
        db_session.add_all(rows)
        await db_session.commit()
        return rows[0] if len(rows) == 1 else rows

    return insert


@pytest.fixture
def break_table(db_session: AsyncSession) -> Callable[[str], Any]:
    """Drop a table so every later statement against it fails in the store."""

    async def drop(table_name: str) -> None:
        await db_session.execute(text(f"DROP TABLE {table_name}"))
        await db_session.commit()

    return drop
