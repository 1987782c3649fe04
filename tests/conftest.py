"""
Shared fixtures for the order service tests.

Provides:
- engine / session_factory / db: in-memory SQLite Order Store with the tables created
- inventory: FakeInventory standing in for the product service client
- static_resolver: builds a resolver over a fixed product mapping
- scheduler: OrderStatusScheduler with a long delay window, shut down after each test
- service: OrderService wired to the fakes above
- make_order: persists an order with items in a given status
"""
import os

# Settings are read at import time: configure the environment first
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["OTEL_TRACING_ENABLED"] = "false"
os.environ["INTERNAL_API_KEY"] = "test-internal-key"

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shared.config import settings
from shared.config.database import Base
from services.order_service.clients import ProductDetail
from services.order_service.exceptions import CollaboratorError
from services.order_service.models import Order, OrderItem, OrderStatus, PaymentMethod
from services.order_service.product_resolver import ProductDetailResolver
from services.order_service.scheduler import OrderStatusScheduler
from services.order_service.service import OrderService


class FakeInventory:
    """In-memory product service. Records every stock call it receives."""

    def __init__(self):
        self.catalog: dict[str, ProductDetail] = {}
        self.unavailable: set[str] = set()
        self.decrease_calls: list[list[tuple[str, int]]] = []
        self.increase_calls: list[list[tuple[str, int]]] = []
        self.detail_calls: list[str] = []
        self.fail_decrease = False
        self.fail_increase = False

    def add_product(self, product_id, name="Widget", price=10.0, quantity=100, seller_id="seller-1"):
        self.catalog[product_id] = ProductDetail(
            product_id=product_id, name=name, price=price, quantity=quantity, seller_id=seller_id
        )

    async def decrease_stock(self, items):
        if self.fail_decrease:
            raise CollaboratorError("insufficient stock", code="product_service_error")
        self.decrease_calls.append([(i.product_id, i.quantity) for i in items])

    async def increase_stock(self, items):
        if self.fail_increase:
            raise CollaboratorError("Product service is unavailable", code="product_service_unavailable")
        self.increase_calls.append([(i.product_id, i.quantity) for i in items])

    async def get_product_detail(self, product_id):
        self.detail_calls.append(product_id)
        if product_id in self.unavailable or product_id not in self.catalog:
            raise CollaboratorError(f"Product {product_id} not found", code="product_service_error")
        return self.catalog[product_id]


class StaticResolver(ProductDetailResolver):
    """Resolver backed by a fixed mapping; unknown products resolve to None."""

    def __init__(self, details: dict[str, ProductDetail] | None = None):
        self.details = details or {}
        self.calls: list[str] = []

    async def resolve(self, product_id):
        self.calls.append(product_id)
        return self.details.get(product_id)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        execution_options={"schema_translate_map": {settings.ORDER_SCHEMA: None}},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def inventory():
    return FakeInventory()


@pytest.fixture
def static_resolver():
    """Builds a StaticResolver from a product_id -> ProductDetail mapping."""
    def _build(details=None):
        return StaticResolver(details)

    return _build


@pytest_asyncio.fixture
async def scheduler(session_factory):
    scheduler = OrderStatusScheduler(session_factory, min_delay_ms=60_000, max_delay_ms=60_000)
    yield scheduler
    await scheduler.shutdown()


@pytest.fixture
def service(inventory, scheduler):
    return OrderService(inventory, scheduler)


@pytest.fixture
def make_order(db):
    async def _make(
        user_id="user-1",
        status=OrderStatus.PENDING,
        items=(),
        shipping_address="1 Main St",
        payment_method=PaymentMethod.CARD,
        **fields,
    ) -> Order:
        order = Order(
            user_id=user_id,
            status=status,
            shipping_address=shipping_address,
            payment_method=payment_method,
            items=[OrderItem(**item) for item in items],
            **fields,
        )
        db.add(order)
        await db.commit()
        return order

    return _make
