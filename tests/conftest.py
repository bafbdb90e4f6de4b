"""
Shared fixtures: a throwaway SQLite store, a fake Redis and fake peers.
"""

from unittest.mock import AsyncMock, Mock
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker

from erp_services import event_store
from erp_services.errors import NotFound
from erp_services.orders import commands as order_commands
from erp_services.orders.peers import OrderPeers, PaymentsClient, ProductsClient, UsersClient
from erp_services.products import commands as product_commands
from erp_services.products import queries as product_queries
from erp_services.users import commands as user_commands


class FakeClock:
    """Monotonic clock the tests move by hand."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/store.db", echo=False)
    for table in (user_commands.READ_MODEL, product_commands.READ_MODEL, order_commands.READ_MODEL):
        await event_store.create_schema(engine, table)
    yield sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def redis():
    fake = AsyncMock()
    fake.publish = AsyncMock(return_value=1)
    return fake


@pytest.fixture
def catalogue():
    """Products known to the fake Products service, by id."""
    return {
        uuid4(): {"name": "Widget", "price": 2.5, "stock": 10},
        uuid4(): {"name": "Gadget", "price": 10.0, "stock": 3},
    }


@pytest.fixture
def known_user():
    return uuid4()


@pytest.fixture
def peers(catalogue, known_user):
    users = Mock(spec=UsersClient)

    async def get_user(user_id: UUID):
        if user_id != known_user:
            raise NotFound(f"User {user_id} not found")
        return {"id": str(user_id), "name": "Ada Lovelace"}

    users.get_user = AsyncMock(side_effect=get_user)

    products = Mock(spec=ProductsClient)

    async def get_product(product_id: UUID):
        if product_id not in catalogue:
            raise NotFound(f"Product {product_id} not found")
        return {"id": str(product_id), **catalogue[product_id]}

    products.get_product = AsyncMock(side_effect=get_product)
    products.reserve_stock = AsyncMock(return_value={"reserved": 1})
    products.release_stock = AsyncMock(return_value={"released": 1})

    payments = Mock(spec=PaymentsClient)
    payments.capture = AsyncMock(return_value="pay-123")
    payments.refund = AsyncMock(return_value=None)

    return OrderPeers(users=users, products=products, payments=payments)


class StoreBackedProducts:
    """ProductsClient stand-in that runs the Products handlers on the test store."""

    def __init__(self, session_factory, redis):
        self._sessions = session_factory
        self._redis = redis

    async def get_product(self, product_id: UUID) -> dict:
        async with self._sessions() as session:
            return await product_queries.get_product(session, product_id)

    async def reserve_stock(self, product_id: UUID, order_id: UUID, reservation_id: UUID, quantity: int) -> dict:
        fields = {"order_id": str(order_id), "reservation_id": str(reservation_id), "quantity": quantity}
        async with self._sessions() as session:
            return await product_commands.reserve_stock(session, self._redis, product_id, fields)

    async def release_stock(self, product_id: UUID, order_id: UUID, reservation_id: UUID) -> dict:
        fields = {"order_id": str(order_id), "reservation_id": str(reservation_id)}
        async with self._sessions() as session:
            return await product_commands.release_stock(session, self._redis, product_id, fields)


@pytest.fixture
def store_peers(session_factory, redis, peers):
    """Peers whose Products calls hit the real stock reservation logic."""
    return OrderPeers(
        users=peers.users,
        products=StoreBackedProducts(session_factory, redis),
        payments=peers.payments,
    )
