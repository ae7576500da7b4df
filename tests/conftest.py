import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./shopfront-test.db")

import pytest
import pytest_asyncio
from decimal import Decimal
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from shopfront.core.config import Settings
from shopfront.core.security import create_access_token
from shopfront.data.database import Database
from shopfront.data.models import Address, Order, Product, Role, User
from shopfront.main import create_app
from shopfront.services.orders import OrderService

class FakeCache:
    """In-memory stand-in for RedisClient."""

    def __init__(self):
        self.orders = {}
        self.invalidated = []
        self.allow_requests = True

    async def connect(self):
        pass

    async def close(self):
        pass

    async def get_cached_order(self, order_id):
        return self.orders.get(order_id)

    async def set_cached_order(self, order_id, data, ttl=60):
        self.orders[order_id] = data

    async def invalidate_order(self, order_id):
        self.invalidated.append(order_id)
        self.orders.pop(order_id, None)

    async def check_rate_limit(self, client_key, limit, window):
        return self.allow_requests

class FakeProducer:
    """Records published events instead of talking to RabbitMQ."""

    def __init__(self):
        self.events = []

    async def connect(self):
        pass

    async def close(self):
        pass

    async def publish_order_created(self, order):
        self.events.append(("OrderCreated", order))

    async def publish_order_status_changed(self, order):
        self.events.append(("OrderStatusChanged", order))

class Seeder:
    """Writes fixture rows straight through the database."""

    def __init__(self, database: Database, settings: Settings):
        self.database = database
        self.settings = settings

    async def _save(self, obj):
        async with self.database.unit_of_work() as session:
            session.add(obj)
        return obj

    async def user(self, username="alice", role=Role.CUSTOMER) -> User:
        return await self._save(
            User(username=username, email=f"{username}@example.com", password="not-a-hash", role=role.value)
        )

    async def address(self, user: User, city="Lisbon", is_default=False) -> Address:
        return await self._save(
            Address(user_id=user.id, address="1 Rua Augusta", phone="+351000000", city=city, is_default=is_default)
        )

    async def product(self, name="Widget", price="100.00", discount="0", stock=5, category=None, **columns) -> Product:
        return await self._save(
            Product(
                name=name,
                price=Decimal(price),
                discount=Decimal(discount),
                stock_quantity=stock,
                category=category,
                **columns,
            )
        )

    async def stock_of(self, product_id: int) -> int:
        async with self.database.session() as session:
            return await session.scalar(select(Product.stock_quantity).where(Product.id == product_id))

    async def order_count(self) -> int:
        async with self.database.session() as session:
            return await session.scalar(select(func.count(Order.id)))

    def headers(self, user: User) -> dict:
        token = create_access_token(self.settings, user.id, user.role)
        return {"Authorization": f"Bearer {token}"}

@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'shop.db'}",
        JWT_SECRET="test-secret",
        ADMIN_USERNAME="admin",
        ADMIN_PASSWORD="admin-pass",
        ORDER_TRANSACTION_TIMEOUT_SECONDS=5.0,
        API_RATE_LIMIT_ENABLED=True,
    )

@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings.DATABASE_URL)
    await db.create_all()
    yield db
    await db.dispose()

@pytest.fixture
def service(database, settings) -> OrderService:
    return OrderService(database, transaction_timeout=settings.ORDER_TRANSACTION_TIMEOUT_SECONDS)

@pytest.fixture
def seed(database, settings) -> Seeder:
    return Seeder(database, settings)

@pytest.fixture
def cache() -> FakeCache:
    return FakeCache()

@pytest.fixture
def producer() -> FakeProducer:
    return FakeProducer()

@pytest.fixture
def app(settings, database, producer, cache):
    return create_app(settings, database=database, producer=producer, cache=cache)

@pytest_asyncio.fixture
async def client(app):
    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
