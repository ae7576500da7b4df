import asyncio
import os
import pytest
import pytest_asyncio
from decimal import Decimal
from sqlalchemy import text

from shopfront.core.errors import InsufficientStock
from shopfront.data.database import Base, Database
from shopfront.data.models import Address, Product, User
from shopfront.services.orders import CartLine, OrderService

# Row locks need a real server; SQLite serialises writers differently.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(
        not TEST_DATABASE_URL.startswith("postgresql"),
        reason="TEST_DATABASE_URL must point at PostgreSQL",
    ),
]

@pytest_asyncio.fixture
async def pg_database():
    db = Database(TEST_DATABASE_URL)
    async with db.engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    yield db
    await db.dispose()

async def _seed(db: Database, stock: int):
    async with db.unit_of_work() as session:
        users = [User(username=f"buyer{i}", email=f"buyer{i}@example.com", password="x") for i in range(2)]
        session.add_all(users)
        await session.flush()
        addresses = [Address(user_id=u.id, address="1 Main St", phone="555", city="Town") for u in users]
        product = Product(name="Limited", price=Decimal("10.00"), discount=Decimal("0"), stock_quantity=stock)
        session.add_all(addresses + [product])
    return users, addresses, product

async def _stock(db: Database, product_id: int) -> int:
    async with db.session() as session:
        return await session.scalar(text("SELECT stock_quantity FROM products WHERE id = :id"), {"id": product_id})

@pytest.mark.asyncio
async def test_concurrent_orders_cannot_oversell(pg_database):
    users, addresses, product = await _seed(pg_database, stock=5)
    service = OrderService(pg_database, transaction_timeout=10)

    results = await asyncio.gather(
        *(
            service.place_order(user.id, address.id, [CartLine(product.id, 3)])
            for user, address in zip(users, addresses)
        ),
        return_exceptions=True,
    )

    placed = [r for r in results if not isinstance(r, Exception)]
    rejected = [r for r in results if isinstance(r, InsufficientStock)]
    assert len(placed) == 1
    assert len(rejected) == 1
    assert rejected[0].available == 2
    assert await _stock(pg_database, product.id) == 2

@pytest.mark.asyncio
async def test_concurrent_orders_within_stock_both_succeed(pg_database):
    users, addresses, product = await _seed(pg_database, stock=6)
    service = OrderService(pg_database, transaction_timeout=10)

    results = await asyncio.gather(
        *(
            service.place_order(user.id, address.id, [CartLine(product.id, 3)])
            for user, address in zip(users, addresses)
        )
    )

    assert len(results) == 2
    assert await _stock(pg_database, product.id) == 0
