"""
Test Suite Configuration
"""
from datetime import datetime, timezone
from typing import AsyncGenerator, Iterable, Optional, Tuple

import pytest
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from backoffice.analytics.timezone import TimezoneResolver
from backoffice.config import AnalyticsSettings, Settings
from backoffice.database.connection import create_session_factory
from backoffice.database.models import Base, Expense, Product, Store, Transaction, TransactionItem

UTC = timezone.utc

# Saturday, mid-day UTC
FIXED_NOW = datetime(2025, 3, 15, 12, 0, tzinfo=UTC)

STORE_ID = "store-1"
OTHER_STORE_ID = "store-2"
PLUS3_STORE_ID = "store-istanbul"


def utc(*args) -> datetime:
    """Naive UTC datetime, the ledger storage convention."""
    return datetime(*args)


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(app_env="testing", debug=True)


@pytest.fixture
def analytics_settings() -> AnalyticsSettings:
    return AnalyticsSettings(default_timezone="UTC")


@pytest.fixture
def resolver() -> TimezoneResolver:
    return TimezoneResolver("UTC", {PLUS3_STORE_ID: "Europe/Istanbul"})


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """File-backed SQLite so concurrent sessions see the same data"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}",
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(test_engine)


class LedgerSeeder:
    """Writes stores, products, transactions and expenses for a test."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def add(self, *rows) -> None:
        async with self.session_factory() as session:
            session.add_all(rows)
            await session.commit()

    async def store(self, store_id: str, tz: Optional[str] = None) -> Store:
        store = Store(id=store_id, name=store_id, timezone=tz)
        await self.add(store)
        return store

    async def product(
        self,
        name: str,
        store_id: str = STORE_ID,
        **fields,
    ) -> Product:
        fields.setdefault("price", 10.0)
        fields.setdefault("stock_quantity", 20)
        product = Product(store_id=store_id, name=name, **fields)
        await self.add(product)
        return product

    async def sale(
        self,
        amount: float,
        created_at: datetime,
        store_id: str = STORE_ID,
        payment_method: Optional[str] = "cash",
        status: str = "completed",
        order_source: Optional[str] = None,
        items: Iterable[Tuple[Optional[Product], float, float]] = (),
    ) -> Transaction:
        """``items`` are ``(product, quantity, unit_price)`` triples."""
        transaction = Transaction(
            store_id=store_id,
            total_amount=amount,
            payment_method=payment_method,
            status=status,
            order_source=order_source,
            created_at=created_at,
        )
        for product, quantity, unit_price in items:
            transaction.items.append(
                TransactionItem(
                    product_id=product.id if product is not None else None,
                    product_name=product.name if product is not None else "misc",
                    quantity=quantity,
                    unit_price=unit_price,
                    total_price=quantity * unit_price,
                )
            )
        await self.add(transaction)
        return transaction

    async def expense(
        self,
        amount: float,
        day: datetime,
        store_id: str = STORE_ID,
        product_name: str = "supplies",
        **fields,
    ) -> Expense:
        expense = Expense(store_id=store_id, amount=amount, date=day, product_name=product_name, **fields)
        await self.add(expense)
        return expense


@pytest.fixture
def seed(session_factory) -> LedgerSeeder:
    return LedgerSeeder(session_factory)
