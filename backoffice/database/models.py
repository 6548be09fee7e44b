"""
Database Models - Store Ledgers

The analytics engine reads three ledgers per store:

- Transaction / TransactionItem: point-of-sale and online orders with line items
- Expense: purchases and running costs, with a derived cost per unit
- Product: the catalog, used for stock, category and pricing joins

Instants are stored as naive UTC ``DateTime`` values. Local calendar
semantics are applied by the analytics layer using the store's timezone.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
import uuid

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    event,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


def utcnow() -> datetime:
    """Current instant as a naive UTC datetime, the storage convention."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_id() -> str:
    return str(uuid.uuid4())


Money = Numeric(12, 2, asdecimal=False)


# =============================================================================
# ENUMERATIONS
# =============================================================================

class TransactionStatus(str, Enum):
    """Transaction lifecycle status"""
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    VOIDED = "voided"


# =============================================================================
# STORES & CATALOG
# =============================================================================

class Store(Base):
    """Tenant record; ``timezone`` drives all local-calendar bucketing."""
    __tablename__ = "stores"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    timezone: Mapped[Optional[str]] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class Product(Base):
    """
    Product Catalog

    Read-only for the analytics engine. ``price`` is the selling price and
    ``cost_price`` the last known purchase cost per unit.
    """
    __tablename__ = "products"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    store_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(64))
    category: Mapped[str] = mapped_column(String(100), default="uncategorized")

    price: Mapped[float] = mapped_column(Money, default=0)
    cost_price: Mapped[Optional[float]] = mapped_column(Money)
    markup_percentage: Mapped[Optional[float]] = mapped_column(Float)

    stock_quantity: Mapped[int] = mapped_column(Integer, default=0)
    min_stock_level: Mapped[int] = mapped_column(Integer, default=5)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_products_store_category", "store_id", "category"),
        Index("ix_products_store_active", "store_id", "is_active"),
    )


# =============================================================================
# TRANSACTION LEDGER
# =============================================================================

class Transaction(Base):
    """
    Sales Transaction

    ``payment_method`` keeps the raw recorded value; historical rows use
    several spellings for the same channel. ``order_source`` may be missing
    on older rows, which the reports treat as in-store.
    """
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    store_id: Mapped[str] = mapped_column(String(36), nullable=False)
    total_amount: Mapped[Optional[float]] = mapped_column(Money, default=0)
    payment_method: Mapped[Optional[str]] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(20), default=TransactionStatus.COMPLETED.value)
    order_source: Mapped[Optional[str]] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    items: Mapped[List["TransactionItem"]] = relationship(
        back_populates="transaction",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        Index("ix_transactions_store_created", "store_id", "created_at"),
        Index("ix_transactions_store_status", "store_id", "status"),
    )


class TransactionItem(Base):
    """Line item of a transaction"""
    __tablename__ = "transaction_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("transactions.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[Optional[str]] = mapped_column(String(36))
    product_name: Mapped[str] = mapped_column(String(200), default="")
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    unit_price: Mapped[Optional[float]] = mapped_column(Money, default=0)
    total_price: Mapped[Optional[float]] = mapped_column(Money, default=0)

    transaction: Mapped["Transaction"] = relationship(back_populates="items")

    __table_args__ = (
        Index("ix_transaction_items_transaction", "transaction_id"),
        Index("ix_transaction_items_product", "product_id"),
    )


# =============================================================================
# EXPENSE LEDGER
# =============================================================================

class Expense(Base):
    """
    Expense Record

    ``cost_per_unit`` is derived from ``amount / quantity`` on every insert
    and update, and is left empty when no positive quantity is recorded.
    """
    __tablename__ = "expenses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    store_id: Mapped[str] = mapped_column(String(36), nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    product_name: Mapped[str] = mapped_column(String(200), nullable=False)
    product_id: Mapped[Optional[str]] = mapped_column(String(36))
    quantity: Mapped[Optional[float]] = mapped_column(Float)
    amount: Mapped[Optional[float]] = mapped_column(Money)
    cost_per_unit: Mapped[Optional[float]] = mapped_column(Numeric(12, 4, asdecimal=False))
    category: Mapped[str] = mapped_column(String(100), default="other")
    payment_method: Mapped[Optional[str]] = mapped_column(String(50))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_expenses_store_date", "store_id", "date"),
        Index("ix_expenses_store_category", "store_id", "category"),
    )

    def recompute_cost_per_unit(self) -> None:
        if self.quantity is not None and self.quantity > 0 and self.amount is not None:
            self.cost_per_unit = round(float(self.amount) / float(self.quantity), 4)
        else:
            self.cost_per_unit = None


@event.listens_for(Expense, "before_insert")
@event.listens_for(Expense, "before_update")
def _derive_cost_per_unit(mapper, connection, target: Expense) -> None:
    target.recompute_cost_per_unit()
