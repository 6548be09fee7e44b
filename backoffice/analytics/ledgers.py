"""
Ledger Readers

Read-only aggregation queries over the transaction ledger, the expense
ledger and the product catalog. Every query opens its own short-lived
session so the dashboard can run independent aggregations concurrently.

Sums default to zero: ``COALESCE(SUM(x), 0)`` in SQL, and
:func:`coerce_amount` for anything read row by row. Any database error
surfaces as :class:`AggregationFailure` naming the metric.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import polars as pl
import structlog
from sqlalchemy import Select, and_, case, distinct, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from backoffice.analytics.exceptions import AggregationFailure
from backoffice.analytics.periods import (
    ALL,
    DEFAULT_STATUSES,
    IN_STORE,
    DashboardFilters,
    normalize_order_source,
    payment_method_aliases,
)
from backoffice.analytics.series import (
    Granularity,
    Totals,
    bucket_key,
    bucket_totals,
    coerce_amount,
    keyed_frame,
    local_part_totals,
)
from backoffice.analytics.timezone import TimeWindow, TzLike, to_naive_utc
from backoffice.database.models import Expense, Product, Store, Transaction, TransactionItem

logger = structlog.get_logger(__name__)

UNCATEGORIZED = "uncategorized"


@dataclass(frozen=True)
class LedgerFilter:
    """
    Store plus the status / payment / source predicates of a request.

    ``statuses`` of ``None`` means every status. ``payment_methods`` holds
    every raw spelling of the requested channel.
    """

    store_id: str
    statuses: Optional[Tuple[str, ...]] = DEFAULT_STATUSES
    payment_methods: Optional[Tuple[str, ...]] = None
    order_source: Optional[str] = None

    @classmethod
    def from_filters(cls, store_id: str, filters: Optional[DashboardFilters] = None) -> "LedgerFilter":
        filters = filters or DashboardFilters()

        status = (filters.status or "").strip().lower()
        if not status:
            statuses = DEFAULT_STATUSES
        elif status == ALL:
            statuses = None
        else:
            statuses = (status,)

        method = (filters.payment_method or "").strip().lower()
        payment_methods = None
        if method and method != ALL:
            payment_methods = tuple(payment_method_aliases(method))

        source = (filters.order_source or "").strip().lower()
        order_source = source if source and source != ALL else None

        return cls(store_id, statuses, payment_methods, order_source)


@dataclass
class ProductSales:
    """Line-item aggregate for one product over a window."""

    product_id: str
    product_name: str
    quantity: float
    revenue: float
    avg_unit_price: float
    line_count: int
    transaction_count: int


@dataclass
class CatalogStats:
    total: int = 0
    active: int = 0
    low_stock: int = 0
    low_stock_in_stock: int = 0
    out_of_stock: int = 0
    inventory_value: float = 0.0


class _LedgerReader:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def _fetch(
        self,
        metric: str,
        store_id: str,
        statement: Select,
        scalars: bool = False,
    ) -> List[Any]:
        try:
            async with self._session_factory() as session:
                result = await session.execute(statement)
                return list(result.scalars().all() if scalars else result.all())
        except SQLAlchemyError as e:
            logger.error(
                "Ledger query failed",
                metric=metric,
                store_id=store_id,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise AggregationFailure(metric, str(e), store_id) from e

    async def _fetch_one(self, metric: str, store_id: str, statement: Select) -> Any:
        rows = await self._fetch(metric, store_id, statement)
        return rows[0] if rows else None


# =============================================================================
# TRANSACTIONS
# =============================================================================

def _transaction_conditions(
    flt: LedgerFilter,
    window: Optional[TimeWindow] = None,
    since: Optional[datetime] = None,
) -> list:
    conditions = [Transaction.store_id == flt.store_id]

    if flt.statuses is not None:
        conditions.append(Transaction.status.in_(flt.statuses))
    if flt.payment_methods is not None:
        conditions.append(func.lower(func.trim(Transaction.payment_method)).in_(flt.payment_methods))
    if flt.order_source is not None:
        if flt.order_source == IN_STORE:
            conditions.append(or_(Transaction.order_source == IN_STORE, Transaction.order_source.is_(None)))
        else:
            conditions.append(Transaction.order_source == flt.order_source)

    if window is not None:
        start, end = window.naive_bounds()
        conditions.extend([Transaction.created_at >= start, Transaction.created_at <= end])
    if since is not None:
        conditions.append(Transaction.created_at >= to_naive_utc(since))
    return conditions


_item_revenue = func.coalesce(TransactionItem.quantity, 0) * func.coalesce(TransactionItem.unit_price, 0)


class TransactionLedger(_LedgerReader):
    """Aggregations over transactions and their line items."""

    GROUPABLE = ("payment_method", "order_source", "status")

    async def totals(self, flt: LedgerFilter, window: Optional[TimeWindow] = None) -> Totals:
        row = await self._fetch_one(
            "transaction_totals",
            flt.store_id,
            select(
                func.coalesce(func.sum(Transaction.total_amount), 0),
                func.count(Transaction.id),
            ).where(and_(*_transaction_conditions(flt, window))),
        )
        if row is None:
            return Totals()
        return Totals(coerce_amount(row[0]), int(row[1] or 0))

    async def totals_since(self, flt: LedgerFilter, start: datetime) -> Totals:
        """Totals from ``start`` onward, with no upper bound."""
        row = await self._fetch_one(
            "transaction_totals_since",
            flt.store_id,
            select(
                func.coalesce(func.sum(Transaction.total_amount), 0),
                func.count(Transaction.id),
            ).where(and_(*_transaction_conditions(flt, since=start))),
        )
        if row is None:
            return Totals()
        return Totals(coerce_amount(row[0]), int(row[1] or 0))

    async def grouped_totals(
        self,
        flt: LedgerFilter,
        window: Optional[TimeWindow],
        field: str,
    ) -> Dict[Optional[str], Totals]:
        """Totals per raw value of ``field``; values are not normalized here."""
        if field not in self.GROUPABLE:
            raise ValueError(f"Cannot group transactions by {field!r}")
        column = getattr(Transaction, field)
        rows = await self._fetch(
            f"transactions_by_{field}",
            flt.store_id,
            select(
                column,
                func.coalesce(func.sum(Transaction.total_amount), 0),
                func.count(Transaction.id),
            )
            .where(and_(*_transaction_conditions(flt, window)))
            .group_by(column),
        )
        return {value: Totals(coerce_amount(amount), int(count or 0)) for value, amount, count in rows}

    async def _instants_and_amounts(
        self,
        metric: str,
        flt: LedgerFilter,
        window: Optional[TimeWindow],
        *extra_columns,
    ) -> List[Any]:
        return await self._fetch(
            metric,
            flt.store_id,
            select(Transaction.created_at, Transaction.total_amount, *extra_columns)
            .where(and_(*_transaction_conditions(flt, window))),
        )

    async def bucketed(
        self,
        flt: LedgerFilter,
        window: TimeWindow,
        tz: TzLike,
        granularity: Granularity,
    ) -> Dict[str, Totals]:
        rows = await self._instants_and_amounts("sales_by_period", flt, window)
        return bucket_totals(((created_at, amount) for created_at, amount in rows), tz, granularity)

    async def bucketed_by_source(
        self,
        flt: LedgerFilter,
        window: TimeWindow,
        tz: TzLike,
        granularity: Granularity = Granularity.MONTH,
    ) -> Dict[str, Dict[str, float]]:
        """Bucketed sales with an online / in-store split. Missing sources count as in-store."""
        rows = await self._instants_and_amounts("sales_by_month", flt, window, Transaction.order_source)
        if not rows:
            return {}

        sources = [normalize_order_source(source) for _, _, source in rows]
        amounts = [coerce_amount(amount) for _, amount, _ in rows]
        frame = keyed_frame(
            [created_at for created_at, _, _ in rows],
            lambda instant: bucket_key(instant, tz, granularity),
            amount=amounts,
            online=[a if s == "online" else 0.0 for a, s in zip(amounts, sources)],
            in_store=[a if s == IN_STORE else 0.0 for a, s in zip(amounts, sources)],
        )
        grouped = frame.group_by("key").agg(
            pl.col("amount").sum().alias("sales"),
            pl.len().alias("transactions"),
            pl.col("online").sum().alias("online_sales"),
            pl.col("in_store").sum().alias("in_store_sales"),
        )
        return {
            row["key"]: {
                "sales": float(row["sales"]),
                "transactions": int(row["transactions"]),
                "online_sales": float(row["online_sales"]),
                "in_store_sales": float(row["in_store_sales"]),
            }
            for row in grouped.iter_rows(named=True)
        }

    async def local_time_totals(
        self,
        flt: LedgerFilter,
        window: TimeWindow,
        tz: TzLike,
        part: str,
    ) -> Dict[int, Totals]:
        rows = await self._instants_and_amounts(f"sales_by_{part}", flt, window)
        return local_part_totals(((created_at, amount) for created_at, amount in rows), tz, part)

    async def recent(
        self,
        flt: LedgerFilter,
        window: Optional[TimeWindow],
        limit: int,
        with_items: bool = False,
    ) -> List[Transaction]:
        """Newest transactions first; ``with_items`` eager-loads the line items."""
        statement = (
            select(Transaction)
            .where(and_(*_transaction_conditions(flt, window)))
            .order_by(Transaction.created_at.desc())
            .limit(limit)
        )
        if with_items:
            statement = statement.options(selectinload(Transaction.items))
        return await self._fetch("recent_transactions", flt.store_id, statement, scalars=True)

    async def product_sales(
        self,
        flt: LedgerFilter,
        window: Optional[TimeWindow],
        order_by: str = "revenue",
        limit: Optional[int] = None,
    ) -> List[ProductSales]:
        """Per-product line-item aggregate, largest first by ``order_by``."""
        quantity = func.coalesce(func.sum(TransactionItem.quantity), 0)
        revenue = func.coalesce(func.sum(_item_revenue), 0)
        sort_columns = {
            "revenue": revenue,
            "quantity": quantity,
        }
        if order_by not in sort_columns:
            raise ValueError(f"Cannot order product sales by {order_by!r}")

        statement = (
            select(
                TransactionItem.product_id,
                func.max(TransactionItem.product_name),
                quantity,
                revenue,
                func.coalesce(func.avg(TransactionItem.unit_price), 0),
                func.count(TransactionItem.id),
                func.count(distinct(Transaction.id)),
            )
            .join(Transaction, TransactionItem.transaction_id == Transaction.id)
            .where(and_(TransactionItem.product_id.is_not(None), *_transaction_conditions(flt, window)))
            .group_by(TransactionItem.product_id)
            .order_by(sort_columns[order_by].desc(), TransactionItem.product_id)
        )
        if limit is not None:
            statement = statement.limit(limit)

        rows = await self._fetch("product_sales", flt.store_id, statement)
        return [
            ProductSales(
                product_id=product_id,
                product_name=name or "",
                quantity=coerce_amount(qty),
                revenue=coerce_amount(rev),
                avg_unit_price=coerce_amount(avg_price),
                line_count=int(lines or 0),
                transaction_count=int(transactions or 0),
            )
            for product_id, name, qty, rev, avg_price, lines, transactions in rows
        ]

    @staticmethod
    def sold_product_ids(flt: LedgerFilter, window: Optional[TimeWindow]) -> Select:
        """Select of product ids with a matching line item, for use as a subquery."""
        return (
            select(TransactionItem.product_id)
            .join(Transaction, TransactionItem.transaction_id == Transaction.id)
            .where(and_(TransactionItem.product_id.is_not(None), *_transaction_conditions(flt, window)))
            .distinct()
        )

    async def category_totals(self, flt: LedgerFilter, window: Optional[TimeWindow]) -> List[Dict[str, Any]]:
        category = func.coalesce(Product.category, UNCATEGORIZED)
        rows = await self._fetch(
            "sales_by_category",
            flt.store_id,
            select(
                category,
                func.coalesce(func.sum(_item_revenue), 0),
                func.coalesce(func.sum(TransactionItem.quantity), 0),
                func.count(distinct(TransactionItem.product_id)),
                func.count(distinct(Transaction.id)),
            )
            .select_from(TransactionItem)
            .join(Transaction, TransactionItem.transaction_id == Transaction.id)
            .outerjoin(Product, TransactionItem.product_id == Product.id)
            .where(and_(*_transaction_conditions(flt, window)))
            .group_by(category)
            .order_by(func.coalesce(func.sum(_item_revenue), 0).desc()),
        )
        return [
            {
                "category": name,
                "revenue": coerce_amount(revenue),
                "quantity": coerce_amount(quantity),
                "product_count": int(products or 0),
                "transaction_count": int(transactions or 0),
            }
            for name, revenue, quantity, products, transactions in rows
        ]


# =============================================================================
# EXPENSES
# =============================================================================

def _expense_conditions(store_id: str, window: Optional[TimeWindow] = None) -> list:
    conditions = [Expense.store_id == store_id]
    if window is not None:
        start, end = window.naive_bounds()
        conditions.extend([Expense.date >= start, Expense.date <= end])
    return conditions


class ExpenseLedger(_LedgerReader):
    """Aggregations over the expense ledger, windowed on the expense date."""

    GROUPABLE = ("category", "payment_method")

    async def totals(self, store_id: str, window: Optional[TimeWindow] = None) -> Totals:
        row = await self._fetch_one(
            "expense_totals",
            store_id,
            select(
                func.coalesce(func.sum(Expense.amount), 0),
                func.count(Expense.id),
            ).where(and_(*_expense_conditions(store_id, window))),
        )
        if row is None:
            return Totals()
        return Totals(coerce_amount(row[0]), int(row[1] or 0))

    async def grouped(
        self,
        store_id: str,
        field: str,
        window: Optional[TimeWindow] = None,
    ) -> Dict[Optional[str], Totals]:
        if field not in self.GROUPABLE:
            raise ValueError(f"Cannot group expenses by {field!r}")
        column = getattr(Expense, field)
        rows = await self._fetch(
            f"expenses_by_{field}",
            store_id,
            select(
                column,
                func.coalesce(func.sum(Expense.amount), 0),
                func.count(Expense.id),
            )
            .where(and_(*_expense_conditions(store_id, window)))
            .group_by(column)
            .order_by(func.coalesce(func.sum(Expense.amount), 0).desc()),
        )
        return {value: Totals(coerce_amount(amount), int(count or 0)) for value, amount, count in rows}

    async def bucketed(
        self,
        store_id: str,
        window: Optional[TimeWindow],
        tz: TzLike,
        granularity: Granularity,
    ) -> Dict[str, Totals]:
        rows = await self._fetch(
            "expenses_by_period",
            store_id,
            select(Expense.date, Expense.amount).where(and_(*_expense_conditions(store_id, window))),
        )
        return bucket_totals(((day, amount) for day, amount in rows), tz, granularity)

    async def category_months(
        self,
        store_id: str,
        window: TimeWindow,
        tz: TzLike,
    ) -> Dict[str, Dict[str, Totals]]:
        """Month key -> category -> totals."""
        rows = await self._fetch(
            "expenses_by_month_category",
            store_id,
            select(Expense.date, Expense.amount, Expense.category)
            .where(and_(*_expense_conditions(store_id, window))),
        )
        if not rows:
            return {}

        frame = keyed_frame(
            [day for day, _, _ in rows],
            lambda instant: bucket_key(instant, tz, Granularity.MONTH),
            amount=[amount for _, amount, _ in rows],
        ).with_columns(pl.Series("category", [category or "other" for _, _, category in rows], dtype=pl.Utf8))

        grouped = frame.group_by(["key", "category"]).agg(
            pl.col("amount").sum().alias("amount"),
            pl.len().alias("count"),
        )
        months: Dict[str, Dict[str, Totals]] = {}
        for row in grouped.iter_rows(named=True):
            months.setdefault(row["key"], {})[row["category"]] = Totals(float(row["amount"]), int(row["count"]))
        return months

    async def top_products(
        self,
        store_id: str,
        window: Optional[TimeWindow] = None,
        limit: int = 10,
    ) -> List[Dict[str, Any]]:
        total = func.coalesce(func.sum(Expense.amount), 0)
        rows = await self._fetch(
            "top_expense_products",
            store_id,
            select(
                Expense.product_name,
                total,
                func.coalesce(func.sum(Expense.quantity), 0),
                func.count(Expense.id),
            )
            .where(and_(*_expense_conditions(store_id, window)))
            .group_by(Expense.product_name)
            .order_by(total.desc(), Expense.product_name)
            .limit(limit),
        )
        return [
            {
                "product_name": name,
                "total_amount": coerce_amount(amount),
                "total_quantity": coerce_amount(quantity),
                "count": int(count or 0),
            }
            for name, amount, quantity, count in rows
        ]

    async def in_range(self, store_id: str, window: TimeWindow) -> List[Expense]:
        return await self._fetch(
            "expenses_in_range",
            store_id,
            select(Expense)
            .where(and_(*_expense_conditions(store_id, window)))
            .order_by(Expense.date.desc()),
            scalars=True,
        )


# =============================================================================
# PRODUCT CATALOG
# =============================================================================

_stock_value = func.coalesce(Product.price, 0) * func.coalesce(Product.stock_quantity, 0)


class ProductCatalog(_LedgerReader):
    """Read-only catalog lookups for stock, category and pricing joins."""

    async def stats(self, store_id: str) -> CatalogStats:
        stock = func.coalesce(Product.stock_quantity, 0)
        minimum = func.coalesce(Product.min_stock_level, 0)
        row = await self._fetch_one(
            "product_stats",
            store_id,
            select(
                func.count(Product.id),
                func.coalesce(func.sum(case((Product.is_active.is_(True), 1), else_=0)), 0),
                func.coalesce(func.sum(case((stock <= minimum, 1), else_=0)), 0),
                func.coalesce(func.sum(case((and_(stock <= minimum, stock > 0), 1), else_=0)), 0),
                func.coalesce(func.sum(case((stock == 0, 1), else_=0)), 0),
                func.coalesce(func.sum(_stock_value), 0),
            ).where(Product.store_id == store_id),
        )
        if row is None:
            return CatalogStats()
        total, active, low, low_in_stock, out, value = row
        return CatalogStats(
            total=int(total or 0),
            active=int(active or 0),
            low_stock=int(low or 0),
            low_stock_in_stock=int(low_in_stock or 0),
            out_of_stock=int(out or 0),
            inventory_value=coerce_amount(value),
        )

    async def category_breakdown(self, store_id: str) -> List[Dict[str, Any]]:
        category = func.coalesce(Product.category, UNCATEGORIZED)
        rows = await self._fetch(
            "product_categories",
            store_id,
            select(
                category,
                func.count(Product.id),
                func.coalesce(func.sum(Product.stock_quantity), 0),
                func.coalesce(func.sum(_stock_value), 0),
            )
            .where(Product.store_id == store_id)
            .group_by(category)
            .order_by(category),
        )
        return [
            {
                "category": name,
                "count": int(count or 0),
                "total_stock": int(stock or 0),
                "total_value": coerce_amount(value),
            }
            for name, count, stock, value in rows
        ]

    async def stock_alerts(self, store_id: str) -> List[Product]:
        return await self._fetch(
            "stock_alerts",
            store_id,
            select(Product)
            .where(
                Product.store_id == store_id,
                func.coalesce(Product.stock_quantity, 0) <= func.coalesce(Product.min_stock_level, 0),
            )
            .order_by(Product.stock_quantity, Product.name),
            scalars=True,
        )

    async def unsold_with_stock(self, store_id: str, sold_ids: Select, limit: int) -> List[Product]:
        """Active products with stock and no id in ``sold_ids``, by stock value."""
        return await self._fetch(
            "worst_performers",
            store_id,
            select(Product)
            .where(
                Product.store_id == store_id,
                Product.is_active.is_(True),
                Product.stock_quantity > 0,
                Product.id.not_in(sold_ids),
            )
            .order_by(_stock_value.desc(), Product.name)
            .limit(limit),
            scalars=True,
        )

    async def by_ids(self, store_id: str, product_ids: Sequence[str]) -> Dict[str, Product]:
        if not product_ids:
            return {}
        products = await self._fetch(
            "products_by_id",
            store_id,
            select(Product).where(Product.store_id == store_id, Product.id.in_(list(product_ids))),
            scalars=True,
        )
        return {product.id: product for product in products}

    async def find_match(
        self,
        store_id: str,
        product_id: Optional[str] = None,
        product_name: Optional[str] = None,
    ) -> Optional[Product]:
        """Active product by id, else active product by case-insensitive exact name."""
        if product_id:
            found = await self._fetch(
                "product_match",
                store_id,
                select(Product)
                .where(Product.store_id == store_id, Product.id == product_id, Product.is_active.is_(True))
                .limit(1),
                scalars=True,
            )
            if found:
                return found[0]

        name = (product_name or "").strip().lower()
        if not name:
            return None
        found = await self._fetch(
            "product_match",
            store_id,
            select(Product)
            .where(
                Product.store_id == store_id,
                Product.is_active.is_(True),
                func.lower(func.trim(Product.name)) == name,
            )
            .order_by(Product.updated_at.desc())
            .limit(1),
            scalars=True,
        )
        return found[0] if found else None


class StoreDirectory(_LedgerReader):
    async def timezones(self) -> Dict[str, Optional[str]]:
        """Configured IANA zone of every store row, keyed by store id."""
        rows = await self._fetch("store_timezones", "*", select(Store.id, Store.timezone))
        return {row.id: row.timezone for row in rows}
