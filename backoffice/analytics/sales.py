"""
Sales Reports

Stand-alone sales, product, inventory and category reports. Each report
resolves its window with the same rules as the dashboard.
"""

import asyncio
from typing import Dict, List, Optional

import structlog

from backoffice.analytics.context import ReportService
from backoffice.analytics.ledgers import ProductCatalog, TransactionLedger
from backoffice.analytics.periods import DashboardFilters, normalize_order_source, normalize_payment_method
from backoffice.analytics.products import ProductRankings
from backoffice.analytics.schemas import (
    CategoryCount,
    CategoryPerformance,
    CategorySales,
    CategoryStock,
    FastMovingProduct,
    HourlySales,
    InventoryAnalytics,
    PaymentBreakdownItem,
    ProductAnalytics,
    ProfitableProduct,
    SalesAnalytics,
    SalesPeriodPoint,
    StockAlert,
    TopProduct,
    TransactionLine,
    TransactionRecord,
    UnsoldProduct,
    WeekdaySales,
)
from backoffice.analytics.series import (
    WEEKDAY_NAMES,
    Totals,
    choose_granularity,
    coerce_amount,
    fill_series,
)
from backoffice.analytics.timezone import as_utc
from backoffice.database.models import Transaction

logger = structlog.get_logger(__name__)


def merge_normalized(grouped: Dict[Optional[str], Totals], normalize) -> Dict[str, Totals]:
    """Re-key grouped totals through ``normalize``, summing keys that collapse together."""
    merged: Dict[str, Totals] = {}
    for raw, totals in grouped.items():
        key = normalize(raw)
        current = merged.get(key, Totals())
        merged[key] = Totals(current.amount + totals.amount, current.count + totals.count)
    return merged


def average(amount: float, count: int) -> float:
    return round(amount / count, 2) if count else 0.0


def share(part: float, whole: float) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


def transaction_record(transaction: Transaction, with_items: bool = False) -> dict:
    record = {
        "id": transaction.id,
        "total_amount": coerce_amount(transaction.total_amount),
        "payment_method": normalize_payment_method(transaction.payment_method),
        "order_source": normalize_order_source(transaction.order_source),
        "status": transaction.status,
        "created_at": as_utc(transaction.created_at),
    }
    if with_items:
        record["items"] = [
            TransactionLine(
                product_id=item.product_id,
                product_name=item.product_name or "",
                quantity=coerce_amount(item.quantity),
                unit_price=coerce_amount(item.unit_price),
                total_price=coerce_amount(item.total_price),
            )
            for item in transaction.items
        ]
    return record


class SalesReports(ReportService):
    """Sales, product, inventory and category reports for one store."""

    def __init__(self, session_factory, **kwargs):
        super().__init__(session_factory, **kwargs)
        self.transactions = TransactionLedger(session_factory)
        self.catalog = ProductCatalog(session_factory)
        self.rankings = ProductRankings(session_factory)

    async def get_sales_analytics(self, store_id: str, filters: Optional[DashboardFilters] = None) -> SalesAnalytics:
        ctx = self.context(store_id, filters)
        flt, window, tz = ctx.ledger_filter, ctx.window, ctx.tz
        granularity = choose_granularity(window, tz, self.settings.daily_bucket_max_days)

        totals, buckets, by_method, top = await asyncio.gather(
            self.transactions.totals(flt, window),
            self.transactions.bucketed(flt, window, tz, granularity),
            self.transactions.grouped_totals(flt, window, "payment_method"),
            self.rankings.top_products(flt, window, self.settings.ranking_limit),
        )

        methods = merge_normalized(by_method, normalize_payment_method)
        return SalesAnalytics(
            total_revenue=round(totals.amount, 2),
            total_transactions=totals.count,
            average_transaction_value=average(totals.amount, totals.count),
            sales_by_period=[
                SalesPeriodPoint(period=key, revenue=round(t.amount, 2), transactions=t.count)
                for key, t in fill_series(window, tz, granularity, buckets)
            ],
            top_products=top,
            payment_method_breakdown=[
                PaymentBreakdownItem(method=method, count=t.count, amount=round(t.amount, 2))
                for method, t in sorted(methods.items(), key=lambda item: item[1].amount, reverse=True)
            ],
        )

    async def get_filtered_transactions(
        self,
        store_id: str,
        filters: Optional[DashboardFilters] = None,
        limit: Optional[int] = None,
    ) -> List[TransactionRecord]:
        ctx = self.context(store_id, filters)
        transactions = await self.transactions.recent(
            ctx.ledger_filter,
            ctx.window,
            limit or self.settings.transactions_page_limit,
            with_items=True,
        )
        return [TransactionRecord(**transaction_record(t, with_items=True)) for t in transactions]

    async def get_sales_by_day_of_week(
        self,
        store_id: str,
        filters: Optional[DashboardFilters] = None,
    ) -> List[WeekdaySales]:
        """Monday to Sunday in the store's local time; days without sales are zeroed."""
        ctx = self.context(store_id, filters)
        totals = await self.transactions.local_time_totals(ctx.ledger_filter, ctx.window, ctx.tz, "weekday")
        return [
            WeekdaySales(
                day_of_week=day,
                day_name=name,
                revenue=round(totals.get(day, Totals()).amount, 2),
                transactions=totals.get(day, Totals()).count,
            )
            for day, name in enumerate(WEEKDAY_NAMES)
        ]

    async def get_sales_by_hour_of_day(
        self,
        store_id: str,
        filters: Optional[DashboardFilters] = None,
    ) -> List[HourlySales]:
        ctx = self.context(store_id, filters)
        totals = await self.transactions.local_time_totals(ctx.ledger_filter, ctx.window, ctx.tz, "hour")
        return [
            HourlySales(
                hour=hour,
                revenue=round(totals.get(hour, Totals()).amount, 2),
                transactions=totals.get(hour, Totals()).count,
            )
            for hour in range(24)
        ]

    async def get_sales_by_category(
        self,
        store_id: str,
        filters: Optional[DashboardFilters] = None,
    ) -> List[CategorySales]:
        ctx = self.context(store_id, filters)
        rows = await self.transactions.category_totals(ctx.ledger_filter, ctx.window)
        total = sum(row["revenue"] for row in rows)
        return [
            CategorySales(
                category=row["category"],
                revenue=round(row["revenue"], 2),
                quantity_sold=row["quantity"],
                products_sold=row["product_count"],
                transactions=row["transaction_count"],
                percentage=share(row["revenue"], total),
            )
            for row in rows
        ]

    async def get_category_performance(
        self,
        store_id: str,
        filters: Optional[DashboardFilters] = None,
    ) -> List[CategoryPerformance]:
        """Category sales joined with catalog size and stock value, revenue first."""
        ctx = self.context(store_id, filters)
        sales, catalog = await asyncio.gather(
            self.transactions.category_totals(ctx.ledger_filter, ctx.window),
            self.catalog.category_breakdown(store_id),
        )
        by_category = {row["category"]: row for row in catalog}
        total = sum(row["revenue"] for row in sales)

        performance = []
        seen = set()
        for row in sales:
            seen.add(row["category"])
            listed = by_category.get(row["category"], {})
            performance.append(
                CategoryPerformance(
                    category=row["category"],
                    revenue=round(row["revenue"], 2),
                    quantity_sold=row["quantity"],
                    products_sold=row["product_count"],
                    transactions=row["transaction_count"],
                    percentage=share(row["revenue"], total),
                    catalog_products=listed.get("count", 0),
                    stock_value=round(listed.get("total_value", 0.0), 2),
                    revenue_per_product=average(row["revenue"], row["product_count"]),
                )
            )
        for row in catalog:
            if row["category"] not in seen:
                performance.append(
                    CategoryPerformance(
                        category=row["category"],
                        catalog_products=row["count"],
                        stock_value=round(row["total_value"], 2),
                    )
                )
        return performance

    async def get_product_analytics(
        self,
        store_id: str,
        filters: Optional[DashboardFilters] = None,
    ) -> ProductAnalytics:
        ctx = self.context(store_id, filters)
        stats, top, categories = await asyncio.gather(
            self.catalog.stats(store_id),
            self.rankings.top_products(ctx.ledger_filter, ctx.window, self.settings.ranking_limit),
            self.catalog.category_breakdown(store_id),
        )
        return ProductAnalytics(
            total_products=stats.total,
            active_products=stats.active,
            low_stock_products=stats.low_stock_in_stock,
            out_of_stock_products=stats.out_of_stock,
            top_selling_products=top,
            category_breakdown=[
                CategoryCount(category=row["category"], count=row["count"], total_value=round(row["total_value"], 2))
                for row in categories
            ],
        )

    async def get_inventory_analytics(self, store_id: str) -> InventoryAnalytics:
        stats, alerts, categories = await asyncio.gather(
            self.catalog.stats(store_id),
            self.catalog.stock_alerts(store_id),
            self.catalog.category_breakdown(store_id),
        )
        return InventoryAnalytics(
            total_inventory_value=round(stats.inventory_value, 2),
            low_stock_items=stats.low_stock_in_stock,
            out_of_stock_items=stats.out_of_stock,
            stock_alerts=[
                StockAlert(
                    product_id=product.id,
                    product_name=product.name,
                    current_stock=int(product.stock_quantity or 0),
                    min_stock_level=int(product.min_stock_level or 0),
                    alert_type="out_of_stock" if not product.stock_quantity else "low_stock",
                )
                for product in alerts
            ],
            category_stock=[
                CategoryStock(
                    category=row["category"],
                    total_stock=row["total_stock"],
                    total_value=round(row["total_value"], 2),
                )
                for row in categories
            ],
        )

    async def get_best_performers(
        self,
        store_id: str,
        filters: Optional[DashboardFilters] = None,
        limit: Optional[int] = None,
    ) -> List[TopProduct]:
        ctx = self.context(store_id, filters)
        return await self.rankings.best_performers(ctx.ledger_filter, ctx.window, limit or self.settings.ranking_limit)

    async def get_most_profitable_products(
        self,
        store_id: str,
        filters: Optional[DashboardFilters] = None,
        limit: Optional[int] = None,
    ) -> List[ProfitableProduct]:
        ctx = self.context(store_id, filters)
        return await self.rankings.most_profitable(ctx.ledger_filter, ctx.window, limit or self.settings.ranking_limit)

    async def get_fastest_moving_products(
        self,
        store_id: str,
        filters: Optional[DashboardFilters] = None,
        limit: Optional[int] = None,
    ) -> List[FastMovingProduct]:
        ctx = self.context(store_id, filters)
        return await self.rankings.fastest_moving(ctx.ledger_filter, ctx.window, limit or self.settings.ranking_limit)

    async def get_worst_performers(
        self,
        store_id: str,
        filters: Optional[DashboardFilters] = None,
        limit: Optional[int] = None,
    ) -> List[UnsoldProduct]:
        """Active products with stock on hand and no sales in the window, by stock value."""
        ctx = self.context(store_id, filters)
        return await self.rankings.worst_performers(
            ctx.ledger_filter,
            ctx.window,
            limit or self.settings.worst_performers_limit,
        )
