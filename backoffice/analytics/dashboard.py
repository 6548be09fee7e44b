"""
Dashboard Analytics

Assembles :class:`DashboardMetrics` for one store. The primary period is
resolved once and threaded unchanged into every sub-query, so sales,
expenses, transaction counts and profit always describe the same window.

Only the primary sales totals may fail the request. Every other sub-metric
is awaited through :meth:`ReportService.soft` and degrades to an empty or
zero value when its aggregation fails.
"""

import asyncio
from typing import Optional

import structlog

from backoffice.analytics.context import ReportContext, ReportService
from backoffice.analytics.expenses import ExpenseAnalytics
from backoffice.analytics.ledgers import CatalogStats, ExpenseLedger, ProductCatalog, TransactionLedger
from backoffice.analytics.periods import (
    DashboardFilters,
    equal_length_previous,
    normalize_order_source,
    normalize_payment_method,
    pct_change,
    previous_period,
)
from backoffice.analytics.products import ProductRankings
from backoffice.analytics.sales import average, merge_normalized, transaction_record
from backoffice.analytics.schemas import (
    DashboardMetrics,
    MonthlySalesPoint,
    PeriodInfo,
    RecentTransaction,
    SalesPeriodPoint,
)
from backoffice.analytics.series import (
    Granularity,
    Totals,
    choose_granularity,
    fill_series,
    trailing_months_window,
)
from backoffice.analytics.timezone import (
    month_year_range,
    this_month_range,
    today_range,
    yesterday_range,
)

logger = structlog.get_logger(__name__)


def _zero_month() -> dict:
    return {"sales": 0.0, "transactions": 0, "online_sales": 0.0, "in_store_sales": 0.0}


class DashboardService(ReportService):
    """Builds the dashboard report for a store and filter set."""

    def __init__(self, session_factory, **kwargs):
        super().__init__(session_factory, **kwargs)
        self.transactions = TransactionLedger(session_factory)
        self.expenses = ExpenseLedger(session_factory)
        self.catalog = ProductCatalog(session_factory)
        self.rankings = ProductRankings(session_factory)
        self.expense_analytics = ExpenseAnalytics(session_factory, self.resolver, self.settings)

    def _month_window(self, ctx: ReportContext):
        """Selected month/year if given, else the current local month."""
        filters = ctx.filters
        if filters.month is not None and filters.year is not None:
            return month_year_range(filters.month, filters.year, ctx.tz)
        return this_month_range(ctx.tz, ctx.now)

    async def get_dashboard_metrics(
        self,
        store_id: str,
        filters: Optional[DashboardFilters] = None,
    ) -> DashboardMetrics:
        ctx = self.context(store_id, filters)
        flt, window, tz, now = ctx.ledger_filter, ctx.window, ctx.tz, ctx.now
        limits = self.settings

        previous = previous_period(ctx.period, tz)
        growth_baseline = equal_length_previous(window)
        today = today_range(tz, now)
        yesterday = yesterday_range(tz, now)
        month = self._month_window(ctx)
        trend = trailing_months_window(limits.trend_months, tz, now)
        granularity = choose_granularity(window, tz, limits.daily_bucket_max_days)

        logger.info(
            "Computing dashboard metrics",
            store_id=store_id,
            period=ctx.period.label,
            start=window.start.isoformat(),
            end=window.end.isoformat(),
            timezone=tz,
        )

        def soft(metric, awaitable, default=Totals):
            return self.soft(ctx, metric, awaitable, default)

        (
            primary,
            today_sales,
            yesterday_sales,
            month_sales,
            previous_sales,
            since_start,
            growth_previous_sales,
            total_expenses,
            today_expenses,
            yesterday_expenses,
            month_expenses,
            previous_expenses,
            by_method,
            by_source,
            period_buckets,
            month_buckets,
            expenses_by_period,
            recent,
            catalog_stats,
            top_products,
            best_performers,
            most_profitable,
            fastest_moving,
            worst_performers,
        ) = await asyncio.gather(
            self.transactions.totals(flt, window),
            soft("today_sales", self.transactions.totals(flt, today)),
            soft("yesterday_sales", self.transactions.totals(flt, yesterday)),
            soft("monthly_sales", self.transactions.totals(flt, month)),
            soft("previous_sales", self.transactions.totals(flt, previous)),
            soft("growth_sales", self.transactions.totals_since(flt, window.start)),
            soft("growth_baseline", self.transactions.totals(flt, growth_baseline)),
            soft("total_expenses", self.expenses.totals(store_id, window)),
            soft("today_expenses", self.expenses.totals(store_id, today)),
            soft("yesterday_expenses", self.expenses.totals(store_id, yesterday)),
            soft("monthly_expenses", self.expenses.totals(store_id, month)),
            soft("previous_expenses", self.expenses.totals(store_id, previous)),
            soft("payment_methods", self.transactions.grouped_totals(flt, window, "payment_method"), dict),
            soft("order_sources", self.transactions.grouped_totals(flt, window, "order_source"), dict),
            soft("sales_by_period", self.transactions.bucketed(flt, window, tz, granularity), dict),
            soft("sales_by_month", self.transactions.bucketed_by_source(flt, trend, tz, Granularity.MONTH), dict),
            soft("expenses_by_period", self.expense_analytics.series_for_window(store_id, window, tz), list),
            soft("recent_transactions", self.transactions.recent(flt, window, limits.recent_transactions_limit), list),
            soft("product_stats", self.catalog.stats(store_id), CatalogStats),
            soft("top_products", self.rankings.top_products(flt, window, limits.top_products_limit), list),
            soft("best_performers", self.rankings.best_performers(flt, window, limits.ranking_limit), list),
            soft("most_profitable", self.rankings.most_profitable(flt, window, limits.ranking_limit), list),
            soft("fastest_moving", self.rankings.fastest_moving(flt, window, limits.ranking_limit), list),
            soft("worst_performers", self.rankings.worst_performers(flt, window, limits.worst_performers_limit), list),
        )

        net_profit = primary.amount - total_expenses.amount
        previous_profit = previous_sales.amount - previous_expenses.amount
        today_profit = today_sales.amount - today_expenses.amount
        yesterday_profit = yesterday_sales.amount - yesterday_expenses.amount

        payment_methods = merge_normalized(by_method, normalize_payment_method)
        order_sources = merge_normalized(by_source, normalize_order_source)

        metrics = DashboardMetrics(
            total_sales=round(primary.amount, 2),
            total_transactions=primary.count,
            average_transaction_value=average(primary.amount, primary.count),
            total_expenses=round(total_expenses.amount, 2),
            net_profit=round(net_profit, 2),
            growth_rate=pct_change(growth_previous_sales.amount, since_start.amount),
            sales_vs_previous_period=pct_change(previous_sales.amount, primary.amount),
            expenses_vs_previous_period=pct_change(previous_expenses.amount, total_expenses.amount),
            profit_vs_previous_period=pct_change(previous_profit, net_profit),
            transactions_vs_previous_period=pct_change(previous_sales.count, primary.count),
            sales_vs_yesterday=pct_change(yesterday_sales.amount, today_sales.amount),
            expenses_vs_yesterday=pct_change(yesterday_expenses.amount, today_expenses.amount),
            profit_vs_yesterday=pct_change(yesterday_profit, today_profit),
            transactions_vs_yesterday=pct_change(yesterday_sales.count, today_sales.count),
            today_sales=round(today_sales.amount, 2),
            today_transactions=today_sales.count,
            monthly_sales=round(month_sales.amount, 2),
            monthly_transactions=month_sales.count,
            monthly_expenses=round(month_expenses.amount, 2),
            total_products=catalog_stats.total,
            low_stock_items=catalog_stats.low_stock,
            payment_methods={key: round(t.amount, 2) for key, t in payment_methods.items()},
            order_sources={key: round(t.amount, 2) for key, t in order_sources.items()},
            top_products=top_products,
            best_performers=best_performers,
            most_profitable_products=most_profitable,
            fastest_moving_products=fastest_moving,
            worst_performers=worst_performers,
            recent_transactions=[RecentTransaction(**transaction_record(t)) for t in recent],
            sales_by_month=[
                MonthlySalesPoint(
                    month=key,
                    sales=round(values["sales"], 2),
                    transactions=values["transactions"],
                    online_sales=round(values["online_sales"], 2),
                    in_store_sales=round(values["in_store_sales"], 2),
                )
                for key, values in fill_series(trend, tz, Granularity.MONTH, month_buckets, _zero_month)
            ],
            sales_by_period=[
                SalesPeriodPoint(period=key, revenue=round(t.amount, 2), transactions=t.count)
                for key, t in fill_series(window, tz, granularity, period_buckets)
            ],
            expenses_by_period=expenses_by_period,
            period=PeriodInfo(
                label=ctx.period.label,
                kind=ctx.period.kind.value,
                start=window.start,
                end=window.end,
                previous_start=previous.start,
                previous_end=previous.end,
                granularity=granularity.value,
                timezone=tz,
            ),
        )

        logger.info(
            "Dashboard metrics computed",
            store_id=store_id,
            total_sales=metrics.total_sales,
            total_transactions=metrics.total_transactions,
            net_profit=metrics.net_profit,
        )
        return metrics
