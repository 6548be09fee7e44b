"""
Expense Analytics

Turns the expense ledger into gap-free series, summary breakdowns and a
per-month report for one store.
"""

import asyncio
from datetime import datetime
from typing import List, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.analytics.exceptions import InvalidPeriod
from backoffice.analytics.ledgers import ExpenseLedger
from backoffice.analytics.schemas import (
    CategoryAmount,
    ExpensePeriodPoint,
    ExpenseRecord,
    ExpenseStats,
    MonthAmount,
    MonthlyExpenseReport,
    MonthlyExpenseSummary,
    PaymentMethodAmount,
    TopExpenseItem,
)
from backoffice.analytics.series import (
    MONTH_NAMES,
    Granularity,
    choose_granularity,
    coerce_amount,
    fill_series,
)
from backoffice.analytics.timezone import (
    TimeWindow,
    TimezoneResolver,
    TzLike,
    as_utc,
    get_timezone_resolver,
    month_year_range,
)
from backoffice.config import AnalyticsSettings, get_settings

logger = structlog.get_logger(__name__)

BY_MONTH_LIMIT = 12
TOP_ITEMS_LIMIT = 10


def _window(start: datetime, end: datetime) -> TimeWindow:
    window = TimeWindow(as_utc(start), as_utc(end))
    if window.end < window.start:
        raise InvalidPeriod("end precedes start", start=str(start), end=str(end))
    return window


class ExpenseAnalytics:
    """Expense series and breakdowns in the store's local calendar."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        resolver: Optional[TimezoneResolver] = None,
        settings: Optional[AnalyticsSettings] = None,
    ):
        self.ledger = ExpenseLedger(session_factory)
        self.resolver = resolver or get_timezone_resolver()
        self.settings = settings or get_settings().analytics

    async def series_for_window(self, store_id: str, window: TimeWindow, tz: TzLike) -> List[ExpensePeriodPoint]:
        granularity = choose_granularity(window, tz, self.settings.daily_bucket_max_days)
        buckets = await self.ledger.bucketed(store_id, window, tz, granularity)
        return [
            ExpensePeriodPoint(period=key, amount=round(totals.amount, 2), count=totals.count)
            for key, totals in fill_series(window, tz, granularity, buckets)
        ]

    async def get_expense_series(
        self,
        start: datetime,
        end: datetime,
        store_id: str,
    ) -> List[ExpensePeriodPoint]:
        """
        Gap-free expense series between ``start`` and ``end``.

        Daily buckets for windows of up to 31 local days, monthly beyond.
        Every bucket in the window appears once, zeroed when empty.
        """
        tz = self.resolver.get_store_timezone(store_id)
        return await self.series_for_window(store_id, _window(start, end), tz)

    async def get_expense_stats(
        self,
        store_id: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> ExpenseStats:
        """Totals with category, payment method, month and top item breakdowns."""
        tz = self.resolver.get_store_timezone(store_id)
        window = _window(start, end) if start is not None and end is not None else None

        totals, by_category, by_payment, by_month, top_items = await asyncio.gather(
            self.ledger.totals(store_id, window),
            self.ledger.grouped(store_id, "category", window),
            self.ledger.grouped(store_id, "payment_method", window),
            self.ledger.bucketed(store_id, window, tz, Granularity.MONTH),
            self.ledger.top_products(store_id, window, TOP_ITEMS_LIMIT),
        )

        recent_months = sorted(by_month.items(), key=lambda item: item[0], reverse=True)[:BY_MONTH_LIMIT]

        logger.debug(
            "Expense stats computed",
            store_id=store_id,
            total_expenses=totals.count,
            categories=len(by_category),
        )
        return ExpenseStats(
            total_expenses=totals.count,
            total_amount=round(totals.amount, 2),
            by_category=[
                CategoryAmount(category=category or "other", amount=round(t.amount, 2), count=t.count)
                for category, t in by_category.items()
            ],
            by_payment_method=[
                PaymentMethodAmount(payment_method=method or "unknown", amount=round(t.amount, 2), count=t.count)
                for method, t in by_payment.items()
            ],
            by_month=[
                MonthAmount(month=month, amount=round(t.amount, 2), count=t.count)
                for month, t in recent_months
            ],
            top_expense_items=[
                TopExpenseItem(
                    product_name=item["product_name"],
                    total_amount=round(item["total_amount"], 2),
                    total_quantity=item["total_quantity"],
                    count=item["count"],
                )
                for item in top_items
            ],
        )

    async def get_monthly_expense_summary(self, year: int, store_id: str) -> MonthlyExpenseReport:
        """January to December of ``year``, each with a per-category split."""
        tz = self.resolver.get_store_timezone(store_id)
        window = TimeWindow(month_year_range(1, year, tz).start, month_year_range(12, year, tz).end)
        months = await self.ledger.category_months(store_id, window, tz)

        summaries = []
        for number, name in enumerate(MONTH_NAMES, start=1):
            categories = months.get(f"{year:04d}-{number:02d}", {})
            summaries.append(
                MonthlyExpenseSummary(
                    month=number,
                    month_name=name,
                    total=round(sum(t.amount for t in categories.values()), 2),
                    count=sum(t.count for t in categories.values()),
                    categories={category: round(t.amount, 2) for category, t in sorted(categories.items())},
                )
            )

        return MonthlyExpenseReport(
            year=year,
            total=round(sum(summary.total for summary in summaries), 2),
            months=summaries,
        )

    async def get_expenses_by_date_range(
        self,
        start: datetime,
        end: datetime,
        store_id: str,
    ) -> List[ExpenseRecord]:
        expenses = await self.ledger.in_range(store_id, _window(start, end))
        return [
            ExpenseRecord(
                id=expense.id,
                date=as_utc(expense.date),
                product_name=expense.product_name,
                product_id=expense.product_id,
                quantity=expense.quantity,
                amount=coerce_amount(expense.amount),
                cost_per_unit=expense.cost_per_unit,
                category=expense.category or "other",
                payment_method=expense.payment_method,
            )
            for expense in expenses
        ]
