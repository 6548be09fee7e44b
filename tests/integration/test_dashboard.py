"""
Integration Tests - Dashboard Metrics
"""
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from backoffice.analytics.dashboard import DashboardService
from backoffice.analytics.exceptions import AggregationFailure
from backoffice.analytics.periods import DashboardFilters
from conftest import OTHER_STORE_ID, PLUS3_STORE_ID, STORE_ID, utc


@pytest.fixture
def service(session_factory, resolver, analytics_settings, clock) -> DashboardService:
    return DashboardService(session_factory, resolver=resolver, settings=analytics_settings, clock=clock)


@pytest.fixture
async def ledger(seed):
    """A month of activity for store-1, with the clock at 2025-03-15 12:00Z"""
    bread = await seed.product("Bread", category="bakery", price=20.0)
    await seed.product("Jam", category="pantry", price=4.0, stock_quantity=3, min_stock_level=5)

    await seed.sale(100, utc(2025, 3, 10, 10), payment_method="cash", order_source="online",
                    items=[(bread, 5, 20.0)])
    await seed.sale(50, utc(2025, 3, 12, 15), payment_method="credit_card")
    await seed.sale(20, utc(2025, 3, 14, 9), payment_method="cash")
    await seed.sale(30, utc(2025, 3, 15, 9), payment_method="cash")
    await seed.sale(999, utc(2025, 3, 11, 9), status="cancelled")
    await seed.sale(75, utc(2025, 2, 1, 12))
    await seed.sale(500, utc(2025, 3, 10, 10), store_id=OTHER_STORE_ID)

    await seed.expense(40, utc(2025, 3, 11), category="stock")
    await seed.expense(10, utc(2025, 3, 15, 8), category="utilities")
    await seed.expense(25, utc(2025, 2, 5), category="stock")
    await seed.expense(300, utc(2025, 3, 11), store_id=OTHER_STORE_ID)


class TestDashboardTotals:
    """Tests for the default 30 day dashboard"""

    async def test_primary_totals(self, service, ledger):
        """Test sales, expenses and profit share one window"""
        metrics = await service.get_dashboard_metrics(STORE_ID)

        assert metrics.total_sales == 200.0
        assert metrics.total_transactions == 4
        assert metrics.average_transaction_value == 50.0
        assert metrics.total_expenses == 50.0
        assert metrics.net_profit == metrics.total_sales - metrics.total_expenses

    async def test_period_over_period(self, service, ledger):
        """Test deltas against the equal-length previous window"""
        metrics = await service.get_dashboard_metrics(STORE_ID)

        assert metrics.sales_vs_previous_period == 166.67
        assert metrics.expenses_vs_previous_period == 100.0
        assert metrics.profit_vs_previous_period == 200.0
        assert metrics.transactions_vs_previous_period == 300.0
        assert metrics.growth_rate == 166.67

    async def test_day_over_day(self, service, ledger):
        """Test today against yesterday"""
        metrics = await service.get_dashboard_metrics(STORE_ID)

        assert metrics.today_sales == 30.0
        assert metrics.today_transactions == 1
        assert metrics.sales_vs_yesterday == 50.0
        assert metrics.expenses_vs_yesterday == 100.0
        assert metrics.profit_vs_yesterday == 0.0
        assert metrics.transactions_vs_yesterday == 0.0

    async def test_current_month(self, service, ledger):
        """Test the month block defaults to the current month"""
        metrics = await service.get_dashboard_metrics(STORE_ID)

        assert metrics.monthly_sales == 200.0
        assert metrics.monthly_transactions == 4
        assert metrics.monthly_expenses == 50.0

    async def test_breakdowns_are_normalized(self, service, ledger):
        """Payment methods merge aliases; missing sources are in-store"""
        metrics = await service.get_dashboard_metrics(STORE_ID)

        assert metrics.payment_methods == {"cash": 150.0, "pos": 50.0}
        assert metrics.order_sources == {"online": 100.0, "in-store": 100.0}

    async def test_catalog_and_rankings(self, service, ledger):
        """Test catalog counts and ranked lists"""
        metrics = await service.get_dashboard_metrics(STORE_ID)

        assert metrics.total_products == 2
        assert metrics.low_stock_items == 1
        assert [p.product_name for p in metrics.top_products] == ["Bread"]
        assert metrics.top_products[0].revenue == 100.0
        assert metrics.fastest_moving_products[0].turnover_rate == 0.25
        assert [p.product_name for p in metrics.worst_performers] == ["Jam"]

    async def test_recent_transactions(self, service, ledger):
        """Test newest first with normalized payment methods"""
        metrics = await service.get_dashboard_metrics(STORE_ID)

        assert [t.total_amount for t in metrics.recent_transactions] == [30.0, 20.0, 50.0, 100.0]
        assert metrics.recent_transactions[2].payment_method == "pos"
        assert metrics.recent_transactions[2].order_source == "in-store"


class TestDashboardSeries:
    """Tests for gap-free series"""

    async def test_sales_by_period_is_gap_free(self, service, ledger):
        """One entry per local day of the 31 day window"""
        metrics = await service.get_dashboard_metrics(STORE_ID)
        series = {point.period: point for point in metrics.sales_by_period}

        assert len(metrics.sales_by_period) == 31
        assert metrics.sales_by_period[0].period == "2025-02-13"
        assert metrics.sales_by_period[-1].period == "2025-03-15"
        assert series["2025-03-10"].revenue == 100.0
        assert series["2025-03-11"].revenue == 0.0
        assert series["2025-03-11"].transactions == 0

    async def test_expenses_by_period(self, service, ledger):
        """Test expense series shares the primary window"""
        metrics = await service.get_dashboard_metrics(STORE_ID)
        series = {point.period: point for point in metrics.expenses_by_period}

        assert len(metrics.expenses_by_period) == 31
        assert series["2025-03-11"].amount == 40.0

    async def test_sales_by_month(self, service, ledger):
        """Trailing 12 months with an online / in-store split"""
        metrics = await service.get_dashboard_metrics(STORE_ID)
        months = {point.month: point for point in metrics.sales_by_month}

        assert len(metrics.sales_by_month) == 12
        assert metrics.sales_by_month[-1].month == "2025-03"
        assert months["2025-03"].sales == 200.0
        assert months["2025-03"].online_sales == 100.0
        assert months["2025-03"].in_store_sales == 100.0
        assert months["2025-02"].sales == 75.0
        assert months["2024-04"].sales == 0.0

    async def test_period_descriptor(self, service, ledger):
        """Test the resolved period is reported"""
        metrics = await service.get_dashboard_metrics(STORE_ID)

        assert metrics.period.kind == "default"
        assert metrics.period.granularity == "day"
        assert metrics.period.timezone == "UTC"


class TestDashboardFilters:
    """Tests for filtered dashboards"""

    async def test_month_filter_compares_with_prior_month(self, service, ledger):
        """February compares with January"""
        metrics = await service.get_dashboard_metrics(STORE_ID, DashboardFilters(month=2, year=2025))

        assert metrics.total_sales == 75.0
        assert metrics.total_expenses == 25.0
        assert metrics.net_profit == 50.0
        assert metrics.sales_vs_previous_period == 100.0
        assert metrics.monthly_sales == 75.0
        assert len(metrics.sales_by_period) == 28

    async def test_earliest_supported_month(self, service, ledger):
        """January 1900 still produces an empty dashboard"""
        metrics = await service.get_dashboard_metrics(STORE_ID, DashboardFilters(month=1, year=1900))

        assert metrics.total_sales == 0.0
        assert metrics.sales_vs_previous_period == 0.0
        assert metrics.period.previous_end == datetime(1899, 12, 31, 23, 59, 59, 999000, tzinfo=timezone.utc)

    async def test_payment_filter(self, service, ledger):
        """Test alias-aware payment filter"""
        metrics = await service.get_dashboard_metrics(STORE_ID, DashboardFilters(payment_method="card"))

        assert metrics.total_sales == 50.0
        assert metrics.payment_methods == {"pos": 50.0}

    async def test_store_timezone_keys(self, service, seed):
        """22:30Z on New Year's Eve lands on January 1 in a UTC+3 store"""
        await seed.sale(80, utc(2024, 12, 31, 22, 30), store_id=PLUS3_STORE_ID)

        metrics = await service.get_dashboard_metrics(PLUS3_STORE_ID, DashboardFilters(month=1, year=2025))

        assert metrics.total_sales == 80.0
        assert metrics.sales_by_period[0].period == "2025-01-01"
        assert metrics.sales_by_period[0].revenue == 80.0
        assert metrics.period.timezone == "Europe/Istanbul"

    async def test_camel_case_payload(self, service, ledger):
        """Test wire names"""
        payload = (await service.get_dashboard_metrics(STORE_ID)).model_dump(by_alias=True, mode="json")

        assert payload["netProfit"] == 150.0
        assert payload["salesByPeriod"][0] == {"period": "2025-02-13", "revenue": 0.0, "transactions": 0}


class TestDashboardFailures:
    """Tests for sub-metric failure handling"""

    async def test_sub_metric_failure_degrades(self, service, ledger):
        """A failed ranking is empty; the rest of the report is intact"""
        service.rankings.most_profitable = AsyncMock(
            side_effect=AggregationFailure("most_profitable", "timeout", STORE_ID)
        )

        metrics = await service.get_dashboard_metrics(STORE_ID)

        assert metrics.most_profitable_products == []
        assert metrics.total_sales == 200.0

    async def test_expense_failure_degrades_to_zero(self, service, ledger):
        """Test expense totals are soft"""
        service.expenses.totals = AsyncMock(side_effect=AggregationFailure("expense_totals", "timeout", STORE_ID))

        metrics = await service.get_dashboard_metrics(STORE_ID)

        assert metrics.total_expenses == 0.0
        assert metrics.net_profit == 200.0

    async def test_primary_totals_failure_is_hard(self, service, ledger):
        """Test the primary totals propagate their failure"""
        service.transactions.totals = AsyncMock(
            side_effect=AggregationFailure("transaction_totals", "timeout", STORE_ID)
        )

        with pytest.raises(AggregationFailure):
            await service.get_dashboard_metrics(STORE_ID)
