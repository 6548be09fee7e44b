"""
Analytics Module

Timezone-aware sales, expense, product and inventory reporting over the
per-store transaction and expense ledgers.
"""
from .dashboard import DashboardService
from .exceptions import AggregationFailure, AnalyticsError, CacheFailure, InvalidPeriod
from .expenses import ExpenseAnalytics
from .periods import DashboardFilters, normalize_payment_method, pct_change, previous_month
from .pricing import PriceMonitor, compute_cost_per_unit, suggest_price_change
from .sales import SalesReports
from .timezone import TimeWindow, TimezoneResolver, get_timezone_resolver

__all__ = [
    "DashboardService",
    "SalesReports",
    "ExpenseAnalytics",
    "PriceMonitor",
    "DashboardFilters",
    "TimeWindow",
    "TimezoneResolver",
    "get_timezone_resolver",
    "normalize_payment_method",
    "pct_change",
    "previous_month",
    "compute_cost_per_unit",
    "suggest_price_change",
    "AnalyticsError",
    "InvalidPeriod",
    "AggregationFailure",
    "CacheFailure",
]
