"""
FastAPI dependencies shared by the analytics and expense routers.
"""

from typing import Optional

from fastapi import Depends, Header, Query
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backoffice.analytics.dashboard import DashboardService
from backoffice.analytics.expenses import ExpenseAnalytics
from backoffice.analytics.periods import DashboardFilters
from backoffice.analytics.pricing import PriceMonitor
from backoffice.analytics.sales import SalesReports
from backoffice.config import get_settings
from backoffice.database.connection import get_session_factory
from backoffice.serving.cache import DashboardCache, dashboard_cache


def get_store_id(x_store_id: Optional[str] = Header(None, alias="X-Store-ID")) -> str:
    """Store from the ``X-Store-ID`` header, else the configured default store."""
    store_id = (x_store_id or "").strip()
    return store_id or get_settings().analytics.default_store_id


def get_dashboard_filters(
    date_range: Optional[str] = Query(None, alias="dateRange", description="today | this_month | 7d | 30d | 90d | 1y"),
    payment_method: Optional[str] = Query(None, alias="paymentMethod"),
    order_source: Optional[str] = Query(None, alias="orderSource"),
    status: Optional[str] = Query(None),
    start_date: Optional[str] = Query(None, alias="startDate", description="YYYY-MM-DD"),
    end_date: Optional[str] = Query(None, alias="endDate", description="YYYY-MM-DD"),
    month: Optional[int] = Query(None, ge=1, le=12),
    year: Optional[int] = Query(None, ge=1900, le=2100),
) -> DashboardFilters:
    return DashboardFilters(
        date_range=date_range,
        payment_method=payment_method,
        order_source=order_source,
        status=status,
        start_date=start_date,
        end_date=end_date,
        month=month,
        year=year,
    )


def get_db_session_factory() -> async_sessionmaker[AsyncSession]:
    return get_session_factory()


def get_dashboard_service(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
) -> DashboardService:
    return DashboardService(session_factory)


def get_sales_reports(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
) -> SalesReports:
    return SalesReports(session_factory)


def get_expense_analytics(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
) -> ExpenseAnalytics:
    return ExpenseAnalytics(session_factory)


def get_price_monitor(
    session_factory: async_sessionmaker[AsyncSession] = Depends(get_db_session_factory),
) -> PriceMonitor:
    return PriceMonitor(session_factory, get_settings().analytics.price_change_threshold)


def get_dashboard_cache() -> DashboardCache:
    return dashboard_cache
