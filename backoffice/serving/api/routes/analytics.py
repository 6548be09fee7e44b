"""
Analytics API Endpoints

Dashboard, sales, product, inventory and category reports for the store
named by the ``X-Store-ID`` header. Every report accepts the dashboard
filter query parameters and answers with ``{"success": true, "data": ...}``.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Query
from fastapi.encoders import jsonable_encoder

from backoffice.analytics.dashboard import DashboardService
from backoffice.analytics.expenses import ExpenseAnalytics
from backoffice.analytics.periods import DashboardFilters
from backoffice.analytics.sales import SalesReports
from backoffice.serving.api.dependencies import (
    get_dashboard_cache,
    get_dashboard_filters,
    get_dashboard_service,
    get_expense_analytics,
    get_sales_reports,
    get_store_id,
)
from backoffice.serving.cache import DashboardCache

router = APIRouter()
logger = structlog.get_logger(__name__)


def envelope(data: Any) -> Dict[str, Any]:
    return {"success": True, "data": jsonable_encoder(data, by_alias=True)}


@router.get("/dashboard")
async def get_dashboard(
    store_id: str = Depends(get_store_id),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    service: DashboardService = Depends(get_dashboard_service),
    cache: DashboardCache = Depends(get_dashboard_cache),
) -> Dict[str, Any]:
    """
    Dashboard metrics for the resolved primary period.

    Served from the dashboard cache when an identical request was answered
    recently.
    """

    async def compute() -> Dict[str, Any]:
        metrics = await service.get_dashboard_metrics(store_id, filters)
        return metrics.model_dump(by_alias=True, mode="json")

    payload = await cache.get_or_compute(store_id, filters, compute)
    return {"success": True, "data": payload}


@router.get("/sales")
async def get_sales(
    store_id: str = Depends(get_store_id),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    reports: SalesReports = Depends(get_sales_reports),
) -> Dict[str, Any]:
    return envelope(await reports.get_sales_analytics(store_id, filters))


@router.get("/sales/by-day-of-week")
async def get_sales_by_day_of_week(
    store_id: str = Depends(get_store_id),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    reports: SalesReports = Depends(get_sales_reports),
) -> Dict[str, Any]:
    return envelope(await reports.get_sales_by_day_of_week(store_id, filters))


@router.get("/sales/by-hour-of-day")
async def get_sales_by_hour_of_day(
    store_id: str = Depends(get_store_id),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    reports: SalesReports = Depends(get_sales_reports),
) -> Dict[str, Any]:
    return envelope(await reports.get_sales_by_hour_of_day(store_id, filters))


@router.get("/sales/by-category")
async def get_sales_by_category(
    store_id: str = Depends(get_store_id),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    reports: SalesReports = Depends(get_sales_reports),
) -> Dict[str, Any]:
    return envelope(await reports.get_sales_by_category(store_id, filters))


@router.get("/transactions")
async def get_transactions(
    limit: Optional[int] = Query(None, ge=1, le=500),
    store_id: str = Depends(get_store_id),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    reports: SalesReports = Depends(get_sales_reports),
) -> Dict[str, Any]:
    """Filtered transactions with their line items, newest first."""
    return envelope(await reports.get_filtered_transactions(store_id, filters, limit))


@router.get("/products")
async def get_products(
    store_id: str = Depends(get_store_id),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    reports: SalesReports = Depends(get_sales_reports),
) -> Dict[str, Any]:
    return envelope(await reports.get_product_analytics(store_id, filters))


@router.get("/products/best-performers")
async def get_best_performers(
    limit: Optional[int] = Query(None, ge=1, le=100),
    store_id: str = Depends(get_store_id),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    reports: SalesReports = Depends(get_sales_reports),
) -> Dict[str, Any]:
    return envelope(await reports.get_best_performers(store_id, filters, limit))


@router.get("/products/most-profitable")
async def get_most_profitable(
    limit: Optional[int] = Query(None, ge=1, le=100),
    store_id: str = Depends(get_store_id),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    reports: SalesReports = Depends(get_sales_reports),
) -> Dict[str, Any]:
    return envelope(await reports.get_most_profitable_products(store_id, filters, limit))


@router.get("/products/fastest-moving")
async def get_fastest_moving(
    limit: Optional[int] = Query(None, ge=1, le=100),
    store_id: str = Depends(get_store_id),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    reports: SalesReports = Depends(get_sales_reports),
) -> Dict[str, Any]:
    return envelope(await reports.get_fastest_moving_products(store_id, filters, limit))


@router.get("/products/worst-performers")
async def get_worst_performers(
    limit: Optional[int] = Query(None, ge=1, le=100),
    store_id: str = Depends(get_store_id),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    reports: SalesReports = Depends(get_sales_reports),
) -> Dict[str, Any]:
    return envelope(await reports.get_worst_performers(store_id, filters, limit))


@router.get("/inventory")
async def get_inventory(
    store_id: str = Depends(get_store_id),
    reports: SalesReports = Depends(get_sales_reports),
) -> Dict[str, Any]:
    return envelope(await reports.get_inventory_analytics(store_id))


@router.get("/categories/performance")
async def get_category_performance(
    store_id: str = Depends(get_store_id),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    reports: SalesReports = Depends(get_sales_reports),
) -> Dict[str, Any]:
    return envelope(await reports.get_category_performance(store_id, filters))


@router.get("/expenses")
async def get_expense_analytics_report(
    store_id: str = Depends(get_store_id),
    filters: DashboardFilters = Depends(get_dashboard_filters),
    reports: SalesReports = Depends(get_sales_reports),
    expenses: ExpenseAnalytics = Depends(get_expense_analytics),
) -> Dict[str, Any]:
    """Expense stats over the same primary period the dashboard would use."""
    window = reports.context(store_id, filters).window
    return envelope(await expenses.get_expense_stats(store_id, window.start, window.end))
