"""
Expense API Endpoints

Expense series, stats and the yearly summary in the store's local
calendar, plus the price check run before an expense is recorded.
"""

from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Path, Query

from backoffice.analytics.expenses import ExpenseAnalytics
from backoffice.analytics.pricing import PriceMonitor
from backoffice.analytics.schemas import PriceCheckRequest
from backoffice.analytics.timezone import TimeWindow, parse_date_range, validate_date_string
from backoffice.serving.api.dependencies import get_expense_analytics, get_price_monitor, get_store_id
from backoffice.serving.api.routes.analytics import envelope

router = APIRouter()
logger = structlog.get_logger(__name__)


def _local_window(
    expenses: ExpenseAnalytics,
    store_id: str,
    start_date: Optional[str],
    end_date: Optional[str],
) -> Optional[TimeWindow]:
    return parse_date_range(start_date, end_date, expenses.resolver.get_store_timezone(store_id))


def _required_window(
    expenses: ExpenseAnalytics,
    store_id: str,
    start_date: str,
    end_date: str,
) -> TimeWindow:
    if not (validate_date_string(start_date) and validate_date_string(end_date)):
        raise HTTPException(status_code=400, detail="startDate and endDate must be valid YYYY-MM-DD dates")
    window = _local_window(expenses, store_id, start_date, end_date)
    if window is None:
        raise HTTPException(status_code=400, detail="startDate must not be after endDate")
    return window


@router.get("")
async def list_expenses(
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
    store_id: str = Depends(get_store_id),
    expenses: ExpenseAnalytics = Depends(get_expense_analytics),
) -> Dict[str, Any]:
    """Expense rows between two local dates, newest first."""
    window = _required_window(expenses, store_id, start_date, end_date)
    return envelope(await expenses.get_expenses_by_date_range(window.start, window.end, store_id))


@router.get("/stats")
async def get_expense_stats(
    start_date: Optional[str] = Query(None, alias="startDate"),
    end_date: Optional[str] = Query(None, alias="endDate"),
    store_id: str = Depends(get_store_id),
    expenses: ExpenseAnalytics = Depends(get_expense_analytics),
) -> Dict[str, Any]:
    """Expense stats, over all time unless a valid local date range is given."""
    window = _local_window(expenses, store_id, start_date, end_date)
    if window is None and (start_date or end_date):
        logger.warning("Ignoring malformed expense date range", start_date=start_date, end_date=end_date)

    if window is None:
        stats = await expenses.get_expense_stats(store_id)
    else:
        stats = await expenses.get_expense_stats(store_id, window.start, window.end)
    return envelope(stats)


@router.get("/series")
async def get_expense_series(
    start_date: str = Query(..., alias="startDate"),
    end_date: str = Query(..., alias="endDate"),
    store_id: str = Depends(get_store_id),
    expenses: ExpenseAnalytics = Depends(get_expense_analytics),
) -> Dict[str, Any]:
    window = _required_window(expenses, store_id, start_date, end_date)
    return envelope(await expenses.get_expense_series(window.start, window.end, store_id))


@router.get("/monthly/{year}")
async def get_monthly_expense_summary(
    year: int = Path(..., ge=1900, le=2100),
    store_id: str = Depends(get_store_id),
    expenses: ExpenseAnalytics = Depends(get_expense_analytics),
) -> Dict[str, Any]:
    return envelope(await expenses.get_monthly_expense_summary(year, store_id))


@router.post("/price-check")
async def check_price_change(
    request: PriceCheckRequest,
    store_id: str = Depends(get_store_id),
    monitor: PriceMonitor = Depends(get_price_monitor),
) -> Dict[str, Any]:
    """Compare an incoming purchase against the catalog cost price and suggest a new selling price."""
    suggestion = await monitor.check_price_change(
        store_id,
        request.product_name,
        request.amount,
        request.quantity,
        request.product_id,
    )
    return envelope(suggestion)
