"""
Report period resolution and comparison helpers.

A request resolves exactly one primary period up front. Every
consistency-coupled metric (sales, expenses, transaction counts, profit)
is computed over that same window.
"""

from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
import math
from typing import Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field
import structlog

from backoffice.analytics.timezone import (
    MIN_YEAR,
    ONE_MS,
    TimeWindow,
    TzLike,
    last_n_days_range,
    month_year_range,
    parse_date_range,
    this_month_range,
    today_range,
)

logger = structlog.get_logger(__name__)

DEFAULT_STATUSES: Tuple[str, ...] = ("pending", "completed")
ALL = "all"
IN_STORE = "in-store"
UNKNOWN_METHOD = "unknown"

DATE_RANGE_DAYS: Dict[str, int] = {
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "1y": 365,
}

PAYMENT_METHOD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "pos": ("card", "pos", "bank_card", "debit_card", "credit_card"),
    "naira_transfer": ("transfer", "naira_transfer", "bank_transfer"),
    "crypto_payment": ("crypto", "crypto_payment"),
    "cash": ("cash_on_delivery", "cod", "cash"),
}

_CANONICAL_BY_ALIAS: Dict[str, str] = {
    alias: canonical
    for canonical, aliases in PAYMENT_METHOD_ALIASES.items()
    for alias in aliases
}


class DashboardFilters(BaseModel):
    """Caller-supplied report filters. Unknown or empty values mean "no filter"."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    date_range: Optional[str] = Field(None, alias="dateRange")
    payment_method: Optional[str] = Field(None, alias="paymentMethod")
    order_source: Optional[str] = Field(None, alias="orderSource")
    status: Optional[str] = None
    start_date: Optional[Union[str, datetime, date]] = Field(None, alias="startDate")
    end_date: Optional[Union[str, datetime, date]] = Field(None, alias="endDate")
    month: Optional[int] = Field(None, ge=1, le=12)
    year: Optional[int] = Field(None, ge=1900, le=2100)

    def signature(self) -> Dict[str, object]:
        """Stable, JSON-ready view of the set filters, used for cache keys."""
        return self.model_dump(mode="json", exclude_none=True)


class PeriodKind(str, Enum):
    MONTH = "month"
    TODAY = "today"
    THIS_MONTH = "this_month"
    LAST_N_DAYS = "last_n_days"
    CUSTOM = "custom"
    DEFAULT = "default"


@dataclass(frozen=True)
class PrimaryPeriod:
    window: TimeWindow
    kind: PeriodKind
    label: str
    month: Optional[int] = None
    year: Optional[int] = None

    @property
    def start(self) -> datetime:
        return self.window.start

    @property
    def end(self) -> datetime:
        return self.window.end


def normalize_payment_method(value: Optional[str]) -> str:
    """
    Collapse historical payment method spellings onto one key.

    >>> normalize_payment_method("credit_card")
    'pos'
    >>> normalize_payment_method(" Voucher ")
    'voucher'
    """
    key = (value or "").strip().lower()
    if not key:
        return UNKNOWN_METHOD
    return _CANONICAL_BY_ALIAS.get(key, key)


def payment_method_aliases(value: str) -> List[str]:
    """Every raw spelling that normalizes to the same key as ``value``."""
    canonical = normalize_payment_method(value)
    return list(PAYMENT_METHOD_ALIASES.get(canonical, (canonical,)))


def normalize_order_source(value: Optional[str]) -> str:
    key = (value or "").strip().lower()
    return key or IN_STORE


def previous_month(month: int, year: int) -> Tuple[int, int]:
    if month == 1:
        return 12, year - 1
    return month - 1, year


def pct_change(previous: float, current: float) -> float:
    """
    Percentage change from ``previous`` to ``current``, rounded to 2 decimals.

    A zero baseline reports 100 when anything was gained and 0 otherwise.
    """
    previous = float(previous or 0)
    current = float(current or 0)
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    change = round((current - previous) / previous * 100, 2)
    return 0.0 if math.isnan(change) else change


def resolve_primary_period(
    filters: Optional[DashboardFilters],
    tz: TzLike,
    now: Optional[datetime] = None,
    default_days: int = 30,
) -> PrimaryPeriod:
    """
    Resolve the single window all period metrics are computed over.

    First match wins:

    1. ``month`` + ``year`` when no custom start/end is given
    2. a named ``date_range`` token
    3. a custom ``start_date`` / ``end_date`` pair
    4. the trailing ``default_days`` days ending today
    """
    filters = filters or DashboardFilters()
    has_custom = filters.start_date is not None or filters.end_date is not None

    if filters.month is not None and filters.year is not None and not has_custom:
        return PrimaryPeriod(
            window=month_year_range(filters.month, filters.year, tz),
            kind=PeriodKind.MONTH,
            label=f"{filters.year:04d}-{filters.month:02d}",
            month=filters.month,
            year=filters.year,
        )

    token = (filters.date_range or "").strip().lower()
    if token == "today":
        return PrimaryPeriod(today_range(tz, now), PeriodKind.TODAY, token)
    if token == "this_month":
        return PrimaryPeriod(this_month_range(tz, now), PeriodKind.THIS_MONTH, token)
    if token in DATE_RANGE_DAYS:
        return PrimaryPeriod(
            last_n_days_range(DATE_RANGE_DAYS[token], tz, now),
            PeriodKind.LAST_N_DAYS,
            token,
        )
    if token and token != ALL:
        logger.debug("Unknown date range token, falling through", date_range=token)

    if filters.start_date is not None and filters.end_date is not None:
        custom = parse_date_range(filters.start_date, filters.end_date, tz)
        if custom is not None:
            return PrimaryPeriod(custom, PeriodKind.CUSTOM, "custom")
        logger.debug(
            "Unparseable custom date range, using default period",
            start_date=str(filters.start_date),
            end_date=str(filters.end_date),
        )

    return PrimaryPeriod(
        last_n_days_range(default_days, tz, now),
        PeriodKind.DEFAULT,
        f"{default_days}d",
    )


def equal_length_previous(window: TimeWindow) -> TimeWindow:
    """The window of equal duration ending one millisecond before ``window``."""
    previous_end = window.start - ONE_MS
    return TimeWindow(previous_end - window.duration, previous_end)


def previous_period(period: PrimaryPeriod, tz: TzLike) -> TimeWindow:
    """Comparison window: the prior calendar month for month filters, else equal length."""
    if period.kind is PeriodKind.MONTH:
        month, year = previous_month(period.month, period.year)
        if year >= MIN_YEAR:
            return month_year_range(month, year, tz)
        logger.debug("Prior month out of range, using equal length window", month=month, year=year)
    return equal_length_previous(period.window)


def window_days(window: TimeWindow) -> int:
    """Whole local days covered by ``window``, at least one."""
    return max(1, round(window.duration.total_seconds() / 86400))
