"""
Store timezone utilities.

Converts human-facing period descriptors (today, this month, last N days,
an explicit month, a custom start/end pair) into absolute UTC windows for
a store's timezone, and formats instants back into local calendar keys.

Every bucket key in the reports is produced by :func:`format_in_local_day`
or :func:`format_in_local_month`, for both the queried groups and the
gap-filling walk.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Dict, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import structlog

from backoffice.analytics.exceptions import InvalidPeriod
from backoffice.config import get_settings

logger = structlog.get_logger(__name__)

UTC = timezone.utc
ONE_MS = timedelta(milliseconds=1)
MIN_YEAR = 1900
MAX_YEAR = 2100

TzLike = Union[str, tzinfo]
DateLike = Union[str, date, datetime]


@dataclass(frozen=True)
class TimeWindow:
    """Inclusive ``[start, end]`` pair of aware UTC instants."""

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def naive_bounds(self) -> tuple:
        """Bounds as naive UTC datetimes, the ledger storage convention."""
        return to_naive_utc(self.start), to_naive_utc(self.end)


def resolve_zone(tz: TzLike) -> tzinfo:
    if isinstance(tz, tzinfo):
        return tz
    try:
        return ZoneInfo(tz)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidPeriod(f"unknown timezone {tz!r}", timezone=str(tz)) from e


def as_utc(instant: datetime) -> datetime:
    """Aware UTC view of ``instant``; naive values are read as UTC."""
    if instant.tzinfo is None:
        return instant.replace(tzinfo=UTC)
    return instant.astimezone(UTC)


def to_naive_utc(instant: datetime) -> datetime:
    return as_utc(instant).replace(tzinfo=None)


def utc_now(now: Optional[datetime] = None) -> datetime:
    return as_utc(now) if now is not None else datetime.now(UTC)


def local_datetime(instant: datetime, tz: TzLike) -> datetime:
    return as_utc(instant).astimezone(resolve_zone(tz))


def local_date(instant: datetime, tz: TzLike) -> date:
    return local_datetime(instant, tz).date()


def start_of_local_day(day: date, tz: TzLike) -> datetime:
    """UTC instant of local midnight at the start of ``day``."""
    return datetime.combine(day, time.min, tzinfo=resolve_zone(tz)).astimezone(UTC)


def end_of_local_day(day: date, tz: TzLike) -> datetime:
    """UTC instant one millisecond before the next local midnight."""
    return start_of_local_day(day + timedelta(days=1), tz) - ONE_MS


def local_days_window(first: date, last: date, tz: TzLike) -> TimeWindow:
    return TimeWindow(start_of_local_day(first, tz), end_of_local_day(last, tz))


# =============================================================================
# PERIOD HELPERS
# =============================================================================

def today_range(tz: TzLike, now: Optional[datetime] = None) -> TimeWindow:
    today = local_date(utc_now(now), tz)
    return local_days_window(today, today, tz)


def yesterday_range(tz: TzLike, now: Optional[datetime] = None) -> TimeWindow:
    yesterday = local_date(utc_now(now), tz) - timedelta(days=1)
    return local_days_window(yesterday, yesterday, tz)


def month_year_range(month: int, year: int, tz: TzLike) -> TimeWindow:
    """
    Full local calendar month.

    Raises:
        InvalidPeriod: If month is outside 1-12 or year outside 1900-2100
    """
    if not isinstance(month, int) or not 1 <= month <= 12:
        raise InvalidPeriod("month must be between 1 and 12", month=month)
    if not isinstance(year, int) or not MIN_YEAR <= year <= MAX_YEAR:
        raise InvalidPeriod(f"year must be between {MIN_YEAR} and {MAX_YEAR}", year=year)

    first = date(year, month, 1)
    next_first = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return local_days_window(first, next_first - timedelta(days=1), tz)


def this_month_range(tz: TzLike, now: Optional[datetime] = None) -> TimeWindow:
    today = local_date(utc_now(now), tz)
    return month_year_range(today.month, today.year, tz)


def last_n_days_range(n: int, tz: TzLike, now: Optional[datetime] = None) -> TimeWindow:
    """From local midnight ``n`` days ago through the end of today."""
    if n < 0:
        raise InvalidPeriod("day count must not be negative", days=n)
    today = local_date(utc_now(now), tz)
    return local_days_window(today - timedelta(days=n), today, tz)


def _parse_day(value: Optional[DateLike], tz: TzLike = UTC) -> Optional[date]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return local_date(value, tz)
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None

    text = value.strip()[:10]
    parts = text.split("-")
    if len(parts) != 3 or not all(part.isdigit() for part in parts):
        return None

    year, month, day = (int(part) for part in parts)
    if not MIN_YEAR <= year <= MAX_YEAR or not 1 <= month <= 12 or not 1 <= day <= 31:
        return None
    try:
        return date(year, month, day)
    except ValueError:
        return None


def validate_date_string(value: Optional[DateLike]) -> bool:
    return _parse_day(value) is not None


def parse_date_range(
    start: Optional[DateLike],
    end: Optional[DateLike],
    tz: TzLike,
) -> Optional[TimeWindow]:
    """
    Parse a custom ``YYYY-MM-DD`` pair into a local-calendar window.

    Longer ISO strings are cut to their date portion and datetimes count as
    their calendar day in ``tz``. Returns ``None`` when either side is
    missing or malformed, or when the end precedes the start, so callers can
    fall back to a default period.
    """
    first = _parse_day(start, tz)
    last = _parse_day(end, tz)
    if first is None or last is None:
        return None
    if last < first:
        logger.debug("Inverted custom date range", start=str(first), end=str(last))
        return None
    return local_days_window(first, last, tz)


def format_in_local_day(instant: datetime, tz: TzLike) -> str:
    local = local_datetime(instant, tz)
    return f"{local.year:04d}-{local.month:02d}-{local.day:02d}"


def format_in_local_month(instant: datetime, tz: TzLike) -> str:
    local = local_datetime(instant, tz)
    return f"{local.year:04d}-{local.month:02d}"


# =============================================================================
# STORE TIMEZONE LOOKUP
# =============================================================================

class TimezoneResolver:
    """
    Per-store IANA timezone lookup.

    Stores without an entry, or whose entry names an unknown zone, use the
    default zone.
    """

    def __init__(self, default: str = "UTC", overrides: Optional[Dict[str, str]] = None):
        self._zones: Dict[str, str] = {}
        if self._is_known(default):
            self.default = default
        else:
            logger.warning("Unknown default timezone, using UTC", timezone=default)
            self.default = "UTC"
        self.update(overrides or {})

    @staticmethod
    def _is_known(name: str) -> bool:
        try:
            ZoneInfo(name)
        except (ZoneInfoNotFoundError, ValueError):
            return False
        return True

    def update(self, mapping: Dict[str, Optional[str]]) -> None:
        for store_id, name in mapping.items():
            if not name:
                continue
            if not self._is_known(name):
                logger.warning("Ignoring unknown store timezone", store_id=store_id, timezone=name)
                continue
            self._zones[store_id] = name

    def get_store_timezone(self, store_id: Optional[str]) -> str:
        if store_id is None:
            return self.default
        return self._zones.get(store_id, self.default)


@lru_cache()
def get_timezone_resolver() -> TimezoneResolver:
    analytics = get_settings().analytics
    return TimezoneResolver(analytics.default_timezone, analytics.store_timezones)
