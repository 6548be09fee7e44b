"""
Time-series bucketing and gap filling.

Rows fetched from the ledgers are keyed by local calendar day or month
with the same formatters the gap-filling walk uses, grouped with polars,
and then laid over a dense list of expected keys.
"""

from datetime import date, datetime, timedelta
from enum import Enum
import math
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, NamedTuple, Optional, Sequence, Tuple

import polars as pl

from backoffice.analytics.timezone import (
    TimeWindow,
    TzLike,
    format_in_local_day,
    format_in_local_month,
    local_date,
    local_datetime,
    month_year_range,
    start_of_local_day,
    utc_now,
)

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


class Granularity(str, Enum):
    DAY = "day"
    MONTH = "month"


class Totals(NamedTuple):
    amount: float = 0.0
    count: int = 0


ZERO = Totals()


def coerce_amount(value: Any) -> float:
    """Numeric view of a stored amount; missing or non-numeric values count as 0."""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    return number if math.isfinite(number) else 0.0


def local_day_count(window: TimeWindow, tz: TzLike) -> int:
    return (local_date(window.end, tz) - local_date(window.start, tz)).days + 1


def choose_granularity(window: TimeWindow, tz: TzLike, max_daily_days: int = 31) -> Granularity:
    """Daily buckets up to ``max_daily_days`` local days, monthly beyond that."""
    if local_day_count(window, tz) <= max_daily_days:
        return Granularity.DAY
    return Granularity.MONTH


def bucket_key(instant: datetime, tz: TzLike, granularity: Granularity) -> str:
    if granularity is Granularity.DAY:
        return format_in_local_day(instant, tz)
    return format_in_local_month(instant, tz)


def _add_month(day: date) -> date:
    if day.month == 12:
        return date(day.year + 1, 1, 1)
    return date(day.year, day.month + 1, 1)


def iter_period_keys(window: TimeWindow, tz: TzLike, granularity: Granularity) -> Iterator[str]:
    """Walk a local date cursor from the window start to its end, one bucket at a time."""
    cursor = local_date(window.start, tz)
    last = local_date(window.end, tz)

    if granularity is Granularity.DAY:
        while cursor <= last:
            yield f"{cursor.year:04d}-{cursor.month:02d}-{cursor.day:02d}"
            cursor += timedelta(days=1)
        return

    cursor = cursor.replace(day=1)
    last = last.replace(day=1)
    while cursor <= last:
        yield f"{cursor.year:04d}-{cursor.month:02d}"
        cursor = _add_month(cursor)


def fill_series(
    window: TimeWindow,
    tz: TzLike,
    granularity: Granularity,
    buckets: Mapping[str, Any],
    zero: Callable[[], Any] = lambda: ZERO,
) -> List[Tuple[str, Any]]:
    """One ``(key, value)`` per expected bucket, substituting ``zero()`` for empty ones."""
    return [
        (key, buckets[key] if key in buckets else zero())
        for key in iter_period_keys(window, tz, granularity)
    ]


def trailing_months_window(months: int, tz: TzLike, now: Optional[datetime] = None) -> TimeWindow:
    """The last ``months`` local calendar months, the current one included."""
    today = local_date(utc_now(now), tz)
    first = date(today.year, today.month, 1)
    for _ in range(max(months, 1) - 1):
        first = (first - timedelta(days=1)).replace(day=1)
    current = month_year_range(today.month, today.year, tz)
    return TimeWindow(start_of_local_day(first, tz), current.end)


# =============================================================================
# POLARS AGGREGATION
# =============================================================================

def keyed_frame(
    instants: Sequence[datetime],
    key_fn: Callable[[datetime], Any],
    key_dtype: Any = pl.Utf8,
    **columns: Sequence[Any],
) -> pl.DataFrame:
    """Frame with a ``key`` column derived from ``instants`` plus the given columns."""
    data: Dict[str, Any] = {"key": pl.Series("key", [key_fn(i) for i in instants], dtype=key_dtype)}
    for name, values in columns.items():
        data[name] = pl.Series(name, [coerce_amount(v) for v in values], dtype=pl.Float64)
    return pl.DataFrame(data)


def sum_by_key(frame: pl.DataFrame, value: str = "amount") -> Dict[Any, Totals]:
    if frame.is_empty():
        return {}
    grouped = frame.group_by("key").agg(
        pl.col(value).sum().alias("amount"),
        pl.len().alias("count"),
    )
    return {
        row["key"]: Totals(float(row["amount"]), int(row["count"]))
        for row in grouped.iter_rows(named=True)
    }


def bucket_totals(
    rows: Iterable[Tuple[datetime, Any]],
    tz: TzLike,
    granularity: Granularity,
) -> Dict[str, Totals]:
    """Group ``(instant, amount)`` rows into local calendar buckets."""
    rows = list(rows)
    frame = keyed_frame(
        [instant for instant, _ in rows],
        lambda instant: bucket_key(instant, tz, granularity),
        amount=[amount for _, amount in rows],
    )
    return sum_by_key(frame)


def local_part_totals(
    rows: Iterable[Tuple[datetime, Any]],
    tz: TzLike,
    part: str,
) -> Dict[int, Totals]:
    """Group rows by local ``weekday`` (0 = Monday) or ``hour``."""
    if part not in ("weekday", "hour"):
        raise ValueError(f"Unsupported local time part: {part}")
    rows = list(rows)

    def key_fn(instant: datetime) -> int:
        local = local_datetime(instant, tz)
        return local.weekday() if part == "weekday" else local.hour

    frame = keyed_frame(
        [instant for instant, _ in rows],
        key_fn,
        key_dtype=pl.Int32,
        amount=[amount for _, amount in rows],
    )
    return sum_by_key(frame)
