"""
Unit Tests - Bucketing and Gap Filling
"""
from datetime import datetime, timezone

import pytest

from backoffice.analytics.series import (
    Granularity,
    Totals,
    bucket_totals,
    choose_granularity,
    coerce_amount,
    fill_series,
    iter_period_keys,
    local_part_totals,
    trailing_months_window,
)
from backoffice.analytics.timezone import month_year_range, parse_date_range

UTC = timezone.utc


class TestGranularity:
    """Tests for daily vs monthly bucketing"""

    def test_month_is_daily(self):
        """A 31 day month is still bucketed by day"""
        assert choose_granularity(month_year_range(1, 2025, "UTC"), "UTC") is Granularity.DAY

    def test_longer_window_is_monthly(self):
        """32 local days switch to monthly buckets"""
        window = parse_date_range("2025-01-01", "2025-02-01", "UTC")

        assert choose_granularity(window, "UTC") is Granularity.MONTH


class TestPeriodKeys:
    """Tests for the gap-filling walk"""

    def test_daily_keys(self):
        """Every local day appears once"""
        window = parse_date_range("2025-02-27", "2025-03-02", "UTC")

        assert list(iter_period_keys(window, "UTC", Granularity.DAY)) == [
            "2025-02-27", "2025-02-28", "2025-03-01", "2025-03-02",
        ]

    def test_monthly_keys_cross_year(self):
        """Test month walk over a year boundary"""
        window = parse_date_range("2024-11-15", "2025-02-03", "UTC")

        assert list(iter_period_keys(window, "UTC", Granularity.MONTH)) == [
            "2024-11", "2024-12", "2025-01", "2025-02",
        ]

    def test_keys_follow_store_timezone(self):
        """A local-day window keyed in its own zone has no extra day"""
        window = parse_date_range("2025-01-01", "2025-01-02", "Europe/Istanbul")

        assert list(iter_period_keys(window, "Europe/Istanbul", Granularity.DAY)) == ["2025-01-01", "2025-01-02"]

    def test_trailing_months_window(self):
        """Trailing 12 months include the current month"""
        window = trailing_months_window(12, "UTC", datetime(2025, 3, 15, tzinfo=UTC))
        keys = list(iter_period_keys(window, "UTC", Granularity.MONTH))

        assert len(keys) == 12
        assert keys[0] == "2024-04"
        assert keys[-1] == "2025-03"


class TestFillSeries:
    """Tests for gap-free series"""

    def test_gaps_are_zero_filled(self):
        """Sales on day 1 and day 3 leave a zero entry for day 2"""
        window = parse_date_range("2025-01-01", "2025-01-03", "UTC")
        buckets = bucket_totals(
            [(datetime(2025, 1, 1, 10), 100), (datetime(2025, 1, 3, 15), 200)],
            "UTC",
            Granularity.DAY,
        )

        assert fill_series(window, "UTC", Granularity.DAY, buckets) == [
            ("2025-01-01", Totals(100.0, 1)),
            ("2025-01-02", Totals(0.0, 0)),
            ("2025-01-03", Totals(200.0, 1)),
        ]

    def test_custom_zero_factory(self):
        """Test zero values can be any shape"""
        window = parse_date_range("2025-01-01", "2025-01-01", "UTC")

        assert fill_series(window, "UTC", Granularity.DAY, {}, dict) == [("2025-01-01", {})]


class TestBucketTotals:
    """Tests for polars grouping"""

    def test_groups_by_local_day(self):
        """Instants are keyed in the store's zone before grouping"""
        rows = [
            (datetime(2024, 12, 31, 22, 30), 10),
            (datetime(2025, 1, 1, 0, 30), 5),
            (datetime(2025, 1, 1, 23, 0), 1),
        ]

        assert bucket_totals(rows, "Europe/Istanbul", Granularity.DAY) == {
            "2025-01-01": Totals(15.0, 2),
            "2025-01-02": Totals(1.0, 1),
        }

    def test_missing_amounts_count_as_zero(self):
        """Test null amounts still count as rows"""
        rows = [(datetime(2025, 1, 1), None), (datetime(2025, 1, 5), "12.5")]

        assert bucket_totals(rows, "UTC", Granularity.MONTH) == {"2025-01": Totals(12.5, 2)}

    def test_empty(self):
        """Test no rows gives no buckets"""
        assert bucket_totals([], "UTC", Granularity.DAY) == {}

    def test_weekday_and_hour(self):
        """Test local weekday (Monday = 0) and hour grouping"""
        rows = [(datetime(2025, 3, 10, 21, 30), 40)]  # Monday 21:30Z, Tuesday 00:30 in UTC+3

        assert local_part_totals(rows, "UTC", "weekday") == {0: Totals(40.0, 1)}
        assert local_part_totals(rows, "Europe/Istanbul", "weekday") == {1: Totals(40.0, 1)}
        assert local_part_totals(rows, "Europe/Istanbul", "hour") == {0: Totals(40.0, 1)}

    def test_unknown_part(self):
        """Test unsupported part raises"""
        with pytest.raises(ValueError):
            local_part_totals([], "UTC", "minute")


class TestCoerceAmount:
    """Tests for amount coercion"""

    @pytest.mark.parametrize("value,expected", [(None, 0.0), ("3.5", 3.5), ("abc", 0.0), (float("nan"), 0.0), (7, 7.0)])
    def test_coerce(self, value, expected):
        """Test non-numeric values count as zero"""
        assert coerce_amount(value) == expected
