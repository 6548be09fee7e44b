"""
Unit Tests - Store Timezone Utilities
"""
from datetime import date, datetime, timedelta, timezone

import pytest

from backoffice.analytics.exceptions import InvalidPeriod
from backoffice.analytics.timezone import (
    TimeWindow,
    TimezoneResolver,
    end_of_local_day,
    format_in_local_day,
    format_in_local_month,
    last_n_days_range,
    local_date,
    local_days_window,
    month_year_range,
    parse_date_range,
    start_of_local_day,
    this_month_range,
    today_range,
    validate_date_string,
    yesterday_range,
)

UTC = timezone.utc
NOW = datetime(2025, 3, 15, 12, 0, tzinfo=UTC)


class TestLocalFormatting:
    """Tests for local calendar keys"""

    def test_early_utc_instant_keeps_date_east_of_utc(self):
        """00:30Z is 03:30 local in a UTC+3 store, same calendar day"""
        instant = datetime(2025, 1, 1, 0, 30, tzinfo=UTC)

        assert format_in_local_day(instant, "Europe/Istanbul") == "2025-01-01"

    def test_late_utc_instant_rolls_into_next_local_day(self):
        """22:30Z on New Year's Eve is already 2025 in a UTC+3 store"""
        instant = datetime(2024, 12, 31, 22, 30, tzinfo=UTC)

        assert format_in_local_day(instant, "Europe/Istanbul") == "2025-01-01"
        assert format_in_local_month(instant, "Europe/Istanbul") == "2025-01"

    def test_naive_instants_are_read_as_utc(self):
        """Naive values from the ledger are UTC"""
        instant = datetime(2024, 12, 31, 22, 30)

        assert format_in_local_day(instant, "UTC") == "2024-12-31"
        assert format_in_local_day(instant, "Europe/Istanbul") == "2025-01-01"

    def test_local_date(self):
        """Test local date conversion west of UTC"""
        instant = datetime(2025, 1, 1, 3, 0, tzinfo=UTC)

        assert local_date(instant, "America/New_York") == date(2024, 12, 31)


class TestDayRanges:
    """Tests for today / yesterday windows"""

    def test_today_range_in_utc(self):
        """Today spans local midnight to one millisecond before the next"""
        window = today_range("UTC", NOW)

        assert window.start == datetime(2025, 3, 15, tzinfo=UTC)
        assert window.end == datetime(2025, 3, 15, 23, 59, 59, 999000, tzinfo=UTC)

    def test_today_range_east_of_utc(self):
        """Local midnight in a UTC+3 store is 21:00Z the previous day"""
        window = today_range("Europe/Istanbul", datetime(2025, 1, 1, 0, 30, tzinfo=UTC))

        assert window.start == datetime(2024, 12, 31, 21, 0, tzinfo=UTC)
        assert window.end == datetime(2025, 1, 1, 20, 59, 59, 999000, tzinfo=UTC)

    def test_today_range_on_dst_change(self):
        """A spring-forward day is 23 hours long"""
        window = today_range("Europe/Nicosia", datetime(2025, 3, 30, 12, 0, tzinfo=UTC))

        assert window.start == datetime(2025, 3, 29, 22, 0, tzinfo=UTC)
        assert window.duration == timedelta(hours=23) - timedelta(milliseconds=1)

    def test_yesterday_range(self):
        """Test yesterday is the previous local day"""
        window = yesterday_range("UTC", NOW)

        assert window.start == datetime(2025, 3, 14, tzinfo=UTC)
        assert window.end == end_of_local_day(date(2025, 3, 14), "UTC")

    def test_start_of_local_day(self):
        """Test local midnight conversion"""
        assert start_of_local_day(date(2025, 6, 1), "Europe/Nicosia") == datetime(2025, 5, 31, 21, 0, tzinfo=UTC)


class TestMonthRanges:
    """Tests for calendar month windows"""

    def test_leap_february(self):
        """Test February of a leap year ends on the 29th"""
        window = month_year_range(2, 2024, "UTC")

        assert window.start == datetime(2024, 2, 1, tzinfo=UTC)
        assert window.end == datetime(2024, 2, 29, 23, 59, 59, 999000, tzinfo=UTC)

    def test_december_ends_at_year_end(self):
        """Test December rolls over to the next year boundary"""
        window = month_year_range(12, 2024, "UTC")

        assert window.end == datetime(2024, 12, 31, 23, 59, 59, 999000, tzinfo=UTC)

    def test_month_in_store_timezone(self):
        """Month bounds follow the store's local midnight"""
        window = month_year_range(1, 2025, "Europe/Istanbul")

        assert window.start == datetime(2024, 12, 31, 21, 0, tzinfo=UTC)

    @pytest.mark.parametrize("month,year", [(0, 2025), (13, 2025), (1, 1899), (1, 2101)])
    def test_out_of_range_raises(self, month, year):
        """Test invalid month or year raises InvalidPeriod"""
        with pytest.raises(InvalidPeriod):
            month_year_range(month, year, "UTC")

    def test_this_month_range(self):
        """Test current month follows the clock"""
        window = this_month_range("UTC", NOW)

        assert window.start == datetime(2025, 3, 1, tzinfo=UTC)
        assert window.end == datetime(2025, 3, 31, 23, 59, 59, 999000, tzinfo=UTC)

    def test_last_n_days_range(self):
        """Last 7 days starts at local midnight seven days ago"""
        window = last_n_days_range(7, "UTC", NOW)

        assert window.start == datetime(2025, 3, 8, tzinfo=UTC)
        assert window.end == datetime(2025, 3, 15, 23, 59, 59, 999000, tzinfo=UTC)


class TestParseDateRange:
    """Tests for custom date range parsing"""

    def test_valid_range(self):
        """Test a plain date pair covers both whole local days"""
        window = parse_date_range("2025-01-01", "2025-01-03", "UTC")

        assert window == TimeWindow(
            datetime(2025, 1, 1, tzinfo=UTC),
            datetime(2025, 1, 3, 23, 59, 59, 999000, tzinfo=UTC),
        )

    def test_iso_strings_are_truncated(self):
        """Test time components are ignored"""
        window = parse_date_range("2025-01-01T18:45:00Z", "2025-01-03T01:00:00.000Z", "UTC")

        assert window.start == datetime(2025, 1, 1, tzinfo=UTC)

    def test_date_objects_accepted(self):
        """Test date instances parse like strings"""
        window = parse_date_range(date(2025, 1, 1), date(2025, 1, 1), "UTC")

        assert window.end == datetime(2025, 1, 1, 23, 59, 59, 999000, tzinfo=UTC)

    @pytest.mark.parametrize(
        "start,end",
        [
            ("2025-13-01", "2025-12-31"),
            ("2025-02-30", "2025-03-01"),
            ("abcd-01-01", "2025-01-01"),
            ("1899-01-01", "1899-01-02"),
            ("2025-01-01", None),
            (None, None),
            ("", "2025-01-01"),
        ],
    )
    def test_malformed_input_returns_none(self, start, end):
        """Test malformed input never raises"""
        assert parse_date_range(start, end, "UTC") is None

    def test_inverted_range_returns_none(self):
        """Test end before start is rejected"""
        assert parse_date_range("2025-01-03", "2025-01-01", "UTC") is None

    def test_datetimes_take_the_local_day(self):
        """Test a late UTC evening is the next day in a UTC+3 zone"""
        window = parse_date_range(
            datetime(2025, 3, 1, 22, 0, tzinfo=UTC),
            datetime(2025, 3, 2, 1, 0, tzinfo=UTC),
            "Europe/Istanbul",
        )

        assert window == local_days_window(date(2025, 3, 2), date(2025, 3, 2), "Europe/Istanbul")

    def test_validate_date_string(self):
        """Test date string validation"""
        assert validate_date_string("2025-01-31")
        assert not validate_date_string("2025-1-311")
        assert not validate_date_string("2025-04-31")


class TestTimeWindow:
    """Tests for TimeWindow"""

    def test_naive_bounds(self):
        """Test bounds use the naive UTC ledger convention"""
        start, end = today_range("Europe/Istanbul", NOW).naive_bounds()

        assert start == datetime(2025, 3, 14, 21, 0)
        assert end == datetime(2025, 3, 15, 20, 59, 59, 999000)


class TestTimezoneResolver:
    """Tests for store timezone lookup"""

    def test_configured_store(self):
        """Test store override wins over default"""
        resolver = TimezoneResolver("Europe/Nicosia", {"s1": "Europe/Istanbul"})

        assert resolver.get_store_timezone("s1") == "Europe/Istanbul"
        assert resolver.get_store_timezone("s2") == "Europe/Nicosia"
        assert resolver.get_store_timezone(None) == "Europe/Nicosia"

    def test_unknown_zone_falls_back_to_default(self):
        """Test unknown zone names are skipped"""
        resolver = TimezoneResolver("Europe/Nicosia", {"s1": "Mars/Olympus_Mons"})

        assert resolver.get_store_timezone("s1") == "Europe/Nicosia"
        assert "s1" not in resolver

    def test_unknown_default_uses_utc(self):
        """Test an unusable default degrades to UTC"""
        assert TimezoneResolver("Nowhere/City").default == "UTC"

    def test_update_ignores_empty_values(self):
        """Test store rows without a timezone keep the default"""
        resolver = TimezoneResolver("UTC")
        resolver.update({"s1": None, "s2": "Asia/Tokyo"})

        assert resolver.get_store_timezone("s1") == "UTC"
        assert resolver.get_store_timezone("s2") == "Asia/Tokyo"
