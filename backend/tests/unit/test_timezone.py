"""
Unit tests for timezone resolution.

Tests the local-day helpers including:
- UTC offsets for whole-hour, half-hour and quarter-hour zones
- DST-aware offsets
- Fallback for unknown zones
- Local day boundaries
- Strict date string parsing
"""

from datetime import date, datetime, timezone

import pytest

from study_metrics.errors import ValidationError
from study_metrics.services.metrics.timezone import (
    instant_to_local_date_string,
    is_valid_timezone,
    iter_dates,
    local_date_for_instant,
    local_day_bounds_utc,
    local_today,
    parse_date_string,
    resolve_offset_minutes,
)

WINTER = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)
SUMMER = datetime(2024, 7, 15, 12, 0, tzinfo=timezone.utc)


# ============================================================================
# Offsets
# ============================================================================


class TestResolveOffsetMinutes:
    """Tests for resolve_offset_minutes."""

    @pytest.mark.parametrize(
        "zone,expected",
        [
            ("Asia/Tokyo", 540),
            ("UTC", 0),
            ("Asia/Kolkata", 330),
            ("Asia/Kathmandu", 345),
            ("America/New_York", -300),
        ],
    )
    def test_winter_offsets(self, zone, expected):
        """Offsets east of UTC are positive, including non-whole hours."""
        assert resolve_offset_minutes(zone, WINTER) == expected

    def test_dst_offset_depends_on_instant(self):
        """The same zone has different offsets before and after a DST change."""
        assert resolve_offset_minutes("America/New_York", WINTER) == -300
        assert resolve_offset_minutes("America/New_York", SUMMER) == -240

    @pytest.mark.parametrize("zone", ["Mars/Olympus_Mons", "", None, "not a zone"])
    def test_unknown_zone_falls_back(self, zone):
        """Unknown zones degrade to the fixed UTC+9 fallback."""
        assert is_valid_timezone(zone) is False
        assert resolve_offset_minutes(zone, WINTER) == 540

    def test_naive_instant_taken_as_utc(self):
        """Naive instants are interpreted as UTC."""
        assert resolve_offset_minutes("Asia/Tokyo", datetime(2024, 1, 15)) == 540


# ============================================================================
# Day Boundaries
# ============================================================================


class TestLocalDayBoundsUtc:
    """Tests for local_day_bounds_utc."""

    def test_tokyo_day(self):
        """Tokyo midnight is 15:00 UTC on the previous day."""
        start, end = local_day_bounds_utc("2024-01-15", "Asia/Tokyo")

        assert start == datetime(2024, 1, 14, 15, 0, tzinfo=timezone.utc)
        assert end == datetime(2024, 1, 15, 15, 0, tzinfo=timezone.utc)

    def test_half_hour_zone(self):
        """Non-whole-hour offsets shift the boundary by the exact minutes."""
        start, end = local_day_bounds_utc(date(2024, 1, 15), "Asia/Kolkata")

        assert start == datetime(2024, 1, 14, 18, 30, tzinfo=timezone.utc)
        assert end == datetime(2024, 1, 15, 18, 30, tzinfo=timezone.utc)

    def test_dst_spring_forward_day_is_23_hours(self):
        """The day DST starts is one hour short."""
        start, end = local_day_bounds_utc("2024-03-10", "America/New_York")

        assert start == datetime(2024, 3, 10, 5, 0, tzinfo=timezone.utc)
        assert end == datetime(2024, 3, 11, 4, 0, tzinfo=timezone.utc)
        assert (end - start).total_seconds() == 23 * 3600

    def test_dst_fall_back_day_is_25_hours(self):
        """The day DST ends is one hour long."""
        start, end = local_day_bounds_utc("2024-11-03", "America/New_York")

        assert (end - start).total_seconds() == 25 * 3600

    def test_unknown_zone_uses_fallback_offset(self):
        """Boundaries for an unknown zone use UTC+9."""
        assert local_day_bounds_utc("2024-01-15", "Nowhere/Special") == (
            local_day_bounds_utc("2024-01-15", "Asia/Tokyo")
        )

    def test_consecutive_days_are_contiguous(self):
        """Each day's end is the next day's start."""
        _, first_end = local_day_bounds_utc("2024-03-09", "America/New_York")
        second_start, _ = local_day_bounds_utc("2024-03-10", "America/New_York")

        assert first_end == second_start


# ============================================================================
# Local Dates
# ============================================================================


class TestLocalDates:
    """Tests for mapping instants to local calendar dates."""

    def test_instant_at_local_midnight(self):
        """An instant exactly at local midnight belongs to the new day."""
        instant = datetime(2024, 1, 14, 15, 0, tzinfo=timezone.utc)

        assert instant_to_local_date_string(instant, 540) == "2024-01-15"

    def test_instant_just_before_local_midnight(self):
        """An instant one second before local midnight belongs to the old day."""
        instant = datetime(2024, 1, 14, 14, 59, 59, tzinfo=timezone.utc)

        assert instant_to_local_date_string(instant, 540) == "2024-01-14"

    def test_local_date_uses_offset_at_instant(self):
        """After the DST change, 04:30 UTC is 00:30 local on the next day."""
        instant = datetime(2024, 3, 11, 4, 30, tzinfo=timezone.utc)

        assert local_date_for_instant(instant, "America/New_York") == "2024-03-11"

    def test_local_today_differs_by_zone(self):
        """The same instant can fall on different local dates."""
        now = datetime(2024, 1, 15, 3, 0, tzinfo=timezone.utc)

        assert local_today("Asia/Tokyo", now) == date(2024, 1, 15)
        assert local_today("America/New_York", now) == date(2024, 1, 14)

    def test_iter_dates_inclusive(self):
        """iter_dates includes both ends."""
        days = list(iter_dates(date(2024, 2, 27), date(2024, 3, 1)))

        assert days == [
            date(2024, 2, 27),
            date(2024, 2, 28),
            date(2024, 2, 29),
            date(2024, 3, 1),
        ]


# ============================================================================
# Date Parsing
# ============================================================================


class TestParseDateString:
    """Tests for parse_date_string."""

    def test_valid_date(self):
        """A well-formed date parses to a date."""
        assert parse_date_string("2024-02-29") == date(2024, 2, 29)

    @pytest.mark.parametrize(
        "value", ["2024/01/15", "2024-1-15", "20240115", "2024-01-15T00:00", ""]
    )
    def test_bad_format(self, value):
        """Anything but YYYY-MM-DD is a format error."""
        with pytest.raises(ValidationError) as exc_info:
            parse_date_string(value, "from")

        assert exc_info.value.constraint == "date_format"
        assert exc_info.value.details["field"] == "from"

    @pytest.mark.parametrize("value", ["2024-02-30", "2023-02-29", "2024-13-01"])
    def test_nonexistent_date(self, value):
        """Well-formed strings naming a nonexistent date are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            parse_date_string(value)

        assert exc_info.value.constraint == "calendar_date"
