"""Tests for raw task field parsing."""

from datetime import date, datetime, timedelta, timezone

import pytest

from app.rules.records import (
    as_text,
    days_until,
    extract_assignee,
    format_date,
    parse_date,
    parse_progress,
)
from tests.factories import TODAY, TZ


class TestParseProgress:
    """Progress is normalised to a 0-100 percentage."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (50, 50.0),
            (0.5, 50.0),
            (1, 100.0),
            (0, 0.0),
            ("75", 75.0),
            ("75%", 75.0),
            (" 30 % ", 30.0),
            ("0.25", 25.0),
            (None, 0.0),
            ("", 0.0),
            ("abc", 0.0),
            (True, 0.0),
            ([50], 0.0),
            (float("inf"), 0.0),
        ],
    )
    def test_parse_progress(self, value, expected) -> None:
        assert parse_progress(value) == expected


class TestParseDate:
    """Date parsing never raises."""

    def test_date_only_string(self) -> None:
        assert parse_date("2026-10-20", TZ) == date(2026, 10, 20)

    def test_iso_datetime_gets_zone(self) -> None:
        parsed = parse_date("2026-10-20T09:30:00", TZ)

        assert parsed == datetime(2026, 10, 20, 9, 30, tzinfo=TZ)

    def test_utc_suffix(self) -> None:
        parsed = parse_date("2026-10-20T00:00:00Z", TZ)

        assert parsed == datetime(2026, 10, 20, tzinfo=timezone.utc)

    def test_epoch_milliseconds(self) -> None:
        due = datetime(2026, 10, 20, 8, 0, tzinfo=TZ)

        parsed = parse_date(int(due.timestamp() * 1000), TZ)

        assert parsed == due

    @pytest.mark.parametrize("value", [None, "", "   ", "soon", "2026-13-45", True, {}])
    def test_malformed(self, value) -> None:
        assert parse_date(value, TZ) is None


class TestDaysUntil:
    """Whole days from the start of today, rounded up."""

    def test_date_difference(self) -> None:
        assert days_until(TODAY + timedelta(days=5), TODAY, TZ) == 5
        assert days_until(TODAY - timedelta(days=2), TODAY, TZ) == -2
        assert days_until(TODAY, TODAY, TZ) == 0

    def test_datetime_rounds_up(self) -> None:
        later_today = datetime(2026, 10, 18, 18, 0, tzinfo=TZ)
        tomorrow_morning = datetime(2026, 10, 19, 1, 0, tzinfo=TZ)

        assert days_until(later_today, TODAY, TZ) == 1
        assert days_until(tomorrow_morning, TODAY, TZ) == 2

    def test_start_of_today_is_zero(self) -> None:
        assert days_until(datetime(2026, 10, 18, tzinfo=TZ), TODAY, TZ) == 0

    def test_yesterday_datetime_is_negative(self) -> None:
        assert days_until(datetime(2026, 10, 16, 12, 0, tzinfo=TZ), TODAY, TZ) == -1

    def test_missing(self) -> None:
        assert days_until(None, TODAY, TZ) is None


class TestFieldText:
    """Loosely typed cell values render as text."""

    def test_as_text(self) -> None:
        assert as_text(None) == ""
        assert as_text("进行中") == "进行中"
        assert as_text([{"text": "Apollo"}, {"text": "Gemini"}]) == "Apollo, Gemini"
        assert as_text({"name": "是"}) == "是"
        assert as_text(3) == "3"

    def test_extract_assignee(self) -> None:
        people = [{"name": "张三"}, {"en_name": "Li Si"}, {"id": "ou_1"}, {}]

        assert extract_assignee(people) == "张三, Li Si, ou_1"
        assert extract_assignee("王五") == "王五"
        assert extract_assignee(None) == ""

    def test_format_date(self) -> None:
        late_utc = datetime(2026, 10, 19, 20, 0, tzinfo=timezone.utc)

        assert format_date(late_utc, TZ) == "2026-10-20"
        assert format_date(date(2026, 1, 2), TZ) == "2026-01-02"
        assert format_date(None, TZ) is None
