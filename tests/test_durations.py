"""Tests for Jira and user duration parsing."""
import pytest

from jira_time_tracker.durations import (
    format_jira_duration,
    parse_jira_duration,
    parse_user_duration,
    pretty_duration,
)


class TestParseJiraDuration:
    @pytest.mark.parametrize("text,expected", [
        ("30m", 1800),
        ("2h", 7200),
        ("1h 30m", 5400),
        ("1d", 8 * 3600),
        ("3d", 24 * 3600),
        ("1w", 5 * 8 * 3600),
        ("1w 2d 3h 4m", (5 * 8 + 2 * 8 + 3) * 3600 + 240),
        ("1.5h", 5400),
        ("45s", 45),
        ("", 0),
    ])
    def test_parses_jira_notation(self, text, expected):
        assert parse_jira_duration(text) == expected

    def test_minutes_are_not_months(self):
        assert parse_jira_duration("1m") == 60

    def test_custom_working_day(self):
        assert parse_jira_duration("1d", hours_per_day=7.5) == 27000
        assert parse_jira_duration("1w", hours_per_day=8, days_per_week=4) == 4 * 8 * 3600

    @pytest.mark.parametrize("text", ["abc", "1x", "h", "1h30"])
    def test_rejects_garbage(self, text):
        with pytest.raises(ValueError):
            parse_jira_duration(text)


class TestFormatJiraDuration:
    def test_largest_units_first(self):
        assert format_jira_duration(5400) == "1h 30m"
        assert format_jira_duration(8 * 3600 + 60) == "1d 1m"
        assert format_jira_duration(5 * 8 * 3600) == "1w"

    def test_zero_and_seconds(self):
        assert format_jira_duration(0) == "0m"
        assert format_jira_duration(30) == "30s"

    def test_round_trips_with_parser(self):
        assert parse_jira_duration(format_jira_duration(37800)) == 37800


class TestParseUserDuration:
    @pytest.mark.parametrize("text,minutes", [
        ("30", 30),
        ("3h", 180),
        ("1.5h", 90),
        ("45m", 45),
        ("1h30m", 90),
        ("2h 15m", 135),
        ("1:30", 90),
        ("1.5", 90),
        ("1d", 480),
    ])
    def test_accepts_common_formats(self, text, minutes):
        assert parse_user_duration(text) == minutes * 60

    @pytest.mark.parametrize("text", ["", "   ", "soon", "1:75"])
    def test_returns_none_for_invalid(self, text):
        assert parse_user_duration(text) is None


def test_pretty_duration():
    assert pretty_duration(0) == "00:00:00"
    assert pretty_duration(3723) == "01:02:03"
    assert pretty_duration(-60) == "-00:01:00"
