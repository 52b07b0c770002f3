"""Tests for duration parsing."""

import pytest

from dashsync import parse_duration
from dashsync.duration import to_seconds


class TestParseDuration:
    """Tests for parse_duration function."""

    def test_milliseconds(self) -> None:
        assert parse_duration("100ms") == 100
        assert parse_duration("0ms") == 0

    def test_seconds(self) -> None:
        assert parse_duration("1s") == 1000
        assert parse_duration("30s") == 30000

    def test_minutes(self) -> None:
        assert parse_duration("2m") == 120_000

    def test_hours_and_days(self) -> None:
        assert parse_duration("1h") == 3_600_000
        assert parse_duration("1d") == 86_400_000

    def test_integer_passthrough(self) -> None:
        """Test that integers pass through unchanged."""
        assert parse_duration(1000) == 1000
        assert parse_duration(0) == 0

    def test_surrounding_whitespace_ignored(self) -> None:
        assert parse_duration(" 5s ") == 5000

    def test_invalid_format(self) -> None:
        """Test that invalid formats raise ValueError."""
        for bad in ("invalid", "10x", "s10", "", "10"):
            with pytest.raises(ValueError, match="Invalid duration"):
                parse_duration(bad)

    def test_negative_and_bool_rejected(self) -> None:
        with pytest.raises(ValueError, match="Invalid duration"):
            parse_duration(-1)
        with pytest.raises(ValueError, match="Invalid duration"):
            parse_duration(True)


def test_to_seconds() -> None:
    assert to_seconds("1s") == 1.0
    assert to_seconds(250) == 0.25
