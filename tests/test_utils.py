"""Tests for utility functions."""

from datetime import UTC
from zoneinfo import ZoneInfo

import pytest

from tracknotify.exceptions import ConfigError
from tracknotify.utils import (
    escape_html,
    format_timestamp,
    is_empty_value,
    parse_timestamp_ms,
    resolve_timezone,
    truncate_text,
)


class TestParseTimestamp:
    """Tests for parse_timestamp_ms."""

    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            ("1700000000000", 1700000000000),
            (" 1700000000000 ", 1700000000000),
            (1700000000000, 1700000000000),
            (1700000000000.0, 1700000000000),
            ("1.7e12", 1700000000000),
            ("yesterday", None),
            (None, None),
            (True, None),
            ([], None),
        ],
    )
    def test_parse(self, value: object, expected: int | None) -> None:
        """Test numeric strings and numbers are accepted."""
        assert parse_timestamp_ms(value) == expected


class TestFormatTimestamp:
    """Tests for format_timestamp."""

    def test_format_utc(self) -> None:
        """Test the DD.MM.YYYY HH:mm:ss layout."""
        assert format_timestamp("1700000000000", UTC) == "14.11.2023 22:13:20"

    def test_format_zone(self) -> None:
        """Test a non-UTC timezone."""
        assert format_timestamp(1700000000000, ZoneInfo("Asia/Tokyo")) == "15.11.2023 07:13:20"

    def test_invalid_is_empty(self) -> None:
        """Test non-timestamps format as an empty string."""
        assert format_timestamp("n/a", UTC) == ""
        assert format_timestamp(None, UTC) == ""


class TestResolveTimezone:
    """Tests for resolve_timezone."""

    def test_known_zone(self) -> None:
        """Test an IANA name."""
        assert resolve_timezone("Europe/Berlin") == ZoneInfo("Europe/Berlin")

    def test_unknown_zone(self) -> None:
        """Test an unknown name raises ConfigError."""
        with pytest.raises(ConfigError):
            resolve_timezone("Mars/Olympus_Mons")


class TestEscapeHtml:
    """Tests for escape_html."""

    def test_escapes_markup(self) -> None:
        """Test ampersand is escaped once."""
        assert escape_html("<script>&") == "&lt;script&gt;&amp;"
        assert escape_html("&amp;") == "&amp;amp;"

    def test_quotes_are_kept(self) -> None:
        """Test quotes are left for text content."""
        assert escape_html('say "hi"') == 'say "hi"'

    def test_none_and_numbers(self) -> None:
        """Test non-string input."""
        assert escape_html(None) == ""
        assert escape_html(42) == "42"


class TestTruncateText:
    """Tests for truncate_text."""

    def test_short_text_unchanged(self) -> None:
        """Test text within the limit."""
        assert truncate_text("short", 10) == "short"

    def test_cut_at_line_end(self) -> None:
        """Test a line break in the second half of the room is used."""
        assert truncate_text("first line\nsecond line and more", 30) == "first line... [truncated]"

    def test_cut_mid_line(self) -> None:
        """Test a hard cut when no usable line break exists."""
        result = truncate_text("y" * 100, 40)

        assert len(result) == 40
        assert result == "y" * 25 + "... [truncated]"

    def test_tiny_limit(self) -> None:
        """Test a limit smaller than the suffix."""
        assert truncate_text("abcdefghij" * 3, 5) == "abcde"


class TestIsEmptyValue:
    """Tests for is_empty_value."""

    @pytest.mark.parametrize("value", [None, "", [], {}, ()])
    def test_empty(self, value: object) -> None:
        """Test values treated as empty."""
        assert is_empty_value(value) is True

    @pytest.mark.parametrize("value", [0, False, "x", ["a"], {"id": "S1"}])
    def test_not_empty(self, value: object) -> None:
        """Test values shown in messages."""
        assert is_empty_value(value) is False
