"""Utility functions for timestamps and message text."""

from __future__ import annotations

import html
import time
from datetime import datetime, tzinfo
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from tracknotify.constants import DATETIME_FORMAT, TRUNCATION_SUFFIX
from tracknotify.exceptions import ConfigError


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000


def parse_timestamp_ms(value: Any) -> int | None:
    """
    Parse an epoch-millisecond timestamp.

    Trackers send timestamps as strings ("1700000000000") or numbers.

    Args:
        value: Raw timestamp value.

    Returns:
        The timestamp as int, or None if it is missing or not numeric.

    Examples:
        >>> parse_timestamp_ms("1700000000000")
        1700000000000
        >>> parse_timestamp_ms(None) is None
        True
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, int):
        return value

    if isinstance(value, float):
        return int(value)

    if isinstance(value, str):
        stripped = value.strip()
        try:
            return int(stripped)
        except ValueError:
            try:
                return int(float(stripped))
            except ValueError:
                return None

    return None


def format_timestamp(value: Any, tz: tzinfo) -> str:
    """
    Format an epoch-millisecond timestamp as DD.MM.YYYY HH:mm:ss.

    Args:
        value: Epoch milliseconds (int or numeric string).
        tz: Timezone to render the wall-clock time in.

    Returns:
        Formatted datetime, or an empty string if the value is not a timestamp.

    Examples:
        >>> from datetime import UTC
        >>> format_timestamp("1700000000000", UTC)
        '14.11.2023 22:13:20'
    """
    ms = parse_timestamp_ms(value)
    if ms is None:
        return ""

    try:
        moment = datetime.fromtimestamp(ms / 1000, tz=tz)
    except (OverflowError, OSError, ValueError):
        return ""

    return moment.strftime(DATETIME_FORMAT)


def resolve_timezone(name: str) -> tzinfo:
    """
    Look up an IANA timezone by name.

    Args:
        name: Timezone name such as "UTC" or "Europe/Berlin".

    Returns:
        The matching tzinfo.

    Raises:
        ConfigError: If the timezone is unknown.
    """
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown timezone: {name}") from e


def escape_html(value: Any) -> str:
    """
    Escape user-supplied text for Telegram's HTML subset.

    `&` is replaced before `<` and `>` so entities are never double-escaped.
    None becomes an empty string; other values are converted with str().

    Examples:
        >>> escape_html("<script>&")
        '&lt;script&gt;&amp;'
    """
    if value is None:
        return ""

    return html.escape(str(value), quote=False)


def truncate_text(text: str, max_chars: int) -> str:
    """
    Cut text to at most max_chars, preferring the end of a line.

    A cut text ends with "... [truncated]". The line break is used only
    when it keeps at least half of the room.

    Examples:
        >>> truncate_text("first line\\nsecond line and more", 30)
        'first line... [truncated]'
    """
    if len(text) <= max_chars:
        return text
    if max_chars <= len(TRUNCATION_SUFFIX):
        return text[:max(max_chars, 0)]

    room = max_chars - len(TRUNCATION_SUFFIX)
    head = text[:room]
    line_end = head.rfind("\n")
    if line_end > room // 2:
        head = head[:line_end]
    return head.rstrip() + TRUNCATION_SUFFIX


def is_empty_value(value: Any) -> bool:
    """Return True for None, empty strings and empty collections."""
    if value is None:
        return True

    if isinstance(value, (str, list, tuple, dict, set)):
        return len(value) == 0

    return False
