"""Conversion between Jira duration strings and minutes.

Jira counts durations in working time: a day is 8 hours and a week is
5 days, regardless of calendar weekends.
"""

import re
from typing import Optional

MINUTE = 1
HOUR = 60 * MINUTE
DAY = 8 * HOUR
WEEK = 5 * DAY

UNIT_MINUTES = {
    "w": WEEK,
    "d": DAY,
    "h": HOUR,
    "m": MINUTE,
}

_TOKEN_RE = re.compile(r"(\d+)([wdhm])")


def parse_duration(text: Optional[str]) -> int:
    """Convert a duration string to minutes.

    Tokens are separated by whitespace and each is an integer followed by
    one of ``w``, ``d``, ``h`` or ``m``. Tokens that do not match are skipped.

    Args:
        text: Duration string such as ``"1w 2d 4h 30m"``

    Returns:
        Total minutes, 0 for empty or unparseable input

    Example:
        >>> parse_duration("1h 30m")
        90
        >>> parse_duration("soon")
        0
    """
    if not text:
        return 0

    total = 0
    for token in text.split():
        match = _TOKEN_RE.fullmatch(token)
        if match is None:
            continue
        amount, unit = match.groups()
        total += int(amount) * UNIT_MINUTES[unit]
    return total


def format_minutes(minutes: int) -> str:
    """Convert minutes to a canonical duration string.

    Largest unit first, zero components omitted.

    Args:
        minutes: Non-negative number of minutes

    Returns:
        Duration string, empty for 0

    Raises:
        ValueError: If minutes is negative

    Example:
        >>> format_minutes(90)
        '1h 30m'
        >>> format_minutes(2400)
        '1w'
    """
    if minutes < 0:
        raise ValueError(f"Duration cannot be negative: {minutes}")

    parts = []
    remaining = int(minutes)
    for unit, size in UNIT_MINUTES.items():
        count, remaining = divmod(remaining, size)
        if count:
            parts.append(f"{count}{unit}")
    return " ".join(parts)


def format_hours(minutes: int) -> str:
    """Format minutes as decimal hours with one digit (e.g. ``"1.5h"``)."""
    return f"{minutes / 60:.1f}h"
