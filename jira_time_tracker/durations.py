"""
Duration parsing and formatting.

Jira reports time spent as strings like "1w 2d 3h 30m" where a day and a
week are working days and working weeks, not calendar ones.
"""

import re
from typing import Optional

HOURS_PER_DAY = 8
DAYS_PER_WEEK = 5

_JIRA_TOKEN = re.compile(r"^(\d+(?:\.\d+)?)([wdhms])$")


def _unit_seconds(hours_per_day: float, days_per_week: float) -> dict:
    day = hours_per_day * 3600
    return {
        "w": day * days_per_week,
        "d": day,
        "h": 3600,
        "m": 60,
        "s": 1,
    }


def parse_jira_duration(
    text: str,
    hours_per_day: float = HOURS_PER_DAY,
    days_per_week: float = DAYS_PER_WEEK,
) -> int:
    """Convert a Jira duration string into seconds.

    >>> parse_jira_duration("1d 2h 30m")
    37800

    Raises ValueError for tokens that are not a number followed by
    one of w, d, h, m, s.
    """
    units = _unit_seconds(hours_per_day, days_per_week)
    total = 0.0
    for token in (text or "").lower().split():
        match = _JIRA_TOKEN.match(token)
        if not match:
            raise ValueError(f"Invalid Jira duration component: {token!r}")
        total += float(match.group(1)) * units[match.group(2)]
    return int(round(total))


def format_jira_duration(
    seconds: int,
    hours_per_day: float = HOURS_PER_DAY,
    days_per_week: float = DAYS_PER_WEEK,
) -> str:
    """Convert seconds into the Jira notation, largest unit first."""
    seconds = int(seconds)
    if seconds <= 0:
        return "0m"
    units = _unit_seconds(hours_per_day, days_per_week)
    parts = []
    remaining = seconds
    for unit in ("w", "d", "h", "m"):
        size = int(units[unit])
        if size and remaining >= size:
            count, remaining = divmod(remaining, size)
            parts.append(f"{count}{unit}")
    if remaining and not parts:
        parts.append(f"{remaining}s")
    return " ".join(parts)


def parse_user_duration(text: str) -> Optional[int]:
    """Parse a duration typed by the user into seconds.

    Accepts:
        Plain number:  "30" -> 30 min
        Hours:         "3h" -> 3 h, "1.5h" -> 90 min
        Minutes:       "45m" -> 45 min
        Combined:      "1h30m" -> 90 min, "2h 15m" -> 135 min
        Clock:         "1:30" -> 90 min
        Decimal hours: "1.5" -> 90 min (only if contains '.')
        Jira format:   "1d 2h"

    Returns None for anything else.
    """
    raw = (text or "").strip().lower()
    compact = raw.replace(" ", "")
    if not compact:
        return None

    # Combined: 1h30m, 2h15m
    match = re.match(r'^(\d+)h(\d+)m?$', compact)
    if match:
        return (int(match.group(1)) * 60 + int(match.group(2))) * 60

    # Hours only: 3h, 1.5h
    match = re.match(r'^(\d+\.?\d*)h$', compact)
    if match:
        return int(float(match.group(1)) * 3600)

    # Minutes only: 45m
    match = re.match(r'^(\d+)m$', compact)
    if match:
        return int(match.group(1)) * 60

    # Clock: 1:30
    match = re.match(r'^(\d+):([0-5]\d)$', compact)
    if match:
        return (int(match.group(1)) * 60 + int(match.group(2))) * 60

    # Decimal (treat as hours): 1.5
    match = re.match(r'^(\d+\.\d+)$', compact)
    if match:
        return int(float(match.group(1)) * 3600)

    # Plain integer (minutes)
    match = re.match(r'^(\d+)$', compact)
    if match:
        return int(match.group(1)) * 60

    try:
        return parse_jira_duration(raw)
    except ValueError:
        return None


def pretty_duration(seconds: int) -> str:
    neg = seconds < 0
    seconds = abs(int(seconds))
    h, rem = divmod(seconds, 3600)
    m, s = divmod(rem, 60)
    sign = "-" if neg else ""
    return f"{sign}{h:02d}:{m:02d}:{s:02d}"
