"""Date helpers for day keys, Jira timestamps and ISO weeks."""

from datetime import date, datetime, time, timedelta
from typing import List, Union

DAY_FORMAT = "%Y-%m-%d"
JIRA_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S.%f%z"

# Worklogs only carry a day; they are sent to Jira at local noon so that
# time zone differences never move them to a neighbouring day.
WORKLOG_START_TIME = time(12, 0)

DateLike = Union[date, str]


def format_date(day: date) -> str:
    return day.strftime(DAY_FORMAT)


def parse_date(text: str) -> date:
    return datetime.strptime(text, DAY_FORMAT).date()


def as_date(day: DateLike) -> date:
    if isinstance(day, str):
        return parse_date(day)
    if isinstance(day, datetime):
        return day.date()
    return day


def format_jira_datetime(day: DateLike) -> str:
    """Format a day as the timestamp Jira expects for a worklog start.

    >>> format_jira_datetime("2024-03-05")  # in UTC+01:00
    '2024-03-05T12:00:00.000+0100'
    """
    started = datetime.combine(as_date(day), WORKLOG_START_TIME).astimezone()
    return started.strftime("%Y-%m-%dT%H:%M:%S.") + f"{started.microsecond // 1000:03d}" + started.strftime("%z")


def parse_jira_datetime(text: str) -> datetime:
    """Parse a Jira timestamp such as 2024-03-05T09:15:00.000+0000."""
    try:
        return datetime.strptime(text, JIRA_DATETIME_FORMAT)
    except ValueError:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))


def local_date_of(text: str) -> str:
    """Return the local YYYY-MM-DD day a Jira timestamp falls on."""
    parsed = parse_jira_datetime(text)
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone()
    return format_date(parsed.date())


def week_start(day: DateLike) -> date:
    day = as_date(day)
    return day - timedelta(days=day.weekday())


def week_days(day: DateLike) -> List[date]:
    """The seven days (Monday first) of the ISO week containing ``day``."""
    start = week_start(day)
    return [start + timedelta(days=i) for i in range(7)]


def iso_week(day: DateLike) -> int:
    return as_date(day).isocalendar()[1]


def shift_week(day: DateLike, weeks: int) -> date:
    return as_date(day) + timedelta(days=7 * weeks)
