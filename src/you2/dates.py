"""
Date helpers and natural-language target date inference.

Timestamps are integer milliseconds since the epoch, interpreted in
local time.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple

WEEKDAYS = ("sunday", "monday", "tuesday", "wednesday", "thursday", "friday", "saturday")
WEEKDAY_ALIASES = {
    "sun": "sunday",
    "mon": "monday",
    "tue": "tuesday",
    "tues": "tuesday",
    "wed": "wednesday",
    "thu": "thursday",
    "thur": "thursday",
    "thurs": "thursday",
    "fri": "friday",
    "sat": "saturday",
}

_CLOCK_24 = re.compile(r"\b([01]?\d|2[0-3]):([0-5]\d)\b(?!\s*[ap]m\b)")
_CLOCK_12 = re.compile(r"\b([1-9]|1[0-2])\s*(?::([0-5]\d))?\s*(am|pm)\b")
_CLOCK_H = re.compile(r"\b([01]?\d|2[0-3])\s*h\b")
# "by 6pm tomorrow" puts the time between "by" and the day.
_LEAD_TIME = r"(?:\d{1,2}(?::[0-5]\d)?\s*(?:am|pm|h)?\s+)?"
_BY_TODAY = re.compile(r"\bby\s+" + _LEAD_TIME + r"today\b")
_BY_TOMORROW = re.compile(r"\bby\s+" + _LEAD_TIME + r"(?:tomorrow|tmrw|tmr)\b")
_BY_WEEKDAY = re.compile(
    r"\bby\s+" + _LEAD_TIME
    + r"(monday|tuesday|wednesday|thursday|friday|saturday|sunday"
    r"|mon|tues|tue|wed|thurs|thur|thu|fri|sat|sun)\b"
)
_BY = re.compile(r"\bby\b")


@dataclass(frozen=True)
class InferredDate:
    """
    Result of target date inference.

    Attributes
    ----------
    ts : Optional[int]
        Target timestamp in milliseconds, or None when nothing matched.
    all_day : Optional[bool]
        True when only the date matters, None when nothing matched.
    """

    ts: Optional[int] = None
    all_day: Optional[bool] = None


def to_timestamp(value: datetime) -> int:
    """
    Convert a datetime to epoch milliseconds.

    Examples
    --------
    >>> to_timestamp(from_timestamp(1760000000000))
    1760000000000
    """
    return int(round(value.timestamp() * 1000))


def from_timestamp(ts: int) -> datetime:
    """Convert epoch milliseconds to a naive local datetime."""
    return datetime.fromtimestamp(ts / 1000)


def is_timestamp(value: Any) -> bool:
    """
    Return True when value is a finite millisecond timestamp datetime can hold.

    Examples
    --------
    >>> is_timestamp(1760000000000)
    True
    >>> is_timestamp(float("inf")), is_timestamp(float("nan")), is_timestamp(10**17)
    (False, False, False)
    >>> is_timestamp(True), is_timestamp("1760000000000")
    (False, False)
    """
    if not isinstance(value, (int, float)) or isinstance(value, bool):
        return False
    if not math.isfinite(value):
        return False
    try:
        from_timestamp(value)
    except (ValueError, OverflowError, OSError):
        return False
    return True


def now_ms() -> int:
    """Return the current time in epoch milliseconds."""
    return to_timestamp(datetime.now())


def js_weekday(value: datetime) -> int:
    """
    Return the weekday with Sunday as 0, as stored in repeat schedules.

    Examples
    --------
    >>> js_weekday(datetime(2026, 10, 18))
    0
    >>> js_weekday(datetime(2026, 10, 22))
    4
    """
    return (value.weekday() + 1) % 7


def start_of_day(value: datetime) -> datetime:
    """
    Return midnight of the given day.

    Examples
    --------
    >>> start_of_day(datetime(2026, 10, 19, 14, 30))
    datetime.datetime(2026, 10, 19, 0, 0)
    """
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def is_same_day(a_ts: int, b_ts: int) -> bool:
    """Return True when both timestamps fall on the same calendar day."""
    return from_timestamp(a_ts).date() == from_timestamp(b_ts).date()


def has_clock_time(ts: Optional[int], all_day: Optional[bool] = None) -> bool:
    """
    Return True when a target carries a meaningful time of day.

    Midnight and all-day targets count as date-only.
    """
    if not ts or all_day or not is_timestamp(ts):
        return False
    value = from_timestamp(ts)
    return not (value.hour == 0 and value.minute == 0)


def format_date(ts: Optional[int]) -> str:
    """
    Format a timestamp as ``DD Mon YYYY``; empty for missing values.

    Examples
    --------
    >>> format_date(None)
    ''
    >>> format_date(to_timestamp(datetime(2026, 10, 22)))
    '22 Oct 2026'
    >>> format_date(10**17)
    ''
    """
    if not ts or not is_timestamp(ts):
        return ""
    return from_timestamp(ts).strftime("%d %b %Y")


def format_date_time(ts: Optional[int]) -> str:
    """
    Format a timestamp as ``DD Mon YYYY • HH:MM``.

    Examples
    --------
    >>> format_date_time(to_timestamp(datetime(2026, 10, 22, 18, 5)))
    '22 Oct 2026 • 18:05'
    """
    if not ts or not is_timestamp(ts):
        return ""
    return from_timestamp(ts).strftime("%d %b %Y • %H:%M")


def next_weekday_from(weekday_name: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Return midnight of the next occurrence of a weekday, never today.

    Parameters
    ----------
    weekday_name : str
        Full or abbreviated weekday name.
    now : Optional[datetime], optional
        Reference time (default: now).

    Returns
    -------
    Optional[datetime]
        Start of the target day, or None for an unknown name.

    Examples
    --------
    >>> next_weekday_from("thu", datetime(2026, 10, 19, 9, 0))
    datetime.datetime(2026, 10, 22, 0, 0)
    >>> next_weekday_from("monday", datetime(2026, 10, 19, 9, 0))
    datetime.datetime(2026, 10, 26, 0, 0)
    >>> next_weekday_from("someday") is None
    True
    """
    name = (weekday_name or "").strip().lower()
    name = WEEKDAY_ALIASES.get(name, name)
    if name not in WEEKDAYS:
        return None
    now = now or datetime.now()
    delta = WEEKDAYS.index(name) - js_weekday(now)
    if delta <= 0:
        delta += 7
    return start_of_day(now + timedelta(days=delta))


def next_weekly_at(
    weekday: int,
    hour: Optional[int] = None,
    minute: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    Return the next weekly occurrence of a weekday and optional time.

    Today counts when the time has not passed yet; without a time the
    result is midnight and today always counts.

    Parameters
    ----------
    weekday : int
        Weekday with Sunday as 0.
    hour, minute : Optional[int]
        Time of day; both None for midnight.
    now : Optional[datetime], optional
        Reference time (default: now).

    Returns
    -------
    int
        Timestamp in milliseconds.

    Examples
    --------
    >>> monday = datetime(2026, 10, 19, 9, 0)
    >>> from_timestamp(next_weekly_at(1, 8, 0, now=monday))
    datetime.datetime(2026, 10, 26, 8, 0)
    >>> from_timestamp(next_weekly_at(1, 18, 30, now=monday))
    datetime.datetime(2026, 10, 19, 18, 30)
    """
    now = now or datetime.now()
    delta = (weekday - js_weekday(now) + 7) % 7
    has_time = hour is not None
    hour = hour or 0
    minute = minute or 0
    if delta == 0 and has_time:
        if now.hour > hour or (now.hour == hour and now.minute >= minute):
            delta = 7
    target = start_of_day(now + timedelta(days=delta)).replace(hour=hour, minute=minute)
    return to_timestamp(target)


def quick_target(name: str, now: Optional[datetime] = None) -> int:
    """
    Return a preset date-only target.

    Parameters
    ----------
    name : str
        One of ``today``, ``tomorrow``, ``next_mon``, ``next_thu``.
    now : Optional[datetime], optional
        Reference time (default: now).

    Raises
    ------
    ValueError
        If the preset name is unknown.

    Examples
    --------
    >>> from_timestamp(quick_target("tomorrow", datetime(2026, 10, 19, 9)))
    datetime.datetime(2026, 10, 20, 0, 0)
    """
    now = now or datetime.now()
    presets = {
        "today": lambda: start_of_day(now),
        "tomorrow": lambda: start_of_day(now + timedelta(days=1)),
        "next_mon": lambda: next_weekday_from("monday", now),
        "next_thu": lambda: next_weekday_from("thursday", now),
    }
    if name not in presets:
        raise ValueError(f"Unknown target preset: {name}")
    return to_timestamp(presets[name]())


def parse_time(text: str) -> Optional[Tuple[int, int]]:
    """
    Find a clock time in text.

    Supports ``14:30``, ``2pm``, ``2:15pm`` and ``14h``.

    Examples
    --------
    >>> parse_time("call mum by 14:30")
    (14, 30)
    >>> parse_time("by 2:15pm")
    (14, 15)
    >>> parse_time("by 6:30 pm")
    (18, 30)
    >>> parse_time("by 12am")
    (0, 0)
    >>> parse_time("by 18h")
    (18, 0)
    >>> parse_time("no time") is None
    True
    """
    lowered = (text or "").lower()
    match = _CLOCK_24.search(lowered)
    if match:
        return int(match.group(1)), int(match.group(2))
    match = _CLOCK_12.search(lowered)
    if match:
        hour = int(match.group(1)) % 12 + (12 if match.group(3) == "pm" else 0)
        minute = int(match.group(2)) if match.group(2) else 0
        return hour, minute
    match = _CLOCK_H.search(lowered)
    if match:
        return int(match.group(1)), 0
    return None


def _at(day: datetime, clock: Tuple[int, int]) -> datetime:
    return start_of_day(day).replace(hour=clock[0], minute=clock[1])


def infer_date_from_text(text: Optional[str], now: Optional[datetime] = None) -> InferredDate:
    """
    Infer a target date from phrases such as "by Thursday" or "by 6pm".

    Rules are tried in order: ``by today``, ``by tomorrow``, ``by
    <weekday>``, then a bare time after ``by``. A weekday always means
    the next occurrence, never today.

    Parameters
    ----------
    text : Optional[str]
        Free-form instruction text.
    now : Optional[datetime], optional
        Reference time (default: now).

    Returns
    -------
    InferredDate
        Target timestamp and all-day flag, both None when nothing matched.

    Examples
    --------
    >>> monday = datetime(2026, 10, 19, 9, 0)
    >>> result = infer_date_from_text("fix heater by Thursday", now=monday)
    >>> from_timestamp(result.ts), result.all_day
    (datetime.datetime(2026, 10, 22, 0, 0), True)
    >>> result = infer_date_from_text("call by 6pm tomorrow", now=monday)
    >>> from_timestamp(result.ts), result.all_day
    (datetime.datetime(2026, 10, 20, 18, 0), False)
    >>> infer_date_from_text("no date here", now=monday)
    InferredDate(ts=None, all_day=None)
    """
    if not text:
        return InferredDate()
    lowered = text.lower()
    now = now or datetime.now()
    clock = parse_time(lowered)

    if _BY_TODAY.search(lowered):
        if clock:
            return InferredDate(to_timestamp(_at(now, clock)), False)
        return InferredDate(to_timestamp(start_of_day(now)), True)

    if _BY_TOMORROW.search(lowered):
        tomorrow = now + timedelta(days=1)
        if clock:
            return InferredDate(to_timestamp(_at(tomorrow, clock)), False)
        return InferredDate(to_timestamp(start_of_day(tomorrow)), True)

    match = _BY_WEEKDAY.search(lowered)
    if match:
        day = next_weekday_from(match.group(1), now)
        if clock:
            return InferredDate(to_timestamp(_at(day, clock)), False)
        return InferredDate(to_timestamp(day), True)

    if clock and _BY.search(lowered):
        target = _at(now, clock)
        if target <= now:
            target += timedelta(days=1)
        return InferredDate(to_timestamp(target), False)

    return InferredDate()


def parse_when(text: str, now: Optional[datetime] = None) -> InferredDate:
    """
    Parse a target typed on the command line.

    Accepts anything ``infer_date_from_text`` understands after "by"
    (``thu``, ``tomorrow 9am``, ``18:00``) as well as ISO dates and
    datetimes.

    Raises
    ------
    ValueError
        If the text cannot be parsed.

    Examples
    --------
    >>> monday = datetime(2026, 10, 19, 9, 0)
    >>> parse_when("2026-11-02", now=monday).all_day
    True
    >>> from_timestamp(parse_when("2026-11-02 14:30", now=monday).ts)
    datetime.datetime(2026, 11, 2, 14, 30)
    >>> parse_when("fri", now=monday).all_day
    True
    """
    raw = (text or "").strip()
    if not raw:
        raise ValueError("Missing target date")
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        parsed = None
    if parsed is not None:
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone().replace(tzinfo=None)
        all_day = "T" not in raw and " " not in raw
        return InferredDate(to_timestamp(parsed), all_day)
    inferred = infer_date_from_text(f"by {raw}", now=now)
    if inferred.ts is None:
        raise ValueError(f"Unrecognized target date: {raw}")
    return inferred


def parse_repeat_spec(text: str) -> Dict[str, int]:
    """
    Parse a weekly repeat such as ``"thu 18:30"`` or ``"monday 9am"``.

    Raises
    ------
    ValueError
        If the weekday or time is missing or invalid.

    Examples
    --------
    >>> parse_repeat_spec("thu 18:30")
    {'weekday': 4, 'hour': 18, 'minute': 30}
    >>> parse_repeat_spec("Sunday 9am")
    {'weekday': 0, 'hour': 9, 'minute': 0}
    """
    raw = (text or "").strip().lower()
    if not raw:
        raise ValueError("Missing repeat schedule")
    head, _, rest = raw.partition(" ")
    name = WEEKDAY_ALIASES.get(head, head)
    if name not in WEEKDAYS:
        raise ValueError(f"Unknown weekday: {head}")
    clock = parse_time(rest) if rest else (0, 0)
    if clock is None:
        raise ValueError(f"Unrecognized time: {rest}")
    return {"weekday": WEEKDAYS.index(name), "hour": clock[0], "minute": clock[1]}
