"""
Period Key Codec

Every monthly container in the store is named by a canonical key:

    YYYY-MM   (month zero-padded, 1-12)

All paths are built from these keys, and periods coming from different
call sites are compared through them, so encoding and decoding must be
pure and deterministic.

This module also owns the calendar arithmetic the rest of the system
relies on: stepping between periods, defaulting source/target periods
for a generation run, and advancing due dates by one month.
"""

import calendar
import re
from datetime import date, datetime, timezone
from typing import Callable, NamedTuple, Optional


_KEY_PATTERN = re.compile(r"^(\d+)-(\d{1,2})$")


class InvalidPeriod(ValueError):
    """Year/month pair or period key is malformed."""
    pass


class Period(NamedTuple):
    """
    A logical (year, month) pair.

    Tuple ordering is chronological ordering, so lists of periods
    sort correctly with a plain sorted().
    """
    year: int
    month: int

    @property
    def key(self) -> str:
        return encode_period(self.year, self.month)

    def next(self) -> "Period":
        """The period immediately after this one."""
        if self.month == 12:
            return Period(self.year + 1, 1)
        return Period(self.year, self.month + 1)

    def previous(self) -> "Period":
        """The period immediately before this one."""
        if self.month == 1:
            return Period(self.year - 1, 12)
        return Period(self.year, self.month - 1)

    def __str__(self) -> str:
        return self.key


def _check(year, month) -> None:
    if isinstance(year, bool) or not isinstance(year, int) or year < 1:
        raise InvalidPeriod(f"Invalid year: {year!r}")
    if isinstance(month, bool) or not isinstance(month, int):
        raise InvalidPeriod(f"Invalid month: {month!r}")
    if not 1 <= month <= 12:
        raise InvalidPeriod(f"Month must be between 1 and 12, got {month}")


def encode_period(year: int, month: int) -> str:
    """
    Convert a (year, month) pair to its canonical key.

    Raises:
        InvalidPeriod: If month is outside 1-12 or year is not a positive int
    """
    _check(year, month)
    return f"{year}-{month:02d}"


def decode_period(key: str) -> Period:
    """
    Parse a canonical key back into a Period.

    Raises:
        InvalidPeriod: If the key is not int-int with a valid month
    """
    if not isinstance(key, str):
        raise InvalidPeriod(f"Period key must be a string, got {type(key).__name__}")

    match = _KEY_PATTERN.match(key.strip())
    if not match:
        raise InvalidPeriod(f"Malformed period key: {key!r}")

    year, month = int(match.group(1)), int(match.group(2))
    _check(year, month)
    return Period(year, month)


def make_period(year: int, month: int) -> Period:
    """Build a validated Period."""
    _check(year, month)
    return Period(year, month)


def utc_now() -> datetime:
    """Default clock for the whole package."""
    return datetime.now(timezone.utc)


def current_period(clock: Callable[[], datetime] = utc_now) -> Period:
    """The calendar period the given clock is in."""
    now = clock()
    return Period(now.year, now.month)


def resolve_generation_periods(
    current: Period,
    source_year: Optional[int] = None,
    source_month: Optional[int] = None,
    target_year: Optional[int] = None,
    target_month: Optional[int] = None,
) -> tuple[Period, Period]:
    """
    Apply the source/target defaulting rule.

    - Source year and month each default to the current period.
    - Target is used only when BOTH target year and month are given;
      otherwise it is the period right after the source.

    Target == source is NOT rejected here. That check belongs to
    validation, not to the generation engine.

    Returns:
        (source, target)
    """
    source = make_period(
        source_year if source_year is not None else current.year,
        source_month if source_month is not None else current.month,
    )

    if target_year is not None and target_month is not None:
        target = make_period(target_year, target_month)
    else:
        target = source.next()

    return source, target


def parse_date(value) -> date:
    """
    Read a stored date value.

    Stored documents hold ISO strings ("2025-06-15" or a full
    timestamp), but the Firestore SDK hands back datetime objects
    for native timestamp fields.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            pass
    raise ValueError(f"Unrecognised date value: {value!r}")


def add_one_month(value: date) -> date:
    """
    Advance a date by exactly one calendar month.

    The day of month is kept where it exists in the next month and
    clamped to the last day otherwise (Jan 31 -> Feb 28/29).
    """
    nxt = Period(value.year, value.month).next()
    last_day = calendar.monthrange(nxt.year, nxt.month)[1]
    return date(nxt.year, nxt.month, min(value.day, last_day))
