"""
Date helpers shared by the recurring-transaction code.

``Frequency`` is the one place that knows how a recurrence steps through the
calendar; the occurrence generator, the series overview and the dashboard all
advance dates through it.
"""

import re
from calendar import monthrange
from datetime import date, datetime, timedelta
from enum import Enum
from typing import NamedTuple, Optional

from dateutil.relativedelta import relativedelta

from app.errors import ValidationError


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"

    @classmethod
    def parse(cls, value) -> Optional["Frequency"]:
        """Return the matching frequency, or None for unknown values."""
        if isinstance(value, cls):
            return value
        if not value:
            return None
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None

    def advance(self, start: date, steps: int = 1, interval: int = 1) -> date:
        """
        Return the date ``steps`` repetitions after ``start``.

        Each repetition moves ``interval`` units. Month and year steps are
        computed from ``start`` rather than chained, so a rule anchored on the
        31st lands on the last day of short months without drifting
        (Jan 31 -> Feb 29 -> Mar 31).
        """
        count = steps * interval
        if self is Frequency.DAILY:
            return start + timedelta(days=count)
        if self is Frequency.WEEKLY:
            return start + timedelta(weeks=count)
        if self is Frequency.MONTHLY:
            return start + relativedelta(months=count)
        return start + relativedelta(years=count)

    def first_step_on_or_after(self, start: date, target: date, interval: int = 1) -> int:
        """Return the smallest step index whose date is on or after ``target``."""
        if target <= start:
            return 0
        if self in (Frequency.DAILY, Frequency.WEEKLY):
            unit = (1 if self is Frequency.DAILY else 7) * interval
            return -(-(target - start).days // unit)
        if self is Frequency.MONTHLY:
            elapsed = (target.year - start.year) * 12 + (target.month - start.month)
        else:
            elapsed = target.year - start.year
        step = max(0, elapsed // interval)
        while self.advance(start, step, interval) < target:
            step += 1
        return step


class OccurrenceKey(NamedTuple):
    """
    Identifies one projected occurrence: an anchor transaction on a day.

    Kept as a tuple internally; ``str()`` gives the public id
    ``{anchor_id}-{year}-{month}-{day}`` (no zero padding).
    """
    anchor_id: str
    date: date

    def __str__(self) -> str:
        return f"{self.anchor_id}-{self.date.year}-{self.date.month}-{self.date.day}"

    @classmethod
    def parse(cls, value: str) -> Optional["OccurrenceKey"]:
        """Split a public occurrence id back into anchor id and date."""
        match = _OCCURRENCE_ID.match(value or "")
        if not match:
            return None
        try:
            day = date(int(match["year"]), int(match["month"]), int(match["day"]))
        except ValueError:
            return None
        return cls(match["anchor"], day)


# The anchor id may itself contain hyphens, so the date is matched from the end.
_OCCURRENCE_ID = re.compile(r"^(?P<anchor>.+)-(?P<year>\d{4})-(?P<month>\d{1,2})-(?P<day>\d{1,2})$")


def first_of_month(d: date) -> date:
    return d.replace(day=1)


def last_of_month(d: date) -> date:
    return d.replace(day=monthrange(d.year, d.month)[1])


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """Return (first_day, last_day) for a calendar month."""
    first = date(year, month, 1)
    return first, last_of_month(first)


def end_of_previous_month(today: date) -> date:
    return first_of_month(today) - timedelta(days=1)


def first_of_next_month(today: date) -> date:
    return first_of_month(today) + relativedelta(months=1)


def parse_date(value, field: str = "date") -> date:
    """Parse an ISO date (or datetime) string, raising ValidationError."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise ValidationError(f"Missing required field: {field}")
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        raise ValidationError(f"Invalid {field} '{value}' (use YYYY-MM-DD)")


def parse_month(value: Optional[str], default: date) -> tuple[int, int]:
    """Parse ``YYYY-MM`` (or any ISO date) into (year, month)."""
    if not value:
        return default.year, default.month
    try:
        parsed = datetime.strptime(value.strip()[:7], "%Y-%m")
    except ValueError:
        raise ValidationError(f"Invalid month '{value}' (use YYYY-MM)")
    return parsed.year, parsed.month


def iter_months(start: date, end: date):
    """Yield (year, month) from the month of ``start`` through that of ``end``."""
    current = first_of_month(start)
    while current <= end:
        yield current.year, current.month
        current += relativedelta(months=1)
