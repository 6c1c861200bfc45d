"""Work calendars and day-level date arithmetic.

Two families of conversion live here:

* the *approximate* ones (``add_work_days``, ``cal_work_days``) scale work
  days to calendar days with a fixed factor per calendar (7/5, 7/6, 1). They
  are what dependency resolution uses.
* the *exact* ones (``get_exact_work_days``, ``get_exact_elapsed_ratio``,
  ``work_dates``) walk the range day by day. They are used wherever a
  percentage or a per-day distribution is derived from a date window.

Custom calendars always walk day by day.
"""

from __future__ import annotations

import math
import re
from collections.abc import Iterable
from datetime import date, datetime, timedelta

from gantt_cpm.models import CalendarRef, CustomCalendar

CAL_FACTORS: dict[int, float] = {5: 7 / 5, 6: 7 / 6, 7: 1.0}
FALLBACK_CALENDAR = 6

_DMY = re.compile(r"^(\d{1,2})-(\d{1,2})-(\d{2})$")


def round_half_up(x: float) -> int:
    """Round to the nearest integer, halves towards +infinity."""
    return math.floor(x + 0.5)


def add_days(d: date, n: int) -> date:
    return d + timedelta(days=n)


def day_diff(a: date, b: date) -> int:
    """Signed number of calendar days from *a* to *b*."""
    return (b - a).days


class CalendarRegistry:
    """Resolves calendar references (5, 6, 7 or a custom id) to working days."""

    def __init__(self, custom: Iterable[CustomCalendar] = ()):
        self._custom = {c.id: c for c in custom}

    def find(self, cal: CalendarRef) -> CustomCalendar | None:
        if isinstance(cal, str):
            return self._custom.get(cal)
        return None

    def is_work_day(self, d: date, cal: CalendarRef) -> bool:
        cc = self.find(cal)
        if cc is not None:
            if d in cc.exceptions:
                return False
            dow = d.weekday()
            return bool(cc.work_days[dow]) and cc.hours_per_day[dow] > 0
        dow = d.weekday()
        if cal == 5:
            return dow < 5
        if cal == 7:
            return True
        return dow != 6

    def factor(self, cal: CalendarRef) -> float:
        """Calendar days per work day."""
        cc = self.find(cal)
        if cc is not None:
            return 7 / (sum(1 for w in cc.work_days if w) or 1)
        return CAL_FACTORS.get(cal, CAL_FACTORS[FALLBACK_CALENDAR])

    def add_work_days(self, d: date, n: float, cal: CalendarRef) -> date:
        """Move *n* work days from *d* (negative moves backwards)."""
        if self.find(cal) is None:
            return add_days(d, round_half_up(n * self.factor(cal)))
        if n == 0:
            return d
        remaining = abs(round_half_up(n))
        step = 1 if n > 0 else -1
        current = d
        while remaining > 0:
            current = add_days(current, step)
            if self.is_work_day(current, cal):
                remaining -= 1
        return current

    def cal_work_days(self, a: date, b: date, cal: CalendarRef) -> int:
        """Inverse of ``add_work_days``: work days between two dates."""
        if self.find(cal) is not None:
            return self.exact_work_days(a, b, cal)
        return max(0, round_half_up(day_diff(a, b) / self.factor(cal)))

    def exact_work_days(self, start: date, end: date, cal: CalendarRef) -> int:
        """Count working days in ``[start, end)``."""
        count = 0
        current = start
        while current < end:
            if self.is_work_day(current, cal):
                count += 1
            current = add_days(current, 1)
        return count

    def work_dates(self, start: date, end: date, cal: CalendarRef) -> list[date]:
        """Working dates in ``[start, end)``; ``[start]`` if there are none."""
        dates = []
        current = start
        while current < end:
            if self.is_work_day(current, cal):
                dates.append(current)
            current = add_days(current, 1)
        return dates or [start]

    def elapsed_ratio(self, start: date, end: date, target: date, cal: CalendarRef) -> float:
        """Fraction of the work days of ``[start, end)`` elapsed by *target*."""
        if target <= start:
            return 0.0
        if target >= end:
            return 1.0
        total = self.exact_work_days(start, end, cal)
        if total == 0:
            # no working days in the window: plain linear ratio
            return day_diff(start, target) / day_diff(start, end)
        return self.exact_work_days(start, target, cal) / total


BUILTIN_CALENDARS = CalendarRegistry()


def add_work_days(d: date, n: float, cal: CalendarRef) -> date:
    return BUILTIN_CALENDARS.add_work_days(d, n, cal)


def cal_work_days(a: date, b: date, cal: CalendarRef) -> int:
    return BUILTIN_CALENDARS.cal_work_days(a, b, cal)


def get_exact_work_days(start: date, end: date, cal: CalendarRef) -> int:
    return BUILTIN_CALENDARS.exact_work_days(start, end, cal)


def work_dates(start: date, end: date, cal: CalendarRef) -> list[date]:
    return BUILTIN_CALENDARS.work_dates(start, end, cal)


def get_exact_elapsed_ratio(start: date, end: date, target: date, cal: CalendarRef) -> float:
    return BUILTIN_CALENDARS.elapsed_ratio(start, end, target, cal)


def fmt_date(d: date | None) -> str:
    """``dd-mm-yy``, empty for None."""
    if d is None:
        return ""
    return d.strftime("%d-%m-%y")


def iso_date(d: date | None) -> str:
    if d is None:
        return ""
    return d.isoformat()


def parse_date(s: str | date | None) -> date | None:
    """Parse ``dd-mm-yy`` or ISO ``yyyy-mm-dd``. Returns None when unparseable.

    Two-digit years above 50 are read as 19xx, the rest as 20xx.
    """
    if not s:
        return None
    if isinstance(s, datetime):
        return s.date()
    if isinstance(s, date):
        return s
    text = str(s).strip()
    m = _DMY.match(text)
    try:
        if m:
            yy = int(m.group(3))
            year = yy + (1900 if yy > 50 else 2000)
            return date(year, int(m.group(2)), int(m.group(1)))
        return date.fromisoformat(text[:10])
    except ValueError:
        return None
