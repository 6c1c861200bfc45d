"""Day-by-day work distribution for time-phased usage views."""

from __future__ import annotations

import enum
from collections.abc import Iterable
from datetime import date

from gantt_cpm.calendar import CalendarRegistry, add_days
from gantt_cpm.models import Activity, CalendarRef, ProgressRecord
from gantt_cpm.scheduler import ActivitySchedule


class UsageMode(enum.StrEnum):
    WORK = "work"
    WORK_CUMULATIVE = "work_cumulative"
    BASELINE = "baseline"
    BASELINE_CUMULATIVE = "baseline_cumulative"
    ACTUAL = "actual"
    ACTUAL_CUMULATIVE = "actual_cumulative"
    REMAINING = "remaining"
    REMAINING_CUMULATIVE = "remaining_cumulative"


_CUMULATIVE_OF = {
    UsageMode.WORK_CUMULATIVE: UsageMode.WORK,
    UsageMode.BASELINE_CUMULATIVE: UsageMode.BASELINE,
    UsageMode.ACTUAL_CUMULATIVE: UsageMode.ACTUAL,
    UsageMode.REMAINING_CUMULATIVE: UsageMode.REMAINING,
}


def _spread(dates: list[date], total: float) -> dict[date, float]:
    """Split *total* evenly over *dates*."""
    if not dates or total <= 0:
        return {}
    share = total / len(dates)
    return {d: share for d in dates}


def _merge(into: dict[date, float], values: dict[date, float]) -> None:
    for d, v in values.items():
        into[d] = into.get(d, 0.0) + v


def _accumulate(values: dict[date, float]) -> dict[date, float]:
    out: dict[date, float] = {}
    running = 0.0
    for d in sorted(values):
        running += values[d]
        out[d] = running
    return out


def _activity_work(activity: Activity, record: ActivitySchedule, resource_id: str | None) -> float:
    if resource_id is None:
        return record.work or activity.work or 0.0
    for r in activity.resources:
        if str(r.rid) == str(resource_id):
            return r.work or 0.0
    return 0.0


def get_usage_daily_values(
    activity: Activity,
    record: ActivitySchedule,
    mode: UsageMode | str,
    default_calendar: CalendarRef = 6,
    resource_id: str | None = None,
    baseline_index: int = 0,
    status_date: date | None = None,
    progress_history: Iterable[ProgressRecord] = (),
    calendars: CalendarRegistry | None = None,
) -> dict[date, float]:
    """Work units per calendar day for one activity.

    *record* is the activity's entry in a ScheduleResult. Summaries and
    activities without work give an empty mapping.
    """
    mode = UsageMode(mode)
    calendars = calendars or CalendarRegistry()
    if mode in _CUMULATIVE_OF:
        daily = get_usage_daily_values(
            activity,
            record,
            _CUMULATIVE_OF[mode],
            default_calendar,
            resource_id,
            baseline_index,
            status_date,
            progress_history,
            calendars,
        )
        return _accumulate(daily)

    if activity.is_summary:
        return {}
    work = _activity_work(activity, record, resource_id)
    if work == 0:
        return {}
    cal = activity.cal if activity.cal is not None else default_calendar

    if mode == UsageMode.BASELINE:
        return _baseline_usage(activity, record, work, cal, baseline_index, calendars)
    if mode == UsageMode.ACTUAL:
        return _actual_usage(activity, record, work, cal, status_date, progress_history, calendars)
    if mode == UsageMode.REMAINING:
        return _remaining_usage(activity, record, work, cal, status_date, calendars)

    if not record.es or not record.ef:
        return {}
    return _spread(calendars.work_dates(record.es, record.ef, cal), work)


def _baseline_usage(
    activity: Activity,
    record: ActivitySchedule,
    work: float,
    cal: CalendarRef,
    baseline_index: int,
    calendars: CalendarRegistry,
) -> dict[date, float]:
    bl = activity.baseline(baseline_index)
    start = (bl.es if bl else None) or record.es
    end = (bl.ef if bl else None) or record.ef
    if not start or not end:
        return {}
    if bl is not None and bl.cal is not None:
        cal = bl.cal

    if bl is None or not bl.pct or bl.status_date is None:
        return _spread(calendars.work_dates(start, end, cal), work)

    # two segments: start -> baseline status date carries bl.pct of the work
    pivot = min(add_days(bl.status_date, 1), end)
    out = _spread(calendars.work_dates(start, pivot, cal), work * bl.pct / 100)
    _merge(out, _spread(calendars.work_dates(pivot, end, cal), work * (100 - bl.pct) / 100))
    return out


def _actual_usage(
    activity: Activity,
    record: ActivitySchedule,
    work: float,
    cal: CalendarRef,
    status_date: date | None,
    progress_history: Iterable[ProgressRecord],
    calendars: CalendarRegistry,
) -> dict[date, float]:
    entries: dict[date, float] = {}
    for h in progress_history:
        if activity.id in h.details:
            entries[h.date] = h.details[activity.id]

    start = record.es
    if not start:
        bl = activity.baseline(0)
        start = bl.es if bl else None
    if not start:
        return {}

    out: dict[date, float] = {}
    if entries:
        prev_date, prev_pct = start, 0.0
        for day in sorted(entries):
            pct = entries[day]
            period_end = add_days(day, 1)
            if pct > prev_pct:
                _merge(out, _spread(calendars.work_dates(prev_date, period_end, cal), work * (pct - prev_pct) / 100))
            prev_date, prev_pct = period_end, pct
        return out

    pct = min(100.0, max(0.0, activity.pct or 0.0))
    if pct == 0 or not record.ef:
        return {}
    if pct >= 100:
        end = record.ef
    elif record.actual_end:
        end = record.actual_end
    else:
        end = min(add_days(status_date or date.today(), 1), record.ef)
    return _spread(calendars.work_dates(start, end, cal), work * pct / 100)


def _remaining_usage(
    activity: Activity,
    record: ActivitySchedule,
    work: float,
    cal: CalendarRef,
    status_date: date | None,
    calendars: CalendarRegistry,
) -> dict[date, float]:
    pct = min(100.0, max(0.0, activity.pct or 0.0))
    remaining = work * (1 - pct / 100)
    if remaining <= 0:
        return {}
    if record.rem_es and record.rem_ef:
        start, end = record.rem_es, record.rem_ef
    else:
        if not record.es or not record.ef:
            return {}
        start = max(add_days(status_date or date.today(), 1), record.es)
        end = record.ef
    if end <= start:
        return {}
    return _spread(calendars.work_dates(start, end, cal), remaining)
