"""CPM scheduling: forward pass, status-date reprogramming, rollups, backward pass."""

from __future__ import annotations

import enum
from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field, replace
from datetime import date, datetime

import networkx as nx

from gantt_cpm.calendar import CalendarRegistry, add_days, day_diff, round_half_up
from gantt_cpm.logger import get_logger
from gantt_cpm.models import (
    Activity,
    BaselineEntry,
    CalendarRef,
    ConstraintType,
    CustomCalendar,
    LinkType,
    ProjectConfig,
)
from gantt_cpm.network import Outline, build_dag, build_outline, index_activities

logger = get_logger()

CRITICAL_FLOAT = 1  # days of total float still reported as critical
DEFAULT_TOTAL_DAYS = 90


class AnchorMode(enum.Enum):
    """What an activity with no binding predecessor starts from."""

    PROJECT_START = "project_start"
    STATUS_DATE = "status_date"


@dataclass
class ActivitySchedule:
    """Everything the scheduler derives for one activity."""

    name: str
    es: date | None = None
    ef: date | None = None  # exclusive; equals es for milestones
    ls: date | None = None
    lf: date | None = None
    tf: int | None = None
    raw_tf: int | None = None  # signed; negative means the activity is behind its late dates
    crit: bool = False
    dur: float = 0.0
    pct: float = 0.0
    planned_pct: float = 0.0
    work: float = 0.0
    rem_dur: float | None = None
    done_dur: float | None = None
    actual_end: date | None = None  # end of the done portion
    rem_start: date | None = None
    rem_es: date | None = None
    rem_ef: date | None = None
    is_split: bool = False
    span_dur: float | None = None

    @property
    def has_negative_float(self) -> bool:
        return self.raw_tf is not None and self.raw_tf < 0

    def to_dict(self) -> dict:
        d = {}
        for key, value in self.__dict__.items():
            d[key] = value.isoformat() if isinstance(value, date) else value
        return d


@dataclass
class ScheduleResult:
    """One consistent schedule snapshot."""

    activities: list[Activity]
    records: dict[str, ActivitySchedule]
    project_start: date
    project_end: date
    total_days: int
    project_days: int
    default_calendar: CalendarRef = 6
    status_date: date | None = None
    custom_calendars: list[CustomCalendar] = field(default_factory=list)

    def __getitem__(self, activity_id: str) -> ActivitySchedule:
        return self.records[activity_id]

    def __iter__(self) -> Iterator[tuple[Activity, ActivitySchedule]]:
        for a in self.activities:
            yield a, self.records[a.id]

    def calendar_of(self, activity: Activity) -> CalendarRef:
        return activity.cal if activity.cal is not None else self.default_calendar

    def critical(self) -> list[tuple[Activity, ActivitySchedule]]:
        """Critical tasks and milestones in outline order."""
        return [(a, r) for a, r in self if r.crit and not a.is_summary]


def _duration(a: Activity) -> float:
    return 0 if a.is_milestone else (a.dur or 0)


class _ScheduleRun:
    """State of a single recompute. Discarded when the result is built."""

    def __init__(
        self,
        activities: Sequence[Activity],
        project_start: date,
        default_calendar: CalendarRef,
        status_date: date | None,
        project_name: str,
        active_baseline: int,
        calendars: CalendarRegistry,
    ):
        self.acts = list(activities)
        self.project_start = project_start
        self.default_calendar = default_calendar
        self.status_date = status_date
        self.active_baseline = active_baseline
        self.cals = calendars

        self.index = index_activities(self.acts)
        self.graph = build_dag(self.acts, self.index)
        self.order = list(nx.topological_sort(self.graph))
        self.outline: Outline = build_outline(self.acts)

        self.recs = [
            ActivitySchedule(
                name=a.name,
                dur=a.dur or 0,
                pct=a.pct or 0,
                work=a.work or sum(r.work for r in a.resources),
            )
            for a in self.acts
        ]
        if self.outline.project_row is not None:
            self.recs[self.outline.project_row].name = project_name or "My Project"

    # -- helpers ------------------------------------------------------------

    def cal(self, i: int) -> CalendarRef:
        a = self.acts[i]
        return a.cal if a.cal is not None else self.default_calendar

    def span(self, i: int) -> int:
        """Calendar days from ES to EF, 0 for milestones."""
        rec = self.recs[i]
        if self.acts[i].is_milestone:
            return 0
        if rec.es and rec.ef:
            return max(0, day_diff(rec.es, rec.ef))
        return round_half_up(_duration(self.acts[i]) * self.cals.factor(self.cal(i)))

    def _back_off(self, d: date, work_days: float, i: int) -> date:
        return add_days(d, -round_half_up(work_days * self.cals.factor(self.cal(i))))

    def _is_held_split(self, i: int) -> bool:
        return self.acts[i].suspend_date is not None and self.recs[i].is_split

    def _pred_indices(self, i: int) -> Iterator[tuple[int, float, LinkType]]:
        for link in self.acts[i].preds:
            p = self.index.get(link.id)
            if p is None or self.acts[p].is_summary:
                continue
            yield p, link.lag or 0, link.type

    # -- forward pass (both anchor modes) -----------------------------------

    def forward_pass(self, mode: AnchorMode) -> None:
        for i in self.order:
            a = self.acts[i]
            if mode is AnchorMode.STATUS_DATE and (a.pct >= 100 or self._is_held_split(i)):
                continue
            start, forced = self._anchor(i, mode)
            if not forced:
                for implied in self._link_dates(i, mode):
                    if implied > start:
                        start = implied
                if mode is AnchorMode.PROJECT_START:
                    start = self._finish_floor(i, start)
            self._place(i, start, mode)

    def _anchor(self, i: int, mode: AnchorMode) -> tuple[date, bool]:
        a = self.acts[i]
        if mode is AnchorMode.STATUS_DATE:
            assert self.status_date is not None
            return (self.recs[i].es if a.is_milestone else self.status_date), False

        if a.pct > 0 and a.actual_start:
            return a.actual_start, True
        cd = a.constraint_date
        if cd is not None:
            if a.manual or a.constraint == ConstraintType.MSO:
                logger.checks(f"{a.id}: pinned to {cd} ({a.constraint or 'manual'})")
                return cd, True
            if a.constraint == ConstraintType.MFO:
                return self._back_off(add_days(cd, 1), _duration(a), i), True
            if a.constraint == ConstraintType.SNET:
                return max(self.project_start, cd), False
        return self.project_start, False

    def _link_dates(self, i: int, mode: AnchorMode) -> Iterator[date]:
        a = self.acts[i]
        cal = self.cal(i)
        if a.is_milestone:
            own = 0.0
        elif mode is AnchorMode.STATUS_DATE and self.recs[i].rem_dur:
            own = self.recs[i].rem_dur
        else:
            own = a.dur or 0
        for p, lag, kind in self._pred_indices(i):
            pes, pef = self.recs[p].es, self.recs[p].ef
            if kind == LinkType.SS:
                implied = self.cals.add_work_days(pes, lag, cal)
            elif kind == LinkType.FF:
                implied = self._back_off(self.cals.add_work_days(pef, lag, cal), own, i)
            elif kind == LinkType.SF:
                implied = self._back_off(self.cals.add_work_days(pes, lag, cal), own, i)
            else:
                implied = self.cals.add_work_days(pef, lag, cal)
            logger.debug(f"{a.id}: {kind.value} from {self.acts[p].id} lag {lag} -> {implied}")
            yield implied

    def _finish_floor(self, i: int, start: date) -> date:
        a = self.acts[i]
        if a.constraint == ConstraintType.FNET and a.constraint_date is not None:
            floor = self._back_off(add_days(a.constraint_date, 1), _duration(a), i)
            return max(start, floor)
        return start

    def _place(self, i: int, start: date, mode: AnchorMode) -> None:
        a, rec = self.acts[i], self.recs[i]
        cal = self.cal(i)

        if mode is AnchorMode.PROJECT_START:
            rec.es = start
            rec.ef = self.cals.add_work_days(start, _duration(a), cal)
            if a.pct >= 100 and a.actual_finish:
                if a.is_milestone:
                    rec.es = rec.ef = a.actual_finish
                else:
                    rec.ef = add_days(a.actual_finish, 1)
                    rec.dur = self.cals.cal_work_days(rec.es, rec.ef, cal)
            logger.checks(f"{a.id}: ES {rec.es} EF {rec.ef}")
            return

        if 0 < a.pct < 100 and not a.is_milestone:
            rec.rem_start = start
            new_ef = self.cals.add_work_days(start, rec.rem_dur or 0, cal)
            if a.actual_start:
                rec.es = a.actual_start
            rec.ef = new_ef
            rec.rem_es, rec.rem_ef = start, new_ef
            rec.is_split = rec.actual_end is not None and start > rec.actual_end
            rec.span_dur = self.cals.cal_work_days(rec.es, rec.ef, cal)
            logger.changes(f"{a.id}: remaining {rec.rem_dur}d from {start}, EF -> {new_ef}")
        elif start > rec.es:
            effective = 0 if a.is_milestone else (a.rem_dur if a.rem_dur is not None else a.dur or 0)
            logger.changes(f"{a.id}: moved from {rec.es} to {start}")
            rec.es = start
            rec.ef = self.cals.add_work_days(start, effective, cal)

    # -- suspend / resume ---------------------------------------------------

    def apply_suspensions(self) -> None:
        for i, a in enumerate(self.acts):
            if a.is_summary or a.is_milestone or a.pct >= 100 or a.suspend_date is None:
                continue
            if a.resume_date is not None and a.resume_date <= a.suspend_date:
                continue
            rec, cal = self.recs[i], self.cal(i)
            worked = self.cals.cal_work_days(rec.es, a.suspend_date, cal)
            remaining = max(0, (a.dur or 0) - worked)
            rec.actual_end = a.suspend_date
            rec.done_dur = worked
            rec.rem_dur = remaining
            if a.resume_date is None:
                rec.ef = a.suspend_date
                rec.span_dur = worked
            else:
                rec.ef = self.cals.add_work_days(a.resume_date, remaining, cal)
                rec.is_split = True
                rec.rem_es, rec.rem_ef = a.resume_date, rec.ef
                rec.span_dur = self.cals.cal_work_days(rec.es, rec.ef, cal)
            logger.changes(f"{a.id}: suspended {a.suspend_date}, resume {a.resume_date}")

    # -- status-date reprogramming ------------------------------------------

    def measure_progress(self) -> None:
        """Split partially done work into done and remaining durations."""
        for i, a in enumerate(self.acts):
            if a.is_summary or a.is_milestone or a.pct >= 100 or self._is_held_split(i):
                continue
            if a.pct <= 0:
                continue
            rec = self.recs[i]
            orig = a.dur or 0
            done = round_half_up(orig * a.pct / 100)
            rec.done_dur = done
            rec.rem_dur = a.rem_dur if a.rem_dur is not None else orig - done
            rec.actual_end = self.cals.add_work_days(rec.es, done, self.cal(i))
            rec.rem_start = self.status_date

    def reprogram(self) -> None:
        self.measure_progress()
        self.forward_pass(AnchorMode.STATUS_DATE)
        for i, a in enumerate(self.acts):
            if a.is_summary or a.is_milestone:
                continue
            rec = self.recs[i]
            rec.dur = self.cals.exact_work_days(rec.es, rec.ef, self.cal(i))

    # -- summaries ----------------------------------------------------------

    def seed_summaries(self) -> None:
        for i, a in enumerate(self.acts):
            if a.is_summary:
                rec = self.recs[i]
                rec.es = self.project_start
                rec.ef = self.cals.add_work_days(self.project_start, a.dur or 0, self.cal(i))

    def roll_up_dates(self) -> None:
        for s in self.outline.summaries_bottom_up():
            starts, finishes = [], []
            for c in self.outline.children[s]:
                rec = self.recs[c]
                if rec.es:
                    starts.append(rec.es)
                if rec.ef:
                    finishes.append(add_days(rec.ef, 1) if self.acts[c].is_milestone else rec.ef)
            if not starts or not finishes:
                continue
            rec = self.recs[s]
            rec.es, rec.ef = min(starts), max(finishes)
            rec.dur = max(1, self.cals.exact_work_days(rec.es, rec.ef, self.cal(s)))

    # -- progress -------------------------------------------------------------

    def planned_percent(self, i: int, measure_at: date) -> float:
        a, rec = self.acts[i], self.recs[i]
        bl = a.baseline(self.active_baseline)
        start = (bl.es if bl and bl.es else None) or rec.es
        end = (bl.ef if bl and bl.ef else None) or rec.ef
        if not start or not end:
            return 0.0
        cal = self.cal(i)

        if bl is None or bl.status_date is None:
            return self.cals.elapsed_ratio(start, end, measure_at, cal) * 100
        if measure_at <= start:
            return 0.0
        if measure_at >= end:
            return 100.0
        if not bl.pct:
            return self.cals.elapsed_ratio(start, end, measure_at, cal) * 100

        pivot = add_days(bl.status_date, 1)
        if measure_at <= pivot:
            total = self.cals.exact_work_days(start, pivot, cal)
            elapsed = self.cals.exact_work_days(start, measure_at, cal)
            ratio = elapsed / total if total > 0 else 1.0
            return ratio * bl.pct
        total = self.cals.exact_work_days(pivot, end, cal)
        elapsed = self.cals.exact_work_days(pivot, measure_at, cal)
        ratio = elapsed / total if total > 0 else 1.0
        return bl.pct + ratio * (100 - bl.pct)

    def roll_up_progress(self) -> None:
        # planned progress counts the status date itself as elapsed
        measure_at = add_days(self.status_date or date.today(), 1)
        for i, a in enumerate(self.acts):
            if not a.is_summary:
                self.recs[i].planned_pct = self.planned_percent(i, measure_at)

        for s in self.outline.summaries_bottom_up():
            total_work = total_weight = weighted_pct = weighted_planned = 0.0
            backup_total = backup_pct = backup_planned = 0.0
            for c in self.outline.children[s]:
                rec = self.recs[c]
                weight = self.acts[c].weight
                w = weight if weight is not None and weight > 0 else rec.work
                total_work += rec.work
                total_weight += w
                weighted_pct += w * rec.pct
                weighted_planned += w * rec.planned_pct

                backup = rec.dur or 1
                backup_total += backup
                backup_pct += backup * rec.pct
                backup_planned += backup * rec.planned_pct

            rec = self.recs[s]
            rec.work = round_half_up(total_work * 100) / 100
            if total_weight > 0:
                rec.pct = round_half_up(weighted_pct / total_weight * 10) / 10
                rec.planned_pct = round_half_up(weighted_planned / total_weight * 10) / 10
            elif backup_total > 0:
                rec.pct = round_half_up(backup_pct / backup_total * 10) / 10
                rec.planned_pct = round_half_up(backup_planned / backup_total * 10) / 10
            else:
                rec.pct = rec.planned_pct = 0.0

    # -- backward pass --------------------------------------------------------

    def project_end(self) -> date:
        end = self.project_start
        for i, a in enumerate(self.acts):
            rec = self.recs[i]
            if a.is_summary or rec.ef is None:
                continue
            ef = add_days(rec.ef, 1) if a.is_milestone else rec.ef
            end = max(end, ef)
        return end

    def _late_finish_cap(self, i: int) -> date | None:
        a = self.acts[i]
        cd = a.constraint_date
        if cd is None:
            return None
        if a.constraint in (ConstraintType.MSO, ConstraintType.SNLT):
            return add_days(cd, self.span(i))
        if a.constraint in (ConstraintType.MFO, ConstraintType.FNLT):
            return add_days(cd, 1)
        return None

    def backward_pass(self, project_end: date) -> None:
        lf = {i: project_end for i in range(len(self.acts))}
        reverse = self.graph.reverse()
        visit = nx.lexicographical_topological_sort(
            reverse, key=lambda i: (-self.recs[i].ef.toordinal(), i)
        )
        for i in visit:
            cap = self._late_finish_cap(i)
            if cap is not None and cap < lf[i]:
                lf[i] = cap
            ls = add_days(lf[i], -self.span(i))
            for p, lag, kind in self._pred_indices(i):
                pcal = self.cal(p)
                if kind == LinkType.SS:
                    candidate = add_days(self.cals.add_work_days(ls, -lag, pcal), self.span(p))
                elif kind == LinkType.FF:
                    candidate = self.cals.add_work_days(lf[i], -lag, pcal)
                elif kind == LinkType.SF:
                    candidate = add_days(self.cals.add_work_days(lf[i], -lag, pcal), self.span(p))
                else:
                    candidate = self.cals.add_work_days(ls, -lag, pcal)
                if candidate < lf[p]:
                    lf[p] = candidate

        for i, a in enumerate(self.acts):
            rec = self.recs[i]
            rec.lf = lf[i]
            rec.ls = add_days(rec.lf, -self.span(i))
            rec.raw_tf = day_diff(rec.es or self.project_start, rec.ls)
            rec.tf = max(0, rec.raw_tf)
            rec.crit = rec.tf <= CRITICAL_FLOAT
            if rec.rem_dur is None:
                if a.rem_dur is not None:
                    rec.rem_dur = a.rem_dur
                else:
                    rec.rem_dur = round_half_up(rec.dur * (100 - rec.pct) / 100)

    # -- driver ---------------------------------------------------------------

    def run(self) -> ScheduleResult:
        self.forward_pass(AnchorMode.PROJECT_START)
        self.apply_suspensions()
        if self.status_date is not None:
            self.reprogram()
        self.seed_summaries()
        self.roll_up_dates()
        self.roll_up_progress()

        end = self.project_end()
        self.backward_pass(end)

        span_days = day_diff(self.project_start, end)
        project_days = max(30, span_days + 3)
        total_days = max(project_days, span_days + 30 + 60)
        return ScheduleResult(
            activities=self.acts,
            records={a.id: rec for a, rec in zip(self.acts, self.recs)},
            project_start=self.project_start,
            project_end=end,
            total_days=total_days,
            project_days=project_days,
            default_calendar=self.default_calendar,
            status_date=self.status_date,
        )


def recompute(
    activities: Sequence[Activity],
    project_start: date,
    default_calendar: CalendarRef = 6,
    status_date: date | None = None,
    project_name: str = "",
    active_baseline: int = 0,
    custom_calendars: Iterable[CustomCalendar] = (),
) -> ScheduleResult:
    """Compute a full schedule snapshot.

    The activities are read, never modified: every computed value is in the
    returned ``ScheduleResult.records``. Raises CircularDependencyError if
    the predecessor links form a cycle.
    """
    custom = list(custom_calendars)
    if not activities:
        return ScheduleResult(
            activities=[],
            records={},
            project_start=project_start,
            project_end=project_start,
            total_days=DEFAULT_TOTAL_DAYS,
            project_days=DEFAULT_TOTAL_DAYS,
            default_calendar=default_calendar,
            status_date=status_date,
            custom_calendars=custom,
        )
    run = _ScheduleRun(
        activities,
        project_start,
        default_calendar,
        status_date,
        project_name,
        active_baseline,
        CalendarRegistry(custom),
    )
    result = run.run()
    result.custom_calendars = custom
    logger.checks(
        f"Scheduled {len(activities)} activities, project end {result.project_end}"
    )
    return result


def recompute_project(config: ProjectConfig, activities: Sequence[Activity]) -> ScheduleResult:
    """``recompute`` with the settings stored in a ProjectConfig."""
    return recompute(
        activities,
        config.start_date,
        default_calendar=config.default_calendar,
        status_date=config.status_date,
        project_name=config.name,
        active_baseline=config.active_baseline,
        custom_calendars=config.custom_calendars,
    )


def capture_baseline(
    result: ScheduleResult,
    index: int,
    name: str = "",
    description: str = "",
    status_date: date | None = None,
) -> list[Activity]:
    """Copies of the scheduled activities with baseline slot *index* filled in.

    The snapshot records computed dates and durations plus the current
    progress, so later planned-percent curves can interpolate against it.
    """
    saved_at = datetime.now().isoformat(timespec="seconds")
    as_of = status_date or result.status_date or date.today()
    out: list[Activity] = []
    for a, rec in result:
        baselines = list(a.baselines)
        while len(baselines) <= index:
            baselines.append(None)
        baselines[index] = BaselineEntry(
            dur=rec.dur,
            es=rec.es,
            ef=rec.ef,
            cal=result.calendar_of(a),
            pct=rec.pct,
            status_date=as_of,
            work=rec.work,
            weight=a.weight,
            name=name or f"Baseline {index}",
            description=description,
            saved_at=saved_at,
        )
        out.append(replace(a, baselines=baselines))
    return out
