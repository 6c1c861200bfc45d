"""Free float, relationship float and multiple float paths."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from gantt_cpm.calendar import CalendarRegistry, day_diff
from gantt_cpm.models import Activity, LinkType, PredecessorLink
from gantt_cpm.scheduler import ScheduleResult


@dataclass
class FloatPathInfo:
    float_path: int | None = None
    driving_pred_id: str | None = None
    rel_float: float | None = None
    free_float: float | None = None


@dataclass
class FloatPathResult:
    end_activity_id: str | None
    paths: dict[str, FloatPathInfo] = field(default_factory=dict)

    def __getitem__(self, activity_id: str) -> FloatPathInfo:
        return self.paths[activity_id]

    def path(self, number: int) -> list[str]:
        """Ids assigned to float path *number*, in tracing order."""
        return [aid for aid, info in self.paths.items() if info.float_path == number]


def relationship_float(
    result: ScheduleResult,
    pred: Activity,
    succ: Activity,
    link: PredecessorLink,
    calendars: CalendarRegistry | None = None,
) -> float:
    """Days the link could absorb before it starts driving *succ*.

    Zero means the relationship drives the successor's dates.
    """
    calendars = calendars or CalendarRegistry(result.custom_calendars)
    p, s = result[pred.id], result[succ.id]
    if not (p.es and p.ef and s.es and s.ef):
        return math.inf
    cal = result.calendar_of(succ)
    lag = link.lag or 0
    if link.type == LinkType.SS:
        return max(0, day_diff(calendars.add_work_days(p.es, lag, cal), s.es))
    if link.type == LinkType.FF:
        return max(0, day_diff(calendars.add_work_days(p.ef, lag, cal), s.ef))
    if link.type == LinkType.SF:
        return max(0, day_diff(calendars.add_work_days(p.es, lag, cal), s.ef))
    return max(0, day_diff(calendars.add_work_days(p.ef, lag, cal), s.es))


def calc_multiple_float_paths(
    result: ScheduleResult,
    end_activity_id: str | None = None,
    mode: str = "totalFloat",
    max_paths: int = 10,
) -> FloatPathResult:
    """Number the driving chains of the schedule, most critical first.

    Starting at *end_activity_id* (default: the task with the latest EF),
    walk backwards through the driving predecessor of each activity. The
    driving predecessor has the lowest relationship float, then the lowest
    float (total or free depending on *mode*), then the longest duration,
    then the latest EF. When a chain runs out, the next path starts at the
    unassigned activity with the lowest float.
    """
    if mode not in ("totalFloat", "freeFloat"):
        raise ValueError(f"Unknown float path mode {mode!r}")
    calendars = CalendarRegistry(result.custom_calendars)
    tasks = [a for a in result.activities if not a.is_summary]
    by_id = {a.id: a for a in result.activities}
    out = FloatPathResult(end_activity_id=None)
    if not tasks:
        return out

    successors: dict[str, list[tuple[Activity, PredecessorLink]]] = {}
    for a in tasks:
        for link in a.preds:
            pred = by_id.get(link.id)
            if pred is None or pred.is_summary:
                continue
            successors.setdefault(link.id, []).append((a, link))

    for a in tasks:
        info = FloatPathInfo()
        succs = successors.get(a.id, [])
        tf = result[a.id].tf or 0
        if not succs or result[a.id].ef is None:
            info.free_float = tf
        else:
            info.free_float = max(
                0, min(relationship_float(result, a, s, link, calendars) for s, link in succs)
            )
        out.paths[a.id] = info

    def float_of(a: Activity) -> float:
        if mode == "freeFloat":
            ff = out.paths[a.id].free_float
            return ff if ff is not None else (result[a.id].tf or 0)
        return result[a.id].tf or 0

    def ef_ordinal(a: Activity) -> int:
        ef = result[a.id].ef
        return ef.toordinal() if ef else 0

    end = by_id.get(end_activity_id) if end_activity_id else None
    if end is None or end.is_summary:
        dated = [a for a in tasks if result[a.id].ef]
        end = max(dated, key=ef_ordinal) if dated else None
    if end is None:
        return out
    out.end_activity_id = end.id

    assigned: set[str] = set()

    def driving_pred(current: Activity) -> tuple[Activity, float] | None:
        candidates = []
        for link in current.preds:
            pred = by_id.get(link.id)
            if pred is None or pred.is_summary or pred.id in assigned:
                continue
            rf = relationship_float(result, pred, current, link, calendars)
            candidates.append((rf, float_of(pred), -(pred.dur or 0), -ef_ordinal(pred), pred))
        if not candidates:
            return None
        best = min(candidates, key=lambda c: c[:4])
        return best[4], best[0]

    path_number = 1
    current: Activity | None = end
    while current is not None and path_number <= max_paths:
        tracing: Activity | None = current
        while tracing is not None and tracing.id not in assigned:
            info = out.paths[tracing.id]
            info.float_path = path_number
            assigned.add(tracing.id)
            best = driving_pred(tracing)
            if best is None:
                info.rel_float = None
                tracing = None
            else:
                info.driving_pred_id, info.rel_float = best[0].id, best[1]
                tracing = best[0]

        path_number += 1
        remaining = [a for a in tasks if a.id not in assigned]
        if path_number > max_paths or not remaining:
            break
        current = min(remaining, key=lambda a: (float_of(a), -ef_ordinal(a)))

    return out
