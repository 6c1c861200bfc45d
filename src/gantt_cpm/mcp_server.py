"""MCP server for gantt-cpm: exposes scheduling tools to AI assistants."""

from __future__ import annotations

import json
from datetime import date

from mcp.server.fastmcp import FastMCP

from gantt_cpm.calendar import CalendarRegistry, parse_date
from gantt_cpm.exceptions import GanttCpmError
from gantt_cpm.models import (
    Activity,
    ActivityType,
    ConstraintType,
    LinkType,
    PredecessorLink,
    ProgressRecord,
)
from gantt_cpm.persistence import Store
from gantt_cpm.scheduler import ScheduleResult, capture_baseline, recompute_project
from gantt_cpm.usage import UsageMode, get_usage_daily_values

mcp = FastMCP(
    "gantt-cpm",
    instructions="""\
gantt-cpm is a critical path scheduler for WBS outlines. Activities are rows of \
an outline (tasks, milestones and summaries, nested by level) with durations in \
work days, predecessor links (FS, SS, FF, SF with lag) and optional date constraints.

Key concepts:
- **Work days**: durations count working days of the activity calendar (5, 6 or 7 \
days per week, or a custom calendar). Dates are exclusive at the finish: a 1-day \
task starting Monday finishes (EF) Tuesday.
- **Total float**: calendar days an activity can slip without moving the project \
end. Activities with float of 1 day or less are critical.
- **Status date**: when set, finished work stays in the past and unfinished work \
is pushed to start no earlier than the status date (retained logic).
- **Baselines**: saved snapshots of dates and progress. Planned percent compares \
against the active baseline.

Typical workflow:
1. add_activity to build the outline
2. get_schedule / get_critical_path to review dates and float
3. save_baseline once the plan is agreed
4. set_status_date + update_progress to report progress
5. get_usage for the day-by-day work profile of one activity\
""",
)


def _get_store() -> Store:
    return Store()


def _require_config(store: Store):
    config, activities = store.load()
    if config is None:
        raise ValueError("Project not initialized. Run 'gantt-cpm init' first.")
    return config, activities


def _schedule_rows(result: ScheduleResult) -> list[dict]:
    rows = []
    for a, rec in result:
        d = {"id": a.id, "type": a.type.value, "level": a.level}
        d.update(rec.to_dict())
        rows.append(d)
    return rows


# ---------------------------------------------------------------------------
# Write tools
# ---------------------------------------------------------------------------


@mcp.tool()
def add_activity(
    name: str,
    duration: float = 5.0,
    activity_type: str = "task",
    level: int = 0,
    predecessors: list[str] | None = None,
    constraint: str = "",
    constraint_date: str | None = None,
    work: float = 0.0,
    weight: float | None = None,
    calendar: str | None = None,
) -> str:
    """Append an activity to the outline.

    Args:
        name: Activity name
        duration: Duration in work days (ignored for milestones)
        activity_type: task, milestone or summary
        level: Outline level, 0 for top-level rows
        predecessors: Links as "ID", "ID:TYPE" or "ID:TYPE:LAG" (e.g. ["A-1", "A-2:SS:2"])
        constraint: SNET, SNLT, MSO, MFO, FNET or FNLT
        constraint_date: Constraint date (YYYY-MM-DD)
        work: Work units used by rollups and usage views
        weight: Rollup weight override
        calendar: "5", "6", "7" or a custom calendar id
    """
    store = _get_store()
    try:
        config, activities = store.load()
    except GanttCpmError as e:
        return f"Error: {e}"
    ids = {a.id for a in activities}

    links = []
    for spec in predecessors or []:
        parts = spec.split(":")
        if parts[0] not in ids:
            return f"Error: predecessor {parts[0]} not found."
        try:
            links.append(
                PredecessorLink(
                    id=parts[0],
                    type=LinkType(parts[1].upper()) if len(parts) > 1 else LinkType.FS,
                    lag=float(parts[2]) if len(parts) > 2 else 0.0,
                )
            )
        except ValueError:
            return f"Error: invalid link '{spec}'."
    try:
        kind = ActivityType(activity_type)
        ctype = ConstraintType(constraint.upper())
    except ValueError as e:
        return f"Error: {e}"
    cdate = parse_date(constraint_date) if constraint_date else None
    if constraint_date and cdate is None:
        return "Error: constraint_date must be in YYYY-MM-DD format."

    aid = store.generate_id(activities)
    activities.append(
        Activity(
            id=aid,
            name=name,
            type=kind,
            dur=0.0 if kind == ActivityType.MILESTONE else duration,
            cal=(int(calendar) if calendar and calendar.isdigit() else calendar),
            level=level,
            preds=links,
            constraint=ctype,
            constraint_date=cdate,
            work=work,
            weight=weight,
        )
    )
    store.save(config, activities)
    return f"Added '{name}' as {aid}"


@mcp.tool()
def update_progress(
    activity_id: str,
    pct: float | None = None,
    remaining_duration: float | None = None,
    actual_start: str | None = None,
    actual_finish: str | None = None,
) -> str:
    """Record progress on an activity.

    Args:
        activity_id: Activity ID (e.g. "A-3")
        pct: Percent complete, 0-100
        remaining_duration: Override for the remaining work days
        actual_start: Actual start date (YYYY-MM-DD)
        actual_finish: Actual finish date (YYYY-MM-DD)
    """
    store = _get_store()
    try:
        config, activities = _require_config(store)
    except (ValueError, GanttCpmError) as e:
        return f"Error: {e}"
    a = next((x for x in activities if x.id == activity_id), None)
    if a is None:
        return f"Error: activity {activity_id} not found."

    if pct is not None:
        if not 0 <= pct <= 100:
            return "Error: pct must be between 0 and 100."
        a.pct = pct
        as_of = config.status_date or date.today()
        entry = next((h for h in config.progress_history if h.date == as_of), None)
        if entry is None:
            entry = ProgressRecord(date=as_of)
            config.progress_history.append(entry)
            config.progress_history.sort(key=lambda h: h.date)
        entry.details[a.id] = pct
    if remaining_duration is not None:
        a.rem_dur = remaining_duration
    for field_name, raw in (("actual_start", actual_start), ("actual_finish", actual_finish)):
        if raw is None:
            continue
        parsed = parse_date(raw)
        if parsed is None:
            return f"Error: {field_name} must be in YYYY-MM-DD format."
        setattr(a, field_name, parsed)

    store.save(config, activities)
    return f"{activity_id}: {a.pct:g}% complete."


@mcp.tool()
def set_status_date(status_date: str | None = None) -> str:
    """Set or clear the status date.

    Args:
        status_date: Date (YYYY-MM-DD), or omit to clear
    """
    store = _get_store()
    try:
        config, activities = _require_config(store)
    except (ValueError, GanttCpmError) as e:
        return f"Error: {e}"
    if status_date:
        parsed = parse_date(status_date)
        if parsed is None:
            return "Error: status_date must be in YYYY-MM-DD format."
        config.status_date = parsed
    else:
        config.status_date = None
    store.save(config, activities)
    return f"Status date {'set to ' + config.status_date.isoformat() if config.status_date else 'cleared'}."


@mcp.tool()
def save_baseline(index: int = 0, name: str = "", description: str = "") -> str:
    """Snapshot the current schedule into a baseline slot and make it active.

    Args:
        index: Baseline slot, 0-10
        name: Label for the baseline
        description: Free-form description
    """
    if not 0 <= index <= 10:
        return "Error: index must be between 0 and 10."
    store = _get_store()
    try:
        config, activities = _require_config(store)
        result = recompute_project(config, activities)
    except (ValueError, GanttCpmError) as e:
        return f"Error: {e}"
    activities = capture_baseline(result, index, name=name, description=description)
    config.active_baseline = index
    store.save(config, activities)
    return f"Saved baseline {index} for {len(activities)} activities."


# ---------------------------------------------------------------------------
# Read tools
# ---------------------------------------------------------------------------


@mcp.tool()
def get_schedule() -> str:
    """Compute the schedule and return every activity with its dates, float and progress."""
    store = _get_store()
    try:
        config, activities = _require_config(store)
        result = recompute_project(config, activities)
    except (ValueError, GanttCpmError) as e:
        return f"Error: {e}"
    return json.dumps(
        {
            "project_start": result.project_start.isoformat(),
            "project_end": result.project_end.isoformat(),
            "status_date": result.status_date.isoformat() if result.status_date else None,
            "activities": _schedule_rows(result),
        },
        indent=2,
    )


@mcp.tool()
def get_critical_path() -> str:
    """Return the critical tasks and milestones in outline order."""
    store = _get_store()
    try:
        config, activities = _require_config(store)
        result = recompute_project(config, activities)
    except (ValueError, GanttCpmError) as e:
        return f"Error: {e}"
    crit = [
        {"id": a.id, "name": rec.name, "es": rec.es.isoformat(), "ef": rec.ef.isoformat(), "tf": rec.tf}
        for a, rec in result.critical()
    ]
    if not crit:
        return "No critical path found."
    return json.dumps(crit, indent=2)


@mcp.tool()
def get_usage(activity_id: str, mode: str = "work", resource_id: str | None = None) -> str:
    """Day-by-day work distribution of one activity.

    Args:
        activity_id: Activity ID
        mode: work, baseline, actual or remaining, optionally with a "_cumulative" suffix
        resource_id: Restrict to one assigned resource
    """
    store = _get_store()
    try:
        config, activities = _require_config(store)
        result = recompute_project(config, activities)
        usage_mode = UsageMode(mode)
    except (ValueError, GanttCpmError) as e:
        return f"Error: {e}"
    a = next((x for x in activities if x.id == activity_id), None)
    if a is None:
        return f"Error: activity {activity_id} not found."
    values = get_usage_daily_values(
        a,
        result[a.id],
        usage_mode,
        default_calendar=config.default_calendar,
        resource_id=resource_id,
        baseline_index=config.active_baseline,
        status_date=config.status_date,
        progress_history=config.progress_history,
        calendars=CalendarRegistry(config.custom_calendars),
    )
    return json.dumps({d.isoformat(): round(v, 4) for d, v in sorted(values.items())}, indent=2)


def main():
    """Entry point for the MCP server."""
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
