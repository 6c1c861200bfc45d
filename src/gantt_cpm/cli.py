"""Typer CLI for gantt-cpm."""

from __future__ import annotations

from datetime import date
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from gantt_cpm.calendar import CalendarRegistry, fmt_date, iso_date, parse_date
from gantt_cpm.exceptions import GanttCpmError, MissingReferenceError, ValidationError
from gantt_cpm.float_paths import calc_multiple_float_paths
from gantt_cpm.logger import setup_logger
from gantt_cpm.models import (
    Activity,
    ActivityType,
    ConstraintType,
    LinkType,
    PredecessorLink,
    ProgressRecord,
    ProjectConfig,
)
from gantt_cpm.network import trace_chain
from gantt_cpm.persistence import DB_ENV_VAR, Store
from gantt_cpm.scheduler import ScheduleResult, capture_baseline, recompute_project
from gantt_cpm.usage import UsageMode, get_usage_daily_values

app = typer.Typer(
    name="gantt-cpm",
    help="Critical path scheduling for WBS outlines from the command line.",
    no_args_is_help=True,
)
console = Console()

_db_path: str | None = None


def _get_store() -> Store:
    return Store(_db_path)


def _require_config(config: ProjectConfig | None) -> ProjectConfig:
    if config is None:
        console.print("[red]No project config found. Run 'gantt-cpm init' first.[/red]")
        raise typer.Exit(1)
    return config


def _require_date(value: str, option: str) -> date:
    parsed = parse_date(value)
    if parsed is None:
        console.print(f"[red]Invalid date for {option}: '{value}'. Use YYYY-MM-DD or dd-mm-yy.[/red]")
        raise typer.Exit(1)
    return parsed


def _parse_calendar(value: str | None):
    if value is None:
        return None
    return int(value) if value.isdigit() else value


def _parse_link(spec: str) -> PredecessorLink:
    """``ID[:TYPE[:LAG]]``, e.g. ``A-3``, ``A-3:SS`` or ``A-3:FS:-2``."""
    parts = spec.split(":")
    try:
        kind = LinkType(parts[1].upper()) if len(parts) > 1 and parts[1] else LinkType.FS
        lag = float(parts[2]) if len(parts) > 2 else 0.0
    except ValueError:
        raise ValidationError(f"Invalid link '{spec}'. Use ID[:FS|SS|FF|SF[:LAG]]") from None
    return PredecessorLink(id=parts[0].strip(), type=kind, lag=lag)


def _find(activities: list[Activity], activity_id: str) -> Activity:
    for a in activities:
        if a.id == activity_id:
            return a
    raise MissingReferenceError(f"Activity {activity_id} not found.")


def _load_schedule() -> tuple[ProjectConfig, list[Activity], ScheduleResult]:
    store = _get_store()
    config, activities = store.load()
    config = _require_config(config)
    return config, activities, recompute_project(config, activities)


def _fail(e: GanttCpmError) -> typer.Exit:
    console.print(f"[red]Error: {e}[/red]")
    return typer.Exit(1)


@app.callback()
def main_callback(
    verbose: Annotated[
        int,
        typer.Option("--verbose", "-v", help="0=silent, 1=show changes, 2=show checks, 3=debug", min=0, max=3),
    ] = 0,
    db: Annotated[
        Optional[str],
        typer.Option("--db", envvar=DB_ENV_VAR, help="Project file (default: schedule.json)"),
    ] = None,
) -> None:
    """Global options."""
    global _db_path
    setup_logger(verbose)
    _db_path = db


# ---------------------------------------------------------------------------
# Project and outline editing
# ---------------------------------------------------------------------------


@app.command()
def init(
    start: Annotated[
        str,
        typer.Option(help="Project start date (YYYY-MM-DD)", prompt="Project start date (YYYY-MM-DD)"),
    ],
    name: str = "My Project",
    calendar: Annotated[int, typer.Option(help="Default calendar: 5, 6 or 7 working days")] = 6,
    status_date: Annotated[Optional[str], typer.Option(help="Status date (YYYY-MM-DD)")] = None,
) -> None:
    """Initialize (or reinitialize) project configuration."""
    store = _get_store()
    try:
        _, activities = store.load()
    except GanttCpmError as e:
        raise _fail(e)
    config = ProjectConfig(
        start_date=_require_date(start, "--start"),
        name=name,
        default_calendar=calendar,
        status_date=_require_date(status_date, "--status-date") if status_date else None,
    )
    store.save(config, activities)
    console.print(f"[green]Project initialized. Start: {iso_date(config.start_date)}[/green]")


@app.command()
def add(
    name: str,
    duration: Annotated[float, typer.Option("--duration", "-d", help="Duration in work days")] = 5.0,
    kind: Annotated[ActivityType, typer.Option("--type", help="task, milestone or summary")] = ActivityType.TASK,
    level: Annotated[int, typer.Option("--level", "-l", help="Outline level (0 = top)")] = 0,
    cal: Annotated[Optional[str], typer.Option("--cal", help="Calendar: 5, 6, 7 or a custom calendar id")] = None,
    preds: Annotated[Optional[list[str]], typer.Option("--pred", "-p", help="Predecessor ID[:TYPE[:LAG]]")] = None,
    constraint: Annotated[ConstraintType, typer.Option(help="SNET, SNLT, MSO, MFO, FNET or FNLT")] = ConstraintType.NONE,
    constraint_date: Annotated[Optional[str], typer.Option(help="Constraint date (YYYY-MM-DD)")] = None,
    work: Annotated[float, typer.Option(help="Work units for usage and rollups")] = 0.0,
    weight: Annotated[Optional[float], typer.Option(help="Rollup weight override")] = None,
    notes: Annotated[Optional[str], typer.Option(help="Free-form notes")] = None,
) -> None:
    """Append an activity to the outline.

    Predecessors can be repeated (--pred A-1 --pred A-2:SS:1) or
    comma-separated (--pred A-1,A-2).
    """
    store = _get_store()
    try:
        config, activities = store.load()
        links = [
            _parse_link(part.strip())
            for spec in preds or []
            for part in spec.split(",")
            if part.strip()
        ]
        for link in links:
            _find(activities, link.id)
    except GanttCpmError as e:
        raise _fail(e)

    aid = store.generate_id(activities)
    activities.append(
        Activity(
            id=aid,
            name=name,
            type=kind,
            dur=0.0 if kind == ActivityType.MILESTONE else duration,
            cal=_parse_calendar(cal),
            level=level,
            preds=links,
            constraint=constraint,
            constraint_date=_require_date(constraint_date, "--constraint-date") if constraint_date else None,
            work=work,
            weight=weight,
            notes=notes,
        )
    )
    store.save(config, activities)
    console.print(f"[green]Added '{name}' as {aid}[/green]")


@app.command()
def update(
    activity_id: str,
    name: Optional[str] = None,
    duration: Annotated[Optional[float], typer.Option("--duration", "-d")] = None,
    cal: Optional[str] = None,
    level: Optional[int] = None,
    constraint: Optional[ConstraintType] = None,
    constraint_date: Optional[str] = None,
    manual: Annotated[Optional[bool], typer.Option("--manual/--auto")] = None,
    work: Optional[float] = None,
    weight: Optional[float] = None,
    notes: Optional[str] = None,
) -> None:
    """Update planning fields of an existing activity."""
    store = _get_store()
    try:
        config, activities = store.load()
        a = _find(activities, activity_id)
    except GanttCpmError as e:
        raise _fail(e)

    if name is not None:
        a.name = name
    if duration is not None:
        a.dur = duration
    if cal is not None:
        a.cal = _parse_calendar(cal)
    if level is not None:
        a.level = level
    if constraint is not None:
        a.constraint = constraint
    if constraint_date is not None:
        a.constraint_date = _require_date(constraint_date, "--constraint-date")
    if manual is not None:
        a.manual = manual
    if work is not None:
        a.work = work
    if weight is not None:
        a.weight = weight
    if notes is not None:
        a.notes = notes
    store.save(config, activities)
    console.print(f"[green]Updated {activity_id}[/green]")


@app.command()
def delete(activity_id: str) -> None:
    """Delete an activity and remove it from predecessor lists."""
    store = _get_store()
    try:
        config, activities = store.load()
        _find(activities, activity_id)
    except GanttCpmError as e:
        raise _fail(e)
    activities = [a for a in activities if a.id != activity_id]
    for a in activities:
        a.preds = [p for p in a.preds if p.id != activity_id]
    store.save(config, activities)
    console.print(f"[green]Deleted {activity_id}[/green]")


@app.command()
def link(
    successor: str,
    predecessor: str,
    kind: Annotated[LinkType, typer.Option("--type", help="FS, SS, FF or SF")] = LinkType.FS,
    lag: Annotated[float, typer.Option(help="Lag in work days, may be negative")] = 0.0,
) -> None:
    """Make SUCCESSOR depend on PREDECESSOR."""
    store = _get_store()
    try:
        config, activities = store.load()
        succ = _find(activities, successor)
        _find(activities, predecessor)
        succ.preds = [p for p in succ.preds if p.id != predecessor]
        succ.preds.append(PredecessorLink(id=predecessor, type=kind, lag=lag))
        if config is not None:
            recompute_project(config, activities)
    except GanttCpmError as e:
        raise _fail(e)
    store.save(config, activities)
    console.print(f"[green]{successor} now depends on {predecessor} ({kind.value}, lag {lag:g})[/green]")


@app.command()
def unlink(successor: str, predecessor: str) -> None:
    """Remove the link from PREDECESSOR to SUCCESSOR."""
    store = _get_store()
    try:
        config, activities = store.load()
        succ = _find(activities, successor)
    except GanttCpmError as e:
        raise _fail(e)
    succ.preds = [p for p in succ.preds if p.id != predecessor]
    store.save(config, activities)
    console.print(f"[green]Removed link {predecessor} -> {successor}[/green]")


@app.command()
def progress(
    activity_id: str,
    pct: Annotated[Optional[float], typer.Option("--pct", help="Percent complete (0-100)", min=0, max=100)] = None,
    rem_dur: Annotated[Optional[float], typer.Option("--rem-dur", help="Remaining duration override")] = None,
    actual_start: Optional[str] = None,
    actual_finish: Optional[str] = None,
    suspend: Annotated[Optional[str], typer.Option(help="Suspend date")] = None,
    resume: Annotated[Optional[str], typer.Option(help="Resume date")] = None,
) -> None:
    """Record progress on an activity.

    The percent is also written to the progress history under the status
    date (today when none is set), which feeds the actual-work usage view.
    """
    store = _get_store()
    try:
        config, activities = store.load()
        a = _find(activities, activity_id)
    except GanttCpmError as e:
        raise _fail(e)
    config = _require_config(config)

    if pct is not None:
        a.pct = pct
        as_of = config.status_date or date.today()
        entry = next((h for h in config.progress_history if h.date == as_of), None)
        if entry is None:
            entry = ProgressRecord(date=as_of)
            config.progress_history.append(entry)
            config.progress_history.sort(key=lambda h: h.date)
        entry.details[a.id] = pct
    if rem_dur is not None:
        a.rem_dur = rem_dur
    if actual_start is not None:
        a.actual_start = _require_date(actual_start, "--actual-start")
    if actual_finish is not None:
        a.actual_finish = _require_date(actual_finish, "--actual-finish")
    if suspend is not None:
        a.suspend_date = _require_date(suspend, "--suspend")
    if resume is not None:
        a.resume_date = _require_date(resume, "--resume")
    store.save(config, activities)
    console.print(f"[green]{activity_id}: {a.pct:g}% complete[/green]")


@app.command("status-date")
def status_date(
    value: Annotated[str, typer.Argument(help="Status date (YYYY-MM-DD), or 'clear'")],
) -> None:
    """Set the status date used for retained-logic reprogramming."""
    store = _get_store()
    try:
        config, activities = store.load()
    except GanttCpmError as e:
        raise _fail(e)
    config = _require_config(config)
    config.status_date = None if value == "clear" else _require_date(value, "status date")
    store.save(config, activities)
    label = iso_date(config.status_date) or "cleared"
    console.print(f"[green]Status date {label}[/green]")


@app.command()
def baseline(
    index: Annotated[int, typer.Option("--index", "-i", help="Baseline slot (0-10)", min=0, max=10)] = 0,
    name: str = "",
    description: str = "",
) -> None:
    """Save the current schedule as a baseline and make it active."""
    store = _get_store()
    try:
        config, _, result = _load_schedule()
    except GanttCpmError as e:
        raise _fail(e)
    activities = capture_baseline(result, index, name=name, description=description)
    config.active_baseline = index
    store.save(config, activities)
    console.print(f"[green]Saved baseline {index} for {len(activities)} activities[/green]")


# ---------------------------------------------------------------------------
# Reports
# ---------------------------------------------------------------------------


def _flags(a: Activity, rec) -> list[str]:
    flags = []
    if rec.crit and not a.is_summary:
        flags.append("CRITICAL")
    if rec.has_negative_float:
        flags.append("BEHIND")
    if rec.is_split:
        flags.append("SPLIT")
    return flags


@app.command()
def schedule(
    remaining: Annotated[bool, typer.Option("--remaining", "-r", help="Hide completed activities")] = False,
    csv: Annotated[Optional[str], typer.Option("--csv", help="Export schedule to CSV file")] = None,
) -> None:
    """Calculate and display the full schedule."""
    try:
        config, activities, result = _load_schedule()
    except GanttCpmError as e:
        raise _fail(e)
    if not activities:
        console.print("No activities to schedule.")
        return

    rows = [(a, r) for a, r in result if not (remaining and r.pct >= 100)]

    if csv:
        import csv as csv_mod
        from pathlib import Path

        with Path(csv).open("w", newline="") as f:
            writer = csv_mod.writer(f)
            writer.writerow([
                "ID", "Name", "Type", "Level", "Dur", "ES", "EF", "LS", "LF",
                "TF", "Critical", "Pct", "Planned Pct", "Work", "Flags",
            ])
            for a, r in rows:
                writer.writerow([
                    a.id,
                    r.name,
                    a.type.value,
                    a.level,
                    f"{r.dur:g}",
                    iso_date(r.es),
                    iso_date(r.ef),
                    iso_date(r.ls),
                    iso_date(r.lf),
                    r.tf,
                    "yes" if r.crit else "no",
                    f"{r.pct:.1f}",
                    f"{r.planned_pct:.1f}",
                    f"{r.work:g}",
                    " | ".join(_flags(a, r)),
                ])
        console.print(f"[green]Exported {len(rows)} activities to {csv}[/green]")
        return

    title = f"{config.name}  ({fmt_date(result.project_start)} - {fmt_date(result.project_end)})"
    if config.status_date:
        title += f"  status {fmt_date(config.status_date)}"
    table = Table(title=title)
    for col in ("ID", "Name", "Dur", "Start", "Finish", "Late Start", "Late Finish", "TF", "%", "Planned %", "Flags"):
        table.add_column(col)

    for a, r in rows:
        flags = _flags(a, r)
        if a.is_summary:
            style = "bold"
        elif "BEHIND" in flags:
            style = "bold red"
        elif "CRITICAL" in flags:
            style = "bold yellow"
        else:
            style = None
        table.add_row(
            a.id,
            "  " * a.level + r.name,
            f"{r.dur:g}",
            fmt_date(r.es),
            fmt_date(r.ef),
            fmt_date(r.ls),
            fmt_date(r.lf),
            str(r.tf),
            f"{r.pct:.1f}",
            f"{r.planned_pct:.1f}",
            " | ".join(flags) or "-",
            style=style,
        )
    console.print(table)


@app.command("critical-path")
def critical_path() -> None:
    """Display only the critical activities."""
    try:
        _, _, result = _load_schedule()
    except GanttCpmError as e:
        raise _fail(e)

    crit = result.critical()
    if not crit:
        console.print("No critical path found.")
        return
    crit.sort(key=lambda pair: pair[1].es)

    table = Table(title="Critical Path")
    for col in ("ID", "Name", "Dur", "TF", "Start", "Finish"):
        table.add_column(col)
    for a, r in crit:
        table.add_row(a.id, r.name, f"{r.dur:g}", str(r.tf), fmt_date(r.es), fmt_date(r.ef))
    console.print(table)
    console.print(f"\n{len(crit)} critical activities, project finishes {fmt_date(result.project_end)}")


@app.command()
def trace(
    activity_id: str,
    direction: Annotated[str, typer.Option(help="bwd, fwd or both")] = "both",
) -> None:
    """List the activities chained to one activity through its links."""
    store = _get_store()
    try:
        _, activities = store.load()
    except GanttCpmError as e:
        raise _fail(e)
    if direction not in ("bwd", "fwd", "both"):
        console.print(f"[red]Invalid direction '{direction}'. Use: bwd, fwd, both[/red]")
        raise typer.Exit(1)
    chain = trace_chain(activities, activity_id, direction)
    if not chain:
        console.print(f"[red]Activity {activity_id} not found.[/red]")
        raise typer.Exit(1)
    for a in activities:
        if a.id in chain:
            marker = "*" if a.id == activity_id else " "
            console.print(f"{marker} {a.id}  {a.name}")


@app.command("float-paths")
def float_paths(
    end: Annotated[Optional[str], typer.Option(help="End activity (default: latest finish)")] = None,
    mode: Annotated[str, typer.Option(help="totalFloat or freeFloat")] = "totalFloat",
    max_paths: Annotated[int, typer.Option("--max", help="Number of paths to trace")] = 10,
) -> None:
    """Number driving paths back from the end activity."""
    try:
        _, activities, result = _load_schedule()
        paths = calc_multiple_float_paths(result, end, mode, max_paths)
    except (GanttCpmError, ValueError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1)

    table = Table(title=f"Float paths from {paths.end_activity_id}")
    for col in ("Path", "ID", "Name", "Driving Pred", "Rel. Float", "Free Float", "TF"):
        table.add_column(col)
    assigned = [a for a in activities if a.id in paths.paths and paths[a.id].float_path is not None]
    assigned.sort(key=lambda a: (paths[a.id].float_path, result[a.id].es))
    for a in assigned:
        info = paths[a.id]
        table.add_row(
            str(info.float_path),
            a.id,
            a.name,
            info.driving_pred_id or "-",
            "-" if info.rel_float is None else f"{info.rel_float:g}",
            f"{info.free_float:g}",
            str(result[a.id].tf),
        )
    console.print(table)


@app.command()
def usage(
    activity_id: str,
    mode: Annotated[UsageMode, typer.Option(help="Distribution mode")] = UsageMode.WORK,
    resource: Annotated[Optional[str], typer.Option(help="Restrict to one resource id")] = None,
) -> None:
    """Show the day-by-day work distribution of one activity."""
    try:
        config, activities, result = _load_schedule()
        a = _find(activities, activity_id)
    except GanttCpmError as e:
        raise _fail(e)

    values = get_usage_daily_values(
        a,
        result[a.id],
        mode,
        default_calendar=config.default_calendar,
        resource_id=resource,
        baseline_index=config.active_baseline,
        status_date=config.status_date,
        progress_history=config.progress_history,
        calendars=CalendarRegistry(config.custom_calendars),
    )
    if not values:
        console.print("No work to distribute.")
        return
    table = Table(title=f"{a.id} {a.name}: {mode.value}")
    table.add_column("Day")
    table.add_column("Work", justify="right")
    for day in sorted(values):
        table.add_row(day.strftime("%a %d-%m-%y"), f"{values[day]:.2f}")
    console.print(table)
