"""Activity model, links, baselines and project settings."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import date


class ActivityType(enum.StrEnum):
    TASK = "task"
    MILESTONE = "milestone"
    SUMMARY = "summary"


class LinkType(enum.StrEnum):
    FS = "FS"
    SS = "SS"
    FF = "FF"
    SF = "SF"


class ConstraintType(enum.StrEnum):
    NONE = ""
    SNET = "SNET"  # start no earlier than
    SNLT = "SNLT"  # start no later than
    MSO = "MSO"  # must start on
    MFO = "MFO"  # must finish on
    FNET = "FNET"  # finish no earlier than
    FNLT = "FNLT"  # finish no later than


# 5, 6 or 7 working days per week, or the id of a CustomCalendar
CalendarRef = int | str


def _date_or_none(value: str | None) -> date | None:
    return date.fromisoformat(value) if value else None


def _iso_or_none(value: date | None) -> str | None:
    return value.isoformat() if value else None


def _calendar_from_raw(value) -> CalendarRef:
    if isinstance(value, str) and value.isdigit():
        return int(value)
    return value


@dataclass
class PredecessorLink:
    """Dependency on another activity."""

    id: str
    type: LinkType = LinkType.FS
    lag: float = 0.0  # work days, may be negative

    def to_dict(self) -> dict:
        return {"id": self.id, "type": self.type.value, "lag": self.lag}

    @classmethod
    def from_dict(cls, d: dict) -> PredecessorLink:
        return cls(id=str(d["id"]), type=LinkType(d.get("type", "FS")), lag=d.get("lag", 0.0) or 0.0)


@dataclass
class ResourceAssignment:
    """Resource assigned to an activity. Recorded only, never leveled."""

    rid: str
    name: str
    work: float = 0.0
    units: str = "100%"

    def to_dict(self) -> dict:
        return {"rid": self.rid, "name": self.name, "work": self.work, "units": self.units}

    @classmethod
    def from_dict(cls, d: dict) -> ResourceAssignment:
        return cls(
            rid=str(d["rid"]),
            name=d.get("name", ""),
            work=d.get("work", 0.0),
            units=d.get("units", "100%"),
        )


@dataclass
class BaselineEntry:
    """A saved snapshot of one activity's plan and progress."""

    dur: float
    es: date | None
    ef: date | None
    cal: CalendarRef
    pct: float = 0.0
    status_date: date | None = None
    work: float = 0.0
    weight: float | None = None
    name: str = ""
    description: str = ""
    saved_at: str | None = None

    def to_dict(self) -> dict:
        return {
            "dur": self.dur,
            "es": _iso_or_none(self.es),
            "ef": _iso_or_none(self.ef),
            "cal": self.cal,
            "pct": self.pct,
            "status_date": _iso_or_none(self.status_date),
            "work": self.work,
            "weight": self.weight,
            "name": self.name,
            "description": self.description,
            "saved_at": self.saved_at,
        }

    @classmethod
    def from_dict(cls, d: dict) -> BaselineEntry:
        return cls(
            dur=d.get("dur", 0.0),
            es=_date_or_none(d.get("es")),
            ef=_date_or_none(d.get("ef")),
            cal=_calendar_from_raw(d.get("cal", 6)),
            pct=d.get("pct", 0.0) or 0.0,
            status_date=_date_or_none(d.get("status_date")),
            work=d.get("work", 0.0) or 0.0,
            weight=d.get("weight"),
            name=d.get("name", ""),
            description=d.get("description", ""),
            saved_at=d.get("saved_at"),
        )


@dataclass
class CustomCalendar:
    """User-defined working calendar.

    ``work_days`` and ``hours_per_day`` are indexed by ``date.weekday()``
    (0 = Monday ... 6 = Sunday).
    """

    id: str
    name: str
    work_days: list[bool] = field(default_factory=lambda: [True] * 5 + [False] * 2)
    hours_per_day: list[float] = field(default_factory=lambda: [8.0] * 5 + [0.0] * 2)
    exceptions: list[date] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "work_days": self.work_days,
            "hours_per_day": self.hours_per_day,
            "exceptions": [d.isoformat() for d in self.exceptions],
        }

    @classmethod
    def from_dict(cls, d: dict) -> CustomCalendar:
        return cls(
            id=d["id"],
            name=d.get("name", d["id"]),
            work_days=d.get("work_days", [True] * 5 + [False] * 2),
            hours_per_day=d.get("hours_per_day", [8.0] * 5 + [0.0] * 2),
            exceptions=[date.fromisoformat(x) for x in d.get("exceptions", [])],
        )


@dataclass
class Activity:
    """One row of the WBS outline.

    List order is WBS order: a summary's children are the rows right after
    it with a greater ``level``. Only planning and progress inputs live
    here; computed dates are returned separately by the scheduler.
    """

    id: str
    name: str
    type: ActivityType = ActivityType.TASK
    dur: float = 5.0
    cal: CalendarRef | None = None  # None -> project default calendar
    level: int = 0
    preds: list[PredecessorLink] = field(default_factory=list)
    constraint: ConstraintType = ConstraintType.NONE
    constraint_date: date | None = None
    manual: bool = False
    pct: float = 0.0
    rem_dur: float | None = None
    actual_start: date | None = None
    actual_finish: date | None = None
    suspend_date: date | None = None
    resume_date: date | None = None
    work: float = 0.0
    weight: float | None = None
    resources: list[ResourceAssignment] = field(default_factory=list)
    baselines: list[BaselineEntry | None] = field(default_factory=list)
    is_project_row: bool = False
    notes: str | None = None

    @property
    def is_summary(self) -> bool:
        return self.type == ActivityType.SUMMARY or self.is_project_row

    @property
    def is_milestone(self) -> bool:
        return self.type == ActivityType.MILESTONE

    def baseline(self, index: int) -> BaselineEntry | None:
        if 0 <= index < len(self.baselines):
            return self.baselines[index]
        return None

    def to_dict(self) -> dict:
        d = {
            "id": self.id,
            "name": self.name,
            "type": self.type.value,
            "dur": self.dur,
            "cal": self.cal,
            "level": self.level,
            "preds": [p.to_dict() for p in self.preds],
            "constraint": self.constraint.value,
            "constraint_date": _iso_or_none(self.constraint_date),
            "manual": self.manual,
            "pct": self.pct,
            "rem_dur": self.rem_dur,
            "actual_start": _iso_or_none(self.actual_start),
            "actual_finish": _iso_or_none(self.actual_finish),
            "suspend_date": _iso_or_none(self.suspend_date),
            "resume_date": _iso_or_none(self.resume_date),
            "work": self.work,
            "weight": self.weight,
            "resources": [r.to_dict() for r in self.resources],
            "baselines": [b.to_dict() if b else None for b in self.baselines],
            "is_project_row": self.is_project_row,
        }
        if self.notes is not None:
            d["notes"] = self.notes
        return d

    @classmethod
    def from_dict(cls, d: dict) -> Activity:
        cal = d.get("cal")
        return cls(
            id=str(d["id"]),
            name=d.get("name", ""),
            type=ActivityType(d.get("type", "task")),
            dur=d.get("dur", 5.0),
            cal=_calendar_from_raw(cal) if cal is not None else None,
            level=d.get("level", 0),
            preds=[PredecessorLink.from_dict(p) for p in d.get("preds", [])],
            constraint=ConstraintType(d.get("constraint", "") or ""),
            constraint_date=_date_or_none(d.get("constraint_date")),
            manual=d.get("manual", False),
            pct=d.get("pct", 0.0) or 0.0,
            rem_dur=d.get("rem_dur"),
            actual_start=_date_or_none(d.get("actual_start")),
            actual_finish=_date_or_none(d.get("actual_finish")),
            suspend_date=_date_or_none(d.get("suspend_date")),
            resume_date=_date_or_none(d.get("resume_date")),
            work=d.get("work", 0.0) or 0.0,
            weight=d.get("weight"),
            resources=[ResourceAssignment.from_dict(r) for r in d.get("resources", [])],
            baselines=[BaselineEntry.from_dict(b) if b else None for b in d.get("baselines", [])],
            is_project_row=d.get("is_project_row", False),
            notes=d.get("notes"),
        )


@dataclass
class ProgressRecord:
    """Percent complete per activity as recorded on one date."""

    date: date
    details: dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"date": self.date.isoformat(), "details": self.details}

    @classmethod
    def from_dict(cls, d: dict) -> ProgressRecord:
        return cls(date=date.fromisoformat(d["date"]), details=d.get("details", {}))


@dataclass
class ProjectConfig:
    """Project-level settings stored alongside activities."""

    start_date: date
    name: str = "My Project"
    default_calendar: CalendarRef = 6
    status_date: date | None = None
    active_baseline: int = 0
    custom_calendars: list[CustomCalendar] = field(default_factory=list)
    progress_history: list[ProgressRecord] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "start_date": self.start_date.isoformat(),
            "name": self.name,
            "default_calendar": self.default_calendar,
            "status_date": _iso_or_none(self.status_date),
            "active_baseline": self.active_baseline,
            "custom_calendars": [c.to_dict() for c in self.custom_calendars],
            "progress_history": [p.to_dict() for p in self.progress_history],
        }

    @classmethod
    def from_dict(cls, d: dict) -> ProjectConfig:
        return cls(
            start_date=date.fromisoformat(d["start_date"]),
            name=d.get("name", "My Project"),
            default_calendar=_calendar_from_raw(d.get("default_calendar", 6)),
            status_date=_date_or_none(d.get("status_date")),
            active_baseline=d.get("active_baseline", 0),
            custom_calendars=[CustomCalendar.from_dict(c) for c in d.get("custom_calendars", [])],
            progress_history=[ProgressRecord.from_dict(p) for p in d.get("progress_history", [])],
        )
