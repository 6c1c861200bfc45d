from datetime import date

from gantt_cpm.models import (
    Activity,
    ActivityType,
    BaselineEntry,
    ConstraintType,
    CustomCalendar,
    LinkType,
    PredecessorLink,
    ProgressRecord,
    ProjectConfig,
    ResourceAssignment,
)


def test_activity_serialization():
    a = Activity(
        id="A-2",
        name="Build",
        dur=3.0,
        cal="4d",
        level=1,
        preds=[PredecessorLink("A-1", LinkType.SS, 2.0)],
        constraint=ConstraintType.SNET,
        constraint_date=date(2026, 3, 4),
        pct=40.0,
        actual_start=date(2026, 3, 3),
        resources=[ResourceAssignment(rid="R1", name="Crew", work=12.0)],
        baselines=[None, BaselineEntry(dur=3, es=date(2026, 3, 2), ef=date(2026, 3, 5), cal=5, pct=10)],
        notes="pour slab",
    )
    d = a.to_dict()
    assert d["preds"] == [{"id": "A-1", "type": "SS", "lag": 2.0}]
    assert d["constraint_date"] == "2026-03-04"
    assert d["baselines"][0] is None

    a2 = Activity.from_dict(d)
    assert a2 == a
    assert a2.baseline(1).pct == 10
    assert a2.baseline(0) is None
    assert a2.baseline(7) is None


def test_activity_from_minimal_dict():
    a = Activity.from_dict({"id": 7, "name": "Kickoff", "type": "milestone"})
    assert a.id == "7"
    assert a.is_milestone
    assert not a.is_summary
    assert a.cal is None
    assert a.constraint == ConstraintType.NONE


def test_project_row_counts_as_summary():
    assert Activity("P", "Project", is_project_row=True).is_summary
    assert Activity("S", "Phase", type=ActivityType.SUMMARY).is_summary


def test_project_config_serialization():
    config = ProjectConfig(
        start_date=date(2026, 3, 2),
        name="Depot",
        default_calendar=5,
        status_date=date(2026, 3, 4),
        custom_calendars=[CustomCalendar(id="night", name="Night shift", exceptions=[date(2026, 4, 3)])],
        progress_history=[ProgressRecord(date(2026, 3, 4), {"A-1": 60.0})],
    )
    d = config.to_dict()
    assert d["status_date"] == "2026-03-04"
    assert d["custom_calendars"][0]["exceptions"] == ["2026-04-03"]

    c2 = ProjectConfig.from_dict(d)
    assert c2 == config
    assert c2.progress_history[0].details["A-1"] == 60.0
