import copy
from datetime import date

import pytest

from gantt_cpm.calendar import add_work_days
from gantt_cpm.exceptions import CircularDependencyError, ValidationError
from gantt_cpm.models import (
    Activity,
    ActivityType,
    BaselineEntry,
    ConstraintType,
    LinkType,
    PredecessorLink,
    ProjectConfig,
)
from gantt_cpm.scheduler import capture_baseline, recompute, recompute_project

MONDAY = date(2026, 3, 2)


def d(day: int) -> date:
    return date(2026, 3, day)


def fs(pred_id: str, lag: float = 0.0) -> PredecessorLink:
    return PredecessorLink(pred_id, LinkType.FS, lag)


def _two_task_chain(pct: float = 0.0) -> list[Activity]:
    return [
        Activity("A", "Design", dur=5, pct=pct),
        Activity("B", "Build", dur=3, preds=[fs("A")]),
    ]


def test_five_day_task_spans_a_calendar_week():
    result = recompute(_two_task_chain(), MONDAY, default_calendar=5)
    assert result["A"].es == MONDAY
    assert result["A"].ef == d(9)
    assert result["B"].es == result["A"].ef


def test_status_date_retains_remaining_work():
    # 60% of 5 days done, 2 days left from Wednesday
    result = recompute(_two_task_chain(pct=60), MONDAY, default_calendar=5, status_date=d(4))
    a, b = result["A"], result["B"]
    assert a.es == MONDAY
    assert a.rem_dur == 2
    assert a.done_dur == 3
    assert a.rem_es == d(4)
    assert a.ef == d(7)
    assert b.es >= a.ef
    # unstarted work only ever moves later
    assert b.es == d(9)


def test_status_date_pushes_successor_when_remaining_work_grows():
    result = recompute(_two_task_chain(pct=20), MONDAY, default_calendar=5, status_date=d(4))
    assert result["A"].ef == d(10)
    assert result["B"].es == d(10)
    assert result["B"].ef == d(14)


def test_status_date_moves_unstarted_work_off_the_past():
    acts = [Activity("A", "Late start", dur=2)]
    result = recompute(acts, MONDAY, default_calendar=7, status_date=d(5))
    assert result["A"].es == d(5)
    assert result["A"].ef == d(7)


def test_completed_activity_keeps_actual_dates():
    acts = [
        Activity("A", "Survey", dur=5, pct=100, actual_start=MONDAY, actual_finish=d(4)),
        Activity("B", "Report", dur=2, preds=[fs("A")]),
    ]
    result = recompute(acts, MONDAY, default_calendar=7, status_date=d(10))
    assert result["A"].ef == d(5)
    assert result["A"].dur == 3
    assert result["B"].es == d(10)


def test_started_activity_anchors_on_actual_start():
    acts = [Activity("A", "Early bird", dur=3, pct=10, actual_start=date(2026, 2, 27))]
    result = recompute(acts, MONDAY, default_calendar=7)
    assert result["A"].es == date(2026, 2, 27)
    assert result["A"].ef == d(2)


def test_link_types_are_satisfied():
    acts = [
        Activity("A", "Base", dur=4),
        Activity("FS", "fs", dur=2, preds=[fs("A", 3)]),
        Activity("SS", "ss", dur=2, preds=[PredecessorLink("A", LinkType.SS, 1)]),
        Activity("FF", "ff", dur=2, preds=[PredecessorLink("A", LinkType.FF)]),
        Activity("SF", "sf", dur=2, preds=[PredecessorLink("A", LinkType.SF, 3)]),
    ]
    result = recompute(acts, MONDAY, default_calendar=7)
    a = result["A"]
    assert result["FS"].es == d(9)
    assert result["SS"].es == d(3)
    assert result["FF"].ef == a.ef
    assert result["SF"].ef == d(5)


def test_fs_dependency_satisfaction_on_a_network():
    acts = [
        Activity("A", "a", dur=3),
        Activity("B", "b", dur=4, preds=[fs("A", 2)]),
        Activity("C", "c", dur=1, preds=[fs("A")]),
        Activity("D", "d", dur=2, preds=[fs("B"), fs("C", 1)]),
    ]
    result = recompute(acts, MONDAY, default_calendar=6)
    for a in acts:
        for link in a.preds:
            assert result[a.id].es >= add_work_days(result[link.id].ef, link.lag, 6)


def test_missing_predecessor_is_ignored():
    acts = [Activity("A", "Orphan", dur=2, preds=[fs("nope")])]
    result = recompute(acts, MONDAY, default_calendar=7)
    assert result["A"].es == MONDAY


def test_cycle_raises():
    acts = [
        Activity("A", "a", preds=[fs("B")]),
        Activity("B", "b", preds=[fs("A")]),
    ]
    with pytest.raises(CircularDependencyError) as exc:
        recompute(acts, MONDAY)
    assert set(exc.value.cycle) == {"A", "B"}
    assert "Circular dependency" in str(exc.value)


def test_duplicate_ids_raise():
    with pytest.raises(ValidationError):
        recompute([Activity("A", "a"), Activity("A", "again")], MONDAY)


def test_constraints():
    acts = [
        Activity("P", "Prep", dur=4),
        Activity("SNET", "snet", dur=2, constraint=ConstraintType.SNET, constraint_date=d(5)),
        Activity("MSO", "mso", dur=2, preds=[fs("P")], constraint=ConstraintType.MSO, constraint_date=d(4)),
        Activity("MFO", "mfo", dur=3, constraint=ConstraintType.MFO, constraint_date=d(10)),
        Activity("FNET", "fnet", dur=2, constraint=ConstraintType.FNET, constraint_date=d(10)),
        Activity("MAN", "manual", dur=1, preds=[fs("P")], manual=True, constraint_date=d(3)),
    ]
    result = recompute(acts, MONDAY, default_calendar=7)
    assert result["SNET"].es == d(5)
    assert result["MSO"].es == d(4)
    assert result["MFO"].ef == d(11)
    assert result["FNET"].es == d(9)
    assert result["MAN"].es == d(3)


def test_finish_no_later_than_caps_late_finish():
    acts = [
        Activity("A", "Tight", dur=2, constraint=ConstraintType.FNLT, constraint_date=d(3)),
        Activity("B", "Long", dur=10),
    ]
    result = recompute(acts, MONDAY, default_calendar=7)
    assert result["A"].lf == d(4)
    assert result["A"].tf == 0
    assert result["A"].crit


def test_negative_float_is_clamped_but_kept_signed():
    acts = [
        Activity("A", "Overdue", dur=2, constraint=ConstraintType.FNLT, constraint_date=d(2)),
        Activity("B", "Long", dur=10),
    ]
    result = recompute(acts, MONDAY, default_calendar=7)
    assert result["A"].raw_tf == -1
    assert result["A"].tf == 0
    assert result["A"].has_negative_float


def test_straight_chain_is_critical():
    acts = [
        Activity("A", "a", dur=3),
        Activity("B", "b", dur=2, preds=[fs("A")]),
        Activity("C", "c", dur=4, preds=[fs("B")]),
        Activity("X", "side", dur=1),
    ]
    result = recompute(acts, MONDAY, default_calendar=7)
    assert all(result[i].crit for i in "ABC")
    assert result["C"].ef == d(11)
    assert result["X"].tf == 8
    assert not result["X"].crit
    assert [a.id for a, _ in result.critical()] == ["A", "B", "C"]


def test_forward_backward_consistency():
    acts = [
        Activity("A", "a", dur=3),
        Activity("B", "b", dur=5, preds=[fs("A")]),
        Activity("C", "c", dur=2, preds=[PredecessorLink("A", LinkType.SS, 1)]),
        Activity("D", "d", dur=1, preds=[fs("B"), PredecessorLink("C", LinkType.FF, 2)]),
        Activity("E", "e", dur=2, preds=[PredecessorLink("C", LinkType.SF, 4)]),
        Activity("M", "done", type=ActivityType.MILESTONE, dur=0, preds=[fs("D"), fs("E")]),
    ]
    result = recompute(acts, MONDAY, default_calendar=7)
    for a, rec in result:
        assert rec.es <= rec.ls
        assert rec.ef <= rec.lf
        assert rec.tf >= 0
        assert rec.tf == (rec.ls - rec.es).days


def test_recompute_is_pure_and_idempotent():
    acts = _two_task_chain(pct=60)
    before = copy.deepcopy(acts)
    r1 = recompute(acts, MONDAY, default_calendar=5, status_date=d(4))
    r2 = recompute(acts, MONDAY, default_calendar=5, status_date=d(4))
    assert acts == before
    assert r1.records == r2.records
    assert r1.project_end == r2.project_end


def test_empty_schedule_defaults():
    result = recompute([], MONDAY)
    assert result.project_end == MONDAY
    assert result.total_days == 90
    assert result.project_days == 90


def test_timeline_spans():
    result = recompute([Activity("A", "a", dur=10)], MONDAY, default_calendar=7)
    assert result.project_days == 30
    assert result.total_days == 100


def test_suspend_and_resume_split_the_bar():
    acts = [Activity("A", "Pour", dur=6, suspend_date=d(4), resume_date=d(9))]
    result = recompute(acts, MONDAY, default_calendar=7)
    rec = result["A"]
    assert rec.done_dur == 2
    assert rec.rem_dur == 4
    assert rec.is_split
    assert rec.rem_es == d(9)
    assert rec.ef == d(13)


def test_suspend_without_resume_ends_the_bar():
    acts = [Activity("A", "Pour", dur=6, suspend_date=d(4))]
    result = recompute(acts, MONDAY, default_calendar=7)
    assert result["A"].ef == d(4)
    assert not result["A"].is_split


def test_recompute_project_uses_config():
    config = ProjectConfig(start_date=MONDAY, name="Depot", default_calendar=5)
    acts = [Activity("P", "", is_project_row=True), Activity("A", "a", dur=5, level=1)]
    result = recompute_project(config, acts)
    assert result["P"].name == "Depot"
    assert result["A"].ef == d(9)


def test_capture_baseline_copies_schedule():
    acts = _two_task_chain()
    result = recompute(acts, MONDAY, default_calendar=5)
    snapshot = capture_baseline(result, 2, description="signed off", status_date=d(2))
    assert acts[0].baselines == []
    bl = snapshot[1].baseline(2)
    assert isinstance(bl, BaselineEntry)
    assert bl.es == d(9)
    assert bl.cal == 5
    assert bl.name == "Baseline 2"
    assert bl.description == "signed off"
    assert bl.status_date == d(2)
    assert snapshot[1].baseline(0) is None


def test_completed_milestone_sits_on_its_actual_finish():
    acts = [
        Activity("S", "Phase", type=ActivityType.SUMMARY),
        Activity("A", "Inspect", dur=3, level=1),
        Activity(
            "M", "Signed off", type=ActivityType.MILESTONE, dur=0, level=1, pct=100,
            actual_start=d(5), actual_finish=d(5), preds=[fs("A")],
        ),
    ]
    result = recompute(acts, MONDAY, default_calendar=7)
    assert result["M"].es == d(5)
    assert result["M"].ef == result["M"].es
    assert result.project_end == d(6)
    assert result["S"].ef == d(6)


def test_resume_before_suspend_is_ignored():
    acts = [Activity("A", "Pour", dur=6, suspend_date=d(4), resume_date=d(3))]
    result = recompute(acts, MONDAY, default_calendar=7)
    rec = result["A"]
    assert rec.ef == d(8)
    assert rec.done_dur is None
    assert rec.actual_end is None
    assert not rec.is_split
