import json
from datetime import date

import pytest

from gantt_cpm import mcp_server
from gantt_cpm.models import ProjectConfig
from gantt_cpm.persistence import DB_ENV_VAR, Store


@pytest.fixture(autouse=True)
def workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(DB_ENV_VAR, raising=False)
    return tmp_path


def _init():
    Store().save(ProjectConfig(start_date=date(2026, 3, 2), default_calendar=5), [])


def test_tools_require_project():
    assert mcp_server.get_schedule().startswith("Error")


def test_schedule_round_trip():
    _init()
    assert mcp_server.add_activity("Design", duration=5, work=10) == "Added 'Design' as A-1"
    assert mcp_server.add_activity("Build", duration=3, predecessors=["A-1"]) == "Added 'Build' as A-2"
    assert mcp_server.add_activity("Ghost", predecessors=["A-7"]).startswith("Error")

    schedule = json.loads(mcp_server.get_schedule())
    rows = {r["id"]: r for r in schedule["activities"]}
    assert rows["A-2"]["es"] == "2026-03-09"
    assert schedule["project_end"] == "2026-03-13"

    crit = json.loads(mcp_server.get_critical_path())
    assert [c["id"] for c in crit] == ["A-1", "A-2"]


def test_progress_status_and_baseline():
    _init()
    mcp_server.add_activity("Design", duration=5, work=10)
    assert mcp_server.set_status_date("2026-03-04") == "Status date set to 2026-03-04."
    assert mcp_server.update_progress("A-1", pct=60) == "A-1: 60% complete."
    assert mcp_server.update_progress("A-1", pct=160).startswith("Error")

    rows = json.loads(mcp_server.get_schedule())["activities"]
    assert rows[0]["ef"] == "2026-03-07"

    assert mcp_server.save_baseline(1, name="Plan") == "Saved baseline 1 for 1 activities."
    config, activities = Store().load()
    assert config.active_baseline == 1
    assert activities[0].baseline(1).name == "Plan"

    usage = json.loads(mcp_server.get_usage("A-1", mode="actual"))
    assert sum(usage.values()) == pytest.approx(6.0)
    assert mcp_server.set_status_date() == "Status date cleared."


def test_corrupt_project_file(workspace):
    (workspace / "schedule.json").write_text("{not json")
    assert mcp_server.update_progress("A-1", pct=50).startswith("Error: Cannot read")
    assert mcp_server.set_status_date("2026-03-04").startswith("Error: Cannot read")
    assert mcp_server.add_activity("Design").startswith("Error: Cannot read")
    assert mcp_server.get_schedule().startswith("Error: Cannot read")
