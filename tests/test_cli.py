import csv
import json

import pytest
from typer.testing import CliRunner

from gantt_cpm.cli import app, console
from gantt_cpm.persistence import DB_ENV_VAR

runner = CliRunner()


@pytest.fixture(autouse=True)
def workspace(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(DB_ENV_VAR, raising=False)
    monkeypatch.setattr(console, "width", 200)
    return tmp_path


def _csv_rows(path):
    with open(path, newline="") as f:
        return {row["ID"]: row for row in csv.DictReader(f)}


def _seed():
    runner.invoke(app, ["init", "--start", "2026-03-02", "--calendar", "5", "--name", "Depot"])
    runner.invoke(app, ["add", "Design", "-d", "5", "--work", "10"])
    runner.invoke(app, ["add", "Build", "-d", "3", "--pred", "A-1"])


def test_requires_init():
    result = runner.invoke(app, ["schedule"])
    assert result.exit_code == 1
    assert "No project config" in result.stdout


def test_schedule_table():
    _seed()
    result = runner.invoke(app, ["schedule"])
    assert result.exit_code == 0, result.stdout
    assert "Depot" in result.stdout
    assert "Design" in result.stdout
    assert "Build" in result.stdout
    assert "CRITICAL" in result.stdout


def test_status_date_reprograms_schedule(workspace):
    _seed()
    runner.invoke(app, ["schedule", "--csv", "before.csv"])
    before = _csv_rows(workspace / "before.csv")
    assert before["A-1"]["EF"] == "2026-03-09"
    assert before["A-2"]["ES"] == "2026-03-09"
    assert before["A-2"]["Critical"] == "yes"

    result = runner.invoke(app, ["status-date", "2026-03-04"])
    assert result.exit_code == 0, result.stdout
    result = runner.invoke(app, ["progress", "A-1", "--pct", "60"])
    assert result.exit_code == 0, result.stdout

    runner.invoke(app, ["schedule", "--csv", "after.csv"])
    after = _csv_rows(workspace / "after.csv")
    assert after["A-1"]["EF"] == "2026-03-07"
    assert after["A-1"]["Pct"] == "60.0"

    saved = json.loads((workspace / "schedule.json").read_text())
    assert saved["config"]["progress_history"] == [{"date": "2026-03-04", "details": {"A-1": 60.0}}]


def test_link_rejects_cycle(workspace):
    _seed()
    result = runner.invoke(app, ["link", "A-1", "A-2"])
    assert result.exit_code == 1
    assert "Circular dependency" in result.stdout
    saved = json.loads((workspace / "schedule.json").read_text())
    assert saved["activities"][0]["preds"] == []


def test_link_unlink_and_delete(workspace):
    _seed()
    runner.invoke(app, ["add", "Commission", "-d", "1"])
    result = runner.invoke(app, ["link", "A-3", "A-2", "--type", "SS", "--lag", "2"])
    assert result.exit_code == 0, result.stdout
    saved = json.loads((workspace / "schedule.json").read_text())
    assert saved["activities"][2]["preds"] == [{"id": "A-2", "type": "SS", "lag": 2.0}]

    runner.invoke(app, ["unlink", "A-3", "A-2"])
    runner.invoke(app, ["delete", "A-1"])
    saved = json.loads((workspace / "schedule.json").read_text())
    assert [a["id"] for a in saved["activities"]] == ["A-2", "A-3"]
    assert all(a["preds"] == [] for a in saved["activities"])


def test_add_rejects_unknown_predecessor():
    _seed()
    result = runner.invoke(app, ["add", "Ghost", "--pred", "A-9"])
    assert result.exit_code == 1
    assert "A-9 not found" in result.stdout


def test_trace_and_critical_path():
    _seed()
    result = runner.invoke(app, ["trace", "A-2", "--direction", "bwd"])
    assert result.exit_code == 0
    assert "A-1" in result.stdout

    result = runner.invoke(app, ["critical-path"])
    assert "Critical Path" in result.stdout
    assert "2 critical activities" in result.stdout


def test_float_paths_baseline_and_usage(workspace):
    _seed()
    result = runner.invoke(app, ["float-paths"])
    assert result.exit_code == 0, result.stdout
    assert "Float paths from A-2" in result.stdout

    result = runner.invoke(app, ["baseline", "--name", "Plan"])
    assert "Saved baseline 0 for 2 activities" in result.stdout
    saved = json.loads((workspace / "schedule.json").read_text())
    assert saved["activities"][0]["baselines"][0]["name"] == "Plan"

    result = runner.invoke(app, ["usage", "A-1"])
    assert result.exit_code == 0, result.stdout
    assert "2.00" in result.stdout


def test_db_option(workspace):
    runner.invoke(app, ["--db", "other.json", "init", "--start", "2026-03-02"])
    assert (workspace / "other.json").exists()
    assert not (workspace / "schedule.json").exists()


@pytest.mark.parametrize("args", [["status-date", "2026-03-04"], ["trace", "A-1"], ["schedule"]])
def test_corrupt_project_file(workspace, args):
    (workspace / "schedule.json").write_text("{not json")
    result = runner.invoke(app, args)
    assert result.exit_code == 1
    assert "Cannot read" in result.stdout
