import json
from datetime import date

import pytest
from rich.console import Console

from ofreport.commands.flagged_command import handle_flagged
from ofreport.omnifocus_api.data_models import Database, Project, Task, TaskStatus
from ofreport.report.flagged_analysis import analyze_flagged, is_overdue, recommendations

TODAY = date(2025, 6, 1)


@pytest.fixture
def flagged_db():
    inbox_task = Task(id="t5", name="Call mom", status=TaskStatus.NEXT, flagged=True)
    return Database(
        version="test",
        timestamp="2025-06-01T00:00:00Z",
        projects={
            "p1": Project(id="p1", name="Home", flagged=True),
            "p2": Project(id="p2", name="Work"),
        },
        tasks=[
            Task(id="t1", name="Buy milk", status="Next", project_id="p1", due_date="2025-05-30", flagged=True),
            Task(
                id="t2",
                name="Plan trip",
                status="Available",
                project_id="p1",
                due_date="2025-06-01T17:00:00Z",
                child_ids=["t3"],
                flagged=True,
            ),
            Task(id="t3", name="Book hotel", status="Available", project_id="p1", parent_id="t2"),
            Task(id="t4", name="Old", status="Completed", project_id="p2", due_date="2025-05-01", flagged=True),
            inbox_task,
            Task(id="t6", name="Stray", status="Blocked", project_id="gone", flagged=True),
        ],
        inbox_tasks=[inbox_task],
    )


def _ids(tasks):
    return [t.id for t in tasks]


def test_buckets(flagged_db):
    analysis = analyze_flagged(flagged_db, TODAY)

    assert _ids(analysis.tasks) == ["t1", "t2", "t4", "t5", "t6"]
    assert [p.id for p in analysis.projects] == ["p1"]
    assert _ids(analysis.completed) == ["t4"]
    assert _ids(analysis.actionable) == ["t1", "t5"]
    assert _ids(analysis.overdue) == ["t1"]
    assert _ids(analysis.due_today) == ["t2"]
    assert _ids(analysis.inbox) == ["t5", "t6"]
    assert _ids(analysis.parents) == ["t2"]


def test_summary_counts(flagged_db):
    assert analyze_flagged(flagged_db, TODAY).summary() == {
        "totalFlaggedTasks": 5,
        "totalFlaggedProjects": 1,
        "completedFlaggedTasks": 1,
        "activeFlaggedTasks": 4,
        "actionableNextActions": 2,
        "overdueItems": 1,
        "dueTodayItems": 1,
        "flaggedParents": 1,
        "inboxItems": 2,
    }


def test_recommendations(flagged_db):
    assert recommendations(analyze_flagged(flagged_db, TODAY)) == [
        "Unflag 1 parent tasks - flag their next actions instead",
        "Process 2 flagged inbox items - organize into projects",
        "Address 1 overdue flagged items - reschedule or complete",
        "Focus on 2 actionable next actions",
        "Review 1 completed flagged items - clear their flags",
    ]


def test_nothing_flagged():
    db = Database(version="test", timestamp="t", tasks=[Task(id="t1", name="Plain", status="Next")])
    analysis = analyze_flagged(db, TODAY)
    assert analysis.summary()["totalFlaggedTasks"] == 0
    assert recommendations(analysis) == []


def test_overdue_rules():
    assert is_overdue(Task(id="a", name="a", status="Overdue"), TODAY)
    assert not is_overdue(Task(id="b", name="b", due_date="2025-06-01"), TODAY)
    assert not is_overdue(Task(id="c", name="c", status="Completed", due_date="2025-01-01"), TODAY)


def test_to_dict(flagged_db):
    data = analyze_flagged(flagged_db, TODAY).to_dict()
    assert data["analysisDate"] == "2025-06-01"
    assert data["flaggedProjects"] == ["p1"]
    assert data["buckets"]["overdue"] == ["t1"]
    assert data["recommendations"][-1].startswith("Review 1 completed")


def test_handle_flagged_from_file(write_json, flat_payload, tmp_path):
    flat_payload["tasks"][0]["flagged"] = True
    console = Console(record=True, width=100)
    output = tmp_path / "out" / "flagged.json"

    analysis = handle_flagged(write_json(flat_payload), output=str(output), console=console, today=TODAY)
    text = console.export_text()

    assert "Flagged Items Analysis" in text
    assert "Flagged tasks" in text
    assert "Recommendations:" in text
    assert json.loads(output.read_text(encoding="utf-8"))["summary"] == analysis.summary()


def test_handle_flagged_without_flags(write_json, flat_payload):
    for task in flat_payload["tasks"]:
        task["flagged"] = False
    console = Console(record=True, width=100)

    handle_flagged(write_json(flat_payload), console=console, today=TODAY)

    assert "Nothing to review." in console.export_text()
