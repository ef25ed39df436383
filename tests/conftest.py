"""Pytest configuration and fixtures for ofreport tests."""

import json
import subprocess
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pytest

from ofreport.omnifocus_api.normalizer import counter_id_factory

FIXED_NOW = datetime(2025, 6, 1, 12, 30, 45, 123456, tzinfo=timezone.utc)


@pytest.fixture
def id_factory():
    """Deterministic ids: ``generated-task-id-1``, ``invalid-task-2``, ..."""
    return counter_id_factory()


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def filtered_payload():
    """The next-actions shape: a filtered plugin export with one project."""
    return {
        "version": "omni-js-filtered-1.2",
        "criteriaUsed": {"type": "next_actions", "hideCompleted": True},
        "timestamp": "2025-06-01T08:00:00Z",
        "projects": {
            "p1": {
                "id": "p1",
                "name": "Home",
                "status": "Active",
                "tasks": [
                    {
                        "id": "t1",
                        "name": "Buy milk",
                        "taskStatus": "Next",
                        "flagged": True,
                        "estimatedMinutes": 15,
                        "tags": [{"id": "g1", "name": "errand"}],
                    }
                ],
            }
        },
    }


@pytest.fixture
def legacy_payload():
    """The full dump shape with folders and projects nested under ``structure``."""
    return {
        "version": "1.0",
        "timestamp": "2025-06-01T09:00:00Z",
        "structure": {
            "topLevelFolders": [
                {
                    "type": "Folder",
                    "id": "f1",
                    "name": "Work",
                    "folders": [
                        {
                            "type": "Folder",
                            "id": "f2",
                            "name": "Clients",
                            "projects": [
                                {
                                    "id": "p2",
                                    "name": "Acme",
                                    "status": "Active",
                                    "tasks": [{"id": "t3", "name": "Send invoice", "taskStatus": "Available"}],
                                }
                            ],
                        }
                    ],
                    "projects": [
                        {
                            "id": "p1",
                            "name": "Launch",
                            "status": "Active",
                            "flagged": True,
                            "dueDate": "2025-06-03T17:00:00Z",
                            "tasks": [
                                {
                                    "id": "t1",
                                    "name": "Write brief",
                                    "taskStatus": "Next",
                                    "dueDate": "2025-06-02",
                                    "estimatedMinutes": 45,
                                    "children": [
                                        {"id": "t2", "name": "Collect numbers", "taskStatus": "Available"},
                                    ],
                                }
                            ],
                        }
                    ],
                }
            ],
            "topLevelProjects": [
                {"id": "p3", "name": "Errands", "status": "Active", "tasks": []},
            ],
        },
        "inboxItems": [
            {"id": "i1", "name": "Call plumber", "taskStatus": "Available"},
        ],
    }


@pytest.fixture
def flat_payload():
    """The plain export: id-keyed folders/projects/tags and a flat task list."""
    return {
        "version": "1.0",
        "timestamp": "2025-06-01T10:00:00Z",
        "folders": {
            "f1": {"id": "f1", "name": "Work", "parentFolderID": None},
            "f2": {"id": "f2", "name": "Clients", "parentFolderID": "f1"},
        },
        "projects": {
            "p1": {"id": "p1", "name": "Launch", "status": "Active", "folderID": "f1"},
            "p2": {"id": "p2", "name": "Acme", "status": "OnHold", "folderID": "f2"},
        },
        "tasks": [
            {
                "id": "t1",
                "name": "Write brief",
                "taskStatus": "Next",
                "projectID": "p1",
                "childIds": ["t2"],
                "tagIds": ["g1", "g2"],
            },
            {"id": "t2", "name": "Collect numbers", "taskStatus": "Available", "projectID": "p1", "parentID": "t1"},
            {"id": "t3", "name": "Send invoice", "taskStatus": "Blocked", "projectID": "p2"},
        ],
        "inboxTasks": [
            {"id": "i1", "name": "Call plumber", "taskStatus": "Available"},
        ],
        "tags": {
            "g1": {"id": "g1", "name": "office"},
            "g2": {"id": "g2", "name": "phone"},
        },
    }


@pytest.fixture
def write_json(tmp_path):
    """Write a payload to a temp file and return its path as ``str``."""

    def _write(payload, name="payload.json"):
        path = tmp_path / name
        path.write_text(json.dumps(payload), encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def mock_subprocess_success():
    """Mock subprocess.run so both the process check and osascript succeed."""
    with patch("subprocess.run") as mock_run:
        mock_run.return_value = MagicMock(returncode=0, stdout="OK\n", stderr="")
        yield mock_run


@pytest.fixture
def mock_subprocess_error():
    """Mock subprocess.run to simulate an osascript failure."""
    with patch("subprocess.run") as mock_run:
        mock_run.return_value = MagicMock(
            returncode=1,
            stdout="",
            stderr="execution error: OmniFocus got an error (-1728)",
        )
        yield mock_run


@pytest.fixture
def mock_subprocess_timeout():
    """Mock subprocess.run to simulate a timeout."""
    with patch("subprocess.run") as mock_run:
        mock_run.side_effect = subprocess.TimeoutExpired(cmd="osascript", timeout=30)
        yield mock_run
