"""
Data models representing the canonical OmniFocus database (tasks, projects, etc.).

Attributes are snake_case in Python; the JSON export uses the camelCase names
the OmniJS plugin emits, so every model serializes by alias and accepts either
spelling on input.
"""
from __future__ import annotations

import json
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ProjectStatus(str, Enum):
    ACTIVE = "Active"
    ON_HOLD = "OnHold"
    DONE = "Done"
    DROPPED = "Dropped"
    UNKNOWN = "Unknown"


class TaskStatus(str, Enum):
    ACTIVE = "Active"
    COMPLETED = "Completed"
    DROPPED = "Dropped"
    DUE_SOON = "DueSoon"
    FLAGGED = "Flagged"
    NEXT = "Next"
    OVERDUE = "Overdue"
    BLOCKED = "Blocked"
    AVAILABLE = "Available"
    UNKNOWN = "Unknown"


class ReportMode(str, Enum):
    """Which export the OmniJS plugin is asked for."""
    FULL_DUMP = "full_dump"
    NEXT_ACTIONS = "next_actions"


def _status_key(value: str) -> str:
    return value.replace(" ", "").replace("_", "").replace("-", "").lower()


# AppleScript reports project states as "on hold" / "completed"; OmniJS uses the enum names.
_PROJECT_STATUS_LOOKUP = {_status_key(s.value): s for s in ProjectStatus}
_PROJECT_STATUS_LOOKUP["completed"] = ProjectStatus.DONE

_TASK_STATUS_LOOKUP = {_status_key(s.value): s for s in TaskStatus}


def coerce_project_status(value) -> ProjectStatus:
    if isinstance(value, ProjectStatus):
        return value
    if not isinstance(value, str):
        return ProjectStatus.UNKNOWN
    return _PROJECT_STATUS_LOOKUP.get(_status_key(value), ProjectStatus.UNKNOWN)


def coerce_task_status(value) -> TaskStatus:
    if isinstance(value, TaskStatus):
        return value
    if not isinstance(value, str):
        return TaskStatus.UNKNOWN
    return _TASK_STATUS_LOOKUP.get(_status_key(value), TaskStatus.UNKNOWN)


class _OmniModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Tag(_OmniModel):
    id: str
    name: str


class TaskTag(_OmniModel):
    task_id: str
    tag_id: str


class Folder(_OmniModel):
    id: str
    name: str
    parent_folder_id: Optional[str] = Field(default=None, alias="parentFolderID")


class Task(_OmniModel):
    id: str
    name: str
    status: TaskStatus = TaskStatus.UNKNOWN
    note: Optional[str] = None
    due_date: Optional[str] = None
    defer_date: Optional[str] = None
    completed_date: Optional[str] = None
    estimated_minutes: Optional[int] = None
    project_id: Optional[str] = None
    parent_id: Optional[str] = None
    child_ids: List[str] = Field(default_factory=list)
    tag_ids: List[str] = Field(default_factory=list)
    flagged: bool = False

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, v):
        return coerce_task_status(v)

    @property
    def completed(self) -> bool:
        return self.status == TaskStatus.COMPLETED


class Project(_OmniModel):
    id: str
    name: str
    status: ProjectStatus = ProjectStatus.UNKNOWN
    note: Optional[str] = None
    due_date: Optional[str] = None
    defer_date: Optional[str] = None
    completed_date: Optional[str] = None
    flagged: bool = False
    folder_id: Optional[str] = None
    tasks: List[Task] = Field(default_factory=list)

    @field_validator("status", mode="before")
    @classmethod
    def _coerce_status(cls, v):
        return coerce_project_status(v)


class Database(_OmniModel):
    """Root aggregate produced by the payload normalizer."""

    version: str
    timestamp: str
    folders: Dict[str, Folder] = Field(default_factory=dict)
    projects: Dict[str, Project] = Field(default_factory=dict)
    tasks: List[Task] = Field(default_factory=list)
    inbox_tasks: List[Task] = Field(default_factory=list)
    tags: Dict[str, Tag] = Field(default_factory=dict)
    task_tags: List[TaskTag] = Field(default_factory=list)

    def task_index(self) -> Dict[str, Task]:
        """Map task id -> task over the flat collection (first occurrence wins)."""
        index: Dict[str, Task] = {}
        for task in self.tasks:
            index.setdefault(task.id, task)
        return index

    def to_dict(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> "Database":
        return cls.model_validate_json(text)
