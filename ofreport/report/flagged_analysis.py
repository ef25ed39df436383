"""
Flagged-items analysis over a normalized database.

Sorts every flagged task into buckets (actionable, overdue, due today,
inbox, parents, completed) and turns the counts into review
recommendations.
"""
import json
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Optional

from ..omnifocus_api.data_models import Database, Project, Task, TaskStatus
from ..utils.dates import parse_item_date

ACTIONABLE_STATUSES = (TaskStatus.AVAILABLE, TaskStatus.NEXT)


@dataclass
class FlaggedAnalysis:
    today: date
    tasks: List[Task] = field(default_factory=list)
    projects: List[Project] = field(default_factory=list)
    completed: List[Task] = field(default_factory=list)
    actionable: List[Task] = field(default_factory=list)
    overdue: List[Task] = field(default_factory=list)
    due_today: List[Task] = field(default_factory=list)
    inbox: List[Task] = field(default_factory=list)
    # Flagged tasks that have subtasks; the flag belongs on a next action.
    parents: List[Task] = field(default_factory=list)

    @property
    def active(self) -> List[Task]:
        return [t for t in self.tasks if not t.completed]

    def summary(self) -> Dict[str, int]:
        return {
            "totalFlaggedTasks": len(self.tasks),
            "totalFlaggedProjects": len(self.projects),
            "completedFlaggedTasks": len(self.completed),
            "activeFlaggedTasks": len(self.active),
            "actionableNextActions": len(self.actionable),
            "overdueItems": len(self.overdue),
            "dueTodayItems": len(self.due_today),
            "flaggedParents": len(self.parents),
            "inboxItems": len(self.inbox),
        }

    def to_dict(self) -> dict:
        def ids(tasks: List[Task]) -> List[str]:
            return [t.id for t in tasks]

        return {
            "analysisDate": self.today.isoformat(),
            "summary": self.summary(),
            "flaggedProjects": [p.id for p in self.projects],
            "buckets": {
                "completed": ids(self.completed),
                "actionable": ids(self.actionable),
                "overdue": ids(self.overdue),
                "dueToday": ids(self.due_today),
                "inbox": ids(self.inbox),
                "parents": ids(self.parents),
            },
            "recommendations": recommendations(self),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


def _flagged_tasks(db: Database) -> List[Task]:
    seen = set()
    flagged = []
    for task in list(db.tasks) + list(db.inbox_tasks):
        if task.id in seen:
            continue
        seen.add(task.id)
        if task.flagged:
            flagged.append(task)
    return flagged


def is_overdue(task: Task, today: date) -> bool:
    if task.completed:
        return False
    if task.status == TaskStatus.OVERDUE:
        return True
    due = parse_item_date(task.due_date)
    return due is not None and due < today


def analyze_flagged(db: Database, today: Optional[date] = None) -> FlaggedAnalysis:
    """Bucket the flagged tasks and projects of ``db`` as of ``today``."""
    analysis = FlaggedAnalysis(today=today or date.today())
    analysis.tasks = _flagged_tasks(db)
    analysis.projects = [p for p in db.projects.values() if p.flagged]

    for task in analysis.tasks:
        if task.completed:
            analysis.completed.append(task)
        if task.status in ACTIONABLE_STATUSES and not task.child_ids:
            analysis.actionable.append(task)
        if is_overdue(task, analysis.today):
            analysis.overdue.append(task)
        if parse_item_date(task.due_date) == analysis.today:
            analysis.due_today.append(task)
        if task.project_id not in db.projects:
            analysis.inbox.append(task)
        if task.child_ids:
            analysis.parents.append(task)
    return analysis


def recommendations(analysis: FlaggedAnalysis) -> List[str]:
    lines = []
    if analysis.parents:
        lines.append(f"Unflag {len(analysis.parents)} parent tasks - flag their next actions instead")
    if analysis.inbox:
        lines.append(f"Process {len(analysis.inbox)} flagged inbox items - organize into projects")
    if analysis.overdue:
        lines.append(f"Address {len(analysis.overdue)} overdue flagged items - reschedule or complete")
    if analysis.actionable:
        lines.append(f"Focus on {len(analysis.actionable)} actionable next actions")
    if analysis.completed:
        lines.append(f"Review {len(analysis.completed)} completed flagged items - clear their flags")
    return lines
