"""
Compact, indented text report of a normalized OmniFocus database.

Layout::

    # OMNIFOCUS [2025-06-01]

    FORMAT LEGEND:
    ...

    F: Work
       P: Launch 🚩 [DUE:6/3]
          • 🚩 Write brief [DUE:6/2] (45m) <off,pho> #next
             • Collect numbers #avail
    P: Errands
    I: Inbox
       • Call plumber #avail

Folders come first (subfolders, then projects, depth first), then projects
outside any folder, then root inbox tasks. Every level indents three spaces.
"""
from dataclasses import dataclass
from datetime import date
from typing import Dict, List, Optional

from ..omnifocus_api.data_models import Database, Folder, Project, ProjectStatus, Task, TaskStatus
from ..utils.dates import to_compact_date
from ..utils.tag_prefixes import abbreviate_tags, compute_minimum_unique_prefixes

INDENT = "   "
FLAG = "\U0001F6A9"
BULLET = "•"

LEGEND = [
    "FORMAT LEGEND:",
    f"F: Folder | P: Project | {BULLET}: Task | {FLAG}: Flagged",
    "Dates: [M/D] | Duration: (30m) or (2h) | Tags: <tag1,tag2>",
    "Status: #next #avail #block #due #over #compl #drop",
]

STATUS_BADGES = {
    TaskStatus.NEXT: "#next",
    TaskStatus.AVAILABLE: "#avail",
    TaskStatus.BLOCKED: "#block",
    TaskStatus.DUE_SOON: "#due",
    TaskStatus.OVERDUE: "#over",
    TaskStatus.COMPLETED: "#compl",
    TaskStatus.DROPPED: "#drop",
}

PROJECT_STATUS_LABELS = {
    ProjectStatus.ON_HOLD: "[OnHold]",
    ProjectStatus.DROPPED: "[Dropped]",
}


@dataclass(frozen=True)
class ReportOptions:
    hide_completed: bool = True
    # Accepted but has no effect: recurring duplicates are not detected yet.
    hide_recurring_duplicates: bool = True


def format_duration(minutes: Optional[int]) -> str:
    """``(45m)`` below an hour, whole hours (truncated) otherwise; ``""`` when unset."""
    if not minutes:
        return ""
    if minutes >= 60:
        return f"({minutes // 60}h)"
    return f"({minutes}m)"


def status_badge(status: TaskStatus) -> str:
    return STATUS_BADGES.get(status, "")


def is_hidden_task(task: Task, options: ReportOptions) -> bool:
    return options.hide_completed and (
        task.completed or task.status in (TaskStatus.COMPLETED, TaskStatus.DROPPED)
    )


def is_hidden_project(project: Project, options: ReportOptions) -> bool:
    return options.hide_completed and project.status in (ProjectStatus.DONE, ProjectStatus.DROPPED)


def _join(*parts: str) -> str:
    return " ".join(p for p in parts if p)


class _ReportBuilder:
    def __init__(self, db: Database, options: ReportOptions):
        self.db = db
        self.options = options
        self.lines: List[str] = []
        self.tasks_by_id = db.task_index()
        self.tag_prefixes = compute_minimum_unique_prefixes(tag.name for tag in db.tags.values())
        self._seen_folders = set()
        self._seen_tasks = set()

        self.subfolders: Dict[Optional[str], List[Folder]] = {}
        for folder in db.folders.values():
            parent = folder.parent_folder_id if folder.parent_folder_id in db.folders else None
            self.subfolders.setdefault(parent, []).append(folder)

        self.projects_by_folder: Dict[Optional[str], List[Project]] = {}
        for project in db.projects.values():
            folder_id = project.folder_id if project.folder_id in db.folders else None
            self.projects_by_folder.setdefault(folder_id, []).append(project)

        # Tasks of unknown projects are listed with the inbox.
        self.root_tasks: Dict[Optional[str], List[Task]] = {}
        for task in self.tasks_by_id.values():
            if self._is_root(task):
                project_id = task.project_id if task.project_id in db.projects else None
                self.root_tasks.setdefault(project_id, []).append(task)

    def _is_root(self, task: Task) -> bool:
        parent = task.parent_id
        if parent is None or parent == task.project_id or parent not in self.tasks_by_id:
            return True
        return self._in_parent_cycle(task)

    def _in_parent_cycle(self, task: Task) -> bool:
        """True when following ``parent_id`` from ``task`` leads back to ``task``."""
        visited = set()
        current = task.parent_id
        while current in self.tasks_by_id and current not in visited:
            if current == task.id:
                return True
            visited.add(current)
            current = self.tasks_by_id[current].parent_id
        return False

    def emit(self, depth: int, text: str) -> None:
        self.lines.append(f"{INDENT * depth}{text}")

    # -- nodes ------------------------------------------------------------

    def folder(self, folder: Folder, depth: int) -> None:
        if folder.id in self._seen_folders:
            return
        self._seen_folders.add(folder.id)
        self.emit(depth, f"F: {folder.name}")
        for sub in self.subfolders.get(folder.id, []):
            self.folder(sub, depth + 1)
        for project in self.projects_by_folder.get(folder.id, []):
            self.project(project, depth + 1)

    def project(self, project: Project, depth: int) -> None:
        if is_hidden_project(project, self.options):
            return
        due = to_compact_date(project.due_date)
        self.emit(depth, _join(
            f"P: {project.name}",
            FLAG if project.flagged else "",
            PROJECT_STATUS_LABELS.get(project.status, ""),
            f"[DUE:{due}]" if due else "",
        ))
        self.task_tree(self.root_tasks.get(project.id, []), depth + 1)

    def task_line(self, task: Task) -> str:
        due = to_compact_date(task.due_date)
        defer = to_compact_date(task.defer_date)
        tag_names = [self.db.tags[t].name for t in task.tag_ids if t in self.db.tags]
        tags = abbreviate_tags(tag_names, self.tag_prefixes)
        name = f"{FLAG} {task.name}" if task.flagged else task.name
        return _join(
            f"{BULLET} {name}",
            f"[DUE:{due}]" if due else "",
            f"[defer:{defer}]" if defer else "",
            format_duration(task.estimated_minutes),
            f"<{','.join(tags)}>" if tags else "",
            status_badge(task.status),
        )

    def task_tree(self, roots: List[Task], depth: int) -> None:
        """Depth-first walk over ``child_ids`` with an explicit stack."""
        stack = [(task, depth) for task in reversed(roots)]
        while stack:
            task, level = stack.pop()
            if task.id in self._seen_tasks:
                continue
            self._seen_tasks.add(task.id)
            if is_hidden_task(task, self.options):
                continue
            self.emit(level, self.task_line(task))
            children = [self.tasks_by_id[c] for c in task.child_ids if c in self.tasks_by_id]
            stack.extend((child, level + 1) for child in reversed(children))

    # -- report -----------------------------------------------------------

    def build(self, today: date) -> str:
        self.lines = [f"# OMNIFOCUS [{today.isoformat()}]", ""] + LEGEND + [""]

        for folder in self.subfolders.get(None, []):
            self.folder(folder, 0)
        # Folders whose parent chain loops never show up as roots.
        for folder in self.db.folders.values():
            self.folder(folder, 0)

        for project in self.projects_by_folder.get(None, []):
            self.project(project, 0)

        inbox_start = len(self.lines)
        self.task_tree(self.root_tasks.get(None, []), 1)
        if len(self.lines) > inbox_start:
            self.lines.insert(inbox_start, "I: Inbox")

        return "\n".join(self.lines) + "\n"


def render(db: Database, options: Optional[ReportOptions] = None, *, today: Optional[date] = None) -> str:
    """Render ``db`` as the compact text report."""
    return _ReportBuilder(db, options or ReportOptions()).build(today or date.today())
