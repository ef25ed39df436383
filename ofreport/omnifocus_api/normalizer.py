"""
Turn raw OmniJS bridge output into the canonical :class:`Database`.

The export plugin has emitted several JSON shapes over time:

* ``FILTERED``: ``version`` starting with ``omni-js-filtered`` plus a
  ``criteriaUsed`` record; top-level ``folders``/``projects``/``tasks``/
  ``inboxTasks``/``tags`` that are already close to canonical.
* ``LEGACY_TREE``: the full dump, with folders and projects nested under
  ``structure.topLevelFolders`` / ``structure.topLevelProjects`` and tasks
  nested under projects (and under each other via ``children``).
* ``FLAT_EXPORT``: the plugin's plain export (``version`` ``1.0`` or
  ``next-actions-1.0``) and ad-hoc variants of it with fields missing.

:func:`detect_shape` picks the shape and a decoder per shape extracts folders,
projects and tasks. Individual malformed entities never raise: they get
generated ids and default names. Only a payload that is not a JSON object
raises :class:`PayloadParseError`.
"""
from __future__ import annotations

import itertools
import json
import uuid
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Union

from ..utils.dates import normalize_date
from ..utils.logger import get_logger
from .data_models import (
    Database,
    Folder,
    Project,
    ReportMode,
    Tag,
    Task,
    TaskStatus,
    TaskTag,
    coerce_project_status,
    coerce_task_status,
)

log = get_logger(__name__)

IdFactory = Callable[[str], str]

FILTERED_VERSION_PREFIX = "omni-js-filtered"
DEFAULT_FILTERED_VERSION = "mcp-filtered-1.0"
DEFAULT_TRANSFORMED_VERSION = "mcp-transformed-1.5"

GENERATED_TASK_PREFIX = "generated-task-id"
INVALID_TASK_PREFIX = "invalid-task"
GENERATED_PROJECT_PREFIX = "generated-project-id"
GENERATED_FOLDER_PREFIX = "generated-folder-id"
GENERATED_TAG_PREFIX = "generated-tag-id"

UNTITLED_TASK = "Untitled Task"
INVALID_TASK_NAME = "Invalid Task Data"

# Keys under which the bridge nests subtasks, either as objects or as ids.
_CHILD_KEYS = ("childIds", "tasks", "subTasks", "children")
_TAG_KEYS = ("tagIds", "tags")


class PayloadParseError(ValueError):
    """Raised when the bridge output is not a JSON object."""

    def __init__(self, message: str, raw: Any = None):
        super().__init__(message)
        self.raw = raw


class PayloadShape(str, Enum):
    FILTERED = "filtered"
    LEGACY_TREE = "legacy_tree"
    FLAT_EXPORT = "flat_export"


@dataclass
class DiagnosticEvent:
    kind: str
    detail: str = ""
    count: int = 0


@dataclass
class NormalizeResult:
    database: Database
    shape: PayloadShape
    diagnostics: List[DiagnosticEvent] = field(default_factory=list)

    def events(self, kind: str) -> List[DiagnosticEvent]:
        return [e for e in self.diagnostics if e.kind == kind]


def random_id_factory(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex}"


def counter_id_factory() -> IdFactory:
    """Sequential ids (``generated-task-id-1``, ...) that restart for each factory."""
    counter = itertools.count(1)

    def make_id(prefix: str) -> str:
        return f"{prefix}-{next(counter)}"

    return make_id


# ---------------------------------------------------------------------------
# Field extraction helpers
# ---------------------------------------------------------------------------

def _ref_id(value: Any) -> Optional[str]:
    """Id of an embedded ``{"id": ...}`` object or of a bare id value."""
    if isinstance(value, dict):
        value = value.get("id")
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (str, int)):
        return str(value) or None
    return None


def _first_ref(raw: Dict[str, Any], *keys: str) -> Optional[str]:
    for key in keys:
        ref = _ref_id(raw.get(key))
        if ref:
            return ref
    return None


def _id_list(raw: Dict[str, Any], keys: Tuple[str, ...]) -> List[str]:
    ids: List[str] = []
    for key in keys:
        items = raw.get(key)
        if not isinstance(items, list):
            continue
        for item in items:
            ref = _ref_id(item)
            if ref and ref not in ids:
                ids.append(ref)
    return ids


def _text(value: Any) -> Optional[str]:
    if value is None:
        return None
    return value if isinstance(value, str) else str(value)


def _minutes(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError, OverflowError):
        return None


def _flag(value: Any) -> bool:
    return False if value is None else bool(value)


def _iter_entries(collection: Any) -> Iterator[Tuple[Optional[str], Any]]:
    """Yield ``(key, entry)`` from an id-keyed object or ``(None, entry)`` from a list."""
    if isinstance(collection, dict):
        yield from collection.items()
    elif isinstance(collection, list):
        for entry in collection:
            yield None, entry


def _placeholder_task(id_factory: IdFactory) -> Task:
    return Task(id=id_factory(INVALID_TASK_PREFIX), name=INVALID_TASK_NAME, status=TaskStatus.UNKNOWN)


def transform_task(
    raw: Any,
    id_factory: Optional[IdFactory] = None,
    *,
    project_id: Optional[str] = None,
    parent_id: Optional[str] = None,
) -> Task:
    """
    Convert one task-like object from the bridge into a :class:`Task`.

    ``project_id``/``parent_id`` are only used when the object does not name
    its own. Never raises: ``None`` or a non-object gives an
    ``Invalid Task Data`` placeholder.
    """
    id_factory = id_factory or random_id_factory
    if not isinstance(raw, dict):
        return _placeholder_task(id_factory)

    status = coerce_task_status(raw.get("taskStatus") or raw.get("status"))
    if raw.get("completed") is True:
        status = TaskStatus.COMPLETED

    return Task(
        id=_ref_id(raw.get("id")) or id_factory(GENERATED_TASK_PREFIX),
        name=_text(raw.get("name")) or UNTITLED_TASK,
        status=status,
        note=_text(raw.get("note") or raw.get("notes")),
        due_date=normalize_date(raw.get("dueDate")),
        defer_date=normalize_date(raw.get("deferDate")),
        completed_date=normalize_date(raw.get("completionDate") or raw.get("completedDate")),
        estimated_minutes=_minutes(raw.get("estimatedMinutes")),
        project_id=_first_ref(raw, "containingProject", "project", "projectId", "projectID") or project_id,
        parent_id=_first_ref(raw, "parentTask", "parent", "parentId", "parentID") or parent_id,
        child_ids=_id_list(raw, _CHILD_KEYS),
        tag_ids=_id_list(raw, _TAG_KEYS),
        flagged=_flag(raw.get("flagged")),
    )


# ---------------------------------------------------------------------------
# Shape detection
# ---------------------------------------------------------------------------

def detect_shape(payload: Dict[str, Any]) -> PayloadShape:
    version = payload.get("version")
    if (
        isinstance(version, str)
        and version.startswith(FILTERED_VERSION_PREFIX)
        and payload.get("criteriaUsed") is not None
    ):
        return PayloadShape.FILTERED
    if isinstance(payload.get("structure"), dict):
        return PayloadShape.LEGACY_TREE
    return PayloadShape.FLAT_EXPORT


def parse_payload(raw: Union[str, bytes, Dict[str, Any]]) -> Dict[str, Any]:
    """Decode the bridge output into a dict, raising PayloadParseError otherwise."""
    if isinstance(raw, dict):
        return raw
    if isinstance(raw, (bytes, bytearray)):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str):
        raise PayloadParseError(f"Expected JSON text or an object, got {type(raw).__name__}", raw)
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise PayloadParseError(
            f'Failed to parse bridge output as JSON. Output: "{raw}". Parse Error: {e}', raw
        ) from e
    if not isinstance(payload, dict):
        raise PayloadParseError(f'Bridge output is not a JSON object. Output: "{raw}"', raw)
    return payload


# ---------------------------------------------------------------------------
# Decoding
# ---------------------------------------------------------------------------

@dataclass
class _Decoded:
    folders: Dict[str, Folder] = field(default_factory=dict)
    projects: Dict[str, Project] = field(default_factory=dict)
    # Every task of a project, roots followed by their flattened subtasks.
    project_tasks: Dict[str, List[Task]] = field(default_factory=dict)
    inbox_roots: List[Task] = field(default_factory=list)
    inbox_tasks: List[Task] = field(default_factory=list)
    top_level_tasks: List[Task] = field(default_factory=list)


class _Normalizer:
    """Per-call state: id generation, embedded tags seen, diagnostics."""

    def __init__(self, id_factory: IdFactory):
        self._id_factory = id_factory
        self.generated: Counter = Counter()
        self.embedded_tags: Dict[str, Tag] = {}
        self.diagnostics: List[DiagnosticEvent] = []

    def new_id(self, prefix: str) -> str:
        self.generated[prefix] += 1
        return self._id_factory(prefix)

    def note(self, kind: str, detail: str = "", count: int = 0) -> None:
        self.diagnostics.append(DiagnosticEvent(kind, detail, count))

    # -- entities ---------------------------------------------------------

    def _collect_tags(self, raw: Dict[str, Any]) -> None:
        tags = raw.get("tags")
        if not isinstance(tags, list):
            return
        for tag in tags:
            if isinstance(tag, dict):
                tag_id = _ref_id(tag.get("id"))
                if tag_id and tag_id not in self.embedded_tags:
                    self.embedded_tags[tag_id] = Tag(id=tag_id, name=_text(tag.get("name")) or "Untitled Tag")

    def task_tree(self, raw: Any, project_id: Optional[str] = None, parent_id: Optional[str] = None) -> List[Task]:
        """The task built from ``raw`` followed by all its nested subtasks."""
        task = transform_task(raw, self.new_id, project_id=project_id, parent_id=parent_id)
        flat = [task]
        if not isinstance(raw, dict):
            return flat
        self._collect_tags(raw)
        for key in _CHILD_KEYS:
            nested = raw.get(key)
            if not isinstance(nested, list):
                continue
            for child_raw in nested:
                if not isinstance(child_raw, dict):
                    continue
                subtree = self.task_tree(child_raw, project_id=task.project_id, parent_id=task.id)
                if subtree[0].id not in task.child_ids:
                    task.child_ids.append(subtree[0].id)
                flat.extend(subtree)
        return flat

    def task_list(self, raw_list: Any, source: str, project_id: Optional[str] = None) -> Tuple[List[Task], List[Task]]:
        """Return ``(roots, flat)`` for a list of task-like objects."""
        roots: List[Task] = []
        flat: List[Task] = []
        skipped = 0
        for _, raw in _iter_entries(raw_list):
            if isinstance(raw, str):
                # A bare id is a reference to a task listed elsewhere.
                skipped += 1
                continue
            tree = self.task_tree(raw, project_id=project_id)
            roots.append(tree[0])
            flat.extend(tree)
        self.note("tasks", source, len(flat))
        if skipped:
            self.note("skipped", f"{source}: task id references", skipped)
        return roots, flat

    def folder(self, raw: Dict[str, Any], key: Optional[str] = None, parent_id: Optional[str] = None) -> Folder:
        return Folder(
            id=_ref_id(raw.get("id")) or key or self.new_id(GENERATED_FOLDER_PREFIX),
            name=_text(raw.get("name")) or "Untitled Folder",
            parent_folder_id=_first_ref(raw, "parentFolderID", "parentFolderId", "parentFolder", "parent") or parent_id,
        )

    def project(self, raw: Dict[str, Any], key: Optional[str] = None, folder_id: Optional[str] = None) -> Tuple[Project, List[Task]]:
        project_id = _ref_id(raw.get("id")) or key or self.new_id(GENERATED_PROJECT_PREFIX)
        roots, flat = self.task_list(raw.get("tasks") or [], f"project:{project_id}", project_id=project_id)
        project = Project(
            id=project_id,
            name=_text(raw.get("name")) or "Untitled Project",
            status=coerce_project_status(raw.get("status")),
            note=_text(raw.get("note") or raw.get("notes")),
            due_date=normalize_date(raw.get("dueDate")),
            defer_date=normalize_date(raw.get("deferDate")),
            completed_date=normalize_date(raw.get("completionDate") or raw.get("completedDate")),
            flagged=_flag(raw.get("flagged")),
            folder_id=_first_ref(raw, "folderId", "folderID", "folder", "parentFolder") or folder_id,
            tasks=roots,
        )
        return project, flat

    # -- collections ------------------------------------------------------

    def add_project(self, decoded: _Decoded, raw: Any, key: Optional[str] = None, folder_id: Optional[str] = None) -> None:
        if not isinstance(raw, dict):
            self.note("skipped", "project entry is not an object", 1)
            return
        project, flat = self.project(raw, key, folder_id)
        kept = decoded.projects.get(project.id)
        if kept is not None:
            self.note("duplicate", f"project:{project.id}", 1)
            if kept.folder_id is None and project.folder_id:
                kept.folder_id = project.folder_id
            return
        decoded.projects[project.id] = project
        decoded.project_tasks[project.id] = flat

    def add_folder(self, decoded: _Decoded, raw: Any, key: Optional[str] = None, parent_id: Optional[str] = None) -> Optional[Folder]:
        if not isinstance(raw, dict):
            self.note("skipped", "folder entry is not an object", 1)
            return None
        folder = self.folder(raw, key, parent_id)
        if folder.id in decoded.folders:
            self.note("duplicate", f"folder:{folder.id}", 1)
            return decoded.folders[folder.id]
        decoded.folders[folder.id] = folder
        return folder

    def inbox(self, decoded: _Decoded, raw_list: Any) -> None:
        decoded.inbox_roots, decoded.inbox_tasks = self.task_list(raw_list or [], "inbox")

    # -- shapes -----------------------------------------------------------

    def decode_flat(self, payload: Dict[str, Any]) -> _Decoded:
        decoded = _Decoded()
        for key, raw in _iter_entries(payload.get("folders")):
            self.add_folder(decoded, raw, key)
        for key, raw in _iter_entries(payload.get("projects")):
            self.add_project(decoded, raw, key)
        self.inbox(decoded, payload.get("inboxTasks") or payload.get("inboxItems"))
        _, decoded.top_level_tasks = self.task_list(payload.get("tasks") or [], "top_level")
        return decoded

    def decode_filtered(self, payload: Dict[str, Any]) -> _Decoded:
        return self.decode_flat(payload)

    def decode_legacy(self, payload: Dict[str, Any]) -> _Decoded:
        decoded = _Decoded()
        structure = payload.get("structure") or {}

        for key, raw in _iter_entries(structure.get("topLevelProjects")):
            self.add_project(decoded, raw, key)

        def walk_folder(raw: Any, parent_id: Optional[str]) -> None:
            if isinstance(raw, dict) and raw.get("type") not in (None, "Folder"):
                self.note("skipped", f"non-folder item in folder tree: {raw.get('type')}", 1)
                return
            folder = self.add_folder(decoded, raw, parent_id=parent_id)
            if folder is None:
                return
            for _, sub in _iter_entries(raw.get("folders")):
                walk_folder(sub, folder.id)
            for _, project_raw in _iter_entries(raw.get("projects")):
                self.add_project(decoded, project_raw, folder_id=folder.id)

        for _, raw in _iter_entries(structure.get("topLevelFolders")):
            walk_folder(raw, None)

        self.inbox(decoded, payload.get("inboxItems") or payload.get("inboxTasks") or structure.get("inboxItems"))
        _, decoded.top_level_tasks = self.task_list(payload.get("tasks") or [], "top_level")
        return decoded


_DECODERS: Dict[PayloadShape, Callable[[_Normalizer, Dict[str, Any]], _Decoded]] = {
    PayloadShape.FILTERED: _Normalizer.decode_filtered,
    PayloadShape.LEGACY_TREE: _Normalizer.decode_legacy,
    PayloadShape.FLAT_EXPORT: _Normalizer.decode_flat,
}


# ---------------------------------------------------------------------------
# Assembly
# ---------------------------------------------------------------------------

def _dedupe_tasks(tasks: List[Task]) -> Tuple[List[Task], int]:
    seen = set()
    unique: List[Task] = []
    for task in tasks:
        if task.id in seen:
            continue
        seen.add(task.id)
        unique.append(task)
    return unique, len(tasks) - len(unique)


def _top_level_tags(normalizer: _Normalizer, raw_tags: Any) -> Dict[str, Tag]:
    tags: Dict[str, Tag] = {}
    for key, raw in _iter_entries(raw_tags):
        if not isinstance(raw, dict):
            normalizer.note("skipped", "tag entry is not an object", 1)
            continue
        tag_id = _ref_id(raw.get("id")) or key or normalizer.new_id(GENERATED_TAG_PREFIX)
        tags.setdefault(tag_id, Tag(id=tag_id, name=_text(raw.get("name")) or "Untitled Tag"))
    return tags


def _task_tags(raw_task_tags: Any, tasks: List[Task]) -> List[TaskTag]:
    if isinstance(raw_task_tags, list) and raw_task_tags:
        links = []
        for raw in raw_task_tags:
            if not isinstance(raw, dict):
                continue
            task_id = _ref_id(raw.get("taskId"))
            tag_id = _ref_id(raw.get("tagId"))
            if task_id and tag_id:
                links.append(TaskTag(task_id=task_id, tag_id=tag_id))
        return links
    return [TaskTag(task_id=t.id, tag_id=tag_id) for t in tasks for tag_id in t.tag_ids]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def normalize_payload(
    raw: Union[str, bytes, Dict[str, Any]],
    mode: Union[ReportMode, str] = ReportMode.NEXT_ACTIONS,
    *,
    id_factory: Optional[IdFactory] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> NormalizeResult:
    """Normalize a bridge payload and return the database with its diagnostics."""
    payload = parse_payload(raw)
    mode = ReportMode(mode)
    normalizer = _Normalizer(id_factory or counter_id_factory())

    shape = detect_shape(payload)
    normalizer.note("shape", shape.value)
    decoded = _DECODERS[shape](normalizer, payload)

    project_tasks = [t for pid in decoded.projects for t in decoded.project_tasks.get(pid, [])]
    if mode is ReportMode.NEXT_ACTIONS:
        # Next-actions payloads list tasks flatly; project task lists would double count.
        combined = decoded.top_level_tasks + decoded.inbox_tasks + project_tasks
        for project in decoded.projects.values():
            project.tasks = []
    else:
        combined = decoded.inbox_tasks + project_tasks + decoded.top_level_tasks
    tasks, duplicates = _dedupe_tasks(combined)
    if duplicates:
        normalizer.note("duplicate", "tasks", duplicates)
    inbox_tasks, _ = _dedupe_tasks(decoded.inbox_roots)

    tags = _top_level_tags(normalizer, payload.get("tags"))
    if not tags:
        tags = dict(normalizer.embedded_tags)
        normalizer.note("tags", "derived from tasks", len(tags))
    else:
        normalizer.note("tags", "top_level", len(tags))

    for prefix, count in normalizer.generated.items():
        normalizer.note("generated_id", prefix, count)

    version = _text(payload.get("version")) or (
        DEFAULT_FILTERED_VERSION if shape is PayloadShape.FILTERED else DEFAULT_TRANSFORMED_VERSION
    )
    timestamp = _text(payload.get("timestamp")) or (clock or _utc_now)().replace(microsecond=0).isoformat()

    database = Database(
        version=version,
        timestamp=timestamp,
        folders=decoded.folders,
        projects=decoded.projects,
        tasks=tasks,
        inbox_tasks=inbox_tasks,
        tags=tags,
        task_tags=_task_tags(payload.get("taskTags"), tasks),
    )
    return NormalizeResult(database=database, shape=shape, diagnostics=normalizer.diagnostics)


def normalize(
    raw: Union[str, bytes, Dict[str, Any]],
    mode: Union[ReportMode, str] = ReportMode.NEXT_ACTIONS,
    *,
    id_factory: Optional[IdFactory] = None,
    clock: Optional[Callable[[], datetime]] = None,
) -> Database:
    """Normalize a bridge payload into a :class:`Database`."""
    result = normalize_payload(raw, mode, id_factory=id_factory, clock=clock)
    db = result.database
    log.debug(
        "Normalized %s payload (%s): %d folders, %d projects, %d tasks, %d tags",
        result.shape.value, ReportMode(mode).value,
        len(db.folders), len(db.projects), len(db.tasks), len(db.tags),
    )
    return db
