"""
OmniFocus API layer package.
Implements the AppleScript bridge to the OmniJS export plugin and the
normalization of its output into the canonical data models.
"""

from .apple_script_client import BridgeError, execute_omnifocus_applescript, fetch_raw_payload
from .data_models import Database, Folder, Project, ProjectStatus, ReportMode, Tag, Task, TaskStatus, TaskTag
from .normalizer import PayloadParseError, normalize, normalize_payload

__all__ = [
    'BridgeError',
    'Database',
    'Folder',
    'PayloadParseError',
    'Project',
    'ProjectStatus',
    'ReportMode',
    'Tag',
    'Task',
    'TaskStatus',
    'TaskTag',
    'execute_omnifocus_applescript',
    'fetch_raw_payload',
    'normalize',
    'normalize_payload',
]
