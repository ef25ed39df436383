"""Fetch -> normalize -> render pipeline behind the ``report``/``dump``/``render``/``summary`` commands."""
from pathlib import Path
from typing import Callable, Optional, Tuple

import typer
from rich.console import Console
from rich.table import Table

from ..omnifocus_api.apple_script_client import build_filter_criteria, fetch_raw_payload
from ..omnifocus_api.data_models import Database, ReportMode
from ..omnifocus_api.normalizer import normalize
from ..report.compact_report import ReportOptions, render
from ..utils.config import load_settings
from ..utils.logger import get_logger

log = get_logger(__name__)

Fetcher = Callable[..., str]


def write_export(db: Database, path) -> Path:
    """Write the canonical database as indented JSON, creating parent directories."""
    export_path = Path(path)
    export_path.parent.mkdir(parents=True, exist_ok=True)
    export_path.write_text(db.to_json() + "\n", encoding="utf-8")
    return export_path


def _try_write_export(db: Database, path) -> Optional[Path]:
    try:
        return write_export(db, path)
    except OSError as e:
        log.error("Failed to write %s: %s", path, e)
        return None


def fetch_database(
    mode: ReportMode,
    hide_completed: bool = True,
    delay: Optional[float] = None,
    fetch: Optional[Fetcher] = None,
) -> Database:
    criteria = build_filter_criteria(mode, hide_completed)
    raw = (fetch or fetch_raw_payload)(criteria, delay=delay)
    return normalize(raw, mode)


def generate_report(
    mode: ReportMode = ReportMode.NEXT_ACTIONS,
    hide_completed: bool = True,
    hide_recurring_duplicates: bool = True,
    delay: Optional[float] = None,
    export_path: Optional[str] = None,
    fetch: Optional[Fetcher] = None,
) -> Tuple[Database, str]:
    """Run the whole pipeline; returns the database and the rendered report."""
    db = fetch_database(mode, hide_completed, delay, fetch)
    if export_path:
        _try_write_export(db, export_path)
    options = ReportOptions(hide_completed=hide_completed, hide_recurring_duplicates=hide_recurring_duplicates)
    return db, render(db, options)


def load_database_file(path, mode: ReportMode = ReportMode.FULL_DUMP) -> Database:
    """Normalize a saved bridge payload or a previously written export."""
    return normalize(Path(path).read_text(encoding="utf-8"), mode)


def summary_counts(db: Database) -> dict:
    return {
        "folders": len(db.folders),
        "projects": len(db.projects),
        "tasks": len(db.tasks),
        "inbox": len(db.inbox_tasks),
        "tags": len(db.tags),
    }


def handle_report(
    mode: ReportMode,
    hide_completed: bool,
    delay: Optional[float] = None,
    export: bool = True,
    export_path: Optional[str] = None,
) -> None:
    target = (export_path or load_settings().export_path) if export else None
    _, report = generate_report(mode, hide_completed=hide_completed, delay=delay, export_path=target)
    typer.echo(report, nl=False)


def handle_dump(mode: ReportMode, output: Optional[str] = None, delay: Optional[float] = None,
                console: Optional[Console] = None) -> None:
    console = console or Console()
    db = fetch_database(mode, hide_completed=False, delay=delay)
    path = write_export(db, output or load_settings().export_path)
    counts = summary_counts(db)
    console.print(f"Export complete! Data written to: {path}", markup=False, highlight=False, soft_wrap=True)
    console.print(
        f"Summary: {counts['folders']} folders, {counts['projects']} projects, "
        f"{counts['tasks']} tasks, {counts['tags']} tags.",
        markup=False,
        highlight=False,
        soft_wrap=True,
    )


def handle_render(file: str, mode: ReportMode, hide_completed: bool) -> None:
    db = load_database_file(file, mode)
    typer.echo(render(db, ReportOptions(hide_completed=hide_completed)), nl=False)


def handle_summary(file: str, console: Optional[Console] = None) -> None:
    console = console or Console()
    db = load_database_file(file)
    table = Table(show_header=True, header_style="bold", title=f"Summary for {file}")
    table.add_column("Collection", style="cyan")
    table.add_column("Count", style="green", justify="right")
    for name, count in summary_counts(db).items():
        table.add_row(name.capitalize(), str(count))
    console.print(table)
    console.print(f"Version: {db.version}  Timestamp: {db.timestamp}", markup=False, highlight=False, soft_wrap=True)
