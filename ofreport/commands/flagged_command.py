"""Handler for the ``flagged`` command."""
from datetime import date
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.table import Table

from ..omnifocus_api.data_models import ReportMode
from ..report.flagged_analysis import FlaggedAnalysis, analyze_flagged, recommendations
from ..utils.logger import get_logger
from .report_command import fetch_database, load_database_file

log = get_logger(__name__)

BUCKET_LABELS = (
    ("totalFlaggedTasks", "Flagged tasks"),
    ("totalFlaggedProjects", "Flagged projects"),
    ("activeFlaggedTasks", "Active"),
    ("completedFlaggedTasks", "Completed"),
    ("actionableNextActions", "Actionable next actions"),
    ("overdueItems", "Overdue"),
    ("dueTodayItems", "Due today"),
    ("inboxItems", "Inbox"),
    ("flaggedParents", "Parents with subtasks"),
)


def write_analysis(analysis: FlaggedAnalysis, path) -> Path:
    output = Path(path)
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(analysis.to_json() + "\n", encoding="utf-8")
    return output


def handle_flagged(
    file: Optional[str] = None,
    delay: Optional[float] = None,
    output: Optional[str] = None,
    console: Optional[Console] = None,
    today: Optional[date] = None,
) -> FlaggedAnalysis:
    """Analyze flagged items from a saved file, or from a full dump fetched from OmniFocus."""
    console = console or Console()
    if file:
        db = load_database_file(file)
    else:
        db = fetch_database(ReportMode.FULL_DUMP, hide_completed=False, delay=delay)

    analysis = analyze_flagged(db, today)
    log.debug("Flagged analysis: %s", analysis.summary())

    table = Table(show_header=True, header_style="bold", title="Flagged Items Analysis")
    table.add_column("Bucket", style="cyan")
    table.add_column("Count", style="green", justify="right")
    summary = analysis.summary()
    for key, label in BUCKET_LABELS:
        table.add_row(label, str(summary[key]))
    console.print(table)

    lines = recommendations(analysis)
    console.print("Recommendations:", style="bold")
    if not lines:
        console.print("• Nothing to review.")
    for line in lines:
        console.print(f"• {line}", markup=False, highlight=False, soft_wrap=True)

    if output:
        path = write_analysis(analysis, output)
        console.print(f"Analysis written to: {path}", markup=False, highlight=False, soft_wrap=True)
    return analysis
