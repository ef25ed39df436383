#!/usr/bin/env python3
from typing import Optional

import typer
from rich.console import Console

from . import __version__
from .commands.flagged_command import handle_flagged
from .commands.report_command import handle_dump, handle_render, handle_report, handle_summary
from .omnifocus_api.apple_script_client import BridgeError
from .omnifocus_api.data_models import ReportMode
from .omnifocus_api.normalizer import PayloadParseError
from .utils.config import ConfigError, load_env_vars

app = typer.Typer(
    name="ofreport",
    help="OmniFocus Report - compact folder/project/task reports from the OmniJS export plugin.",
    no_args_is_help=True,
)

err_console = Console(stderr=True)


def _version_callback(value: bool):
    if value:
        typer.echo(f"ofreport {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Optional[bool] = typer.Option(
        None, "--version", callback=_version_callback, is_eager=True, help="Show the version and exit."
    ),
):
    """OmniFocus Report - compact folder/project/task reports from the OmniJS export plugin."""
    load_env_vars()


def _fail(error: Exception) -> None:
    err_console.print(f"Error: {error}", style="red", markup=False, highlight=False, soft_wrap=True)
    raise typer.Exit(code=1)


@app.command("report")
def report_command(
    mode: ReportMode = typer.Option(ReportMode.NEXT_ACTIONS, "--mode", "-m", help="Which export to request from the plugin."),
    show_completed: bool = typer.Option(False, "--show-completed", "-a", help="Include completed and dropped items."),
    delay: Optional[float] = typer.Option(None, "--delay", help="Seconds to wait for the plugin (default: 5 for next_actions, 30 for full_dump)."),
    export_path: Optional[str] = typer.Option(None, "--export", "-o", help="Where to write the JSON export (default: OF_EXPORT_PATH)."),
    no_export: bool = typer.Option(False, "--no-export", help="Do not write the JSON export."),
):
    """Fetch from OmniFocus and print the compact report."""
    try:
        handle_report(mode, hide_completed=not show_completed, delay=delay, export=not no_export, export_path=export_path)
    except (BridgeError, PayloadParseError, ConfigError) as e:
        _fail(e)


@app.command("dump")
def dump_command(
    mode: ReportMode = typer.Option(ReportMode.FULL_DUMP, "--mode", "-m", help="Which export to request from the plugin."),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Where to write the JSON export (default: OF_EXPORT_PATH)."),
    delay: Optional[float] = typer.Option(None, "--delay", help="Seconds to wait for the plugin."),
):
    """Fetch from OmniFocus and write the normalized database as JSON."""
    try:
        handle_dump(mode, output=output, delay=delay)
    except (BridgeError, PayloadParseError, ConfigError) as e:
        _fail(e)
    except OSError as e:
        _fail(e)


@app.command("render")
def render_command(
    file: str = typer.Argument(..., help="Saved plugin output or a previously written export."),
    mode: ReportMode = typer.Option(ReportMode.FULL_DUMP, "--mode", "-m", help="How the file's tasks were collected."),
    show_completed: bool = typer.Option(False, "--show-completed", "-a", help="Include completed and dropped items."),
):
    """Print the compact report for a JSON file without contacting OmniFocus."""
    try:
        handle_render(file, mode, hide_completed=not show_completed)
    except (PayloadParseError, OSError) as e:
        _fail(e)


@app.command("summary")
def summary_command(
    file: str = typer.Argument(..., help="Saved plugin output or a previously written export."),
):
    """Show folder, project, task and tag counts for a JSON file."""
    try:
        handle_summary(file)
    except (PayloadParseError, OSError) as e:
        _fail(e)


@app.command("flagged")
def flagged_command(
    file: Optional[str] = typer.Argument(None, help="Saved plugin output or export to analyze (default: fetch a full dump)."),
    delay: Optional[float] = typer.Option(None, "--delay", help="Seconds to wait for the plugin."),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Also write the analysis as JSON."),
):
    """Analyze flagged tasks and projects and suggest what to review."""
    try:
        handle_flagged(file, delay=delay, output=output)
    except (BridgeError, PayloadParseError, ConfigError, OSError) as e:
        _fail(e)


if __name__ == "__main__":
    app()
