"""AppleScript bridge to the OmniFocus export plugin.

:pyfunc:`execute_omnifocus_applescript` writes a script body to a temporary
``.applescript`` file, runs it with ``osascript`` and returns *stdout* with
surrounding whitespace stripped. Any failure (missing ``osascript``, timeout,
non-zero exit, an error on stderr, or an ``AppleScript Error`` /
``OMNIJS_ERROR:`` result) raises :class:`BridgeError`.

:pyfunc:`fetch_raw_payload` asks the OmniJS export plugin for a dump. The
plugin cannot return a value to AppleScript directly, so it is started through
an ``omnifocus://localhost/omnijs-run`` URL, copies its JSON to the clipboard,
and the script reads the clipboard back after a delay.
"""
from __future__ import annotations

import json
import os
import subprocess
import tempfile
import urllib.parse
from typing import Any, Dict, Final, Mapping, Optional

from ..utils.config import load_settings
from ..utils.logger import get_logger
from .data_models import ReportMode

__all__: Final = [
    "BridgeError",
    "build_filter_criteria",
    "build_export_applescript",
    "execute_omnifocus_applescript",
    "fetch_raw_payload",
    "is_omnifocus_running",
]

log = get_logger(__name__)

# Seconds to wait for the plugin to fill the clipboard.
DEFAULT_DELAYS = {
    ReportMode.NEXT_ACTIONS: 5.0,
    ReportMode.FULL_DUMP: 30.0,
}

PLUGIN_SUCCESS_MESSAGE = "SUCCESS: JSON data copied to clipboard"

_ERROR_RESULT_PREFIXES = ("applescript error", "omnijs_error:")
_STDERR_ERROR_MARKERS = ("error:", "(-2741)", "(-1728)")


class BridgeError(RuntimeError):
    """Raised when OmniFocus cannot be reached or the AppleScript run fails."""


def _write_temp_applescript(script: str) -> str:
    """Write *script* to a temporary *.applescript* file and return its path."""
    normalized = script.replace("\r\n", "\n").replace("\r", "\n")
    tmp_file = tempfile.NamedTemporaryFile(
        mode="w", delete=False, suffix=".applescript", prefix="ofreport_", encoding="utf-8"
    )
    tmp_file.write(normalized)
    tmp_file.flush()
    tmp_file.close()
    return tmp_file.name


def _check_result(returncode: int, stdout: str, stderr: str) -> str:
    out = stdout.strip()
    err = stderr.strip()
    lowered_err = err.lower()
    if err and "running in background" not in lowered_err:
        if any(marker in lowered_err for marker in _STDERR_ERROR_MARKERS):
            raise BridgeError(f"AppleScript process reported an error in stderr: {err}")
    if returncode != 0:
        if out.lower().startswith("applescript error"):
            raise BridgeError(out)
        raise BridgeError(f"osascript process exited with code {returncode}. stderr: {err}. stdout: {out}")
    if out.lower().startswith(_ERROR_RESULT_PREFIXES):
        raise BridgeError(out)
    return out


def execute_omnifocus_applescript(script: str, timeout: Optional[float] = None) -> str:
    """Run an AppleScript snippet and return its *stdout* as ``str``."""
    script_path = _write_temp_applescript(script)
    cmd = ["osascript", script_path]
    log.debug("Running %s", " ".join(cmd))
    try:
        try:
            process = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout, check=False)
        except FileNotFoundError as e:
            raise BridgeError(f"Failed to start osascript process: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise BridgeError(f"AppleScript timed out after {e.timeout} seconds") from e
        return _check_result(process.returncode, process.stdout or "", process.stderr or "")
    finally:
        # Ensure the temporary file is always removed.
        try:
            os.remove(script_path)
        except FileNotFoundError:
            pass


def is_omnifocus_running() -> bool:
    try:
        result = subprocess.run(["pgrep", "-x", "OmniFocus"], capture_output=True, check=False)
    except FileNotFoundError:
        return False
    return result.returncode == 0


def build_filter_criteria(mode: ReportMode = ReportMode.NEXT_ACTIONS, hide_completed: bool = True) -> Dict[str, Any]:
    """Criteria record handed to the plugin's ``perform`` action."""
    return {"type": ReportMode(mode).value, "hideCompleted": bool(hide_completed)}


def build_export_applescript(criteria: Mapping[str, Any], plugin_id: str, delay: float) -> str:
    """AppleScript that triggers the export plugin and returns the clipboard."""
    js_core = "PlugIn.find({}).actions[0].perform({});".format(
        json.dumps(plugin_id), json.dumps(json.dumps(dict(criteria)))
    )
    url = "omnifocus://localhost/omnijs-run?script=" + urllib.parse.quote(js_core, safe="-._~")
    return f'''
try
    tell application "OmniFocus"
        if not (exists front document) then
            error "OmniFocus has no front document. Please open a window to run the script."
        end if
        try
            GetURL "{url}"
        on error errMsgOpen number errNumOpen
            error "AppleScript Error during GetURL: " & errMsgOpen & " (Number: " & errNumOpen & ")"
        end try
    end tell

    delay {delay:g}

    set clipboardContent to (the clipboard as text)
    if clipboardContent is "" then
        error "Clipboard was empty after plugin execution and delay."
    end if
    if clipboardContent starts with "{PLUGIN_SUCCESS_MESSAGE}" then
        error "Clipboard contained plugin success message, not JSON data. Content: " & clipboardContent
    end if
    return clipboardContent
on error errorMessage number errorNumber
    return "AppleScript Error (Number: " & errorNumber & "): " & errorMessage
end try
'''


def fetch_raw_payload(
    criteria: Mapping[str, Any],
    *,
    delay: Optional[float] = None,
    plugin_id: Optional[str] = None,
    timeout: Optional[float] = None,
) -> str:
    """Run the export plugin for *criteria* and return its raw JSON text."""
    if not is_omnifocus_running():
        raise BridgeError("OmniFocus is not running or process check failed. Please start OmniFocus and try again.")

    settings = load_settings()
    mode = ReportMode(criteria.get("type", ReportMode.NEXT_ACTIONS.value))
    if delay is None:
        delay = settings.applescript_delay if settings.applescript_delay is not None else DEFAULT_DELAYS[mode]
    script = build_export_applescript(criteria, plugin_id or settings.plugin_id, delay)
    # The clipboard is read only after the delay, so the timeout has to cover it.
    timeout = timeout if timeout is not None else settings.applescript_timeout + delay
    log.debug("Requesting %s export (delay %ss)", mode.value, delay)
    return execute_omnifocus_applescript(script, timeout=timeout)
