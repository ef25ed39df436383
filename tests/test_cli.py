"""
Test suite for the main CLI interface.
"""
import json

import pytest
from typer.testing import CliRunner

from ofreport import __version__
from ofreport.cli import app
from ofreport.commands import report_command
from ofreport.omnifocus_api.apple_script_client import BridgeError
from ofreport.omnifocus_api.data_models import Database
from ofreport.omnifocus_api.normalizer import normalize

runner = CliRunner()


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    """Keep .ofreport.env files and the default export path inside tmp_path."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.setenv("OF_EXPORT_PATH", str(tmp_path / "default_export.json"))


@pytest.fixture
def fake_fetch(monkeypatch):
    """Replace the bridge with a canned payload and record the criteria it received."""

    def _install(payload):
        calls = []

        def _fetch(criteria, delay=None):
            calls.append((criteria, delay))
            return json.dumps(payload)

        monkeypatch.setattr(report_command, "fetch_raw_payload", _fetch)
        return calls

    return _install


class TestCLI:
    """Test cases for the main CLI application."""

    def test_cli_help(self):
        result = runner.invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("report", "dump", "render", "summary", "flagged"):
            assert command in result.output

    def test_cli_version(self):
        result = runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"ofreport {__version__}" in result.output

    def test_invalid_command(self):
        result = runner.invoke(app, ["nonexistent-command"])
        assert result.exit_code != 0


class TestRender:
    def test_render_file(self, write_json, flat_payload):
        result = runner.invoke(app, ["render", write_json(flat_payload)])
        assert result.exit_code == 0
        assert "# OMNIFOCUS [" in result.output
        assert "      • Write brief <off,pho> #next" in result.output

    def test_render_show_completed(self, write_json, flat_payload):
        flat_payload["tasks"][2]["taskStatus"] = "Completed"
        path = write_json(flat_payload)

        hidden = runner.invoke(app, ["render", path])
        shown = runner.invoke(app, ["render", path, "--show-completed"])

        assert "Send invoice" not in hidden.output
        assert "Send invoice #compl" in shown.output

    def test_render_export_file(self, legacy_payload, tmp_path):
        export = tmp_path / "export.json"
        report_command.write_export(normalize(legacy_payload, "full_dump"), export)

        result = runner.invoke(app, ["render", str(export)])
        assert result.exit_code == 0
        assert "         • Collect numbers #avail" in result.output

    def test_render_invalid_json(self, tmp_path):
        bad = tmp_path / "bad.json"
        bad.write_text("AppleScript Error (Number: -1728)", encoding="utf-8")

        result = runner.invoke(app, ["render", str(bad)])
        assert result.exit_code == 1
        assert "Failed to parse bridge output as JSON" in result.output

    def test_render_missing_file(self, tmp_path):
        result = runner.invoke(app, ["render", str(tmp_path / "missing.json")])
        assert result.exit_code == 1
        assert "Error:" in result.output


class TestSummary:
    def test_summary_table(self, write_json, flat_payload):
        result = runner.invoke(app, ["summary", write_json(flat_payload)])
        assert result.exit_code == 0
        assert "Folders" in result.output
        assert "Tasks" in result.output
        assert "Version: 1.0" in result.output


class TestReport:
    def test_report_prints_and_exports(self, fake_fetch, filtered_payload, tmp_path):
        calls = fake_fetch(filtered_payload)
        export = tmp_path / "out" / "export.json"

        result = runner.invoke(app, ["report", "--export", str(export)])

        assert result.exit_code == 0
        assert "P: Home" in result.output
        assert "Buy milk (15m) <err> #next" in result.output
        assert calls == [({"type": "next_actions", "hideCompleted": True}, None)]
        assert Database.from_json(export.read_text(encoding="utf-8")).projects["p1"].name == "Home"

    def test_report_options(self, fake_fetch, filtered_payload, tmp_path):
        calls = fake_fetch(filtered_payload)

        result = runner.invoke(
            app, ["report", "--mode", "full_dump", "--show-completed", "--delay", "7", "--no-export"]
        )

        assert result.exit_code == 0
        assert calls == [({"type": "full_dump", "hideCompleted": False}, 7.0)]
        assert not (tmp_path / "default_export.json").exists()

    def test_report_default_export_path(self, fake_fetch, filtered_payload, tmp_path):
        fake_fetch(filtered_payload)
        result = runner.invoke(app, ["report"])
        assert result.exit_code == 0
        assert (tmp_path / "default_export.json").exists()

    def test_report_bridge_error(self, monkeypatch):
        def _fail(criteria, delay=None):
            raise BridgeError("OmniFocus is not running or process check failed.")

        monkeypatch.setattr(report_command, "fetch_raw_payload", _fail)
        result = runner.invoke(app, ["report"])

        assert result.exit_code == 1
        assert "OmniFocus is not running" in result.output
        assert "# OMNIFOCUS" not in result.output

    def test_report_parse_error(self, monkeypatch):
        monkeypatch.setattr(report_command, "fetch_raw_payload", lambda criteria, delay=None: "not json")
        result = runner.invoke(app, ["report", "--no-export"])
        assert result.exit_code == 1
        assert "not json" in result.output


class TestDump:
    def test_dump_writes_export(self, fake_fetch, flat_payload, tmp_path):
        calls = fake_fetch(flat_payload)
        output = tmp_path / "dump.json"

        result = runner.invoke(app, ["dump", "--output", str(output)])

        assert result.exit_code == 0
        assert "Export complete!" in result.output
        assert "Summary: 2 folders, 2 projects, 4 tasks, 2 tags." in result.output
        assert calls == [({"type": "full_dump", "hideCompleted": False}, None)]
        assert json.loads(output.read_text(encoding="utf-8"))["version"] == "1.0"

    def test_dump_bridge_error(self, monkeypatch):
        def _fail(criteria, delay=None):
            raise BridgeError("AppleScript timed out after 150 seconds")

        monkeypatch.setattr(report_command, "fetch_raw_payload", _fail)
        result = runner.invoke(app, ["dump"])
        assert result.exit_code == 1
        assert "timed out" in result.output


class TestFlagged:
    def test_flagged_fetches_full_dump(self, fake_fetch, filtered_payload):
        calls = fake_fetch(filtered_payload)

        result = runner.invoke(app, ["flagged", "--delay", "3"])

        assert result.exit_code == 0
        assert "Flagged Items Analysis" in result.output
        assert "Focus on 1 actionable next actions" in result.output
        assert calls == [({"type": "full_dump", "hideCompleted": False}, 3.0)]

    def test_flagged_file_with_output(self, write_json, filtered_payload, tmp_path):
        output = tmp_path / "flagged.json"

        result = runner.invoke(app, ["flagged", write_json(filtered_payload), "--output", str(output)])

        assert result.exit_code == 0
        data = json.loads(output.read_text(encoding="utf-8"))
        assert data["summary"]["totalFlaggedTasks"] == 1
        assert data["buckets"]["actionable"] == ["t1"]

    def test_flagged_bridge_error(self, monkeypatch):
        def _fail(criteria, delay=None):
            raise BridgeError("OmniFocus is not running or process check failed.")

        monkeypatch.setattr(report_command, "fetch_raw_payload", _fail)
        result = runner.invoke(app, ["flagged"])
        assert result.exit_code == 1
        assert "Error: OmniFocus is not running" in result.output


class TestBadSettings:
    @pytest.mark.parametrize("key", ["OF_APPLESCRIPT_TIMEOUT", "OF_APPLESCRIPT_DELAY"])
    def test_report_with_non_numeric_setting(self, monkeypatch, key):
        monkeypatch.setenv(key, "soon")

        result = runner.invoke(app, ["report"])

        assert result.exit_code == 1
        assert f"Error: {key} must be a number, got 'soon'" in result.output
        assert "Traceback" not in result.output

    def test_dump_with_non_numeric_setting(self, monkeypatch, fake_fetch, flat_payload):
        fake_fetch(flat_payload)
        monkeypatch.setenv("OF_APPLESCRIPT_DELAY", "later")
        monkeypatch.delenv("OF_EXPORT_PATH")

        result = runner.invoke(app, ["dump"])

        assert result.exit_code == 1
        assert "OF_APPLESCRIPT_DELAY must be a number" in result.output
