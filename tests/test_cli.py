"""
Tests for CLI commands — run, plan, config, cache, history.
"""

import json
import textwrap
from pathlib import Path

import pytest
from click.testing import CliRunner

from provisioner.core.models.report import Outcome, RunReport, RunState, StepResult
from provisioner.core.persistence.history import HistoryWriter
from provisioner.main import cli


@pytest.fixture
def workspace(tmp_path: Path, monkeypatch) -> Path:
    """provision.yml plus a small step file, all inside tmp_path."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))
    monkeypatch.delenv("PROVISIONER_CONFIG", raising=False)
    (tmp_path / "present").mkdir()

    (tmp_path / "provision.yml").write_text(textwrap.dedent(f"""\
        git_user_name: Test User
        git_user_email: test@example.com
        ssh_key_email: test@example.com
        ssh_key_title: test-box
        cache_dir: {tmp_path / "cache"}
        steps_file: steps.yml
    """))
    (tmp_path / "steps.yml").write_text(textwrap.dedent(f"""\
        steps:
          - name: already-there
            probe: {{type: path_exists, path: {tmp_path / "present"}}}
            action: {{type: run_command, command: [mkdir, {tmp_path / "present"}]}}
          - name: marker
            critical: true
            probe: {{type: path_exists, path: {tmp_path / "marker"}}}
            action: {{type: run_command, command: [touch, {tmp_path / "marker"}]}}
            notice: Marker placed.
    """))
    return tmp_path


@pytest.fixture
def fake_system(monkeypatch, fake_runner):
    """Route every command the CLI runs through the fake runner."""
    monkeypatch.setattr(
        "provisioner.core.use_cases.provision._run_subprocess", fake_runner,
    )
    return fake_runner


def _invoke(workspace: Path, *args: str):
    runner = CliRunner()
    return runner.invoke(cli, ["--config", str(workspace / "provision.yml"), *args])


class TestCLIGlobal:
    """Tests for global CLI behavior."""

    def test_help(self):
        result = CliRunner().invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Workstation Provisioner" in result.output

    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_broken_config(self, tmp_path: Path):
        bad = tmp_path / "provision.yml"
        bad.write_text("verbose: [\n")
        result = CliRunner().invoke(cli, ["--config", str(bad), "plan"])
        assert result.exit_code == 1
        assert "Invalid YAML" in result.output


class TestRunCommand:
    def test_run(self, workspace: Path, fake_system):
        result = _invoke(workspace, "run")
        assert result.exit_code == 0
        assert "1 ran, 1 skipped, 0 failed" in result.output
        assert "Marker placed." in result.output
        assert fake_system.commands == [["touch", str(workspace / "marker")]]

    def test_json(self, workspace: Path, fake_system):
        result = _invoke(workspace, "run", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["steps_planned"] == 2
        assert [r["outcome"] for r in data["report"]["results"]] == ["skipped", "ran"]
        assert data["report"]["state"] == "completed"

    def test_critical_failure_exit_code(self, workspace: Path, fake_system):
        fake_system.fail("touch", stderr="read-only file system")
        result = _invoke(workspace, "run")
        assert result.exit_code == 1
        assert "aborted" in result.output
        assert "marker [external_script] (critical)" in result.output

    def test_history_recorded(self, workspace: Path, fake_system):
        _invoke(workspace, "run")
        reports = HistoryWriter(workspace / "cache" / "history.ndjson").read_all()
        assert len(reports) == 1
        assert reports[0].outcomes == [Outcome.SKIPPED, Outcome.RAN]

    def test_dry_run(self, workspace: Path, fake_system):
        result = _invoke(workspace, "run", "--dry-run", "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["report"]["dry_run"] is True
        assert "dry-run" in data["report"]["results"][1]["reason"]
        assert fake_system.calls == []
        assert not (workspace / "cache" / "history.ndjson").exists()

    def test_mock(self, workspace: Path, fake_system):
        result = _invoke(workspace, "run", "--mock")
        assert result.exit_code == 0
        assert "[mock]" in result.output
        assert fake_system.calls == []

    def test_only(self, workspace: Path, fake_system):
        result = _invoke(workspace, "run", "--only", "marker", "--json")
        data = json.loads(result.output)
        assert [r["step"] for r in data["report"]["results"]] == ["marker"]

    def test_only_unknown(self, workspace: Path, fake_system):
        result = _invoke(workspace, "run", "--only", "nope")
        assert result.exit_code == 1
        assert "Unknown step(s): nope" in result.output

    def test_steps_override(self, workspace: Path, fake_system):
        other = workspace / "other.yml"
        other.write_text("steps:\n  - name: solo\n    action: {type: run_command, command: [echo, hi]}\n")
        result = _invoke(workspace, "run", "--steps", str(other), "--json")
        data = json.loads(result.output)
        assert data["steps_planned"] == 1
        assert fake_system.commands == [["echo", "hi"]]


class TestPlanCommand:
    def test_plan(self, workspace: Path):
        result = _invoke(workspace, "plan")
        assert result.exit_code == 0
        assert "2 steps, 1 pending" in result.output
        assert "already-there" in result.output

    def test_plan_json(self, workspace: Path):
        result = _invoke(workspace, "plan", "--json")
        data = json.loads(result.output)
        assert data["pending"] == 1
        assert [s["present"] for s in data["steps"]] == [True, False]


class TestConfigCommands:
    def test_check_valid(self, workspace: Path):
        result = _invoke(workspace, "config", "check")
        assert result.exit_code == 0
        assert "Configuration is valid" in result.output

    def test_check_json(self, workspace: Path):
        result = _invoke(workspace, "config", "check", "--json")
        data = json.loads(result.output)
        assert data["valid"] is True
        assert data["step_count"] == 2
        assert data["warnings"] == []

    def test_check_bad_steps(self, workspace: Path):
        (workspace / "steps.yml").write_text("steps:\n  - name: x\n    action: {type: teleport}\n")
        result = _invoke(workspace, "config", "check")
        assert result.exit_code == 1
        assert "Unknown action type 'teleport'" in result.output

    def test_show(self, workspace: Path):
        result = _invoke(workspace, "config", "show")
        assert result.exit_code == 0
        assert "git_user_email: test@example.com" in result.output
        assert "downloads_dir:" in result.output


class TestCacheCommands:
    def test_list_and_clear(self, workspace: Path):
        downloads = workspace / "cache" / "downloads"
        downloads.mkdir(parents=True)
        (downloads / "chrome.deb").write_bytes(b"x" * 10)

        result = _invoke(workspace, "cache", "list")
        assert result.exit_code == 0
        assert "chrome.deb" in result.output

        result = _invoke(workspace, "cache", "clear", "--yes")
        assert result.exit_code == 0
        assert "Removed 1 files" in result.output
        assert not (downloads / "chrome.deb").exists()

    def test_clear_asks(self, workspace: Path):
        result = CliRunner().invoke(
            cli,
            ["--config", str(workspace / "provision.yml"), "cache", "clear"],
            input="n\n",
        )
        assert result.exit_code == 1


class TestHistoryCommand:
    def test_empty(self, workspace: Path):
        result = _invoke(workspace, "history")
        assert result.exit_code == 0
        assert "No runs recorded yet" in result.output

    def test_lists_runs(self, workspace: Path):
        report = RunReport(
            run_id="run-1",
            state=RunState.ABORTED,
            results=[StepResult(step="docker", outcome=Outcome.FAILED, critical=True)],
        )
        HistoryWriter(workspace / "cache" / "history.ndjson").write(report)

        result = _invoke(workspace, "history")
        assert "aborted: 0 ran, 0 skipped, 1 failed" in result.output
        assert "docker" in result.output

        data = json.loads(_invoke(workspace, "history", "--json").output)
        assert data[0]["run_id"] == "run-1"

    def test_count_must_be_positive(self, workspace: Path):
        result = _invoke(workspace, "history", "-n", "0")
        assert result.exit_code == 2
