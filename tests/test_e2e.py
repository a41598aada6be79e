"""
End-to-end tests — full provisioning runs through the use case.

Steps come from a real step file; packages live in an in-memory
database and every command goes through the fake runner, so nothing
touches the host.
"""

from __future__ import annotations

import io
import textwrap
from pathlib import Path

import pytest

from provisioner.core.config.steps_loader import bundled_steps_path, load_steps
from provisioner.core.errors import ErrorKind
from provisioner.core.execution.actions import ActionContext
from provisioner.core.execution.cache import DownloadCache
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.report import Outcome, RunState
from provisioner.core.persistence.history import HistoryWriter
from provisioner.core.use_cases.provision import plan_provisioning, run_provisioning


@pytest.fixture()
def steps_file(tmp_path: Path) -> Path:
    path = tmp_path / "steps.yml"
    path.write_text(textwrap.dedent(f"""\
        steps:
          - name: curl
            probe: {{type: package_installed, name: curl}}
            action: {{type: install_packages, names: [curl]}}
          - name: test-source
            critical: true
            probe: {{type: repo_file_exists, path: {tmp_path / "test.list"}}}
            action:
              type: write_apt_source
              path: {tmp_path / "test.list"}
              contents: "deb https://example.invalid {{distro_codename}} main"
          - name: gh
            critical: true
            probe: {{type: package_installed, name: gh}}
            action: {{type: install_packages, names: [gh]}}
    """))
    return path


def _run(config: ProvisionConfig, steps_file: Path, runner, **kwargs):
    return run_provisioning(
        config=config, steps_path=steps_file, command_runner=runner, **kwargs,
    )


class TestFreshMachine:
    def test_first_run_then_rerun(self, config, steps_file, fake_runner, package_db, tmp_path):
        first = _run(config, steps_file, fake_runner)
        assert first.exit_code == 0
        assert first.report.outcomes == [Outcome.RAN, Outcome.RAN, Outcome.RAN]
        assert (tmp_path / "test.list").read_text() == "deb https://example.invalid noble main\n"
        assert package_db.installed == {"curl", "gh"}

        fake_runner.calls.clear()
        second = _run(config, steps_file, fake_runner)
        assert second.report.outcomes == [Outcome.SKIPPED, Outcome.SKIPPED, Outcome.SKIPPED]
        assert second.report.state is RunState.COMPLETED
        assert fake_runner.calls == []

    def test_partially_provisioned(self, config, steps_file, fake_runner, package_db):
        package_db.installed = {"curl"}
        result = _run(config, steps_file, fake_runner)
        assert result.report.outcomes == [Outcome.SKIPPED, Outcome.RAN, Outcome.RAN]

    def test_history_written(self, config, steps_file, fake_runner, package_db):
        _run(config, steps_file, fake_runner)
        _run(config, steps_file, fake_runner)
        history = HistoryWriter(config.history_path).read_all()
        assert [r.ran for r in history] == [3, 0]


class TestFailures:
    def test_non_critical_failure_continues(self, config, steps_file, fake_runner, package_db):
        def _apt(cmd, **kwargs):
            if "curl" in cmd:
                return {"ok": False, "error": "Command failed (exit 100)", "returncode": 100,
                        "stderr": "E: Could not get lock"}
            return package_db.install_handler(cmd, **kwargs)

        fake_runner.handlers["apt-get"] = _apt
        result = _run(config, steps_file, fake_runner)

        assert result.report.outcomes == [Outcome.FAILED, Outcome.RAN, Outcome.RAN]
        assert result.report.state is RunState.COMPLETED
        assert result.exit_code == 0
        assert result.report.failures[0].error_kind is ErrorKind.PACKAGE_MANAGER

    def test_critical_failure_aborts(self, config, steps_file, fake_runner, package_db, monkeypatch):
        monkeypatch.setattr("provisioner.core.execution.actions.os.access", lambda p, mode: False)
        fake_runner.handlers["tee"] = lambda cmd, **kw: {
            "ok": False, "needs_sudo": True, "error": "sudo: a password is required",
        }
        result = _run(config, steps_file, fake_runner)

        assert result.report.outcomes == [Outcome.RAN, Outcome.FAILED]
        assert result.report.state is RunState.ABORTED
        assert result.report.failures[0].error_kind is ErrorKind.PERMISSION
        assert result.exit_code == 1
        assert "gh" not in package_db.installed

    def test_broken_step_file(self, config, tmp_path, fake_runner):
        bad = tmp_path / "bad.yml"
        bad.write_text("steps: nope\n")
        result = _run(config, bad, fake_runner)
        assert result.error
        assert result.exit_code == 1
        assert result.to_dict() == {"error": result.error}


class TestModes:
    def test_dry_run_changes_nothing(self, config, steps_file, fake_runner, package_db, tmp_path):
        result = _run(config, steps_file, fake_runner, dry_run=True)
        assert result.report.outcomes == [Outcome.SKIPPED] * 3
        assert all(r.reason.startswith("dry-run") for r in result.report.results)
        assert fake_runner.calls == []
        assert not (tmp_path / "test.list").exists()
        assert not config.history_path.exists()

    def test_mock_mode(self, config, steps_file, fake_runner, package_db):
        result = _run(config, steps_file, fake_runner, mock_mode=True)
        assert result.report.outcomes == [Outcome.RAN] * 3
        assert fake_runner.calls == []
        assert not config.history_path.exists()

    def test_plan(self, config, steps_file, package_db, tmp_path):
        package_db.installed = {"gh"}
        config_file = tmp_path / "provision.yml"
        config_file.write_text(f"cache_dir: {tmp_path / 'cache'}\ndistro_codename: noble\n")

        result = plan_provisioning(config_path=config_file, steps_path=steps_file)
        assert [s.present for s in result.steps] == [False, False, True]
        assert result.pending == 2


class TestDownloads:
    def test_installer_fetched_once(self, config, tmp_path, fake_runner, package_db, monkeypatch):
        fetched = []

        def _opener(url, timeout):
            fetched.append(url)
            return io.BytesIO(b"deb package")

        monkeypatch.setattr("provisioner.core.execution.cache._urlopen", _opener)
        steps = tmp_path / "chrome.yml"
        steps.write_text(textwrap.dedent("""\
            steps:
              - name: google-chrome
                probe: {type: package_installed, name: google-chrome-stable}
                action:
                  type: chain
                  actions:
                    - {type: download, url: "https://dl.example.invalid/google-chrome-stable_current_amd64.deb"}
                    - {type: install_deb}
        """))

        _run(config, steps, fake_runner)
        _run(config, steps, fake_runner)

        assert len(fetched) == 1
        deb = str(config.downloads_path / "google-chrome-stable_current_amd64.deb")
        assert fake_runner.commands == [["dpkg", "-i", deb], ["dpkg", "-i", deb]]


class TestBundledInstallers:
    def test_each_script_step_runs_its_own_installer(self, config, fake_runner, monkeypatch):
        def _opener(url, timeout):
            return io.BytesIO(f"# script from {url}\n".encode())

        monkeypatch.setattr("provisioner.core.execution.cache._urlopen", _opener)
        steps = {s.name: s for s in load_steps(config, bundled_steps_path())}
        context = ActionContext(
            config=config, cache=DownloadCache(config.downloads_path), runner=fake_runner,
        )

        assert steps["oh-my-zsh"].action.execute(context).ok
        assert steps["homebrew"].action.execute(context).ok

        omz_cmd, brew_cmd = fake_runner.commands
        assert "ohmyzsh" in Path(omz_cmd[1]).read_text()
        assert "Homebrew" in Path(brew_cmd[1]).read_text()
        assert omz_cmd[1] != brew_cmd[1]
