"""
Tests for domain models — results, reports, and options.
"""

from pathlib import Path

from provisioner.core.errors import ErrorKind, NetworkError
from provisioner.core.models import (
    ActionResult,
    Outcome,
    ProvisionConfig,
    RunReport,
    RunState,
    StepResult,
)


class TestActionResult:
    def test_success(self):
        r = ActionResult.success("download", "/tmp/x.deb")
        assert r.ok
        assert not r.failed
        assert r.output == "/tmp/x.deb"
        assert r.error_kind is None

    def test_failure(self):
        r = ActionResult.failure("install_packages", ErrorKind.PACKAGE_MANAGER, "exit 100")
        assert r.failed
        assert r.error_kind is ErrorKind.PACKAGE_MANAGER

    def test_from_error(self):
        r = ActionResult.from_error("download", NetworkError("timed out"))
        assert r.error_kind is ErrorKind.NETWORK
        assert r.error == "timed out"


class TestRunReport:
    def _report(self) -> RunReport:
        return RunReport(
            results=[
                StepResult(step="a", outcome=Outcome.RAN),
                StepResult(step="b", outcome=Outcome.SKIPPED),
                StepResult(
                    step="c",
                    outcome=Outcome.FAILED,
                    error_kind=ErrorKind.NETWORK,
                    error="offline",
                ),
            ]
        )

    def test_counts(self):
        report = self._report()
        assert (report.total, report.ran, report.skipped, report.failed) == (3, 1, 1, 1)
        assert [r.step for r in report.failures] == ["c"]

    def test_exit_code_follows_state(self):
        report = self._report()
        report.finish(RunState.COMPLETED, 1500)
        assert report.exit_code == 0
        report.finish(RunState.ABORTED, 1500)
        assert report.exit_code == 1

    def test_summary(self):
        report = self._report()
        report.finish(RunState.COMPLETED, 2500)
        assert report.summary() == "completed: 1 ran, 1 skipped, 1 failed in 2.5s"

    def test_to_dict(self):
        report = self._report()
        report.finish(RunState.ABORTED, 10)
        data = report.to_dict()
        assert data["state"] == "aborted"
        assert data["exit_code"] == 1
        assert data["results"][2]["error_kind"] == "network"

    def test_json_roundtrip(self):
        report = self._report()
        restored = RunReport.model_validate_json(report.model_dump_json())
        assert restored.outcomes == report.outcomes


class TestProvisionConfig:
    def test_defaults(self):
        cfg = ProvisionConfig()
        assert not cfg.skip_github_login
        assert cfg.cache_path == Path("~/.cache/provisioner").expanduser()
        assert cfg.downloads_path == cfg.cache_path / "downloads"
        assert cfg.history_path == cfg.cache_path / "history.ndjson"

    def test_explicit_downloads_dir(self, tmp_path: Path):
        cfg = ProvisionConfig(cache_dir=str(tmp_path), downloads_dir=str(tmp_path / "dl"))
        assert cfg.downloads_path == tmp_path / "dl"

    def test_env_vars_expanded(self, tmp_path: Path, monkeypatch):
        monkeypatch.setenv("PROV_TEST_DIR", str(tmp_path))
        cfg = ProvisionConfig(cache_dir="$PROV_TEST_DIR/cache")
        assert cfg.cache_path == tmp_path / "cache"

    def test_effective_user(self, monkeypatch):
        monkeypatch.setenv("USER", "alice")
        assert ProvisionConfig().effective_user == "alice"
        assert ProvisionConfig(user="bob").effective_user == "bob"

    def test_is_disabled(self):
        cfg = ProvisionConfig(skip_github_login=True)
        assert cfg.is_disabled("github_login") == "skip_github_login"
        assert cfg.is_disabled("ssh_key_generation") is None
        assert cfg.is_disabled(None) is None

    def test_template_values(self):
        cfg = ProvisionConfig(git_user_email="a@b.c", distro_codename="jammy")
        values = cfg.template_values()
        assert values["git_user_email"] == "a@b.c"
        assert values["distro_codename"] == "jammy"
        assert values["home"] == str(Path.home())
