"""
Shared test fixtures and configuration.
"""

from pathlib import Path
from typing import Any

import pytest

from provisioner.core.execution.actions import ActionContext
from provisioner.core.execution.cache import DownloadCache
from provisioner.core.models.config import ProvisionConfig


class FakeCommandRunner:
    """Stands in for ``_run_subprocess``: records commands, returns canned results.

    Handlers are looked up by the command's first word; a handler receives
    the command list and keyword arguments and returns the result dict.
    """

    def __init__(self):
        self.calls: list[tuple[list[str], dict[str, Any]]] = []
        self.handlers: dict[str, Any] = {}

    def __call__(self, cmd: list[str], **kwargs: Any) -> dict[str, Any]:
        self.calls.append((list(cmd), kwargs))
        handler = self.handlers.get(cmd[0])
        if handler is None:
            return {"ok": True, "stdout": "", "elapsed_ms": 0}
        return handler(cmd, **kwargs)

    def fail(self, program: str, returncode: int = 1, stderr: str = "boom") -> None:
        """Make every call to ``program`` exit non-zero."""
        self.handlers[program] = lambda cmd, **kw: {
            "ok": False,
            "error": f"Command failed (exit {returncode})",
            "returncode": returncode,
            "stderr": stderr,
        }

    @property
    def commands(self) -> list[list[str]]:
        return [cmd for cmd, _ in self.calls]


class FakePackageDB:
    """In-memory package database wired into probes and the fake runner."""

    def __init__(self, installed: set[str] | None = None):
        self.installed: set[str] = set(installed or ())

    def is_installed(self, pkg: str, pkg_manager: str = "apt") -> bool:
        return pkg in self.installed

    def install_handler(self, cmd: list[str], **kwargs: Any) -> dict[str, Any]:
        # apt-get install -y PKG... / snap install PKG... / brew install PKG...
        names = [arg for arg in cmd[cmd.index("install") + 1:] if not arg.startswith("-")]
        self.installed.update(names)
        return {"ok": True, "stdout": "", "elapsed_ms": 0}


@pytest.fixture
def fake_runner() -> FakeCommandRunner:
    return FakeCommandRunner()


@pytest.fixture
def package_db(monkeypatch, fake_runner: FakeCommandRunner) -> FakePackageDB:
    """A fake package DB behind PackageInstalled and the install commands."""
    db = FakePackageDB()
    monkeypatch.setattr(
        "provisioner.core.detection.probes._is_pkg_installed", db.is_installed,
    )
    for program in ("apt-get", "snap", "brew"):
        fake_runner.handlers[program] = db.install_handler
    monkeypatch.setattr(
        "provisioner.core.execution.actions.brew_binary", lambda: "brew",
    )
    return db


@pytest.fixture
def config(tmp_path: Path) -> ProvisionConfig:
    """Options pointing every directory into tmp_path."""
    return ProvisionConfig(
        git_user_name="Test User",
        git_user_email="test@example.com",
        ssh_key_email="test@example.com",
        ssh_key_title="test-box",
        user="tester",
        cache_dir=str(tmp_path / "cache"),
        distro_codename="noble",
    )


@pytest.fixture
def context(config: ProvisionConfig, fake_runner: FakeCommandRunner) -> ActionContext:
    return ActionContext(
        config=config,
        cache=DownloadCache(config.downloads_path),
        runner=fake_runner,
    )
