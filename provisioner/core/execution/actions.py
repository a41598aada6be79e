"""
Actions — the side-effecting half of a step.

An action establishes a step's effect: install packages, write an apt
source, run an installer script. Actions are not idempotent on their
own (the step's probe guards them) and they NEVER raise: every failure
is captured in the ActionResult with an ``ErrorKind``.

To create a new action:
    1. Subclass Action
    2. Implement kind, describe, _execute
    3. Register it in ``steps_loader.ACTION_TYPES``
"""

from __future__ import annotations

import logging
import os
import shlex
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from provisioner.core.detection.probes import PackageInstalled
from provisioner.core.detection.system_deps import SUPPORTED_MANAGERS, brew_binary
from provisioner.core.errors import (
    ErrorKind,
    ExternalScriptError,
    IOFailure,
    PackageManagerError,
    PermissionDeniedError,
    PrivilegeError,
    ProvisionError,
)
from provisioner.core.execution.cache import DownloadCache
from provisioner.core.execution.script_verify import script_command, verify_checksum
from provisioner.core.execution.subprocess_runner import _run_subprocess, describe_failure
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.result import ActionResult

logger = logging.getLogger(__name__)

CommandRunner = Callable[..., dict[str, Any]]

_PACKAGE_TOOLS = {"apt", "apt-get", "dpkg", "snap", "brew"}


@dataclass
class ActionContext:
    """Everything an action needs to execute.

    ``previous_output`` carries the output of the preceding action in a
    Chain (e.g. the path DownloadAndCache produced for InstallDeb).
    """

    config: ProvisionConfig = field(default_factory=ProvisionConfig)
    cache: DownloadCache | None = None
    previous_output: str = ""
    runner: CommandRunner = _run_subprocess

    def run(self, cmd: list[str], **kwargs: Any) -> dict[str, Any]:
        return self.runner(cmd, **kwargs)

    def require_cache(self) -> DownloadCache:
        if self.cache is None:
            self.cache = DownloadCache(self.config.downloads_path)
        return self.cache


class Action(ABC):
    """Abstract base class for all actions."""

    # Kind reported when an unexpected exception escapes _execute
    default_error_kind: ErrorKind = ErrorKind.IO

    @property
    @abstractmethod
    def kind(self) -> str:
        """The action identifier used in step files (e.g. 'install_packages')."""

    @abstractmethod
    def describe(self) -> str:
        """Short human-readable description of the effect."""

    @abstractmethod
    def _execute(self, context: ActionContext) -> ActionResult:
        """Perform the action. May raise ProvisionError; ``execute`` absorbs it."""

    def execute(self, context: ActionContext) -> ActionResult:
        """Run the action and return its result. Never raises."""
        start = time.monotonic()
        try:
            result = self._execute(context)
        except ProvisionError as e:
            result = ActionResult.from_error(self.kind, e)
        except Exception as e:
            logger.error("Action %s raised: %s", self.describe(), e)
            result = ActionResult.failure(
                self.kind, self.default_error_kind, f"Unexpected error: {e}",
            )
        result.duration_ms = int((time.monotonic() - start) * 1000)
        return result

    def _failed(self, kind: ErrorKind, run: dict[str, Any]) -> ActionResult:
        """Failure result from a ``_run_subprocess`` dict."""
        if run.get("needs_sudo"):
            kind = ErrorKind.PERMISSION
        return ActionResult.failure(
            self.kind,
            kind,
            describe_failure(run),
            metadata={k: v for k, v in run.items() if k in ("returncode", "stderr")},
        )

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.describe()}>"


# ── Package managers ────────────────────────────────────────────


def _dedupe(names: list[str]) -> list[str]:
    return list(dict.fromkeys(n for n in names if n))


class InstallPackages(Action):
    """Install the packages not already present, in one batched call."""

    default_error_kind = ErrorKind.PACKAGE_MANAGER

    def __init__(self, names: list[str], manager: str = "apt", classic: bool = False):
        if manager not in SUPPORTED_MANAGERS:
            raise ValueError(f"Unsupported package manager: {manager}")
        self.names = _dedupe(names)
        self.manager = manager
        self.classic = classic

    @property
    def kind(self) -> str:
        return "install_packages"

    def describe(self) -> str:
        return f"{self.manager} install {' '.join(self.names)}"

    def missing(self) -> list[str]:
        return [n for n in self.names if not PackageInstalled(n, self.manager).evaluate()]

    def _execute(self, context: ActionContext) -> ActionResult:
        missing = self.missing()
        if not missing:
            return ActionResult.success(self.kind, "nothing to do")

        if self.manager == "apt":
            run = context.run(
                ["apt-get", "install", "-y", *missing],
                needs_sudo=True,
                env_overrides={"DEBIAN_FRONTEND": "noninteractive"},
            )
        elif self.manager == "snap":
            cmd = ["snap", "install", *missing]
            if self.classic:
                cmd.append("--classic")
            run = context.run(cmd, needs_sudo=True)
        else:
            run = context.run([brew_binary(), "install", *missing])

        if not run["ok"]:
            return self._failed(ErrorKind.PACKAGE_MANAGER, run)
        return ActionResult.success(
            self.kind, f"installed {' '.join(missing)}", metadata={"installed": missing},
        )


class UpdatePackageIndex(Action):
    """Refresh the package database after adding a source."""

    default_error_kind = ErrorKind.PACKAGE_MANAGER

    def __init__(self, manager: str = "apt"):
        self.manager = manager

    @property
    def kind(self) -> str:
        return "update_package_index"

    def describe(self) -> str:
        return f"{self.manager} update"

    def _execute(self, context: ActionContext) -> ActionResult:
        if self.manager == "brew":
            run = context.run([brew_binary(), "update"])
        else:
            run = context.run(["apt-get", "update"], needs_sudo=True)
        if not run["ok"]:
            return self._failed(ErrorKind.PACKAGE_MANAGER, run)
        return ActionResult.success(self.kind, "package index updated")


class InstallDeb(Action):
    """Install a local .deb, repairing missing dependencies if dpkg fails.

    Without ``path`` the previous action's output is used, so
    ``Chain([DownloadAndCache(url), InstallDeb()])`` installs a download.
    """

    default_error_kind = ErrorKind.PACKAGE_MANAGER

    def __init__(self, path: str = ""):
        self.path = path

    @property
    def kind(self) -> str:
        return "install_deb"

    def describe(self) -> str:
        return f"dpkg -i {self.path or '<downloaded file>'}"

    def _execute(self, context: ActionContext) -> ActionResult:
        path = self.path or context.previous_output
        if not path:
            raise IOFailure("No .deb path to install")

        run = context.run(["dpkg", "-i", path], needs_sudo=True)
        if not run["ok"]:
            logger.info("dpkg -i failed, resolving dependencies with apt-get -f install")
            run = context.run(
                ["apt-get", "-f", "install", "-y"],
                needs_sudo=True,
                env_overrides={"DEBIAN_FRONTEND": "noninteractive"},
            )
            if not run["ok"]:
                raise PackageManagerError(describe_failure(run))
        return ActionResult.success(self.kind, path)


# ── Files ───────────────────────────────────────────────────────


class WriteAptSource(Action):
    """Write an apt source definition, through sudo when required."""

    def __init__(self, path: str, contents: str):
        self.path = path
        self.contents = contents if contents.endswith("\n") else contents + "\n"

    @property
    def kind(self) -> str:
        return "write_apt_source"

    def describe(self) -> str:
        return f"write {self.path}"

    def _execute(self, context: ActionContext) -> ActionResult:
        target = Path(self.path).expanduser()
        if os.access(target.parent, os.W_OK):
            try:
                target.write_text(self.contents, encoding="utf-8")
            except PermissionError as e:
                raise PermissionDeniedError(str(e)) from e
            except OSError as e:
                raise IOFailure(str(e)) from e
            return ActionResult.success(self.kind, str(target))

        if not target.parent.is_dir():
            raise IOFailure(f"Directory does not exist: {target.parent}")

        run = context.run(
            ["tee", str(target)], needs_sudo=True, input_text=self.contents,
        )
        if not run["ok"]:
            return self._failed(ErrorKind.IO, run)
        return ActionResult.success(self.kind, str(target))


class InstallSigningKey(Action):
    """Fetch a repository signing key and install it under the keyring path."""

    def __init__(self, url: str, path: str, dearmor: bool = True):
        self.url = url
        self.path = path
        self.dearmor = dearmor

    @property
    def kind(self) -> str:
        return "install_signing_key"

    def describe(self) -> str:
        return f"signing key {self.path}"

    def _execute(self, context: ActionContext) -> ActionResult:
        entry = context.require_cache().fetch(self.url)
        target = str(Path(self.path).expanduser())
        if self.dearmor:
            cmd = ["gpg", "--batch", "--yes", "--dearmor", "-o", target, entry.filepath]
        else:
            cmd = ["install", "-m", "0644", entry.filepath, target]
        run = context.run(cmd, needs_sudo=True)
        if not run["ok"]:
            return self._failed(ErrorKind.IO, run)
        return ActionResult.success(self.kind, target)


class AppendLine(Action):
    """Append a line to a file such as a shell profile."""

    def __init__(self, path: str, line: str):
        self.path = path
        self.line = line

    @property
    def kind(self) -> str:
        return "append_line"

    def describe(self) -> str:
        return f"append to {self.path}"

    def _execute(self, context: ActionContext) -> ActionResult:
        target = Path(self.path).expanduser()
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            prefix = ""
            if target.is_file() and target.stat().st_size > 0:
                with target.open("rb") as f:
                    f.seek(-1, os.SEEK_END)
                    if f.read(1) != b"\n":
                        prefix = "\n"
            with target.open("a", encoding="utf-8") as f:
                f.write(f"{prefix}{self.line}\n")
        except PermissionError as e:
            raise PermissionDeniedError(str(e)) from e
        except OSError as e:
            raise IOFailure(str(e)) from e
        return ActionResult.success(self.kind, str(target))


# ── Downloads and scripts ───────────────────────────────────────


class DownloadAndCache(Action):
    """Make ``url`` available locally. Output is the cached file path."""

    default_error_kind = ErrorKind.NETWORK

    def __init__(self, url: str, filename: str = ""):
        self.url = url
        self.filename = filename

    @property
    def kind(self) -> str:
        return "download"

    def describe(self) -> str:
        return f"download {self.url}"

    def _execute(self, context: ActionContext) -> ActionResult:
        entry = context.require_cache().fetch(self.url, self.filename)
        return ActionResult.success(
            self.kind,
            entry.filepath,
            metadata={"fetched": entry.fetched, "size_bytes": entry.size_bytes},
        )


class RunShellSnippet(Action):
    """Run a third-party installer script, or a literal snippet.

    With ``url`` the script is downloaded into the cache, checked against
    ``sha256`` when one is given, and executed from the local file.
    ``filename`` names the cached copy when the URL basename is ambiguous.
    Fetch failures are NETWORK errors; anything the script does wrong
    is an EXTERNAL_SCRIPT error.
    """

    default_error_kind = ErrorKind.EXTERNAL_SCRIPT

    def __init__(
        self,
        url: str = "",
        script: str = "",
        sha256: str = "",
        args: list[str] | None = None,
        interpreter: str = "bash",
        sudo: bool = False,
        env: dict[str, str] | None = None,
        filename: str = "",
    ):
        if bool(url) == bool(script):
            raise ValueError("RunShellSnippet needs exactly one of 'url' or 'script'")
        self.url = url
        self.script = script
        self.sha256 = sha256
        self.args = args or []
        self.interpreter = interpreter
        self.sudo = sudo
        self.env = env or {}
        self.filename = filename

    @property
    def kind(self) -> str:
        return "run_script"

    def describe(self) -> str:
        if self.url:
            return f"run script {self.url}"
        return f"run {self.interpreter} snippet"

    def _execute(self, context: ActionContext) -> ActionResult:
        if self.url:
            entry = context.require_cache().fetch(self.url, self.filename)
            path = Path(entry.filepath)
            if self.sha256:
                matches, actual = verify_checksum(path, self.sha256)
                if not matches:
                    # Drop the artifact so a later run fetches a fresh copy
                    path.unlink(missing_ok=True)
                    raise ExternalScriptError(f"SHA256 mismatch for {self.url}: got {actual}")
            cmd = script_command(path, self.args, self.interpreter)
        else:
            cmd = [self.interpreter, "-c", self.script, *self.args]

        run = context.run(cmd, needs_sudo=self.sudo, env_overrides=self.env or None)
        if not run["ok"]:
            return self._failed(ErrorKind.EXTERNAL_SCRIPT, run)
        return ActionResult.success(self.kind, run.get("stdout", "").strip())


class RunCommand(Action):
    """Run an arbitrary command (git config, ssh-keygen, git clone, ...)."""

    default_error_kind = ErrorKind.EXTERNAL_SCRIPT

    def __init__(
        self,
        command: list[str] | str,
        sudo: bool = False,
        shell: bool = False,
        env: dict[str, str] | None = None,
        interactive: bool = False,
    ):
        if isinstance(command, str):
            self.argv = ["bash", "-c", command] if shell else shlex.split(command)
        else:
            self.argv = list(command)
        if not self.argv:
            raise ValueError("RunCommand needs a non-empty command")
        self.sudo = sudo
        self.env = env or {}
        self.interactive = interactive

    @property
    def kind(self) -> str:
        return "run_command"

    def describe(self) -> str:
        return shlex.join(self.argv)

    def _execute(self, context: ActionContext) -> ActionResult:
        run = context.run(
            self.argv,
            needs_sudo=self.sudo,
            env_overrides=self.env or None,
            interactive=self.interactive,
        )
        if not run["ok"]:
            if run.get("missing"):
                kind = ErrorKind.IO
            elif Path(self.argv[0]).name in _PACKAGE_TOOLS:
                kind = ErrorKind.PACKAGE_MANAGER
            else:
                kind = ErrorKind.EXTERNAL_SCRIPT
            return self._failed(kind, run)
        return ActionResult.success(self.kind, run.get("stdout", "").strip())


# ── Identity ────────────────────────────────────────────────────


class CreateGroupAndAddUser(Action):
    """Create ``group`` if needed and add ``user`` to it.

    Membership only applies to new login sessions.
    """

    default_error_kind = ErrorKind.PRIVILEGE

    def __init__(self, group: str, user: str = ""):
        self.group = group
        self.user = user

    @property
    def kind(self) -> str:
        return "add_user_to_group"

    def describe(self) -> str:
        return f"add {self.user or '<current user>'} to {self.group}"

    def _execute(self, context: ActionContext) -> ActionResult:
        user = self.user or context.config.effective_user

        run = context.run(["groupadd", "-f", self.group], needs_sudo=True)
        if not run["ok"]:
            raise PrivilegeError(describe_failure(run))

        run = context.run(["usermod", "-aG", self.group, user], needs_sudo=True)
        if not run["ok"]:
            raise PrivilegeError(describe_failure(run))

        return ActionResult.success(self.kind, f"{user} added to {self.group}")


# ── Composition ─────────────────────────────────────────────────


class Chain(Action):
    """Run actions in order, feeding each one's output to the next."""

    def __init__(self, actions: list[Action]):
        if not actions:
            raise ValueError("Chain needs at least one action")
        self.actions = actions

    @property
    def kind(self) -> str:
        return "chain"

    def describe(self) -> str:
        return " → ".join(a.describe() for a in self.actions)

    def _execute(self, context: ActionContext) -> ActionResult:
        *head, last = self.actions
        for action in head:
            result = action.execute(context)
            if result.failed:
                return result
            context.previous_output = result.output
        return last.execute(context)
