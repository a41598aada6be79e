"""
Probes — "is this step's effect already present?"

A probe is a pure query. It never mutates the system and never raises:
any internal error counts as "not present", so the action is attempted
instead of silently skipped.

To create a new probe:
    1. Subclass Probe
    2. Implement kind, describe, _check
    3. Register it in ``steps_loader.PROBE_TYPES``
"""

from __future__ import annotations

import grp
import logging
import os
import shutil
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from provisioner.core.detection.system_deps import _is_pkg_installed

logger = logging.getLogger(__name__)


class Probe(ABC):
    """Abstract base class for all probes."""

    @property
    @abstractmethod
    def kind(self) -> str:
        """The probe identifier used in step files (e.g. 'path_exists')."""

    @abstractmethod
    def describe(self) -> str:
        """Short human-readable description of what is checked."""

    @abstractmethod
    def _check(self) -> bool:
        """Perform the query. May raise; ``evaluate`` absorbs it."""

    def evaluate(self) -> bool:
        """Return True if the effect is present. Never raises."""
        try:
            present = bool(self._check())
        except Exception as e:
            logger.warning("Probe %s failed, treating as absent: %s", self.describe(), e)
            return False
        logger.debug("Probe %s → %s", self.describe(), present)
        return present

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.describe()}>"


class PackageInstalled(Probe):
    """The package database reports ``name`` installed."""

    def __init__(self, name: str, manager: str = "apt"):
        self.name = name
        self.manager = manager

    @property
    def kind(self) -> str:
        return "package_installed"

    def describe(self) -> str:
        return f"{self.manager} package {self.name}"

    def _check(self) -> bool:
        return _is_pkg_installed(self.name, self.manager)


class PathExists(Probe):
    """A filesystem path exists."""

    def __init__(self, path: str):
        self.path = path

    @property
    def kind(self) -> str:
        return "path_exists"

    def describe(self) -> str:
        return f"path {self.path}"

    def _check(self) -> bool:
        return Path(self.path).expanduser().exists()


class RepoFileExists(PathExists):
    """A third-party apt source (or its signing key) is already configured."""

    @property
    def kind(self) -> str:
        return "repo_file_exists"

    def describe(self) -> str:
        return f"apt source {self.path}"

    def _check(self) -> bool:
        return Path(self.path).expanduser().is_file()


class CommandOnPath(Probe):
    """An executable named ``name`` resolves via the search path."""

    def __init__(self, name: str, extra_paths: list[str] | None = None):
        self.name = name
        self.extra_paths = extra_paths or []

    @property
    def kind(self) -> str:
        return "command_on_path"

    def describe(self) -> str:
        return f"command {self.name}"

    def _check(self) -> bool:
        if shutil.which(self.name):
            return True
        for directory in self.extra_paths:
            if shutil.which(self.name, path=os.path.expanduser(directory)):
                return True
        return False


class UserInGroup(Probe):
    """The current session's group memberships include ``group``.

    This reflects the running session, not /etc/group: right after
    ``usermod -aG`` it still reports False until the user logs in again.
    """

    def __init__(self, group: str):
        self.group = group

    @property
    def kind(self) -> str:
        return "user_in_group"

    def describe(self) -> str:
        return f"group {self.group}"

    def _check(self) -> bool:
        try:
            names = {grp.getgrgid(gid).gr_name for gid in os.getgroups()}
        except (KeyError, OSError) as e:
            logger.debug("Typed group lookup failed (%s), falling back to id -nG", e)
            names = _groups_from_id()
        return self.group in names


def _groups_from_id() -> set[str]:
    r = subprocess.run(["id", "-nG"], capture_output=True, text=True, timeout=10)
    return set(r.stdout.split())


class LineInFile(Probe):
    """``line`` is already present in ``path`` (e.g. a shell profile)."""

    def __init__(self, path: str, line: str):
        self.path = path
        self.line = line

    @property
    def kind(self) -> str:
        return "line_in_file"

    def describe(self) -> str:
        return f"line in {self.path}"

    def _check(self) -> bool:
        target = Path(self.path).expanduser()
        if not target.is_file():
            return False
        wanted = self.line.strip()
        with target.open(encoding="utf-8", errors="replace") as f:
            return any(existing.strip() == wanted for existing in f)


class AllOf(Probe):
    """Every child probe reports present."""

    def __init__(self, probes: list[Probe]):
        self.probes = probes

    @property
    def kind(self) -> str:
        return "all_of"

    def describe(self) -> str:
        return " and ".join(p.describe() for p in self.probes)

    def _check(self) -> bool:
        return all(p.evaluate() for p in self.probes)


class Never(Probe):
    """Always absent: the action runs every time."""

    @property
    def kind(self) -> str:
        return "never"

    def describe(self) -> str:
        return "always run"

    def _check(self) -> bool:
        return False
