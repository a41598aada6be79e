"""Execution — actions, the download cache, and the subprocess runner."""

from provisioner.core.execution.actions import (
    Action,
    ActionContext,
    AppendLine,
    Chain,
    CreateGroupAndAddUser,
    DownloadAndCache,
    InstallDeb,
    InstallPackages,
    InstallSigningKey,
    RunCommand,
    RunShellSnippet,
    UpdatePackageIndex,
    WriteAptSource,
)
from provisioner.core.execution.cache import DownloadCache

__all__ = [
    "Action",
    "ActionContext",
    "AppendLine",
    "Chain",
    "CreateGroupAndAddUser",
    "DownloadAndCache",
    "DownloadCache",
    "InstallDeb",
    "InstallPackages",
    "InstallSigningKey",
    "RunCommand",
    "RunShellSnippet",
    "UpdatePackageIndex",
    "WriteAptSource",
]
