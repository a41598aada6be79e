"""
Error taxonomy — the failure kinds a provisioning step can report.

Layers that raise (cache, config, subprocess helpers) use the exception
classes below. Actions catch them and turn them into failed
ActionResults carrying the same ``ErrorKind``, so the runner only ever
sees values, never exceptions.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Why an action failed."""

    PERMISSION = "permission"            # privilege required for a write
    NETWORK = "network"                  # fetch / download failure
    PACKAGE_MANAGER = "package_manager"  # non-zero from install / update
    EXTERNAL_SCRIPT = "external_script"  # third-party script failure
    PRIVILEGE = "privilege"              # group / user management failure
    IO = "io"                            # file write failure


class ProvisionError(Exception):
    """Base class for errors raised below the action layer."""

    kind: ErrorKind = ErrorKind.IO

    def __init__(self, message: str, kind: ErrorKind | None = None):
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class PermissionDeniedError(ProvisionError):
    kind = ErrorKind.PERMISSION


class NetworkError(ProvisionError):
    kind = ErrorKind.NETWORK


class PackageManagerError(ProvisionError):
    kind = ErrorKind.PACKAGE_MANAGER


class ExternalScriptError(ProvisionError):
    kind = ErrorKind.EXTERNAL_SCRIPT


class PrivilegeError(ProvisionError):
    kind = ErrorKind.PRIVILEGE


class IOFailure(ProvisionError):
    kind = ErrorKind.IO


class ConfigError(Exception):
    """Raised when the options file or the step file is invalid."""
