"""Detection — read-only probes of the workstation's current state."""

from provisioner.core.detection.probes import (
    AllOf,
    CommandOnPath,
    LineInFile,
    Never,
    PackageInstalled,
    PathExists,
    Probe,
    RepoFileExists,
    UserInGroup,
)

__all__ = [
    "AllOf",
    "CommandOnPath",
    "LineInFile",
    "Never",
    "PackageInstalled",
    "PathExists",
    "Probe",
    "RepoFileExists",
    "UserInGroup",
]
