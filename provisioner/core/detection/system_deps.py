"""
Detection — system package checks.

Read-only queries against the package managers the provisioner drives:
apt (via dpkg-query), snap, and Homebrew on Linux.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)

SUPPORTED_MANAGERS = ("apt", "snap", "brew")

# Homebrew on Linux is usually not on PATH right after its installer runs
LINUXBREW_BIN = Path("/home/linuxbrew/.linuxbrew/bin")


def brew_binary() -> str:
    """Return the brew executable, preferring PATH over the default prefix."""
    found = shutil.which("brew")
    if found:
        return found
    candidate = LINUXBREW_BIN / "brew"
    if candidate.is_file():
        return str(candidate)
    return "brew"


def _is_pkg_installed(pkg: str, pkg_manager: str = "apt") -> bool:
    """Check if a single package is installed.

      apt   → dpkg-query -W -f='${Status}' PKG
      snap  → snap list PKG
      brew  → brew ls --versions PKG

    Returns:
        True if installed, False if not installed or the check failed.
    """
    try:
        if pkg_manager == "apt":
            r = subprocess.run(
                ["dpkg-query", "-W", "-f=${Status}", pkg],
                capture_output=True, text=True, timeout=10,
            )
            return "install ok installed" in r.stdout

        if pkg_manager == "snap":
            r = subprocess.run(
                ["snap", "list", pkg],
                capture_output=True, timeout=30,
            )
            return r.returncode == 0

        if pkg_manager == "brew":
            r = subprocess.run(
                [brew_binary(), "ls", "--versions", pkg],
                capture_output=True, timeout=30,  # brew is slow
            )
            return r.returncode == 0

        logger.warning("Unsupported package manager %r (checking %s)", pkg_manager, pkg)

    except FileNotFoundError:
        # Checker binary not on PATH (e.g. brew before its installer ran)
        logger.warning(
            "Package checker not found for pm=%s (checking %s)",
            pkg_manager, pkg,
        )
    except subprocess.TimeoutExpired:
        logger.warning("Timeout checking package %s with pm=%s", pkg, pkg_manager)
    except OSError as exc:
        logger.warning(
            "OS error checking package %s with pm=%s: %s",
            pkg, pkg_manager, exc,
        )

    return False
