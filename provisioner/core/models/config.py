"""
ProvisionConfig — the operator's options.

Loaded from provision.yml (see ``provisioner.core.config.loader``).
Every option has a default so an absent file is a valid configuration.
"""

from __future__ import annotations

import getpass
import os
import platform
from pathlib import Path
from typing import Any

from pydantic import BaseModel

DEFAULT_CACHE_DIR = "~/.cache/provisioner"
FALLBACK_CODENAME = "noble"

# ``when:`` keys a step file may use, and the option that disables each one
TOGGLES: dict[str, str] = {
    "github_login": "skip_github_login",
    "ssh_key_generation": "skip_ssh_key_generation",
}


def _expand(value: str) -> Path:
    return Path(os.path.expandvars(os.path.expanduser(value)))


class ProvisionConfig(BaseModel):
    """Options recognised by the provisioner."""

    # Identity
    git_user_name: str = ""
    git_user_email: str = ""
    ssh_key_email: str = ""
    ssh_key_title: str = ""
    user: str = ""
    distro_codename: str = ""        # empty = VERSION_CODENAME from os-release

    # Directories
    cache_dir: str = DEFAULT_CACHE_DIR
    downloads_dir: str = ""          # empty = <cache_dir>/downloads
    steps_file: str = ""             # empty = bundled workstation.yml

    # Options
    skip_github_login: bool = False
    skip_ssh_key_generation: bool = False
    verbose: bool = False
    log_file: str = ""

    @property
    def cache_path(self) -> Path:
        return _expand(self.cache_dir)

    @property
    def downloads_path(self) -> Path:
        if self.downloads_dir:
            return _expand(self.downloads_dir)
        return self.cache_path / "downloads"

    @property
    def history_path(self) -> Path:
        return self.cache_path / "history.ndjson"

    @property
    def effective_user(self) -> str:
        """The user steps act on behalf of."""
        if self.user:
            return self.user
        return os.environ.get("USER") or getpass.getuser()

    @property
    def effective_codename(self) -> str:
        """Distribution codename used in apt source lines."""
        if self.distro_codename:
            return self.distro_codename
        try:
            return platform.freedesktop_os_release().get("VERSION_CODENAME", FALLBACK_CODENAME)
        except OSError:
            return FALLBACK_CODENAME

    def is_disabled(self, toggle: str | None) -> str | None:
        """Return the option name that disables ``toggle``, if it is set."""
        if not toggle:
            return None
        option = TOGGLES.get(toggle)
        if option and getattr(self, option):
            return option
        return None

    def template_values(self) -> dict[str, Any]:
        """Values available as ``{name}`` placeholders in step files."""
        values = self.model_dump()
        values.update(
            user=self.effective_user,
            home=str(Path.home()),
            cache_dir=str(self.cache_path),
            downloads_dir=str(self.downloads_path),
            distro_codename=self.effective_codename,
        )
        return values
