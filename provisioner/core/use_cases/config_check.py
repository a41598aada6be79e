"""
Config check use case — validate provision.yml and the step file.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from provisioner.core.config.loader import find_config_file, load_config
from provisioner.core.config.steps_loader import bundled_steps_path, load_steps
from provisioner.core.errors import ConfigError
from provisioner.core.models.config import ProvisionConfig

# Options the bundled workstation steps interpolate
_IDENTITY_OPTIONS = ("git_user_name", "git_user_email", "ssh_key_email", "ssh_key_title")


@dataclass
class ConfigCheckResult:
    """Result of configuration validation."""

    valid: bool = False
    config: ProvisionConfig | None = None
    config_path: Path | None = None
    steps_path: Path | None = None
    step_count: int = 0
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "config_path": str(self.config_path) if self.config_path else None,
            "steps_path": str(self.steps_path) if self.steps_path else None,
            "step_count": self.step_count,
            "errors": self.errors,
            "warnings": self.warnings,
        }


def check_config(config_path: Path | None = None) -> ConfigCheckResult:
    """Validate options and steps, reporting every issue found.

    Args:
        config_path: Optional explicit path to provision.yml.
    """
    result = ConfigCheckResult()

    if config_path is None:
        config_path = find_config_file()
    result.config_path = config_path
    if config_path is None:
        result.warnings.append("No provision.yml found; using defaults.")

    try:
        config = load_config(config_path)
        result.config = config
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    result.steps_path = (
        Path(config.steps_file).expanduser() if config.steps_file else bundled_steps_path()
    )
    try:
        steps = load_steps(config, result.steps_path)
        result.step_count = len(steps)
    except ConfigError as e:
        result.errors.append(str(e))
        return result

    if not steps:
        result.warnings.append("The step file defines no steps.")

    for option in _IDENTITY_OPTIONS:
        if not getattr(config, option):
            result.warnings.append(f"Option '{option}' is empty.")

    if not any(s.critical for s in steps):
        result.warnings.append("No critical steps: a failing step never aborts the run.")

    result.valid = not result.errors
    return result
