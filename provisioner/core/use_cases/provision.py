"""
Provision use case — the full vertical slice.

Loads options and steps, builds the action context, runs every step,
and appends the report to the run history.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from provisioner.core.config.loader import load_config
from provisioner.core.config.steps_loader import load_steps
from provisioner.core.engine.runner import Runner, StepCallback
from provisioner.core.engine.step import Step
from provisioner.core.errors import ConfigError
from provisioner.core.execution.actions import ActionContext, CommandRunner
from provisioner.core.execution.cache import DownloadCache
from provisioner.core.execution.mock import MockAction
from provisioner.core.execution.subprocess_runner import _run_subprocess
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.report import RunReport
from provisioner.core.persistence.history import HistoryWriter

logger = logging.getLogger(__name__)


@dataclass
class ProvisionResult:
    """Result of a provisioning run."""

    report: RunReport | None = None
    config: ProvisionConfig | None = None
    steps_planned: int = 0
    error: str | None = None

    @property
    def exit_code(self) -> int:
        if self.error or self.report is None:
            return 1
        return self.report.exit_code

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        result: dict = {"steps_planned": self.steps_planned}
        if self.report:
            result["report"] = self.report.to_dict()
        return result


@dataclass
class PlannedStep:
    """A step and whether its effect is already present."""

    name: str
    action: str
    present: bool
    critical: bool = False
    disabled_by: str | None = None

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "action": self.action,
            "present": self.present,
            "critical": self.critical,
            "disabled_by": self.disabled_by,
        }


@dataclass
class PlanResult:
    """Current state of every step, without running anything."""

    steps: list[PlannedStep] = field(default_factory=list)
    error: str | None = None

    @property
    def pending(self) -> int:
        return sum(1 for s in self.steps if not s.present and not s.disabled_by)

    def to_dict(self) -> dict:
        if self.error:
            return {"error": self.error}
        return {"pending": self.pending, "steps": [s.to_dict() for s in self.steps]}


def select_steps(steps: list[Step], only: list[str] | None) -> list[Step]:
    """Keep only the named steps, preserving file order.

    Raises:
        ConfigError: A requested name is not in the step list.
    """
    if not only:
        return steps
    known = {s.name for s in steps}
    unknown = [name for name in only if name not in known]
    if unknown:
        raise ConfigError(f"Unknown step(s): {', '.join(unknown)}")
    wanted = set(only)
    return [s for s in steps if s.name in wanted]


def _load(
    config_path: Path | None,
    steps_path: Path | None,
    only: list[str] | None,
    config: ProvisionConfig | None = None,
) -> tuple[ProvisionConfig, list[Step]]:
    if config is None:
        config = load_config(config_path)
    steps = load_steps(config, steps_path)
    return config, select_steps(steps, only)


def run_provisioning(
    config_path: Path | None = None,
    steps_path: Path | None = None,
    only: list[str] | None = None,
    dry_run: bool = False,
    mock_mode: bool = False,
    on_step: StepCallback | None = None,
    config: ProvisionConfig | None = None,
    command_runner: CommandRunner | None = None,
    record_history: bool = True,
) -> ProvisionResult:
    """Provision the workstation.

    Args:
        config_path: Optional explicit path to provision.yml.
        steps_path: Optional step file overriding the configured one.
        only: Run just these steps (by name).
        dry_run: Evaluate probes, never invoke actions.
        mock_mode: Replace every action with a MockAction.
        on_step: Progress callback.
        config: Pre-loaded options (skips loading config_path).
        command_runner: Replacement for the subprocess runner.
        record_history: Append the report to the run history.
    """
    result = ProvisionResult()

    try:
        config, steps = _load(config_path, steps_path, only, config)
    except ConfigError as e:
        result.error = str(e)
        return result

    result.config = config
    result.steps_planned = len(steps)

    if mock_mode:
        for step in steps:
            step.action = MockAction(label=f"[mock] {step.action.describe()}")

    context = ActionContext(
        config=config,
        cache=DownloadCache(config.downloads_path),
        runner=command_runner or _run_subprocess,
    )
    runner = Runner(steps, context=context, dry_run=dry_run, on_step=on_step)
    report = runner.run()
    result.report = report

    if record_history and not dry_run and not mock_mode:
        HistoryWriter(config.history_path).write(report)

    return result


def plan_provisioning(
    config_path: Path | None = None,
    steps_path: Path | None = None,
    only: list[str] | None = None,
) -> PlanResult:
    """Evaluate every probe and report which steps would run."""
    result = PlanResult()
    try:
        _config, steps = _load(config_path, steps_path, only)
    except ConfigError as e:
        result.error = str(e)
        return result

    for step in steps:
        present = False if step.disabled_by else step.probe.evaluate()
        result.steps.append(
            PlannedStep(
                name=step.name,
                action=step.action.describe(),
                present=present,
                critical=step.critical,
                disabled_by=step.disabled_by,
            )
        )
    return result
