"""
Step — a named (probe, action) pair.

A step evaluates its probe at the moment it runs. If the effect is
already present the action is never invoked; otherwise the action runs
and its result decides the outcome.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass

from provisioner.core.detection.probes import Probe
from provisioner.core.execution.actions import Action, ActionContext
from provisioner.core.models.report import Outcome, StepResult

logger = logging.getLogger(__name__)


@dataclass
class Step:
    """One idempotent unit of provisioning work."""

    name: str
    probe: Probe
    action: Action
    critical: bool = False
    description: str = ""
    notice: str = ""                  # shown to the operator after the step ran
    disabled_by: str | None = None    # option that turned this step off

    def run(self, context: ActionContext, dry_run: bool = False) -> StepResult:
        start = time.monotonic()

        def _elapsed() -> int:
            return int((time.monotonic() - start) * 1000)

        if self.disabled_by:
            return StepResult(
                step=self.name,
                outcome=Outcome.SKIPPED,
                critical=self.critical,
                reason=f"disabled by {self.disabled_by}",
            )

        if self.probe.evaluate():
            return StepResult(
                step=self.name,
                outcome=Outcome.SKIPPED,
                duration_ms=_elapsed(),
                critical=self.critical,
                reason=f"already present: {self.probe.describe()}",
            )

        if dry_run:
            return StepResult(
                step=self.name,
                outcome=Outcome.SKIPPED,
                duration_ms=_elapsed(),
                critical=self.critical,
                reason=f"dry-run: would {self.action.describe()}",
            )

        logger.debug("Step %s: %s", self.name, self.action.describe())
        result = self.action.execute(context)

        if result.ok:
            return StepResult(
                step=self.name,
                outcome=Outcome.RAN,
                duration_ms=_elapsed(),
                critical=self.critical,
                reason=result.output,
                notice=self.notice,
            )

        return StepResult(
            step=self.name,
            outcome=Outcome.FAILED,
            duration_ms=_elapsed(),
            critical=self.critical,
            error_kind=result.error_kind,
            error=result.error,
        )
