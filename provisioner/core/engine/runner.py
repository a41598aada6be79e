"""
Runner — the sequential provisioning loop.

Flow per step:
    pending → evaluate probe → skipped | run action → ran | failed

A failed critical step aborts the run; any other failure is recorded
and the loop moves on. The report is produced either way.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Callable
from datetime import UTC, datetime

from provisioner.core.engine.step import Step
from provisioner.core.execution.actions import ActionContext
from provisioner.core.models.report import RunReport, RunState, StepResult

logger = logging.getLogger(__name__)

StepCallback = Callable[[Step, StepResult], None]

_MARKERS = {"ran": "✓", "skipped": "⊘", "failed": "✗"}


def generate_run_id() -> str:
    """Generate a unique run ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"run-{now}-{short}"


class Runner:
    """Executes an ordered step list once.

    Args:
        steps: Steps in execution order. Names must be unique.
        context: Shared action context (config, cache, command runner).
        dry_run: Evaluate probes but never invoke actions.
        on_step: Called after each step with its result.
    """

    def __init__(
        self,
        steps: list[Step],
        context: ActionContext | None = None,
        dry_run: bool = False,
        on_step: StepCallback | None = None,
    ):
        seen: set[str] = set()
        for step in steps:
            if step.name in seen:
                raise ValueError(f"Duplicate step name: {step.name}")
            seen.add(step.name)

        self._steps = list(steps)
        self._context = context or ActionContext()
        self._dry_run = dry_run
        self._on_step = on_step
        self._state = RunState.NOT_STARTED

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def steps(self) -> list[Step]:
        return list(self._steps)

    def run(self) -> RunReport:
        """Execute every step in order and return the report."""
        if self._state is not RunState.NOT_STARTED:
            raise RuntimeError(f"Runner already used (state={self._state.value})")

        report = RunReport(run_id=generate_run_id(), dry_run=self._dry_run)
        self._state = report.state = RunState.RUNNING
        start = time.monotonic()

        for step in self._steps:
            # Each step starts from a clean chain
            self._context.previous_output = ""
            result = step.run(self._context, dry_run=self._dry_run)
            report.results.append(result)

            logger.info(
                "%s %s → %s%s",
                _MARKERS[result.outcome.value],
                step.name,
                result.outcome.value,
                f" ({result.error_kind.value}: {result.error})" if result.failed else "",
            )
            if self._on_step:
                self._on_step(step, result)

            if result.failed and step.critical:
                logger.error("Critical step %s failed, aborting run", step.name)
                self._state = RunState.ABORTED
                break
        else:
            self._state = RunState.COMPLETED

        report.finish(self._state, int((time.monotonic() - start) * 1000))
        logger.info("Run %s %s", report.run_id, report.summary())
        return report
