"""
Mock probe and action — test doubles for the step engine.

Used by ``provisioner run --mock`` and by the test suite to exercise
the runner without touching the system. A MockAction can be wired to a
MockProbe so that "running" the action makes the probe report present,
which is how a real action and its probe relate.
"""

from __future__ import annotations

from provisioner.core.detection.probes import Probe
from provisioner.core.errors import ErrorKind
from provisioner.core.execution.actions import Action, ActionContext
from provisioner.core.models.result import ActionResult


class MockProbe(Probe):
    """Probe whose answer is set by the test."""

    def __init__(self, present: bool = False, label: str = "mock"):
        self.present = present
        self.label = label
        self.call_count = 0

    @property
    def kind(self) -> str:
        return "mock"

    def describe(self) -> str:
        return self.label

    def _check(self) -> bool:
        self.call_count += 1
        return self.present


class MockAction(Action):
    """Action that records its calls and returns a configured result.

    Args:
        establishes: Probe flipped to present when the action succeeds.
        fail_with: If set, every call fails with this error kind.
        output: Output returned on success.
    """

    def __init__(
        self,
        establishes: MockProbe | None = None,
        fail_with: ErrorKind | None = None,
        output: str = "[mock] executed",
        label: str = "mock",
    ):
        self.establishes = establishes
        self.fail_with = fail_with
        self.output = output
        self.label = label
        self._call_log: list[ActionContext] = []

    @property
    def kind(self) -> str:
        return "mock"

    def describe(self) -> str:
        return self.label

    @property
    def call_log(self) -> list[ActionContext]:
        """All contexts this mock has been executed with."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def set_failure(self, kind: ErrorKind = ErrorKind.IO) -> None:
        self.fail_with = kind

    def _execute(self, context: ActionContext) -> ActionResult:
        self._call_log.append(context)
        if self.fail_with is not None:
            return ActionResult.failure(self.kind, self.fail_with, "Mock failure")
        if self.establishes is not None:
            self.establishes.present = True
        return ActionResult.success(self.kind, self.output, metadata={"mock": True})

    def reset(self) -> None:
        """Clear call log and configured failure."""
        self._call_log.clear()
        self.fail_with = None
