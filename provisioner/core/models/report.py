"""
Run report models — step outcomes and the per-run summary.

The runner builds a RunReport incrementally, one StepResult per step
attempted, and emits it whether the run completed or aborted.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

from provisioner.core.errors import ErrorKind


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class Outcome(str, Enum):
    """Terminal outcome of a single step."""

    RAN = "ran"
    SKIPPED = "skipped"
    FAILED = "failed"


class RunState(str, Enum):
    """Lifecycle of a whole run."""

    NOT_STARTED = "not_started"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


class StepResult(BaseModel):
    """What happened to one step."""

    step: str
    outcome: Outcome
    duration_ms: int = 0
    critical: bool = False
    reason: str = ""                  # why skipped, or the action's output
    error_kind: ErrorKind | None = None
    error: str | None = None
    notice: str = ""

    @property
    def ran(self) -> bool:
        return self.outcome is Outcome.RAN

    @property
    def skipped(self) -> bool:
        return self.outcome is Outcome.SKIPPED

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.FAILED


class RunReport(BaseModel):
    """Ordered record of every step attempted in one run."""

    run_id: str = ""
    state: RunState = RunState.NOT_STARTED
    dry_run: bool = False
    started_at: str = Field(default_factory=_now_iso)
    ended_at: str = ""
    duration_ms: int = 0
    results: list[StepResult] = Field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def ran(self) -> int:
        return sum(1 for r in self.results if r.ran)

    @property
    def skipped(self) -> int:
        return sum(1 for r in self.results if r.skipped)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.results if r.failed)

    @property
    def failures(self) -> list[StepResult]:
        return [r for r in self.results if r.failed]

    @property
    def aborted(self) -> bool:
        return self.state is RunState.ABORTED

    @property
    def outcomes(self) -> list[Outcome]:
        """Outcomes in step order."""
        return [r.outcome for r in self.results]

    @property
    def exit_code(self) -> int:
        """0 unless a critical step failed and the run aborted."""
        return 1 if self.aborted else 0

    def finish(self, state: RunState, duration_ms: int) -> None:
        self.state = state
        self.duration_ms = duration_ms
        self.ended_at = _now_iso()

    def summary(self) -> str:
        """One-line human-readable summary."""
        seconds = self.duration_ms / 1000
        return (
            f"{self.state.value}: {self.ran} ran, {self.skipped} skipped, "
            f"{self.failed} failed in {seconds:.1f}s"
        )

    def to_dict(self) -> dict:
        data = self.model_dump(mode="json")
        data.update(
            total=self.total,
            ran=self.ran,
            skipped=self.skipped,
            failed=self.failed,
            exit_code=self.exit_code,
        )
        return data
