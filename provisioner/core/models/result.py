"""
ActionResult — what an action hands back to its step.

Actions never raise. Whatever happens (a package manager exiting
non-zero, a download dying halfway, sudo being refused) is captured
here with an ``ErrorKind`` so the step can decide its outcome.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from provisioner.core.errors import ErrorKind, ProvisionError


class ActionResult(BaseModel):
    """Result of executing an action."""

    action: str
    ok: bool = True
    output: str = ""                 # value passed to the next action in a chain
    error_kind: ErrorKind | None = None
    error: str | None = None
    duration_ms: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def failed(self) -> bool:
        return not self.ok

    @classmethod
    def success(cls, action: str, output: str = "", **kwargs: Any) -> ActionResult:
        """Create a success result."""
        return cls(action=action, ok=True, output=output, **kwargs)

    @classmethod
    def failure(
        cls,
        action: str,
        kind: ErrorKind,
        error: str,
        **kwargs: Any,
    ) -> ActionResult:
        """Create a failure result."""
        return cls(action=action, ok=False, error_kind=kind, error=error, **kwargs)

    @classmethod
    def from_error(cls, action: str, exc: ProvisionError, **kwargs: Any) -> ActionResult:
        """Create a failure result from a raised ProvisionError."""
        return cls.failure(action, exc.kind, str(exc), **kwargs)
