"""
Domain models — pydantic types for the provisioner.

    from provisioner.core.models import ActionResult, RunReport, StepResult
"""

from provisioner.core.models.cache import CacheEntry
from provisioner.core.models.config import ProvisionConfig
from provisioner.core.models.report import Outcome, RunReport, RunState, StepResult
from provisioner.core.models.result import ActionResult

__all__ = [
    "ActionResult",
    "CacheEntry",
    "Outcome",
    "ProvisionConfig",
    "RunReport",
    "RunState",
    "StepResult",
]
