"""Engine — steps and the sequential runner."""

from provisioner.core.engine.runner import Runner
from provisioner.core.engine.step import Step

__all__ = ["Runner", "Step"]
