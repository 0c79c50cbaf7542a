"""Step executors, one per step kind."""

from conveyor.pipeline.executors.archive import ArchiveStepExecutor
from conveyor.pipeline.executors.base import StepContext, StepExecutor, is_strict
from conveyor.pipeline.executors.checkout import CheckoutStepExecutor
from conveyor.pipeline.executors.publish import PublishTestsStepExecutor
from conveyor.pipeline.executors.shell import ShellStepExecutor

__all__ = [
    "ArchiveStepExecutor",
    "CheckoutStepExecutor",
    "PublishTestsStepExecutor",
    "ShellStepExecutor",
    "StepContext",
    "StepExecutor",
    "is_strict",
]
