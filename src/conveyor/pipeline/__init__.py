"""Pipeline engine: declarations, agent resolution and sequential execution."""

from conveyor.pipeline.agents import AgentResolver, Host, HostPool
from conveyor.pipeline.definition import (
    AgentRequirement,
    ArchiveStep,
    CheckoutStep,
    PipelineDefinition,
    PublishTestsStep,
    RetentionPolicy,
    ShellStep,
    StageDefinition,
    StepKind,
)
from conveyor.pipeline.results import ExecutionResult, ResultStatus
from conveyor.pipeline.runner import PipelineResult, PipelineRunner
from conveyor.pipeline.stage import StageExecutor
from conveyor.pipeline.steps import StepRunner
from conveyor.pipeline.tools import ToolResolver

__all__ = [
    "AgentRequirement",
    "AgentResolver",
    "ArchiveStep",
    "CheckoutStep",
    "ExecutionResult",
    "Host",
    "HostPool",
    "PipelineDefinition",
    "PipelineResult",
    "PipelineRunner",
    "PublishTestsStep",
    "ResultStatus",
    "RetentionPolicy",
    "ShellStep",
    "StageDefinition",
    "StageExecutor",
    "StepKind",
    "StepRunner",
    "ToolResolver",
]
