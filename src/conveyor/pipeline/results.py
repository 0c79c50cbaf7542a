"""Execution result types shared by steps, stages and pipelines."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from conveyor.exceptions import ConveyorError


class ResultStatus(str, Enum):
    """Outcome of an execution."""

    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


@dataclass
class ExecutionResult:
    """Result of executing a step, a stage or a whole pipeline.

    Attributes:
        name: What was executed (step description, stage name, pipeline name).
        status: Success, failure or skipped.
        exit_code: Process exit code where one exists.
        error: The error that caused a failure.
        duration_ms: Wall-clock duration in milliseconds.
        warnings: Non-fatal conditions (e.g. nothing matched a best-effort glob).
        children: Step results under a stage, stage results under a pipeline.
        host: Name of the host the stage or step ran on.
        metrics: Collaborator-specific counters (archived_count, parsed_count, ...).
    """

    name: str
    status: ResultStatus
    exit_code: int | None = None
    error: ConveyorError | None = None
    duration_ms: int = 0
    warnings: list[str] = field(default_factory=list)
    children: list[ExecutionResult] = field(default_factory=list)
    host: str | None = None
    metrics: dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        """True unless the execution failed. Skipped counts as success."""
        return self.status != ResultStatus.FAILURE

    @property
    def detail(self) -> str | None:
        """Error message, if any."""
        return str(self.error) if self.error is not None else None

    def __bool__(self) -> bool:
        """Return success status."""
        return self.success

    @classmethod
    def ok(cls, name: str, **kwargs: Any) -> ExecutionResult:
        """Build a success result."""
        return cls(name=name, status=ResultStatus.SUCCESS, **kwargs)

    @classmethod
    def failed(cls, name: str, error: ConveyorError, **kwargs: Any) -> ExecutionResult:
        """Build a failure result carrying ``error``."""
        return cls(name=name, status=ResultStatus.FAILURE, error=error, **kwargs)

    @classmethod
    def skipped(cls, name: str, reason: str = "") -> ExecutionResult:
        """Build a skipped result."""
        warnings = [reason] if reason else []
        return cls(name=name, status=ResultStatus.SKIPPED, warnings=warnings)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "error": self.detail,
            "error_type": type(self.error).__name__ if self.error else None,
            "duration_ms": self.duration_ms,
            "warnings": list(self.warnings),
            "host": self.host,
            "metrics": dict(self.metrics),
            "children": [c.to_dict() for c in self.children],
        }
