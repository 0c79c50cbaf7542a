"""Run state management for pipeline runs."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

import structlog

from conveyor.exceptions import StateError
from conveyor.paths import RunPaths

logger = structlog.get_logger()


def _now() -> str:
    return datetime.now(tz=UTC).isoformat()


class PipelineStatus(str, Enum):
    """Pipeline lifecycle."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StageStatus(str, Enum):
    """Stage lifecycle."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


# Allowed pipeline transitions
PIPELINE_TRANSITIONS: dict[PipelineStatus, set[PipelineStatus]] = {
    PipelineStatus.PENDING: {PipelineStatus.RUNNING},
    PipelineStatus.RUNNING: {PipelineStatus.SUCCEEDED, PipelineStatus.FAILED},
    PipelineStatus.SUCCEEDED: set(),
    PipelineStatus.FAILED: set(),
}


@dataclass
class StageState:
    """Status of a stage execution.

    Attributes:
        name: Stage name.
        status: Lifecycle status.
        host: Host the stage was bound to.
        started_at: When the stage started.
        completed_at: When the stage completed.
        error: Error message if failed.
    """

    name: str
    status: StageStatus = StageStatus.PENDING
    host: str | None = None
    started_at: str | None = None
    completed_at: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "status": self.status.value,
            "host": self.host,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> StageState:
        """Create from dictionary."""
        return cls(
            name=data["name"],
            status=StageStatus(data.get("status", "pending")),
            host=data.get("host"),
            started_at=data.get("started_at"),
            completed_at=data.get("completed_at"),
            error=data.get("error"),
        )


@dataclass
class RunState:
    """Complete state of a pipeline run.

    Attributes:
        run_id: The run identifier.
        pipeline: Pipeline name.
        status: Pipeline lifecycle status.
        stages: Stage states in declaration order.
        failed_stage: Name of the stage that failed the pipeline.
        error: Error detail of the failure.
        result: Serialized terminal ExecutionResult.
        created_at: When the run was created.
        updated_at: When the state was last updated.
    """

    run_id: str
    pipeline: str
    status: PipelineStatus = PipelineStatus.PENDING
    stages: list[StageState] = field(default_factory=list)
    failed_stage: str | None = None
    error: str | None = None
    result: dict[str, Any] | None = None
    created_at: str = field(default_factory=_now)
    updated_at: str = field(default_factory=_now)

    def get_stage(self, name: str) -> StageState:
        """Get a stage state by name.

        Raises:
            StateError: If the stage is unknown.
        """
        for stage in self.stages:
            if stage.name == name:
                return stage
        msg = f"Unknown stage: {name}"
        raise StateError(msg, run_id=self.run_id)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "run_id": self.run_id,
            "pipeline": self.pipeline,
            "status": self.status.value,
            "stages": [s.to_dict() for s in self.stages],
            "failed_stage": self.failed_stage,
            "error": self.error,
            "result": self.result,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RunState:
        """Create from dictionary."""
        return cls(
            run_id=data["run_id"],
            pipeline=data.get("pipeline", ""),
            status=PipelineStatus(data.get("status", "pending")),
            stages=[StageState.from_dict(s) for s in data.get("stages", [])],
            failed_stage=data.get("failed_stage"),
            error=data.get("error"),
            result=data.get("result"),
            created_at=data.get("created_at", _now()),
            updated_at=data.get("updated_at", _now()),
        )


class StateManager:
    """Manages run state persistence and lifecycle transitions.

    Example:
        >>> paths = RunPaths.create_new(Path("/project"), "test_run")
        >>> state_mgr = StateManager(paths)
        >>> state_mgr.initialize("build", ["pull", "build"])
        >>> state_mgr.transition_to(PipelineStatus.RUNNING)
        >>> state_mgr.state.status
        <PipelineStatus.RUNNING: 'running'>
    """

    def __init__(self, paths: RunPaths, *, persist: bool = True) -> None:
        """Initialize the state manager.

        Args:
            paths: RunPaths for the run.
            persist: Write state.json on every change.
        """
        self.paths = paths
        self.persist = persist
        self._state: RunState | None = None

    @property
    def state(self) -> RunState:
        """Get the current state."""
        if self._state is None:
            msg = "State not initialized. Call initialize() or load() first."
            raise StateError(msg, run_id=self.paths.run_id)
        return self._state

    def initialize(self, pipeline: str, stage_names: list[str]) -> RunState:
        """Initialize a new run state with every stage pending."""
        logger.bind(run_id=self.paths.run_id).info("Initializing run state")
        self._state = RunState(
            run_id=self.paths.run_id,
            pipeline=pipeline,
            stages=[StageState(name=name) for name in stage_names],
        )
        self.save()
        return self._state

    def load(self) -> RunState:
        """Load state from disk.

        Raises:
            StateError: If state file doesn't exist or is invalid.
        """
        state_path = self.paths.state_json
        if not state_path.exists():
            msg = f"State file not found: {state_path}"
            raise StateError(msg, run_id=self.paths.run_id)

        try:
            data = json.loads(state_path.read_text())
            self._state = RunState.from_dict(data)
        except (json.JSONDecodeError, KeyError, ValueError) as e:
            msg = f"Invalid state file: {e}"
            raise StateError(msg, run_id=self.paths.run_id) from e

        logger.info("Loaded run state", run_id=self.paths.run_id, status=self._state.status.value)
        return self._state

    def save(self) -> None:
        """Save state to disk."""
        self.state.updated_at = _now()
        if not self.persist:
            return
        state_path = self.paths.state_json
        state_path.parent.mkdir(parents=True, exist_ok=True)
        state_path.write_text(json.dumps(self.state.to_dict(), indent=2))
        logger.debug("Saved run state", path=str(state_path))

    def transition_to(self, status: PipelineStatus) -> None:
        """Move the pipeline to ``status``.

        Raises:
            StateError: If the transition is not allowed.
        """
        current = self.state.status
        if status not in PIPELINE_TRANSITIONS[current]:
            msg = f"Invalid pipeline transition: {current.value} -> {status.value}"
            raise StateError(msg, run_id=self.state.run_id)
        self.state.status = status
        self.save()
        logger.info("Pipeline transition", from_status=current.value, to_status=status.value)

    def mark_stage_running(self, name: str, host: str | None = None) -> None:
        """Mark a stage as running."""
        stage = self.state.get_stage(name)
        stage.status = StageStatus.RUNNING
        stage.host = host
        stage.started_at = _now()
        self.save()

    def mark_stage_succeeded(self, name: str, host: str | None = None) -> None:
        """Mark a stage as succeeded."""
        stage = self.state.get_stage(name)
        stage.status = StageStatus.SUCCEEDED
        stage.host = host or stage.host
        stage.completed_at = _now()
        self.save()

    def mark_stage_failed(self, name: str, error: str, host: str | None = None) -> None:
        """Mark a stage as failed."""
        stage = self.state.get_stage(name)
        stage.status = StageStatus.FAILED
        stage.host = host or stage.host
        stage.error = error
        stage.completed_at = _now()
        self.save()

    def mark_stage_skipped(self, name: str) -> None:
        """Mark a stage as skipped."""
        stage = self.state.get_stage(name)
        stage.status = StageStatus.SKIPPED
        stage.completed_at = _now()
        self.save()

    def record_result(
        self,
        result: dict[str, Any],
        *,
        failed_stage: str | None = None,
        error: str | None = None,
    ) -> None:
        """Attach the terminal result to the state."""
        self.state.result = result
        self.state.failed_stage = failed_stage
        self.state.error = error
        self.save()
