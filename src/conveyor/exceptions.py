"""Custom exceptions for the conveyor pipeline engine."""

from pathlib import Path


class ConveyorError(Exception):
    """Base exception for all conveyor errors."""

    pass


# ---------------------------------------------------------------------------
# Agent resolution
# ---------------------------------------------------------------------------


class AgentError(ConveyorError):
    """Raised when no execution host can service a stage."""

    def __init__(self, message: str, *, label: str | None = None) -> None:
        super().__init__(message)
        self.label = label


class NoAgentsAvailable(AgentError):
    """Raised when the host pool has no free host at all."""

    def __init__(self, message: str = "No agents available in the host pool") -> None:
        super().__init__(message)


class NoMatchingAgent(AgentError):
    """Raised when no free host advertises the requested label."""

    def __init__(self, label: str) -> None:
        super().__init__(f"No agent advertises label '{label}'", label=label)


class AgentBusyError(AgentError):
    """Raised when a host already occupied by a stage is leased again."""

    def __init__(self, host: str) -> None:
        super().__init__(f"Agent '{host}' is already occupied by a running stage")
        self.host = host


# ---------------------------------------------------------------------------
# Step execution
# ---------------------------------------------------------------------------


class StepError(ConveyorError):
    """Raised when a pipeline step fails."""

    def __init__(self, message: str, *, step: str = "") -> None:
        super().__init__(message)
        self.step = step


class CheckoutError(StepError):
    """Raised when source checkout fails (network, auth, ref resolution)."""

    def __init__(
        self,
        message: str,
        *,
        url: str = "",
        returncode: int | None = None,
    ) -> None:
        super().__init__(message, step="checkout")
        self.url = url
        self.returncode = returncode


class CommandError(StepError):
    """Raised when a shell command exits non-zero or cannot run."""

    def __init__(
        self,
        message: str,
        *,
        command: list[str] | str | None = None,
        returncode: int | None = None,
        cwd: Path | None = None,
    ) -> None:
        super().__init__(message, step="sh")
        self.command = command or []
        self.returncode = returncode
        self.cwd = cwd


class NoArtifactsMatched(StepError):
    """Raised when an archive pattern matches no files."""

    def __init__(self, pattern: str) -> None:
        super().__init__(f"No artifacts matched pattern '{pattern}'", step="archive")
        self.pattern = pattern


class NoReportsMatched(StepError):
    """Raised when a test report pattern matches no files."""

    def __init__(self, pattern: str) -> None:
        super().__init__(
            f"No test reports matched pattern '{pattern}'", step="publish_tests"
        )
        self.pattern = pattern


class ReportParseError(StepError):
    """Raised when a matched test report is not valid JUnit XML."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message, step="publish_tests")
        self.path = path


# ---------------------------------------------------------------------------
# Pipeline level
# ---------------------------------------------------------------------------


class PipelineError(ConveyorError):
    """Raised for pipeline-level failures."""

    pass


class StageFailed(PipelineError):
    """A stage failed, halting the pipeline."""

    def __init__(self, stage_name: str, cause: BaseException | str | None) -> None:
        super().__init__(f"Stage '{stage_name}' failed: {cause}")
        self.stage_name = stage_name
        self.cause = cause


class ToolResolutionError(PipelineError):
    """Raised when a declared tool version has no known installation."""

    def __init__(self, message: str, *, tool: str = "", version: str = "") -> None:
        super().__init__(message)
        self.tool = tool
        self.version = version


# ---------------------------------------------------------------------------
# Configuration / declarations / state
# ---------------------------------------------------------------------------


class ConfigError(ConveyorError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        config_path: Path | None = None,
        field: str = "",
    ) -> None:
        super().__init__(message)
        self.config_path = config_path
        self.field = field


class DefinitionError(ConveyorError):
    """Raised when a pipeline declaration cannot be loaded or validated."""

    def __init__(self, message: str, *, path: Path | None = None) -> None:
        super().__init__(message)
        self.path = path


class StateError(ConveyorError):
    """Raised when run state management fails."""

    def __init__(self, message: str, *, run_id: str = "") -> None:
        super().__init__(message)
        self.run_id = run_id
