"""Pipeline, Stage and Step declaration models."""

from __future__ import annotations

from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Annotated, Any, Literal

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

from conveyor.exceptions import DefinitionError
from conveyor.pipeline.constants import MAX_STAGES_PER_PIPELINE, MAX_STEPS_PER_STAGE


class StepKind(str, Enum):
    """Type of pipeline step."""

    CHECKOUT = "checkout"  # Source checkout via version control
    SH = "sh"  # Opaque shell command, success = exit code 0
    ARCHIVE = "archive"  # Archive build artifacts matching a glob
    PUBLISH_TESTS = "publish_tests"  # Publish test reports matching a glob


class AgentRequirement(BaseModel):
    """Which hosts may run a stage.

    ``label=None`` means any host; otherwise the host must advertise the label.
    In YAML this is written as ``any``, a bare label string, or ``{label: x}``.
    """

    model_config = ConfigDict(frozen=True)

    label: str | None = Field(default=None, min_length=1)

    @model_validator(mode="before")
    @classmethod
    def parse_shorthand(cls, data: Any) -> Any:
        """Accept ``any`` / ``None`` / bare label strings."""
        if data is None:
            return {"label": None}
        if isinstance(data, str):
            if data.strip().lower() == "any":
                return {"label": None}
            return {"label": data}
        return data

    @property
    def is_any(self) -> bool:
        """True when any host is acceptable."""
        return self.label is None

    @classmethod
    def any(cls) -> AgentRequirement:
        """Requirement satisfied by any host."""
        return cls(label=None)

    @classmethod
    def of_label(cls, label: str) -> AgentRequirement:
        """Requirement satisfied only by hosts advertising ``label``."""
        return cls(label=label)

    def __str__(self) -> str:
        return "any" if self.label is None else f"label:{self.label}"


class BaseStep(BaseModel):
    """Common base of all steps. Steps are immutable once constructed."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    def describe(self) -> str:
        """Short human-readable description for logs."""
        raise NotImplementedError


class CheckoutStep(BaseStep):
    """Check out a repository into the host workspace.

    Attributes:
        url: Repository URL.
        credentials_id: Opaque credential reference, never a literal secret.
        branch: Branch or ref to check out.
        directory: Target directory relative to the workspace.
    """

    kind: Literal["checkout"] = "checkout"
    url: str = Field(..., min_length=1)
    credentials_id: str | None = None
    branch: str = "main"
    directory: str = "."

    @field_validator("directory")
    @classmethod
    def validate_directory(cls, v: str) -> str:
        """Keep the checkout directory inside the host workspace."""
        path = PurePosixPath(v)
        if path.is_absolute() or ".." in path.parts:
            msg = f"Checkout directory must be relative to the workspace: {v}"
            raise ValueError(msg)
        return v

    def describe(self) -> str:
        return f"checkout {self.url}@{self.branch}"


class ShellStep(BaseStep):
    """Run a shell command; success means exit code 0.

    Attributes:
        command: Command string handed to the shell.
        env: Extra environment variables for this command.
    """

    kind: Literal["sh"] = "sh"
    command: str = Field(..., min_length=1)
    env: dict[str, str] = Field(default_factory=dict)

    def describe(self) -> str:
        return f"sh {self.command}"


class ArchiveStep(BaseStep):
    """Archive build artifacts matching a glob pattern.

    Attributes:
        pattern: Glob relative to the workspace (e.g. ``target/*.jar``).
        follow_symlinks: When False, symlinked matches are excluded entirely.
        allow_empty: Per-step override of strict mode (None = use config policy).
    """

    kind: Literal["archive"] = "archive"
    pattern: str = Field(..., min_length=1)
    follow_symlinks: bool = False
    allow_empty: bool | None = None

    def describe(self) -> str:
        return f"archive {self.pattern}"


class RetentionPolicy(BaseModel):
    """How long published test reports are kept.

    Attributes:
        keep_runs: Number of report sets to keep (None keeps all).
        keep_long_stdio: Keep full captured test output instead of truncating it.
    """

    model_config = ConfigDict(frozen=True)

    keep_runs: int | None = Field(default=None, ge=1)
    keep_long_stdio: bool = False


class PublishTestsStep(BaseStep):
    """Publish JUnit-style test reports matching a glob pattern.

    Attributes:
        pattern: Glob relative to the workspace (e.g. ``**/surefire-reports/*.xml``).
        retention: Retention policy for published report sets.
        allow_empty: Per-step override of strict mode (None = use config policy).
    """

    kind: Literal["publish_tests"] = "publish_tests"
    pattern: str = Field(..., min_length=1)
    retention: RetentionPolicy = Field(default_factory=RetentionPolicy)
    allow_empty: bool | None = None

    def describe(self) -> str:
        return f"publish_tests {self.pattern}"


Step = Annotated[
    CheckoutStep | ShellStep | ArchiveStep | PublishTestsStep,
    Field(discriminator="kind"),
]


class StageDefinition(BaseModel):
    """A named, ordered unit of pipeline work bound to one agent.

    Attributes:
        name: Unique stage name.
        agent: Optional agent override (None inherits the pipeline default).
        steps: Ordered steps.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(..., min_length=1, max_length=128)
    agent: AgentRequirement | None = None
    steps: list[Step] = Field(..., min_length=1, max_length=MAX_STEPS_PER_STAGE)

    def effective_agent(self, default: AgentRequirement) -> AgentRequirement:
        """The override when present, otherwise ``default``."""
        return self.agent if self.agent is not None else default


class PipelineDefinition(BaseModel):
    """Complete declaration of a pipeline.

    Attributes:
        name: Human-readable name.
        description: Description of the pipeline purpose.
        agent: Default agent requirement for stages without an override.
        tools: Tool name to version, resolved once before any stage runs.
        stages: Ordered list of stages.
        post: Post-build steps, always run after the stages.
    """

    model_config = ConfigDict(extra="forbid")

    name: str = Field(default="pipeline", min_length=1, max_length=128)
    description: str = ""
    agent: AgentRequirement = Field(default_factory=AgentRequirement.any)
    tools: dict[str, str] = Field(default_factory=dict)
    stages: list[StageDefinition] = Field(..., min_length=1)
    post: list[Step] = Field(default_factory=list)

    @field_validator("stages")
    @classmethod
    def validate_stages(cls, v: list[StageDefinition]) -> list[StageDefinition]:
        """Validate stage list."""
        if len(v) > MAX_STAGES_PER_PIPELINE:
            msg = f"Pipeline cannot have more than {MAX_STAGES_PER_PIPELINE} stages"
            raise ValueError(msg)

        names = [s.name for s in v]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            msg = f"Duplicate stage names found: {', '.join(duplicates)}"
            raise ValueError(msg)

        return v

    def get_stage(self, name: str) -> StageDefinition | None:
        """Get a stage by name."""
        for stage in self.stages:
            if stage.name == name:
                return stage
        return None

    def stage_names(self) -> list[str]:
        """Stage names in declaration order."""
        return [s.name for s in self.stages]

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return self.model_dump(mode="json", exclude_defaults=False)

    def to_yaml(self) -> str:
        """Serialize to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, yaml_content: str) -> PipelineDefinition:
        """Parse a pipeline declaration from YAML.

        Raises:
            DefinitionError: If the YAML is malformed or fails validation.
        """
        try:
            data: Any = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            msg = f"Invalid YAML: {e}"
            raise DefinitionError(msg) from e

        if not isinstance(data, dict):
            msg = "Pipeline YAML must be a mapping"
            raise DefinitionError(msg)

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            msg = f"Invalid pipeline declaration: {e}"
            raise DefinitionError(msg) from e

    @classmethod
    def load(cls, path: Path) -> PipelineDefinition:
        """Load a pipeline declaration from a YAML file.

        Raises:
            DefinitionError: If the file is missing or invalid.
        """
        if not path.exists():
            msg = f"Pipeline file not found: {path}"
            raise DefinitionError(msg, path=path)
        try:
            return cls.from_yaml(path.read_text())
        except DefinitionError as e:
            raise DefinitionError(str(e), path=path) from e
