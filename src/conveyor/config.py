"""Configuration schema for the conveyor engine."""

from __future__ import annotations

import platform
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from conveyor.exceptions import ConfigError

DEFAULT_CONFIG_FILENAME = "conveyor.yaml"


def platform_label() -> str:
    """Label describing the local operating system (linux, darwin, windows)."""
    return platform.system().lower() or "unknown"


class AgentConfig(BaseModel):
    """Configuration for an execution host in the pool.

    Attributes:
        name: Unique host name.
        labels: Labels the host advertises.
        enabled: Disabled hosts are left out of the pool.
    """

    name: str = Field(..., min_length=1, max_length=64)
    labels: list[str] = Field(default_factory=list)
    enabled: bool = True


class ToolInstallation(BaseModel):
    """A build tool installation that pipelines may declare.

    Attributes:
        name: Tool name as declared in pipelines (e.g. "maven").
        version: Installed version.
        home: Installation directory; its bin/ is prefixed to PATH.
    """

    name: str = Field(..., min_length=1)
    version: str = Field(..., min_length=1)
    home: Path


class PolicyConfig(BaseModel):
    """Failure policy for best-effort steps and retries.

    Attributes:
        strict_archive: Fail the stage when an archive pattern matches nothing.
        strict_reports: Fail the stage when a report pattern matches nothing.
        step_retries: Extra attempts for a failing step (0 disables retries).
    """

    strict_archive: bool = False
    strict_reports: bool = False
    step_retries: int = Field(default=0, ge=0, le=5)


class PathsConfig(BaseModel):
    """Directory layout relative to the base directory."""

    runs_dir: str = "runs"
    reports_dir: str = "reports"


class CommandConfig(BaseModel):
    """Subprocess execution settings.

    Attributes:
        shell: Shell used to interpret `sh` step commands.
        heartbeat_interval: Seconds between "still running" log lines (0 disables).
    """

    shell: str = "/bin/sh"
    heartbeat_interval: int = Field(default=30, ge=0)


def _default_agents() -> list[AgentConfig]:
    return [AgentConfig(name="local", labels=["local", platform_label()])]


class ConveyorConfig(BaseModel):
    """Complete conveyor configuration.

    Attributes:
        version: Config schema version.
        agents: Host pool.
        tools: Known build tool installations.
        policy: Best-effort and retry policy.
        paths: Run and report directory layout.
        command: Subprocess settings.

    Example:
        >>> config = ConveyorConfig.default()
        >>> config.agents[0].name
        'local'
    """

    version: str = "1.0"
    agents: list[AgentConfig] = Field(default_factory=_default_agents)
    tools: list[ToolInstallation] = Field(default_factory=list)
    policy: PolicyConfig = Field(default_factory=PolicyConfig)
    paths: PathsConfig = Field(default_factory=PathsConfig)
    command: CommandConfig = Field(default_factory=CommandConfig)

    @field_validator("agents")
    @classmethod
    def validate_unique_agent_names(cls, v: list[AgentConfig]) -> list[AgentConfig]:
        """Ensure agent names are unique."""
        names = [a.name for a in v]
        if len(names) != len(set(names)):
            msg = "Agent names must be unique"
            raise ValueError(msg)
        return v

    def get_enabled_agents(self) -> list[AgentConfig]:
        """Get list of enabled agents."""
        return [a for a in self.agents if a.enabled]

    def to_yaml(self) -> str:
        """Serialize the config to YAML."""
        data = self.model_dump(mode="json")
        return yaml.dump(data, default_flow_style=False, sort_keys=False)

    def save(self, path: Path) -> None:
        """Save the config to a YAML file."""
        path.write_text(self.to_yaml())

    @classmethod
    def from_yaml(cls, yaml_content: str) -> ConveyorConfig:
        """Parse config from YAML content.

        Args:
            yaml_content: YAML string to parse.

        Returns:
            Parsed ConveyorConfig instance.

        Raises:
            ConfigError: If the YAML is invalid or fails validation.
        """
        try:
            data: Any = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            msg = f"Invalid YAML: {e}"
            raise ConfigError(msg) from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            msg = "Config YAML must be a mapping"
            raise ConfigError(msg)

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigError(msg) from e

    @classmethod
    def load(cls, path: Path) -> ConveyorConfig:
        """Load config from a YAML file.

        Raises:
            ConfigError: If the file is missing or invalid.
        """
        if not path.exists():
            msg = f"Config file not found: {path}"
            raise ConfigError(msg, config_path=path)
        try:
            return cls.from_yaml(path.read_text())
        except ConfigError as e:
            raise ConfigError(str(e), config_path=path) from e

    @classmethod
    def default(cls) -> ConveyorConfig:
        """Create a default configuration with a single local agent."""
        return cls()
