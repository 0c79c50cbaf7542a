"""Engine instance: host pool lifecycle and collaborator wiring."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from pathlib import Path
from types import TracebackType

import structlog

from conveyor.config import DEFAULT_CONFIG_FILENAME, ConveyorConfig
from conveyor.infra.command import CommandRunner
from conveyor.integrations.artifacts import FilesystemArtifactStorage
from conveyor.integrations.base import Collaborators
from conveyor.integrations.git import GitCheckout
from conveyor.integrations.process import LocalProcessExecutor
from conveyor.integrations.reports import JUnitReportPublisher
from conveyor.paths import RunPaths
from conveyor.pipeline.agents import AgentResolver, HostPool
from conveyor.pipeline.definition import PipelineDefinition
from conveyor.pipeline.runner import PipelineResult, PipelineRunner
from conveyor.pipeline.stage import StageExecutor
from conveyor.pipeline.tools import ToolResolver
from conveyor.state import StateManager

logger = structlog.get_logger()

CollaboratorFactory = Callable[[RunPaths], Collaborators]


class Engine:
    """A pipeline engine instance.

    Owns the host pool for its whole lifetime: the pool is built from
    configuration at startup and torn down by ``close()``. Each ``run()``
    gets its own run directory and collaborators.

    Example:
        >>> with Engine(ConveyorConfig.default(), base_dir=Path(".")) as engine:
        ...     result = engine.run(PipelineDefinition.load(Path("pipeline.yaml")))
        >>> result.pipeline_status
        <PipelineStatus.SUCCEEDED: 'succeeded'>
    """

    def __init__(
        self,
        config: ConveyorConfig,
        *,
        base_dir: Path,
        dry_run: bool = False,
        collaborator_factory: CollaboratorFactory | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            config: Engine configuration.
            base_dir: Directory holding runs/ and reports/.
            dry_run: Log subprocess commands instead of executing them.
            collaborator_factory: Builds collaborators for a run (defaults to
                the local production bindings).
        """
        self.config = config
        self.base_dir = base_dir
        self.dry_run = dry_run
        self.cmd = CommandRunner(
            dry_run=dry_run,
            heartbeat_interval=config.command.heartbeat_interval,
        )
        self._collaborator_factory = collaborator_factory or self.create_collaborators
        self.pool = HostPool.from_config(config.get_enabled_agents())
        self.resolver = AgentResolver(self.pool)
        self.tool_resolver = ToolResolver(config.tools)
        self._closed = False
        logger.info(
            "Engine started",
            hosts=[h.name for h in self.pool.hosts],
            dry_run=dry_run,
        )

    def create_collaborators(self, paths: RunPaths) -> Collaborators:
        """Local production bindings for a run."""
        return Collaborators(
            vcs=GitCheckout(self.cmd),
            process=LocalProcessExecutor(self.cmd, shell=self.config.command.shell),
            artifacts=FilesystemArtifactStorage(paths.artifacts_dir),
            reports=JUnitReportPublisher(paths.reports_dir, paths.run_id),
        )

    def new_run_paths(self, run_id: str | None = None) -> RunPaths:
        """Create the directory layout of a new run."""
        return RunPaths.create_new(
            self.base_dir,
            run_id,
            runs_root=self.config.paths.runs_dir,
            reports_root=self.config.paths.reports_dir,
        )

    def run(
        self,
        pipeline: PipelineDefinition,
        *,
        run_id: str | None = None,
        skip: Iterable[str] = (),
    ) -> PipelineResult:
        """Run a pipeline in a fresh run directory.

        Args:
            pipeline: Pipeline definition.
            run_id: Optional run ID (generated if omitted).
            skip: Stage names excluded from this run.

        Returns:
            Terminal PipelineResult.

        Raises:
            RuntimeError: If the engine has been closed.
        """
        if self._closed:
            msg = "Engine is closed"
            raise RuntimeError(msg)

        paths = self.new_run_paths(run_id)
        logger.info("Run created", run_id=paths.run_id, run_dir=str(paths.run_dir))

        stage_executor = StageExecutor(
            resolver=self.resolver,
            collaborators=self._collaborator_factory(paths),
            paths=paths,
            policy=self.config.policy,
        )
        runner = PipelineRunner(
            stage_executor,
            tool_resolver=self.tool_resolver,
            state=StateManager(paths),
        )
        return runner.run(pipeline, skip=skip)

    def close(self) -> None:
        """Shut the engine down and release the host pool."""
        if self._closed:
            return
        self.pool.close()
        self._closed = True
        logger.info("Engine stopped")

    def __enter__(self) -> Engine:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


def load_config(base_dir: Path, config_path: Path | None = None) -> ConveyorConfig:
    """Load configuration, falling back to ``<base_dir>/conveyor.yaml`` then defaults."""
    if config_path is not None:
        return ConveyorConfig.load(config_path)
    default_path = base_dir / DEFAULT_CONFIG_FILENAME
    if default_path.exists():
        return ConveyorConfig.load(default_path)
    return ConveyorConfig.default()


def create_engine(
    base_dir: Path,
    *,
    config: ConveyorConfig | None = None,
    config_path: Path | None = None,
    strict: bool | None = None,
    dry_run: bool = False,
) -> Engine:
    """Create an Engine with configuration.

    Args:
        base_dir: Base directory for runs and reports.
        config: Optional ConveyorConfig instance.
        config_path: Optional path to config file.
        strict: Override both strict-mode policies when given.
        dry_run: If True, don't execute commands.

    Returns:
        Configured Engine instance.
    """
    cfg = config or load_config(base_dir, config_path)

    if strict is not None:
        cfg = cfg.model_copy(deep=True)
        cfg.policy.strict_archive = strict
        cfg.policy.strict_reports = strict

    return Engine(cfg, base_dir=base_dir, dry_run=dry_run)
