"""CLI interface for the conveyor pipeline engine."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Annotated

import structlog
import typer

from conveyor import __version__
from conveyor.engine import create_engine, load_config
from conveyor.exceptions import ConveyorError, StateError
from conveyor.paths import RunPaths
from conveyor.pipeline.definition import PipelineDefinition
from conveyor.pipeline.results import ExecutionResult, ResultStatus
from conveyor.pipeline.runner import PipelineResult
from conveyor.state import StateManager

# Configure structlog for CLI output
structlog.configure(
    processors=[
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="%Y-%m-%d %H:%M:%S"),
        structlog.dev.ConsoleRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
)

logger = structlog.get_logger()

app = typer.Typer(
    name="conveyor",
    help="Sequential build pipeline execution engine",
    no_args_is_help=True,
)

_STATUS_COLORS = {
    ResultStatus.SUCCESS: typer.colors.GREEN,
    ResultStatus.FAILURE: typer.colors.RED,
    ResultStatus.SKIPPED: typer.colors.YELLOW,
}

BaseDirOption = Annotated[
    Path,
    typer.Option(
        "--dir",
        "-d",
        help="Base directory holding runs/ and reports/",
        file_okay=False,
        resolve_path=True,
    ),
]

ConfigOption = Annotated[
    Path | None,
    typer.Option(
        "--config",
        "-c",
        help="Path to conveyor.yaml config file",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
]


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"conveyor version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-v",
            help="Show version and exit.",
            callback=version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """conveyor - sequential build pipeline execution engine."""
    pass


def _echo_result(result: PipelineResult) -> None:
    """Print a per-stage summary of a pipeline run."""
    for child in result.children:
        _echo_stage(child)

    typer.echo("")
    if result.success:
        typer.echo(typer.style("Pipeline succeeded.", fg=typer.colors.GREEN))
    else:
        typer.echo(typer.style("Pipeline failed.", fg=typer.colors.RED))
        typer.echo(f"Failing stage: {result.failed_stage or '-'}")
        typer.echo(f"Cause: {result.detail}")


def _echo_stage(stage: ExecutionResult) -> None:
    color = _STATUS_COLORS[stage.status]
    host = f" on {stage.host}" if stage.host else ""
    typer.echo(
        typer.style(f"[{stage.status.value:>7}] ", fg=color)
        + f"{stage.name}{host} ({stage.duration_ms} ms)"
    )
    for step in stage.children:
        marker = "ok" if step.success else "FAILED"
        typer.echo(f"            {marker:<6} {step.name}")
    for warning in stage.warnings:
        typer.echo(typer.style(f"            warning: {warning}", fg=typer.colors.YELLOW))


@app.command()
def run(
    pipeline_file: Annotated[
        Path,
        typer.Argument(
            help="Pipeline declaration (YAML)",
            exists=True,
            dir_okay=False,
            resolve_path=True,
        ),
    ],
    base_dir: BaseDirOption = Path.cwd(),
    config: ConfigOption = None,
    strict: Annotated[
        bool | None,
        typer.Option(
            "--strict/--best-effort",
            help="Fail archive/report steps whose pattern matches nothing",
        ),
    ] = None,
    skip: Annotated[
        list[str] | None,
        typer.Option("--skip", help="Exclude a stage from this run (repeatable)"),
    ] = None,
    run_id: Annotated[
        str | None,
        typer.Option("--run-id", help="Run ID to use (generated if omitted)"),
    ] = None,
    dry_run: Annotated[
        bool,
        typer.Option("--dry-run", help="Don't execute commands, just log them"),
    ] = False,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Print the terminal result as JSON"),
    ] = False,
) -> None:
    """Run a pipeline. Exits 0 when it succeeds and 1 when it fails."""
    log = logger.bind(command="run", pipeline_file=str(pipeline_file))
    log.info("Starting conveyor run")

    try:
        pipeline = PipelineDefinition.load(pipeline_file)
        base_dir.mkdir(parents=True, exist_ok=True)
        with create_engine(
            base_dir, config_path=config, strict=strict, dry_run=dry_run
        ) as engine:
            result = engine.run(pipeline, run_id=run_id, skip=skip or [])
    except ConveyorError as e:
        log.error("Run failed", error=str(e))
        typer.echo(typer.style(f"Error: {e}", fg=typer.colors.RED), err=True)
        raise typer.Exit(1) from e

    if json_output:
        typer.echo(json.dumps(result.to_dict(), indent=2))
    else:
        typer.echo(f"Run ID: {result.run_id}")
        _echo_result(result)

    raise typer.Exit(result.exit_code or 0)


@app.command()
def validate(
    pipeline_file: Annotated[
        Path,
        typer.Argument(help="Pipeline declaration (YAML)", dir_okay=False),
    ],
) -> None:
    """Validate a pipeline declaration without running it."""
    try:
        pipeline = PipelineDefinition.load(pipeline_file)
    except ConveyorError as e:
        typer.echo(typer.style(f"Invalid: {e}", fg=typer.colors.RED), err=True)
        raise typer.Exit(1) from e

    typer.echo(typer.style(f"Valid pipeline: {pipeline.name}", fg=typer.colors.GREEN))
    typer.echo(f"Default agent: {pipeline.agent}")
    for stage in pipeline.stages:
        agent = str(stage.agent) if stage.agent is not None else "(inherit)"
        typer.echo(f"  {stage.name}: {len(stage.steps)} step(s), agent {agent}")
    if pipeline.post:
        typer.echo(f"  post: {len(pipeline.post)} step(s)")


@app.command()
def agents(
    base_dir: BaseDirOption = Path.cwd(),
    config: ConfigOption = None,
) -> None:
    """List the configured host pool."""
    try:
        cfg = load_config(base_dir, config)
    except ConveyorError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    for agent in cfg.agents:
        state = "" if agent.enabled else " (disabled)"
        labels = ", ".join(agent.labels) or "-"
        typer.echo(f"{agent.name}{state}: {labels}")


@app.command()
def status(
    run_id: Annotated[
        str | None,
        typer.Argument(help="Run ID to show (lists all runs if omitted)"),
    ] = None,
    base_dir: BaseDirOption = Path.cwd(),
    config: ConfigOption = None,
    json_output: Annotated[
        bool,
        typer.Option("--json", help="Output as JSON"),
    ] = False,
) -> None:
    """Show the persisted state of a run."""
    try:
        runs_root = load_config(base_dir, config).paths.runs_dir
    except ConveyorError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    if run_id is None:
        runs = RunPaths.list_runs(base_dir, runs_root)
        if not runs:
            typer.echo("No runs found.")
            return
        for rid in runs:
            typer.echo(rid)
        return

    try:
        paths = RunPaths.from_existing(base_dir, run_id, runs_root=runs_root)
        state = StateManager(paths).load()
    except (ValueError, StateError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1) from e

    if json_output:
        typer.echo(json.dumps(state.to_dict(), indent=2))
        return

    typer.echo(f"Run ID: {state.run_id}")
    typer.echo(f"Pipeline: {state.pipeline}")
    typer.echo(f"Status: {state.status.value}")
    for stage in state.stages:
        host = f" on {stage.host}" if stage.host else ""
        typer.echo(f"  {stage.name}: {stage.status.value}{host}")
    if state.failed_stage:
        typer.echo(f"Failing stage: {state.failed_stage}")
        typer.echo(f"Cause: {state.error}")


if __name__ == "__main__":
    app()
