"""Integration tests for the conveyor CLI."""

from __future__ import annotations

from pathlib import Path

import pytest
from typer.testing import CliRunner

from conveyor import __version__
from conveyor.cli import app

runner = CliRunner()

PASSING = """
name: demo
stages:
  - name: build
    steps: [{kind: sh, command: "echo ok > out.txt"}]
  - name: publish
    steps: [{kind: archive, pattern: "*.txt"}]
"""

FAILING = """
name: demo
stages:
  - name: build
    steps: [{kind: sh, command: "exit 2"}]
  - name: publish
    steps: [{kind: archive, pattern: "*.txt"}]
"""


@pytest.fixture
def pipeline_file(tmp_path: Path):
    def _write(content: str) -> Path:
        path = tmp_path / "pipeline.yaml"
        path.write_text(content)
        return path

    return _write


def test_version() -> None:
    """Test --version prints the version."""
    result = runner.invoke(app, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_validate_ok(pipeline_file) -> None:
    """Test validate on a good declaration."""
    result = runner.invoke(app, ["validate", str(pipeline_file(PASSING))])

    assert result.exit_code == 0
    assert "Valid pipeline: demo" in result.output
    assert "build: 1 step(s), agent (inherit)" in result.output


def test_validate_invalid(pipeline_file) -> None:
    """Test validate rejects a bad declaration."""
    result = runner.invoke(app, ["validate", str(pipeline_file("stages: []\n"))])
    assert result.exit_code == 1


def test_agents_from_config(tmp_project: Path) -> None:
    """Test agents lists the configured pool."""
    (tmp_project / "conveyor.yaml").write_text(
        "agents:\n"
        "  - name: ci-1\n"
        "    labels: [linux, docker]\n"
        "  - name: ci-2\n"
        "    enabled: false\n"
    )

    result = runner.invoke(app, ["agents", "--dir", str(tmp_project)])

    assert result.exit_code == 0
    assert "ci-1: linux, docker" in result.output
    assert "ci-2 (disabled): -" in result.output


@pytest.mark.integration
def test_run_success(pipeline_file, tmp_project: Path) -> None:
    """Test a passing pipeline exits 0 and archives its output."""
    result = runner.invoke(
        app,
        ["run", str(pipeline_file(PASSING)), "--dir", str(tmp_project), "--run-id", "cli_ok"],
    )

    assert result.exit_code == 0, result.output
    assert "Pipeline succeeded." in result.output
    assert (tmp_project / "runs" / "cli_ok" / "artifacts" / "out.txt").exists()


@pytest.mark.integration
def test_run_failure(pipeline_file, tmp_project: Path) -> None:
    """Test a failing pipeline exits 1 and names the failing stage."""
    result = runner.invoke(
        app,
        ["run", str(pipeline_file(FAILING)), "--dir", str(tmp_project), "--run-id", "cli_bad"],
    )

    assert result.exit_code == 1
    assert "Pipeline failed." in result.output
    assert "Failing stage: build" in result.output
    assert not (tmp_project / "runs" / "cli_bad" / "artifacts" / "out.txt").exists()


@pytest.mark.integration
def test_run_json(pipeline_file, tmp_project: Path) -> None:
    """Test --json prints the terminal result."""
    result = runner.invoke(
        app,
        ["run", str(pipeline_file(FAILING)), "--dir", str(tmp_project), "--json"],
    )

    assert result.exit_code == 1
    assert '"pipeline_status": "failed"' in result.output
    assert '"failed_stage": "build"' in result.output


@pytest.mark.integration
def test_run_skip(pipeline_file, tmp_project: Path) -> None:
    """Test --skip excludes a stage."""
    result = runner.invoke(
        app,
        [
            "run",
            str(pipeline_file(FAILING)),
            "--dir",
            str(tmp_project),
            "--skip",
            "build",
        ],
    )

    assert result.exit_code == 0, result.output
    assert "skipped" in result.output


@pytest.mark.integration
def test_run_strict(pipeline_file, tmp_project: Path) -> None:
    """Test --strict turns an empty archive match into a failure."""
    content = PASSING.replace('"*.txt"', '"*.jar"')

    best_effort = runner.invoke(
        app, ["run", str(pipeline_file(content)), "--dir", str(tmp_project)]
    )
    strict = runner.invoke(
        app, ["run", str(pipeline_file(content)), "--dir", str(tmp_project), "--strict"]
    )

    assert best_effort.exit_code == 0
    assert "warning: No artifacts matched" in best_effort.output
    assert strict.exit_code == 1
    assert "Failing stage: publish" in strict.output


def test_run_invalid_pipeline(pipeline_file, tmp_project: Path) -> None:
    """Test an invalid declaration exits 1 without running."""
    result = runner.invoke(
        app, ["run", str(pipeline_file("name: x\n")), "--dir", str(tmp_project)]
    )

    assert result.exit_code == 1
    assert not (tmp_project / "runs").exists()


@pytest.mark.integration
def test_status(pipeline_file, tmp_project: Path) -> None:
    """Test status lists runs and shows a run's stages."""
    runner.invoke(
        app,
        ["run", str(pipeline_file(FAILING)), "--dir", str(tmp_project), "--run-id", "r1"],
    )

    listing = runner.invoke(app, ["status", "--dir", str(tmp_project)])
    detail = runner.invoke(app, ["status", "r1", "--dir", str(tmp_project)])

    assert listing.exit_code == 0
    assert "r1" in listing.output
    assert detail.exit_code == 0
    assert "Status: failed" in detail.output
    assert "build: failed on local" in detail.output
    assert "publish: pending" in detail.output
    assert "Failing stage: build" in detail.output


@pytest.mark.integration
def test_status_with_custom_runs_dir(pipeline_file, tmp_project: Path, tmp_path: Path) -> None:
    """Test status finds runs stored under a config's own runs directory."""
    config_path = tmp_path / "custom.yaml"
    config_path.write_text("paths:\n  runs_dir: builds\n")
    runner.invoke(
        app,
        [
            "run",
            str(pipeline_file(PASSING)),
            "--dir",
            str(tmp_project),
            "--config",
            str(config_path),
            "--run-id",
            "custom_run",
        ],
    )

    default_listing = runner.invoke(app, ["status", "--dir", str(tmp_project)])
    listing = runner.invoke(
        app, ["status", "--dir", str(tmp_project), "--config", str(config_path)]
    )
    detail = runner.invoke(
        app,
        ["status", "custom_run", "--dir", str(tmp_project), "--config", str(config_path)],
    )

    assert (tmp_project / "builds" / "custom_run").is_dir()
    assert "No runs found." in default_listing.output
    assert listing.exit_code == 0
    assert "custom_run" in listing.output
    assert detail.exit_code == 0
    assert "Status: succeeded" in detail.output


def test_status_unknown_run(tmp_project: Path) -> None:
    """Test status for a missing run exits 1."""
    result = runner.invoke(app, ["status", "missing", "--dir", str(tmp_project)])
    assert result.exit_code == 1


def test_status_no_runs(tmp_project: Path) -> None:
    """Test status without any runs."""
    result = runner.invoke(app, ["status", "--dir", str(tmp_project)])
    assert result.exit_code == 0
    assert "No runs found." in result.output
