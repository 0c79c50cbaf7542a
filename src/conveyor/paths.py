"""Run directory layout management for conveyor."""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def generate_run_id() -> str:
    """Generate a unique run ID with timestamp prefix.

    Returns:
        A run ID in format: YYYYMMDD_HHMMSS_<short-uuid>

    Example:
        >>> run_id = generate_run_id()
        >>> len(run_id) > 20
        True
    """
    ts = datetime.now(tz=UTC).strftime("%Y%m%d_%H%M%S")
    short_uuid = uuid.uuid4().hex[:8]
    return f"{ts}_{short_uuid}"


def safe_name(name: str) -> str:
    """Turn a stage or host name into a filesystem-safe path component."""
    return _UNSAFE_CHARS.sub("_", name).strip("_") or "unnamed"


@dataclass
class RunPaths:
    """Manages the directory structure for a single pipeline run.

    Attributes:
        base_dir: The base directory (typically project root).
        run_id: Unique identifier for this run.
        runs_root: Directory name (relative to base_dir) holding all runs.
        reports_root: Directory name (relative to base_dir) holding published reports.

    Example:
        >>> paths = RunPaths(Path("/project"), "20240101_120000_abc12345")
        >>> paths.run_dir.name
        '20240101_120000_abc12345'
    """

    base_dir: Path
    run_id: str
    runs_root: str = "runs"
    reports_root: str = "reports"

    @property
    def runs_dir(self) -> Path:
        """Directory containing all runs."""
        return self.base_dir / self.runs_root

    @property
    def run_dir(self) -> Path:
        """Root directory for this specific run."""
        return self.runs_dir / self.run_id

    @property
    def artifacts_dir(self) -> Path:
        """Directory for archived build artifacts."""
        return self.run_dir / "artifacts"

    @property
    def logs_dir(self) -> Path:
        """Directory for step log files."""
        return self.run_dir / "logs"

    @property
    def workspaces_dir(self) -> Path:
        """Directory holding one workspace per host."""
        return self.run_dir / "workspace"

    @property
    def reports_dir(self) -> Path:
        """Directory containing published report sets of all runs."""
        return self.base_dir / self.reports_root

    @property
    def run_reports_dir(self) -> Path:
        """Published report set for this run."""
        return self.reports_dir / self.run_id

    @property
    def state_json(self) -> Path:
        """Path to state.json."""
        return self.run_dir / "state.json"

    def workspace_for(self, host: str) -> Path:
        """Get the workspace directory of a host.

        Stages bound to the same host share this directory; stages on
        different hosts never see each other's files.

        Args:
            host: Host name.

        Returns:
            Path to the host workspace.
        """
        return self.workspaces_dir / safe_name(host)

    def log_path(self, stage: str, index: int, kind: str) -> Path:
        """Get the path for a step log file.

        Args:
            stage: Stage name.
            index: Zero-based step index within the stage.
            kind: Step kind (e.g. "sh", "checkout").

        Returns:
            Path to the log file.
        """
        return self.logs_dir / f"{safe_name(stage)}_{index:02d}_{kind}.log"

    def create_directories(self) -> None:
        """Create all directories for the run.

        This is idempotent - can be called multiple times safely.
        """
        self.artifacts_dir.mkdir(parents=True, exist_ok=True)
        self.logs_dir.mkdir(parents=True, exist_ok=True)
        self.workspaces_dir.mkdir(parents=True, exist_ok=True)

    def validate(self) -> bool:
        """Validate that the run directory structure exists."""
        return all(
            d.exists()
            for d in [self.run_dir, self.artifacts_dir, self.logs_dir]
        )

    @classmethod
    def create_new(
        cls,
        base_dir: Path,
        run_id: str | None = None,
        *,
        runs_root: str = "runs",
        reports_root: str = "reports",
    ) -> RunPaths:
        """Create a new RunPaths instance and initialize directories.

        Args:
            base_dir: The base directory for runs.
            run_id: Optional run ID (generated if not provided).
            runs_root: Directory name for runs.
            reports_root: Directory name for published reports.

        Returns:
            A new RunPaths instance with directories created.
        """
        if run_id is None:
            run_id = generate_run_id()
        paths = cls(
            base_dir=base_dir,
            run_id=run_id,
            runs_root=runs_root,
            reports_root=reports_root,
        )
        paths.create_directories()
        return paths

    @classmethod
    def from_existing(
        cls, base_dir: Path, run_id: str, *, runs_root: str = "runs"
    ) -> RunPaths:
        """Load an existing run's paths.

        Raises:
            ValueError: If the run directory doesn't exist or is invalid.
        """
        paths = cls(base_dir=base_dir, run_id=run_id, runs_root=runs_root)
        if not paths.run_dir.exists():
            msg = f"Run directory does not exist: {paths.run_dir}"
            raise ValueError(msg)
        if not paths.validate():
            msg = f"Run directory structure is incomplete: {paths.run_dir}"
            raise ValueError(msg)
        return paths

    @staticmethod
    def list_runs(base_dir: Path, runs_root: str = "runs") -> list[str]:
        """List run IDs under base_dir, newest first."""
        runs_dir = base_dir / runs_root
        if not runs_dir.exists():
            return []
        return sorted(
            (d.name for d in runs_dir.iterdir() if d.is_dir()),
            reverse=True,
        )
