"""Filesystem artifact storage."""

from __future__ import annotations

import shutil
from pathlib import Path

import structlog

from conveyor.exceptions import NoArtifactsMatched
from conveyor.integrations.base import ArchiveResult

logger = structlog.get_logger()


def _is_symlinked(path: Path, root: Path) -> bool:
    """Check if ``path`` or any directory between it and ``root`` is a symlink."""
    current = path
    while current != root and current != current.parent:
        if current.is_symlink():
            return True
        current = current.parent
    return False


def match_files(source_dir: Path, pattern: str, *, follow_symlinks: bool) -> list[Path]:
    """Find regular files under ``source_dir`` matching a glob.

    Args:
        source_dir: Directory the pattern is relative to.
        pattern: Glob pattern, ``**`` matches any depth.
        follow_symlinks: When False, symlinked files (and files reached
            through symlinked directories) are left out.

    Returns:
        Matching files sorted by relative path.
    """
    if not source_dir.exists():
        return []

    matches: list[Path] = []
    for path in source_dir.glob(pattern):
        if not follow_symlinks and _is_symlinked(path, source_dir):
            logger.debug("Skipping symlinked match", path=str(path))
            continue
        if path.is_file():
            matches.append(path)
    return sorted(matches, key=lambda p: p.relative_to(source_dir).as_posix())


class FilesystemArtifactStorage:
    """Copies matching files into the run's artifact directory.

    Relative layout under the workspace is preserved, so
    ``target/app.jar`` is stored as ``<artifacts_dir>/target/app.jar``.
    """

    def __init__(self, artifacts_dir: Path) -> None:
        """Initialize the storage.

        Args:
            artifacts_dir: Destination directory for archived files.
        """
        self.artifacts_dir = artifacts_dir

    def archive(
        self,
        pattern: str,
        follow_symlinks: bool,
        *,
        source_dir: Path,
    ) -> ArchiveResult:
        """Archive files matching ``pattern``.

        Raises:
            NoArtifactsMatched: If nothing matches.
        """
        log = logger.bind(pattern=pattern, source_dir=str(source_dir))
        files = match_files(source_dir, pattern, follow_symlinks=follow_symlinks)
        if not files:
            log.info("No artifacts matched")
            raise NoArtifactsMatched(pattern)

        archived: list[str] = []
        for path in files:
            relative = path.relative_to(source_dir).as_posix()
            target = self.artifacts_dir / relative
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, target)
            archived.append(relative)

        log.info("Artifacts archived", count=len(archived))
        return ArchiveResult(archived_count=len(archived), files=archived)
