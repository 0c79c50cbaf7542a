"""Local shell command execution."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from conveyor.infra.command import CommandRunner
from conveyor.integrations.base import ProcessResult

if TYPE_CHECKING:
    from conveyor.pipeline.agents import Host

logger = structlog.get_logger()


class LocalProcessExecutor:
    """Runs `sh` step commands through a local shell.

    Every host in a local pool maps onto this machine; the host only
    selects the working directory the caller passes in.
    """

    def __init__(self, cmd: CommandRunner, *, shell: str = "/bin/sh") -> None:
        """Initialize the executor.

        Args:
            cmd: CommandRunner instance.
            shell: Shell binary used as ``<shell> -c <command>``.
        """
        self.cmd = cmd
        self.shell = shell

    def execute(
        self,
        command: str,
        working_dir: Path,
        host: Host,
        *,
        env: dict[str, str] | None = None,
        log_path: Path | None = None,
    ) -> ProcessResult:
        """Run ``command`` and capture its output.

        Raises:
            CommandError: If the shell cannot be started.
        """
        logger.bind(host=host.name).debug("Executing shell command", command=command)
        working_dir.mkdir(parents=True, exist_ok=True)
        result = self.cmd.run_capture(
            [self.shell, "-c", command],
            cwd=working_dir,
            env=env,
            log_path=log_path,
        )
        return ProcessResult(
            exit_code=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
        )
