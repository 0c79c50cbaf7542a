"""Subprocess command runner with logging."""

from __future__ import annotations

import os
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path

import structlog

from conveyor.exceptions import CommandError

logger = structlog.get_logger()


@dataclass
class CommandResult:
    """Result of a command execution.

    Attributes:
        returncode: Exit code of the process (negative for signal termination).
        stdout: Captured stdout text.
        stderr: Captured stderr text.
        command: The command that was run.
        cwd: Working directory where command ran.
        log_path: Optional path the combined output was written to.
    """

    returncode: int
    stdout: str
    stderr: str
    command: list[str]
    cwd: Path | None
    log_path: Path | None = None

    @property
    def ok(self) -> bool:
        """Check if the command exited with status 0."""
        return self.returncode == 0


class CommandRunner:
    """Runs subprocess commands with consistent logging.

    All subprocess calls in conveyor go through this class so that
    logging and error handling stay uniform.

    Example:
        >>> runner = CommandRunner()
        >>> result = runner.run_capture(["echo", "hello"], cwd=Path("/tmp"))
        >>> result.returncode
        0
    """

    def __init__(self, dry_run: bool = False, heartbeat_interval: int = 30) -> None:
        """Initialize the command runner.

        Args:
            dry_run: If True, commands are logged but not executed.
            heartbeat_interval: Interval in seconds for heartbeat logging (0 to disable).
        """
        self.dry_run = dry_run
        self.heartbeat_interval = heartbeat_interval

    @staticmethod
    def _heartbeat_logger(
        log: structlog.BoundLogger, stop_event: threading.Event, interval: int
    ) -> None:
        """Log heartbeat messages while a command is running.

        Args:
            log: Logger instance.
            stop_event: Event to signal when to stop.
            interval: Interval in seconds between heartbeats.
        """
        elapsed = 0
        while not stop_event.wait(timeout=interval):
            elapsed += interval
            log.info("Command still running", elapsed_seconds=elapsed)

    def run_capture(
        self,
        command: list[str],
        *,
        cwd: Path | None = None,
        timeout: int | None = None,
        check: bool = False,
        env: dict[str, str] | None = None,
        log_path: Path | None = None,
    ) -> CommandResult:
        """Run a command and capture stdout/stderr in memory.

        Args:
            command: Command and arguments to run.
            cwd: Working directory for the command.
            timeout: Timeout in seconds.
            check: If True, raise on non-zero exit code.
            env: Environment variables (merged with current env).
            log_path: If given, stdout and stderr are also written there.

        Returns:
            CommandResult with exit code and captured output.

        Raises:
            CommandError: If the command cannot be started or times out, or if
                check=True and the command fails.
        """
        log = logger.bind(command=command, cwd=str(cwd) if cwd else None)
        log.info("Running command")

        if self.dry_run:
            log.info("Dry run - skipping execution")
            return CommandResult(
                returncode=0, stdout="", stderr="", command=command, cwd=cwd
            )

        full_env = os.environ.copy()
        if env:
            full_env.update(env)

        # Start heartbeat logging if enabled and timeout is long enough
        stop_heartbeat = threading.Event()
        heartbeat_thread = None
        if self.heartbeat_interval > 0 and (
            timeout is None or timeout > self.heartbeat_interval
        ):
            heartbeat_thread = threading.Thread(
                target=self._heartbeat_logger,
                args=(log, stop_heartbeat, self.heartbeat_interval),
                daemon=True,
            )
            heartbeat_thread.start()

        try:
            result = subprocess.run(
                command,
                cwd=cwd,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=full_env,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            log.error("Command timed out", timeout=timeout)
            msg = f"Command timed out after {timeout}s: {' '.join(command)}"
            raise CommandError(msg, command=command, cwd=cwd) from e
        except FileNotFoundError as e:
            log.error("Command not found", command=command[0])
            msg = f"Command not found: {command[0]}"
            raise CommandError(msg, command=command, cwd=cwd) from e
        finally:
            if heartbeat_thread:
                stop_heartbeat.set()
                heartbeat_thread.join(timeout=1)

        log.info("Command completed", returncode=result.returncode)

        if log_path:
            self._write_log(log_path, result.stdout, result.stderr)

        if check and result.returncode != 0:
            msg = f"Command failed with exit code {result.returncode}: {' '.join(command)}"
            raise CommandError(
                msg,
                command=command,
                returncode=result.returncode,
                cwd=cwd,
            )

        return CommandResult(
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
            command=command,
            cwd=cwd,
            log_path=log_path,
        )

    @staticmethod
    def _write_log(log_path: Path, stdout: str, stderr: str) -> None:
        """Write captured output to a log file."""
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with log_path.open("w") as handle:
            handle.write(stdout)
            if stderr:
                handle.write("\n--- stderr ---\n")
                handle.write(stderr)

    def run_git(
        self,
        args: list[str],
        *,
        cwd: Path,
        check: bool = True,
        env: dict[str, str] | None = None,
    ) -> CommandResult:
        """Run a git command.

        Convenience method for running git commands.

        Args:
            args: Git subcommand and arguments.
            cwd: Working directory.
            check: If True, raise on non-zero exit code.
            env: Extra environment variables.

        Returns:
            CommandResult of the git invocation.
        """
        return self.run_capture(["git", *args], cwd=cwd, check=check, env=env)
