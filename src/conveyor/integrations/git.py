"""Git checkout through the command runner."""

from __future__ import annotations

import shutil
from pathlib import Path

import structlog

from conveyor.exceptions import CheckoutError, CommandError
from conveyor.infra.command import CommandRunner
from conveyor.integrations.base import CheckoutResult
from conveyor.pipeline.constants import CREDENTIALS_ENV_VAR

logger = structlog.get_logger()


class GitCheckout:
    """Clones a repository with the git CLI.

    The credential reference is handed to git's credential helper through
    the environment; conveyor never sees the secret itself.

    Example:
        >>> vcs = GitCheckout(CommandRunner())
        >>> vcs.checkout(
        ...     "https://example.com/app.git", None,
        ...     branch="main", dest=Path("/ws/app"),
        ... ).revision
        'abc123...'
    """

    def __init__(self, cmd: CommandRunner, *, depth: int | None = 1) -> None:
        """Initialize the checkout collaborator.

        Args:
            cmd: CommandRunner instance.
            depth: Shallow clone depth (None for a full clone).
        """
        self.cmd = cmd
        self.depth = depth

    def checkout(
        self,
        url: str,
        credentials_id: str | None,
        *,
        branch: str,
        dest: Path,
    ) -> CheckoutResult:
        """Clone ``url`` at ``branch`` into ``dest``.

        An existing non-empty ``dest`` is replaced so that a re-run starts
        from a clean checkout. Dry runs leave the filesystem untouched.

        Raises:
            CheckoutError: If git fails or cannot be started.
        """
        log = logger.bind(url=url, branch=branch, dest=str(dest))
        log.info("Checking out repository")

        if not self.cmd.dry_run:
            if dest.exists() and any(dest.iterdir()):
                log.warning("Checkout directory not empty, removing")
                shutil.rmtree(dest)
            dest.parent.mkdir(parents=True, exist_ok=True)

        env = {"GIT_TERMINAL_PROMPT": "0"}
        if credentials_id:
            env[CREDENTIALS_ENV_VAR] = credentials_id

        args = ["clone", "--branch", branch]
        if self.depth:
            args += ["--depth", str(self.depth)]
        args += [url, str(dest)]

        try:
            result = self.cmd.run_git(args, cwd=dest.parent, check=False, env=env)
        except CommandError as e:
            raise CheckoutError(str(e), url=url) from e

        if result.returncode != 0:
            msg = f"git clone of {url}@{branch} failed: {result.stderr.strip()}"
            log.error("Checkout failed", returncode=result.returncode)
            raise CheckoutError(msg, url=url, returncode=result.returncode)

        revision: str | None = None
        if not self.cmd.dry_run:
            rev = self.cmd.run_git(["rev-parse", "HEAD"], cwd=dest, check=False)
            revision = rev.stdout.strip() or None

        log.info("Checkout completed", revision=revision)
        return CheckoutResult(path=dest, revision=revision)
