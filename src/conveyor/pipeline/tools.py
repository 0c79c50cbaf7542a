"""Resolve declared tool versions into a step environment."""

from __future__ import annotations

import os
import re
from collections.abc import Iterable, Mapping

import structlog

from conveyor.config import ToolInstallation
from conveyor.exceptions import ToolResolutionError
from conveyor.pipeline.constants import TOOL_ENV_PREFIX

logger = structlog.get_logger()


def env_key(tool: str) -> str:
    """Upper-case environment key fragment for a tool name (``node-js`` -> ``NODE_JS``)."""
    return re.sub(r"[^A-Za-z0-9]+", "_", tool).strip("_").upper()


class ToolResolver:
    """Maps ``tools: {name: version}`` declarations onto installations.

    Example:
        >>> resolver = ToolResolver([ToolInstallation(name="maven", version="3.9.6", home="/opt/mvn")])
        >>> resolver.resolve({"maven": "3.9.6"})["MAVEN_HOME"]
        '/opt/mvn'
    """

    def __init__(self, installations: Iterable[ToolInstallation]) -> None:
        self.installations = list(installations)

    def find(self, name: str, version: str) -> ToolInstallation | None:
        """Find the installation for ``name`` at ``version``."""
        for tool in self.installations:
            if tool.name == name and tool.version == version:
                return tool
        return None

    def resolve(
        self,
        declared: Mapping[str, str],
        *,
        base_path: str | None = None,
    ) -> dict[str, str]:
        """Resolve declarations into environment variables.

        Each tool contributes ``<NAME>_HOME`` and ``CONVEYOR_TOOL_<NAME>``;
        ``PATH`` is prefixed with every tool's ``bin`` directory in
        declaration order.

        Args:
            declared: Tool name to version.
            base_path: PATH to extend (defaults to the current process PATH).

        Returns:
            Environment to merge into every shell step.

        Raises:
            ToolResolutionError: If a declared version has no installation.
        """
        if not declared:
            return {}

        env: dict[str, str] = {}
        bin_dirs: list[str] = []
        for name, version in declared.items():
            tool = self.find(name, version)
            if tool is None:
                known = sorted(f"{t.name}@{t.version}" for t in self.installations)
                msg = f"Tool '{name}' version '{version}' is not installed (known: {known})"
                raise ToolResolutionError(msg, tool=name, version=version)

            key = env_key(name)
            env[f"{key}_HOME"] = str(tool.home)
            env[f"{TOOL_ENV_PREFIX}{key}"] = version
            bin_dirs.append(str(tool.home / "bin"))

        path = base_path if base_path is not None else os.environ.get("PATH", "")
        env["PATH"] = os.pathsep.join([*bin_dirs, path]) if path else os.pathsep.join(bin_dirs)

        logger.info("Tools resolved", tools=dict(declared))
        return env
