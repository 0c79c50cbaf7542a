"""Execution host pool and agent resolution."""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field

import structlog

from conveyor.config import AgentConfig
from conveyor.exceptions import AgentBusyError, NoAgentsAvailable, NoMatchingAgent
from conveyor.pipeline.definition import AgentRequirement

logger = structlog.get_logger()


@dataclass(frozen=True)
class Host:
    """An execution host.

    Attributes:
        name: Unique host name.
        labels: Labels the host advertises.
    """

    name: str
    labels: frozenset[str] = field(default_factory=frozenset)

    def has_label(self, label: str) -> bool:
        """Check if the host advertises ``label``."""
        return label in self.labels

    def satisfies(self, requirement: AgentRequirement) -> bool:
        """Check if the host can service ``requirement``."""
        return requirement.is_any or self.has_label(requirement.label or "")

    @classmethod
    def from_config(cls, config: AgentConfig) -> Host:
        """Create a host from its configuration entry."""
        return cls(name=config.name, labels=frozenset(config.labels))


class HostPool:
    """The set of hosts available to one engine instance.

    Membership is fixed at construction. A host is occupied while a
    stage holds its lease; at most one stage occupies a given host at
    a time.
    """

    def __init__(self, hosts: Iterable[Host] = ()) -> None:
        self._hosts: list[Host] = []
        self._busy: set[str] = set()
        for host in hosts:
            if any(h.name == host.name for h in self._hosts):
                msg = f"Duplicate host name: {host.name}"
                raise ValueError(msg)
            self._hosts.append(host)

    @property
    def hosts(self) -> list[Host]:
        """All hosts in pool order."""
        return list(self._hosts)

    def __len__(self) -> int:
        return len(self._hosts)

    def is_busy(self, host: Host) -> bool:
        """Check if a stage currently occupies ``host``."""
        return host.name in self._busy

    def free_hosts(self) -> list[Host]:
        """Hosts not occupied by any stage, in pool order."""
        return [h for h in self._hosts if h.name not in self._busy]

    @contextmanager
    def lease(self, host: Host) -> Iterator[Host]:
        """Occupy ``host`` for the duration of the block.

        Raises:
            AgentBusyError: If the host is already occupied.
        """
        if host.name in self._busy:
            raise AgentBusyError(host.name)
        self._busy.add(host.name)
        logger.debug("Host leased", host=host.name)
        try:
            yield host
        finally:
            self._busy.discard(host.name)
            logger.debug("Host released", host=host.name)

    def close(self) -> None:
        """Tear down the pool at engine shutdown."""
        if self._busy:
            logger.warning("Closing host pool with occupied hosts", busy=sorted(self._busy))
        self._busy.clear()
        self._hosts.clear()

    @classmethod
    def from_config(cls, agents: Iterable[AgentConfig]) -> HostPool:
        """Build a pool from enabled agent configuration entries."""
        return cls(Host.from_config(a) for a in agents if a.enabled)


class AgentResolver:
    """Picks the host that services a stage's agent requirement.

    Resolution has no side effects and no memory across stages: the same
    requirement against the same pool state always yields the same host.
    """

    def __init__(self, pool: HostPool) -> None:
        self.pool = pool

    def resolve(self, requirement: AgentRequirement) -> Host:
        """Resolve a requirement to a host.

        Args:
            requirement: ``Any`` or ``Label(l)``.

        Returns:
            The first free host in pool order satisfying the requirement.

        Raises:
            NoAgentsAvailable: ``Any`` requested and no host is free.
            NoMatchingAgent: No free host advertises the requested label.
        """
        host = next((h for h in self.pool.free_hosts() if h.satisfies(requirement)), None)

        if host is None:
            if requirement.is_any:
                raise NoAgentsAvailable()
            raise NoMatchingAgent(requirement.label or "")

        logger.debug("Agent resolved", requirement=str(requirement), host=host.name)
        return host
