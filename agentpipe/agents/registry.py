"""Explicit registry of execution agents with liveness probing and routing."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor

from agentpipe.agents.base import ExecutionAgent

logger = logging.getLogger(__name__)

_MAX_PROBE_WORKERS = 8


class AgentRegistry:
    """Holds execution agents by name, in registration order.

    Construct one per application (or per test) and pass it to the
    runner; there is no process-wide default instance.
    """

    def __init__(self, agents: list[ExecutionAgent] | None = None) -> None:
        self._agents: dict[str, ExecutionAgent] = {}
        for agent in agents or []:
            self.register(agent)

    def register(self, agent: ExecutionAgent) -> None:
        """Add *agent*; re-registering a name replaces it in place."""
        if agent.name in self._agents:
            logger.debug("Replacing registered agent '%s'", agent.name)
        self._agents[agent.name] = agent

    def get(self, name: str) -> ExecutionAgent | None:
        return self._agents.get(name)

    def get_all(self) -> list[ExecutionAgent]:
        return list(self._agents.values())

    def __len__(self) -> int:
        return len(self._agents)

    def __contains__(self, name: object) -> bool:
        return name in self._agents

    def get_available(self) -> list[ExecutionAgent]:
        """Probe every agent concurrently; return responsive ones in registration order."""
        agents = self.get_all()
        if not agents:
            return []
        workers = min(len(agents), _MAX_PROBE_WORKERS)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="probe") as pool:
            flags = list(pool.map(_probe, agents))
        return [agent for agent, ok in zip(agents, flags, strict=True) if ok]

    def find_best_tool(self, task_type: str) -> ExecutionAgent | None:
        """Return the highest-priority available agent able to handle *task_type*.

        Agents that lack the required capabilities or list *task_type* in
        ``avoid_for`` are excluded. Ties keep registration order.
        """
        capable = [a for a in self.get_available() if a.supports_task(task_type)]
        if not capable:
            return None
        capable.sort(key=lambda a: a.get_priority(task_type), reverse=True)
        best = capable[0]
        logger.debug(
            "Routed task type '%s' to '%s' (priority %d)",
            task_type,
            best.name,
            best.get_priority(task_type),
        )
        return best

    def get_by_capability(self, flag: str) -> list[ExecutionAgent]:
        """Return registered agents whose capability *flag* is set."""
        return [a for a in self._agents.values() if getattr(a.capabilities, flag, False)]


def _probe(agent: ExecutionAgent) -> bool:
    try:
        return bool(agent.check_availability())
    except Exception:
        logger.warning("Availability probe for '%s' raised", agent.name, exc_info=True)
        return False
