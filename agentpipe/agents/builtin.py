"""Built-in CLI agents and the factory that assembles a registry from them."""

from __future__ import annotations

import re
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from agentpipe.agents._process import ProbeTimeout, run_probe
from agentpipe.agents.base import (
    DEFAULT_CAPABILITIES,
    ExecutionAgent,
    ExecutionRequest,
    RoutingConfig,
)
from agentpipe.agents.cli import CliAgent
from agentpipe.agents.config import AgentOverride, load_agent_overrides
from agentpipe.agents.registry import AgentRegistry
from agentpipe.errors import AgentConfigError


class ClaudeCodeAgent(CliAgent):
    agent_type = "claude-code"
    install_hint = "Install with: npm install -g @anthropic-ai/claude-code"
    default_routing = RoutingConfig(
        prefer_for=["code", "refactor", "debug", "analyze"], priority=90
    )

    def __init__(self, name: str = "claude-code", command: str = "claude", **kwargs: Any) -> None:
        super().__init__(name, command, **kwargs)

    def format_task(self, request: ExecutionRequest) -> str:
        header: list[str] = []
        if request.task_type and request.task_type != "custom":
            header.append(f"[Skill: {request.task_type}]")
        if request.files:
            header.append(f"Files: {', '.join(request.files)}")
        prompt = request.task
        if header:
            prompt = f"{' | '.join(header)}\n\n{prompt}"
        if request.previous_output:
            prompt += (
                "\n\n## Context from earlier steps\n\n"
                f"<prior-step-output>\n{request.previous_output}\n</prior-step-output>"
            )
        return prompt

    def build_command(self, request: ExecutionRequest) -> list[str]:
        return [self.command, "--print", *self.args, self.format_task(request)]


class CodexAgent(CliAgent):
    agent_type = "codex"
    install_hint = "Install with: npm install -g @openai/codex"
    default_routing = RoutingConfig(prefer_for=["code", "test"], priority=80)
    file_pattern = re.compile(r"(?:Created|Modified|Wrote):\s*([^\n]+)", re.IGNORECASE)

    def __init__(self, name: str = "codex", command: str = "codex", **kwargs: Any) -> None:
        super().__init__(name, command, **kwargs)

    def build_command(self, request: ExecutionRequest) -> list[str]:
        return [self.command, "--quiet", "--full-auto", *self.args, self.format_task(request)]


class GeminiAgent(CliAgent):
    agent_type = "gemini"
    install_hint = "Install the Gemini CLI: npm install -g @google/gemini-cli"
    default_routing = RoutingConfig(prefer_for=["analyze", "explain", "document"], priority=75)
    file_pattern = None

    _SANDBOXED = frozenset({"shell", "code"})

    def __init__(self, name: str = "gemini", command: str = "gemini", **kwargs: Any) -> None:
        super().__init__(name, command, **kwargs)

    def build_command(self, request: ExecutionRequest) -> list[str]:
        cmd = [self.command, "--non-interactive"]
        if request.task_type in self._SANDBOXED:
            cmd.append("--sandbox")
        return [*cmd, *self.args, "-p", self.format_task(request)]


class AiderAgent(CliAgent):
    agent_type = "aider"
    install_hint = "Install with: pip install aider-chat"
    default_routing = RoutingConfig(prefer_for=["code", "refactor"], priority=70)
    default_timeout = 600_000
    version_pattern = re.compile(r"aider\s+v?([\d.]+)", re.IGNORECASE)
    file_pattern = re.compile(r"(?:Applied edit to|Created|Modified)\s+(\S+)\s*$", re.MULTILINE)
    collect_code_blocks = False

    def __init__(self, name: str = "aider", command: str = "aider", **kwargs: Any) -> None:
        super().__init__(name, command, **kwargs)

    def format_task(self, request: ExecutionRequest) -> str:
        # files go through --file, not the prompt
        if not request.previous_output:
            return request.task
        return (
            f"{request.task}\n\n## Context from earlier steps\n\n"
            f"<prior-step-output>\n{request.previous_output}\n</prior-step-output>"
        )

    def build_command(self, request: ExecutionRequest) -> list[str]:
        cmd = [self.command, "--yes", "--no-browser", *self.args]
        for path in request.files:
            cmd.extend(["--file", path])
        return [*cmd, "--message", self.format_task(request)]


class GenericCliAgent(CliAgent):
    """Wraps any command that takes the task as its last argument."""

    agent_type = "generic"
    file_pattern = None
    collect_code_blocks = False

    def check_availability(self) -> bool:
        if super().check_availability():
            return True
        try:
            _, returncode = run_probe([self.command, "--help"])
        except (ProbeTimeout, OSError):
            return False
        return returncode == 0

    def build_command(self, request: ExecutionRequest) -> list[str]:
        return [self.command, *self.args, request.task]


BUILTIN_AGENTS: dict[str, type[CliAgent]] = {
    "claude-code": ClaudeCodeAgent,
    "codex": CodexAgent,
    "gemini": GeminiAgent,
    "aider": AiderAgent,
}


def _override_kwargs(cls: type[CliAgent], override: AgentOverride) -> dict[str, Any]:
    kwargs: dict[str, Any] = {"env": override.env}
    if override.command:
        kwargs["command"] = override.command
    if override.args is not None:
        kwargs["args"] = override.args
    if override.timeout_ms is not None:
        kwargs["default_timeout_ms"] = override.timeout_ms
    if override.capabilities:
        base = DEFAULT_CAPABILITIES.get(cls.agent_type, DEFAULT_CAPABILITIES["generic"])
        kwargs["capabilities"] = base.model_copy(update=override.capabilities)
    if override.routing is not None:
        kwargs["routing"] = cls.default_routing.model_copy(
            update=override.routing.model_dump(exclude_none=True)
        )
    return kwargs


def create_agent(agent_type: str, override: AgentOverride | None = None) -> CliAgent:
    """Build a built-in agent (or a generic one) with optional overrides applied."""
    if agent_type == "generic":
        if override is None or not override.command:
            raise AgentConfigError("Generic agents require a name and a command")
        kwargs = _override_kwargs(GenericCliAgent, override)
        return GenericCliAgent(override.name, kwargs.pop("command"), **kwargs)

    cls = BUILTIN_AGENTS.get(agent_type)
    if cls is None:
        raise AgentConfigError(f"Unknown agent type: {agent_type}")
    if override is None:
        return cls()
    return cls(name=override.name, **_override_kwargs(cls, override))


def create_default_registry(
    *,
    project_root: Path | None = None,
    config_path: Path | None = None,
) -> AgentRegistry:
    """Return a registry of the built-in agents with ``agents.yaml`` overrides applied."""
    overrides = load_agent_overrides(project_root, config_path)
    registry = AgentRegistry()

    for agent_type in BUILTIN_AGENTS:
        override = overrides.pop(agent_type, None)
        if override is not None and not override.enabled:
            continue
        registry.register(create_agent(agent_type, override))

    for override in overrides.values():
        if not override.enabled:
            continue
        registry.register(create_agent(override.type or "generic", override))

    return registry


@dataclass
class AgentStatus:
    name: str
    agent_type: str
    available: bool
    version: str | None = None
    install_hint: str = ""


def discover_agents(registry: AgentRegistry) -> list[AgentStatus]:
    """Report availability and version of every registered agent."""

    def _status(agent: ExecutionAgent) -> AgentStatus:
        available = agent.check_availability()
        return AgentStatus(
            name=agent.name,
            agent_type=agent.agent_type,
            available=available,
            version=agent.get_version() if available else None,
            install_hint=getattr(agent, "install_hint", ""),
        )

    agents = registry.get_all()
    if not agents:
        return []
    with ThreadPoolExecutor(max_workers=min(len(agents), 8)) as pool:
        return list(pool.map(_status, agents))
