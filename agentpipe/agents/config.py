"""Agent override file (``agents.yaml``): tweak built-in agents or add generic ones.

Example::

    agents:
      - name: claude-code
        routing:
          priority: 95
          avoid_for: [document]
      - name: aider
        enabled: false
      - name: local-llm
        type: generic
        command: llm
        args: ["-m", "mistral"]
        capabilities:
          can_read_files: true
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

from pydantic import BaseModel, Field, field_validator, model_validator

from agentpipe._log import get_logger
from agentpipe._yaml import load_yaml_model
from agentpipe.agents.base import Capabilities
from agentpipe.config import get_agents_config_path, get_project_dir
from agentpipe.errors import AgentConfigError

logger = get_logger("agents.config")


class RoutingOverride(BaseModel):
    prefer_for: list[str] | None = None
    avoid_for: list[str] | None = None
    priority: int | None = None


class AgentOverride(BaseModel):
    name: str
    type: str | None = None
    command: str | None = None
    args: list[str] | None = None
    env: dict[str, str] = {}
    timeout_ms: Annotated[int, Field(gt=0)] | None = None
    enabled: bool = True
    routing: RoutingOverride | None = None
    capabilities: dict[str, bool] = {}

    @field_validator("capabilities")
    @classmethod
    def _known_flags(cls, v: dict[str, bool]) -> dict[str, bool]:
        unknown = sorted(set(v) - set(Capabilities.model_fields))
        if unknown:
            raise ValueError(f"Unknown capability flag(s): {', '.join(unknown)}")
        return v

    @model_validator(mode="after")
    def _generic_needs_command(self) -> AgentOverride:
        if self.type == "generic" and not self.command:
            raise ValueError(f"Generic agent '{self.name}' requires 'command'")
        return self


class AgentsFile(BaseModel):
    agents: list[AgentOverride] = []


def load_agents_file(path: Path) -> AgentsFile:
    return load_yaml_model(path, AgentsFile, AgentConfigError)


def load_agent_overrides(
    project_root: Path | None = None,
    config_path: Path | None = None,
) -> dict[str, AgentOverride]:
    """Collect overrides keyed by agent name.

    With an explicit *config_path* only that file is read. Otherwise the
    global file is read first and the project file (``.agentpipe/agents.yaml``)
    replaces entries of the same name.
    """
    if config_path is not None:
        paths = [config_path]
    else:
        paths = [get_agents_config_path()]
        if project_root is not None:
            paths.append(get_project_dir(project_root) / "agents.yaml")

    overrides: dict[str, AgentOverride] = {}
    for path in paths:
        if config_path is None and not path.is_file():
            continue
        for entry in load_agents_file(path).agents:
            overrides[entry.name] = entry
        logger.debug("Loaded agent overrides from %s", path)
    return overrides
