"""Execution agent contract: capabilities, routing metadata and the agent ABC."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from agentpipe.agents.routing import meets_requirements

DEFAULT_PRIORITY = 50
PREFERRED_BONUS = 50


class TaskType(StrEnum):
    ANALYZE = "analyze"
    CODE = "code"
    TEST = "test"
    REVIEW = "review"
    REFACTOR = "refactor"
    DEBUG = "debug"
    DOCUMENT = "document"
    EXPLAIN = "explain"
    CHAT = "chat"
    SHELL = "shell"
    CUSTOM = "custom"


class Capabilities(BaseModel):
    model_config = ConfigDict(frozen=True)

    can_code: bool = False
    can_chat: bool = False
    can_edit: bool = False
    can_execute_shell: bool = False
    can_read_files: bool = False
    can_write_files: bool = False
    can_search: bool = False
    can_browse_web: bool = False
    supports_streaming: bool = False
    supports_multi_file: bool = False
    supports_project: bool = False


class RoutingConfig(BaseModel):
    model_config = ConfigDict(frozen=True)

    prefer_for: list[str] = []
    avoid_for: list[str] = []
    priority: int = Field(default=DEFAULT_PRIORITY)


_FULL = Capabilities(
    can_code=True,
    can_chat=True,
    can_edit=True,
    can_execute_shell=True,
    can_read_files=True,
    can_write_files=True,
    can_search=True,
    can_browse_web=True,
    supports_streaming=True,
    supports_multi_file=True,
    supports_project=True,
)

DEFAULT_CAPABILITIES: dict[str, Capabilities] = {
    "claude-code": _FULL,
    "gemini": _FULL,
    "codex": _FULL.model_copy(update={"can_search": False, "can_browse_web": False}),
    "aider": _FULL.model_copy(
        update={"can_execute_shell": False, "can_search": False, "can_browse_web": False}
    ),
    "generic": Capabilities(can_chat=True),
}


@dataclass
class Artifacts:
    files: list[str] = field(default_factory=list)
    code: list[str] = field(default_factory=list)

    def extend(self, other: Artifacts) -> None:
        self.files.extend(other.files)
        self.code.extend(other.code)

    def __bool__(self) -> bool:
        return bool(self.files or self.code)


@dataclass
class ExecutionRequest:
    """Everything an agent needs to run one attempt of one step."""

    task: str
    task_type: str
    project_root: Path
    files: list[str] = field(default_factory=list)
    previous_output: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)
    timeout_ms: int | None = None
    abort: threading.Event = field(default_factory=threading.Event)


@dataclass
class ExecutionResult:
    success: bool
    output: str = ""
    error: str | None = None
    artifacts: Artifacts | None = None
    duration_ms: int = 0
    tool_used: str = ""


@dataclass
class StreamCallbacks:
    on_start: Callable[[], None] | None = None
    on_output: Callable[[str], None] | None = None
    on_error: Callable[[str], None] | None = None
    on_complete: Callable[[ExecutionResult], None] | None = None


class ExecutionAgent(ABC):
    """An external capability provider a step can be delegated to.

    New agents are added by subclassing and registering an instance; the
    scheduler only ever talks to this interface.
    """

    agent_type: str = "generic"

    def __init__(
        self,
        name: str,
        *,
        capabilities: Capabilities | None = None,
        routing: RoutingConfig | None = None,
        default_timeout_ms: int = 300_000,
    ) -> None:
        self.name = name
        self._capabilities = capabilities or DEFAULT_CAPABILITIES.get(
            self.agent_type, DEFAULT_CAPABILITIES["generic"]
        )
        self._routing = routing or RoutingConfig()
        self.default_timeout_ms = default_timeout_ms

    @property
    def capabilities(self) -> Capabilities:
        return self._capabilities

    @property
    def routing(self) -> RoutingConfig:
        return self._routing

    @abstractmethod
    def check_availability(self) -> bool:
        """Return True if the agent can currently be invoked."""

    @abstractmethod
    def get_version(self) -> str | None: ...

    @abstractmethod
    def execute(
        self,
        request: ExecutionRequest,
        callbacks: StreamCallbacks | None = None,
    ) -> ExecutionResult: ...

    def stop(self) -> None:
        """Terminate any in-flight work. Default: nothing to stop."""

    def supports_task(self, task_type: str) -> bool:
        if task_type in self._routing.avoid_for:
            return False
        return meets_requirements(self._capabilities, task_type)

    def get_priority(self, task_type: str) -> int:
        if task_type in self._routing.prefer_for:
            return self._routing.priority + PREFERRED_BONUS
        return self._routing.priority

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"
