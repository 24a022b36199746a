"""Execution agents: the contract, routing tables, registry and built-in CLI wrappers."""

from agentpipe.agents.base import (
    DEFAULT_CAPABILITIES,
    Artifacts,
    Capabilities,
    ExecutionAgent,
    ExecutionRequest,
    ExecutionResult,
    RoutingConfig,
    StreamCallbacks,
    TaskType,
)
from agentpipe.agents.registry import AgentRegistry
from agentpipe.agents.routing import TASK_KEYWORDS, TASK_REQUIREMENTS, infer_task_type

__all__ = [
    "DEFAULT_CAPABILITIES",
    "TASK_KEYWORDS",
    "TASK_REQUIREMENTS",
    "AgentRegistry",
    "Artifacts",
    "Capabilities",
    "ExecutionAgent",
    "ExecutionRequest",
    "ExecutionResult",
    "RoutingConfig",
    "StreamCallbacks",
    "TaskType",
    "infer_task_type",
]
