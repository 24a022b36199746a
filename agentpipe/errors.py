"""Exception hierarchy for pipeline loading, routing and execution.

Only :class:`DefinitionError` escapes the public API: the executor and
runner capture every other error into a ``StepResult`` or
``PipelineResult``.
"""

from __future__ import annotations


class AgentPipeError(Exception):
    """Base error for agentpipe."""


class DefinitionError(AgentPipeError):
    """Malformed pipeline: missing fields, duplicate ids, unknown or cyclic dependencies."""


class RoutingError(AgentPipeError):
    """No registered or capable agent for a step."""


class ExecutionError(AgentPipeError):
    """An agent attempt failed (non-zero exit, spawn failure, agent exception)."""


class StepTimeoutError(ExecutionError):
    """An agent attempt exceeded its wall-clock timeout."""

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"Execution timed out after {timeout_ms} ms")


class RunCancelled(ExecutionError):
    """The whole run was cancelled while an attempt was in flight."""

    def __init__(self) -> None:
        super().__init__("Pipeline cancelled")


class GateDenied(AgentPipeError):
    """A human-approval gate was denied."""

    def __init__(self, step_name: str, message: str | None = None) -> None:
        self.step_name = step_name
        self.gate_message = message
        super().__init__(f"Pipeline stopped at gate: {step_name}")


class AgentConfigError(AgentPipeError):
    """The agents override file cannot be read or validated."""
