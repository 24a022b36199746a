"""Shared test fixtures and helpers."""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

import pytest

from agentpipe.agents.base import (
    Artifacts,
    Capabilities,
    ExecutionAgent,
    ExecutionRequest,
    ExecutionResult,
    RoutingConfig,
    StreamCallbacks,
)
from agentpipe.agents.registry import AgentRegistry
from agentpipe.pipeline.context import ExecutionContext
from agentpipe.pipeline.events import PipelineEventSink
from agentpipe.pipeline.schema import PipelineDefinition, PipelineStep

FULL_CAPABILITIES = Capabilities(
    can_code=True,
    can_read_files=True,
    can_write_files=True,
    can_execute_shell=True,
    can_chat=True,
)


class StubAgent(ExecutionAgent):
    """In-process agent returning scripted results.

    ``responses`` is consumed one entry per call; the last entry repeats.
    An entry may be an ExecutionResult, a string (successful output) or an
    exception instance (raised from execute).
    """

    def __init__(
        self,
        name: str = "stub",
        *,
        responses: list[Any] | None = None,
        available: bool = True,
        capabilities: Capabilities | None = None,
        routing: RoutingConfig | None = None,
        delay: float = 0.0,
        chunks: list[str] | None = None,
        artifacts: Artifacts | None = None,
        default_timeout_ms: int = 300_000,
    ) -> None:
        super().__init__(
            name,
            capabilities=capabilities or FULL_CAPABILITIES,
            routing=routing,
            default_timeout_ms=default_timeout_ms,
        )
        self.responses = list(responses or ["OK"])
        self.available = available
        self.delay = delay
        self.chunks = chunks or []
        self.artifacts = artifacts
        self.requests: list[ExecutionRequest] = []
        self.stopped = threading.Event()

    def check_availability(self) -> bool:
        return self.available

    def get_version(self) -> str | None:
        return "1.0.0"

    def execute(
        self,
        request: ExecutionRequest,
        callbacks: StreamCallbacks | None = None,
    ) -> ExecutionResult:
        self.requests.append(request)
        index = min(len(self.requests), len(self.responses)) - 1
        response = self.responses[index]

        if callbacks is not None and callbacks.on_output is not None:
            for chunk in self.chunks:
                callbacks.on_output(chunk)
        if self.delay:
            request.abort.wait(self.delay)
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, ExecutionResult):
            return response
        return ExecutionResult(
            success=True,
            output=response,
            artifacts=self.artifacts,
            tool_used=self.name,
        )

    def stop(self) -> None:
        self.stopped.set()

    @property
    def calls(self) -> int:
        return len(self.requests)


class RecordingSink(PipelineEventSink):
    """Collects events as ``(name, payload)`` tuples."""

    def __init__(self) -> None:
        self.events: list[tuple[str, Any]] = []

    def on_pipeline_start(self, pipeline, run_id):
        self.events.append(("pipeline_start", pipeline.name))

    def on_step_start(self, step, index, total):
        self.events.append(("step_start", step.id))

    def on_step_output(self, step_id, chunk):
        self.events.append(("step_output", (step_id, chunk)))

    def on_step_retry(self, step, attempt, error):
        self.events.append(("step_retry", (step.id, attempt)))

    def on_step_complete(self, result):
        self.events.append(("step_complete", result.step_id))

    def on_gate_wait(self, step):
        self.events.append(("gate_wait", step.id))

    def on_pipeline_complete(self, result):
        self.events.append(("pipeline_complete", result.success))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def failed(error: str = "boom", output: str = "") -> ExecutionResult:
    return ExecutionResult(success=False, output=output, error=error, tool_used="stub")


def make_step(step_id: str, task: str = "do the thing", **kwargs: Any) -> PipelineStep:
    return PipelineStep(id=step_id, task=task, **kwargs)


def make_pipeline(steps: list[dict[str, Any]], **kwargs: Any) -> PipelineDefinition:
    """Build a pipeline from raw step dicts (camelCase or snake_case keys)."""
    data: dict[str, Any] = {"name": kwargs.pop("name", "test-pipeline"), "steps": steps}
    data.update(kwargs)
    return PipelineDefinition.model_validate(data)


def make_context(tmp_path: Path | None = None, **kwargs: Any) -> ExecutionContext:
    return ExecutionContext(project_root=tmp_path or Path("."), **kwargs)


def make_registry(*agents: ExecutionAgent) -> AgentRegistry:
    return AgentRegistry(list(agents))


@pytest.fixture(autouse=True)
def _isolated_home(tmp_path_factory, monkeypatch):
    """Point the agentpipe home at a temp dir so tests never read user config."""
    from agentpipe.config import get_home_dir

    home = tmp_path_factory.mktemp("agentpipe-home")
    monkeypatch.setenv("AGENTPIPE_HOME", str(home))
    get_home_dir.cache_clear()
    yield
    get_home_dir.cache_clear()
