"""Pipeline lifecycle events.

The runner reports progress to a :class:`PipelineEventSink`. Every method of
the base class is a no-op, so consumers override only what they render.
Events are delivered in order: all of step N's events are emitted before
step N+1's first one. ``on_step_output`` may be called from the worker
thread running the agent.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from agentpipe.pipeline.results import PipelineResult, StepResult
    from agentpipe.pipeline.schema import PipelineDefinition, PipelineStep


class PipelineEventSink:
    def on_pipeline_start(self, pipeline: PipelineDefinition, run_id: str) -> None:
        pass

    def on_step_start(self, step: PipelineStep, index: int, total: int) -> None:
        pass

    def on_step_output(self, step_id: str, chunk: str) -> None:
        pass

    def on_step_retry(self, step: PipelineStep, attempt: int, error: str) -> None:
        pass

    def on_step_complete(self, result: StepResult) -> None:
        pass

    def on_gate_wait(self, step: PipelineStep) -> None:
        pass

    def on_pipeline_complete(self, result: PipelineResult) -> None:
        pass


class NullEventSink(PipelineEventSink):
    """Silent sink."""
