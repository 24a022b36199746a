"""Pipeline definitions and their execution."""

from agentpipe.pipeline.builtin import get_builtin_pipeline, list_builtin_pipelines
from agentpipe.pipeline.context import ExecutionContext
from agentpipe.pipeline.events import NullEventSink, PipelineEventSink
from agentpipe.pipeline.executor import StepExecutor, build_dependency_context
from agentpipe.pipeline.loader import (
    load_pipeline,
    parse_pipeline,
    resolve_pipeline,
    serialize_pipeline,
)
from agentpipe.pipeline.results import PipelineResult, StepResult
from agentpipe.pipeline.runner import PipelineRunner, PlannedStep, order_steps
from agentpipe.pipeline.schema import (
    GateConfig,
    PipelineDefinition,
    PipelineStep,
    RetryPolicy,
)

__all__ = [
    "ExecutionContext",
    "GateConfig",
    "NullEventSink",
    "PipelineDefinition",
    "PipelineEventSink",
    "PipelineResult",
    "PipelineRunner",
    "PipelineStep",
    "PlannedStep",
    "RetryPolicy",
    "StepExecutor",
    "StepResult",
    "build_dependency_context",
    "get_builtin_pipeline",
    "list_builtin_pipelines",
    "load_pipeline",
    "order_steps",
    "parse_pipeline",
    "resolve_pipeline",
    "serialize_pipeline",
]
