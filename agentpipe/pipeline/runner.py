"""Sequential pipeline runner: ordering, gates, failure recovery, events."""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from pathlib import Path

from agentpipe._graph import CycleError, topological_order
from agentpipe._log import get_logger
from agentpipe.agents.registry import AgentRegistry
from agentpipe.errors import (
    DefinitionError,
    ExecutionError,
    GateDenied,
    RoutingError,
    RunCancelled,
)
from agentpipe.pipeline._expressions import condition_met
from agentpipe.pipeline.context import ExecutionContext
from agentpipe.pipeline.events import PipelineEventSink
from agentpipe.pipeline.executor import StepExecutor
from agentpipe.pipeline.results import PipelineResult, StepResult, new_run_id
from agentpipe.pipeline.schema import PipelineDefinition, PipelineStep

logger = get_logger("pipeline.runner")

ApproveCallback = Callable[[PipelineStep], bool]


def order_steps(steps: list[PipelineStep]) -> list[PipelineStep]:
    """Return *steps* so that every step follows its dependencies.

    Declaration order is kept wherever the dependencies allow it.

    Raises:
        DefinitionError: If the dependency graph has a cycle.
    """
    by_id = {step.id: step for step in steps}
    try:
        ids = topological_order(by_id, {step.id: step.depends_on for step in steps})
    except CycleError as e:
        raise DefinitionError(str(e)) from e
    return [by_id[step_id] for step_id in ids]


@dataclass
class PlannedStep:
    """One line of a dry-run plan."""

    step: PipelineStep
    task_type: str
    agent: str | None = None
    error: str | None = None
    recovery: bool = False


class PipelineRunner:
    """Executes a pipeline one step at a time.

    The runner owns no per-run state between calls: every :meth:`run` builds
    a fresh :class:`ExecutionContext`, so running the same definition twice
    makes the same decisions.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        *,
        approve: ApproveCallback | None = None,
        events: PipelineEventSink | None = None,
        strict_variables: bool = False,
    ) -> None:
        self.registry = registry
        self.approve = approve
        self.events = events or PipelineEventSink()
        self.executor = StepExecutor(registry, strict_variables=strict_variables)
        self._active: threading.Event | None = None
        self._lock = threading.Lock()

    def cancel(self) -> None:
        """Cancel the in-flight run, if any. Safe to call from another thread."""
        with self._lock:
            if self._active is not None:
                self._active.set()

    def plan(self, pipeline: PipelineDefinition) -> list[PlannedStep]:
        """Resolve execution order and routing without invoking any agent."""
        recovery_ids = pipeline.recovery_step_ids
        planned: list[PlannedStep] = []
        for step in order_steps(pipeline.steps):
            try:
                agent, task_type = self.executor.resolve_agent(step)
            except RoutingError as e:
                planned.append(
                    PlannedStep(
                        step=step,
                        task_type=step.task_type or "",
                        error=str(e),
                        recovery=step.id in recovery_ids,
                    )
                )
                continue
            planned.append(
                PlannedStep(
                    step=step,
                    task_type=task_type,
                    agent=agent.name,
                    recovery=step.id in recovery_ids,
                )
            )
        return planned

    def run(
        self,
        pipeline: PipelineDefinition,
        *,
        project_root: Path | None = None,
        variables: Mapping[str, str] | None = None,
    ) -> PipelineResult:
        """Run *pipeline* and return its result.

        Raises:
            DefinitionError: If the steps cannot be ordered. Nothing runs and
                no event fires in that case.
        """
        scheduled = order_steps(pipeline.steps)

        cancel_event = threading.Event()
        with self._lock:
            self._active = cancel_event
        context = ExecutionContext.for_run(
            pipeline,
            project_root=project_root,
            variables=variables,
            cancel_event=cancel_event,
        )
        result = PipelineResult(run_id=new_run_id(), pipeline_name=pipeline.name)
        start = time.monotonic()

        logger.info(
            "Starting pipeline '%s' (run %s, %d steps)",
            pipeline.name,
            result.run_id,
            len(scheduled),
        )
        self.events.on_pipeline_start(pipeline, result.run_id)

        try:
            self._run_steps(pipeline, scheduled, context, result)
        except (GateDenied, ExecutionError) as e:
            result.success = False
            result.error = str(e)
            logger.warning("Pipeline '%s' halted: %s", pipeline.name, e)
        finally:
            with self._lock:
                self._active = None

        result.total_duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            "Pipeline '%s' finished: %s in %d ms",
            pipeline.name,
            "success" if result.success else "failed",
            result.total_duration_ms,
        )
        self.events.on_pipeline_complete(result)
        return result

    def _run_steps(
        self,
        pipeline: PipelineDefinition,
        scheduled: list[PipelineStep],
        context: ExecutionContext,
        result: PipelineResult,
    ) -> None:
        total = len(scheduled)
        for index, step in enumerate(scheduled):
            if context.cancelled:
                raise RunCancelled()

            skipped = self._skip_result(step, context)
            if skipped is None and step.gate_enabled:
                self._await_gate(step)

            self.events.on_step_start(step, index, total)
            if skipped is not None:
                step_result = skipped
            else:
                step_result = self.executor.execute(
                    step, context, self.events, check_condition=False
                )
            self._record(step_result, context, result)

            if context.cancelled:
                raise RunCancelled()
            if not step_result.failed:
                continue

            result.success = False
            if step.on_failure is None:
                raise ExecutionError(f"Step {step.id} failed: {step_result.error}")
            if result.error is None:
                result.error = (
                    f"Step {step.id} failed: {step_result.error} (handled by {step.on_failure})"
                )
            self._recover(pipeline, step, index, total, context, result)

    def _recover(
        self,
        pipeline: PipelineDefinition,
        failed: PipelineStep,
        index: int,
        total: int,
        context: ExecutionContext,
        result: PipelineResult,
    ) -> None:
        handler = pipeline.get_step(failed.on_failure or "")
        if handler is None:
            return
        logger.info("Step '%s' failed, running recovery step '%s'", failed.id, handler.id)
        self.events.on_step_start(handler, index, total)
        recovery = self.executor.execute(
            handler, context, self.events, check_condition=False, max_attempts=1
        )
        recovery.recovery_for = failed.id
        self._record(recovery, context, result)

    def _record(
        self,
        step_result: StepResult,
        context: ExecutionContext,
        result: PipelineResult,
    ) -> None:
        context.record(step_result)
        result.step_results.append(step_result)
        if step_result.artifacts:
            result.artifacts.extend(step_result.artifacts)
        self.events.on_step_complete(step_result)

    def _skip_result(self, step: PipelineStep, context: ExecutionContext) -> StepResult | None:
        failed_dep = self._failed_dependency(step, context)
        if failed_dep is not None:
            return self.executor.skipped_result(
                step, f"Dependency '{failed_dep}' failed", success=False
            )
        if step.condition and not condition_met(step.condition, context):
            return self.executor.skipped_result(step, f"Condition not met: {step.condition}")
        return None

    @staticmethod
    def _failed_dependency(step: PipelineStep, context: ExecutionContext) -> str | None:
        for dep in step.depends_on:
            dep_result = context.step_results.get(dep)
            if dep_result is not None and not dep_result.success:
                return dep
        return None

    def _await_gate(self, step: PipelineStep) -> None:
        self.events.on_gate_wait(step)
        message = step.gate.message if step.gate else None
        if self.approve is None:
            logger.warning("No approver configured, denying gate '%s'", step.name)
            raise GateDenied(step.name, message)
        try:
            approved = bool(self.approve(step))
        except Exception:
            logger.warning("Approval callback failed for gate '%s'", step.name, exc_info=True)
            approved = False
        if not approved:
            raise GateDenied(step.name, message)
