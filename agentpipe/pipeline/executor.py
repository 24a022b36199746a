"""Single-step execution: condition, routing, interpolation, invocation, retry."""

from __future__ import annotations

import time
from concurrent.futures import Future, ThreadPoolExecutor, wait

from agentpipe._log import get_logger
from agentpipe.agents.base import (
    ExecutionAgent,
    ExecutionRequest,
    ExecutionResult,
    StreamCallbacks,
)
from agentpipe.agents.registry import AgentRegistry
from agentpipe.agents.routing import infer_task_type
from agentpipe.errors import RoutingError, RunCancelled, StepTimeoutError
from agentpipe.pipeline._expressions import condition_met, interpolate
from agentpipe.pipeline.context import ExecutionContext
from agentpipe.pipeline.events import PipelineEventSink
from agentpipe.pipeline.results import StepResult
from agentpipe.pipeline.schema import PipelineStep

logger = get_logger("pipeline.executor")

_POLL_INTERVAL = 0.05


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


def build_dependency_context(step: PipelineStep, context: ExecutionContext) -> str | None:
    """Assemble the prior-step context handed to the agent.

    With ``depends_on`` every dependency's non-empty output is included as
    ``[<id>]:\\n<output>`` in declared order; otherwise the output of the last
    executed step is passed through.
    """
    if step.depends_on:
        parts: list[str] = []
        for dep in step.depends_on:
            result = context.step_results.get(dep)
            if result is not None and result.output:
                parts.append(f"[{dep}]:\n{result.output}")
        return "\n\n".join(parts) or None

    last = context.last_result
    if last is not None and last.output:
        return last.output
    return None


class StepExecutor:
    """Runs one step against the agent the registry picks for it.

    :meth:`execute` always returns a :class:`StepResult`; routing errors,
    agent exceptions, timeouts and cancellation are all captured into it.
    """

    def __init__(
        self,
        registry: AgentRegistry,
        *,
        strict_variables: bool = False,
        stop_grace_seconds: float = 2.0,
    ) -> None:
        self.registry = registry
        self.strict_variables = strict_variables
        self.stop_grace_seconds = stop_grace_seconds

    def resolve_agent(self, step: PipelineStep) -> tuple[ExecutionAgent, str]:
        """Return the agent for *step* and the task type it was routed on.

        Raises:
            RoutingError: If the named tool is not registered or no available
                agent qualifies for the task type.
        """
        task_type = step.task_type or infer_task_type(step.task)
        if step.tool:
            agent = self.registry.get(step.tool)
            if agent is None:
                raise RoutingError(f"Tool not found: {step.tool}")
            return agent, task_type

        agent = self.registry.find_best_tool(task_type)
        if agent is None:
            raise RoutingError(f"No available tool for task type: {task_type}")
        return agent, task_type

    @staticmethod
    def skipped_result(step: PipelineStep, reason: str, *, success: bool = True) -> StepResult:
        return StepResult(step_id=step.id, success=success, skipped=True, skip_reason=reason)

    def execute(
        self,
        step: PipelineStep,
        context: ExecutionContext,
        events: PipelineEventSink | None = None,
        *,
        check_condition: bool = True,
        max_attempts: int | None = None,
    ) -> StepResult:
        """Execute *step* with its retry policy (or *max_attempts* when given)."""
        events = events or PipelineEventSink()
        start = time.monotonic()

        if check_condition and step.condition and not condition_met(step.condition, context):
            logger.info("Skipping step '%s': condition not met (%s)", step.id, step.condition)
            return self.skipped_result(step, f"Condition not met: {step.condition}")

        try:
            agent, task_type = self.resolve_agent(step)
        except RoutingError as e:
            logger.warning("Step '%s': %s", step.id, e)
            return StepResult(
                step_id=step.id, success=False, error=str(e), duration_ms=_elapsed_ms(start)
            )

        task, missing = interpolate(step.task, context)
        files: list[str] = []
        for pattern in step.files:
            rendered, unresolved = interpolate(pattern, context)
            missing.extend(unresolved)
            files.append(rendered)
        if missing:
            names = ", ".join(dict.fromkeys(missing))
            if self.strict_variables:
                return StepResult(
                    step_id=step.id,
                    success=False,
                    error=f"Unresolved variables: {names}",
                    agent_used=agent.name,
                    duration_ms=_elapsed_ms(start),
                )
            logger.debug("Step '%s': unresolved placeholders replaced with '': %s", step.id, names)

        previous_output = build_dependency_context(step, context)
        timeout_ms = step.timeout_ms or agent.default_timeout_ms
        callbacks = StreamCallbacks(
            on_output=lambda chunk: events.on_step_output(step.id, chunk),
            on_error=lambda chunk: logger.debug("[%s stderr] %s", step.id, chunk.rstrip()),
        )

        allowed = max_attempts or step.max_attempts
        delay = step.retry.delay_ms / 1000 if step.retry else 0.0
        attempt = 0
        last_error = "Unknown error"
        last_output = ""

        while attempt < allowed:
            if attempt > 0:
                events.on_step_retry(step, attempt + 1, last_error)
                if delay and context.cancel_event.wait(delay):
                    last_error = str(RunCancelled())
                    break
            if context.cancelled:
                last_error = str(RunCancelled())
                break
            attempt += 1

            request = ExecutionRequest(
                task=task,
                task_type=task_type,
                project_root=context.project_root,
                files=files,
                previous_output=previous_output,
                metadata={"step_id": step.id, "attempt": attempt},
                timeout_ms=timeout_ms,
            )
            try:
                outcome = self._run_attempt(agent, request, callbacks, timeout_ms, context)
            except RunCancelled as e:
                last_error = str(e)
                break
            except Exception as e:
                last_error = str(e) or type(e).__name__
                logger.warning(
                    "Step '%s' attempt %d/%d raised: %s", step.id, attempt, allowed, last_error
                )
                continue

            if outcome.success:
                return StepResult(
                    step_id=step.id,
                    success=True,
                    output=outcome.output,
                    agent_used=outcome.tool_used or agent.name,
                    artifacts=outcome.artifacts,
                    attempts=attempt,
                    duration_ms=_elapsed_ms(start),
                )

            last_error = outcome.error or "Unknown error"
            last_output = outcome.output
            logger.warning(
                "Step '%s' attempt %d/%d failed: %s", step.id, attempt, allowed, last_error
            )

        return StepResult(
            step_id=step.id,
            success=False,
            output=last_output,
            error=last_error,
            agent_used=agent.name,
            attempts=attempt,
            duration_ms=_elapsed_ms(start),
        )

    def _run_attempt(
        self,
        agent: ExecutionAgent,
        request: ExecutionRequest,
        callbacks: StreamCallbacks,
        timeout_ms: int,
        context: ExecutionContext,
    ) -> ExecutionResult:
        """Run ``agent.execute`` on a worker thread, enforcing timeout and cancellation.

        Raises:
            StepTimeoutError: The wall-clock timeout expired.
            RunCancelled: The run was cancelled mid-attempt.
        """
        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"step-{agent.name}")
        future = pool.submit(agent.execute, request, callbacks)
        deadline = time.monotonic() + timeout_ms / 1000
        try:
            while True:
                done, _ = wait([future], timeout=_POLL_INTERVAL)
                if done:
                    return future.result()
                if context.cancelled:
                    self._abort(agent, request, future)
                    raise RunCancelled()
                if time.monotonic() >= deadline:
                    self._abort(agent, request, future)
                    raise StepTimeoutError(timeout_ms)
        finally:
            pool.shutdown(wait=False)

    def _abort(
        self,
        agent: ExecutionAgent,
        request: ExecutionRequest,
        future: Future[ExecutionResult],
    ) -> None:
        request.abort.set()
        try:
            agent.stop()
        except Exception:
            logger.warning("Agent '%s' failed to stop", agent.name, exc_info=True)
        wait([future], timeout=self.stop_grace_seconds)

