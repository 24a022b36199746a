"""Per-run mutable state shared by the runner and the step executor."""

from __future__ import annotations

import os
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from agentpipe.pipeline.results import StepResult
from agentpipe.pipeline.schema import PipelineDefinition


@dataclass
class ExecutionContext:
    """Created fresh for every run; the pipeline definition itself is never touched.

    ``step_results`` is written only by the runner, one step at a time, so it
    needs no locking.
    """

    project_root: Path
    variables: dict[str, str] = field(default_factory=dict)
    env: dict[str, str] = field(default_factory=dict)
    step_results: dict[str, StepResult] = field(default_factory=dict)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @classmethod
    def for_run(
        cls,
        pipeline: PipelineDefinition,
        *,
        project_root: Path | None = None,
        variables: Mapping[str, str] | None = None,
        environ: Mapping[str, str] | None = None,
        cancel_event: threading.Event | None = None,
    ) -> ExecutionContext:
        """Merge pipeline defaults with caller overrides and the process environment."""
        base_env = os.environ if environ is None else environ
        return cls(
            project_root=project_root or Path.cwd(),
            variables={**pipeline.variables, **(variables or {})},
            env={**base_env, **pipeline.env},
            cancel_event=cancel_event or threading.Event(),
        )

    @property
    def last_result(self) -> StepResult | None:
        """The most recently recorded step result, if any."""
        return next(reversed(self.step_results.values()), None)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def record(self, result: StepResult) -> None:
        # re-recording moves the entry to the end so last_result stays accurate
        self.step_results.pop(result.step_id, None)
        self.step_results[result.step_id] = result
