"""Result records produced by the step executor and the pipeline runner."""

from __future__ import annotations

import uuid
from dataclasses import asdict, dataclass, field
from typing import Any

from agentpipe.agents.base import Artifacts


def new_run_id() -> str:
    return uuid.uuid4().hex[:12]


@dataclass
class StepResult:
    step_id: str
    success: bool
    output: str = ""
    error: str | None = None
    duration_ms: int = 0
    agent_used: str = "none"
    artifacts: Artifacts | None = None
    skipped: bool = False
    skip_reason: str | None = None
    attempts: int = 0
    recovery_for: str | None = None

    @property
    def failed(self) -> bool:
        """True for a step that ran (or tried to) and did not succeed."""
        return not self.success and not self.skipped


@dataclass
class PipelineResult:
    run_id: str
    pipeline_name: str
    success: bool = True
    total_duration_ms: int = 0
    step_results: list[StepResult] = field(default_factory=list)
    error: str | None = None
    artifacts: Artifacts = field(default_factory=Artifacts)

    def get(self, step_id: str) -> StepResult | None:
        """Return the last result recorded for *step_id*."""
        for result in reversed(self.step_results):
            if result.step_id == step_id:
                return result
        return None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
