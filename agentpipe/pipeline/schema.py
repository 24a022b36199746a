"""Pydantic models for pipeline YAML definitions.

YAML keys are camelCase (``dependsOn``, ``taskType``, ``timeoutMs``…); the
models expose snake_case attributes and accept either spelling. Models are
frozen: a parsed pipeline is never mutated by a run. Keys given without a
value (``variables:``) are treated as absent.
"""

from __future__ import annotations

from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

_MODEL_CONFIG = ConfigDict(frozen=True, populate_by_name=True, alias_generator=to_camel)


def _drop_empty_keys(data: Any) -> Any:
    if isinstance(data, dict):
        return {k: v for k, v in data.items() if v is not None}
    return data


def _stringify_mapping(v: Any) -> Any:
    if isinstance(v, dict):
        return {str(k): "" if val is None else str(val) for k, val in v.items()}
    return v


class RetryPolicy(BaseModel):
    model_config = _MODEL_CONFIG

    max_attempts: Annotated[int, Field(ge=1)] = 1
    delay_ms: Annotated[int, Field(ge=0)] = 0


class GateConfig(BaseModel):
    model_config = _MODEL_CONFIG

    enabled: bool = True
    message: str | None = None


class PipelineStep(BaseModel):
    model_config = _MODEL_CONFIG

    id: str
    name: str = ""
    description: str = ""
    tool: str | None = None
    task_type: str | None = None
    task: str = ""
    files: list[str] = []
    depends_on: list[str] = []
    condition: str | None = None
    retry: RetryPolicy | None = None
    timeout_ms: Annotated[int, Field(gt=0)] | None = None
    gate: GateConfig | None = None
    on_failure: str | None = None
    outputs: list[str] = []

    @model_validator(mode="before")
    @classmethod
    def _default_name(cls, data: Any) -> Any:
        data = _drop_empty_keys(data)
        if isinstance(data, dict) and not data.get("name") and data.get("id"):
            data = {**data, "name": data["id"]}
        return data

    @model_validator(mode="after")
    def _require_task(self) -> PipelineStep:
        if not self.task.strip():
            raise ValueError(f"Step '{self.id}' must have a task")
        return self

    @property
    def max_attempts(self) -> int:
        return self.retry.max_attempts if self.retry else 1

    @property
    def gate_enabled(self) -> bool:
        return self.gate is not None and self.gate.enabled


class PipelineDefinition(BaseModel):
    model_config = _MODEL_CONFIG

    name: str
    description: str = ""
    version: str = ""
    author: str = ""
    tags: list[str] = []
    variables: dict[str, str] = {}
    env: dict[str, str] = {}
    steps: list[PipelineStep]

    @model_validator(mode="before")
    @classmethod
    def _normalize(cls, data: Any) -> Any:
        data = _drop_empty_keys(data)
        if not isinstance(data, dict):
            return data
        if not data.get("name"):
            raise ValueError("Pipeline must have a name")
        steps = data.get("steps")
        if not steps:
            raise ValueError("Pipeline must have at least one step")
        if not isinstance(steps, list):
            return data

        normalized: list[Any] = []
        for i, step in enumerate(steps, start=1):
            if isinstance(step, dict):
                step_id = step.get("id")
                step = {**step, "id": f"step-{i}" if step_id in (None, "") else str(step_id)}
            normalized.append(step)
        return {**data, "steps": normalized}

    @field_validator("variables", "env", mode="before")
    @classmethod
    def _coerce_values(cls, v: Any) -> Any:
        return _stringify_mapping(v)

    @model_validator(mode="after")
    def _validate_graph(self) -> PipelineDefinition:
        seen: set[str] = set()
        for step in self.steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step id: '{step.id}'")
            seen.add(step.id)

        for step in self.steps:
            for dep in step.depends_on:
                if dep not in seen:
                    raise ValueError(f"Step '{step.id}' depends on unknown step '{dep}'")
            if step.on_failure is not None:
                if step.on_failure == step.id:
                    raise ValueError(f"Step '{step.id}' cannot be its own onFailure handler")
                if step.on_failure not in seen:
                    raise ValueError(
                        f"Step '{step.id}' has onFailure pointing to unknown step "
                        f"'{step.on_failure}'"
                    )
        return self

    def get_step(self, step_id: str) -> PipelineStep | None:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

    @property
    def recovery_step_ids(self) -> set[str]:
        """Ids of steps named as some other step's ``onFailure`` handler."""
        return {s.on_failure for s in self.steps if s.on_failure is not None}
