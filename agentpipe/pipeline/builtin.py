"""Built-in pipelines shipped as YAML files inside the package."""

from __future__ import annotations

import functools
import importlib.resources

from agentpipe.pipeline.schema import PipelineDefinition

BUILTIN_PIPELINE_NAMES: tuple[str, ...] = (
    "feature",
    "bugfix",
    "review",
    "refactor",
    "testing",
    "docs",
    "release",
)


@functools.cache
def _load(name: str) -> PipelineDefinition:
    from agentpipe.pipeline.loader import parse_pipeline

    pkg_files = importlib.resources.files("agentpipe._builtin_pipelines")
    text = (pkg_files / f"{name}.yaml").read_text(encoding="utf-8")
    return parse_pipeline(text, origin=f"builtin:{name}")


def get_builtin_pipeline(name: str) -> PipelineDefinition | None:
    """Return the built-in pipeline called *name*, or None."""
    if name not in BUILTIN_PIPELINE_NAMES:
        return None
    return _load(name)


def list_builtin_pipelines() -> list[PipelineDefinition]:
    return [_load(name) for name in BUILTIN_PIPELINE_NAMES]
