"""Load, validate, serialize and resolve pipeline definitions."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from agentpipe._yaml import load_yaml_model, parse_yaml_mapping, validate_model
from agentpipe.config import get_pipelines_dir, get_project_dir
from agentpipe.errors import DefinitionError
from agentpipe.pipeline.schema import PipelineDefinition

_YAML_SUFFIXES = (".yaml", ".yml")


def parse_pipeline(
    source: str | Mapping[str, Any],
    *,
    origin: str = "<string>",
) -> PipelineDefinition:
    """Validate a pipeline given as YAML text or an already-decoded mapping."""
    if isinstance(source, str):
        data = parse_yaml_mapping(source, origin, DefinitionError)
    else:
        data = dict(source)
    return validate_model(data, PipelineDefinition, DefinitionError, origin)


def load_pipeline(path: Path) -> PipelineDefinition:
    """Read a YAML file and validate it as a PipelineDefinition."""
    return load_yaml_model(path, PipelineDefinition, DefinitionError)


def pipeline_to_dict(pipeline: PipelineDefinition) -> dict[str, Any]:
    return pipeline.model_dump(by_alias=True, exclude_none=True, exclude_defaults=True)


def serialize_pipeline(pipeline: PipelineDefinition) -> str:
    """Dump *pipeline* as YAML using the camelCase definition keys."""
    return yaml.safe_dump(
        pipeline_to_dict(pipeline),
        sort_keys=False,
        allow_unicode=True,
        width=float("inf"),
    )


def resolve_pipeline(name_or_path: str, project_root: Path | None = None) -> PipelineDefinition:
    """Find a pipeline by file path, built-in name, or saved custom name.

    Resolution order:
    1. ``*.yaml`` / ``*.yml`` path
    2. Built-in pipeline of that name
    3. ``<project>/.agentpipe/pipelines/<name>.yaml``
    4. ``<home>/pipelines/<name>.yaml``
    """
    if name_or_path.endswith(_YAML_SUFFIXES):
        return load_pipeline(Path(name_or_path))

    from agentpipe.pipeline.builtin import get_builtin_pipeline

    builtin = get_builtin_pipeline(name_or_path)
    if builtin is not None:
        return builtin

    candidates: list[Path] = []
    if project_root is not None:
        candidates.append(get_project_dir(project_root) / "pipelines")
    candidates.append(get_pipelines_dir())
    for directory in candidates:
        for suffix in _YAML_SUFFIXES:
            path = directory / f"{name_or_path}{suffix}"
            if path.is_file():
                return load_pipeline(path)

    raise DefinitionError(f"Pipeline not found: {name_or_path}")
