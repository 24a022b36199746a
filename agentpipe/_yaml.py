"""Shared YAML-to-Pydantic loading with uniform error conversion."""

from __future__ import annotations

from pathlib import Path
from typing import Any, TypeVar

import yaml
from pydantic import BaseModel, ValidationError

_T = TypeVar("_T", bound=BaseModel)


def parse_yaml_mapping(text: str, source: str, error_cls: type[Exception]) -> dict[str, Any]:
    """Decode *text* as YAML and require a top-level mapping.

    *source* names the origin (a path or ``"<string>"``) in error messages.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise error_cls(f"Invalid YAML in {source}: {e}") from e

    if not isinstance(data, dict):
        raise error_cls(f"Expected a YAML mapping in {source}, got {type(data).__name__}")
    return data


def validate_model(
    data: Any,
    model_cls: type[_T],
    error_cls: type[Exception],
    source: str,
) -> _T:
    """Validate *data* against *model_cls*, converting pydantic errors to *error_cls*."""
    try:
        return model_cls.model_validate(data)
    except ValidationError as e:
        raise error_cls(f"Validation failed for {source}:\n{e}") from e


def load_yaml_model(
    path: Path,
    model_cls: type[_T],
    error_cls: type[Exception],
) -> _T:
    """Read a YAML file and validate it against a Pydantic model.

    Parameters:
        path: Path to the YAML file.
        model_cls: The Pydantic model class to validate against.
        error_cls: The exception class to raise on any failure.

    Returns:
        A validated instance of *model_cls*.
    """
    try:
        raw = path.read_text()
    except OSError as e:
        raise error_cls(f"Cannot read {path}: {e}") from e

    data = parse_yaml_mapping(raw, str(path), error_cls)
    return validate_model(data, model_cls, error_cls, str(path))
