"""Shared CLI helpers: console, variable parsing, pipeline and registry loading."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING

import typer
from rich.console import Console
from rich.markup import escape

if TYPE_CHECKING:
    from agentpipe.agents.registry import AgentRegistry
    from agentpipe.pipeline.schema import PipelineDefinition, PipelineStep

console = Console()


def fail(message: str) -> typer.Exit:
    """Print *message* as an error and return an Exit(1) for the caller to raise."""
    console.print(f"[red]Error:[/red] {escape(message)}")
    return typer.Exit(1)


def parse_vars(var: list[str] | None) -> dict[str, str]:
    """Parse repeated ``--var key=value`` options."""
    variables: dict[str, str] = {}
    for v in var or []:
        if "=" not in v:
            raise fail(f"Invalid variable format: '{v}'. Use key=value.")
        key, value = v.split("=", 1)
        if not key:
            raise fail(f"Invalid variable format: '{v}'. Use key=value.")
        variables[key] = value
    return variables


def resolve_pipeline_or_exit(name_or_file: str, project_root: Path) -> PipelineDefinition:
    from agentpipe.errors import DefinitionError
    from agentpipe.pipeline.loader import resolve_pipeline

    try:
        return resolve_pipeline(name_or_file, project_root)
    except DefinitionError as e:
        raise fail(str(e)) from None


def build_registry_or_exit(project_root: Path, agents_config: Path | None) -> AgentRegistry:
    from agentpipe.agents.builtin import create_default_registry
    from agentpipe.errors import AgentConfigError

    try:
        return create_default_registry(project_root=project_root, config_path=agents_config)
    except AgentConfigError as e:
        raise fail(str(e)) from None


def make_approver(assume_yes: bool) -> Callable[[PipelineStep], bool] | None:
    """Return the gate approval callback for this session.

    ``--yes`` approves every gate. Without a TTY there is nobody to ask, so
    no approver is returned and gates are denied.
    """
    if assume_yes:
        return lambda step: True
    if not sys.stdin.isatty():
        return None

    from rich.prompt import Confirm

    def approve(step: PipelineStep) -> bool:
        message = (step.gate.message if step.gate else None) or f"Run step '{step.name}'?"
        return Confirm.ask(message, default=False, console=console)

    return approve
