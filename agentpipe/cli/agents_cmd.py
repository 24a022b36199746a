"""Agent discovery command."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from agentpipe.cli._helpers import build_registry_or_exit, console


def agents(
    agents_config: Annotated[
        Path | None, typer.Option("--agents-config", help="Path to an agents.yaml override")
    ] = None,
    project_root: Annotated[
        Path, typer.Option("--project-root", "-C", help="Project directory")
    ] = Path("."),
) -> None:
    """Detect which agent CLIs are installed."""
    from agentpipe.agents.builtin import discover_agents
    from agentpipe.cli._display import display_agents

    registry = build_registry_or_exit(project_root.resolve(), agents_config)
    with console.status("[dim]Probing agents...[/dim]"):
        statuses = discover_agents(registry)
    display_agents(console, statuses)

    available = sum(1 for s in statuses if s.available)
    console.print(f"\n{available}/{len(statuses)} agents available")
