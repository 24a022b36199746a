"""Typer CLI for agentpipe: wiring hub for command modules."""

from __future__ import annotations

from typing import Annotated

import typer

from agentpipe.cli._helpers import console

app = typer.Typer(
    name="agentpipe",
    help="Run multi-step pipelines across AI coding agent CLIs.",
    no_args_is_help=True,
)


def version_callback(value: bool) -> None:
    if value:
        from agentpipe import __version__

        console.print(f"agentpipe {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: Annotated[
        bool | None,
        typer.Option("--version", callback=version_callback, is_eager=True),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", help="Enable debug logging"),
    ] = False,
) -> None:
    """agentpipe: pipelines of AI coding agents."""
    from agentpipe._log import setup_logging

    setup_logging(verbose=verbose)


from agentpipe.cli.agents_cmd import agents  # noqa: E402
from agentpipe.cli.pipe_cmd import create, list_pipelines, run, show, validate  # noqa: E402

app.command()(run)
app.command("list")(list_pipelines)
app.command()(show)
app.command()(validate)
app.command()(create)
app.command()(agents)


def app_entry() -> None:
    """Entry point for the CLI."""
    app()
