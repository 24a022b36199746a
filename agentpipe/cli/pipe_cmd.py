"""Pipeline commands: run, list, show, validate, create."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from agentpipe.cli._helpers import (
    build_registry_or_exit,
    console,
    fail,
    make_approver,
    parse_vars,
    resolve_pipeline_or_exit,
)

_STARTER_STEPS = [
    {
        "id": "analyze",
        "name": "Analyze",
        "taskType": "analyze",
        "task": "Analyze the project and summarize what needs to change for: ${GOAL}",
    },
    {
        "id": "implement",
        "name": "Implement",
        "taskType": "code",
        "dependsOn": ["analyze"],
        "task": "Implement the change described in the analysis for: ${GOAL}",
        "retry": {"maxAttempts": 2, "delayMs": 1000},
    },
]

ProjectRoot = Annotated[
    Path,
    typer.Option("--project-root", "-C", help="Project directory the agents work in"),
]


def run(
    pipeline: Annotated[
        str, typer.Argument(help="Built-in or saved pipeline name, or a YAML path")
    ],
    var: Annotated[
        list[str] | None,
        typer.Option("--var", "-v", help="Variable in key=value format"),
    ] = None,
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Approve every gate")] = False,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Show order and routing without executing")
    ] = False,
    stream: Annotated[bool, typer.Option("--stream", help="Print agent output live")] = False,
    strict: Annotated[
        bool, typer.Option("--strict", help="Fail steps that reference undefined variables")
    ] = False,
    agents_config: Annotated[
        Path | None, typer.Option("--agents-config", help="Path to an agents.yaml override")
    ] = None,
    project_root: ProjectRoot = Path("."),
) -> None:
    """Run a pipeline."""
    from agentpipe._signal import install_cancel_handler
    from agentpipe.cli._display import ConsoleEventSink, display_plan, display_result
    from agentpipe.config import load_dotenv_files
    from agentpipe.errors import DefinitionError
    from agentpipe.pipeline.runner import PipelineRunner

    project_root = project_root.resolve()
    load_dotenv_files(project_root)
    variables = parse_vars(var)
    pipe = resolve_pipeline_or_exit(pipeline, project_root)
    registry = build_registry_or_exit(project_root, agents_config)

    runner = PipelineRunner(
        registry,
        approve=make_approver(yes),
        events=ConsoleEventSink(console, stream_output=stream),
        strict_variables=strict,
    )

    if dry_run:
        try:
            planned = runner.plan(pipe)
        except DefinitionError as e:
            raise fail(str(e)) from None
        display_plan(console, pipe, planned, variables)
        return

    restore = install_cancel_handler(runner.cancel)
    try:
        result = runner.run(pipe, project_root=project_root, variables=variables)
    except DefinitionError as e:
        raise fail(str(e)) from None
    finally:
        restore()

    console.print()
    display_result(console, result)
    if not result.success:
        raise typer.Exit(1)


def list_pipelines(project_root: ProjectRoot = Path(".")) -> None:
    """List built-in and saved pipelines."""
    from agentpipe.cli._display import display_pipeline_list
    from agentpipe.config import get_pipelines_dir, get_project_dir
    from agentpipe.pipeline.builtin import list_builtin_pipelines

    custom: list[tuple[str, str]] = []
    for directory in (get_project_dir(project_root.resolve()) / "pipelines", get_pipelines_dir()):
        if not directory.is_dir():
            continue
        for path in sorted([*directory.glob("*.yaml"), *directory.glob("*.yml")]):
            custom.append((path.stem, str(path)))

    display_pipeline_list(console, list_builtin_pipelines(), custom)


def show(
    pipeline: Annotated[str, typer.Argument(help="Pipeline name or YAML path")],
    as_yaml: Annotated[bool, typer.Option("--yaml", help="Print the definition as YAML")] = False,
    project_root: ProjectRoot = Path("."),
) -> None:
    """Show a pipeline's steps."""
    from agentpipe.cli._display import display_pipeline_detail
    from agentpipe.pipeline.loader import serialize_pipeline

    pipe = resolve_pipeline_or_exit(pipeline, project_root.resolve())
    if as_yaml:
        console.out(serialize_pipeline(pipe), end="", highlight=False)
        return
    display_pipeline_detail(console, pipe)


def validate(
    pipeline_file: Annotated[Path, typer.Argument(help="Path to pipeline YAML")],
) -> None:
    """Validate a pipeline definition, including its dependency graph."""
    from agentpipe.errors import DefinitionError
    from agentpipe.pipeline.loader import load_pipeline
    from agentpipe.pipeline.runner import order_steps

    try:
        pipe = load_pipeline(pipeline_file)
        ordered = order_steps(pipe.steps)
    except DefinitionError as e:
        raise fail(str(e)) from None

    console.print(f"[green]Valid:[/green] {pipe.name} ({len(ordered)} steps)")
    console.print(f"[dim]Order: {' -> '.join(s.id for s in ordered)}[/dim]")


def create(
    name: Annotated[str, typer.Argument(help="Name of the new pipeline")],
    from_builtin: Annotated[
        str | None, typer.Option("--from", help="Start from a built-in pipeline")
    ] = None,
    global_: Annotated[
        bool, typer.Option("--global", help="Save to the user pipelines directory")
    ] = False,
    force: Annotated[bool, typer.Option("--force", help="Overwrite an existing file")] = False,
    project_root: ProjectRoot = Path("."),
) -> None:
    """Create a pipeline YAML file to edit."""
    from agentpipe.config import get_pipelines_dir, get_project_dir
    from agentpipe.pipeline.builtin import get_builtin_pipeline
    from agentpipe.pipeline.loader import parse_pipeline, serialize_pipeline

    if global_:
        directory = get_pipelines_dir()
    else:
        directory = get_project_dir(project_root.resolve()) / "pipelines"
    path = directory / f"{name}.yaml"
    if path.exists() and not force:
        raise fail(f"Pipeline file already exists: {path}. Use --force to overwrite.")

    if from_builtin is not None:
        base = get_builtin_pipeline(from_builtin)
        if base is None:
            raise fail(f"Unknown built-in pipeline: {from_builtin}")
        pipe = base.model_copy(update={"name": name})
    else:
        pipe = parse_pipeline(
            {
                "name": name,
                "description": "Custom pipeline",
                "version": "1.0.0",
                "variables": {"GOAL": ""},
                "steps": _STARTER_STEPS,
            },
            origin=name,
        )

    directory.mkdir(parents=True, exist_ok=True)
    path.write_text(serialize_pipeline(pipe), encoding="utf-8")
    console.print(f"[green]Created[/green] {path}")
