"""Rich rendering of pipelines, dry-run plans, live events and results."""

from __future__ import annotations

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from agentpipe.agents.builtin import AgentStatus
from agentpipe.pipeline.events import PipelineEventSink
from agentpipe.pipeline.results import PipelineResult, StepResult
from agentpipe.pipeline.runner import PlannedStep
from agentpipe.pipeline.schema import PipelineDefinition, PipelineStep

_PREVIEW_CHARS = 80


def _preview(text: str) -> str:
    text = " ".join(text.split())
    return (text[:_PREVIEW_CHARS] + "...") if len(text) > _PREVIEW_CHARS else text


def _status(result: StepResult) -> str:
    if result.skipped:
        label = "[dim]SKIP[/dim]" if result.success else "[yellow]SKIP[/yellow]"
        return f"{label} ({escape(result.skip_reason or '')})"
    if result.success:
        return "[green]PASS[/green]"
    return f"[red]FAIL[/red] ({escape(result.error or '')})"


class ConsoleEventSink(PipelineEventSink):
    """Prints progress as the runner reports it."""

    def __init__(self, console: Console, *, stream_output: bool = False) -> None:
        self.console = console
        self.stream_output = stream_output

    def on_pipeline_start(self, pipeline: PipelineDefinition, run_id: str) -> None:
        self.console.print(f"[bold]Pipeline:[/bold] {escape(pipeline.name)} [dim]({run_id})[/dim]")

    def on_step_start(self, step: PipelineStep, index: int, total: int) -> None:
        self.console.print(f"[cyan][{index + 1}/{total}][/cyan] {escape(step.name)}")

    def on_step_output(self, step_id: str, chunk: str) -> None:
        if self.stream_output:
            self.console.out(chunk, end="", highlight=False)

    def on_step_retry(self, step: PipelineStep, attempt: int, error: str) -> None:
        self.console.print(
            f"  [yellow]retry[/yellow] attempt {attempt}/{step.max_attempts}: {escape(error)}"
        )

    def on_step_complete(self, result: StepResult) -> None:
        suffix = f" [dim]{result.duration_ms}ms[/dim]" if not result.skipped else ""
        recovery = ""
        if result.recovery_for:
            recovery = f" [dim](recovery for {result.recovery_for})[/dim]"
        self.console.print(f"  {_status(result)}{recovery}{suffix}")

    def on_gate_wait(self, step: PipelineStep) -> None:
        message = (step.gate.message if step.gate else None) or "Approval required"
        self.console.print(
            Panel(escape(message), title=f"Gate: {escape(step.name)}", border_style="yellow")
        )


def display_result(console: Console, result: PipelineResult) -> None:
    table = Table(title=f"Pipeline: {result.pipeline_name} ({result.run_id})")
    table.add_column("Step", style="cyan")
    table.add_column("Agent")
    table.add_column("Status")
    table.add_column("Attempts", justify="right")
    table.add_column("Duration", justify="right")
    table.add_column("Output (preview)")

    for sr in result.step_results:
        table.add_row(
            sr.step_id,
            sr.agent_used,
            _status(sr),
            str(sr.attempts) if sr.attempts else "-",
            f"{sr.duration_ms}ms",
            escape(_preview(sr.output)),
        )
    console.print(table)

    if result.artifacts.files:
        console.print("\n[bold]Files:[/bold]")
        for path in result.artifacts.files:
            console.print(f"  {escape(path)}")
    if result.artifacts.code:
        console.print(f"[bold]Code blocks:[/bold] {len(result.artifacts.code)}")

    total = f"[bold]Total: {result.total_duration_ms}ms[/bold]"
    if result.success:
        console.print(f"\n{total} [green]Pipeline succeeded[/green]")
    else:
        detail = f": {escape(result.error)}" if result.error else ""
        console.print(f"\n{total} [red]Pipeline failed{detail}[/red]")


def display_plan(
    console: Console,
    pipeline: PipelineDefinition,
    planned: list[PlannedStep],
    variables: dict[str, str],
) -> None:
    table = Table(title=f"Pipeline: {pipeline.name} (dry run)")
    table.add_column("#", justify="right")
    table.add_column("Step", style="cyan")
    table.add_column("Task Type")
    table.add_column("Agent")
    table.add_column("Depends On")
    table.add_column("Condition")
    table.add_column("Gate")

    for i, item in enumerate(planned, 1):
        step = item.step
        agent = escape(item.agent) if item.agent else f"[red]{escape(item.error or 'none')}[/red]"
        if item.recovery:
            agent += " [dim](on failure)[/dim]"
        table.add_row(
            str(i),
            escape(step.id),
            item.task_type or "-",
            agent,
            ", ".join(step.depends_on) or "(none)",
            escape(step.condition or "(always)"),
            "yes" if step.gate_enabled else "",
        )
    console.print(table)

    merged = {**pipeline.variables, **variables}
    if merged:
        console.print("\n[bold]Variables:[/bold]")
        for k, v in merged.items():
            console.print(f"  {escape(k)} = {escape(v)}")
    console.print("\n[green]Pipeline definition is valid.[/green]")


def display_pipeline_list(
    console: Console,
    builtin: list[PipelineDefinition],
    custom: list[tuple[str, str]],
) -> None:
    table = Table(title="Pipelines")
    table.add_column("Name", style="cyan")
    table.add_column("Steps", justify="right")
    table.add_column("Source")
    table.add_column("Description")
    for p in builtin:
        table.add_row(p.name, str(len(p.steps)), "built-in", escape(p.description))
    for name, source in custom:
        table.add_row(name, "", escape(source), "")
    console.print(table)


def display_pipeline_detail(console: Console, pipeline: PipelineDefinition) -> None:
    header = f"[bold]{escape(pipeline.name)}[/bold]"
    if pipeline.version:
        header += f" [dim]v{escape(pipeline.version)}[/dim]"
    console.print(header)
    if pipeline.description:
        console.print(escape(pipeline.description))
    if pipeline.tags:
        console.print(f"[dim]Tags: {escape(', '.join(pipeline.tags))}[/dim]")

    table = Table()
    table.add_column("Step", style="cyan")
    table.add_column("Name")
    table.add_column("Tool / Task Type")
    table.add_column("Depends On")
    table.add_column("Options")
    for step in pipeline.steps:
        options: list[str] = []
        if step.condition:
            options.append(f"if {step.condition}")
        if step.retry:
            options.append(f"retry x{step.retry.max_attempts}")
        if step.timeout_ms:
            options.append(f"timeout {step.timeout_ms}ms")
        if step.gate_enabled:
            options.append("gate")
        if step.on_failure:
            options.append(f"on failure: {step.on_failure}")
        table.add_row(
            escape(step.id),
            escape(step.name),
            escape(step.tool or step.task_type or "(auto)"),
            ", ".join(step.depends_on) or "-",
            escape("; ".join(options)),
        )
    console.print(table)


def display_agents(console: Console, statuses: list[AgentStatus]) -> None:
    table = Table(title="Agents")
    table.add_column("Name", style="cyan")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Version")
    for s in statuses:
        if s.available:
            status = "[green]Available[/green]"
        else:
            hint = f" [dim]{escape(s.install_hint)}[/dim]" if s.install_hint else ""
            status = f"[dim]Not found[/dim]{hint}"
        table.add_row(s.name, s.agent_type, status, s.version or "-")
    console.print(table)
