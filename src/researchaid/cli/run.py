"""researchaid run: execute a workflow in the foreground.

The workflow itself runs on the orchestrator's background thread, exactly as
it would behind a button; this command submits it, waits, and renders the
per-step outcome.
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from researchaid.config import ResearchAidConfig, ResearchAidConfigError, load_config
from researchaid.engine.cancellation import CancellationToken
from researchaid.engine.orchestrator import WorkflowHandle, WorkflowOrchestrator
from researchaid.workflows import WORKFLOWS, create_env

console = Console(stderr=True)
output_console = Console()  # stdout for machine-readable output

logger = logging.getLogger("researchaid.cli.run")

# Extra time to let a cancelled workflow write its final status
_CANCEL_GRACE = 10.0


def load_config_or_exit() -> ResearchAidConfig:
    """Load the effective config, exiting with code 2 when it is invalid."""
    try:
        return load_config()
    except ResearchAidConfigError as exc:
        console.print(Panel(f"[red]{escape(str(exc))}[/red]", title="[red]Config Error[/red]", border_style="red"))
        raise typer.Exit(code=2)


def parse_params(pairs: list[str]) -> dict[str, str]:
    """Turn repeated ``--param KEY=VALUE`` options into a dict, exiting with 2 on a malformed one."""
    params: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            console.print(
                Panel(
                    f"[red]Invalid --param:[/red] {escape(pair)}\n\nExpected KEY=VALUE, e.g. snippet=table",
                    title="[red]Error[/red]",
                    border_style="red",
                )
            )
            raise typer.Exit(code=2)
        params[key.strip()] = value
    return params


def _print_outcomes(handle: WorkflowHandle) -> None:
    table = Table(title=f"{handle.name} ({handle.run_id})", border_style="cyan")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Step", style="bold")
    table.add_column("Result")
    table.add_column("Time", justify="right", style="dim")

    outcomes = handle.result.outcomes if handle.result is not None else []
    for number, outcome in enumerate(outcomes, start=1):
        if outcome.succeeded:
            status = "[green]ok[/green]"
        else:
            message = outcome.error.message if outcome.error else "failed"
            status = f"[red]FAIL[/red] {escape(message)}"
        table.add_row(str(number), escape(outcome.name), status, f"{outcome.duration_seconds:.1f}s")

    console.print()
    console.print(table)


def run(
    workflow: str = typer.Argument(..., help="Workflow name (see `researchaid workflows`)."),
    preempt: bool = typer.Option(
        False,
        "--preempt",
        help="Cancel a workflow that is already running instead of waiting for it.",
    ),
    timeout: float = typer.Option(
        300.0,
        "--timeout",
        "-t",
        help="Seconds to wait before cancelling the workflow.",
    ),
    param: list[str] = typer.Option(
        [],
        "--param",
        "-p",
        help="KEY=VALUE option for the workflow, e.g. snippet=table. Repeatable.",
    ),
) -> None:
    """Run WORKFLOW and report each step.

    Exit codes: 0 on success, 1 when the workflow fails or is cancelled,
    2 for an unknown workflow or invalid configuration.
    """
    if workflow not in WORKFLOWS:
        console.print(
            Panel(
                f"[red]Unknown workflow:[/red] {escape(workflow)}\n\n"
                f"Available: {', '.join(sorted(WORKFLOWS))}",
                title="[red]Error[/red]",
                border_style="red",
            )
        )
        raise typer.Exit(code=2)

    params = parse_params(param)
    config = load_config_or_exit()
    description, builder = WORKFLOWS[workflow]
    console.print(f"[bold cyan]{workflow}[/bold cyan] [dim]{description}[/dim]")

    def build(cancel: CancellationToken):
        return builder(create_env(config, cancel, params=params))

    orchestrator = WorkflowOrchestrator(config.status_dir)
    handle = orchestrator.submit(workflow, build, preempt=preempt)

    if not handle.wait(timeout):
        logger.warning("%s exceeded %.0fs, cancelling", workflow, timeout)
        handle.cancel_run(f"exceeded --timeout {timeout:.0f}s")
        handle.wait(_CANCEL_GRACE)

    _print_outcomes(handle)

    if handle.status == "completed":
        failures = handle.result.failures if handle.result is not None else []
        note = f" [yellow]({len(failures)} non-fatal step failures)[/yellow]" if failures else ""
        console.print(f"\n[green]Completed[/green]{note}\n")
        return

    lines = [f"[bold]Status:[/bold] {handle.status}"]
    if handle.failed_step:
        lines.append(f"[bold]Failed step:[/bold] {escape(handle.failed_step)}")
    if handle.error is not None:
        lines.append(f"[bold]Error:[/bold] {escape(handle.error.message)}")
        if handle.error.selector_chain:
            lines.append(f"[bold]Selectors:[/bold] {escape(handle.error.selector_chain)}")
        if handle.error.stderr and handle.error.stderr.strip():
            lines.append(f"[dim]{escape(handle.error.stderr.strip()[:500])}[/dim]")
    if handle.status_dir is not None:
        lines.append(f"[dim]Status file: {escape(str(handle.status_dir / 'run-status.json'))}[/dim]")
    console.print(Panel("\n".join(lines), title=f"[red]{workflow} failed[/red]", border_style="red"))
    raise typer.Exit(code=1)


def workflows() -> None:
    """List available workflows."""
    table = Table(title="ResearchAid Workflows", border_style="cyan")
    table.add_column("Name", style="bold")
    table.add_column("Description")
    for name, (description, _builder) in WORKFLOWS.items():
        table.add_row(name, description)
    output_console.print(table)
