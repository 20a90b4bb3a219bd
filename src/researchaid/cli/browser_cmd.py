"""researchaid tabs / activate / exec / inject: direct browser commands.

Thin wrappers over RemoteBrowserSession for poking at a page by hand.
"""

from __future__ import annotations

from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from researchaid.cli.run import load_config_or_exit
from researchaid.engine.browser_session import InjectionOutcome, RemoteBrowserSession
from researchaid.engine.errors import AutomationError
from researchaid.engine.locator import SelectorChain
from researchaid.workflows import create_env

console = Console(stderr=True)
output_console = Console()


def _session() -> RemoteBrowserSession:
    config = load_config_or_exit()
    try:
        return create_env(config).session
    except AutomationError as exc:
        _fail(exc)


def _fail(exc: AutomationError) -> NoReturn:
    lines = [f"[red]{escape(exc.message)}[/red]"]
    if exc.selector_chain:
        lines.append(f"[dim]Selectors: {escape(exc.selector_chain)}[/dim]")
    if exc.stderr:
        lines.append(f"[dim]{escape(exc.stderr.strip()[:500])}[/dim]")
    console.print(Panel("\n".join(lines), title=f"[red]{type(exc).__name__}[/red]", border_style="red"))
    raise typer.Exit(code=1)


def tabs() -> None:
    """List open browser tabs in window-then-tab order."""
    session = _session()
    try:
        found = session.list_tabs()
    except AutomationError as exc:
        _fail(exc)

    if not found:
        console.print("[yellow]No tabs found.[/yellow] Is the browser running?")
        raise typer.Exit(code=1)

    table = Table(title="Browser Tabs", border_style="cyan")
    table.add_column("Window", justify="right", style="dim")
    table.add_column("Tab", justify="right", style="dim")
    table.add_column("Title", style="bold")
    table.add_column("URL")
    for tab in found:
        table.add_row(str(tab.window_index), str(tab.tab_index), escape(tab.title), escape(tab.url))
    output_console.print(table)


def activate(
    fragment: str = typer.Argument(..., help="Substring of the tab URL (case-sensitive)."),
) -> None:
    """Activate the first tab whose URL contains FRAGMENT."""
    session = _session()
    try:
        matched = session.activate_tab_matching(fragment)
    except AutomationError as exc:
        _fail(exc)
    if not matched:
        console.print(f"[red]No tab matches[/red] {escape(repr(fragment))}")
        raise typer.Exit(code=1)
    console.print(f"[green]Activated[/green] tab matching {escape(repr(fragment))}")


def exec_script(
    file: Path = typer.Argument(..., exists=True, dir_okay=False, readable=True, help="JavaScript file."),
) -> None:
    """Run FILE in the active tab and print its completion value."""
    body = file.read_text(encoding="utf-8")
    session = _session()
    try:
        result = session.execute_script(body)
    except AutomationError as exc:
        _fail(exc)

    if result.stdout:
        output_console.print(result.stdout.rstrip("\n"), markup=False, highlight=False)
    if not result.ok:
        reason = "timed out" if result.timed_out else f"exited {result.exit_code}"
        console.print(f"[red]Script {reason}[/red]")
        if result.stderr.strip():
            console.print(result.stderr.strip()[:500], markup=False, highlight=False)
        raise typer.Exit(code=1)


def inject(
    text: str = typer.Argument(..., help="Text to write into the element."),
    selector: list[str] = typer.Option(
        ...,
        "--selector",
        "-s",
        help="CSS selector; repeat to build a fallback chain, first match wins.",
    ),
    submit: bool = typer.Option(False, "--submit", help="Submit after writing."),
    submit_selector: list[str] = typer.Option(
        [],
        "--submit-selector",
        help="CSS selector for the submit control; Enter is sent when none matches.",
    ),
) -> None:
    """Write TEXT into the first element the --selector chain finds."""
    target = SelectorChain.from_css(selector, name="target")
    submit_chain = SelectorChain.from_css(submit_selector, name="submit") if submit_selector else None
    session = _session()
    try:
        result = session.inject_text(target, text, submit_after=submit, submit_chain=submit_chain)
    except AutomationError as exc:
        _fail(exc)

    outcome = InjectionOutcome.parse(result)
    via = escape(str(outcome.strategy_label))
    message = f"[green]Injected[/green] {len(text)} chars via {via} ({outcome.element_kind})"
    if outcome.submitted_via:
        message += f", submitted via {escape(outcome.submitted_via)}"
    console.print(message)
