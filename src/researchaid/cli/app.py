"""ResearchAid CLI: main Typer entry point.

Registers all subcommands and provides --version / --verbose global options.
"""

from __future__ import annotations

import typer
from rich.console import Console

from researchaid import __version__

TAGLINE = "Drive Overleaf and AI chat tabs from the command line."

console = Console()

# ── Version callback ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print("ResearchAid", style="bold cyan")
        console.print(f"  {TAGLINE}", style="dim")
        console.print(f"  v{__version__}\n", style="bold")
        raise typer.Exit()


# ── Main app ──────────────────────────────────────────────────────────────

app = typer.Typer(
    name="researchaid",
    help=f"ResearchAid\n\n{TAGLINE}",
    rich_markup_mode="rich",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show ResearchAid version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Enable verbose output.",
    ),
) -> None:
    """ResearchAid -- browser and desktop automation for Overleaf and AI chat UIs."""
    if verbose:
        import logging

        logging.basicConfig(level=logging.DEBUG, format="%(name)s  %(message)s")


# ── Register subcommands ──────────────────────────────────────────────────

from researchaid.cli.browser_cmd import activate, exec_script, inject, tabs  # noqa: E402
from researchaid.cli.config_cmd import config_app  # noqa: E402
from researchaid.cli.run import run, workflows  # noqa: E402

app.command(name="run", help="Run a workflow and wait for it to finish.")(run)
app.command(name="workflows", help="List available workflows.")(workflows)
app.command(name="tabs", help="List open browser tabs.")(tabs)
app.command(name="activate", help="Activate the first tab whose URL contains FRAGMENT.")(activate)
app.command(name="exec", help="Run a JavaScript file in the active tab.")(exec_script)
app.command(name="inject", help="Type text into the first element a selector matches.")(inject)
app.add_typer(config_app, name="config", help="View ResearchAid configuration.")
