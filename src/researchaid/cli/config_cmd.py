"""researchaid config: view ResearchAid configuration.

Subcommands: show, path.
"""

from __future__ import annotations

import typer
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from researchaid.config import CONFIG_ENV_VAR, ResearchAidConfig, ResearchAidConfigError, default_home, load_config

console = Console()

config_app = typer.Typer(
    name="config",
    help="View ResearchAid configuration.",
    no_args_is_help=True,
)


@config_app.command(name="show")
def config_show() -> None:
    """Show the effective ResearchAid configuration.

    Values come from $RESEARCHAID_CONFIG, ~/.researchaid/config.json or
    ~/.researchaid/config.yaml, in that order, merged over the defaults.
    """
    try:
        config = load_config()
    except ResearchAidConfigError as exc:
        console.print(Panel(f"[red]{escape(str(exc))}[/red]", title="[red]Config Error[/red]", border_style="red"))
        raise typer.Exit(code=2)

    defaults = ResearchAidConfig()
    source = str(config.source_path) if config.source_path else "defaults"

    def origin(field: str) -> str:
        return "default" if getattr(config, field) == getattr(defaults, field) else "config"

    table = Table(title="ResearchAid Configuration", border_style="cyan")
    table.add_column("Setting", style="bold")
    table.add_column("Value")
    table.add_column("Source", style="dim")

    table.add_row("Config File", source, "resolved")
    table.add_row("", "", "")
    table.add_row("Target File", config.target_file_name, origin("target_file_name"))
    table.add_row("Replace Content", str(config.replace_file_content), origin("replace_file_content"))
    table.add_row("", "", "")
    table.add_row("Browser App", config.browser_app, origin("browser_app"))
    table.add_row("Transport", config.transport, origin("transport"))
    table.add_row("DevTools", f"{config.devtools_host}:{config.devtools_port}", origin("devtools_port"))
    table.add_row("Overleaf URL", config.overleaf_url, origin("overleaf_url"))
    table.add_row("Overleaf Tab Match", config.overleaf_tab_fragment, origin("overleaf_tab_fragment"))
    table.add_row("Commit Message", escape(config.commit_message), origin("commit_message"))
    table.add_row("Clone Templates", escape(", ".join(config.clone_templates)), origin("clone_templates"))
    table.add_row("", "", "")
    table.add_row("Script Timeout", f"{config.script_timeout}s", origin("script_timeout"))
    table.add_row("Poll Interval", f"{config.poll_interval}s", origin("poll_interval"))
    table.add_row("Compile Timeout", f"{config.compile_timeout}s", origin("compile_timeout"))
    table.add_row("Page Load Timeout", f"{config.page_load_timeout}s", origin("page_load_timeout"))
    table.add_row("Step Delay", f"{config.step_delay}s", origin("step_delay"))
    table.add_row("Inline Script Limit", f"{config.inline_script_limit} chars", origin("inline_script_limit"))
    table.add_row("Status Dir", str(config.status_dir), origin("status_dir"))

    console.print()
    console.print(table)
    console.print()


@config_app.command(name="path")
def config_path() -> None:
    """Print where ResearchAid looks for its config file."""
    console.print(f"[bold]${CONFIG_ENV_VAR}[/bold] (if set)")
    for name in ("config.json", "config.yaml"):
        candidate = default_home() / name
        marker = "[green]exists[/green]" if candidate.is_file() else "[dim]missing[/dim]"
        console.print(f"{escape(str(candidate))}  {marker}")
