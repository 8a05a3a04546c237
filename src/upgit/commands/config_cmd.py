"""Config command for upgit."""

import os
import subprocess
import sys

import typer
from rich import print as rprint

from upgit.config import CONFIG_FILE, init_config, load_config
from upgit.core import UpgitError


def config(
    show: bool = typer.Option(False, "--show", help="Show current configuration"),
    init: bool = typer.Option(
        False, "--init", help="Initialize config file with defaults"
    ),
    edit: bool = typer.Option(False, "--edit", help="Open config file in editor"),
):
    """Manage upgit configuration.

    Examples:
        upgit config --show     # Show current configuration
        upgit config --init     # Create config file with defaults
        upgit config --edit     # Open config in $EDITOR
    """
    if not any([show, init, edit]):
        rprint("[red]Error: Must specify one of --show, --init, or --edit[/red]")
        sys.exit(1)

    try:
        if show:
            _show()
        elif init:
            config_path = init_config()
            rprint(f"[green]Configuration file created at {config_path}[/green]")
        elif edit:
            if not CONFIG_FILE.exists():
                init_config()
                rprint(f"[blue]Created default config at {CONFIG_FILE}[/blue]")
            editor = os.environ.get("EDITOR", "nano")
            subprocess.run([editor, str(CONFIG_FILE)], check=False)
    except UpgitError as e:
        rprint(f"[red]Error: {e}[/red]")
        sys.exit(1)


def _show():
    config_data = load_config()
    rprint("[bold cyan]Current Configuration[/bold cyan]")
    rprint(f"[dim]Config file: {CONFIG_FILE}[/dim]")
    rprint(f"[dim]{'─' * 50}[/dim]\n")

    for section, values in config_data.items():
        rprint(f"[bold yellow]\\[{section}][/bold yellow]")
        if isinstance(values, dict):
            for key, value in values.items():
                rprint(f"  [cyan]{key}[/cyan] = {value}")
        else:
            rprint(f"  {values}")
        rprint()
