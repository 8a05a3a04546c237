"""CLI for upgit.

This module assembles the command-line interface from the pull and
config commands.
"""

import typer

from upgit.commands.config_cmd import config
from upgit.commands.pull import pull

app = typer.Typer(
    help="Pull all git clones within folders in parallel, sharing credentials between related repos",
    no_args_is_help=True,
)

app.command(no_args_is_help=False)(pull)
app.command()(config)
