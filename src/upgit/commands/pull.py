"""Pull command for upgit."""

import sys
from pathlib import Path

import typer
from rich import print as rprint

from upgit.broker import CredentialBroker
from upgit.config import Settings, resolve_settings
from upgit.core import UpgitError, expand_path
from upgit.outcomes import print_report
from upgit.prompts import Prompter
from upgit.runner import collect_clone_paths, update_all


def pull(
    git_dirs: list[str] | None = typer.Argument(
        None, help="Folders containing git clones. Env var is comma separated UPGIT_GIT_DIRS"
    ),
    ssh: list[str] | None = typer.Option(
        None,
        "--ssh",
        help="SSH key to pre-verify; asks for its passphrase. Repeatable. Env var is comma separated UPGIT_SSH",
    ),
    plain: list[str] | None = typer.Option(
        None,
        "--plain",
        help="HTTPS url with username to enter a password for up front, "
        "e.g. https://me@bitbucket.org/me/repo.git. Repeatable. Env var is comma separated UPGIT_PLAIN",
    ),
    default_ssh: bool = typer.Option(
        False, "--default-ssh", help="Ask for a default ssh key passphrase. Env var is UPGIT_DEFAULT_SSH"
    ),
    default_plain: bool = typer.Option(
        False, "--default-plain", help="Ask for a default https password. Env var is UPGIT_DEFAULT_PLAIN"
    ),
    share: str | None = typer.Option(
        None,
        "--share",
        help="Credential reuse: never, defaults, duplicate, organization or identity. Env var is UPGIT_SHARE",
    ),
    jobs: int | None = typer.Option(None, "--jobs", "-j", help="Number of clones updated at once"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Print each clone as it completes"),
):
    """Pull every clone inside the given folders, in parallel.

    Repos needing auth reuse credentials according to --share, and the
    operator is prompted when nothing reusable exists (if a TTY is available).

    Examples:
        upgit pull ~/code ~/work
        upgit pull ~/code --default-plain --share organization
        upgit pull ~/code --ssh ~/.ssh/id_ed25519 --ssh ~/.ssh/work_key
    """
    try:
        settings = resolve_settings(
            git_dirs=git_dirs,
            ssh_keys=ssh,
            plain_urls=plain,
            default_ssh=default_ssh,
            default_plain=default_plain,
            share=share,
            jobs=jobs,
            verbose=verbose,
        )
        prompter = Prompter()

        if not settings.git_dirs:
            settings.git_dirs = _ask_git_dirs(prompter)

        run_pull(settings, prompter)

    except UpgitError as e:
        rprint(f"[red]Error: {e}[/red]")
        sys.exit(1)


def _ask_git_dirs(prompter: Prompter) -> list[Path]:
    rprint(
        "Git directories were not provided via $UPGIT_GIT_DIRS or CLI. "
        "Provide space separated list via stdin:"
    )
    answer = prompter.line("> ", what="git directories")
    dirs = [expand_path(d) for d in answer.split()]
    if not dirs:
        rprint("[red]No git directories provided, exiting[/red]")
        sys.exit(1)
    return dirs


def run_pull(settings: Settings, prompter: Prompter):
    """Set up credentials, update every clone and print the report."""
    clone_paths = collect_clone_paths(settings.git_dirs)
    broker = CredentialBroker.from_settings(settings, prompter)

    rprint(
        f"[blue]Updating {len(clone_paths)} entries in {len(settings.git_dirs)} "
        f"folder(s), sharing credentials at level '{settings.share.name.lower()}'...[/blue]"
    )
    outcomes = update_all(clone_paths, broker, jobs=settings.jobs, verbose=settings.verbose)
    print_report(outcomes)
