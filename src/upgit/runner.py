"""Running update tasks in parallel.

One task per clone directory, all sharing one credential broker. Queued
lines and progress redraws are written only while no task is negotiating
credentials, and the broker stops the live display for every negotiation,
so an operator answering a prompt never has the prompt overwritten.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn

from .broker import CredentialBroker
from .core import UpgitError
from .outcomes import OutcomeKind, UpdateOutcome
from .update import update_clone

UpdateTask = Callable[[Path, CredentialBroker], UpdateOutcome]

_KIND_STYLES = {
    OutcomeKind.UPDATED: "green",
    OutcomeKind.UP_TO_DATE: "dim",
    OutcomeKind.FETCH_FAILED: "red",
}


def collect_clone_paths(git_dirs: list[Path]) -> list[Path]:
    """List the immediate entries of every directory holding clones.

    Raises:
        UpgitError: A directory does not exist or cannot be read.
    """
    paths: list[Path] = []
    for git_dir in git_dirs:
        if not git_dir.is_dir():
            raise UpgitError(f"Not a directory: {git_dir}")
        try:
            paths.extend(sorted(git_dir.iterdir(), key=lambda p: p.name))
        except OSError as e:
            raise UpgitError(f"Cannot list {git_dir}: {e}")
    return paths


def _format_line(outcome: UpdateOutcome) -> str:
    style = _KIND_STYLES.get(outcome.kind, "yellow")
    return f"[{style}]{escape(outcome.clone_path)}: {outcome.kind.label}[/{style}]"


def update_all(
    clone_paths: list[Path],
    broker: CredentialBroker,
    jobs: int = 8,
    verbose: bool = False,
    console: Console | None = None,
    task: UpdateTask = update_clone,
) -> list[UpdateOutcome]:
    """Update every clone concurrently.

    Args:
        clone_paths: Clone directories, one task each
        broker: Credential broker shared by every task
        jobs: Number of worker threads
        verbose: Print a line per clone as it completes
        console: Console for progress output
        task: Per-clone update function

    Returns:
        Outcomes in completion order
    """
    console = console or broker.prompter.console
    outcomes: list[UpdateOutcome] = []
    pending_lines: list[str] = []

    def flush() -> None:
        for line in pending_lines:
            progress.console.print(line)
        pending_lines.clear()
        progress.refresh()

    # Transient, so a display stopped for a prompt leaves no stale bar behind
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        console=console,
        auto_refresh=False,
        transient=True,
    ) as progress:
        progress_task = progress.add_task("[cyan]Updating repositories...", total=len(clone_paths))
        broker.display = progress.live

        try:
            with ThreadPoolExecutor(max_workers=jobs) as executor:
                futures = {executor.submit(task, path, broker): path for path in clone_paths}

                for future in as_completed(futures):
                    outcome = future.result()
                    outcomes.append(outcome)
                    progress.advance(progress_task)
                    if verbose:
                        pending_lines.append(_format_line(outcome))
                    broker.run_if_idle(flush)
        finally:
            broker.display = None

        flush()

    return outcomes
