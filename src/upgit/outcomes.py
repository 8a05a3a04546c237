"""Per-clone outcomes and the end-of-run report."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from enum import Enum

from rich.console import Console
from rich.markup import escape
from rich.table import Table

console = Console()


class OutcomeKind(Enum):
    NOT_A_REPO = "Not a repo"
    BARE_REPOSITORY = "Bare repo, skipped"
    NO_REMOTE = "No remote"
    AMBIGUOUS_REMOTE = "No clear remote origin"
    DIRTY = "Dirty, skipped"
    REMOTE_HEAD_MISMATCH = "Remote head mismatch"
    UP_TO_DATE = "Up to date"
    UPDATED = "Updated"
    FAST_FORWARD_NEEDS_RESOLUTION = "Needs resolution"
    MERGE_CONFLICT_REVERTED = "Reverted conflict"
    MERGE_CONFLICT_UNRESOLVED = "Unresolved conflict"
    FETCH_FAILED = "Couldn't fetch"
    MERGE_ANALYSIS_FAILED = "Failed merge analysis"
    OTHER = "Other error"

    @property
    def label(self) -> str:
        return self.value


@dataclass(frozen=True)
class UpdateOutcome:
    """Result of updating one clone directory."""

    clone_path: str
    kind: OutcomeKind
    report: str = ""


# Kinds not listed below print paths only; UPDATED is printed last, in full
_COUNT_ONLY = (
    OutcomeKind.BARE_REPOSITORY,
    OutcomeKind.UP_TO_DATE,
)
_WITH_REPORT = (
    OutcomeKind.AMBIGUOUS_REMOTE,
    OutcomeKind.MERGE_CONFLICT_REVERTED,
    OutcomeKind.MERGE_CONFLICT_UNRESOLVED,
    OutcomeKind.DIRTY,
    OutcomeKind.FETCH_FAILED,
    OutcomeKind.FAST_FORWARD_NEEDS_RESOLUTION,
    OutcomeKind.MERGE_ANALYSIS_FAILED,
    OutcomeKind.REMOTE_HEAD_MISMATCH,
    OutcomeKind.OTHER,
)

_STYLES = {
    OutcomeKind.UP_TO_DATE: "green",
    OutcomeKind.UPDATED: "green",
    OutcomeKind.FETCH_FAILED: "red",
    OutcomeKind.MERGE_CONFLICT_UNRESOLVED: "red",
    OutcomeKind.MERGE_ANALYSIS_FAILED: "red",
    OutcomeKind.OTHER: "red",
}


def group_outcomes(outcomes: list[UpdateOutcome]) -> dict[OutcomeKind, list[UpdateOutcome]]:
    """Group outcomes by kind, each group sorted by path."""
    grouped: dict[OutcomeKind, list[UpdateOutcome]] = defaultdict(list)
    for outcome in outcomes:
        grouped[outcome.kind].append(outcome)
    return {kind: sorted(items, key=lambda o: o.clone_path) for kind, items in grouped.items()}


def display_summary_table(grouped: dict[OutcomeKind, list[UpdateOutcome]]):
    """Display outcome counts in a formatted table"""
    table = Table(title="Update summary")
    table.add_column("Outcome", style="cyan", no_wrap=True)
    table.add_column("Clones", justify="right")

    for kind in OutcomeKind:
        if kind in grouped:
            style = _STYLES.get(kind, "yellow")
            table.add_row(f"[{style}]{kind.label}[/{style}]", str(len(grouped[kind])))

    console.print(table)


def print_report(outcomes: list[UpdateOutcome]):
    """Print every outcome grouped by kind, updated clones last."""
    grouped = group_outcomes(outcomes)
    console.print(f"\n[blue]Processed {len(outcomes)} entries[/blue]")
    display_summary_table(grouped)

    for kind in OutcomeKind:
        items = grouped.get(kind)
        if not items or kind is OutcomeKind.UPDATED:
            continue
        style = _STYLES.get(kind, "yellow")
        if kind in _COUNT_ONLY:
            console.print(f"[{style}]{kind.label} ({len(items)})[/{style}]")
            continue
        console.print(f"[{style}]{kind.label} ({len(items)}):[/{style}]")
        for item in items:
            console.print(f"  {escape(item.clone_path)}")
            if kind in _WITH_REPORT and item.report:
                console.print(f"    [dim]{escape(item.report)}[/dim]")

    updated = grouped.get(OutcomeKind.UPDATED, [])
    if updated:
        console.print(f"[green]Updated ({len(updated)}):[/green]")
        for item in updated:
            console.print(f"[bold]{escape(item.clone_path)}[/bold]:")
            console.print(escape(item.report), highlight=False)
