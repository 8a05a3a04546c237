"""Updating one local clone.

Opens the clone with pygit2, fetches its remote through the credential
broker, then fast-forwards or merges the checked out branch. Every path
through ``update_clone`` ends in an UpdateOutcome; nothing is raised.
"""

from __future__ import annotations

import itertools
from pathlib import Path

import pygit2
from pygit2.enums import (
    CheckoutStrategy,
    DiffStatsFormat,
    FileStatus,
    MergeAnalysis,
    RepositoryOpenFlag,
    ResetMode,
)

from .broker import BrokerCallbacks, CredentialBroker
from .core import UpgitError
from .outcomes import OutcomeKind, UpdateOutcome

MAX_LOG_LINES = 20


class _Stop(Exception):
    """Ends an update early with a final outcome."""

    def __init__(self, kind: OutcomeKind, report: str = "") -> None:
        super().__init__(report)
        self.kind = kind
        self.report = report


def update_clone(path: str | Path, broker: CredentialBroker) -> UpdateOutcome:
    """Fetch and merge one clone directory.

    Args:
        path: Clone directory
        broker: Shared credential broker

    Returns:
        The outcome for this clone
    """
    clone_path = str(path)
    try:
        return UpdateOutcome(clone_path, OutcomeKind.UPDATED, _update(Path(path), broker))
    except _Stop as stop:
        return UpdateOutcome(clone_path, stop.kind, stop.report)
    except Exception as e:
        return UpdateOutcome(clone_path, OutcomeKind.OTHER, f"{type(e).__name__}: {e}")


def _update(path: Path, broker: CredentialBroker) -> str:
    repo = open_clone(path)
    remote = pick_remote(repo)
    branch = _current_branch(repo)
    _ensure_clean(repo)

    _fetch(remote, broker, str(path))

    their_oid = _fetch_target(repo, branch, remote.name)
    head_oid = repo.head.target

    try:
        analysis, _ = repo.merge_analysis(their_oid)
    except pygit2.GitError as e:
        raise _Stop(OutcomeKind.MERGE_ANALYSIS_FAILED, str(e))

    if analysis & MergeAnalysis.UP_TO_DATE:
        raise _Stop(OutcomeKind.UP_TO_DATE)

    if analysis & MergeAnalysis.FASTFORWARD:
        _fast_forward(repo, branch, their_oid)
    elif analysis & MergeAnalysis.NORMAL:
        _merge(repo, head_oid, their_oid)
    else:
        raise _Stop(OutcomeKind.MERGE_ANALYSIS_FAILED, f"Unexpected merge analysis {analysis!r}")

    return change_report(repo, head_oid, repo.head.target)


def open_clone(path: Path) -> pygit2.Repository:
    """Open a clone without searching parent directories."""
    if not path.is_dir():
        raise _Stop(OutcomeKind.NOT_A_REPO)
    try:
        repo = pygit2.Repository(str(path), RepositoryOpenFlag.NO_SEARCH)
    except pygit2.GitError:
        raise _Stop(OutcomeKind.NOT_A_REPO)
    if repo.is_bare:
        raise _Stop(OutcomeKind.BARE_REPOSITORY)
    return repo


def pick_remote(repo: pygit2.Repository) -> pygit2.Remote:
    """Return ``origin``, or the only remote when there is exactly one."""
    names = list(repo.remotes.names())
    if "origin" in names:
        return repo.remotes["origin"]
    if not names:
        raise _Stop(OutcomeKind.NO_REMOTE)
    if len(names) > 1:
        raise _Stop(
            OutcomeKind.AMBIGUOUS_REMOTE,
            f"Unable to pick between remotes {', '.join(names)} as no \"origin\" exists",
        )
    return repo.remotes[names[0]]


def _current_branch(repo: pygit2.Repository) -> pygit2.Branch:
    if repo.head_is_unborn:
        raise _Stop(OutcomeKind.OTHER, "HEAD is unborn, nothing to update")
    if repo.head_is_detached:
        raise _Stop(OutcomeKind.OTHER, "HEAD is detached, not on a branch")
    return repo.branches.local[repo.head.shorthand]


def _ensure_clean(repo: pygit2.Repository):
    changed = sorted(
        path
        for path, flags in repo.status(untracked_files="no").items()
        if flags not in (FileStatus.CURRENT, FileStatus.IGNORED)
    )
    if changed:
        raise _Stop(OutcomeKind.DIRTY, f"Uncommitted changes: {', '.join(changed)}")


def _fetch(remote: pygit2.Remote, broker: CredentialBroker, clone_path: str):
    try:
        remote.fetch(callbacks=BrokerCallbacks(broker, clone_path))
    except (pygit2.GitError, UpgitError) as e:
        raise _Stop(OutcomeKind.FETCH_FAILED, f"{remote.name}: {e}")


def _fetch_target(repo: pygit2.Repository, branch: pygit2.Branch, remote_name: str) -> pygit2.Oid:
    upstream = branch.upstream
    refname = upstream.name if upstream is not None else f"refs/remotes/{remote_name}/{branch.branch_name}"
    ref = repo.references.get(refname)
    if ref is None:
        raise _Stop(
            OutcomeKind.REMOTE_HEAD_MISMATCH,
            f"No remote branch {refname} for local branch {branch.branch_name}",
        )
    return ref.peel(pygit2.Commit).id


def _fast_forward(repo: pygit2.Repository, branch: pygit2.Branch, their_oid: pygit2.Oid):
    try:
        repo.checkout_tree(repo[their_oid], strategy=CheckoutStrategy.SAFE)
    except pygit2.GitError as e:
        raise _Stop(OutcomeKind.FAST_FORWARD_NEEDS_RESOLUTION, str(e))
    branch.set_target(their_oid, f"Fast-Forward: Setting {branch.name} to id: {their_oid}")


def _merge(repo: pygit2.Repository, head_oid: pygit2.Oid, their_oid: pygit2.Oid):
    try:
        repo.merge(their_oid)
    except pygit2.GitError as e:
        _revert(repo, head_oid, f"Merge failed: {e}")

    if repo.index.conflicts is not None:
        paths = sorted(
            {
                entry.path
                for conflict in repo.index.conflicts
                for entry in conflict
                if entry is not None
            }
        )
        _revert(repo, head_oid, f"Conflicts in: {', '.join(paths)}")

    try:
        signature = repo.default_signature
    except (KeyError, pygit2.GitError) as e:
        _revert(repo, head_oid, f"No signature for the merge commit: {e}")

    tree = repo.index.write_tree()
    repo.create_commit(
        "HEAD",
        signature,
        signature,
        f"Merge: {their_oid} into {head_oid}",
        tree,
        [head_oid, their_oid],
    )
    repo.state_cleanup()


def _revert(repo: pygit2.Repository, head_oid: pygit2.Oid, reason: str):
    try:
        repo.reset(head_oid, ResetMode.HARD)
        repo.state_cleanup()
    except pygit2.GitError as e:
        raise _Stop(OutcomeKind.MERGE_CONFLICT_UNRESOLVED, f"{reason}; revert failed: {e}")
    raise _Stop(OutcomeKind.MERGE_CONFLICT_REVERTED, reason)


def change_report(repo: pygit2.Repository, old_oid: pygit2.Oid, new_oid: pygit2.Oid) -> str:
    """Describe what an update brought in: commit range, log and diff stat."""
    lines = [f"{str(old_oid)[:8]}..{str(new_oid)[:8]}"]
    walker = repo.walk(new_oid)
    walker.hide(old_oid)
    for commit in itertools.islice(walker, MAX_LOG_LINES):
        summary = commit.message.splitlines()[0] if commit.message else ""
        lines.append(f"  {str(commit.id)[:8]} {summary}")
    diff = repo.diff(repo[old_oid], repo[new_oid])
    lines.append(diff.stats.format(DiffStatsFormat.FULL, 80).rstrip())
    return "\n".join(lines)
