"""Credential types and the credential graph.

The graph caches, per local clone, the credential currently in use and
the credentials already rejected for it. It is keyed four levels deep:

    identity key -> organization -> repository -> clone path -> state

Every level is a plain dict, so searches walk entries in insertion order
and the first clone to establish a credential is the first candidate.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Union

from .core import ConfigError
from .urls import RepositoryIdentity


@dataclass(frozen=True)
class Plaintext:
    """Password for HTTPS plaintext authentication."""

    secret: str = field(repr=False)


@dataclass(frozen=True)
class SshKey:
    """Private key path and its passphrase (None for no passphrase)."""

    key_path: str
    passphrase: str | None = field(default=None, repr=False)


Credential = Union[Plaintext, SshKey]


def is_kind(credential: Credential, wants_ssh: bool) -> bool:
    """Check that a credential matches the requested kind"""
    return isinstance(credential, SshKey) if wants_ssh else isinstance(credential, Plaintext)


@dataclass
class ClonedRepoState:
    """Negotiation state of one local clone."""

    active: Credential
    rejected: set[Credential] = field(default_factory=set)

    def reject_active(self) -> None:
        """Record that the active credential was refused."""
        self.rejected.add(self.active)


class SharePolicy(IntEnum):
    """How widely credentials are reused across clones.

    Each level includes the ones below it.
    """

    NEVER = 0
    DEFAULTS = 1
    DUPLICATE = 2
    ORGANIZATION = 3
    IDENTITY = 4

    @classmethod
    def from_name(cls, name: str) -> SharePolicy:
        """Parse a level name (case-insensitive, ``org`` accepted)."""
        normalized = name.strip().lower()
        if normalized == "org":
            normalized = "organization"
        try:
            return cls[normalized.upper()]
        except KeyError:
            choices = ", ".join(level.name.lower() for level in cls)
            raise ConfigError(f"Unknown share level {name!r}. Expected one of: {choices}")


ClonesByPath = dict[str, ClonedRepoState]
Repositories = dict[str, ClonesByPath]
Organizations = dict[str, Repositories]


class CredentialGraph:
    """Four-level cache of clone states, created lazily, never pruned."""

    def __init__(self) -> None:
        self._identities: dict[str, Organizations] = {}

    def ensure_node(self, identity: RepositoryIdentity) -> ClonesByPath:
        """Create missing levels down to the repository node and return it."""
        organizations = self._identities.setdefault(identity.key, {})
        repositories = organizations.setdefault(identity.organization, {})
        return repositories.setdefault(identity.repository, {})

    def lookup(self, identity: RepositoryIdentity, clone_path: str) -> ClonedRepoState | None:
        clones = (
            self._identities.get(identity.key, {})
            .get(identity.organization, {})
            .get(identity.repository, {})
        )
        return clones.get(clone_path)

    def insert(
        self, identity: RepositoryIdentity, clone_path: str, state: ClonedRepoState
    ) -> None:
        """Store (or replace) the state of a clone."""
        self.ensure_node(identity)[clone_path] = state

    def repository_clones(self, identity: RepositoryIdentity) -> Iterator[tuple[str, ClonedRepoState]]:
        clones = (
            self._identities.get(identity.key, {})
            .get(identity.organization, {})
            .get(identity.repository, {})
        )
        yield from clones.items()

    def organization_clones(
        self, identity: RepositoryIdentity
    ) -> Iterator[tuple[str, ClonedRepoState]]:
        repositories = self._identities.get(identity.key, {}).get(identity.organization, {})
        for clones in repositories.values():
            yield from clones.items()

    def identity_clones(self, identity: RepositoryIdentity) -> Iterator[tuple[str, ClonedRepoState]]:
        for repositories in self._identities.get(identity.key, {}).values():
            for clones in repositories.values():
                yield from clones.items()

    def __len__(self) -> int:
        """Number of clone states held."""
        return sum(1 for _ in self._all_clones())

    def _all_clones(self) -> Iterator[ClonedRepoState]:
        for organizations in self._identities.values():
            for repositories in organizations.values():
                for clones in repositories.values():
                    yield from clones.values()

    def node_counts(self) -> tuple[int, int, int]:
        """Return (identities, organizations, repositories) node counts."""
        organizations = sum(len(orgs) for orgs in self._identities.values())
        repositories = sum(
            len(repos) for orgs in self._identities.values() for repos in orgs.values()
        )
        return len(self._identities), organizations, repositories


def _first_usable(
    clones: Iterable[tuple[str, ClonedRepoState]],
    exclude_path: str,
    exclude: set[Credential] | frozenset[Credential],
    wants_ssh: bool | None,
) -> Credential | None:
    for path, state in clones:
        if path == exclude_path or state.active in exclude:
            continue
        if wants_ssh is not None and not is_kind(state.active, wants_ssh):
            continue
        return state.active
    return None


def find_reusable(
    graph: CredentialGraph,
    policy: SharePolicy,
    identity: RepositoryIdentity,
    exclude_path: str,
    exclude: set[Credential] | frozenset[Credential] = frozenset(),
    wants_ssh: bool | None = None,
) -> Credential | None:
    """Find an untried credential another clone is already using.

    The search widens with the policy: other clones of the same
    repository, then of the same organization, then of the whole
    identity. The first match at the narrowest scope wins.

    Args:
        graph: Credential graph to search
        policy: Configured share level
        identity: Identity of the clone asking
        exclude_path: The asking clone's own path
        exclude: Credentials already rejected for the asking clone
        wants_ssh: Restrict to SSH keys (True) or passwords (False)

    Returns:
        The credential to reuse, or None
    """
    if policy < SharePolicy.DUPLICATE:
        return None

    scopes = [graph.repository_clones]
    if policy >= SharePolicy.ORGANIZATION:
        scopes.append(graph.organization_clones)
    if policy >= SharePolicy.IDENTITY:
        scopes.append(graph.identity_clones)

    for scope in scopes:
        found = _first_usable(scope(identity), exclude_path, exclude, wants_ssh)
        if found is not None:
            return found
    return None
