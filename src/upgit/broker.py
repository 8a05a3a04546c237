"""Credential negotiation.

A single CredentialBroker is shared by every update task. Each time the
git engine asks for credentials it calls ``obtain_credential``, which
holds the broker lock for the whole negotiation, prompts included.

Being asked again for a clone that already has a state is the only sign
the previous credential was refused, so that credential is moved to the
clone's rejected set before a new one is chosen.

While any task is negotiating, the live display attached as ``display``
is stopped, so prompts are never drawn over.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

import pygit2
from pygit2.enums import CredentialType
from rich.markup import escape

from .core import DEFAULT_SSH_KEY, CredentialError, expand_path
from .credentials import (
    ClonedRepoState,
    Credential,
    CredentialGraph,
    Plaintext,
    SharePolicy,
    SshKey,
    find_reusable,
)
from .prompts import Prompter
from .urls import RepositoryIdentity, parse_remote_url

if TYPE_CHECKING:
    from .config import Settings


class LiveDisplay(Protocol):
    """What the broker needs from a live display (e.g. ``rich.live.Live``)."""

    def start(self, refresh: bool = False) -> None: ...

    def stop(self) -> None: ...


class CredentialBroker:
    """Chooses credentials for clones and remembers what was refused."""

    def __init__(
        self,
        prompter: Prompter,
        policy: SharePolicy = SharePolicy.DUPLICATE,
        default_ssh: SshKey | None = None,
        default_plain: Plaintext | None = None,
        verified_keys: list[SshKey] | None = None,
        known_plaintext: dict[str, Plaintext] | None = None,
        ssh_key_path: str = DEFAULT_SSH_KEY,
    ) -> None:
        self.prompter = prompter
        self.policy = policy
        self.default_ssh = default_ssh
        self.default_plain = default_plain
        self.verified_keys = list(verified_keys or [])
        self.known_plaintext = dict(known_plaintext or {})
        self.ssh_key_path = str(expand_path(ssh_key_path))
        self.graph = CredentialGraph()
        self.lock = threading.Lock()
        self.display: LiveDisplay | None = None
        # Guards the display and the count of tasks inside obtain_credential
        self._display_lock = threading.Lock()
        self._negotiating = 0

    @classmethod
    def from_settings(cls, settings: Settings, prompter: Prompter) -> CredentialBroker:
        """Build a broker, asking for every secret the settings call for."""
        key_path = str(expand_path(settings.ssh_key))

        default_ssh = None
        if settings.default_ssh:
            passphrase = prompter.confirmed_secret(
                "Enter default ssh key pass (blank for none): ",
                required=False,
                what="default ssh passphrase",
            )
            default_ssh = SshKey(key_path, passphrase or None)

        default_plain = None
        if settings.default_plain:
            default_plain = Plaintext(
                prompter.confirmed_secret(
                    "Enter default plaintext authentication method pass: ",
                    required=True,
                    what="default password",
                )
            )

        verified_keys = []
        for path in settings.ssh_keys:
            full_path = str(expand_path(path))
            verified_keys.append(SshKey(full_path, prompter.verified_passphrase(full_path)))

        known_plaintext = {
            url: Plaintext(
                prompter.confirmed_secret(
                    f'Enter password for url "{url}" (required): ',
                    required=True,
                    what=f"password for {url}",
                )
            )
            for url in settings.plain_urls
        }

        return cls(
            prompter,
            policy=settings.share,
            default_ssh=default_ssh,
            default_plain=default_plain,
            verified_keys=verified_keys,
            known_plaintext=known_plaintext,
            ssh_key_path=key_path,
        )

    def is_busy(self) -> bool:
        """Non-blocking probe: True while a negotiation holds the lock."""
        if self.lock.acquire(blocking=False):
            self.lock.release()
            return False
        return True

    def obtain_credential(
        self,
        identity: RepositoryIdentity,
        clone_path: str,
        wants_ssh: bool,
        raw_url: str,
    ) -> Credential:
        """Return the credential to offer for one authentication attempt."""
        self._pause_display()
        try:
            with self.lock:
                return self._negotiate(identity, clone_path, wants_ssh, raw_url)
        finally:
            self._resume_display()

    def run_if_idle(self, output: Callable[[], None]) -> bool:
        """Run ``output`` unless a task is negotiating or waiting to.

        Returns:
            Whether ``output`` ran
        """
        with self._display_lock:
            if self._negotiating or self.is_busy():
                return False
            output()
            return True

    def _pause_display(self) -> None:
        # The display stops before the count goes up, so its last render
        # is written while the broker is still idle.
        with self._display_lock:
            if self._negotiating == 0 and self.display is not None:
                self.display.stop()
            self._negotiating += 1

    def _resume_display(self) -> None:
        with self._display_lock:
            self._negotiating -= 1
            if self._negotiating == 0 and self.display is not None:
                self.display.start(refresh=True)

    def _negotiate(
        self,
        identity: RepositoryIdentity,
        clone_path: str,
        wants_ssh: bool,
        raw_url: str,
    ) -> Credential:
        self.graph.ensure_node(identity)
        state = self.graph.lookup(identity, clone_path)

        if state is None:
            chosen = self._choose(identity, clone_path, wants_ssh, raw_url, frozenset())
            self.graph.insert(identity, clone_path, ClonedRepoState(active=chosen))
            return chosen

        state.reject_active()
        chosen = self._choose(identity, clone_path, wants_ssh, raw_url, state.rejected)
        if chosen in state.rejected:
            self.prompter.console.print(
                f"[yellow]Warning: that credential was already rejected for {escape(clone_path)}[/yellow]"
            )
        state.active = chosen
        return chosen

    def _choose(
        self,
        identity: RepositoryIdentity,
        clone_path: str,
        wants_ssh: bool,
        raw_url: str,
        rejected: set[Credential] | frozenset[Credential],
    ) -> Credential:
        candidate = self._known(raw_url, wants_ssh, rejected)
        if candidate is None:
            candidate = find_reusable(
                self.graph, self.policy, identity, clone_path, rejected, wants_ssh=wants_ssh
            )
        if candidate is None:
            candidate = self._default(wants_ssh, rejected)
        if candidate is None:
            candidate = self._prompt(identity, raw_url, wants_ssh, rejected)
        return candidate

    def _known(
        self, raw_url: str, wants_ssh: bool, rejected: set[Credential] | frozenset[Credential]
    ) -> Credential | None:
        if wants_ssh:
            return None
        known = self.known_plaintext.get(raw_url)
        if known is None or known in rejected:
            return None
        return known

    def _default(
        self, wants_ssh: bool, rejected: set[Credential] | frozenset[Credential]
    ) -> Credential | None:
        if self.policy < SharePolicy.DEFAULTS:
            return None
        default = self.default_ssh if wants_ssh else self.default_plain
        if default is None or default in rejected:
            return None
        return default

    def _prompt(
        self,
        identity: RepositoryIdentity,
        raw_url: str,
        wants_ssh: bool,
        rejected: set[Credential] | frozenset[Credential],
    ) -> Credential:
        if wants_ssh:
            choices = [key for key in self.verified_keys if key not in rejected]
            return self.prompter.ssh_key(raw_url, self.ssh_key_path, choices)
        return self.prompter.plaintext(identity.username, raw_url)


class BrokerCallbacks(pygit2.RemoteCallbacks):
    """pygit2 callbacks routing credential requests for one clone to the broker."""

    def __init__(self, broker: CredentialBroker, clone_path: str) -> None:
        super().__init__()
        self.broker = broker
        self.clone_path = clone_path

    def credentials(  # type: ignore[override]
        self,
        url: str,
        username_from_url: str | None,
        allowed_types: CredentialType,
    ) -> pygit2.Username | pygit2.UserPass | pygit2.Keypair:
        """Provide credentials for remote operations."""
        identity = parse_remote_url(url)
        username = username_from_url or identity.username

        if allowed_types & CredentialType.SSH_KEY:
            key = self.broker.obtain_credential(identity, self.clone_path, True, url)
            pubkey = Path(f"{key.key_path}.pub")
            return pygit2.Keypair(
                username or "git",
                str(pubkey) if pubkey.exists() else None,
                key.key_path,
                key.passphrase,
            )

        if allowed_types & CredentialType.USERPASS_PLAINTEXT:
            if not username:
                raise CredentialError(
                    f"No username in remote url {url!r}; add one (https://user@host/...)"
                )
            password = self.broker.obtain_credential(identity, self.clone_path, False, url)
            return pygit2.UserPass(username, password.secret)

        if allowed_types & CredentialType.USERNAME:
            return pygit2.Username(username or "git")

        raise CredentialError(
            "Unable to select a credential type, only plaintext or ssh key are supported"
        )
