"""Tests for the pygit2 credential callbacks."""

from __future__ import annotations

from pathlib import Path

import pygit2
import pytest
from conftest import FakeTerminal
from pygit2.enums import CredentialType

from upgit.broker import BrokerCallbacks, CredentialBroker
from upgit.core import CredentialError
from upgit.credentials import Plaintext, SharePolicy, SshKey
from upgit.urls import parse_remote_url


@pytest.fixture
def broker(terminal: FakeTerminal) -> CredentialBroker:
    return CredentialBroker(
        terminal.prompter,
        policy=SharePolicy.DEFAULTS,
        default_ssh=SshKey("/keys/id_rsa", "pass"),
        default_plain=Plaintext("secret"),
    )


class TestBrokerCallbacks:
    """Tests for BrokerCallbacks.credentials."""

    def test_ssh_key_returns_keypair(self, broker: CredentialBroker) -> None:
        callbacks = BrokerCallbacks(broker, "/clones/a")

        result = callbacks.credentials("git@github.com:org/repo.git", "git", CredentialType.SSH_KEY)

        assert isinstance(result, pygit2.Keypair)
        assert result.credential_tuple == ("git", None, "/keys/id_rsa", "pass")

    def test_ssh_key_uses_public_key_when_present(self, terminal: FakeTerminal, tmp_path: Path) -> None:
        key = tmp_path / "id_ed25519"
        key.write_text("private")
        (tmp_path / "id_ed25519.pub").write_text("public")
        broker = CredentialBroker(
            terminal.prompter, policy=SharePolicy.DEFAULTS, default_ssh=SshKey(str(key))
        )

        result = BrokerCallbacks(broker, "/clones/a").credentials(
            "ssh://deploy@host/org/repo.git", None, CredentialType.SSH_KEY
        )

        assert result.credential_tuple == ("deploy", f"{key}.pub", str(key), None)

    def test_plaintext_returns_userpass(self, broker: CredentialBroker) -> None:
        callbacks = BrokerCallbacks(broker, "/clones/a")

        result = callbacks.credentials(
            "https://bob@example.com/org/repo.git", "bob", CredentialType.USERPASS_PLAINTEXT
        )

        assert isinstance(result, pygit2.UserPass)
        assert result.credential_tuple == ("bob", "secret")

    def test_records_state_for_clone(self, broker: CredentialBroker) -> None:
        url = "https://bob@example.com/org/repo.git"
        callbacks = BrokerCallbacks(broker, "/clones/a")

        callbacks.credentials(url, "bob", CredentialType.USERPASS_PLAINTEXT)

        state = broker.graph.lookup(parse_remote_url(url), "/clones/a")
        assert state is not None
        assert state.active == Plaintext("secret")

    def test_plaintext_without_username_raises(self, broker: CredentialBroker) -> None:
        callbacks = BrokerCallbacks(broker, "/clones/a")

        with pytest.raises(CredentialError, match="No username"):
            callbacks.credentials(
                "https://example.com/org/repo.git", None, CredentialType.USERPASS_PLAINTEXT
            )

    def test_username_request(self, broker: CredentialBroker) -> None:
        callbacks = BrokerCallbacks(broker, "/clones/a")

        result = callbacks.credentials("ssh://host/org/repo.git", None, CredentialType.USERNAME)

        assert isinstance(result, pygit2.Username)
        assert result.credential_tuple == ("git",)
        assert len(broker.graph) == 0

    def test_unsupported_type_raises(self, broker: CredentialBroker) -> None:
        callbacks = BrokerCallbacks(broker, "/clones/a")

        with pytest.raises(CredentialError, match="only plaintext or ssh key"):
            callbacks.credentials("https://example.com/repo.git", None, CredentialType.DEFAULT)
