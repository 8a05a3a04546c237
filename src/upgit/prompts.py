"""Interactive prompting for credentials.

Every question goes through a Prompter so tests (and the non-interactive
case) can swap the terminal for a scripted input source. Retry loops are
bounded by ``max_attempts`` when one is given, unbounded otherwise.
"""

from __future__ import annotations

import itertools
import subprocess
import sys
from collections.abc import Callable, Iterator
from enum import Enum

from rich.console import Console
from rich.markup import escape

from .core import CredentialError, NoTTYError
from .credentials import Plaintext, SshKey

Reader = Callable[[str], str]


class KeyCheck(Enum):
    """Result of probing an SSH key passphrase."""

    GOOD = "good"
    BAD = "bad"
    UNKNOWN = "unknown"


def probe_ssh_passphrase(key_path: str, passphrase: str) -> KeyCheck:
    """Best-effort check of a passphrase against a private key.

    Asks ``ssh-keygen`` to derive the public key. UNKNOWN means the probe
    itself could not run.
    """
    try:
        result = subprocess.run(
            ["ssh-keygen", "-y", "-P", passphrase, "-f", key_path],
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            timeout=10,
            check=False,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        return KeyCheck.UNKNOWN

    if result.returncode == 0 and result.stdout.strip():
        return KeyCheck.GOOD
    return KeyCheck.BAD


class Prompter:
    """Asks the operator for secrets and choices."""

    def __init__(
        self,
        console: Console | None = None,
        read_secret: Reader | None = None,
        read_line: Reader | None = None,
        interactive: bool | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self.console = console or Console()
        self._read_secret = read_secret or (lambda prompt: self.console.input(prompt, password=True))
        self._read_line = read_line or (lambda prompt: self.console.input(prompt))
        self.interactive = sys.stdin.isatty() if interactive is None else interactive
        self.max_attempts = max_attempts

    def _attempts(self, what: str) -> Iterator[int]:
        if not self.interactive:
            raise NoTTYError(what)
        if self.max_attempts is None:
            yield from itertools.count(1)
        else:
            yield from range(1, self.max_attempts + 1)
        raise CredentialError(f"Gave up asking for {what} after {self.max_attempts} attempts")

    def line(self, prompt: str, what: str = "input") -> str:
        """Read one visible line."""
        if not self.interactive:
            raise NoTTYError(what)
        return self._read_line(prompt)

    def confirmed_secret(self, prompt: str, required: bool, what: str) -> str:
        """Read a secret twice until both entries match.

        A blank value is refused when ``required`` is set.
        """
        for _ in self._attempts(what):
            value = self._read_secret(prompt)
            confirm = self._read_secret("Confirm: ")
            if value != confirm:
                self.console.print("[yellow]Passwords must match[/yellow]")
                continue
            if required and not value:
                self.console.print("[yellow]Info required.[/yellow]")
                continue
            return value

    def plaintext(self, user: str, url: str) -> Plaintext:
        """Ask for the password of ``user`` at ``url``."""
        self.console.print(f'\nAuthenticating user "{escape(user)}" at "{escape(url)}":')
        secret = self.confirmed_secret("Password: ", required=True, what=f"password for {url}")
        return Plaintext(secret)

    def ssh_key(self, url: str, default_key: str, choices: list[SshKey]) -> SshKey:
        """Pick one of the pre-verified keys or enter a passphrase for the default key."""
        if choices:
            chosen = self._choose_key(url, default_key, choices)
            if chosen is not None:
                return chosen
        return SshKey(default_key, self._ssh_passphrase(default_key))

    def _choose_key(self, url: str, default_key: str, choices: list[SshKey]) -> SshKey | None:
        self.console.print(f"\nSelect an ssh key for [cyan]{escape(url)}[/cyan]:")
        for number, key in enumerate(choices, 1):
            self.console.print(f"  {number}) {escape(key.key_path)}")
        other = len(choices) + 1
        self.console.print(f"  {other}) enter a passphrase for {escape(default_key)}")

        for _ in self._attempts(f"ssh key for {url}"):
            answer = self._read_line(f"Choice [1-{other}]: ").strip()
            if answer.isdigit() and 1 <= int(answer) <= other:
                number = int(answer)
                return None if number == other else choices[number - 1]
            self.console.print(f"[yellow]Enter a number between 1 and {other}[/yellow]")

    def _ssh_passphrase(self, key_path: str) -> str | None:
        prompt = f"Enter passphrase for private key {key_path} (or enter for blank): "
        for _ in self._attempts(f"passphrase for {key_path}"):
            value = self._read_secret(prompt)
            if not value:
                return None
            if self._read_secret("Confirm: ") == value:
                return value
            self.console.print("[yellow]Passphrases must match[/yellow]")

    def verified_passphrase(
        self,
        key_path: str,
        verify: Callable[[str, str], KeyCheck] | None = None,
    ) -> str | None:
        """Ask for a key's passphrase until the probe accepts it.

        When the probe cannot run, a matching confirmation is accepted
        instead.
        """
        verify = verify or probe_ssh_passphrase
        prompt = f"Enter password for ssh key {key_path} (blank for none): "
        for _ in self._attempts(f"passphrase for {key_path}"):
            value = self._read_secret(prompt)
            check = verify(key_path, value)
            if check is KeyCheck.GOOD:
                return value or None
            if check is KeyCheck.BAD:
                self.console.print(f"[red]Passphrase rejected for {escape(key_path)}[/red]")
                continue
            if self._read_secret("Confirm: ") == value:
                return value or None
            self.console.print("[yellow]Passphrases must match[/yellow]")
