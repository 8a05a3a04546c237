"""Core definitions for upgit.

This module holds the paths, the exception hierarchy and the small
helpers shared by the credential broker, the update tasks and the CLI.
"""

import os
from pathlib import Path

# XDG Base Directory paths
CONFIG_DIR = Path(os.getenv("XDG_CONFIG_HOME", Path.home() / ".config")) / "upgit"

DEFAULT_SSH_KEY = "~/.ssh/id_rsa"


class UpgitError(Exception):
    """Custom exception for upgit operations."""

    pass


class UrlParseError(UpgitError):
    """Remote URL has no recognizable user/host part."""

    def __init__(self, url: str) -> None:
        super().__init__(f"Unable to parse remote url: {url!r}")
        self.url = url


class CredentialError(UpgitError):
    """No credential could be negotiated for a remote."""

    pass


class NoTTYError(CredentialError):
    """A prompt was needed but no terminal is attached."""

    def __init__(self, what: str) -> None:
        super().__init__(f"Cannot prompt for {what}: no TTY available")
        self.what = what


class ConfigError(UpgitError):
    """Invalid configuration value."""

    pass


def expand_path(path: str | Path) -> Path:
    """Expand ~ and make a path absolute without resolving symlinks"""
    return Path(os.path.abspath(os.path.expanduser(str(path))))


def split_env_list(value: str | None) -> list[str]:
    """Split a comma separated environment value, dropping empty items"""
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]
