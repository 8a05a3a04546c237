"""Remote URL parsing.

Turns a remote URL into the identity used to pool credentials. Two forms
are understood:

- SSH shorthand: ``user@host:org/path/repo.git``
- Anything else is parsed as a URL. Input without a scheme gets the
  ``unknown://`` sentinel scheme so the generic parser can split it.
"""

from __future__ import annotations

import re
import urllib.parse
from dataclasses import dataclass

from .core import UrlParseError

SSH_SHORTHAND_SCHEME = "git"
UNKNOWN_SCHEME = "unknown"

_SSH_SHORTHAND = re.compile(r"^(?P<user>[^@/:]+)@(?P<host>[^:/]+):(?P<path>.*)$")


@dataclass(frozen=True)
class RepositoryIdentity:
    """Structured identity of a remote repository.

    Attributes:
        scheme: URL scheme, ``git`` for SSH shorthand
        username: User part of the URL, empty when absent
        domain: Host (with port, if any)
        organization: Every path segment but the last, joined by ``/``
        repository: Last path segment
    """

    scheme: str
    username: str
    domain: str
    organization: str
    repository: str

    @property
    def key(self) -> str:
        """Credential pool key: scheme, user and domain."""
        return f"{self.scheme}://{self.username}@{self.domain}"


def _split_path(path: str) -> tuple[str, str]:
    segments = [s for s in path.split("/") if s]
    if not segments:
        return "", ""
    return "/".join(segments[:-1]), segments[-1]


def parse_remote_url(url: str) -> RepositoryIdentity:
    """Parse a remote URL into a RepositoryIdentity.

    Raises:
        UrlParseError: The URL has no host part.
    """
    url = url.strip()

    if "://" not in url:
        match = _SSH_SHORTHAND.match(url)
        if match:
            organization, repository = _split_path(match.group("path"))
            return RepositoryIdentity(
                scheme=SSH_SHORTHAND_SCHEME,
                username=match.group("user"),
                domain=match.group("host"),
                organization=organization,
                repository=repository,
            )
        url = f"{UNKNOWN_SCHEME}://{url}"

    parsed = urllib.parse.urlsplit(url)
    userinfo, _, domain = parsed.netloc.rpartition("@")
    if not domain:
        raise UrlParseError(url)

    organization, repository = _split_path(parsed.path)
    return RepositoryIdentity(
        scheme=parsed.scheme,
        username=urllib.parse.unquote(userinfo.partition(":")[0]),
        domain=domain,
        organization=organization,
        repository=repository,
    )
