"""upgit - pull every git clone in a set of folders, in parallel.

Credentials are negotiated once and shared between related clones, so
many repositories behind one account cost a single prompt.
"""

from __future__ import annotations


def main() -> None:
    """Entry point for the upgit CLI."""
    # Lazy import for faster startup
    from upgit.cli import app

    app()


__all__ = ["main"]
