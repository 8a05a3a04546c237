"""Command implementations for the upgit CLI."""
