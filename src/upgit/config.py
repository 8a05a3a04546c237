"""Configuration management for upgit.

Handles loading and saving user configuration from config.toml and
merging it with environment variables and command-line values.
Precedence: command line > environment > config file > defaults.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .core import CONFIG_DIR, DEFAULT_SSH_KEY, ConfigError, expand_path, split_env_list
from .credentials import SharePolicy

CONFIG_FILE = CONFIG_DIR / "config.toml"

# Default configuration values
DEFAULTS: dict[str, Any] = {
    "parallel": {
        "jobs": 8,  # Number of clones updated at once
    },
    "credentials": {
        "share": "duplicate",  # never, defaults, duplicate, organization, identity
        "ssh_key": DEFAULT_SSH_KEY,  # Key used when nothing else is configured
    },
    "display": {
        "verbose": False,  # Print each clone's outcome as it completes
    },
}

ENV_GIT_DIRS = "UPGIT_GIT_DIRS"
ENV_SSH = "UPGIT_SSH"
ENV_PLAIN = "UPGIT_PLAIN"
ENV_DEFAULT_SSH = "UPGIT_DEFAULT_SSH"
ENV_DEFAULT_PLAIN = "UPGIT_DEFAULT_PLAIN"
ENV_SHARE = "UPGIT_SHARE"
ENV_JOBS = "UPGIT_JOBS"


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dictionaries, with override taking precedence."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _get_config_mtime() -> float | None:
    """Get config file modification time for cache invalidation."""
    try:
        return CONFIG_FILE.stat().st_mtime if CONFIG_FILE.exists() else None
    except OSError:
        return None


_cached_config: dict[str, Any] | None = None
_cached_mtime: float | None = None


def load_config() -> dict[str, Any]:
    """Load configuration from config.toml, merged with defaults.

    Uses caching - config is only re-read if the file has been modified.

    Raises:
        ConfigError: The file exists but is not valid TOML.
    """
    global _cached_config, _cached_mtime

    current_mtime = _get_config_mtime()

    if _cached_config is not None and _cached_mtime == current_mtime:
        return _cached_config

    config = _deep_merge(DEFAULTS, {})

    if CONFIG_FILE.exists():
        try:
            with open(CONFIG_FILE, "rb") as f:
                user_config = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Malformed config file {CONFIG_FILE}: {e}")
        config = _deep_merge(DEFAULTS, user_config)

    _cached_config = config
    _cached_mtime = current_mtime

    return config


def invalidate_config_cache() -> None:
    """Invalidate the config cache (call after saving config)."""
    global _cached_config, _cached_mtime
    _cached_config = None
    _cached_mtime = None


def save_config(config: dict[str, Any]) -> Path:
    """Save configuration to config.toml."""
    import tomlkit

    CONFIG_FILE.parent.mkdir(parents=True, exist_ok=True)

    doc = tomlkit.document()
    doc.add(tomlkit.comment("upgit configuration file"))
    doc.add(tomlkit.comment("Secrets are never stored here; upgit asks for them at start-up."))
    doc.add(tomlkit.nl())

    for section, values in config.items():
        if isinstance(values, dict):
            table = tomlkit.table()
            for key, value in values.items():
                table.add(key, value)
            doc.add(section, table)
        else:
            doc.add(section, values)

    with open(CONFIG_FILE, "w", encoding="utf-8") as f:
        f.write(tomlkit.dumps(doc))

    invalidate_config_cache()
    return CONFIG_FILE


def get_config_value(key_path: str, default: Any = None) -> Any:
    """Get a specific config value by dot-separated path.

    Example: get_config_value("parallel.jobs", 8)
    """
    value: Any = load_config()
    for key in key_path.split("."):
        if isinstance(value, dict) and key in value:
            value = value[key]
        else:
            return default
    return value


def init_config() -> Path:
    """Initialize config file with defaults if it doesn't exist.

    Returns path to config file.
    """
    if not CONFIG_FILE.exists():
        save_config(DEFAULTS)
    return CONFIG_FILE


@dataclass
class Settings:
    """Everything a pull run needs, secrets excepted."""

    git_dirs: list[Path] = field(default_factory=list)
    ssh_keys: list[str] = field(default_factory=list)
    plain_urls: list[str] = field(default_factory=list)
    default_ssh: bool = False
    default_plain: bool = False
    share: SharePolicy = SharePolicy.DUPLICATE
    ssh_key: str = DEFAULT_SSH_KEY
    jobs: int = 8
    verbose: bool = False


def _parse_jobs(value: Any) -> int:
    try:
        jobs = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"Invalid job count {value!r}")
    if jobs < 1:
        raise ConfigError(f"Job count must be at least 1, got {jobs}")
    return jobs


def resolve_settings(
    git_dirs: list[str] | None = None,
    ssh_keys: list[str] | None = None,
    plain_urls: list[str] | None = None,
    default_ssh: bool = False,
    default_plain: bool = False,
    share: str | None = None,
    jobs: int | None = None,
    verbose: bool = False,
    environ: dict[str, str] | None = None,
) -> Settings:
    """Merge command-line values over the environment and the config file.

    Boolean environment switches count as set whatever their value.
    """
    env = os.environ if environ is None else environ

    dirs = git_dirs or split_env_list(env.get(ENV_GIT_DIRS))
    share_name = share or env.get(ENV_SHARE) or get_config_value("credentials.share", "duplicate")
    jobs_value = jobs if jobs is not None else env.get(ENV_JOBS) or get_config_value("parallel.jobs", 8)

    return Settings(
        git_dirs=[expand_path(d) for d in dirs],
        ssh_keys=list(ssh_keys or split_env_list(env.get(ENV_SSH))),
        plain_urls=list(plain_urls or split_env_list(env.get(ENV_PLAIN))),
        default_ssh=default_ssh or ENV_DEFAULT_SSH in env,
        default_plain=default_plain or ENV_DEFAULT_PLAIN in env,
        share=SharePolicy.from_name(str(share_name)),
        ssh_key=str(get_config_value("credentials.ssh_key", DEFAULT_SSH_KEY)),
        jobs=_parse_jobs(jobs_value),
        verbose=verbose or bool(get_config_value("display.verbose", False)),
    )
