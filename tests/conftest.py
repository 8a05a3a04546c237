"""Shared fixtures for upgit tests."""

from __future__ import annotations

import io
from pathlib import Path

import pygit2
import pytest
from rich.console import Console

from upgit import config as config_module
from upgit.commands import config_cmd
from upgit.prompts import Prompter


class ScriptedInput:
    """Answers prompts from a fixed list and records what was asked."""

    def __init__(self, answers: list[str] | None = None) -> None:
        self.answers = list(answers or [])
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.answers:
            raise AssertionError(f"Unexpected prompt: {prompt!r}")
        return self.answers.pop(0)


class FakeTerminal:
    """Scripted secrets and lines behind a Prompter with a captured console."""

    def __init__(self, secrets: list[str] | None = None, lines: list[str] | None = None) -> None:
        self.output = io.StringIO()
        self.secrets = ScriptedInput(secrets)
        self.lines = ScriptedInput(lines)
        self.prompter = Prompter(
            console=Console(file=self.output, width=200),
            read_secret=self.secrets,
            read_line=self.lines,
            interactive=True,
        )

    @property
    def prompt_count(self) -> int:
        return len(self.secrets.prompts) + len(self.lines.prompts)

    @property
    def text(self) -> str:
        return self.output.getvalue()


@pytest.fixture
def terminal() -> FakeTerminal:
    """A terminal with no scripted answers: any prompt fails the test."""
    return FakeTerminal()


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the config file at a temp dir and clear UPGIT_* variables."""
    config_file = tmp_path / "config" / "config.toml"
    monkeypatch.setattr(config_module, "CONFIG_FILE", config_file)
    monkeypatch.setattr(config_cmd, "CONFIG_FILE", config_file)
    config_module.invalidate_config_cache()
    for name in (
        config_module.ENV_GIT_DIRS,
        config_module.ENV_SSH,
        config_module.ENV_PLAIN,
        config_module.ENV_DEFAULT_SSH,
        config_module.ENV_DEFAULT_PLAIN,
        config_module.ENV_SHARE,
        config_module.ENV_JOBS,
    ):
        monkeypatch.delenv(name, raising=False)
    yield config_file
    config_module.invalidate_config_cache()


SIGNATURE = pygit2.Signature("Test User", "test@example.com")


def commit_file(repo: pygit2.Repository, name: str, content: str, message: str) -> pygit2.Oid:
    """Write a file, stage it and commit it on HEAD."""
    (Path(repo.workdir) / name).write_text(content)
    repo.index.add(name)
    repo.index.write()
    tree = repo.index.write_tree()
    parents = [] if repo.head_is_unborn else [repo.head.target]
    return repo.create_commit("HEAD", SIGNATURE, SIGNATURE, message, tree, parents)


def configure_user(repo: pygit2.Repository) -> None:
    repo.config["user.name"] = "Test User"
    repo.config["user.email"] = "test@example.com"


@pytest.fixture
def upstream(tmp_path: Path) -> tuple[pygit2.Repository, Path]:
    """A working repository pushing to a bare remote, with one commit on main."""
    bare_path = tmp_path / "remote.git"
    pygit2.init_repository(str(bare_path), bare=True, initial_head="main")

    seed = pygit2.init_repository(str(tmp_path / "seed"), initial_head="main")
    configure_user(seed)
    commit_file(seed, "README.md", "# Test Repo\n", "Initial commit")
    seed.remotes.create("origin", str(bare_path))
    seed.remotes["origin"].push(["refs/heads/main:refs/heads/main"])
    return seed, bare_path


def push(repo: pygit2.Repository) -> None:
    repo.remotes["origin"].push(["refs/heads/main:refs/heads/main"])


@pytest.fixture
def clones_dir(tmp_path: Path) -> Path:
    path = tmp_path / "clones"
    path.mkdir()
    return path


@pytest.fixture
def clone(upstream: tuple[pygit2.Repository, Path], clones_dir: Path) -> pygit2.Repository:
    """A clone of the upstream remote, tracking origin/main."""
    _, bare_path = upstream
    repo = pygit2.clone_repository(str(bare_path), str(clones_dir / "project"))
    configure_user(repo)
    return repo
