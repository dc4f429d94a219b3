"""Tests for the git provider."""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from stackctl.providers.git import GitError, GitProvider

if TYPE_CHECKING:
    from conftest import FakeShell


def test_remote_url_returns_none_when_missing(shell: FakeShell, tmp_path: Path) -> None:
    """An unknown remote is reported as ``None`` rather than an error."""
    shell.when("git", "remote", "get-url", "personal", returncode=2, stderr="No such remote")
    provider = GitProvider(repo_dir=tmp_path)

    assert provider.remote_url("personal") is None
    assert provider.remote_configured("personal") is False


def test_remote_url_strips_output(shell: FakeShell, tmp_path: Path) -> None:
    """A configured remote yields its URL."""
    provider = GitProvider(repo_dir=tmp_path)

    assert provider.remote_url("personal") == "git@github.com:dev/canvas-lms.git"
    assert provider.remote_configured("personal") is True


def test_pull_invokes_git(shell: FakeShell, tmp_path: Path) -> None:
    """``pull`` fetches the requested branch from the remote."""
    provider = GitProvider(repo_dir=tmp_path, git_bin="git")

    provider.pull("personal", "master")

    assert shell.calls[-1] == ["git", "pull", "personal", "master"]


def test_pull_failure_raises(shell: FakeShell, tmp_path: Path) -> None:
    """A failed pull raises :class:`GitError` with git's message."""
    shell.when("git", "pull", returncode=1, stderr="CONFLICT (content): Merge conflict\n")
    provider = GitProvider(repo_dir=tmp_path)

    with pytest.raises(GitError, match="Merge conflict"):
        provider.pull("personal", "master")


def test_missing_binary(shell: FakeShell, tmp_path: Path) -> None:
    """A missing git binary raises :class:`GitError`."""
    provider = GitProvider(repo_dir=tmp_path)

    shell.raise_missing("git")
    with pytest.raises(GitError, match="git not found"):
        provider.remote_url("personal")
