"""Provider interfaces for stackctl."""
from __future__ import annotations

from .compose import ComposeError, ComposeProvider
from .git import GitError, GitProvider

__all__ = [
    "ComposeError",
    "ComposeProvider",
    "GitError",
    "GitProvider",
]
