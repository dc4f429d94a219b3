"""Git provider used by update mode to fetch the latest source."""
from __future__ import annotations

import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path


class GitError(RuntimeError):
    """Raised when git operations fail."""


@dataclass(slots=True)
class GitProvider:
    """Wrap the handful of git commands stackctl needs."""

    repo_dir: Path
    git_bin: str = "git"

    def remote_url(self, remote: str) -> str | None:
        """Return the URL configured for *remote*, or ``None`` when absent."""
        result = self._git(["remote", "get-url", remote], check=False)
        if result.returncode != 0:
            return None
        url = (result.stdout or "").strip()
        return url or None

    def remote_configured(self, remote: str) -> bool:
        """Return ``True`` when *remote* exists in the repository."""
        return self.remote_url(remote) is not None

    def pull(self, remote: str, branch: str) -> subprocess.CompletedProcess[str]:
        """Pull *branch* from *remote* into the current checkout."""
        return self._git(["pull", remote, branch])

    def _git(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        command = [self.git_bin, *args]
        try:
            result = subprocess.run(  # noqa: S603
                command,
                capture_output=True,
                text=True,
                check=False,
                cwd=self.repo_dir,
            )
        except FileNotFoundError as exc:
            raise GitError(f"{self.git_bin} not found: {exc}") from exc
        if check and result.returncode != 0:
            message = (result.stderr or result.stdout or "").strip() or "no output"
            joined = " ".join(args)
            raise GitError(f"{self.git_bin} {joined} failed (exit {result.returncode}): {message}")
        return result


__all__ = ["GitError", "GitProvider"]
