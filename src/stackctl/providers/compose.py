"""Docker Compose provider used by every lifecycle operation."""
from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

LOGGER = logging.getLogger(__name__)


class ComposeError(RuntimeError):
    """Raised when docker or docker compose operations fail."""


@dataclass(slots=True)
class ComposeProvider:
    """Thin wrapper around the ``docker`` and ``docker compose`` CLIs."""

    project_dir: Path
    docker_bin: str = "docker"

    # ------------------------------------------------------------------
    # Runtime inspection (read-only)
    # ------------------------------------------------------------------
    def info(self) -> subprocess.CompletedProcess[str]:
        """Return ``docker info`` output, raising when the daemon is unreachable."""
        return self._docker(["info"])

    def version(self) -> str:
        """Return the compose plugin version string (without a leading ``v``)."""
        result = self._compose(["version", "--short"])
        output = (result.stdout or "").strip()
        if not output:
            raise ComposeError("docker compose version returned no output")
        return output.lstrip("v")

    def image_repositories(self) -> list[str]:
        """Return the repository names present in the local image cache."""
        result = self._docker(["images", "--format", "{{.Repository}}"])
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]

    def image_exists(self, marker: str) -> bool:
        """Return ``True`` when any cached image repository contains *marker*."""
        return any(marker in repository for repository in self.image_repositories())

    def running_services(self) -> list[str]:
        """Return the compose services currently reported as running."""
        result = self._compose(["ps", "--services", "--filter", "status=running"])
        return [line.strip() for line in (result.stdout or "").splitlines() if line.strip()]

    def ps(self) -> subprocess.CompletedProcess[str]:
        """Return the tabular ``docker compose ps`` output."""
        return self._compose(["ps"])

    def logs(self, service: str) -> subprocess.CompletedProcess[str]:
        """Return the accumulated log output for *service*."""
        return self._compose(["logs", "--no-color", service], check=False)

    # ------------------------------------------------------------------
    # Lifecycle operations (mutating)
    # ------------------------------------------------------------------
    def build(
        self,
        services: Sequence[str] = (),
        *,
        dry_run: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        """Build images for *services* (all services when empty)."""
        return self._compose(["build", *services], capture_output=False, dry_run=dry_run)

    def up(self, services: Sequence[str] = ()) -> subprocess.CompletedProcess[str]:
        """Start *services* detached (all services when empty)."""
        return self._compose(["up", "-d", *services])

    def down(self, *, volumes: bool = False) -> subprocess.CompletedProcess[str]:
        """Stop and remove every container, optionally deleting named volumes."""
        args = ["down"]
        if volumes:
            args.append("--volumes")
        return self._compose(args)

    def stop(self, services: Sequence[str]) -> subprocess.CompletedProcess[str]:
        """Stop the given *services* without removing them."""
        return self._compose(["stop", *services])

    def restart(self, services: Sequence[str]) -> subprocess.CompletedProcess[str]:
        """Restart *services*."""
        return self._compose(["restart", *services])

    def exec(
        self,
        service: str,
        command: Sequence[str],
        *,
        check: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        """Run *command* inside the running *service* container (no TTY)."""
        return self._compose(["exec", "-T", service, *command], check=check)

    def run(
        self,
        service: str,
        command: Sequence[str],
        *,
        check: bool = True,
        capture_output: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Run *command* in a one-off container for *service*."""
        return self._compose(
            ["run", "--rm", service, *command],
            check=check,
            capture_output=capture_output,
        )

    # ------------------------------------------------------------------
    def _docker(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        command = [self.docker_bin, *args]
        return self._run_command(
            command,
            check=check,
            error_prefix=f"{self.docker_bin} {args[0]}",
            capture_output=True,
            dry_run=False,
        )

    def _compose(
        self,
        args: Sequence[str],
        *,
        check: bool = True,
        capture_output: bool = True,
        dry_run: bool = False,
    ) -> subprocess.CompletedProcess[str]:
        command = [self.docker_bin, "compose", *args]
        return self._run_command(
            command,
            check=check,
            error_prefix=f"{self.docker_bin} compose {args[0]}",
            capture_output=capture_output,
            dry_run=dry_run,
        )

    def _run_command(
        self,
        args: Sequence[str],
        *,
        check: bool,
        error_prefix: str,
        capture_output: bool,
        dry_run: bool,
    ) -> subprocess.CompletedProcess[str]:
        if dry_run:
            LOGGER.debug("dry-run: %s", " ".join(args))
            return subprocess.CompletedProcess(
                list(args),
                returncode=0,
                stdout="",
                stderr="",
            )
        LOGGER.debug("running: %s", " ".join(args))
        try:
            if capture_output:
                result = subprocess.run(  # noqa: S603
                    list(args),
                    capture_output=True,
                    text=True,
                    check=False,
                    cwd=self.project_dir,
                )
            else:
                result = subprocess.run(  # noqa: S603
                    list(args),
                    text=True,
                    check=False,
                    cwd=self.project_dir,
                )
        except FileNotFoundError as exc:
            raise ComposeError(f"{args[0]} not found: {exc}") from exc
        if check and result.returncode != 0:
            stdout = getattr(result, "stdout", "") or ""
            stderr = getattr(result, "stderr", "") or ""
            message = stderr.strip() or stdout.strip() or "no output"
            raise ComposeError(f"{error_prefix} failed (exit {result.returncode}): {message}")
        return result


__all__ = ["ComposeError", "ComposeProvider"]
