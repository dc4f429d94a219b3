"""Read-only precondition checks executed before any mutating step."""
from __future__ import annotations

import os
import pwd
import re
from dataclasses import dataclass
from pathlib import Path

from packaging.version import InvalidVersion, Version

from .config import AppConfig
from .errors import EnvironmentNotReadyError, MissingConfigError, WrongDirectoryError
from .providers.compose import ComposeError, ComposeProvider

_RELEASE_RE = re.compile(r"\d+(?:\.\d+)*")


@dataclass(slots=True, frozen=True)
class ArtifactStatus:
    """Presence of a single configuration artifact."""

    name: str
    label: str
    path: Path
    present: bool


@dataclass(slots=True)
class PreconditionChecker:
    """Verify the host and working directory can run the environment."""

    config: AppConfig
    compose: ComposeProvider

    def check_runtime(self) -> str:
        """Ensure the container runtime is reachable and compose is supported.

        Returns the detected compose version.
        """
        try:
            self.compose.info()
        except ComposeError as exc:
            raise EnvironmentNotReadyError(
                f"Docker is not running: {exc}",
                remediation="Start it with: sudo systemctl start docker",
            ) from exc

        install_hint = "Install: sudo apt install docker-compose-plugin"
        try:
            raw_version = self.compose.version()
        except ComposeError as exc:
            raise EnvironmentNotReadyError(
                f"Docker Compose v2 not found: {exc}",
                remediation=install_hint,
            ) from exc
        minimum = Version(self.config.compose.min_version)
        try:
            detected = Version(_release_part(raw_version))
        except InvalidVersion as exc:
            raise EnvironmentNotReadyError(
                f"Unrecognised Docker Compose version '{raw_version}'.",
                remediation=install_hint,
            ) from exc
        if detected < minimum:
            raise EnvironmentNotReadyError(
                f"Docker Compose {detected} is older than the required {minimum}.",
                remediation=install_hint,
            )
        return str(detected)

    def check_project_root(self) -> Path:
        """Ensure the working directory is the expected project root."""
        root = self.config.project_root
        compose_file = root / self.config.compose.compose_file
        marker = root / self.config.project.marker_file
        hint = "Run this command from the project root directory."
        if not compose_file.is_file():
            raise WrongDirectoryError(f"{compose_file} not found.", remediation=hint)
        try:
            content = marker.read_text(encoding="utf-8", errors="replace")
        except OSError as exc:
            raise WrongDirectoryError(f"Unable to read {marker}: {exc}", remediation=hint) from exc
        if self.config.project.marker_text not in content:
            raise WrongDirectoryError(
                f"{marker.name} does not mention '{self.config.project.marker_text}'.",
                remediation=hint,
            )
        return root

    def inspect_artifacts(self) -> list[ArtifactStatus]:
        """Return the presence of every required configuration artifact."""
        root = self.config.project_root
        statuses: list[ArtifactStatus] = []
        for name, relative in self.config.project.required_configs:
            path = root / relative
            statuses.append(
                ArtifactStatus(name=name, label=relative, path=path, present=path.is_file())
            )
        return statuses

    def check_config_artifacts(self) -> list[ArtifactStatus]:
        """Fail with every missing artifact listed at once."""
        statuses = self.inspect_artifacts()
        missing = [status for status in statuses if not status.present]
        if missing:
            raise MissingConfigError(
                [status.label for status in missing],
                remediation=f"See {self.config.project.setup_docs} for setup instructions.",
            )
        return statuses

    def inspect_git_ownership(self) -> str | None:
        """Return a warning when ``.git`` is not owned by the invoking user."""
        git_dir = self.config.project_root / ".git"
        if not git_dir.is_dir():
            return None
        owner = _user_name(git_dir.stat().st_uid)
        current = _user_name(os.getuid())
        if owner == current:
            return None
        return (
            f".git is owned by '{owner}', not '{current}'. "
            f"Fix with: sudo chown -R {current}:{current} .git"
        )


def _release_part(raw: str) -> str:
    # Docker Desktop reports versions such as "2.24.6-desktop.1".
    match = _RELEASE_RE.match(raw.strip())
    return match.group(0) if match else raw


def _user_name(uid: int) -> str:
    try:
        return pwd.getpwuid(uid).pw_name
    except KeyError:
        return str(uid)


__all__ = ["ArtifactStatus", "PreconditionChecker"]
