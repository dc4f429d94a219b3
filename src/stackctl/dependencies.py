"""Install backend and frontend dependencies inside the application service."""
from __future__ import annotations

from dataclasses import dataclass

from .config import DependenciesConfig
from .errors import DependencyInstallError
from .providers.compose import ComposeError, ComposeProvider


@dataclass(slots=True)
class DependencyInstaller:
    """Delegate installs to the package managers inside a one-off container."""

    compose: ComposeProvider
    config: DependenciesConfig
    app_service: str

    def install_backend(self) -> None:
        """Install backend packages (``bundle install`` by default)."""
        self._install("backend", self.config.backend_command)

    def install_frontend(self) -> None:
        """Install frontend packages (``yarn install`` by default)."""
        self._install("frontend", self.config.frontend_command)

    def _install(self, kind: str, command: tuple[str, ...]) -> None:
        try:
            self.compose.run(self.app_service, command, capture_output=False)
        except ComposeError as exc:
            raise DependencyInstallError(
                f"{kind.capitalize()} dependency install failed: {exc}",
                remediation=f"Retry manually with: docker compose run --rm {self.app_service} "
                + " ".join(command),
            ) from exc


__all__ = ["DependencyInstaller"]
