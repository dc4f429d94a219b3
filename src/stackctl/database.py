"""Detect, create, and migrate the development database."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .config import DatabaseConfig
from .errors import DatabaseInitError, EnvironmentNotReadyError
from .providers.compose import ComposeError, ComposeProvider

LOGGER = logging.getLogger(__name__)


class BootstrapState(str, Enum):
    """Whether the persistent database schema already exists."""

    ABSENT = "absent"
    PRESENT = "present"


class InitAction(str, Enum):
    """The single database operation performed by :meth:`DatabaseInitializer.initialize`."""

    CREATE_AND_SEED = "create-and-seed"
    MIGRATE = "migrate"


@dataclass(slots=True, frozen=True)
class InitResult:
    """Outcome of an initialization request."""

    state: BootstrapState
    action: InitAction


@dataclass(slots=True)
class DatabaseInitializer:
    """Run database bootstrap commands through the application service."""

    compose: ComposeProvider
    config: DatabaseConfig
    app_service: str
    database_service: str
    database_user: str = "postgres"

    def reachable(self) -> bool:
        """Return ``True`` when the database service accepts connections."""
        try:
            result = self.compose.exec(
                self.database_service, ["pg_isready", "-U", self.database_user]
            )
        except ComposeError as exc:
            LOGGER.debug("Database reachability check failed: %s", exc)
            return False
        return result.returncode == 0

    def detect(self) -> BootstrapState:
        """Probe the live database and classify it as present or absent.

        An unreachable database is reported as an environment problem rather
        than being mistaken for a missing schema.
        """
        if not self.reachable():
            raise EnvironmentNotReadyError(
                f"Database service '{self.database_service}' is not accepting connections.",
                remediation=f"Check it with: docker compose logs {self.database_service}",
            )
        try:
            result = self.compose.run(self.app_service, self.config.detect_command, check=False)
        except ComposeError as exc:
            LOGGER.debug("Schema introspection could not run: %s", exc)
            return BootstrapState.ABSENT
        if result.returncode == 0 and self.config.detect_marker in (result.stdout or ""):
            return BootstrapState.PRESENT
        return BootstrapState.ABSENT

    def initialize(self) -> InitResult:
        """Create and seed an absent database, or migrate an existing one."""
        state = self.detect()
        if state is BootstrapState.ABSENT:
            self.create_and_seed()
            return InitResult(state=state, action=InitAction.CREATE_AND_SEED)
        self.migrate()
        return InitResult(state=state, action=InitAction.MIGRATE)

    def create_and_seed(self) -> None:
        """Create the database and load the initial data set."""
        self._run(self.config.create_command, "Database creation and seeding failed")

    def migrate(self) -> None:
        """Apply pending migrations only."""
        self._run(self.config.migrate_command, "Database migration failed")

    def _run(self, command: tuple[str, ...], failure: str) -> None:
        try:
            self.compose.run(self.app_service, command, capture_output=False)
        except ComposeError as exc:
            raise DatabaseInitError(
                f"{failure}: {exc}",
                remediation="The database may be partially initialized; inspect it before "
                "re-running.",
            ) from exc


__all__ = ["BootstrapState", "DatabaseInitializer", "InitAction", "InitResult"]
