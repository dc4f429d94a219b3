"""Service lifecycle controller built on the compose provider."""
from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum

from .config import ServicesConfig
from .errors import ServiceControlError
from .providers.compose import ComposeError, ComposeProvider

LOGGER = logging.getLogger(__name__)

LOGICAL_SERVICES: tuple[str, ...] = ("web", "jobs", "assets", "database", "cache")


class DataPolicy(str, Enum):
    """What happens to persisted volumes when services are stopped."""

    PRESERVE = "preserve-data"
    PURGE = "purge-data"


@dataclass(slots=True, frozen=True)
class ServiceSet:
    """Logical services and the compose identities they map to."""

    web: str = "web"
    jobs: str = "jobs"
    assets: str = "webpack"
    database: str = "postgres"
    cache: str = "redis"

    @classmethod
    def from_config(cls, config: ServicesConfig) -> ServiceSet:
        """Build the service set from resolved configuration."""
        return cls(
            web=config.web,
            jobs=config.jobs,
            assets=config.assets,
            database=config.database,
            cache=config.cache,
        )

    def identities(self) -> tuple[str, ...]:
        """Return every compose service identity in declaration order."""
        return tuple(getattr(self, name) for name in LOGICAL_SERVICES)

    def select(self, *names: str) -> tuple[str, ...]:
        """Return compose identities for the logical *names*."""
        unknown = [name for name in names if name not in LOGICAL_SERVICES]
        if unknown:
            raise ValueError(f"Unknown logical service(s): {', '.join(unknown)}")
        return tuple(getattr(self, name) for name in names)


@dataclass(slots=True, frozen=True)
class BuildResult:
    """Outcome of a build request."""

    built: bool
    forced: bool
    detail: str


@dataclass(slots=True)
class ServiceController:
    """Issue build/start/stop/restart operations against the compose runtime."""

    compose: ComposeProvider
    services: ServiceSet
    image_marker: str

    def build(
        self,
        services: Sequence[str] = (),
        *,
        force: bool = False,
        dry_run: bool = False,
    ) -> BuildResult:
        """Build images unless the marker image already exists (or *force* is set)."""
        if not force:
            try:
                present = self.compose.image_exists(self.image_marker)
            except ComposeError as exc:
                raise ServiceControlError(f"Unable to inspect image cache: {exc}") from exc
            if present:
                LOGGER.debug("Image marker %s present, skipping build", self.image_marker)
                return BuildResult(
                    built=False,
                    forced=False,
                    detail=f"image '{self.image_marker}' already exists",
                )
        try:
            self.compose.build(services, dry_run=dry_run)
        except ComposeError as exc:
            raise ServiceControlError(f"Image build failed: {exc}") from exc
        detail = "forced rebuild" if force else f"image '{self.image_marker}' not found"
        return BuildResult(built=True, forced=force, detail=detail)

    def start(self, services: Sequence[str] = ()) -> list[str]:
        """Start *services* and return them once the runtime reports them running."""
        try:
            self.compose.up(services)
        except ComposeError as exc:
            raise ServiceControlError(f"Failed to start services: {exc}") from exc
        requested = list(services) or list(self.services.identities())
        try:
            running = set(self.compose.running_services())
        except ComposeError as exc:
            raise ServiceControlError(f"Unable to query running services: {exc}") from exc
        missing = [service for service in requested if service not in running]
        if missing:
            raise ServiceControlError(
                f"Services not running after start: {', '.join(missing)}",
                remediation="Inspect with: docker compose ps && docker compose logs "
                + " ".join(missing),
            )
        return requested

    def stop(
        self,
        services: Sequence[str] = (),
        *,
        data: DataPolicy = DataPolicy.PRESERVE,
    ) -> None:
        """Stop *services* (all when empty), deleting volumes only for ``PURGE``.

        Named volumes are only removed when the whole project is taken down,
        so ``PURGE`` is rejected for a subset of services.
        """
        purge = data is DataPolicy.PURGE
        if services and purge:
            raise ValueError(
                "Purging data requires stopping every service; "
                f"got a subset: {', '.join(services)}"
            )
        try:
            if not services:
                self.compose.down(volumes=purge)
                return
            self.compose.stop(services)
        except ComposeError as exc:
            raise ServiceControlError(f"Failed to stop services: {exc}") from exc

    def restart(self, services: Sequence[str]) -> None:
        """Restart *services* unconditionally."""
        try:
            self.compose.restart(services)
        except ComposeError as exc:
            raise ServiceControlError(f"Failed to restart services: {exc}") from exc

    def status(self) -> str:
        """Return the human-readable ``docker compose ps`` table."""
        try:
            result = self.compose.ps()
        except ComposeError as exc:
            raise ServiceControlError(f"Unable to query service status: {exc}") from exc
        return (result.stdout or "").rstrip()


__all__ = [
    "BuildResult",
    "DataPolicy",
    "LOGICAL_SERVICES",
    "ServiceController",
    "ServiceSet",
]
