"""Error taxonomy surfaced by the orchestration workflow.

Checker-phase errors (usage, environment, directory, configuration) are raised
before any mutating command runs. Controller-phase errors are raised after the
first mutating command and halt the remaining sequence without rollback.
"""
from __future__ import annotations

from collections.abc import Sequence

from .exit_codes import ExitCode


class StackctlError(RuntimeError):
    """Base class for fatal orchestration errors."""

    exit_code: ExitCode = ExitCode.PROVIDER

    def __init__(
        self,
        message: str,
        *,
        step: str | None = None,
        remediation: str | None = None,
    ) -> None:
        """Store the failure message, the failing step, and a remediation hint."""
        super().__init__(message)
        self.message = message
        self.step = step
        self.remediation = remediation


class UsageError(StackctlError):
    """Raised for invalid command line input."""

    exit_code = ExitCode.VALIDATION


class EnvironmentNotReadyError(StackctlError):
    """Raised when the container runtime or a required service is unreachable."""

    exit_code = ExitCode.ENVIRONMENT


class WrongDirectoryError(StackctlError):
    """Raised when the working directory is not the expected project root."""

    exit_code = ExitCode.ENVIRONMENT


class MissingConfigError(StackctlError):
    """Raised when one or more configuration artifacts are absent."""

    exit_code = ExitCode.ENVIRONMENT

    def __init__(
        self,
        missing: Sequence[str],
        *,
        step: str | None = None,
        remediation: str | None = None,
    ) -> None:
        """Record every missing artifact path."""
        self.missing = tuple(missing)
        count = len(self.missing)
        super().__init__(
            f"{count} configuration artifact(s) missing: {', '.join(self.missing)}",
            step=step,
            remediation=remediation,
        )


class ReadinessTimeoutError(StackctlError):
    """Raised when a mandatory readiness target never became ready."""


class ReadinessCancelledError(StackctlError):
    """Raised when the operator interrupts a readiness poll."""

    exit_code = ExitCode.CANCELLED


class ServiceControlError(StackctlError):
    """Raised when a lifecycle operation against the compose runtime fails."""


class DatabaseInitError(StackctlError):
    """Raised when database creation, seeding, or migration fails."""


class DependencyInstallError(StackctlError):
    """Raised when a package-manager install fails."""


class SourceUpdateError(StackctlError):
    """Raised when pulling the latest source code fails."""


__all__ = [
    "DatabaseInitError",
    "DependencyInstallError",
    "EnvironmentNotReadyError",
    "MissingConfigError",
    "ReadinessCancelledError",
    "ReadinessTimeoutError",
    "ServiceControlError",
    "SourceUpdateError",
    "StackctlError",
    "UsageError",
    "WrongDirectoryError",
]
