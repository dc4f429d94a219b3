"""Run-mode state machine sequencing the orchestration components.

Each :class:`RunMode` maps to exactly one handler in :data:`MODE_HANDLERS`. A
handler is a fixed, ordered list of steps; the only run-time decisions are the
ones the components make internally (skip an existing image, create versus
migrate the database, tolerate a slow asset compiler). The first failing step
halts the sequence. Nothing already started or migrated is rolled back.
"""
from __future__ import annotations

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from rich.console import Console

from .database import InitAction
from .errors import (
    ReadinessTimeoutError,
    SourceUpdateError,
    StackctlError,
    UsageError,
)
from .providers.git import GitError
from .readiness import ReadinessResult, asset_compiler_target, database_target
from .status import render_status_report

if TYPE_CHECKING:
    from .cli import RuntimeContext
    from .logging import OperationScope


class RunMode(str, Enum):
    """Top-level operation requested for one invocation."""

    FULL = "full"
    START = "start"
    UPDATE = "update"
    REBUILD = "rebuild"

    @property
    def flag(self) -> str | None:
        """Return the command line flag selecting this mode (``None`` for the default)."""
        if self is RunMode.FULL:
            return None
        return f"--{self.value}"

    @property
    def banner(self) -> str:
        """Return the banner printed when the mode starts."""
        return MODE_BANNERS[self]


MODE_BANNERS: dict[RunMode, str] = {
    RunMode.FULL: "Starting full development environment setup",
    RunMode.START: "Starting existing environment",
    RunMode.UPDATE: "Updating environment",
    RunMode.REBUILD: "Rebuilding Docker images",
}

ACCEPTED_MODES = "(no argument) full setup, --start, --update, --rebuild"


def select_mode(*, start: bool = False, update: bool = False, rebuild: bool = False) -> RunMode:
    """Return the single selected mode, defaulting to :attr:`RunMode.FULL`."""
    chosen = [
        mode
        for mode, selected in (
            (RunMode.START, start),
            (RunMode.UPDATE, update),
            (RunMode.REBUILD, rebuild),
        )
        if selected
    ]
    if len(chosen) > 1:
        flags = ", ".join(str(mode.flag) for mode in chosen)
        raise UsageError(
            f"Only one mode may be selected (got {flags}). Accepted: {ACCEPTED_MODES}.",
            step="arguments",
        )
    return chosen[0] if chosen else RunMode.FULL


@dataclass(slots=True)
class StepRecord:
    """Outcome of one orchestration step."""

    name: str
    status: str = "success"
    detail: str | None = None

    def skip(self, detail: str) -> None:
        """Mark the step as skipped."""
        self.status = "skipped"
        self.detail = detail

    def warn(self, detail: str) -> None:
        """Mark the step as completed with a warning."""
        self.status = "warning"
        self.detail = detail


@dataclass(slots=True)
class RunSummary:
    """Steps executed for one invocation plus non-fatal warnings."""

    mode: RunMode
    steps: list[StepRecord] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    readiness: dict[str, ReadinessResult] = field(default_factory=dict)

    def step_names(self) -> list[str]:
        """Return the names of the executed steps in order."""
        return [step.name for step in self.steps]


class Orchestrator:
    """Execute the step sequence for a run mode."""

    def __init__(
        self,
        runtime: RuntimeContext,
        *,
        console: Console,
        op: OperationScope | None = None,
        dry_run: bool = False,
    ) -> None:
        """Bind the runtime collaborators used by the steps."""
        self.runtime = runtime
        self.config = runtime.config
        self.console = console
        self.op = op
        self.dry_run = dry_run
        self.summary = RunSummary(mode=RunMode.FULL)

    def run(self, mode: RunMode) -> RunSummary:
        """Run every step of *mode* in order and return the summary."""
        self.summary = RunSummary(mode=mode)
        self.check_environment()
        self.console.print(f"\n[bold]==> {mode.banner}[/bold]")
        MODE_HANDLERS[mode](self)
        return self.summary

    # ------------------------------------------------------------------
    # Console helpers
    # ------------------------------------------------------------------
    def ok(self, message: str) -> None:
        """Print a success line."""
        self.console.print(f"[green][OK][/green] {message}")

    def info(self, message: str) -> None:
        """Print an informational line."""
        self.console.print(f"[blue][INFO][/blue] {message}")

    def warn(self, message: str) -> None:
        """Print a warning line."""
        self.console.print(f"[yellow][WARN][/yellow] {message}")

    @contextmanager
    def _step(self, name: str, title: str) -> Iterator[StepRecord]:
        record = StepRecord(name=name)
        self.console.print(f"\n[bold]==> {title}[/bold]")
        try:
            yield record
        except StackctlError as exc:
            if exc.step is None:
                exc.step = name
            record.status = "error"
            record.detail = exc.message
            raise
        finally:
            self.summary.steps.append(record)
            if self.op is not None:
                self.op.add_step(name, status=record.status, detail=record.detail)

    def _progress(self, _attempt: int, ready: bool) -> None:
        if not ready:
            self.console.print(".", end="")

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------
    def check_environment(self) -> None:
        """Verify the project root and the container runtime (read-only)."""
        checker = self.runtime.checker
        with self._step("check-environment", "Checking Docker") as step:
            checker.check_project_root()
            version = checker.check_runtime()
            self.ok("Docker is running")
            self.ok(f"Docker Compose v{version} found")
            ownership = checker.inspect_git_ownership()
            if ownership:
                self.warn(ownership)
                self.summary.warnings.append(ownership)
                step.warn(ownership)
            else:
                step.detail = f"compose {version}"

    def check_config(self) -> None:
        """Verify every configuration artifact exists, reporting all missing ones."""
        checker = self.runtime.checker
        with self._step("check-config", "Checking configuration files") as step:
            for artifact in checker.inspect_artifacts():
                if artifact.present:
                    self.ok(artifact.label)
                else:
                    self.warn(f"{artifact.label} is missing")
            statuses = checker.check_config_artifacts()
            step.detail = f"{len(statuses)} artifact(s) present"

    def build_images(self, *, force: bool) -> None:
        """Build images, skipping when the marker image exists unless forced."""
        with self._step("build", "Building Docker images") as step:
            if force:
                self.info("This may take 15-30 minutes...")
            result = self.runtime.controller.build(force=force, dry_run=self.dry_run)
            if not result.built:
                self.info("Docker images already exist, skipping build.")
                self.info("Run with --rebuild to force a rebuild.")
                step.skip(result.detail)
                return
            if self.dry_run:
                step.skip(f"dry-run: would build ({result.detail})")
                self.info(f"Dry run: images would be built ({result.detail}).")
                return
            step.detail = result.detail
            self.ok("Images built")

    def start_services(self) -> None:
        """Start every service and wait for the runtime to report them running."""
        with self._step("start", "Starting all services") as step:
            if self.dry_run:
                step.skip("dry-run")
                self.info("Dry run: services would be started.")
                return
            running = self.runtime.controller.start()
            step.detail = ", ".join(running)
            self.ok("Services started")

    def stop_services(self) -> None:
        """Stop every service, preserving data volumes."""
        with self._step("stop-all", "Stopping all services") as step:
            if self.dry_run:
                step.skip("dry-run")
                self.info("Dry run: services would be stopped.")
                return
            self.runtime.controller.stop()
            self.ok("Services stopped")

    def restart_app(self) -> None:
        """Restart the application and background-job services."""
        services = self.runtime.services.select("web", "jobs")
        with self._step("restart", "Restarting application containers") as step:
            if self.dry_run:
                step.skip("dry-run")
                self.info(f"Dry run: {' '.join(services)} would be restarted.")
                return
            self.runtime.controller.restart(services)
            step.detail = ", ".join(services)
            self.ok("Containers restarted")

    def wait_for_database(self) -> None:
        """Block until the database accepts connections; fatal on timeout."""
        services = self.runtime.services
        probe = self.config.readiness.database
        with self._step("wait-database", "Waiting for PostgreSQL to be ready") as step:
            if self.dry_run:
                step.skip("dry-run")
                return
            target = database_target(self.runtime.compose, services.database, probe)
            try:
                result = self.runtime.prober.wait(target, on_attempt=self._progress)
            finally:
                self.console.print()
            self.summary.readiness[target.name] = result
            if not result.ready:
                raise ReadinessTimeoutError(
                    f"PostgreSQL did not become ready in time ({result.attempts} attempts).",
                    remediation=f"Check it with: docker compose logs {services.database}",
                )
            step.detail = f"ready after {result.attempts} attempt(s)"
            self.ok("PostgreSQL is ready")

    def wait_for_assets(self) -> None:
        """Wait for the asset compiler; a timeout is only a warning."""
        service = self.runtime.services.assets
        probe = self.config.readiness.assets
        with self._step("wait-assets", "Waiting for Webpack to compile assets") as step:
            if self.dry_run:
                step.skip("dry-run")
                return
            self.info("This may take 2-5 minutes on first boot...")
            target = asset_compiler_target(self.runtime.compose, service, probe)
            try:
                result = self.runtime.prober.wait(target, on_attempt=self._progress)
            finally:
                self.console.print()
            self.summary.readiness[target.name] = result
            if not result.ready:
                message = "Webpack hasn't finished yet, the site will load once it does."
                self.warn(message)
                self.info(f"Monitor with: docker compose logs -f {service}")
                self.summary.warnings.append(message)
                step.warn(f"timed out after {result.attempts} attempt(s)")
                return
            step.detail = f"ready after {result.attempts} attempt(s)"
            self.ok("Webpack compiled successfully")

    def initialize_database(self) -> None:
        """Create and seed an absent database, or migrate an existing one."""
        with self._step("init-database", "Initializing database") as step:
            if self.dry_run:
                step.skip("dry-run")
                self.info("Dry run: database would be created or migrated.")
                return
            result = self.runtime.database.initialize()
            step.detail = result.action.value
            if result.action is InitAction.MIGRATE:
                self.info("Database already exists, ran migrations only")
            else:
                self.info("Created and seeded the database")
            self.ok("Database ready")

    def migrate_database(self) -> None:
        """Apply pending migrations only."""
        with self._step("migrate", "Running database migrations") as step:
            if self.dry_run:
                step.skip("dry-run")
                self.info("Dry run: migrations would be applied.")
                return
            self.runtime.database.migrate()
            self.ok("Migrations complete")

    def install_backend(self) -> None:
        """Install backend dependencies."""
        with self._step("install-backend", "Installing Ruby gems") as step:
            if self.dry_run:
                step.skip("dry-run")
                return
            self.runtime.installer.install_backend()
            self.ok("Gems installed")

    def install_frontend(self) -> None:
        """Install frontend dependencies."""
        with self._step("install-frontend", "Installing Node packages") as step:
            if self.dry_run:
                step.skip("dry-run")
                return
            self.runtime.installer.install_frontend()
            self.ok("Node packages installed")

    def pull_code(self) -> None:
        """Pull the configured branch, skipping when the remote is absent."""
        git_config = self.config.git
        with self._step("pull", "Pulling latest code") as step:
            try:
                configured = self.runtime.git.remote_configured(git_config.remote)
                if not configured:
                    message = f"Remote '{git_config.remote}' not configured. Skipping pull."
                    self.warn(message)
                    self.info(
                        f"To add it: git remote add {git_config.remote} {git_config.remote_url}"
                    )
                    self.summary.warnings.append(message)
                    step.skip(message)
                    return
                if self.dry_run:
                    step.skip("dry-run")
                    self.info(
                        f"Dry run: would pull {git_config.remote}/{git_config.branch}."
                    )
                    return
                self.runtime.git.pull(git_config.remote, git_config.branch)
            except GitError as exc:
                raise SourceUpdateError(
                    f"Pulling {git_config.remote}/{git_config.branch} failed: {exc}",
                    remediation="Resolve the git error and re-run with --update.",
                ) from exc
            step.detail = f"{git_config.remote}/{git_config.branch}"
            self.ok("Code updated")

    def report(self) -> None:
        """Print the final status report."""
        with self._step("report", "Service Status") as step:
            if not render_status_report(
                self.console,
                self.runtime.controller,
                self.config,
                notes=self.summary.warnings,
            ):
                step.warn("service status unavailable")


def _run_full(orchestrator: Orchestrator) -> None:
    orchestrator.check_config()
    orchestrator.build_images(force=False)
    orchestrator.start_services()
    orchestrator.wait_for_database()
    orchestrator.initialize_database()
    orchestrator.wait_for_assets()
    orchestrator.report()


def _run_start(orchestrator: Orchestrator) -> None:
    orchestrator.check_config()
    orchestrator.start_services()
    orchestrator.wait_for_assets()
    orchestrator.report()


def _run_update(orchestrator: Orchestrator) -> None:
    orchestrator.pull_code()
    orchestrator.migrate_database()
    orchestrator.restart_app()
    orchestrator.report()


def _run_rebuild(orchestrator: Orchestrator) -> None:
    orchestrator.stop_services()
    orchestrator.build_images(force=True)
    orchestrator.install_backend()
    orchestrator.install_frontend()
    orchestrator.start_services()
    orchestrator.wait_for_database()
    orchestrator.migrate_database()
    orchestrator.wait_for_assets()
    orchestrator.report()


MODE_HANDLERS: dict[RunMode, Callable[[Orchestrator], None]] = {
    RunMode.FULL: _run_full,
    RunMode.START: _run_start,
    RunMode.UPDATE: _run_update,
    RunMode.REBUILD: _run_rebuild,
}


__all__ = [
    "ACCEPTED_MODES",
    "MODE_HANDLERS",
    "Orchestrator",
    "RunMode",
    "RunSummary",
    "StepRecord",
    "select_mode",
]
