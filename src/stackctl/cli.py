"""Typer-powered command line entry point for ``stackctl``.

One invocation runs exactly one mode::

    stackctl              Full first-time setup
    stackctl --start      Start existing containers only
    stackctl --update     Pull code + migrate + restart
    stackctl --rebuild    Rebuild Docker images + start
"""
from __future__ import annotations

import textwrap
from dataclasses import dataclass
from pathlib import Path
from typing import Any, NoReturn

import click
import typer
from rich.console import Console
from rich.markup import escape
from typer.core import TyperCommand

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .database import DatabaseInitializer
from .dependencies import DependencyInstaller
from .dispatcher import ACCEPTED_MODES, Orchestrator, RunMode, RunSummary, select_mode
from .errors import StackctlError, UsageError
from .exit_codes import ExitCode
from .logging import OperationScope, StructuredLogger
from .preflight import PreconditionChecker
from .providers import ComposeProvider, GitProvider
from .readiness import ReadinessProber
from .services import ServiceController, ServiceSet

console = Console(soft_wrap=True)

CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to stackctl's YAML config file.",
)


class ModeCommand(TyperCommand):
    """Command that reports usage errors like any other failed step."""

    def parse_args(self, ctx: click.Context, args: list[str]) -> list[str]:
        """Parse arguments, failing the ``arguments`` step on usage errors."""
        try:
            return super().parse_args(ctx, args)
        except click.UsageError as exc:
            _print_error(
                "arguments",
                f"{exc.format_message().rstrip('.')}. Accepted modes: {ACCEPTED_MODES}.",
                "Run with --help for usage.",
            )
            raise click.exceptions.Exit(int(ExitCode.VALIDATION)) from exc


app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Bootstrap and orchestrate the containerized development environment.

        Without a mode flag a full first-time setup runs: check prerequisites,
        build images when missing, start services, wait for the database,
        create or migrate it, then wait for the asset compiler.
        """
    ).strip(),
)


@dataclass
class RuntimeContext:
    """Aggregated runtime objects shared by the orchestration steps."""

    config: AppConfig
    logger: StructuredLogger
    compose: ComposeProvider
    git: GitProvider
    services: ServiceSet
    checker: PreconditionChecker
    controller: ServiceController
    prober: ReadinessProber
    database: DatabaseInitializer
    installer: DependencyInstaller


def build_runtime(config: AppConfig) -> RuntimeContext:
    """Wire every component from resolved configuration."""
    compose = ComposeProvider(
        project_dir=config.project_root,
        docker_bin=config.compose.docker_bin,
    )
    services = ServiceSet.from_config(config.services)
    return RuntimeContext(
        config=config,
        logger=StructuredLogger(config.logs_dir),
        compose=compose,
        git=GitProvider(repo_dir=config.project_root, git_bin=config.git.git_bin),
        services=services,
        checker=PreconditionChecker(config=config, compose=compose),
        controller=ServiceController(
            compose=compose,
            services=services,
            image_marker=config.compose.image_marker,
        ),
        prober=ReadinessProber(),
        database=DatabaseInitializer(
            compose=compose,
            config=config.database,
            app_service=services.web,
            database_service=services.database,
            database_user=config.readiness.database.user,
        ),
        installer=DependencyInstaller(
            compose=compose,
            config=config.dependencies,
            app_service=services.web,
        ),
    )


def _print_error(step: str, message: str, remediation: str | None = None) -> None:
    """Print the remediation hint, then the labeled failure as the last line."""
    if remediation:
        console.print(f"[blue][INFO][/blue] {escape(remediation)}")
    console.print(f"[red][ERROR][/red] {escape(step)}: {escape(message)}")


def _command_error(op: OperationScope, exc: StackctlError) -> NoReturn:
    """Record a fatal orchestration error and terminate the command."""
    step = exc.step or "stackctl"
    rc = int(exc.exit_code)
    errors = list(getattr(exc, "missing", ())) or [exc.message]
    op.error(exc.message, errors=errors, rc=rc, step=step)
    _print_error(step, exc.message, exc.remediation)
    raise typer.Exit(code=rc)


def _finish(op: OperationScope, summary: RunSummary, *, dry_run: bool) -> None:
    context: dict[str, Any] = {
        "mode": summary.mode.value,
        "dry_run": dry_run,
        "readiness": {
            name: {"outcome": result.outcome.value, "attempts": result.attempts}
            for name, result in summary.readiness.items()
        },
    }
    changed = sum(1 for step in summary.steps if step.status == "success")
    if summary.warnings:
        op.warning(
            f"{summary.mode.value} completed with warnings.",
            warnings=summary.warnings,
            changed=changed,
            context=context,
        )
    else:
        op.success(f"{summary.mode.value} completed.", changed=changed, context=context)


@app.command(
    cls=ModeCommand,
    context_settings={"help_option_names": ["-h", "--help"]},
)
def run(
    start: bool = typer.Option(False, "--start", help="Start existing containers only."),
    update: bool = typer.Option(False, "--update", help="Pull code + migrate + restart."),
    rebuild: bool = typer.Option(False, "--rebuild", help="Rebuild Docker images + start."),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Run the read-only checks and report the remaining steps without running them.",
    ),
    config_file: Path | None = CONFIG_FILE_OPTION,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        help="Show the stackctl version and exit.",
    ),
) -> None:
    """Bring the development environment up in the selected mode."""
    if version:
        console.print(f"stackctl {__version__}")
        raise typer.Exit(code=ExitCode.OK)

    try:
        mode = select_mode(start=start, update=update, rebuild=rebuild)
    except UsageError as exc:
        _print_error(exc.step or "arguments", exc.message)
        raise typer.Exit(code=int(exc.exit_code)) from exc

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        _print_error("config", str(exc))
        raise typer.Exit(code=ExitCode.VALIDATION) from exc

    runtime = build_runtime(config)
    with runtime.logger.operation(
        f"run {mode.value}",
        args={"mode": mode.value, "dry_run": dry_run, "config_file": config_file},
        target={"kind": "environment", "root": config.project_root},
    ) as op:
        orchestrator = Orchestrator(runtime, console=console, op=op, dry_run=dry_run)
        try:
            summary = orchestrator.run(mode)
        except StackctlError as exc:
            _command_error(op, exc)
        _finish(op, summary, dry_run=dry_run)

    if summary.warnings:
        console.print(f"[yellow][WARN][/yellow] {mode.value}: finished with warnings")
    else:
        console.print(f"[green][OK][/green] {mode.value}: finished")


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["RunMode", "RuntimeContext", "app", "build_runtime", "main"]
