"""Final status report printed after a successful run."""
from __future__ import annotations

from collections.abc import Sequence

from rich.console import Console
from rich.table import Table

from .config import AppConfig
from .errors import ServiceControlError
from .services import ServiceController


def useful_commands(config: AppConfig) -> list[tuple[str, str]]:
    """Return follow-up commands tailored to the configured service names."""
    services = config.services
    return [
        (f"docker compose logs -f {services.web}", "Application logs"),
        (f"docker compose logs -f {services.assets}", "Asset compilation"),
        (f"docker compose run --rm {services.web} rails console", "Application console"),
        ("docker compose down", "Stop all services"),
    ]


def render_status_report(
    console: Console,
    controller: ServiceController,
    config: AppConfig,
    *,
    notes: Sequence[str] = (),
) -> bool:
    """Print service status, access URLs and follow-up commands.

    Returns ``False`` when the service status could not be queried; the
    report itself never fails the run.
    """
    status_ok = True
    try:
        table_text = controller.status()
    except ServiceControlError as exc:
        console.print(f"[yellow][WARN][/yellow] {exc}")
        status_ok = False
    else:
        if table_text:
            console.print(table_text, markup=False, highlight=False)

    console.print()
    console.print("[bold]Environment is running![/bold]")
    for label, url in config.report.urls:
        console.print(f"  {label + ':':<8} [green]{url}[/green]")
    for note in notes:
        console.print(f"  [yellow]{note}[/yellow]")

    table = Table(title="Useful commands", show_header=True, header_style="bold")
    table.add_column("Command")
    table.add_column("Purpose")
    for command, purpose in useful_commands(config):
        table.add_row(command, purpose)
    console.print(table)
    return status_ok


__all__ = ["render_status_report", "useful_commands"]
