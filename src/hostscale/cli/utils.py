"""Utility functions for the hostscale CLI."""

from pathlib import Path
from typing import Dict, Iterable, Optional, Union

import typer
from rich.console import Console
from rich.table import Table
from rich import box

from ..bootstrap import Services, build_services
from ..core.config import configure_logging, get_config, reload_config
from ..core.exceptions import HostscaleError
from ..core.notifications import Notification, NotificationStatus

console = Console()

_state: Dict[str, object] = {"config_path": None, "services": None}

NOTIFICATION_STYLES = {
    NotificationStatus.SUCCESS: ("green", "✓"),
    NotificationStatus.INFO: ("blue", "ℹ"),
    NotificationStatus.WARNING: ("yellow", "!"),
    NotificationStatus.DANGER: ("red", "✗"),
}


def set_config_path(path: Optional[Union[str, Path]]) -> None:
    """Remember the --config option; services are rebuilt on next access."""
    if path is None:
        return
    _state["config_path"] = path
    _state["services"] = None


def set_services(services: Optional[Services]) -> None:
    """Install a prebuilt Services container (used by embedding code and tests)."""
    _state["services"] = services


def get_services() -> Services:
    """Build the services once per CLI invocation."""
    if _state["services"] is None:
        path = _state["config_path"]
        config = reload_config(path) if path else get_config()
        configure_logging(config)
        _state["services"] = build_services(config)
    return _state["services"]


def print_error(message: str, exit_code: int = 1) -> None:
    """Print error message and exit."""
    console.print(f"[red]Error:[/red] {message}")
    if exit_code > 0:
        raise typer.Exit(exit_code)


def print_success(message: str) -> None:
    """Print success message."""
    console.print(f"[green]✓[/green] {message}")


def print_warning(message: str) -> None:
    """Print warning message."""
    console.print(f"[yellow]Warning:[/yellow] {message}")


def print_info(message: str) -> None:
    """Print info message."""
    console.print(f"[blue]Info:[/blue] {message}")


def print_notifications(notifications: Iterable[Notification]) -> None:
    for notification in notifications:
        color, symbol = NOTIFICATION_STYLES[notification.status]
        line = f"[{color}]{symbol}[/{color}] [bold]{notification.title}[/bold]"
        if notification.body:
            line += f": {notification.body}"
        console.print(line)


def fail(error: HostscaleError) -> None:
    """Report a hostscale error with its guidance and exit with status 1."""
    console.print(f"[red]Error:[/red] {error.message}")
    if error.guidance:
        console.print(f"[dim]{error.guidance}[/dim]")
    raise typer.Exit(1)


def mapping_table(title: str, mapping: Dict[str, str], key_header: str = "Code", value_header: str = "Description") -> Table:
    """Two-column table of a code -> label mapping."""
    table = Table(title=title, box=box.ROUNDED, show_header=True, header_style="bold magenta")
    table.add_column(key_header, style="cyan", no_wrap=True)
    table.add_column(value_header)
    for key, value in mapping.items():
        table.add_row(key, value)
    return table


def yes_no(value: bool) -> str:
    return "[green]yes[/green]" if value else "[red]no[/red]"
