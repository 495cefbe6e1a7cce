"""Main CLI entry point for hostscale."""

import json
import logging
import os
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table
from rich import box

from .. import __version__
from ..utils.secrets import SecretBox
from .databases import db_app
from .scaling import scaling_app
from .settings import settings_app
from .utils import console, get_services, set_config_path, yes_no

app = typer.Typer(
    name="hostscale",
    help="hostscale - deployment detection, workload scaling and managed databases.",
    add_completion=True,
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
)

secrets_app = typer.Typer(help="Encryption key helpers")

app.add_typer(scaling_app, name="scaling")
app.add_typer(db_app, name="db")
app.add_typer(settings_app, name="settings")
app.add_typer(secrets_app, name="secrets")


@app.callback()
def main_callback(
        version: bool = typer.Option(
            None, "--version", "-v",
            help="Show hostscale version",
            is_eager=True
        ),
        config: Optional[Path] = typer.Option(
            None, "--config", "-c",
            help="Configuration file (TOML or JSON)"
        ),
        debug: bool = typer.Option(
            False, "--debug", "-d",
            help="Enable debug logging"
        )
):
    """
    hostscale - detect where the panel runs and drive its cloud.
    """
    if version:
        console.print(f"hostscale version {__version__}")
        raise typer.Exit()

    if debug:
        os.environ["HOSTSCALE_LOG_LEVEL"] = "DEBUG"
        logging.getLogger("hostscale").setLevel(logging.DEBUG)

    set_config_path(config)


@app.command()
def detect(
        refresh: bool = typer.Option(False, "--refresh", help="Ignore the cached detection result"),
        as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
):
    """
    Detect the deployment mode and cloud provider.
    """
    detector = get_services().detector
    if refresh:
        detector.forget()
    info = detector.get_deployment_info()

    if as_json:
        console.print_json(json.dumps(info.to_dict()))
        return

    table = Table(title="Deployment Environment", box=box.ROUNDED, show_header=False)
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    table.add_row("Deployment mode", info.mode_label)
    table.add_row("Cloud provider", info.cloud_provider_label)
    table.add_row("Auto-scaling", yes_no(info.supports_auto_scaling))
    table.add_row("Signals", ", ".join(info.signals) or "-")
    if info.degraded:
        table.add_row("Degraded", f"[yellow]{', '.join(info.degraded)}[/yellow]")
    console.print(table)


@app.command()
def providers():
    """
    List registered scaling and managed database providers.
    """
    services = get_services()
    current = services.cloud_manager.current_provider_name()

    table = Table(title="Providers", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Scaling")
    table.add_column("Vertical scaling", justify="center")
    table.add_column("Managed databases")

    names = sorted(set(services.cloud_manager.providers) | set(services.database_manager.providers))
    for name in names:
        scaling = services.cloud_manager.get_provider_by_name(name)
        database = services.database_manager.get_provider_by_name(name)
        label = f"{name} [green](detected)[/green]" if name == current else name
        table.add_row(
            label,
            scaling.label if scaling else "-",
            yes_no(scaling.supports_vertical_scaling()) if scaling else "-",
            database.label if database else "-",
        )
    console.print(table)


@secrets_app.command("generate-key")
def generate_key():
    """
    Print a new encryption key for HOSTSCALE_SECRET_KEY.
    """
    console.print(SecretBox.generate_key())


def main():
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted by user[/yellow]")
        raise typer.Exit(130)
    except Exception as e:
        if os.getenv("HOSTSCALE_LOG_LEVEL") == "DEBUG":
            raise
        else:
            console.print(f"[red]Error:[/red] {e}")
            console.print("[dim]Run with --debug for more details[/dim]")
            raise typer.Exit(1)


if __name__ == "__main__":
    main()
