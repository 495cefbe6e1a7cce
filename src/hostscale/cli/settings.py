"""Deployment settings commands for the hostscale CLI."""

import json
from typing import Optional

import typer
from rich.table import Table
from rich import box

from .utils import console, get_services, print_notifications, yes_no

settings_app = typer.Typer(help="Deployment settings of this installation")


@settings_app.command("show")
def settings_show(as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table")):
    """
    Show the detected environment and the auto-scaling setting.
    """
    view = get_services().settings.load()

    if as_json:
        console.print_json(json.dumps(view.to_dict()))
        return

    table = Table(title="Deployment Settings", box=box.ROUNDED, show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Deployment mode", view.info.mode_label)
    table.add_row("Cloud provider", view.info.cloud_provider_label)
    table.add_row("Auto-scaling supported", yes_no(view.info.supports_auto_scaling))
    table.add_row("Auto-scaling enabled", yes_no(view.auto_scaling_enabled))
    for capability, status in view.capabilities.to_dict().items():
        table.add_row(capability.replace("_", " ").capitalize(), status)
    console.print(table)


@settings_app.command("save")
def settings_save(
        auto_scaling: Optional[bool] = typer.Option(
            None, "--auto-scaling/--no-auto-scaling",
            help="Turn auto-scaling on or off"
        ),
):
    """
    Re-detect the environment and store the settings.
    """
    result = get_services().settings.save(auto_scaling_enabled=auto_scaling)
    print_notifications(result.notifications)
