"""Managed database commands for the hostscale CLI."""

from typing import Optional

import typer
from rich.table import Table
from rich import box

from ..core.exceptions import HostscaleError
from ..databases import ManagedDatabaseInstance, ManagedDatabaseProvider, ManagedDatabaseRequest
from .utils import (
    console,
    fail,
    get_services,
    mapping_table,
    print_error,
    print_info,
    print_notifications,
    print_success,
    yes_no,
)

db_app = typer.Typer(help="Provision and manage cloud databases")


def _provider(name: str) -> ManagedDatabaseProvider:
    provider = get_services().database_manager.get_provider_by_name(name)
    if provider is None:
        available = ", ".join(sorted(get_services().database_manager.providers))
        print_error(f"Unknown provider: {name} (available: {available})")
    return provider


@db_app.command("providers")
def db_providers():
    """
    List managed database providers.
    """
    table = Table(title="Managed Database Providers", box=box.ROUNDED, header_style="bold magenta")
    table.add_column("Name", style="cyan")
    table.add_column("Provider")
    table.add_column("Enabled", justify="center")
    table.add_column("Default region")
    table.add_column("Engines")

    for name, provider in get_services().database_manager.providers.items():
        table.add_row(
            name,
            provider.label,
            yes_no(provider.settings.enabled),
            provider.settings.default_region or "-",
            ", ".join(engine.value for engine in provider.supported_engines),
        )
    console.print(table)


@db_app.command("types")
def db_types(provider: str = typer.Argument(..., help="Provider name")):
    """
    List instance types offered by a provider.
    """
    adapter = _provider(provider)
    console.print(mapping_table(f"{adapter.label} instance types", adapter.get_available_instance_types(), "Type"))


@db_app.command("regions")
def db_regions(provider: str = typer.Argument(..., help="Provider name")):
    """
    List regions offered by a provider.
    """
    adapter = _provider(provider)
    console.print(mapping_table(f"{adapter.label} regions", adapter.get_available_regions(), "Region", "Location"))


@db_app.command("create")
def db_create(
        provider: str = typer.Argument(..., help="Provider name"),
        engine: str = typer.Option("mysql", "--engine", "-e", help="mysql, mariadb, postgresql or redis"),
        name: str = typer.Option(..., "--name", help="Database name"),
        region: Optional[str] = typer.Option(None, "--region", help="Region (provider default when omitted)"),
        instance_class: Optional[str] = typer.Option(None, "--instance-class", help="Instance type"),
        storage: int = typer.Option(20, "--storage", help="Storage in GB"),
        username: str = typer.Option("dbadmin", "--username", "-u", help="Admin user name"),
        password: Optional[str] = typer.Option(None, "--password", help="Admin password (prompted when needed)"),
        identifier: Optional[str] = typer.Option(None, "--identifier", help="Instance identifier"),
        version: Optional[str] = typer.Option(None, "--version", help="Engine version"),
        no_ssl: bool = typer.Option(False, "--no-ssl", help="Do not require TLS connections"),
        wait: bool = typer.Option(False, "--wait", help="Wait until the database is available"),
):
    """
    Provision a managed database.
    """
    services = get_services()
    adapter = _provider(provider)
    defaults = adapter.settings.defaults

    if password is None and adapter.requires_password and engine != "redis":
        password = typer.prompt("Admin password", hide_input=True, confirmation_prompt=True)

    request = ManagedDatabaseRequest(
        provider=adapter.name,
        engine=engine,
        name=name,
        region=region or adapter.settings.default_region,
        instance_class=instance_class or _default_instance_class(defaults),
        storage_gb=storage,
        username=username,
        password=password or "",
        ssl_required=not no_ssl and services.config.databases.enforce_ssl,
        instance_identifier=identifier,
        version=version,
    )

    with console.status(f"Provisioning {name} on {adapter.label}..."):
        outcome = services.provisioning.provision(request, wait=wait)

    print_notifications(outcome.notifications)
    if outcome.instance is not None:
        _print_instance(outcome.instance)
    if not outcome.success:
        raise typer.Exit(1)


@db_app.command("status")
def db_status(
        provider: str = typer.Argument(..., help="Provider name"),
        instance_id: str = typer.Argument(..., help="Instance identifier"),
        engine: str = typer.Option("mysql", "--engine", "-e", help="Database engine"),
        region: Optional[str] = typer.Option(None, "--region", help="Region"),
):
    """
    Ask the provider for the current state of an instance.
    """
    adapter = _provider(provider)
    try:
        state = adapter.describe(instance_id, engine, region or adapter.settings.default_region)
    except HostscaleError as e:
        fail(e)

    console.print(f"[cyan]{instance_id}[/cyan]: [bold]{state.status.value}[/bold]")
    if state.host:
        print_info(f"Endpoint {state.host}:{state.port or adapter.default_port(engine)}")


@db_app.command("delete")
def db_delete(
        provider: str = typer.Argument(..., help="Provider name"),
        instance_id: str = typer.Argument(..., help="Instance identifier"),
        engine: str = typer.Option("mysql", "--engine", "-e", help="Database engine"),
        region: Optional[str] = typer.Option(None, "--region", help="Region"),
        yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """
    Delete a managed database instance.
    """
    adapter = _provider(provider)
    if not yes and not typer.confirm(f"Delete {instance_id} on {adapter.label}?"):
        raise typer.Abort()

    try:
        adapter.deprovision(instance_id, engine, region or adapter.settings.default_region)
    except HostscaleError as e:
        fail(e)
    print_success(f"Deletion of {instance_id} started")


def _default_instance_class(defaults: dict) -> str:
    for key in ("instance_class", "sku_name", "tier", "size", "plan"):
        if defaults.get(key):
            return defaults[key]
    return ""


def _print_instance(instance: ManagedDatabaseInstance) -> None:
    table = Table(box=box.SIMPLE, show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    for key, value in instance.to_dict().items():
        if value is not None:
            table.add_row(key, str(value))
    console.print(table)
