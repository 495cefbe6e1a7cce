"""Scaling commands for the hostscale CLI."""

import json
from typing import Optional

import typer
from rich.table import Table
from rich import box

from ..cloud import ScalingRequest, ScalingTarget, UpdateMode
from ..core.exceptions import HostscaleError
from .utils import console, fail, get_services, print_notifications, print_warning, yes_no

scaling_app = typer.Typer(help="Inspect and change autoscaling of hosted workloads")


def _target(name: str, namespace: Optional[str], provider: Optional[str]) -> ScalingTarget:
    prefix = get_services().config.kubernetes.namespace_prefix
    return ScalingTarget(name=name, namespace=namespace, provider_hint=provider, namespace_prefix=prefix)


@scaling_app.command("status")
def scaling_status(
        name: str = typer.Argument(..., help="Workload (domain) name"),
        namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Kubernetes namespace"),
        provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Cloud provider override"),
        as_json: bool = typer.Option(False, "--json", help="Print JSON instead of a table"),
):
    """
    Show replicas and autoscaler configuration of a workload.
    """
    target = _target(name, namespace, provider)
    try:
        state = get_services().scaling.describe(target)
    except HostscaleError as e:
        fail(e)

    if state is None:
        print_warning("Scaling not available: cloud provider not detected or not supported")
        raise typer.Exit(1)

    if as_json:
        console.print_json(json.dumps(state.to_dict()))
        return

    table = Table(title=f"Scaling: {target.deployment_name}", box=box.ROUNDED, show_header=False)
    table.add_column("Setting", style="cyan")
    table.add_column("Value")
    table.add_row("Provider", state.provider_label)
    table.add_row("Namespace", target.resolved_namespace)
    table.add_row("Current replicas", str(state.current_replicas))

    hpa = state.config.horizontal
    if hpa:
        table.add_row("Horizontal scaling", yes_no(True))
        table.add_row("  Replicas", f"{hpa.min_replicas} - {hpa.max_replicas}")
        table.add_row("  Target CPU", f"{hpa.target_cpu_percent}%" if hpa.target_cpu_percent else "-")
    else:
        table.add_row("Horizontal scaling", yes_no(False))

    vpa = state.config.vertical
    if not state.supports_vertical:
        table.add_row("Vertical scaling", "[dim]not supported[/dim]")
    elif vpa:
        table.add_row("Vertical scaling", f"{yes_no(True)} ({vpa.update_mode.value})")
    else:
        table.add_row("Vertical scaling", yes_no(False))

    console.print(table)


@scaling_app.command("apply")
def scaling_apply(
        name: str = typer.Argument(..., help="Workload (domain) name"),
        namespace: Optional[str] = typer.Option(None, "--namespace", "-n", help="Kubernetes namespace"),
        provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Cloud provider override"),
        hpa: Optional[bool] = typer.Option(None, "--hpa/--no-hpa", help="Enable or disable horizontal scaling"),
        min_replicas: int = typer.Option(1, "--min", help="Minimum replicas"),
        max_replicas: int = typer.Option(10, "--max", help="Maximum replicas"),
        cpu: int = typer.Option(80, "--cpu", help="Target CPU utilization (%)"),
        vpa: Optional[bool] = typer.Option(None, "--vpa/--no-vpa", help="Enable or disable vertical scaling"),
        update_mode: str = typer.Option("Auto", "--update-mode", help="VPA update mode: Off, Initial, Recreate, Auto"),
        replicas: Optional[int] = typer.Option(None, "--replicas", "-r", help="Scale to a fixed replica count"),
):
    """
    Enable or disable autoscalers, or set a fixed replica count.
    """
    try:
        mode = UpdateMode.parse(update_mode)
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--update-mode")

    request = ScalingRequest(
        enable_horizontal=hpa,
        min_replicas=min_replicas,
        max_replicas=max_replicas,
        target_cpu=cpu,
        enable_vertical=vpa,
        update_mode=mode,
        manual_replicas=replicas,
    )
    outcome = get_services().scaling.apply(_target(name, namespace, provider), request)
    print_notifications(outcome.notifications)

    if not outcome.success:
        raise typer.Exit(1)
