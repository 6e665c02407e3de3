"""Camera CLI commands."""

import asyncio

import click
from rich.console import Console
from rich.table import Table

from turnscan.cli.common import get_engine
from turnscan.errors import TurnscanError

console = Console()


@click.group()
def cameras() -> None:
    """Camera detection and checks."""
    pass


@cameras.command("detect")
@click.pass_context
def cameras_detect(ctx: click.Context) -> None:
    """Detect attached cameras and probe each one."""
    engine = get_engine(ctx)

    with console.status("Detecting cameras..."):
        devices = asyncio.run(engine.registry.detect())

    if not devices:
        console.print("[yellow]No cameras detected[/yellow]")
        console.print("Check USB connections, or run with --simulate")
        return

    table = Table(title="Cameras")
    table.add_column("ID", style="dim")
    table.add_column("Model")
    table.add_column("Type")
    table.add_column("Port")
    table.add_column("Status")

    status_styles = {"idle": "green", "capturing": "cyan", "error": "red"}
    for device in devices:
        status = device.status.value if device.connected else "disconnected"
        style = status_styles.get(status, "yellow")
        table.add_row(device.id, device.name, device.type, device.locator, f"[{style}]{status}[/{style}]")

    console.print(table)


@cameras.command("check")
@click.argument("port")
@click.pass_context
def cameras_check(ctx: click.Context, port: str) -> None:
    """Check whether the camera on PORT (e.g. usb:001,004) responds."""
    engine = get_engine(ctx)

    with console.status(f"Probing {port}..."):
        responding = asyncio.run(engine.registry.is_responding(port, port))

    if responding:
        console.print(f"[green]Camera on {port} is responding[/green]")
    else:
        console.print(f"[red]Camera on {port} did not respond after {engine.registry.attempts} attempts[/red]")
        ctx.exit(1)


@cameras.command("config")
@click.argument("port")
@click.argument("setting")
@click.pass_context
def cameras_config(ctx: click.Context, port: str, setting: str) -> None:
    """List the values the camera on PORT accepts for SETTING (e.g. imageformat)."""
    engine = get_engine(ctx)

    try:
        with console.status(f"Reading {setting} from {port}..."):
            choices = asyncio.run(engine.registry.get_config_choices(port, setting))
    except TurnscanError as e:
        console.print(f"[red]Could not read {setting}: {e}[/red]")
        ctx.exit(1)

    if not choices:
        console.print(f"[yellow]{setting} has no fixed choices[/yellow]")
        return

    table = Table(title=f"{setting} on {port}")
    table.add_column("Index", style="dim")
    table.add_column("Value")
    for index, choice in enumerate(choices):
        table.add_row(str(index), choice)
    console.print(table)
