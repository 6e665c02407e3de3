"""Capture and scan CLI commands."""

import asyncio
import time
from typing import List, Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from turnscan.capture.models import CapturedImage
from turnscan.cli.common import get_engine
from turnscan.errors import TurnscanError
from turnscan.utils import format_duration

console = Console()


def _image_table(images: List[CapturedImage], title: str) -> Table:
    table = Table(title=title)
    table.add_column("Image", style="dim")
    table.add_column("Camera")
    table.add_column("Angle", justify="right")
    table.add_column("Sharpness", justify="right")
    table.add_column("Profile")
    table.add_column("Mask")

    for image in images:
        angle = f"{image.turntable_angle:.1f}" if image.turntable_angle is not None else "-"
        sharpness = f"{image.sharpness:.1f}" if image.sharpness is not None else "-"
        table.add_row(
            image.filename,
            image.camera_type,
            angle,
            sharpness,
            "[green]yes[/green]" if image.has_color_profile else "no",
            "[green]yes[/green]" if image.has_mask else "no",
        )
    return table


@click.command()
@click.argument("session_id")
@click.option("--angle", "-a", type=float, default=None, help="Turn the turntable to this angle first")
@click.pass_context
def capture(ctx: click.Context, session_id: str, angle: Optional[float]) -> None:
    """Capture from every connected camera into SESSION_ID."""
    engine = get_engine(ctx)

    async def run() -> List[CapturedImage]:
        try:
            await engine.registry.detect()
            if angle is not None:
                await engine.turntable.move_to(angle)
            return await engine.workflow.capture_at_current_angle(session_id)
        finally:
            await engine.orchestrator.wait_for_background()

    try:
        with console.status("Capturing..."):
            images = asyncio.run(run())
    except TurnscanError as e:
        console.print(f"[red]Capture failed: {e}[/red]")
        ctx.exit(1)

    if not images:
        console.print("[yellow]No images captured[/yellow]")
        ctx.exit(1)

    console.print(_image_table(images, f"Captured {len(images)} image(s)"))


@click.command()
@click.argument("session_id")
@click.option("--steps", "-s", type=int, default=None, help="Stops per rotation (default from settings)")
@click.pass_context
def scan(ctx: click.Context, session_id: str, steps: Optional[int]) -> None:
    """Run a full turntable rotation, capturing at each stop."""
    engine = get_engine(ctx)
    steps = steps or engine.settings.scan_steps

    started = time.monotonic()

    async def run():
        try:
            await engine.registry.detect()
            return await engine.workflow.run_full_scan(session_id, steps)
        finally:
            await engine.orchestrator.wait_for_background()

    try:
        with console.status(f"Scanning {steps} stops..."):
            result = asyncio.run(run())
    except TurnscanError as e:
        console.print(f"[red]Scan failed: {e}[/red]")
        ctx.exit(1)

    session = engine.store.get_session(session_id)
    console.print(Panel(
        f"[bold green]Scan Complete[/bold green]\n\n"
        f"Stops: {len(result.angles)}\n"
        f"Images: {result.image_count}\n"
        f"Masks: {sum(1 for i in result.images if i.has_mask)}\n"
        f"Session status: {session.status.value}\n"
        f"Image quality: {session.image_quality}\n"
        f"Duration: {format_duration(time.monotonic() - started)}",
        title=session.name,
    ))
    for camera_id in result.skipped_cameras:
        console.print(f"[yellow]Camera {camera_id} did not respond and was left out[/yellow]")
