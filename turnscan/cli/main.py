"""Main CLI entry point for turnscan."""

import click
from rich.console import Console

from turnscan import __version__

console = Console()


@click.group()
@click.version_option(version=__version__, prog_name="turnscan")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--simulate", is_flag=True, help="Use the simulated camera bus")
@click.pass_context
def cli(ctx: click.Context, verbose: bool, simulate: bool) -> None:
    """turnscan - turntable photogrammetry capture.

    Detects cameras, captures around a turntable, processes the images
    and records them in capture sessions.
    """
    from turnscan.config import Settings, configure
    from turnscan.observability import configure_logging

    configure_logging(level="DEBUG" if verbose else None)

    settings = Settings()
    if simulate:
        settings = settings.model_copy(update={"simulation_mode": True})
    configure(settings)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["settings"] = settings


# Import and register command groups
from turnscan.cli.cameras_cmd import cameras
from turnscan.cli.capture_cmd import capture, scan
from turnscan.cli.session_cmd import session

cli.add_command(cameras)
cli.add_command(capture)
cli.add_command(scan)
cli.add_command(session)


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show configuration and session database status."""
    from turnscan.cli.common import get_engine

    engine = get_engine(ctx)
    settings = engine.settings

    console.print("[bold]turnscan Status[/bold]")
    console.print(f"Version: {__version__}")
    console.print()
    console.print("[bold]Configuration:[/bold]")
    console.print(f"  Session Database: {settings.session_db_path}")
    console.print(f"  Capture Directory: {settings.capture_dir}")
    console.print(f"  Deployment Target: {settings.deployment_target}")
    console.print(f"  Sharpness Threshold: {settings.effective_sharpness_threshold:g}")
    console.print(f"  Simulation Mode: {settings.simulation_mode}")
    console.print()
    console.print("[bold]Processing:[/bold]")
    profiles = engine.pipeline.profiles
    console.print(f"  Colour Profiles: {', '.join(profiles.camera_types) or '[yellow]None[/yellow]'}")
    console.print(f"  Segmentation: {engine.pipeline.segmentation.name}")
    console.print()
    console.print("[bold]Sessions:[/bold]")
    console.print(f"  Stored: {len(engine.store.list_sessions())}")


if __name__ == "__main__":
    cli()
