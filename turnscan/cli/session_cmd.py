"""Session CLI commands."""

from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from turnscan.cli.common import format_ms, get_engine
from turnscan.errors import TurnscanError

console = Console()


@click.group()
def session() -> None:
    """Capture session management."""
    pass


@session.command("list")
@click.pass_context
def session_list(ctx: click.Context) -> None:
    """List sessions, most recently updated first."""
    store = get_engine(ctx).store
    sessions = store.list_sessions()

    if not sessions:
        console.print("[yellow]No sessions[/yellow]")
        console.print("Create one with: turnscan session create <name>")
        return

    table = Table(title="Sessions")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Status")
    table.add_column("Passes", justify="right")
    table.add_column("Images", justify="right")
    table.add_column("Quality", justify="right")
    table.add_column("Updated")

    for s in sessions:
        table.add_row(
            s.id,
            s.name,
            s.status.value,
            str(len(s.passes)),
            str(len(s.images)),
            str(s.image_quality),
            format_ms(s.updated_at),
        )

    console.print(table)


@session.command("create")
@click.argument("name", default="New Session")
@click.pass_context
def session_create(ctx: click.Context, name: str) -> None:
    """Create a session with one empty pass."""
    store = get_engine(ctx).store
    try:
        created = store.create_session(name)
    except TurnscanError as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(1)

    console.print(f"[green]Created session {created.id}[/green]")
    console.print(f"  Name: {created.name}")
    console.print(f"  Pass: {created.passes[0].name} ({created.passes[0].id})")


@session.command("show")
@click.argument("session_id")
@click.pass_context
def session_show(ctx: click.Context, session_id: str) -> None:
    """Show a session's passes and images."""
    store = get_engine(ctx).store
    try:
        s = store.get_session(session_id)
    except TurnscanError as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(1)

    details = [
        f"Status: {s.status.value}",
        f"Created: {format_ms(s.created_at)}",
        f"Updated: {format_ms(s.updated_at)}",
        f"Images: {len(s.images)}",
        f"Quality: {s.image_quality}",
    ]
    if s.subject_matter:
        details.append(f"Subject: {s.subject_matter}")
    if s.tags:
        details.append(f"Tags: {', '.join(s.tags)}")
    if s.processed and s.processing_date:
        details.append(f"Processed: {format_ms(s.processing_date)}")
    console.print(Panel("\n".join(details), title=s.name))

    table = Table(title="Passes")
    table.add_column("ID", style="dim")
    table.add_column("Name")
    table.add_column("Images", justify="right")
    table.add_column("Quality", justify="right")
    table.add_column("Completed")
    for p in s.passes:
        table.add_row(
            p.id,
            p.name,
            str(len(p.images)),
            str(p.image_quality),
            "[green]yes[/green]" if p.completed else "no",
        )
    console.print(table)


@session.command("add-pass")
@click.argument("session_id")
@click.option("--name", "-n", default=None, help="Pass name (default: Pass N)")
@click.pass_context
def session_add_pass(ctx: click.Context, session_id: str, name: Optional[str]) -> None:
    """Add a pass to a session."""
    store = get_engine(ctx).store
    try:
        updated = store.add_pass(session_id, name)
    except TurnscanError as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(1)

    new_pass = updated.passes[-1]
    console.print(f"[green]Added {new_pass.name} ({new_pass.id})[/green]")


@session.command("complete-pass")
@click.argument("session_id")
@click.argument("pass_id")
@click.pass_context
def session_complete_pass(ctx: click.Context, session_id: str, pass_id: str) -> None:
    """Mark a pass completed."""
    store = get_engine(ctx).store
    try:
        updated = store.complete_pass(session_id, pass_id)
    except TurnscanError as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(1)

    console.print(f"[green]Pass {pass_id} completed[/green]")
    console.print(f"  Session status: {updated.status.value}")


@session.command("rename")
@click.argument("session_id")
@click.argument("name")
@click.pass_context
def session_rename(ctx: click.Context, session_id: str, name: str) -> None:
    """Rename a session."""
    store = get_engine(ctx).store
    try:
        store.rename_session(session_id, name)
    except TurnscanError as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(1)

    console.print(f"[green]Renamed session to {name}[/green]")


@session.command("delete")
@click.argument("session_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation")
@click.pass_context
def session_delete(ctx: click.Context, session_id: str, yes: bool) -> None:
    """Delete a session record (image files are kept)."""
    store = get_engine(ctx).store
    if not yes and not click.confirm(f"Delete session {session_id}?"):
        console.print("Cancelled")
        return

    try:
        store.delete_session(session_id)
    except TurnscanError as e:
        console.print(f"[red]{e}[/red]")
        ctx.exit(1)

    console.print(f"[green]Deleted session {session_id}[/green]")
