"""Shared helpers for CLI commands."""

from datetime import datetime

import click

from turnscan.engine import CaptureEngine, build_engine


def get_engine(ctx: click.Context) -> CaptureEngine:
    """Build the engine once per invocation."""
    obj = ctx.ensure_object(dict)
    if "engine" not in obj:
        obj["engine"] = build_engine(obj.get("settings"))
    return obj["engine"]


def format_ms(timestamp: int) -> str:
    """Render an epoch-ms timestamp for tables."""
    return datetime.fromtimestamp(timestamp / 1000).strftime("%Y-%m-%d %H:%M")
