"""Shared utilities for turnscan."""

import logging
import time
from pathlib import Path
from typing import Union

from rich.console import Console

# Rich console for pretty output
console = Console()


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a module."""
    return logging.getLogger(f"turnscan.{name}")


def ensure_dir(path: Union[str, Path]) -> Path:
    """Ensure a directory exists and return the Path."""
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def now_ms() -> int:
    """Current time as epoch milliseconds."""
    return int(time.time() * 1000)


def format_duration(seconds: float) -> str:
    """Format duration in seconds as human-readable string."""
    if seconds < 60:
        return f"{seconds:.0f}s"
    elif seconds < 3600:
        minutes = seconds // 60
        secs = seconds % 60
        return f"{minutes:.0f}m {secs:.0f}s"
    else:
        hours = seconds // 3600
        minutes = (seconds % 3600) // 60
        return f"{hours:.0f}h {minutes:.0f}m"


def safe_filename(name: str, max_length: int = 64) -> str:
    """Convert a string to a safe filename."""
    # Replace problematic characters
    safe = "".join(c if c.isalnum() or c in "-_." else "_" for c in name)
    # Remove consecutive underscores
    while "__" in safe:
        safe = safe.replace("__", "_")
    # Trim
    return safe[:max_length].strip("_")
