"""User-facing warning sink.

Soft failures (missing colour profile, segmentation unavailable, corrupt
session file, no cameras found) are reported here in addition to the log.
How they are rendered is up to the notifier.
"""

from dataclasses import dataclass
from typing import List, Protocol

from turnscan.utils import console, get_logger

logger = get_logger("notifications")


class Notifier(Protocol):
    """Anything that can warn the user."""

    def warn(self, title: str, message: str) -> None:
        ...


@dataclass
class Notification:
    """A single recorded warning."""
    title: str
    message: str


class ConsoleNotifier:
    """Prints warnings to the Rich console."""

    def warn(self, title: str, message: str) -> None:
        logger.debug(f"Notify: {title}: {message}")
        console.print(f"[yellow]{title}:[/yellow] {message}")


class RecordingNotifier:
    """Collects warnings in memory (headless runs and tests)."""

    def __init__(self) -> None:
        self.notifications: List[Notification] = []

    def warn(self, title: str, message: str) -> None:
        logger.debug(f"Notify: {title}: {message}")
        self.notifications.append(Notification(title=title, message=message))

    @property
    def titles(self) -> List[str]:
        return [n.title for n in self.notifications]

    def clear(self) -> None:
        self.notifications.clear()
