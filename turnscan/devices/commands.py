"""External command execution boundary.

Every device command goes through a ``CommandRunner``. The default
``CommandExecutor`` validates the command against an allow-list, strips
shell metacharacters and runs it with ``asyncio.create_subprocess_exec``
(no shell, so arguments cannot be reinterpreted).
"""

import asyncio
import re
import shlex
import shutil
from typing import Dict, FrozenSet, Iterable, Optional, Protocol

from turnscan.errors import CommandFailed, CommandRejected
from turnscan.utils import get_logger

logger = get_logger("devices.commands")

ALLOWED_PROGRAMS: FrozenSet[str] = frozenset({
    "gphoto2",
    "lsusb",
    "pkill",
    "which",
    "ls",
    "mkdir",
    "cp",
    "exiftool",
    "convert",
    "python3",
})

# pkill exits 1 when nothing matched; that is the normal case for release.
TOLERATED_EXIT_CODES: Dict[str, FrozenSet[int]] = {
    "pkill": frozenset({1}),
}

_SHELL_METACHARS = re.compile(r"[;&|`$]")
_PATH_TRAVERSAL = re.compile(r"\.\./")


class CommandRunner(Protocol):
    """Anything that can run a device command and return its stdout."""

    async def execute(self, command: str) -> str:
        ...


def sanitize_command(command: str) -> str:
    """Strip shell metacharacters and path traversal sequences."""
    sanitized = _SHELL_METACHARS.sub("", command)
    sanitized = _PATH_TRAVERSAL.sub("", sanitized)
    return sanitized.strip()


def command_program(command: str) -> str:
    """First word of a command, without any directory prefix."""
    parts = command.strip().split(None, 1)
    if not parts:
        return ""
    return parts[0].rsplit("/", 1)[-1]


def validate_command(command: str, allowed: Iterable[str] = ALLOWED_PROGRAMS) -> bool:
    """Check that a command starts with an allowed program."""
    return command_program(command) in set(allowed)


class CommandExecutor:
    """Runs allow-listed commands as local subprocesses."""

    def __init__(
        self,
        timeout: Optional[float] = 60.0,
        allowed: Iterable[str] = ALLOWED_PROGRAMS,
    ):
        """
        Initialize executor.

        Args:
            timeout: Seconds before a command is killed (None = no limit)
            allowed: Program names that may be executed
        """
        self.timeout = timeout
        self.allowed = frozenset(allowed)

    async def execute(self, command: str) -> str:
        """
        Run a command and return its decoded stdout.

        Raises:
            CommandRejected: Program is not allow-listed
            CommandFailed: Non-zero exit, missing program or timeout
        """
        sanitized = sanitize_command(command)
        if not validate_command(sanitized, self.allowed):
            logger.error(f"Command validation failed: {command}")
            raise CommandRejected(command)

        args = shlex.split(sanitized)
        program = shutil.which(args[0])
        if program is None:
            raise CommandFailed(sanitized, return_code=127, stderr=f"{args[0]} not found")

        logger.debug(f"Executing: {sanitized}")
        # Using create_subprocess_exec (not shell) - arguments are passed verbatim
        proc = await asyncio.create_subprocess_exec(
            program,
            *args[1:],
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning(f"Command timed out after {self.timeout}s: {sanitized}")
            raise CommandFailed(sanitized, timed_out=True)

        out = stdout.decode("utf-8", errors="replace")
        err = stderr.decode("utf-8", errors="replace")

        if proc.returncode != 0:
            tolerated = TOLERATED_EXIT_CODES.get(command_program(sanitized), frozenset())
            if proc.returncode not in tolerated:
                raise CommandFailed(sanitized, return_code=proc.returncode, stderr=err)

        return out
