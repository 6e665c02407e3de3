"""Exception hierarchy for turnscan.

Hard failures (device, capture, persistence writes, unknown ids) are raised
to the caller. Soft failures (colour profile, segmentation, corrupt session
file) are logged and reported through the notifier instead; their exception
types exist so backends can signal them and callers can catch them.
"""

from typing import Optional


class TurnscanError(Exception):
    """Base class for all turnscan errors."""
    pass


# Command execution

class CommandError(TurnscanError):
    """An external command could not be run."""

    def __init__(self, command: str, message: str):
        self.command = command
        super().__init__(f"{message}: {command}")


class CommandRejected(CommandError):
    """Command is not on the allow-list."""

    def __init__(self, command: str):
        super().__init__(command, "Command not allowed")


class CommandFailed(CommandError):
    """Command exited non-zero or timed out."""

    def __init__(
        self,
        command: str,
        return_code: Optional[int] = None,
        stderr: str = "",
        timed_out: bool = False,
    ):
        self.return_code = return_code
        self.stderr = stderr
        self.timed_out = timed_out
        if timed_out:
            message = "Command timed out"
        else:
            message = f"Command exited with code {return_code}"
        super().__init__(command, message)


# Devices and capture

class DeviceNotFound(TurnscanError):
    """No live device has the requested id."""

    def __init__(self, device_id: str):
        self.device_id = device_id
        super().__init__(f"Camera {device_id} not found")


class DeviceUnresponsive(TurnscanError):
    """Responsiveness probe exhausted its retries."""

    def __init__(self, device_id: str, attempts: int):
        self.device_id = device_id
        self.attempts = attempts
        super().__init__(f"Camera {device_id} did not respond after {attempts} attempts")


class CaptureIncomplete(TurnscanError):
    """Capture sequence aborted before a complete image was produced."""

    def __init__(self, device_id: str, step: str, reason: str = ""):
        self.device_id = device_id
        self.step = step
        detail = f": {reason}" if reason else ""
        super().__init__(f"Capture on camera {device_id} failed at {step}{detail}")


class ReentrancyRejected(TurnscanError):
    """A capture was requested while another one is in flight."""

    def __init__(self):
        super().__init__("A capture is already in progress")


# Processing (soft failures)

class ProfileUnavailable(TurnscanError):
    """No colour profile is registered or the profile backend failed."""
    pass


class SegmentationUnavailable(TurnscanError):
    """Segmentation backend is missing or errored."""
    pass


# Persistence and sessions

class PersistenceCorrupt(TurnscanError):
    """Session document failed structural validation."""
    pass


class PersistenceWriteFailed(TurnscanError):
    """Atomic write of the session document failed."""
    pass


class SessionNotFound(TurnscanError):
    """No session has the requested id."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session {session_id} not found")


class PassNotFound(TurnscanError):
    """The session has no pass with the requested id."""

    def __init__(self, session_id: str, pass_id: str):
        self.session_id = session_id
        self.pass_id = pass_id
        super().__init__(f"Pass {pass_id} not found in session {session_id}")


class InvalidTransition(TurnscanError):
    """A session status change would move backwards or skip a state."""

    def __init__(self, current: str, target: str):
        self.current = current
        self.target = target
        super().__init__(f"Cannot move session from {current} to {target}")


class ImageNotFound(TurnscanError):
    """The session has no image with the requested id."""

    def __init__(self, session_id: str, image_id: str):
        self.session_id = session_id
        self.image_id = image_id
        super().__init__(f"Image {image_id} not found in session {session_id}")


class DuplicateImage(TurnscanError, ValueError):
    """An image id is already recorded in the session."""

    def __init__(self, session_id: str, image_id: str):
        self.session_id = session_id
        self.image_id = image_id
        super().__init__(f"Image {image_id} is already in session {session_id}")
