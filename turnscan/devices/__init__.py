"""Camera device management: command boundary, gphoto2 grammar, detection."""

from turnscan.devices.commands import (
    ALLOWED_PROGRAMS,
    CommandExecutor,
    CommandRunner,
    sanitize_command,
    validate_command,
)
from turnscan.devices.gphoto import DetectedCamera, parse_auto_detect
from turnscan.devices.models import (
    CameraDevice,
    DeviceStatus,
    canonical_camera_type,
    device_id_for,
)
from turnscan.devices.registry import DeviceRegistry
from turnscan.devices.simulated import SimulatedCamera, SimulatedCameraBus

__all__ = [
    # Commands
    "ALLOWED_PROGRAMS",
    "CommandExecutor",
    "CommandRunner",
    "sanitize_command",
    "validate_command",
    # gphoto2
    "DetectedCamera",
    "parse_auto_detect",
    # Models
    "CameraDevice",
    "DeviceStatus",
    "canonical_camera_type",
    "device_id_for",
    # Registry
    "DeviceRegistry",
    # Simulation
    "SimulatedCamera",
    "SimulatedCameraBus",
]
