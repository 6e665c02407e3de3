"""Camera device model and model-name aliasing."""

import hashlib
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Tuple

from turnscan.devices.gphoto import DetectedCamera


class DeviceStatus(str, Enum):
    """Camera status states."""
    IDLE = "idle"
    CAPTURING = "capturing"
    ERROR = "error"


# The same body is sold under different names per region.
# Checked in order; first substring match wins.
MODEL_ALIASES: Tuple[Tuple[str, str], ...] = (
    ("550D", "T2i"),
    ("Rebel T2i", "T2i"),
    ("T2i", "T2i"),
    ("600D", "T3i"),
    ("Rebel T3i", "T3i"),
    ("T3i", "T3i"),
)


def canonical_camera_type(model: str) -> str:
    """Resolve a reported model name to its canonical camera type."""
    for needle, camera_type in MODEL_ALIASES:
        if needle in model:
            return camera_type
    return model


def device_id_for(model: str, locator: str) -> str:
    """Stable id from model and bus locator."""
    digest = hashlib.sha1(f"{model}|{locator}".encode("utf-8")).hexdigest()
    return f"cam-{digest[:12]}"


@dataclass
class CameraDevice:
    """A camera seen during the latest detection cycle."""
    id: str
    name: str
    type: str
    locator: str
    connected: bool = False
    status: DeviceStatus = DeviceStatus.IDLE

    def __post_init__(self):
        if isinstance(self.status, str):
            self.status = DeviceStatus(self.status)

    @classmethod
    def from_detected(cls, detected: DetectedCamera, connected: bool) -> "CameraDevice":
        """Build a device from an auto-detect row."""
        return cls(
            id=device_id_for(detected.model, detected.locator),
            name=detected.model,
            type=canonical_camera_type(detected.model),
            locator=detected.locator,
            connected=connected,
            status=DeviceStatus.IDLE if connected else DeviceStatus.ERROR,
        )

    def to_dict(self) -> Dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "locator": self.locator,
            "connected": self.connected,
            "status": self.status.value,
        }
