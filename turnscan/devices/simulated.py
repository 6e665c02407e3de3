"""
Simulated camera bus for running without hardware.

Answers the gphoto2 command grammar with realistic output and writes a
synthetic JPEG for every capture, so the whole capture engine can run on a
laptop or in tests.
"""

import asyncio
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Set

from PIL import Image, ImageDraw

from turnscan.errors import CommandFailed, CommandRejected
from turnscan.devices.commands import command_program, validate_command


@dataclass
class SimulatedCamera:
    """A camera attached to the simulated bus."""
    model: str
    locator: str


DEFAULT_CAMERAS = (
    SimulatedCamera("Canon EOS 550D", "usb:001,004"),
    SimulatedCamera("Canon EOS 600D", "usb:001,005"),
)


class SimulatedCameraBus:
    """
    Simulated gphoto2 bus.

    Implements the ``CommandRunner`` interface. Failure injection is done
    by locator: captures on ``failing_captures`` exit non-zero, and cameras
    in ``unresponsive`` never answer ``--summary``.
    """

    def __init__(
        self,
        cameras: Optional[Iterable[SimulatedCamera]] = None,
        latency: float = 0.0,
        image_size: tuple = (640, 480),
    ):
        """
        Initialize simulated bus.

        Args:
            cameras: Cameras attached to the bus
            latency: Seconds each command takes
            image_size: Size of synthetic captures
        """
        self.cameras: List[SimulatedCamera] = list(DEFAULT_CAMERAS if cameras is None else cameras)
        self.latency = latency
        self.image_size = image_size
        self.failing_captures: Set[str] = set()
        self.unresponsive: Set[str] = set()
        self.calls: List[str] = []
        self._capture_count = 0

    def attach(self, model: str, locator: str) -> None:
        """Plug a camera in."""
        self.cameras.append(SimulatedCamera(model, locator))

    def detach(self, locator: str) -> None:
        """Unplug a camera."""
        self.cameras = [c for c in self.cameras if c.locator != locator]

    def _camera_at(self, locator: Optional[str]) -> Optional[SimulatedCamera]:
        for camera in self.cameras:
            if camera.locator == locator:
                return camera
        return None

    async def execute(self, command: str) -> str:
        """Answer one command."""
        self.calls.append(command)
        if self.latency > 0:
            await asyncio.sleep(self.latency)

        if not validate_command(command):
            raise CommandRejected(command)

        program = command_program(command)
        if program == "pkill":
            return ""
        if program == "lsusb":
            return self._lsusb()
        if program != "gphoto2":
            return ""

        args = shlex.split(command)[1:]
        port = next((a.split("=", 1)[1] for a in args if a.startswith("--port=")), None)

        if "--auto-detect" in args:
            return self._auto_detect()
        if "--summary" in args:
            return self._summary(command, port)
        if "--set-config" in args:
            self._require_camera(command, port)
            return ""
        if "--get-config" in args:
            self._require_camera(command, port)
            return self._get_config(args[args.index("--get-config") + 1])
        if "--capture-image-and-download" in args:
            filename = next((a.split("=", 1)[1] for a in args if a.startswith("--filename=")), None)
            return self._capture(command, port, filename)

        raise CommandFailed(command, return_code=1, stderr="Unknown gphoto2 verb")

    def _require_camera(self, command: str, port: Optional[str]) -> SimulatedCamera:
        if port is None and self.cameras:
            return self.cameras[0]
        camera = self._camera_at(port)
        if camera is None:
            raise CommandFailed(command, return_code=1, stderr=f"*** Error: Could not find the requested device ({port})")
        return camera

    def _auto_detect(self) -> str:
        lines = [
            f"{'Model':<31}Port",
            "-" * 58,
        ]
        for camera in self.cameras:
            lines.append(f"{camera.model:<31}{camera.locator}")
        return "\n".join(lines) + "\n"

    def _lsusb(self) -> str:
        lines = ["Bus 001 Device 001: ID 1d6b:0002 Linux Foundation 2.0 root hub"]
        for i, camera in enumerate(self.cameras):
            lines.append(f"Bus 001 Device {i + 4:03d}: ID 04a9:31ea Canon, Inc. {camera.model}")
        return "\n".join(lines) + "\n"

    def _summary(self, command: str, port: Optional[str]) -> str:
        camera = self._require_camera(command, port)
        if camera.locator in self.unresponsive:
            return "*** Error (-53: 'Could not claim the USB device') ***\n"
        return (
            "Camera summary:\n"
            "Manufacturer: Canon Inc.\n"
            f"Model: {camera.model}\n"
            "  Version: 3-1.0.9\n"
        )

    def _get_config(self, name: str) -> str:
        if name == "imageformat":
            return (
                "Label: Image Format\n"
                "Type: RADIO\n"
                "Current: Large Fine JPEG\n"
                "Choice: 0 Large Fine JPEG\n"
                "Choice: 1 Large Normal JPEG\n"
                "Choice: 2 Small Fine JPEG\n"
                "Choice: 3 RAW\n"
            )
        return f"Label: {name}\nType: TEXT\nCurrent: 0\n"

    def _capture(self, command: str, port: Optional[str], filename: Optional[str]) -> str:
        camera = self._require_camera(command, port)
        if camera.locator in self.failing_captures:
            raise CommandFailed(command, return_code=1, stderr="*** Error (-110: 'I/O in progress') ***")
        if not filename:
            raise CommandFailed(command, return_code=1, stderr="No filename given")

        self._capture_count += 1
        path = Path(filename)
        path.parent.mkdir(parents=True, exist_ok=True)
        self._write_frame(path, self._capture_count)

        return (
            f"New file is in location /capt{self._capture_count:04d}.jpg on the camera\n"
            f"Saving file as {filename}\n"
            f"Deleting file /capt{self._capture_count:04d}.jpg on the camera\n"
        )

    def _write_frame(self, path: Path, index: int) -> None:
        """Draw a subject on a plain backdrop so masks and sharpness have something to find."""
        width, height = self.image_size
        image = Image.new("RGB", (width, height), (235, 235, 235))
        draw = ImageDraw.Draw(image)
        offset = (index * 7) % (width // 8)
        box = (width // 3 + offset, height // 4, 2 * width // 3 + offset, 3 * height // 4)
        draw.ellipse(box, fill=(160, 90, 40))
        for y in range(box[1], box[3], 12):
            draw.line((box[0], y, box[2], y), fill=(40, 30, 20), width=2)
        image.save(path, "JPEG", quality=90)
