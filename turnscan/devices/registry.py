"""Camera detection, responsiveness probing and bus release.

Detection runs on every cycle; devices are never persisted. Nothing in this
module raises to its caller for hardware trouble: detection degrades to an
empty list and probing degrades to ``False``.
"""

import asyncio
from typing import Dict, List, Optional

from turnscan.devices import gphoto
from turnscan.devices.commands import CommandRunner
from turnscan.devices.models import CameraDevice, DeviceStatus
from turnscan.errors import DeviceNotFound
from turnscan.notifications import Notifier, RecordingNotifier
from turnscan.retry import retry_async
from turnscan.utils import get_logger

logger = get_logger("devices.registry")


class DeviceRegistry:
    """
    Tracks cameras attached to the gphoto2 bus.

    Desktop volume monitors (gvfs) grab PTP cameras as soon as they appear,
    so every probe is preceded by releasing the bus.
    """

    # Helper processes that lock the camera
    RELEASE_TARGETS = ("gvfsd-gphoto2", "gvfsd", "gvfs-gphoto2-volume-monitor")

    def __init__(
        self,
        runner: CommandRunner,
        notifier: Optional[Notifier] = None,
        attempts: int = 3,
        retry_delay: float = 1.0,
        usb_fallback_delay: float = 3.0,
    ):
        """
        Initialize registry.

        Args:
            runner: Command execution boundary
            notifier: User-facing warning sink
            attempts: Attempts for detection and responsiveness probes
            retry_delay: Seconds between attempts
            usb_fallback_delay: Wait after the aggressive release in the lsusb fallback
        """
        self.runner = runner
        self.notifier = notifier or RecordingNotifier()
        self.attempts = attempts
        self.retry_delay = retry_delay
        self.usb_fallback_delay = usb_fallback_delay
        self._devices: Dict[str, CameraDevice] = {}

    @property
    def devices(self) -> List[CameraDevice]:
        """All devices from the latest detection cycle."""
        return list(self._devices.values())

    @property
    def connected_devices(self) -> List[CameraDevice]:
        """Devices that answered their responsiveness probe."""
        return [d for d in self._devices.values() if d.connected]

    def get(self, device_id: str) -> CameraDevice:
        """
        Get a live device by id.

        Raises:
            DeviceNotFound: Unknown id or device no longer connected
        """
        device = self._devices.get(device_id)
        if device is None or not device.connected:
            raise DeviceNotFound(device_id)
        return device

    def mark_status(self, device_id: str, status: DeviceStatus) -> None:
        """Update a known device's status."""
        device = self._devices.get(device_id)
        if device is not None:
            device.status = status

    async def release_device(self) -> None:
        """Terminate helper processes holding the camera bus (best effort)."""
        for target in self.RELEASE_TARGETS:
            try:
                await self.runner.execute(f"pkill -f {target}")
            except Exception as e:
                logger.debug(f"Release of {target} failed: {e}")

    async def _auto_detect(self) -> str:
        return await self.runner.execute(gphoto.auto_detect_command())

    async def detect(self) -> List[CameraDevice]:
        """
        Detect attached cameras and probe each one.

        Returns:
            Devices seen this cycle, plus previously known devices that
            vanished (reported disconnected). Empty on total failure.
        """
        logger.info("Detecting cameras")
        try:
            await self.release_device()

            result = await retry_async(
                self._auto_detect,
                attempts=self.attempts,
                delay=self.retry_delay,
                predicate=gphoto.has_detect_header,
                before_attempt=self.release_device,
                description="Camera detection",
            )
            output = result.value or ""

            if not result.success:
                output = await self._usb_fallback()

            if not gphoto.has_detect_header(output):
                self._mark_all_disconnected()
                self.notifier.warn(
                    "Camera Detection Failed",
                    "Unable to detect cameras. Check USB connections and try again.",
                )
                return []

            candidates = gphoto.parse_auto_detect(output)
            logger.info(f"Auto-detect reported {len(candidates)} camera(s)")

            seen: Dict[str, CameraDevice] = {}
            # Sequential: probing two cameras at once contends for the bus
            for candidate in candidates:
                fresh = CameraDevice.from_detected(candidate, connected=False)
                # Keep the existing object so callers holding it see the update
                device = self._devices.get(fresh.id, fresh)
                responding = await self.is_responding(device.id, device.locator)
                device.connected = responding
                device.status = DeviceStatus.IDLE if responding else DeviceStatus.ERROR
                seen[device.id] = device

            for device_id, previous in self._devices.items():
                if device_id not in seen:
                    previous.connected = False
                    previous.status = DeviceStatus.ERROR
                    seen[device_id] = previous

            self._devices = seen
            return self.devices

        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Camera detection error: {e}")
            self._mark_all_disconnected()
            self.notifier.warn(
                "Camera Detection Failed",
                "Unable to connect to cameras. Check USB connections and try again.",
            )
            return []

    async def _usb_fallback(self) -> str:
        """Check lsusb for a Canon body gphoto2 could not see and retry once."""
        try:
            lsusb_output = await self.runner.execute("lsusb")
        except Exception as e:
            logger.debug(f"lsusb check failed: {e}")
            return ""

        if "canon" not in lsusb_output.lower():
            return ""

        logger.warning("Canon camera visible on USB but not to gphoto2")
        self.notifier.warn(
            "Camera Connection Issue",
            "Camera detected on USB but not by gphoto2. Trying to release camera.",
        )
        await self.release_device()
        if self.usb_fallback_delay > 0:
            await asyncio.sleep(self.usb_fallback_delay)

        try:
            return await self._auto_detect()
        except Exception as e:
            logger.debug(f"Auto-detect after release failed: {e}")
            return ""

    def _mark_all_disconnected(self) -> None:
        for device in self._devices.values():
            device.connected = False
            device.status = DeviceStatus.ERROR

    async def is_responding(self, device_id: str, locator: Optional[str]) -> bool:
        """
        Check whether a camera answers a summary query.

        Up to ``attempts`` queries, each preceded by a bus release.
        Never raises.
        """
        if not locator:
            logger.error(f"No locator for camera {device_id}")
            return False

        async def query() -> str:
            return await self.runner.execute(gphoto.summary_command(locator))

        try:
            result = await retry_async(
                query,
                attempts=self.attempts,
                delay=self.retry_delay,
                predicate=gphoto.is_summary_response,
                before_attempt=self.release_device,
                description=f"Camera {device_id} response check",
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error(f"Error checking camera {device_id}: {e}")
            return False

        logger.info(f"Camera {device_id} responsive: {result.success}")
        return result.success

    async def get_config_choices(self, locator: str, name: str) -> List[str]:
        """
        List the values a camera offers for one config entry.

        Raises:
            CommandFailed: The camera did not answer the query
        """
        await self.release_device()
        output = await self.runner.execute(gphoto.get_config_command(name, locator))
        choices = gphoto.parse_config_choices(output)
        logger.debug(f"{name} on {locator}: {len(choices)} choice(s)")
        return choices
