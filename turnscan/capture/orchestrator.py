"""Capture sequencing for one camera or all connected cameras.

One capture runs at a time per orchestrator. Requests that arrive while a
capture (or the post-capture device refresh) is running are rejected with
``ReentrancyRejected`` rather than queued; captures are human-paced, and a
rejected caller can simply try again.

The capture command itself is never retried. A failed shutter trip is
reported to the caller so the same angle is not photographed twice.
"""

import asyncio
import shutil
from pathlib import Path
from typing import List, Optional, Set, Union
from uuid import uuid4

from turnscan.capture.models import CapturedImage
from turnscan.devices import gphoto
from turnscan.devices.commands import CommandRunner
from turnscan.devices.models import CameraDevice, DeviceStatus
from turnscan.devices.registry import DeviceRegistry
from turnscan.errors import CaptureIncomplete, DeviceUnresponsive, ReentrancyRejected
from turnscan.observability import LogContext
from turnscan.utils import ensure_dir, get_logger, now_ms, safe_filename

logger = get_logger("capture.orchestrator")


class CaptureOrchestrator:
    """
    Runs the capture sequence against cameras from a ``DeviceRegistry``.

    Sequence per camera: release bus, optional autofocus and settle, force
    JPEG output, capture-and-download, verify the file, publish a preview
    copy, assemble the ``CapturedImage``.
    """

    def __init__(
        self,
        registry: DeviceRegistry,
        capture_dir: Union[str, Path],
        preview_dir: Union[str, Path],
        runner: Optional[CommandRunner] = None,
        autofocus: bool = True,
        autofocus_settle: float = 3.0,
        refresh_delay: float = 1.0,
        preview_url_prefix: str = "/previews",
    ):
        """
        Initialize orchestrator.

        Args:
            registry: Device registry (also provides bus release)
            capture_dir: Where captures are downloaded
            preview_dir: Where preview copies are published
            runner: Command boundary (defaults to the registry's)
            autofocus: Trigger autofocus before each capture
            autofocus_settle: Seconds to wait after autofocus
            refresh_delay: Seconds before the post-capture re-detection
            preview_url_prefix: Prefix for preview references
        """
        self.registry = registry
        self.runner = runner or registry.runner
        self.capture_dir = Path(capture_dir)
        self.preview_dir = Path(preview_dir)
        self.autofocus = autofocus
        self.autofocus_settle = autofocus_settle
        self.refresh_delay = refresh_delay
        self.preview_url_prefix = preview_url_prefix.rstrip("/")

        self._busy = False
        self._background: Set[asyncio.Task] = set()

    @property
    def is_busy(self) -> bool:
        """True while a capture or device refresh is running."""
        return self._busy

    def _acquire(self) -> None:
        # No await between the check and the set, so this is atomic on the loop
        if self._busy:
            logger.warning("Capture rejected: another capture is in progress")
            raise ReentrancyRejected()
        self._busy = True

    def _release(self) -> None:
        self._busy = False

    async def capture_one(
        self,
        camera: CameraDevice,
        session_id: str,
        angle: Optional[float] = None,
    ) -> CapturedImage:
        """
        Capture one image from one camera.

        Raises:
            ReentrancyRejected: Another capture or the background device refresh is in flight
            CaptureIncomplete: Any step of the sequence failed
        """
        self._acquire()
        try:
            return await self._capture_sequence(camera, session_id, angle, schedule_refresh=True)
        finally:
            self._release()

    async def capture_by_id(
        self,
        camera_id: str,
        session_id: str,
        angle: Optional[float] = None,
    ) -> CapturedImage:
        """
        Capture from a registry device by id.

        Raises:
            ReentrancyRejected: Another capture is in flight
            DeviceNotFound: No live device with that id
            CaptureIncomplete: Any step of the sequence failed
        """
        self._acquire()
        try:
            camera = self.registry.get(camera_id)
            return await self._capture_sequence(camera, session_id, angle, schedule_refresh=True)
        finally:
            self._release()

    async def verify_camera(self, camera: CameraDevice) -> None:
        """
        Probe a camera before a scan.

        Raises:
            ReentrancyRejected: A capture is in flight
            DeviceUnresponsive: Probe exhausted its retries; the camera is
                marked ``error`` and a re-detection is scheduled
        """
        self._acquire()
        try:
            responding = await self.registry.is_responding(camera.id, camera.locator)
        finally:
            self._release()

        if not responding:
            self._mark_error(camera)
            self._schedule_refresh()
            raise DeviceUnresponsive(camera.id, self.registry.attempts)

    async def refresh_devices(self) -> List[CameraDevice]:
        """
        Re-detect devices now, under the capture guard.

        Raises:
            ReentrancyRejected: A capture or refresh is in flight
        """
        self._acquire()
        try:
            return await self.registry.detect()
        finally:
            self._release()

    async def capture_all(
        self,
        cameras: List[CameraDevice],
        session_id: str,
        angle: Optional[float] = None,
    ) -> List[CapturedImage]:
        """
        Capture from every connected camera, one after another.

        A failing camera is logged and marked ``error``; the batch carries
        on. Devices are re-detected after a delay whatever the outcome.

        Raises:
            ReentrancyRejected: Another capture or the background device refresh is in flight
        """
        self._acquire()
        try:
            connected = [c for c in cameras if c.connected]
            logger.info(f"Capturing from {len(connected)} connected camera(s)")

            images: List[CapturedImage] = []
            # Strictly sequential: shared USB controllers cannot trigger in parallel
            for camera in connected:
                try:
                    image = await self._capture_sequence(camera, session_id, angle, schedule_refresh=False)
                    images.append(image)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    logger.error(f"Capture from camera {camera.id} failed, continuing: {e}")
                    self._mark_error(camera)

            logger.info(f"Captured {len(images)}/{len(connected)} image(s)")
            return images
        finally:
            self._release()
            self._schedule_refresh()

    async def _capture_sequence(
        self,
        camera: CameraDevice,
        session_id: str,
        angle: Optional[float],
        schedule_refresh: bool,
    ) -> CapturedImage:
        with LogContext(camera=camera.id, session=session_id):
            camera.status = DeviceStatus.CAPTURING
            step = "release"
            try:
                await self.registry.release_device()

                if self.autofocus:
                    step = "autofocus"
                    await self.runner.execute(
                        gphoto.set_config_command(*gphoto.AUTOFOCUS_CONFIG, locator=camera.locator)
                    )
                    if self.autofocus_settle > 0:
                        await asyncio.sleep(self.autofocus_settle)

                step = "set_format"
                await self.runner.execute(
                    gphoto.set_config_command(*gphoto.JPEG_FORMAT_CONFIG, locator=camera.locator)
                )

                step = "capture"
                captured_at = now_ms()
                filename = f"img_{captured_at}_{safe_filename(camera.id)}.jpg"
                output_path = ensure_dir(self.capture_dir) / filename
                stdout = await self.runner.execute(gphoto.capture_command(camera.locator, str(output_path)))

                step = "verify"
                if not gphoto.is_capture_response(stdout):
                    raise CaptureIncomplete(camera.id, step, "camera reported no new file")
                if not output_path.exists():
                    raise CaptureIncomplete(camera.id, step, f"{output_path} was not written")

                step = "preview"
                preview_ref = self._publish_preview(output_path)

                image = CapturedImage(
                    id=uuid4().hex[:12],
                    session_id=session_id,
                    camera_id=camera.id,
                    camera_type=camera.type,
                    captured_at=captured_at,
                    raw_file_path=str(output_path),
                    preview_ref=preview_ref,
                    turntable_angle=angle,
                )

            except asyncio.CancelledError:
                self._mark_error(camera)
                raise
            except Exception as e:
                self._mark_error(camera)
                if schedule_refresh:
                    self._schedule_refresh()
                if isinstance(e, CaptureIncomplete):
                    logger.error(str(e))
                    raise
                logger.error(f"Capture failed at {step}: {e}")
                raise CaptureIncomplete(camera.id, step, str(e)) from e

            camera.status = DeviceStatus.IDLE
            logger.info(f"Captured {image.filename} from {camera.name}")
            return image

    def _mark_error(self, camera: CameraDevice) -> None:
        camera.status = DeviceStatus.ERROR
        self.registry.mark_status(camera.id, DeviceStatus.ERROR)

    def _publish_preview(self, source: Path) -> str:
        """Copy a capture where the preview server can reach it."""
        target = ensure_dir(self.preview_dir) / source.name
        shutil.copy2(source, target)
        return f"{self.preview_url_prefix}/{source.name}"

    def _schedule_refresh(self) -> None:
        """Re-detect devices in the background after ``refresh_delay``."""
        task = asyncio.get_running_loop().create_task(self._refresh_devices())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _refresh_devices(self) -> None:
        if self.refresh_delay > 0:
            await asyncio.sleep(self.refresh_delay)
        if self._busy:
            logger.debug("Skipping device refresh: capture in progress")
            return

        self._busy = True
        try:
            await self.registry.detect()
        except Exception as e:
            logger.error(f"Device refresh failed: {e}")
        finally:
            self._busy = False

    async def wait_for_background(self) -> None:
        """Wait for scheduled device refreshes to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)
