"""Turntable scan workflow: rotate, capture, process, record."""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, List, Optional

from turnscan.capture.models import CapturedImage
from turnscan.capture.orchestrator import CaptureOrchestrator
from turnscan.capture.turntable import Turntable
from turnscan.errors import DeviceUnresponsive, PersistenceWriteFailed
from turnscan.utils import get_logger

if TYPE_CHECKING:
    from turnscan.processing.pipeline import ProcessingPipeline
    from turnscan.sessions.store import SessionStore

logger = get_logger("capture.workflow")


@dataclass
class ScanResult:
    """Outcome of a full turntable scan."""
    session_id: str
    angles: List[float] = field(default_factory=list)
    images: List[CapturedImage] = field(default_factory=list)
    skipped_cameras: List[str] = field(default_factory=list)

    @property
    def image_count(self) -> int:
        return len(self.images)


class ScanWorkflow:
    """
    Connects the turntable, the orchestrator, the pipeline and the store.

    Each stop: capture from every connected camera, process each image,
    then append it to the session's active pass.
    """

    def __init__(
        self,
        orchestrator: CaptureOrchestrator,
        pipeline: "ProcessingPipeline",
        store: "SessionStore",
        turntable: Optional[Turntable] = None,
    ):
        self.orchestrator = orchestrator
        self.pipeline = pipeline
        self.store = store
        self.turntable = turntable or Turntable()

    async def capture_at_current_angle(self, session_id: str) -> List[CapturedImage]:
        """
        Capture from every connected camera at the turntable's current angle.

        Raises:
            SessionNotFound: Unknown session (checked before any capture)
            ReentrancyRejected: A capture is already in flight
            PersistenceWriteFailed: Images were recorded in memory but not saved
        """
        self.store.get_session(session_id)

        # A refresh still pending from the previous stop would reject the capture
        await self.orchestrator.wait_for_background()
        cameras = self.orchestrator.registry.connected_devices
        images = await self.orchestrator.capture_all(cameras, session_id, angle=self.turntable.angle)

        processed: List[CapturedImage] = []
        write_error: Optional[PersistenceWriteFailed] = None
        for image in images:
            image = await self.pipeline.process_image(image)
            try:
                self.store.add_image_to_session(session_id, image)
            except PersistenceWriteFailed as e:
                # Keep recording; the in-memory document still has the image
                write_error = e
            processed.append(image)

        if write_error is not None:
            raise write_error
        return processed

    async def verify_cameras(self) -> List[str]:
        """
        Check every connected camera before a scan.

        Cameras that do not respond are left out of the scan: they are
        marked ``error`` and the device list is refreshed so they no longer
        count as connected.

        Returns:
            Ids of the cameras that did not respond
        """
        await self.orchestrator.wait_for_background()
        unresponsive: List[str] = []
        for camera in list(self.orchestrator.registry.connected_devices):
            try:
                await self.orchestrator.verify_camera(camera)
            except DeviceUnresponsive as e:
                logger.warning(f"{e}; leaving it out of this scan")
                unresponsive.append(camera.id)

        if unresponsive:
            await self.orchestrator.wait_for_background()
            await self.orchestrator.refresh_devices()
        return unresponsive

    async def run_full_scan(self, session_id: str, steps: Optional[int] = None) -> ScanResult:
        """
        Verify the cameras, home the turntable, capture at each stop of a
        full rotation, return home.

        Raises:
            SessionNotFound: Unknown session
            ReentrancyRejected: A capture is already in flight
        """
        self.store.get_session(session_id)
        result = ScanResult(session_id=session_id)
        result.skipped_cameras = await self.verify_cameras()

        await self.turntable.home()
        try:
            for angle in self.turntable.scan_angles(steps):
                await self.turntable.move_to(angle)
                await self.turntable.settle()

                images = await self.capture_at_current_angle(session_id)
                result.angles.append(angle)
                result.images.extend(images)
                logger.info(f"Angle {angle:.1f}: {len(images)} image(s)")
        finally:
            await self.turntable.home()

        logger.info(f"Scan complete: {result.image_count} image(s) over {len(result.angles)} stop(s)")
        return result
