"""Tests for the capture orchestrator."""

import asyncio
from pathlib import Path

import pytest

from turnscan.capture.orchestrator import CaptureOrchestrator
from turnscan.devices.models import DeviceStatus
from turnscan.devices.registry import DeviceRegistry
from turnscan.devices.simulated import SimulatedCamera, SimulatedCameraBus
from turnscan.errors import (
    CaptureIncomplete,
    DeviceNotFound,
    DeviceUnresponsive,
    ReentrancyRejected,
)
from turnscan.notifications import RecordingNotifier
from turnscan.utils import safe_filename


class BlockingBus(SimulatedCameraBus):
    """Simulated bus that holds capture commands until released."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def execute(self, command: str) -> str:
        if "--capture-image-and-download" in command:
            self.entered.set()
            await self.release.wait()
        return await super().execute(command)


class DetectBlockingBus(SimulatedCameraBus):
    """Simulated bus that holds auto-detect commands once armed."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.armed = False
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def execute(self, command: str) -> str:
        if self.armed and "--auto-detect" in command:
            self.entered.set()
            await self.release.wait()
        return await super().execute(command)


class SilentCaptureBus(SimulatedCameraBus):
    """Reports a saved file without writing one."""

    async def execute(self, command: str) -> str:
        if "--capture-image-and-download" in command:
            self.calls.append(command)
            return "New file is in location /capt0001.jpg on the camera\n"
        return await super().execute(command)


def make_orchestrator(bus, tmp_path, **kwargs) -> CaptureOrchestrator:
    registry = DeviceRegistry(bus, notifier=RecordingNotifier(), retry_delay=0, usb_fallback_delay=0)
    return CaptureOrchestrator(
        registry,
        capture_dir=tmp_path / "captures",
        preview_dir=tmp_path / "previews",
        autofocus_settle=0,
        refresh_delay=0,
        **kwargs,
    )


class TestCaptureOne:
    """Tests for single-camera capture."""

    @pytest.mark.asyncio
    async def test_capture_produces_image(self, orchestrator, registry, tmp_path):
        """Test a complete capture sequence."""
        camera = (await registry.detect())[0]

        image = await orchestrator.capture_one(camera, "session-1", angle=15.0)
        await orchestrator.wait_for_background()

        assert image.session_id == "session-1"
        assert image.camera_id == camera.id
        assert image.camera_type == "T2i"
        assert image.turntable_angle == 15.0
        assert Path(image.raw_file_path).exists()
        assert Path(image.raw_file_path).parent == tmp_path / "captures"
        assert (tmp_path / "previews" / image.filename).exists()
        assert image.preview_ref == f"/previews/{image.filename}"
        assert not image.has_color_profile
        assert not image.has_mask
        assert camera.status == DeviceStatus.IDLE

    @pytest.mark.asyncio
    async def test_command_order(self, orchestrator, registry, bus):
        """Test release, autofocus, format, capture run in order."""
        camera = (await registry.detect())[0]
        bus.calls.clear()

        await orchestrator.capture_one(camera, "session-1")
        sequence = list(bus.calls)
        await orchestrator.wait_for_background()

        autofocus = next(i for i, c in enumerate(sequence) if "autofocusdrive=1" in c)
        image_format = next(i for i, c in enumerate(sequence) if "imageformat=2" in c)
        capture = next(i for i, c in enumerate(sequence) if "--capture-image-and-download" in c)
        assert sequence[0].startswith("pkill -f")
        assert autofocus < image_format < capture
        assert f"--port={camera.locator}" in sequence[capture]

    @pytest.mark.asyncio
    async def test_autofocus_disabled(self, bus, tmp_path):
        """Test autofocus can be skipped."""
        orchestrator = make_orchestrator(bus, tmp_path, autofocus=False)
        camera = (await orchestrator.registry.detect())[0]

        await orchestrator.capture_one(camera, "session-1")
        await orchestrator.wait_for_background()

        assert not any("autofocusdrive" in c for c in bus.calls)

    @pytest.mark.asyncio
    async def test_image_ids(self, orchestrator, registry):
        """Test ids are random hex while the file name carries time and camera."""
        camera = (await registry.detect())[0]

        first = await orchestrator.capture_one(camera, "session-1")
        await orchestrator.wait_for_background()
        second = await orchestrator.capture_one(camera, "session-1")
        await orchestrator.wait_for_background()

        assert first.id != second.id
        for image in (first, second):
            assert len(image.id) == 12
            int(image.id, 16)
            assert image.filename == f"img_{image.captured_at}_{safe_filename(camera.id)}.jpg"

    @pytest.mark.asyncio
    async def test_capture_dir_with_spaces(self, registry, tmp_path):
        """Test captures land in a directory whose path contains spaces."""
        capture_dir = tmp_path / "my captures"
        orchestrator = CaptureOrchestrator(
            registry,
            capture_dir=capture_dir,
            preview_dir=tmp_path / "my previews",
            autofocus_settle=0,
            refresh_delay=0,
        )
        camera = (await registry.detect())[0]

        image = await orchestrator.capture_one(camera, "session-1")
        await orchestrator.wait_for_background()

        assert Path(image.raw_file_path).parent == capture_dir
        assert Path(image.raw_file_path).exists()
        assert (tmp_path / "my previews" / image.filename).exists()

    @pytest.mark.asyncio
    async def test_capture_failure(self, orchestrator, registry, bus):
        """Test a failed shutter trip aborts and marks the camera."""
        camera = (await registry.detect())[0]
        bus.failing_captures.add(camera.locator)

        with pytest.raises(CaptureIncomplete) as exc_info:
            await orchestrator.capture_one(camera, "session-1")

        assert exc_info.value.step == "capture"
        assert exc_info.value.device_id == camera.id
        assert camera.status == DeviceStatus.ERROR
        captures = [c for c in bus.calls if "--capture-image-and-download" in c]
        assert len(captures) == 1
        await orchestrator.wait_for_background()

    @pytest.mark.asyncio
    async def test_failure_schedules_redetection(self, orchestrator, registry, bus):
        """Test the background refresh reconciles status after a failure."""
        camera = (await registry.detect())[0]
        bus.failing_captures.add(camera.locator)
        with pytest.raises(CaptureIncomplete):
            await orchestrator.capture_one(camera, "session-1")
        bus.failing_captures.clear()

        detects_before = sum(1 for c in bus.calls if "--auto-detect" in c)
        await orchestrator.wait_for_background()

        assert sum(1 for c in bus.calls if "--auto-detect" in c) == detects_before + 1
        assert camera.status == DeviceStatus.IDLE

    @pytest.mark.asyncio
    async def test_missing_artifact(self, tmp_path):
        """Test a capture that writes no file is incomplete."""
        bus = SilentCaptureBus()
        orchestrator = make_orchestrator(bus, tmp_path)
        camera = (await orchestrator.registry.detect())[0]

        with pytest.raises(CaptureIncomplete) as exc_info:
            await orchestrator.capture_one(camera, "session-1")
        await orchestrator.wait_for_background()

        assert exc_info.value.step == "verify"
        assert not (tmp_path / "previews").exists() or not any((tmp_path / "previews").iterdir())

    @pytest.mark.asyncio
    async def test_guard_released_after_failure(self, orchestrator, registry, bus):
        """Test a failed capture does not leave the orchestrator busy."""
        camera = (await registry.detect())[0]
        bus.failing_captures.add(camera.locator)
        with pytest.raises(CaptureIncomplete):
            await orchestrator.capture_one(camera, "session-1")
        await orchestrator.wait_for_background()

        bus.failing_captures.clear()
        assert not orchestrator.is_busy
        image = await orchestrator.capture_one(camera, "session-1")
        assert image.camera_id == camera.id
        await orchestrator.wait_for_background()


class TestCaptureById:
    """Tests for capture by device id."""

    @pytest.mark.asyncio
    async def test_unknown_device(self, orchestrator, registry):
        """Test unknown ids raise DeviceNotFound and release the guard."""
        await registry.detect()
        with pytest.raises(DeviceNotFound):
            await orchestrator.capture_by_id("cam-missing", "session-1")
        assert not orchestrator.is_busy

    @pytest.mark.asyncio
    async def test_known_device(self, orchestrator, registry):
        """Test capture through the registry id."""
        camera = (await registry.detect())[1]
        image = await orchestrator.capture_by_id(camera.id, "session-1")
        await orchestrator.wait_for_background()
        assert image.camera_type == "T3i"


class TestReentrancy:
    """Tests for the busy guard."""

    @pytest.mark.asyncio
    async def test_second_capture_rejected(self, tmp_path):
        """Test an overlapping capture is rejected with no device commands."""
        bus = BlockingBus()
        orchestrator = make_orchestrator(bus, tmp_path)
        camera = (await orchestrator.registry.detect())[0]

        first = asyncio.create_task(orchestrator.capture_one(camera, "session-1"))
        await bus.entered.wait()
        assert orchestrator.is_busy
        assert camera.status == DeviceStatus.CAPTURING

        calls_before = len(bus.calls)
        with pytest.raises(ReentrancyRejected):
            await orchestrator.capture_one(camera, "session-1")
        with pytest.raises(ReentrancyRejected):
            await orchestrator.capture_all([camera], "session-1")
        assert len(bus.calls) == calls_before

        bus.release.set()
        image = await first
        await orchestrator.wait_for_background()
        assert image.camera_id == camera.id
        assert not orchestrator.is_busy

    @pytest.mark.asyncio
    async def test_refresh_skipped_while_busy(self, tmp_path):
        """Test the background refresh does not run during a capture."""
        bus = BlockingBus()
        orchestrator = make_orchestrator(bus, tmp_path)
        camera = (await orchestrator.registry.detect())[0]
        detects = sum(1 for c in bus.calls if "--auto-detect" in c)

        first = asyncio.create_task(orchestrator.capture_one(camera, "session-1"))
        await bus.entered.wait()
        orchestrator._schedule_refresh()
        await asyncio.sleep(0)
        await asyncio.sleep(0)
        assert sum(1 for c in bus.calls if "--auto-detect" in c) == detects

        bus.release.set()
        await first
        await orchestrator.wait_for_background()

    @pytest.mark.asyncio
    async def test_capture_rejected_during_refresh(self, tmp_path):
        """Test a capture issued while devices are re-detected is rejected."""
        bus = DetectBlockingBus()
        orchestrator = make_orchestrator(bus, tmp_path)
        camera = (await orchestrator.registry.detect())[0]

        bus.armed = True
        orchestrator._schedule_refresh()
        await bus.entered.wait()
        assert orchestrator.is_busy

        with pytest.raises(ReentrancyRejected):
            await orchestrator.capture_one(camera, "session-1")
        assert not any("--capture-image-and-download" in c for c in bus.calls)

        bus.release.set()
        await orchestrator.wait_for_background()
        assert not orchestrator.is_busy

        image = await orchestrator.capture_one(camera, "session-1")
        await orchestrator.wait_for_background()
        assert Path(image.raw_file_path).exists()


class TestCaptureAll:
    """Tests for batch capture."""

    @pytest.mark.asyncio
    async def test_one_device_failure_isolated(self, tmp_path):
        """Test device 2 failing does not stop devices 1 and 3."""
        bus = SimulatedCameraBus(cameras=[
            SimulatedCamera("Canon EOS 550D", "usb:001,004"),
            SimulatedCamera("Canon EOS 600D", "usb:001,005"),
            SimulatedCamera("Canon EOS Rebel T2i", "usb:001,006"),
        ])
        orchestrator = make_orchestrator(bus, tmp_path)
        cameras = await orchestrator.registry.detect()
        assert len(cameras) == 3
        bus.failing_captures.add(cameras[1].locator)

        images = await orchestrator.capture_all(cameras, "session-1", angle=0.0)

        assert [i.camera_id for i in images] == [cameras[0].id, cameras[2].id]
        assert cameras[1].status == DeviceStatus.ERROR
        assert cameras[0].status == DeviceStatus.IDLE
        assert cameras[2].status == DeviceStatus.IDLE
        assert not orchestrator.is_busy
        await orchestrator.wait_for_background()

    @pytest.mark.asyncio
    async def test_skips_disconnected(self, orchestrator, registry, bus):
        """Test only connected cameras are triggered."""
        bus.unresponsive.add("usb:001,005")
        cameras = await registry.detect()

        images = await orchestrator.capture_all(cameras, "session-1")
        await orchestrator.wait_for_background()

        assert len(images) == 1
        captures = [c for c in bus.calls if "--capture-image-and-download" in c]
        assert len(captures) == 1
        assert "usb:001,004" in captures[0]

    @pytest.mark.asyncio
    async def test_refresh_after_batch(self, orchestrator, registry, bus):
        """Test devices are re-detected after the batch."""
        cameras = await registry.detect()
        await orchestrator.capture_all(cameras, "session-1")
        detects = sum(1 for c in bus.calls if "--auto-detect" in c)

        await orchestrator.wait_for_background()
        assert sum(1 for c in bus.calls if "--auto-detect" in c) == detects + 1

    @pytest.mark.asyncio
    async def test_no_cameras(self, orchestrator):
        """Test an empty batch returns no images."""
        assert await orchestrator.capture_all([], "session-1") == []
        await orchestrator.wait_for_background()


class TestVerifyCamera:
    """Tests for pre-scan verification."""

    @pytest.mark.asyncio
    async def test_unresponsive_camera(self, orchestrator, registry, bus):
        """Test an unresponsive camera is marked and reported."""
        camera = (await registry.detect())[0]
        bus.unresponsive.add(camera.locator)

        with pytest.raises(DeviceUnresponsive) as exc_info:
            await orchestrator.verify_camera(camera)

        assert exc_info.value.attempts == 3
        assert camera.status == DeviceStatus.ERROR
        await orchestrator.wait_for_background()

    @pytest.mark.asyncio
    async def test_responsive_camera(self, orchestrator, registry):
        """Test a healthy camera passes."""
        camera = (await registry.detect())[0]
        await orchestrator.verify_camera(camera)
        assert camera.status == DeviceStatus.IDLE
