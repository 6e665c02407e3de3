"""Tests for turntable control and the scan workflow."""

import pytest

from turnscan.capture.turntable import MotorSettings, SimulatedMotorDriver, Turntable
from turnscan.capture.workflow import ScanWorkflow
from turnscan.errors import PersistenceWriteFailed, SessionNotFound
from turnscan.processing.pipeline import ProcessingPipeline
from turnscan.processing.profiles import ColorProfileRegistry
from turnscan.processing.segmentation import BackdropSegmentationBackend, DisabledSegmentationBackend
from turnscan.sessions.models import SessionStatus

from helpers import assert_session_invariants


def make_turntable(**settings) -> Turntable:
    settings.setdefault("settle_seconds", 0)
    return Turntable(MotorSettings(**settings), SimulatedMotorDriver(realtime=False))


@pytest.fixture
def turntable():
    return make_turntable()


@pytest.fixture
def pipeline(tmp_path, notifier):
    return ProcessingPipeline(
        profiles=ColorProfileRegistry(),
        profile_backend=None,
        segmentation=DisabledSegmentationBackend(),
        mask_dir=tmp_path / "masks",
        sharpness_threshold=0.0,
        notifier=notifier,
    )


@pytest.fixture
def workflow(orchestrator, pipeline, store, turntable):
    return ScanWorkflow(orchestrator, pipeline, store, turntable)


class TestMotorSettings:
    """Tests for motor settings."""

    def test_defaults(self):
        """Test the default stepper geometry."""
        settings = MotorSettings()
        assert settings.steps_per_rotation == 200
        assert settings.degrees_per_step == 1.8
        assert settings.scan_steps == 24


class TestTurntable:
    """Tests for turntable positioning."""

    @pytest.mark.asyncio
    async def test_move_to(self, turntable):
        """Test an absolute move converts degrees to steps."""
        position = await turntable.move_to(90)

        assert position.angle == 90
        assert position.step == 50
        assert turntable.driver.moves == [50]

    @pytest.mark.asyncio
    async def test_wraps_angle(self, turntable):
        """Test angles are wrapped into one rotation."""
        await turntable.move_to(450)
        assert turntable.angle == 90

        await turntable.move_to(-90)
        assert turntable.angle == 270

    @pytest.mark.asyncio
    async def test_rotate_by(self, turntable):
        """Test relative rotation."""
        await turntable.move_to(300)
        await turntable.rotate_by(90)
        assert turntable.angle == 30

    @pytest.mark.asyncio
    async def test_home(self, turntable):
        """Test homing returns to zero."""
        await turntable.move_to(180)
        position = await turntable.home()

        assert position.angle == 0
        assert position.step == 0
        assert turntable.driver.moves == [100, -100]

    @pytest.mark.asyncio
    async def test_no_move(self, turntable):
        """Test moving to the current angle sends zero steps."""
        await turntable.move_to(0)
        assert turntable.driver.moves == [0]

    def test_scan_angles(self, turntable):
        """Test a rotation is split into equal stops."""
        assert list(turntable.scan_angles(4)) == [0, 90, 180, 270]
        assert len(list(turntable.scan_angles())) == 24

    def test_scan_angles_invalid(self, turntable):
        """Test a negative stop count is rejected."""
        with pytest.raises(ValueError):
            list(turntable.scan_angles(-1))

    @pytest.mark.asyncio
    async def test_realtime_driver_waits(self):
        """Test the simulated driver records moves in realtime mode too."""
        driver = SimulatedMotorDriver()
        turntable = Turntable(MotorSettings(step_seconds=0, settle_seconds=0), driver)
        await turntable.move_to(3.6)
        await turntable.settle()
        assert driver.moves == [2]


class TestScanWorkflow:
    """Tests for the rotate, capture, process, record loop."""

    @pytest.mark.asyncio
    async def test_capture_at_current_angle(self, workflow, registry, store, orchestrator, turntable):
        """Test every connected camera is captured and recorded."""
        session = store.create_session("Vase")
        await registry.detect()
        await turntable.move_to(45)

        images = await workflow.capture_at_current_angle(session.id)
        await orchestrator.wait_for_background()

        assert len(images) == 2
        assert all(i.turntable_angle == 45 for i in images)
        assert all(i.sharpness is not None for i in images)

        stored = store.get_session(session.id)
        assert [i.id for i in stored.images] == [i.id for i in images]
        assert stored.passes[0].images == [i.id for i in images]
        assert stored.status == SessionStatus.IN_PROGRESS
        assert_session_invariants(stored)

    @pytest.mark.asyncio
    async def test_unknown_session(self, workflow, registry, bus):
        """Test an unknown session is rejected before any capture."""
        await registry.detect()
        bus.calls.clear()

        with pytest.raises(SessionNotFound):
            await workflow.capture_at_current_angle("session-missing")

        assert bus.calls == []

    @pytest.mark.asyncio
    async def test_no_cameras(self, workflow, store):
        """Test nothing is recorded when no camera is connected."""
        session = store.create_session()

        assert await workflow.capture_at_current_angle(session.id) == []
        assert store.get_session(session.id).status == SessionStatus.INITIALIZING

    @pytest.mark.asyncio
    async def test_full_scan(self, workflow, registry, store, orchestrator, turntable):
        """Test a three-stop scan records six images and returns home."""
        session = store.create_session("Vase")
        await registry.detect()

        result = await workflow.run_full_scan(session.id, steps=3)
        await orchestrator.wait_for_background()

        assert result.angles == [0, 120, 240]
        assert result.image_count == 6
        assert turntable.angle == 0

        stored = store.get_session(session.id)
        assert [i.angle for i in stored.images] == [0, 0, 120, 120, 240, 240]
        assert stored.status == SessionStatus.IN_PROGRESS
        assert_session_invariants(stored)

    @pytest.mark.asyncio
    async def test_scan_warns_once(self, workflow, registry, store, orchestrator, notifier):
        """Test missing profiles and masks are reported once per scan."""
        session = store.create_session()
        await registry.detect()

        await workflow.run_full_scan(session.id, steps=2)
        await orchestrator.wait_for_background()

        assert notifier.titles.count("Segmentation Unavailable") == 1
        assert notifier.titles.count("Color Profile Unavailable") == 2

    @pytest.mark.asyncio
    async def test_scan_leaves_out_unresponsive_camera(self, workflow, registry, store, orchestrator, bus):
        """Test a camera failing the pre-scan check is skipped for the whole scan."""
        session = store.create_session()
        cameras = await registry.detect()
        silent = next(c for c in cameras if c.locator == "usb:001,005")
        bus.unresponsive.add(silent.locator)

        result = await workflow.run_full_scan(session.id, steps=2)
        await orchestrator.wait_for_background()

        assert result.skipped_cameras == [silent.id]
        assert result.image_count == 2
        assert {i.camera_id for i in store.get_session(session.id).images} == {cameras[0].id}
        assert not silent.connected
        assert not any(
            "--capture-image-and-download" in c and silent.locator in c for c in bus.calls
        )

    @pytest.mark.asyncio
    async def test_scan_verifies_each_camera(self, workflow, registry, store, orchestrator, bus):
        """Test every connected camera answers a summary query before the first capture."""
        session = store.create_session()
        await registry.detect()
        bus.calls.clear()

        result = await workflow.run_full_scan(session.id, steps=1)
        await orchestrator.wait_for_background()

        first_capture = next(i for i, c in enumerate(bus.calls) if "--capture-image-and-download" in c)
        summaries = [c for c in bus.calls[:first_capture] if "--summary" in c]
        assert {c.split("--port=")[1].split()[0] for c in summaries} == {"usb:001,004", "usb:001,005"}
        assert result.skipped_cameras == []

    @pytest.mark.asyncio
    async def test_scan_with_masks(self, orchestrator, registry, store, tmp_path, turntable):
        """Test masks are generated for sharp images."""
        pipeline = ProcessingPipeline(
            profiles=ColorProfileRegistry(),
            profile_backend=None,
            segmentation=BackdropSegmentationBackend(),
            mask_dir=tmp_path / "masks",
            sharpness_threshold=0.0,
        )
        workflow = ScanWorkflow(orchestrator, pipeline, store, turntable)
        session = store.create_session()
        await registry.detect()

        result = await workflow.run_full_scan(session.id, steps=1)
        await orchestrator.wait_for_background()

        assert all(i.has_mask for i in result.images)
        assert len(list((tmp_path / "masks").iterdir())) == 2
        assert all(i.has_mask for i in store.get_session(session.id).images)

    @pytest.mark.asyncio
    async def test_homes_after_failure(self, workflow, registry, store, orchestrator, turntable, monkeypatch):
        """Test the turntable returns home when the scan aborts mid-rotation."""
        session = store.create_session()
        await registry.detect()
        add_image = store.add_image_to_session
        recorded = []

        def flaky_add(session_id, image):
            recorded.append(image.id)
            if len(recorded) > 2:
                raise PersistenceWriteFailed("disk full")
            return add_image(session_id, image)

        monkeypatch.setattr(store, "add_image_to_session", flaky_add)

        with pytest.raises(PersistenceWriteFailed):
            await workflow.run_full_scan(session.id, steps=2)
        await orchestrator.wait_for_background()

        assert len(recorded) == 4
        assert turntable.angle == 0
        assert turntable.driver.moves[-1] == -100

    @pytest.mark.asyncio
    async def test_write_failure_keeps_images(self, workflow, registry, store, adapter, orchestrator):
        """Test a failed save still records every image in memory."""
        session = store.create_session()
        await registry.detect()
        adapter.fail_writes = True

        with pytest.raises(PersistenceWriteFailed):
            await workflow.capture_at_current_angle(session.id)
        await orchestrator.wait_for_background()

        assert len(store.get_session(session.id).images) == 2
