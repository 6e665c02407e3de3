"""Wires the capture engine together from settings."""

from dataclasses import dataclass
from typing import Optional

from turnscan.capture.orchestrator import CaptureOrchestrator
from turnscan.capture.turntable import MotorSettings, Turntable
from turnscan.capture.workflow import ScanWorkflow
from turnscan.config import Settings, get_settings
from turnscan.devices.commands import CommandExecutor, CommandRunner
from turnscan.devices.registry import DeviceRegistry
from turnscan.devices.simulated import SimulatedCameraBus
from turnscan.notifications import ConsoleNotifier, Notifier
from turnscan.processing.pipeline import ProcessingPipeline
from turnscan.processing.profiles import ColorProfileRegistry, select_profile_backend
from turnscan.processing.segmentation import (
    DisabledSegmentationBackend,
    default_backends,
    select_segmentation_backend,
)
from turnscan.sessions.persistence import JsonFileAdapter
from turnscan.sessions.store import SessionStore
from turnscan.utils import get_logger

logger = get_logger("engine")


@dataclass
class CaptureEngine:
    """The assembled components, sharing one runner and one notifier."""
    settings: Settings
    runner: CommandRunner
    notifier: Notifier
    registry: DeviceRegistry
    orchestrator: CaptureOrchestrator
    pipeline: ProcessingPipeline
    store: SessionStore
    turntable: Turntable
    workflow: ScanWorkflow


def build_runner(settings: Settings) -> CommandRunner:
    if settings.simulation_mode:
        logger.info("Simulation mode: using simulated camera bus")
        return SimulatedCameraBus()
    return CommandExecutor(timeout=settings.command_timeout_seconds)


def build_engine(
    settings: Optional[Settings] = None,
    runner: Optional[CommandRunner] = None,
    notifier: Optional[Notifier] = None,
    load_sessions: bool = True,
) -> CaptureEngine:
    """
    Build every component from settings.

    Backends are probed once here and injected; nothing re-probes later.
    """
    settings = settings or get_settings()
    runner = runner or build_runner(settings)
    notifier = notifier or ConsoleNotifier()

    registry = DeviceRegistry(
        runner,
        notifier=notifier,
        attempts=settings.probe_attempts,
        retry_delay=settings.probe_delay_seconds,
    )
    orchestrator = CaptureOrchestrator(
        registry,
        capture_dir=settings.capture_dir,
        preview_dir=settings.preview_dir,
        autofocus=settings.autofocus_before_capture,
        autofocus_settle=settings.autofocus_settle_seconds,
        refresh_delay=settings.refresh_delay_seconds,
    )

    if settings.segmentation_enabled:
        segmentation = select_segmentation_backend(
            default_backends(
                runner,
                engine_path=settings.segmentation_engine_path,
                script_path=settings.segmentation_script_path,
                threshold=settings.segmentation_threshold,
                input_size=settings.segmentation_input_size,
            )
        )
    else:
        segmentation = DisabledSegmentationBackend()

    pipeline = ProcessingPipeline(
        profiles=ColorProfileRegistry.from_directory(settings.color_profile_dir),
        profile_backend=select_profile_backend(),
        segmentation=segmentation,
        mask_dir=settings.mask_dir,
        sharpness_threshold=settings.effective_sharpness_threshold,
        notifier=notifier,
    )

    store = SessionStore(JsonFileAdapter(settings.session_db_path), notifier=notifier)
    if load_sessions:
        store.load()

    turntable = Turntable(
        MotorSettings(
            steps_per_rotation=settings.turntable_steps_per_rotation,
            step_size=360.0 / settings.turntable_steps_per_rotation,
            scan_steps=settings.scan_steps,
            step_seconds=settings.turntable_step_seconds,
            settle_seconds=settings.turntable_settle_seconds,
        )
    )
    workflow = ScanWorkflow(orchestrator, pipeline, store, turntable)

    return CaptureEngine(
        settings=settings,
        runner=runner,
        notifier=notifier,
        registry=registry,
        orchestrator=orchestrator,
        pipeline=pipeline,
        store=store,
        turntable=turntable,
        workflow=workflow,
    )
