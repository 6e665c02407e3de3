"""Capture orchestration, turntable control and the scan workflow."""

from turnscan.capture.models import CapturedImage
from turnscan.capture.orchestrator import CaptureOrchestrator
from turnscan.capture.turntable import (
    MotorDriver,
    MotorPosition,
    MotorSettings,
    SimulatedMotorDriver,
    Turntable,
)
from turnscan.capture.workflow import ScanResult, ScanWorkflow

__all__ = [
    "CapturedImage",
    "CaptureOrchestrator",
    "MotorDriver",
    "MotorPosition",
    "MotorSettings",
    "SimulatedMotorDriver",
    "Turntable",
    "ScanResult",
    "ScanWorkflow",
]
