"""Shared fixtures for turnscan tests."""

import pytest

from turnscan.capture.orchestrator import CaptureOrchestrator
from turnscan.devices.registry import DeviceRegistry
from turnscan.devices.simulated import SimulatedCameraBus
from turnscan.notifications import RecordingNotifier
from turnscan.sessions.persistence import MemoryAdapter
from turnscan.sessions.store import SessionStore


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def bus():
    return SimulatedCameraBus()


@pytest.fixture
def registry(bus, notifier):
    return DeviceRegistry(bus, notifier=notifier, attempts=3, retry_delay=0, usb_fallback_delay=0)


@pytest.fixture
def orchestrator(registry, tmp_path):
    return CaptureOrchestrator(
        registry,
        capture_dir=tmp_path / "captures",
        preview_dir=tmp_path / "previews",
        autofocus_settle=0,
        refresh_delay=0,
    )


@pytest.fixture
def adapter():
    return MemoryAdapter()


@pytest.fixture
def store(adapter, notifier):
    session_store = SessionStore(adapter, notifier=notifier)
    session_store.load()
    return session_store
