"""Tests for the command line interface (simulated camera bus)."""

import json

import pytest
from click.testing import CliRunner

from turnscan import __version__
from turnscan.cli.main import cli


@pytest.fixture
def env(tmp_path):
    return {
        "TURNSCAN_DATA_DIR": str(tmp_path / "data"),
        "TURNSCAN_CAPTURE_DIR": str(tmp_path / "captures"),
        "TURNSCAN_PREVIEW_DIR": str(tmp_path / "previews"),
        "TURNSCAN_MASK_DIR": str(tmp_path / "masks"),
        "TURNSCAN_COLOR_PROFILE_DIR": str(tmp_path / "profiles"),
        "TURNSCAN_SIMULATION_MODE": "1",
        "TURNSCAN_REFRESH_DELAY_SECONDS": "0",
        "TURNSCAN_AUTOFOCUS_SETTLE_SECONDS": "0",
        "TURNSCAN_PROBE_DELAY_SECONDS": "0",
        "TURNSCAN_TURNTABLE_STEP_SECONDS": "0",
        "TURNSCAN_TURNTABLE_SETTLE_SECONDS": "0",
        "TURNSCAN_SCAN_STEPS": "2",
    }


@pytest.fixture
def run(env):
    runner = CliRunner()

    def invoke(*args, **kwargs):
        return runner.invoke(cli, list(args), env=env, **kwargs)

    return invoke


@pytest.fixture
def stored(tmp_path):
    """Read the session database written by the CLI."""
    def read():
        return json.loads((tmp_path / "data" / "sessions.json").read_text())["sessions"]

    return read


@pytest.fixture
def session_id(run, stored):
    result = run("session", "create", "Vase")
    assert result.exit_code == 0
    return stored()[0]["id"]


class TestGeneral:
    """Tests for top-level commands."""

    def test_version(self, run):
        """Test --version output."""
        result = run("--version")
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_status(self, run, tmp_path):
        """Test status reports configuration and creates the database."""
        result = run("status")

        assert result.exit_code == 0
        assert "Simulation Mode: True" in result.output
        assert "Stored: 0" in result.output
        assert (tmp_path / "data" / "sessions.json").exists()

    def test_simulate_flag(self, env, tmp_path):
        """Test --simulate turns on the simulated bus."""
        env = dict(env, TURNSCAN_SIMULATION_MODE="0")
        result = CliRunner().invoke(cli, ["--simulate", "status"], env=env)

        assert result.exit_code == 0
        assert "Simulation Mode: True" in result.output


class TestSessionCommands:
    """Tests for session management commands."""

    def test_list_empty(self, run):
        """Test listing with no sessions."""
        result = run("session", "list")
        assert result.exit_code == 0
        assert "No sessions" in result.output

    def test_create(self, run, stored):
        """Test creating a session."""
        result = run("session", "create", "Vase")

        assert result.exit_code == 0
        assert "Created session" in result.output
        sessions = stored()
        assert len(sessions) == 1
        assert sessions[0]["name"] == "Vase"
        assert sessions[0]["status"] == "initializing"
        assert [p["name"] for p in sessions[0]["passes"]] == ["Pass 1"]

    def test_list(self, run, session_id):
        """Test listing shows the session."""
        result = run("session", "list")
        assert result.exit_code == 0
        assert "Vase" in result.output

    def test_show(self, run, session_id):
        """Test showing a session."""
        result = run("session", "show", session_id)
        assert result.exit_code == 0
        assert "Status: initializing" in result.output
        assert "Pass 1" in result.output

    def test_show_unknown(self, run):
        """Test an unknown session id fails."""
        result = run("session", "show", "session-missing")
        assert result.exit_code == 1

    def test_add_and_complete_pass(self, run, stored, session_id):
        """Test pass commands update the stored session."""
        result = run("session", "add-pass", session_id, "--name", "Top")
        assert result.exit_code == 0
        assert "Added Top" in result.output

        pass_id = stored()[0]["passes"][1]["id"]
        result = run("session", "complete-pass", session_id, pass_id)
        assert result.exit_code == 0

        passes = stored()[0]["passes"]
        assert [p["completed"] for p in passes] == [False, True]

    def test_complete_unknown_pass(self, run, session_id):
        """Test completing a missing pass fails."""
        result = run("session", "complete-pass", session_id, "pass-missing")
        assert result.exit_code == 1

    def test_rename(self, run, stored, session_id):
        """Test renaming a session."""
        result = run("session", "rename", session_id, "Bowl")
        assert result.exit_code == 0
        assert stored()[0]["name"] == "Bowl"

    def test_delete(self, run, stored, session_id):
        """Test deleting with and without confirmation."""
        result = run("session", "delete", session_id, input="n\n")
        assert "Cancelled" in result.output
        assert len(stored()) == 1

        result = run("session", "delete", session_id, "--yes")
        assert result.exit_code == 0
        assert stored() == []


class TestCameraCommands:
    """Tests for camera commands."""

    def test_detect(self, run):
        """Test simulated cameras are listed."""
        result = run("cameras", "detect")
        assert result.exit_code == 0
        assert "T2i" in result.output
        assert "T3i" in result.output

    def test_check(self, run):
        """Test a responding camera passes the check."""
        result = run("cameras", "check", "usb:001,004")
        assert result.exit_code == 0
        assert "is responding" in result.output

    def test_check_missing(self, run):
        """Test a missing camera fails the check."""
        result = run("cameras", "check", "usb:009,009")
        assert result.exit_code == 1

    def test_config(self, run):
        """Test config choices are listed."""
        result = run("cameras", "config", "usb:001,004", "imageformat")
        assert result.exit_code == 0, result.output
        assert "Small Fine JPEG" in result.output
        assert "RAW" in result.output

    def test_config_missing_camera(self, run):
        """Test reading config from a missing camera fails."""
        result = run("cameras", "config", "usb:009,009", "imageformat")
        assert result.exit_code == 1
        assert "Could not read imageformat" in result.output


class TestCaptureCommands:
    """Tests for capture and scan."""

    def test_capture(self, run, stored, session_id, tmp_path):
        """Test capturing from both simulated cameras."""
        result = run("capture", session_id, "--angle", "90")

        assert result.exit_code == 0, result.output
        images = stored()[0]["images"]
        assert len(images) == 2
        assert all(i["angle"] == 90 for i in images)
        assert stored()[0]["status"] == "in_progress"
        assert len(list((tmp_path / "captures").iterdir())) == 2

    def test_capture_unknown_session(self, run):
        """Test capturing into a missing session fails."""
        result = run("capture", "session-missing")
        assert result.exit_code == 1
        assert "Capture failed" in result.output

    def test_scan(self, run, stored, session_id):
        """Test a scan captures at every stop."""
        result = run("scan", session_id)

        assert result.exit_code == 0, result.output
        assert "Scan Complete" in result.output
        images = stored()[0]["images"]
        assert [i["angle"] for i in images] == [0, 0, 180, 180]
