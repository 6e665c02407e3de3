"""Configuration management for turnscan."""

from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


# Minimum sharpness score (0-100) an image needs before a mask is generated.
# One value per deployment target; the simulated bus produces softer scores.
SHARPNESS_THRESHOLDS = {
    "jetson": 60.0,
    "workstation": 60.0,
    "simulation": 50.0,
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="TURNSCAN_",
        extra="ignore",
    )

    # Paths
    data_dir: Path = Field(default=Path("data"), description="Base directory for the session database")
    session_db_file: str = Field(default="sessions.json", description="Session database file name")
    capture_dir: Path = Field(default=Path("captures"), description="Where raw captures are downloaded")
    preview_dir: Path = Field(default=Path("public/previews"), description="Preview copies served to the UI")
    mask_dir: Path = Field(default=Path("masks"), description="Generated background masks")
    color_profile_dir: Path = Field(
        default=Path("camera_profiles"),
        description="Directory holding <Type>_ColorProfile.icc calibration files",
    )

    # Deployment
    deployment_target: str = Field(default="workstation", description="jetson, workstation or simulation")
    sharpness_threshold: Optional[float] = Field(
        default=None,
        description="Override for the per-target sharpness threshold",
    )
    simulation_mode: bool = Field(default=False, description="Use the simulated camera bus")

    # Capture sequence
    autofocus_before_capture: bool = Field(default=True, description="Trigger autofocus before each capture")
    autofocus_settle_seconds: float = Field(default=3.0, description="Wait after autofocus trigger")
    refresh_delay_seconds: float = Field(default=1.0, description="Delay before post-capture re-detection")
    command_timeout_seconds: float = Field(default=60.0, description="Timeout for one external command")

    # Retry policy for detection and responsiveness probing
    probe_attempts: int = Field(default=3, description="Attempts for detection and probing")
    probe_delay_seconds: float = Field(default=1.0, description="Spacing between probe attempts")

    # Segmentation
    segmentation_engine_path: Path = Field(
        default=Path("/opt/turnscan/models/efficientvit/efficientvit-l1.engine"),
        description="Accelerated segmentation engine file",
    )
    segmentation_script_path: Path = Field(
        default=Path("/opt/turnscan/scripts/efficientvit_segment.py"),
        description="Script that runs the accelerated segmentation engine",
    )
    segmentation_threshold: float = Field(default=0.75, description="Mask confidence threshold")
    segmentation_input_size: int = Field(default=1024, description="Model input resolution")
    segmentation_enabled: bool = Field(default=True, description="Disable to skip mask generation entirely")

    # Turntable
    turntable_steps_per_rotation: int = Field(default=200, description="Stepper motor steps per rotation")
    turntable_step_seconds: float = Field(default=0.02, description="Time per motor step")
    turntable_settle_seconds: float = Field(default=0.3, description="Pause after each move")
    scan_steps: int = Field(default=24, description="Stops per full 360 degree scan")

    @property
    def session_db_path(self) -> Path:
        """Full path to the session database file."""
        return self.data_dir / self.session_db_file

    @property
    def effective_sharpness_threshold(self) -> float:
        """Sharpness threshold for the configured deployment target."""
        if self.sharpness_threshold is not None:
            return self.sharpness_threshold
        return SHARPNESS_THRESHOLDS.get(self.deployment_target, SHARPNESS_THRESHOLDS["workstation"])


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get the global settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def configure(settings: Settings) -> None:
    """Override global settings."""
    global _settings
    _settings = settings
