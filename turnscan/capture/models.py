"""Captured image model."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional


@dataclass(frozen=True)
class CapturedImage:
    """
    One image produced by a complete capture sequence.

    Pipeline stages return updated copies via ``dataclasses.replace``.
    """
    id: str
    session_id: str
    camera_id: str
    camera_type: str
    captured_at: int  # epoch ms
    raw_file_path: str
    preview_ref: str
    turntable_angle: Optional[float] = None
    sharpness: Optional[float] = None
    has_color_profile: bool = False
    color_profile_type: Optional[str] = None
    has_mask: bool = False
    mask_path: Optional[str] = None

    @property
    def filename(self) -> str:
        return Path(self.raw_file_path).name

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "session_id": self.session_id,
            "camera_id": self.camera_id,
            "camera_type": self.camera_type,
            "captured_at": self.captured_at,
            "raw_file_path": self.raw_file_path,
            "preview_ref": self.preview_ref,
            "turntable_angle": self.turntable_angle,
            "sharpness": self.sharpness,
            "has_color_profile": self.has_color_profile,
            "color_profile_type": self.color_profile_type,
            "has_mask": self.has_mask,
            "mask_path": self.mask_path,
        }
