"""Per-camera-type colour calibration profiles.

Profiles are ICC files named ``<Type>_ColorProfile.icc`` (for example
``T2i_ColorProfile.icc``) keyed by the canonical camera type, so regional
model names share one calibration.
"""

import asyncio
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union

from turnscan.errors import ProfileUnavailable
from turnscan.utils import get_logger

logger = get_logger("processing.profiles")

PROFILE_SUFFIX = "_ColorProfile.icc"


class ColorProfileRegistry:
    """Maps canonical camera types to calibration profile files."""

    def __init__(self, profiles: Optional[Dict[str, Union[str, Path]]] = None):
        self._profiles: Dict[str, Path] = {
            camera_type: Path(path) for camera_type, path in (profiles or {}).items()
        }

    @classmethod
    def from_directory(cls, directory: Union[str, Path]) -> "ColorProfileRegistry":
        """Register every ``<Type>_ColorProfile.icc`` file in a directory."""
        registry = cls()
        directory = Path(directory)
        if not directory.is_dir():
            logger.info(f"Colour profile directory not found: {directory}")
            return registry

        for path in sorted(directory.glob(f"*{PROFILE_SUFFIX}")):
            camera_type = path.name[: -len(PROFILE_SUFFIX)]
            registry.register(camera_type, path)
        logger.info(f"Loaded {len(registry)} colour profile(s) from {directory}")
        return registry

    def register(self, camera_type: str, path: Union[str, Path]) -> None:
        self._profiles[camera_type] = Path(path)

    def get(self, camera_type: str) -> Optional[Path]:
        return self._profiles.get(camera_type)

    @property
    def camera_types(self) -> List[str]:
        return sorted(self._profiles)

    def __contains__(self, camera_type: str) -> bool:
        return camera_type in self._profiles

    def __len__(self) -> int:
        return len(self._profiles)


class ProfileBackend(ABC):
    """Applies a calibration profile to an image file in place."""

    name: str = "base"

    @abstractmethod
    def is_available(self) -> bool:
        """Whether this backend can run on this host."""

    @abstractmethod
    async def apply(self, image_path: Path, profile_path: Path) -> None:
        """
        Apply the profile.

        Raises:
            ProfileUnavailable: The profile could not be applied
        """


class IccProfileBackend(ProfileBackend):
    """Converts from the camera's ICC profile to sRGB with Pillow's LittleCMS bindings."""

    name = "pillow-icc"

    def __init__(self, jpeg_quality: int = 95):
        self.jpeg_quality = jpeg_quality

    def is_available(self) -> bool:
        try:
            from PIL import ImageCms  # noqa: F401
        except ImportError:
            return False
        return True

    async def apply(self, image_path: Path, profile_path: Path) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._apply_sync, image_path, profile_path)

    def _apply_sync(self, image_path: Path, profile_path: Path) -> None:
        from PIL import Image, ImageCms

        if not profile_path.exists():
            raise ProfileUnavailable(f"Profile file missing: {profile_path}")

        try:
            with Image.open(image_path) as img:
                img.load()
                source = ImageCms.getOpenProfile(str(profile_path))
                target = ImageCms.createProfile("sRGB")
                converted = ImageCms.profileToProfile(img.convert("RGB"), source, target, outputMode="RGB")
            converted.save(image_path, "JPEG", quality=self.jpeg_quality)
        except (OSError, ImageCms.PyCMSError) as e:
            raise ProfileUnavailable(f"Could not apply {profile_path.name}: {e}") from e


def select_profile_backend(candidates: Optional[List[ProfileBackend]] = None) -> Optional[ProfileBackend]:
    """Pick the first available profile backend, or None."""
    for backend in candidates if candidates is not None else [IccProfileBackend()]:
        if backend.is_available():
            logger.info(f"Using colour profile backend: {backend.name}")
            return backend
    logger.warning("No colour profile backend available")
    return None
