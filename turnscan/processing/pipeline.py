"""Post-capture processing: sharpness, colour profile, background mask.

Every stage is optional. A stage that fails leaves the image as it was and
the next stage still runs; an image with a profile but no mask is the
normal outcome on hosts without a segmentation engine.
"""

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import Optional, Set, Union

from turnscan.capture.models import CapturedImage
from turnscan.errors import ProfileUnavailable, SegmentationUnavailable
from turnscan.notifications import Notifier, RecordingNotifier
from turnscan.processing.profiles import ColorProfileRegistry, ProfileBackend
from turnscan.processing.segmentation import DisabledSegmentationBackend, SegmentationBackend
from turnscan.processing.sharpness import measure_sharpness, sharpness_gate
from turnscan.utils import get_logger

logger = get_logger("processing.pipeline")


class ProcessingPipeline:
    """Applies post-capture stages to ``CapturedImage`` values."""

    def __init__(
        self,
        profiles: ColorProfileRegistry,
        profile_backend: Optional[ProfileBackend],
        segmentation: Optional[SegmentationBackend],
        mask_dir: Union[str, Path],
        sharpness_threshold: float,
        notifier: Optional[Notifier] = None,
    ):
        """
        Initialize pipeline.

        Args:
            profiles: Calibration profiles by camera type
            profile_backend: Applies profiles (None when unavailable)
            segmentation: Backend chosen at startup (None means disabled)
            mask_dir: Where masks are written
            sharpness_threshold: Minimum score for mask generation
            notifier: User-facing warning sink
        """
        self.profiles = profiles
        self.profile_backend = profile_backend
        self.segmentation = segmentation or DisabledSegmentationBackend()
        self.mask_dir = Path(mask_dir)
        self.sharpness_threshold = sharpness_threshold
        self.notifier = notifier or RecordingNotifier()

        self._warned_profile_types: Set[str] = set()
        self._segmentation_warned = False

    def _warn_missing_profile(self, camera_type: str, reason: str) -> None:
        if camera_type in self._warned_profile_types:
            return
        self._warned_profile_types.add(camera_type)
        logger.warning(f"Colour profile for {camera_type} unavailable: {reason}")
        self.notifier.warn("Color Profile Unavailable", f"No colour calibration applied for {camera_type}: {reason}")

    async def ensure_color_profile(self, image: CapturedImage) -> CapturedImage:
        """Apply the camera type's calibration profile once."""
        if image.has_color_profile:
            return image

        profile_path = self.profiles.get(image.camera_type)
        if profile_path is None:
            self._warn_missing_profile(image.camera_type, "no profile registered")
            return image
        if self.profile_backend is None:
            self._warn_missing_profile(image.camera_type, "no profile backend available")
            return image

        try:
            await self.profile_backend.apply(Path(image.raw_file_path), profile_path)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Could not apply colour profile to {image.filename}: {e}")
            self.notifier.warn("Color Profile Failed", f"{image.filename}: {e}")
            return image

        logger.info(f"Applied {image.camera_type} colour profile to {image.filename}")
        return replace(image, has_color_profile=True, color_profile_type=image.camera_type)

    def sharpness_gate(self, image: CapturedImage, threshold: Optional[float] = None) -> bool:
        """True when the image is sharp enough for mask generation."""
        return sharpness_gate(image, self.sharpness_threshold if threshold is None else threshold)

    async def measure(self, image: CapturedImage) -> CapturedImage:
        """Score sharpness if the image has no score yet."""
        if image.sharpness is not None:
            return image
        try:
            loop = asyncio.get_running_loop()
            score = await loop.run_in_executor(None, measure_sharpness, image.raw_file_path)
        except Exception as e:
            logger.warning(f"Could not measure sharpness of {image.filename}: {e}")
            return image
        logger.debug(f"{image.filename} sharpness {score}")
        return replace(image, sharpness=score)

    async def generate_mask(self, image: CapturedImage) -> CapturedImage:
        """Generate a background mask when the image passes the sharpness gate."""
        if image.has_mask:
            return image
        if not self.sharpness_gate(image):
            logger.info(f"Skipping mask for {image.filename}: sharpness {image.sharpness} below threshold")
            return image

        mask_path = self.mask_dir / f"{Path(image.raw_file_path).stem}_mask.png"
        try:
            written = await self.segmentation.generate(Path(image.raw_file_path), mask_path)
        except asyncio.CancelledError:
            raise
        except SegmentationUnavailable as e:
            self._report_segmentation_failure(image, e)
            return image
        except Exception as e:
            self._report_segmentation_failure(image, SegmentationUnavailable(str(e)))
            return image

        logger.info(f"Generated mask for {image.filename} with {self.segmentation.name}")
        return replace(image, has_mask=True, mask_path=str(written))

    def _report_segmentation_failure(self, image: CapturedImage, error: SegmentationUnavailable) -> None:
        logger.warning(f"Mask generation skipped for {image.filename}: {error}")
        if not self._segmentation_warned:
            self._segmentation_warned = True
            self.notifier.warn("Segmentation Unavailable", str(error))

    async def process_image(self, image: CapturedImage) -> CapturedImage:
        """Measure, calibrate and mask one image; each stage is isolated."""
        for stage in (self.measure, self.ensure_color_profile, self.generate_mask):
            try:
                image = await stage(image)
            except asyncio.CancelledError:
                raise
            except (ProfileUnavailable, SegmentationUnavailable) as e:
                logger.warning(f"{stage.__name__} skipped for {image.filename}: {e}")
            except Exception as e:
                logger.error(f"{stage.__name__} failed for {image.filename}: {e}")
        return image
