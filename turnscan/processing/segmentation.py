"""Background mask generation backends.

The backend is chosen once at startup by capability probe:

1. AcceleratedSegmentationBackend: EfficientViT engine run by an external
   script (Jetson class hardware with the engine installed)
2. BackdropSegmentationBackend: Pillow difference against the backdrop
   colour sampled from the image border (always available with Pillow)
3. DisabledSegmentationBackend: never produces a mask

Contract: given an image path, write a mask file and return its path, or
raise ``SegmentationUnavailable``.
"""

import asyncio
import shlex
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from turnscan.devices.commands import CommandRunner
from turnscan.errors import SegmentationUnavailable
from turnscan.utils import ensure_dir, get_logger

logger = get_logger("processing.segmentation")


class SegmentationBackend(ABC):
    """Produces a foreground mask for an image."""

    name: str = "base"

    @abstractmethod
    def is_available(self) -> bool:
        """Whether this backend can run on this host."""

    @abstractmethod
    async def generate(self, image_path: Path, mask_path: Path) -> Path:
        """
        Write a mask for ``image_path`` to ``mask_path``.

        Raises:
            SegmentationUnavailable: Mask could not be produced
        """


class AcceleratedSegmentationBackend(SegmentationBackend):
    """EfficientViT segmentation through an external inference script."""

    name = "efficientvit"

    def __init__(
        self,
        runner: CommandRunner,
        engine_path: Path,
        script_path: Path,
        threshold: float = 0.75,
        input_size: int = 1024,
    ):
        self.runner = runner
        self.engine_path = Path(engine_path)
        self.script_path = Path(script_path)
        self.threshold = threshold
        self.input_size = input_size

    def is_available(self) -> bool:
        return self.engine_path.is_file() and self.script_path.is_file()

    def build_command(self, image_path: Path, mask_path: Path) -> str:
        return (
            f"python3 {shlex.quote(str(self.script_path))} --model {shlex.quote(str(self.engine_path))}"
            f" --input {shlex.quote(str(image_path))} --output {shlex.quote(str(mask_path))}"
            f" --threshold {self.threshold} --size {self.input_size}"
        )

    async def generate(self, image_path: Path, mask_path: Path) -> Path:
        ensure_dir(mask_path.parent)
        try:
            await self.runner.execute(self.build_command(image_path, mask_path))
        except Exception as e:
            raise SegmentationUnavailable(f"{self.name} failed: {e}") from e

        if not mask_path.exists():
            raise SegmentationUnavailable(f"{self.name} did not write {mask_path}")
        return mask_path


class BackdropSegmentationBackend(SegmentationBackend):
    """
    Separates the subject from a plain backdrop.

    The backdrop colour is the median of a strip around the image edge;
    pixels that differ from it by more than ``tolerance`` are foreground.
    """

    name = "backdrop"

    def __init__(self, tolerance: int = 40, border_fraction: float = 0.05, smoothing: int = 5):
        self.tolerance = tolerance
        self.border_fraction = border_fraction
        self.smoothing = smoothing

    def is_available(self) -> bool:
        try:
            from PIL import ImageChops  # noqa: F401
        except ImportError:
            return False
        return True

    def _backdrop_color(self, img) -> Tuple[int, ...]:
        from PIL import ImageStat

        width, height = img.size
        border = max(1, int(min(width, height) * self.border_fraction))
        strips = [
            img.crop((0, 0, width, border)),
            img.crop((0, height - border, width, height)),
            img.crop((0, 0, border, height)),
            img.crop((width - border, 0, width, height)),
        ]
        medians = [ImageStat.Stat(strip).median for strip in strips]
        return tuple(sorted(band)[len(band) // 2] for band in zip(*medians))

    async def generate(self, image_path: Path, mask_path: Path) -> Path:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._generate_sync, image_path, mask_path)

    def _generate_sync(self, image_path: Path, mask_path: Path) -> Path:
        from PIL import Image, ImageChops, ImageFilter

        try:
            with Image.open(image_path) as img:
                rgb = img.convert("RGB")
            backdrop = Image.new("RGB", rgb.size, self._backdrop_color(rgb))
            diff = ImageChops.difference(rgb, backdrop).convert("L")
            mask = diff.point(lambda value: 255 if value > self.tolerance else 0)
            if self.smoothing > 1:
                mask = mask.filter(ImageFilter.MedianFilter(self.smoothing))
            ensure_dir(mask_path.parent)
            mask.save(mask_path, "PNG")
        except OSError as e:
            raise SegmentationUnavailable(f"{self.name} failed on {image_path}: {e}") from e
        return mask_path


class DisabledSegmentationBackend(SegmentationBackend):
    """Placeholder used when no backend is available."""

    name = "disabled"

    def is_available(self) -> bool:
        return True

    async def generate(self, image_path: Path, mask_path: Path) -> Path:
        raise SegmentationUnavailable("No segmentation backend available")


def default_backends(
    runner: Optional[CommandRunner] = None,
    engine_path: Optional[Path] = None,
    script_path: Optional[Path] = None,
    threshold: float = 0.75,
    input_size: int = 1024,
) -> List[SegmentationBackend]:
    """Candidate backends in preference order."""
    candidates: List[SegmentationBackend] = []
    if runner is not None and engine_path is not None and script_path is not None:
        candidates.append(
            AcceleratedSegmentationBackend(runner, engine_path, script_path, threshold, input_size)
        )
    candidates.append(BackdropSegmentationBackend())
    return candidates


def select_segmentation_backend(candidates: Sequence[SegmentationBackend]) -> SegmentationBackend:
    """Return the first available backend, falling back to disabled."""
    for backend in candidates:
        try:
            available = backend.is_available()
        except Exception as e:
            logger.warning(f"Segmentation backend {backend.name} probe failed: {e}")
            continue
        if available:
            logger.info(f"Using segmentation backend: {backend.name}")
            return backend
        logger.debug(f"Segmentation backend {backend.name} not available")

    logger.warning("No segmentation backend available, masks disabled")
    return DisabledSegmentationBackend()
