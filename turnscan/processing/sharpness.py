"""Sharpness scoring and gating."""

from pathlib import Path
from typing import Union

from PIL import Image, ImageFilter, ImageStat

from turnscan.capture.models import CapturedImage

# Edge-response standard deviation times this factor gives the 0-100 score.
# In-focus frames of a lit subject land between 60 and 100.
SHARPNESS_SCALE = 2.5
ANALYSIS_SIZE = (1024, 1024)


def measure_sharpness(path: Union[str, Path]) -> float:
    """Score how sharp an image is, 0 (blurred) to 100 (crisp)."""
    with Image.open(path) as img:
        gray = img.convert("L")
    gray.thumbnail(ANALYSIS_SIZE)
    edges = gray.filter(ImageFilter.FIND_EDGES)
    # FIND_EDGES leaves the outermost pixels unfiltered
    width, height = edges.size
    if width > 2 and height > 2:
        edges = edges.crop((1, 1, width - 1, height - 1))
    stddev = ImageStat.Stat(edges).stddev[0]
    return round(min(100.0, stddev * SHARPNESS_SCALE), 1)


def sharpness_gate(image: CapturedImage, threshold: float) -> bool:
    """True when the image is sharp enough for mask generation."""
    return image.sharpness is not None and image.sharpness >= threshold
