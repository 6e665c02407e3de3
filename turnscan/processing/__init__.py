"""Post-capture processing: colour profiles, sharpness and background masks."""

from turnscan.processing.pipeline import ProcessingPipeline
from turnscan.processing.profiles import (
    ColorProfileRegistry,
    IccProfileBackend,
    ProfileBackend,
    select_profile_backend,
)
from turnscan.processing.segmentation import (
    AcceleratedSegmentationBackend,
    BackdropSegmentationBackend,
    DisabledSegmentationBackend,
    SegmentationBackend,
    default_backends,
    select_segmentation_backend,
)
from turnscan.processing.sharpness import measure_sharpness, sharpness_gate

__all__ = [
    "ProcessingPipeline",
    "ColorProfileRegistry",
    "IccProfileBackend",
    "ProfileBackend",
    "select_profile_backend",
    "AcceleratedSegmentationBackend",
    "BackdropSegmentationBackend",
    "DisabledSegmentationBackend",
    "SegmentationBackend",
    "default_backends",
    "select_segmentation_backend",
    "measure_sharpness",
    "sharpness_gate",
]
