"""
Image module - Pyramids, filtering, and sampling.

This module provides the image-side collaborators of the tracker:
- ImagePyramid: intensity and gradient planes at several resolutions
- box_filter / compute_gradients: filtering primitives
- sample_linear / contains: bilinear lookup and bounds checks
"""

from kltrack.image.pyramid import ImagePyramid, PyramidLevel
from kltrack.image.filters import (
    box_filter,
    compute_gradients,
    smooth,
    to_gray_float,
)
from kltrack.image.sampler import (
    contains,
    pixel_window,
    sample_linear,
    sample_window,
    window_inside,
)

__all__ = [
    "ImagePyramid",
    "PyramidLevel",
    "box_filter",
    "compute_gradients",
    "smooth",
    "to_gray_float",
    "contains",
    "pixel_window",
    "sample_linear",
    "sample_window",
    "window_inside",
]
