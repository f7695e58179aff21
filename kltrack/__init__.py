"""
kltrack - Pyramidal KLT Feature Tracking
========================================

A Python implementation of the Kanade-Lucas-Tomasi feature tracker:
minimum-eigenvalue feature detection with spatial thinning, and
coarse-to-fine Lucas-Kanade tracking over image pyramids.

Main modules:
- kltrack.image: Image pyramids, filtering, and bilinear sampling
- kltrack.tracking: Feature detection and pyramidal tracking
- kltrack.core: Configuration and shared protocols

Quick start:
    >>> from kltrack import ImagePyramid, FeatureDetector, PyramidalTracker
    >>> pyr1 = ImagePyramid.from_image(frame1, levels=3)
    >>> pyr2 = ImagePyramid.from_image(frame2, levels=3)
    >>> features = FeatureDetector().detect(pyr1)
    >>> results, stats = PyramidalTracker().track_features(pyr1, features, pyr2)
"""

__version__ = "0.1.0"

# Convenience imports
from kltrack.core.config import ConfigurationError, KltConfig
from kltrack.image import ImagePyramid
from kltrack.tracking import (
    Feature,
    FeatureDetector,
    KltTracker,
    PyramidalTracker,
    TrackResult,
    TrackStatus,
)

__all__ = [
    "__version__",
    "ConfigurationError",
    "KltConfig",
    "ImagePyramid",
    "Feature",
    "FeatureDetector",
    "KltTracker",
    "PyramidalTracker",
    "TrackResult",
    "TrackStatus",
]
