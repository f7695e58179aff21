"""
Tracking module - Feature detection and pyramidal KLT tracking.

This module provides:
- FeatureDetector: minimum-eigenvalue corner detection with thinning
- PyramidalTracker: coarse-to-fine Lucas-Kanade tracking between pyramids
- KltTracker: frame-to-frame tracking with auto-replenishment
- Feature list I/O utilities

Example:
    >>> from kltrack.tracking import KltTracker
    >>> tracker = KltTracker(num_features=100)
    >>> features = tracker.initialize(first_frame)
    >>> for frame in frames:
    ...     features, ids, stats = tracker.update(frame)
"""

from kltrack.tracking.features import (
    Feature,
    features_from_array,
    features_to_array,
)
from kltrack.tracking.detector import (
    FeatureDetector,
    StructureTensorField,
    compute_gradient_matrix,
    compute_trackness,
    detect_good_features,
    find_local_maxima,
    remove_too_close_features,
)
from kltrack.tracking.refine import (
    RefinementResult,
    TrackingStep,
    refine_level,
    refine_level_aligned,
    solve_tracking_equation,
)
from kltrack.tracking.tracker import (
    KltTracker,
    PyramidalTracker,
    TrackResult,
    TrackStatus,
    TrackingStats,
    check_pyramids,
)
from kltrack.tracking.track_io import (
    parse_feature_line,
    read_feature_file,
    write_feature_file,
)

__all__ = [
    "Feature",
    "features_from_array",
    "features_to_array",
    "FeatureDetector",
    "StructureTensorField",
    "compute_gradient_matrix",
    "compute_trackness",
    "detect_good_features",
    "find_local_maxima",
    "remove_too_close_features",
    "RefinementResult",
    "TrackingStep",
    "refine_level",
    "refine_level_aligned",
    "solve_tracking_equation",
    "KltTracker",
    "PyramidalTracker",
    "TrackResult",
    "TrackStatus",
    "TrackingStats",
    "check_pyramids",
    "parse_feature_line",
    "read_feature_file",
    "write_feature_file",
]
