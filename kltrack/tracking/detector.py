"""
Good-features-to-track detection.

Scores every pixel by the minimum eigenvalue of its windowed structure
tensor, keeps local maxima above a threshold, then thins the candidates
so no two survivors are closer than a minimum distance.
"""

import logging
from dataclasses import dataclass

import numpy as np

from kltrack.core.base import PyramidProvider
from kltrack.core.config import ConfigurationError, KltConfig
from kltrack.image.filters import box_filter
from kltrack.tracking.features import Feature, features_to_array

LOGGER = logging.getLogger(__name__)


def compute_gradient_matrix(
    gradient_x: np.ndarray,
    gradient_y: np.ndarray,
    window_size: int = 7,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Sum gradient products over a window around every pixel.

    Args:
        gradient_x: Horizontal gradient plane
        gradient_y: Vertical gradient plane
        window_size: Side of the summation window (positive, odd)

    Returns:
        Tuple of (gxx, gxy, gyy) float64 planes
    """
    if window_size <= 0 or window_size % 2 == 0:
        raise ConfigurationError(
            f"window_size must be a positive odd integer, got {window_size}"
        )
    if gradient_x.shape != gradient_y.shape:
        raise ConfigurationError(
            f"Gradient planes differ in shape: {gradient_x.shape} vs {gradient_y.shape}"
        )

    gx = gradient_x.astype(np.float64)
    gy = gradient_y.astype(np.float64)

    gxx = box_filter(gx * gx, window_size)
    gxy = box_filter(gx * gy, window_size)
    gyy = box_filter(gy * gy, window_size)
    return gxx, gxy, gyy


def min_eigenvalue(gxx, gxy, gyy):
    """Smallest eigenvalue of [[gxx, gxy], [gxy, gyy]], elementwise."""
    return ((gxx + gyy) - np.sqrt((gxx - gyy) ** 2 + 4.0 * gxy * gxy)) / 2.0


def compute_trackness(
    gxx: np.ndarray,
    gxy: np.ndarray,
    gyy: np.ndarray,
) -> tuple[np.ndarray, float]:
    """
    Compute the trackness map and its mean.

    Returns:
        Tuple of (trackness plane, mean trackness over all pixels)
    """
    trackness = min_eigenvalue(gxx, gxy, gyy)
    return trackness, float(trackness.mean())


@dataclass(frozen=True)
class StructureTensorField:
    """Windowed second-moment planes and the trackness derived from them."""
    gxx: np.ndarray
    gxy: np.ndarray
    gyy: np.ndarray
    trackness: np.ndarray
    trackness_mean: float

    @classmethod
    def from_gradients(
        cls,
        gradient_x: np.ndarray,
        gradient_y: np.ndarray,
        window_size: int = 7,
    ) -> "StructureTensorField":
        gxx, gxy, gyy = compute_gradient_matrix(gradient_x, gradient_y, window_size)
        trackness, mean = compute_trackness(gxx, gxy, gyy)
        return cls(gxx, gxy, gyy, trackness, mean)

    @property
    def shape(self) -> tuple[int, int]:
        return self.trackness.shape


def find_local_maxima(
    trackness: np.ndarray,
    threshold: float,
    floor: float = 0.0,
) -> list[Feature]:
    """
    Find pixels that dominate their 8 neighbors.

    A pixel (excluding the 1-pixel border) qualifies when its trackness is
    above ``floor``, at least ``threshold``, and at least each neighbor's
    value. The floor keeps flat images, whose mean trackness is zero, from
    turning every pixel into a candidate.
    The comparison is non-strict, so a plateau yields several adjacent
    candidates; ``remove_too_close_features`` resolves them.

    Returns:
        Features in row-major scan order, positioned at (col, row)
    """
    height, width = trackness.shape
    if height < 3 or width < 3:
        return []

    center = trackness[1:-1, 1:-1]
    mask = (center >= threshold) & (center > floor)
    for dr in (-1, 0, 1):
        for dc in (-1, 0, 1):
            if dr == 0 and dc == 0:
                continue
            neighbor = trackness[1 + dr:height - 1 + dr, 1 + dc:width - 1 + dc]
            mask &= center >= neighbor

    rows, cols = np.nonzero(mask)
    return [
        Feature(float(c + 1), float(r + 1), float(center[r, c]))
        for r, c in zip(rows, cols)
    ]


def remove_too_close_features(
    features: list[Feature],
    min_distance: float,
) -> list[Feature]:
    """
    Thin a feature list so survivors are at least ``min_distance`` apart.

    Features are visited in list order. When two live features are too
    close, the one with strictly lower trackness goes; on a tie the later
    one goes. A removed feature takes no further part in comparisons, so
    with ties the outcome depends on the input order.

    Args:
        features: Candidates, typically in detection scan order
        min_distance: Minimum allowed distance between survivors

    Returns:
        New list of surviving features, in input order
    """
    threshold = min_distance * min_distance
    n = len(features)
    if n < 2 or threshold <= 0:
        return list(features)

    positions = features_to_array(features)
    removed = np.zeros(n, dtype=bool)

    for i in range(n - 1):
        if removed[i]:
            continue
        d2 = ((positions[i + 1:] - positions[i]) ** 2).sum(axis=1)
        for j in np.flatnonzero(d2 < threshold) + i + 1:
            if removed[j]:
                continue
            if features[i].trackness < features[j].trackness:
                removed[i] = True
                break
            removed[j] = True

    return [f for f, gone in zip(features, removed) if not gone]


class FeatureDetector:
    """
    Detect good features to track on the finest level of a pyramid.

    Example:
        >>> detector = FeatureDetector(KltConfig(min_feature_distance=8))
        >>> features = detector.detect(pyramid)
    """

    def __init__(self, config: KltConfig | None = None):
        self.config = (config or KltConfig()).validate()
        self.last_field: StructureTensorField | None = None

    def detect(self, pyramid: PyramidProvider) -> list[Feature]:
        """Run the full detection: tensor, trackness, maxima, suppression."""
        field = StructureTensorField.from_gradients(
            pyramid.gradient_x(0),
            pyramid.gradient_y(0),
            self.config.window_size,
        )
        self.last_field = field
        return self.detect_in_field(field)

    def detect_in_field(self, field: StructureTensorField) -> list[Feature]:
        threshold = self.threshold_for(field)
        candidates = find_local_maxima(
            field.trackness, threshold, self.config.trackness_floor
        )
        features = remove_too_close_features(
            candidates, self.config.min_feature_distance
        )
        LOGGER.debug(
            "Detected %d features (%d candidates, threshold %.3g)",
            len(features), len(candidates), threshold,
        )
        return features

    def threshold_for(self, field: StructureTensorField) -> float:
        if self.config.min_trackness is not None:
            return self.config.min_trackness
        return field.trackness_mean


def detect_good_features(
    pyramid: PyramidProvider,
    config: KltConfig | None = None,
) -> list[Feature]:
    """Convenience wrapper around ``FeatureDetector.detect``."""
    return FeatureDetector(config).detect(pyramid)
