"""
Feature values and feature-set helpers.
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class Feature:
    """
    A detected point and its quality.

    Positions are in level-0 pixel coordinates. Trackness is fixed at
    detection; tracking produces a new Feature with ``moved_to``.
    """
    x: float
    y: float
    trackness: float = 0.0

    @property
    def position(self) -> tuple[float, float]:
        return (self.x, self.y)

    def moved_to(self, x: float, y: float) -> "Feature":
        """Return a copy at a new position, keeping the trackness."""
        return Feature(float(x), float(y), self.trackness)

    def squared_distance(self, other: "Feature") -> float:
        dx = self.x - other.x
        dy = self.y - other.y
        return dx * dx + dy * dy


def features_to_array(features: list[Feature]) -> np.ndarray:
    """Stack feature positions into an (N, 2) float64 array of (x, y)."""
    if not features:
        return np.empty((0, 2), dtype=np.float64)
    return np.array([f.position for f in features], dtype=np.float64)


def features_from_array(
    points: np.ndarray,
    trackness: np.ndarray | None = None,
) -> list[Feature]:
    """
    Build features from an (N, 2) or (N, 1, 2) array of (x, y) positions.

    Args:
        points: Point positions, OpenCV's Nx1x2 layout is accepted
        trackness: Optional per-point trackness, defaults to 0
    """
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 2)
    if trackness is None:
        trackness = np.zeros(len(pts))
    return [
        Feature(float(x), float(y), float(t))
        for (x, y), t in zip(pts, np.asarray(trackness).ravel())
    ]
