"""
Pyramidal Kanade-Lucas-Tomasi feature tracking.

This module provides the PyramidalTracker, which carries a feature from
one pyramid to another coarse to fine, and the KltTracker, which keeps
features alive across a sequence of frames with automatic replenishment
of lost points.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import IntEnum

import numpy as np

from kltrack.core.base import PyramidProvider
from kltrack.core.config import ConfigurationError, KltConfig
from kltrack.image.pyramid import ImagePyramid
from kltrack.image.sampler import contains
from kltrack.tracking.detector import FeatureDetector
from kltrack.tracking.features import Feature
from kltrack.tracking.refine import (
    RefinementResult,
    refine_level,
    refine_level_aligned,
)

LOGGER = logging.getLogger(__name__)


class TrackStatus(IntEnum):
    """Per-feature tracking outcome."""
    TRACKED = 0
    NOT_CONVERGED = 1    # Best effort, still usable
    ILL_CONDITIONED = 2  # Singular system at the finest level
    OUT_OF_BOUNDS = 3    # Window or result left the image


@dataclass(frozen=True)
class TrackResult:
    """
    Result of tracking one feature.

    Attributes:
        source: Feature in frame A
        feature: Tracked feature in frame B (same trackness)
        status: Outcome at the finest level
        levels: Per-level refinements, coarsest first
    """
    source: Feature
    feature: Feature
    status: TrackStatus
    levels: tuple[RefinementResult, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status in (TrackStatus.TRACKED, TrackStatus.NOT_CONVERGED)

    @property
    def iterations(self) -> int:
        return sum(r.iterations for r in self.levels)

    @property
    def displacement(self) -> tuple[float, float]:
        return (self.feature.x - self.source.x, self.feature.y - self.source.y)

    @property
    def degraded(self) -> bool:
        """True if any level stopped on a singular system or the border."""
        return any(r.ill_conditioned or r.out_of_bounds for r in self.levels)


@dataclass
class TrackingStats:
    """Statistics from a tracking pass."""
    frame: int = 0
    tracked: int = 0
    not_converged: int = 0
    ill_conditioned: int = 0
    out_of_bounds: int = 0
    lost: int = 0
    added: int = 0
    total: int = 0

    @classmethod
    def from_results(cls, results: list[TrackResult], frame: int = 0) -> "TrackingStats":
        stats = cls(frame=frame)
        for r in results:
            if r.ok:
                stats.tracked += 1
            if r.status == TrackStatus.NOT_CONVERGED:
                stats.not_converged += 1
            elif r.status == TrackStatus.ILL_CONDITIONED:
                stats.ill_conditioned += 1
            elif r.status == TrackStatus.OUT_OF_BOUNDS:
                stats.out_of_bounds += 1
        stats.lost = len(results) - stats.tracked
        stats.total = stats.tracked
        return stats

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary for logging and serialization."""
        return {
            "frame": self.frame,
            "tracked": self.tracked,
            "not_converged": self.not_converged,
            "ill_conditioned": self.ill_conditioned,
            "out_of_bounds": self.out_of_bounds,
            "lost": self.lost,
            "added": self.added,
            "total": self.total,
        }


def check_pyramids(pyramid_a: PyramidProvider, pyramid_b: PyramidProvider) -> None:
    """
    Check that two pyramids can be tracked between.

    Raises:
        ConfigurationError: If level counts or level dimensions differ
    """
    levels_a = pyramid_a.level_count()
    levels_b = pyramid_b.level_count()
    if levels_a != levels_b:
        raise ConfigurationError(
            f"Pyramid level counts differ: {levels_a} vs {levels_b}"
        )
    for level in range(levels_a):
        size_a = (pyramid_a.width(level), pyramid_a.height(level))
        size_b = (pyramid_b.width(level), pyramid_b.height(level))
        if size_a != size_b:
            raise ConfigurationError(
                f"Pyramid level {level} sizes differ: "
                f"{size_a[0]}x{size_a[1]} vs {size_b[0]}x{size_b[1]}"
            )


class PyramidalTracker:
    """
    Coarse-to-fine Lucas-Kanade tracker between two pyramids.

    The estimate starts at the coarsest level assuming no motion, is
    refined there, then doubled and refined again at each finer level.
    Large motions are only within reach of the linearization at coarse
    scales, so each level starts close enough for the next to converge.

    Example:
        >>> tracker = PyramidalTracker(KltConfig(max_iterations=20))
        >>> result = tracker.track_feature(pyramid_a, feature, pyramid_b)
        >>> if result.ok:
        ...     print(result.feature.position)
    """

    def __init__(self, config: KltConfig | None = None):
        self.config = (config or KltConfig()).validate()

    def refine(
        self,
        pyramid_a: PyramidProvider,
        pyramid_b: PyramidProvider,
        level: int,
        reference: tuple[float, float],
        estimate: tuple[float, float],
    ) -> RefinementResult:
        """Refine ``estimate`` at one level with the configured variant."""
        cfg = self.config
        if cfg.use_aligned:
            return refine_level_aligned(
                pyramid_a.intensity(level),
                reference,
                pyramid_b.intensity(level),
                pyramid_b.gradient_x(level),
                pyramid_b.gradient_y(level),
                estimate,
                half_window=cfg.half_window_size,
                max_iterations=cfg.max_iterations,
                min_determinant=cfg.min_determinant,
            )
        return refine_level(
            pyramid_a.intensity(level),
            reference,
            pyramid_b.intensity(level),
            pyramid_b.gradient_x(level),
            pyramid_b.gradient_y(level),
            estimate,
            half_window=cfg.half_window_size,
            max_iterations=cfg.max_iterations,
            min_update_squared_distance=cfg.min_update_squared_distance,
            min_determinant=cfg.min_determinant,
        )

    def track_feature(
        self,
        pyramid_a: PyramidProvider,
        feature: Feature,
        pyramid_b: PyramidProvider,
    ) -> TrackResult:
        """
        Track one feature from pyramid A to pyramid B.

        Args:
            pyramid_a: Pyramid of the frame the feature was found in
            feature: Feature with level-0 position in frame A
            pyramid_b: Pyramid of the next frame

        Returns:
            TrackResult holding the new feature and its status

        Raises:
            ConfigurationError: If the pyramids are incompatible
        """
        check_pyramids(pyramid_a, pyramid_b)
        return self._track(pyramid_a, feature, pyramid_b)

    def _track(
        self,
        pyramid_a: PyramidProvider,
        feature: Feature,
        pyramid_b: PyramidProvider,
    ) -> TrackResult:
        num_levels = pyramid_a.level_count()
        scale = 2.0 ** num_levels
        estimate = (feature.x / scale, feature.y / scale)

        refinements = []
        for level in range(num_levels - 1, -1, -1):
            estimate = (estimate[0] * 2.0, estimate[1] * 2.0)
            scale = 2.0 ** level
            reference = (feature.x / scale, feature.y / scale)
            refinement = self.refine(pyramid_a, pyramid_b, level, reference, estimate)
            refinements.append(refinement)
            estimate = refinement.position

        tracked = feature.moved_to(*estimate)
        status = self._status(refinements[-1], tracked, pyramid_b)
        return TrackResult(feature, tracked, status, tuple(refinements))

    def _status(
        self,
        finest: RefinementResult,
        tracked: Feature,
        pyramid_b: PyramidProvider,
    ) -> TrackStatus:
        if finest.out_of_bounds or not contains(
            pyramid_b.intensity(0), tracked.y, tracked.x
        ):
            return TrackStatus.OUT_OF_BOUNDS
        if finest.ill_conditioned:
            return TrackStatus.ILL_CONDITIONED
        if not finest.converged:
            return TrackStatus.NOT_CONVERGED
        return TrackStatus.TRACKED

    def track_features(
        self,
        pyramid_a: PyramidProvider,
        features: list[Feature],
        pyramid_b: PyramidProvider,
        max_workers: int | None = None,
    ) -> tuple[list[TrackResult], TrackingStats]:
        """
        Track every feature from pyramid A to pyramid B.

        Features are independent and both pyramids are read-only, so with
        ``max_workers`` the work is spread over a thread pool. Results keep
        the input order either way.

        Raises:
            ConfigurationError: If the pyramids are incompatible
        """
        check_pyramids(pyramid_a, pyramid_b)

        if max_workers and len(features) > 1:
            with ThreadPoolExecutor(max_workers=max_workers) as executor:
                results = list(executor.map(
                    lambda f: self._track(pyramid_a, f, pyramid_b),
                    features,
                ))
        else:
            results = [self._track(pyramid_a, f, pyramid_b) for f in features]

        stats = TrackingStats.from_results(results)
        LOGGER.debug("Tracked features: %s", stats.to_dict())
        return results, stats


class KltTracker:
    """
    Frame-to-frame feature tracker with automatic replenishment.

    Detects good features on the first frame, tracks them through
    following frames with the pyramidal tracker, drops features whose
    tracking failed, and tops the set back up from fresh detections.

    Attributes:
        num_features: Target number of features to maintain (None = no cap)
        features: Current tracked features
        point_ids: Unique IDs for each tracked feature
        track_lengths: Dictionary mapping IDs to number of frames tracked

    Example:
        >>> tracker = KltTracker(num_features=100)
        >>> features = tracker.initialize(first_frame)
        >>> for frame in frames:
        ...     features, ids, stats = tracker.update(frame)
        ...     print(f"Frame {stats.frame}: {stats.tracked} tracked, {stats.lost} lost")
    """

    def __init__(
        self,
        config: KltConfig | None = None,
        num_features: int | None = None,
        max_workers: int | None = None,
    ):
        self.config = (config or KltConfig()).validate()
        self.num_features = num_features
        self.max_workers = max_workers
        self.detector = FeatureDetector(self.config)
        self.tracker = PyramidalTracker(self.config)

        # State
        self.prev_pyramid: ImagePyramid | None = None
        self.features: list[Feature] = []
        self.point_ids: list[int] = []
        self.next_id = 0
        self.track_lengths: dict[int, int] = {}
        self.frame_count = 0

    def build_pyramid(self, frame: np.ndarray) -> ImagePyramid:
        return ImagePyramid.from_image(
            frame,
            levels=self.config.pyramid_levels,
            sigma=self.config.pyramid_sigma,
        )

    def initialize(self, frame: np.ndarray) -> list[Feature]:
        """
        Initialize tracking on the first frame.

        Args:
            frame: First frame (grayscale or BGR)

        Returns:
            Detected features
        """
        self.reset()
        pyramid = self.build_pyramid(frame)
        features = self.detector.detect(pyramid)
        if self.num_features is not None:
            features = sorted(features, key=lambda f: f.trackness, reverse=True)
            features = features[:self.num_features]

        self.prev_pyramid = pyramid
        self.features = []
        self.point_ids = []
        self._append(features)
        self.frame_count = 1
        LOGGER.info("Initialized with %d features", len(self.features))
        return list(self.features)

    def _append(self, features: list[Feature]) -> None:
        for f in features:
            self.features.append(f)
            self.point_ids.append(self.next_id)
            self.track_lengths[self.next_id] = 1
            self.next_id += 1

    def _add_new_features(self, pyramid: ImagePyramid, num_to_add: int | None) -> int:
        """Add detections that keep clear of the current features."""
        if num_to_add is not None and num_to_add <= 0:
            return 0

        d2 = self.config.min_feature_distance ** 2
        existing = np.array([f.position for f in self.features]).reshape(-1, 2)

        candidates = sorted(
            self.detector.detect(pyramid), key=lambda f: f.trackness, reverse=True
        )
        added = []
        for candidate in candidates:
            if num_to_add is not None and len(added) >= num_to_add:
                break
            if len(existing) and np.min(
                ((existing - candidate.position) ** 2).sum(axis=1)
            ) < d2:
                continue
            added.append(candidate)
            existing = np.vstack([existing, candidate.position])

        self._append(added)
        return len(added)

    def update(self, frame: np.ndarray) -> tuple[list[Feature], list[int], TrackingStats]:
        """
        Track features to the next frame.

        Args:
            frame: Next frame (grayscale or BGR)

        Returns:
            Tuple of (current_features, point_ids, tracking_stats)
        """
        if self.prev_pyramid is None:
            features = self.initialize(frame)
            stats = TrackingStats(frame=1, added=len(features), total=len(features))
            return features, list(self.point_ids), stats

        pyramid = self.build_pyramid(frame)
        self.frame_count += 1

        results, stats = self.tracker.track_features(
            self.prev_pyramid, self.features, pyramid, max_workers=self.max_workers
        )
        stats.frame = self.frame_count

        kept_features = []
        kept_ids = []
        for pid, result in zip(self.point_ids, results):
            if result.ok:
                kept_features.append(result.feature)
                kept_ids.append(pid)
                self.track_lengths[pid] += 1
            else:
                self.track_lengths.pop(pid, None)
        self.features = kept_features
        self.point_ids = kept_ids

        # Replenish lost features
        if self.num_features is None:
            stats.added = self._add_new_features(pyramid, None) if stats.lost else 0
        else:
            stats.added = self._add_new_features(
                pyramid, self.num_features - len(self.features)
            )
        stats.total = len(self.features)

        self.prev_pyramid = pyramid
        LOGGER.info(
            "Frame %d: %d tracked, %d lost, %d added",
            stats.frame, stats.tracked, stats.lost, stats.added,
        )
        return list(self.features), list(self.point_ids), stats

    def get_center(self) -> tuple[float, float] | None:
        """Get the centroid of all tracked features."""
        if not self.features:
            return None
        pts = np.array([f.position for f in self.features])
        return (float(pts[:, 0].mean()), float(pts[:, 1].mean()))

    def reset(self) -> None:
        """Reset the tracker state."""
        self.prev_pyramid = None
        self.features = []
        self.point_ids = []
        self.next_id = 0
        self.track_lengths.clear()
        self.frame_count = 0
