"""
Multi-resolution image pyramid with gradient planes.

Each level holds an intensity plane and its x/y gradients. Level 0 is the
input image (optionally blurred); level i+1 is ``cv2.pyrDown`` of level i,
so a point (x, y) at level i sits at (x / 2, y / 2) at level i+1.
"""

import logging
from dataclasses import dataclass

import cv2
import numpy as np

from kltrack.core.config import ConfigurationError
from kltrack.image.filters import compute_gradients, smooth, to_gray_float

LOGGER = logging.getLogger(__name__)


def _freeze(plane: np.ndarray) -> np.ndarray:
    plane = np.ascontiguousarray(plane, dtype=np.float32)
    plane.setflags(write=False)
    return plane


@dataclass(frozen=True)
class PyramidLevel:
    """One resolution tier: intensity plus gradients, all read-only."""
    intensity: np.ndarray
    gradient_x: np.ndarray
    gradient_y: np.ndarray

    @classmethod
    def from_intensity(cls, intensity: np.ndarray) -> "PyramidLevel":
        gx, gy = compute_gradients(intensity)
        return cls(_freeze(intensity), _freeze(gx), _freeze(gy))

    @property
    def shape(self) -> tuple[int, int]:
        return self.intensity.shape[:2]

    @property
    def width(self) -> int:
        return self.intensity.shape[1]

    @property
    def height(self) -> int:
        return self.intensity.shape[0]


class ImagePyramid:
    """
    Immutable image pyramid.

    Implements the ``PyramidProvider`` protocol read by the detector and
    tracker.

    Example:
        >>> pyramid = ImagePyramid.from_image(frame, levels=3)
        >>> pyramid.level_count()
        3
        >>> gx = pyramid.gradient_x(0)
    """

    def __init__(self, levels: list[PyramidLevel]):
        if not levels:
            raise ConfigurationError("A pyramid needs at least one level")
        self._levels = tuple(levels)

    @classmethod
    def from_image(
        cls,
        image: np.ndarray,
        levels: int = 3,
        sigma: float = 0.9,
    ) -> "ImagePyramid":
        """
        Build a pyramid from a grayscale or BGR image.

        Args:
            image: HxW or HxWx3 image, integer or float
            levels: Number of levels to build
            sigma: Gaussian blur applied to level 0 before differentiation

        Raises:
            ConfigurationError: If levels < 1 or the image is too small
        """
        if levels < 1:
            raise ConfigurationError(f"levels must be positive, got {levels}")

        # Every level must stay at least 2x2 after downsampling
        height, width = image.shape[:2]
        for _ in range(1, levels):
            if height < 4 or width < 4:
                raise ConfigurationError(
                    f"Image of size {image.shape[1]}x{image.shape[0]} is too "
                    f"small for {levels} pyramid levels"
                )
            height, width = (height + 1) // 2, (width + 1) // 2

        plane = smooth(to_gray_float(image), sigma)
        built = [PyramidLevel.from_intensity(plane)]
        for _ in range(1, levels):
            plane = cv2.pyrDown(plane)
            built.append(PyramidLevel.from_intensity(plane))

        LOGGER.debug(
            "Built %d-level pyramid, coarsest %dx%d",
            levels, built[-1].width, built[-1].height,
        )
        return cls(built)

    def level_count(self) -> int:
        return len(self._levels)

    def level(self, level: int) -> PyramidLevel:
        return self._levels[level]

    def intensity(self, level: int) -> np.ndarray:
        return self.level(level).intensity

    def gradient_x(self, level: int) -> np.ndarray:
        return self.level(level).gradient_x

    def gradient_y(self, level: int) -> np.ndarray:
        return self.level(level).gradient_y

    def width(self, level: int) -> int:
        return self.level(level).width

    def height(self, level: int) -> int:
        return self.level(level).height

    def __len__(self) -> int:
        return len(self._levels)

    def __repr__(self) -> str:
        sizes = ", ".join(f"{lvl.width}x{lvl.height}" for lvl in self._levels)
        return f"ImagePyramid([{sizes}])"
