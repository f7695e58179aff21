"""
Base protocols for the KLT core.

The detector and tracker only read pyramids through this interface, so any
object providing these methods can stand in for ``ImagePyramid``.
"""

from typing import Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class PyramidProvider(Protocol):
    """Protocol for multi-resolution images with gradient planes."""

    def level_count(self) -> int:
        """Number of levels, level 0 being the finest."""
        ...

    def intensity(self, level: int) -> np.ndarray:
        """Intensity plane of a level."""
        ...

    def gradient_x(self, level: int) -> np.ndarray:
        """Horizontal gradient plane of a level."""
        ...

    def gradient_y(self, level: int) -> np.ndarray:
        """Vertical gradient plane of a level."""
        ...

    def width(self, level: int) -> int:
        ...

    def height(self, level: int) -> int:
        ...
