"""
Intensity lookup at fractional and integer coordinates.

Bilinear lookups clamp to the nearest edge pixel when a coordinate falls
outside the plane, so the sub-pixel tracker never fails on sampling.
Integer lookups are strict: callers check ``window_inside`` first.
"""

import numpy as np
from scipy.ndimage import map_coordinates


def contains(plane: np.ndarray, row: float, col: float) -> bool:
    """Check if (row, col) lies inside the plane."""
    height, width = plane.shape[:2]
    return 0 <= row < height and 0 <= col < width


def window_inside(plane: np.ndarray, x: int, y: int, half_width: int) -> bool:
    """Check if the whole (2w+1)x(2w+1) window around (x, y) is in the plane."""
    height, width = plane.shape[:2]
    return (
        x - half_width >= 0
        and y - half_width >= 0
        and x + half_width < width
        and y + half_width < height
    )


def sample_linear(plane: np.ndarray, row, col):
    """
    Bilinear lookup at (row, col).

    Accepts scalars or arrays of matching shape. Coordinates outside the
    plane are clamped to the edge.

    Returns:
        A float for scalar input, otherwise a float64 array shaped like row
    """
    rows = np.asarray(row, dtype=np.float64)
    cols = np.asarray(col, dtype=np.float64)
    values = map_coordinates(
        plane,
        [rows.ravel(), cols.ravel()],
        order=1,
        mode="nearest",
        output=np.float64,
    )
    if rows.ndim == 0:
        return float(values[0])
    return values.reshape(rows.shape)


def window_offsets(half_width: int) -> tuple[np.ndarray, np.ndarray]:
    """Row and column offsets of a (2w+1)x(2w+1) window, row-major."""
    offsets = np.arange(-half_width, half_width + 1, dtype=np.float64)
    return np.meshgrid(offsets, offsets, indexing="ij")


def sample_window(plane: np.ndarray, x: float, y: float, half_width: int) -> np.ndarray:
    """
    Bilinearly sample the window centered on (x, y).

    Returns:
        (2w+1)x(2w+1) float64 array indexed [row offset, col offset]
    """
    dy, dx = window_offsets(half_width)
    return sample_linear(plane, y + dy, x + dx)


def pixel_window(plane: np.ndarray, x: int, y: int, half_width: int) -> np.ndarray:
    """
    Direct pixel lookup of the window centered on integer (x, y).

    The window must be inside the plane (see ``window_inside``).
    """
    return plane[y - half_width:y + half_width + 1,
                 x - half_width:x + half_width + 1].astype(np.float64)
