"""
Filtering primitives used by the pyramid and the structure tensor.
"""

import cv2
import numpy as np


# Sobel 3x3 sums to 8x the central-difference derivative
SOBEL_SCALE = 1.0 / 8.0


def to_gray_float(image: np.ndarray) -> np.ndarray:
    """
    Convert an image to a single-channel float32 plane.

    BGR images are converted to grayscale. Integer images are scaled to
    [0, 1] by the maximum of their dtype; float images are kept as is.

    Args:
        image: HxW or HxWx3 (BGR) image

    Returns:
        HxW float32 array
    """
    if image.ndim == 3:
        if image.shape[2] == 1:
            image = image[:, :, 0]
        else:
            image = cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)

    if np.issubdtype(image.dtype, np.integer):
        max_val = float(np.iinfo(image.dtype).max)
        return (image.astype(np.float32) / max_val).astype(np.float32)
    return image.astype(np.float32)


def box_filter(plane: np.ndarray, window_size: int) -> np.ndarray:
    """
    Sum a plane over a square window centered on every pixel.

    The sum is un-normalized and borders are reflected (reflect-101), so a
    pixel on the edge sees its mirrored neighbors.

    Args:
        plane: HxW array
        window_size: Side of the square window (odd)

    Returns:
        HxW float64 array of window sums
    """
    return cv2.boxFilter(
        plane.astype(np.float64),
        -1,
        (window_size, window_size),
        normalize=False,
        borderType=cv2.BORDER_REFLECT_101,
    )


def compute_gradients(plane: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """
    Compute horizontal and vertical derivatives with a scaled Sobel kernel.

    Returns:
        Tuple of (gradient_x, gradient_y) float32 arrays
    """
    gx = cv2.Sobel(plane, cv2.CV_32F, 1, 0, ksize=3, scale=SOBEL_SCALE)
    gy = cv2.Sobel(plane, cv2.CV_32F, 0, 1, ksize=3, scale=SOBEL_SCALE)
    return gx, gy


def smooth(plane: np.ndarray, sigma: float) -> np.ndarray:
    """Gaussian blur with the given sigma; sigma <= 0 returns a copy."""
    if sigma <= 0:
        return plane.copy()
    return cv2.GaussianBlur(plane, (0, 0), sigma)
