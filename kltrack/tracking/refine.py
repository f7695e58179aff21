"""
Single-level Lucas-Kanade refinement.

Given a reference position in image A and an estimate in image B, each
iteration linearizes B around the estimate and solves the 2x2 normal
equations for the displacement that best aligns the two windows:

    [gxx gxy] [dx]   [ex]
    [gxy gyy] [dy] = [ey]

with gxx = sum(gx^2), gxy = sum(gx*gy), gyy = sum(gy^2),
ex = sum((I - J) * gx), ey = sum((I - J) * gy) over the window.
"""

import logging
import math
from dataclasses import dataclass
from typing import NamedTuple

import numpy as np

from kltrack.image.sampler import pixel_window, sample_window, window_inside

LOGGER = logging.getLogger(__name__)

# Integer steps below one pixel cannot move the aligned estimate
ALIGNED_MIN_SQUARED_STEP = 1.0


class TrackingStep(NamedTuple):
    """Solution of one iteration's linear system."""
    dx: float
    dy: float
    ill_conditioned: bool


@dataclass(frozen=True)
class RefinementResult:
    """
    Outcome of refining one feature at one pyramid level.

    Attributes:
        x, y: Refined estimate in the level's coordinates
        dx, dy: Total correction applied at this level
        iterations: Number of iterations run
        converged: Last step was below the convergence threshold
        ill_conditioned: Last iteration hit a singular system
        out_of_bounds: Aligned refinement stopped because a window left the image
    """
    x: float
    y: float
    dx: float
    dy: float
    iterations: int
    converged: bool
    ill_conditioned: bool = False
    out_of_bounds: bool = False

    @property
    def position(self) -> tuple[float, float]:
        return (self.x, self.y)


def compute_tracking_equation(
    window_a: np.ndarray,
    window_b: np.ndarray,
    window_gx: np.ndarray,
    window_gy: np.ndarray,
) -> tuple[float, float, float, float, float]:
    """
    Accumulate the normal equations over sampled windows.

    Returns:
        Tuple of (gxx, gxy, gyy, ex, ey)
    """
    diff = window_a - window_b
    gxx = float(np.sum(window_gx * window_gx))
    gxy = float(np.sum(window_gx * window_gy))
    gyy = float(np.sum(window_gy * window_gy))
    ex = float(np.sum(diff * window_gx))
    ey = float(np.sum(diff * window_gy))
    return gxx, gxy, gyy, ex, ey


def solve_tracking_equation(
    gxx: float,
    gxy: float,
    gyy: float,
    ex: float,
    ey: float,
    min_determinant: float,
) -> TrackingStep:
    """
    Solve the 2x2 system by Cramer's rule.

    A determinant below ``min_determinant`` means the window does not
    constrain both directions (flat region or a single edge); the step is
    then zero and flagged rather than an arbitrary jump.
    """
    det = gxx * gyy - gxy * gxy
    if det < min_determinant or det <= 0.0:
        return TrackingStep(0.0, 0.0, True)
    dx = (gyy * ex - gxy * ey) / det
    dy = (gxx * ey - gxy * ex) / det
    return TrackingStep(dx, dy, False)


def refine_level(
    image_a: np.ndarray,
    position_a: tuple[float, float],
    image_b: np.ndarray,
    gradient_x_b: np.ndarray,
    gradient_y_b: np.ndarray,
    position_b: tuple[float, float],
    half_window: int = 3,
    max_iterations: int = 10,
    min_update_squared_distance: float = 0.03,
    min_determinant: float = 1e-6,
) -> RefinementResult:
    """
    Refine an estimate at one level with bilinear sampling.

    Windows that reach past the image border are clamped by the sampler,
    so this variant never aborts. Running out of iterations is accepted
    as a best-effort estimate.

    Args:
        image_a: Intensity plane of the reference frame
        position_a: (x, y) of the feature in image A
        image_b: Intensity plane of the target frame
        gradient_x_b: Horizontal gradient of image B
        gradient_y_b: Vertical gradient of image B
        position_b: (x, y) initial estimate in image B
        half_window: Half-width w of the (2w+1)x(2w+1) window
        max_iterations: Iteration cap
        min_update_squared_distance: Convergence threshold on dx^2 + dy^2
        min_determinant: Threshold below which the system is singular

    Returns:
        RefinementResult with the new estimate
    """
    ax, ay = position_a
    x, y = float(position_b[0]), float(position_b[1])
    window_a = sample_window(image_a, ax, ay, half_window)

    step = TrackingStep(0.0, 0.0, False)
    converged = False
    iterations = 0
    for iterations in range(1, max_iterations + 1):
        equation = compute_tracking_equation(
            window_a,
            sample_window(image_b, x, y, half_window),
            sample_window(gradient_x_b, x, y, half_window),
            sample_window(gradient_y_b, x, y, half_window),
        )
        step = solve_tracking_equation(*equation, min_determinant=min_determinant)
        x += step.dx
        y += step.dy

        if step.ill_conditioned:
            LOGGER.debug("Singular system at (%.2f, %.2f)", x, y)
            break
        if step.dx * step.dx + step.dy * step.dy < min_update_squared_distance:
            converged = True
            break

    return RefinementResult(
        x=x,
        y=y,
        dx=x - position_b[0],
        dy=y - position_b[1],
        iterations=iterations,
        converged=converged,
        ill_conditioned=step.ill_conditioned,
    )


def _round_half_away(value: float) -> int:
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def refine_level_aligned(
    image_a: np.ndarray,
    position_a: tuple[float, float],
    image_b: np.ndarray,
    gradient_x_b: np.ndarray,
    gradient_y_b: np.ndarray,
    position_b: tuple[float, float],
    half_window: int = 3,
    max_iterations: int = 10,
    min_determinant: float = 1e-6,
) -> RefinementResult:
    """
    Refine an estimate at one level on the integer pixel grid.

    Both positions are rounded and pixels are read directly. The fractional
    part of the frame-B estimate is set aside and added back at the end.
    The estimate moves by whole pixels until the solved step is under one
    pixel. If either window leaves its image the refinement stops and the
    last good estimate is returned with ``out_of_bounds`` set.
    """
    ax = _round_half_away(position_a[0])
    ay = _round_half_away(position_a[1])
    bx = _round_half_away(position_b[0])
    by = _round_half_away(position_b[1])
    residual_x = position_b[0] - bx
    residual_y = position_b[1] - by

    def result(iterations, converged, ill_conditioned=False, out_of_bounds=False):
        x = bx + residual_x
        y = by + residual_y
        return RefinementResult(
            x=x,
            y=y,
            dx=x - position_b[0],
            dy=y - position_b[1],
            iterations=iterations,
            converged=converged,
            ill_conditioned=ill_conditioned,
            out_of_bounds=out_of_bounds,
        )

    if not (window_inside(image_a, ax, ay, half_window)
            and window_inside(image_b, bx, by, half_window)):
        return result(0, False, out_of_bounds=True)
    window_a = pixel_window(image_a, ax, ay, half_window)

    for i in range(1, max_iterations + 1):
        equation = compute_tracking_equation(
            window_a,
            pixel_window(image_b, bx, by, half_window),
            pixel_window(gradient_x_b, bx, by, half_window),
            pixel_window(gradient_y_b, bx, by, half_window),
        )
        step = solve_tracking_equation(*equation, min_determinant=min_determinant)
        if step.ill_conditioned:
            return result(i, False, ill_conditioned=True)
        if step.dx * step.dx + step.dy * step.dy < ALIGNED_MIN_SQUARED_STEP:
            return result(i, True)

        next_x = bx + _round_half_away(step.dx)
        next_y = by + _round_half_away(step.dy)
        if not window_inside(image_b, next_x, next_y, half_window):
            LOGGER.debug("Aligned window left the image at (%d, %d)", next_x, next_y)
            return result(i, False, out_of_bounds=True)
        bx, by = next_x, next_y

    return result(max_iterations, False)
