#!/usr/bin/env python3
"""
sim/geometry.py
===============
Catmull-Rom path geometry for lane splines.

Every lane is an ordered list of ``(x, y)`` control points.  A normalized
path position ``t`` in ``[0, 1]`` maps onto the spline; control-point
indices are clamped at both ends so the curve passes exactly through the
first and last points instead of extrapolating.

Malformed input never raises: the render loop must survive a badly
configured lane, so the evaluators fall back to ``(0.0, 0.0)``.
"""

from __future__ import annotations

import logging
import math
from typing import Optional, Sequence, Tuple

import numpy as np

log = logging.getLogger("geometry")

Point = Tuple[float, float]

DEFAULT_POINT: Point = (0.0, 0.0)
DIRECTION_EPS: float = 0.001


def valid_points(points: Optional[Sequence]) -> bool:
    if points is None or len(points) < 2:
        return False
    for p in points:
        try:
            x, y = float(p[0]), float(p[1])
        except (TypeError, ValueError, IndexError, KeyError):
            return False
        if math.isnan(x) or math.isnan(y):
            return False
    return True


def _catmull_rom(p0: float, p1: float, p2: float, p3: float, u: float) -> float:
    u2 = u * u
    u3 = u2 * u
    return 0.5 * (
        2.0 * p1
        + (-p0 + p2) * u
        + (2.0 * p0 - 5.0 * p1 + 4.0 * p2 - p3) * u2
        + (-p0 + 3.0 * p1 - 3.0 * p2 + p3) * u3
    )


def position_at(points: Sequence[Point], t: float) -> Point:
    """Evaluate the spline at normalized progress *t*.

    Parameters
    ----------
    points : sequence of (x, y)
        Control points, at least two.
    t : float
        Path position; clamped to ``[0, 1]``.

    Returns
    -------
    (float, float)
        World position, or :data:`DEFAULT_POINT` on malformed input.
    """
    if not valid_points(points):
        log.debug("position_at: malformed control points %r", points)
        return DEFAULT_POINT
    try:
        t = min(1.0, max(0.0, float(t)))
    except (TypeError, ValueError):
        return DEFAULT_POINT

    n = len(points)
    scaled = t * (n - 1)
    seg = min(int(math.floor(scaled)), n - 2)
    u = scaled - seg

    i0 = max(seg - 1, 0)
    i1 = seg
    i2 = min(seg + 1, n - 1)
    i3 = min(seg + 2, n - 1)
    p0, p1, p2, p3 = points[i0], points[i1], points[i2], points[i3]

    x = _catmull_rom(float(p0[0]), float(p1[0]), float(p2[0]), float(p3[0]), u)
    y = _catmull_rom(float(p0[1]), float(p1[1]), float(p2[1]), float(p3[1]), u)
    return (x, y)


def direction_at(points: Sequence[Point], t: float) -> Point:
    """Unnormalized tangent from a symmetric finite difference around *t*."""
    t0 = min(1.0, max(0.0, t - DIRECTION_EPS))
    t1 = min(1.0, max(0.0, t + DIRECTION_EPS))
    x0, y0 = position_at(points, t0)
    x1, y1 = position_at(points, t1)
    return (x1 - x0, y1 - y0)


def heading_at(points: Sequence[Point], t: float) -> float:
    """Heading angle (radians) of the spline tangent at *t*."""
    dx, dy = direction_at(points, t)
    if dx == 0.0 and dy == 0.0:
        return 0.0
    return math.atan2(dy, dx)


def sample_path(points: Sequence[Point], n: int = 200) -> np.ndarray:
    """Return an ``(n, 2)`` array of points evenly spaced in *t*."""
    if n < 2 or not valid_points(points):
        return np.zeros((0, 2), dtype=float)
    ts = np.linspace(0.0, 1.0, n)
    return np.array([position_at(points, float(t)) for t in ts], dtype=float)


def nearest_path_position(points: Sequence[Point], x: float, y: float,
                          resolution: int = 400) -> float:
    """Project a world point onto the spline and return its path position.

    A coarse vectorised search over *resolution* samples, which is plenty
    for placing stations a few pixels off the lane centre.
    """
    samples = sample_path(points, resolution)
    if samples.shape[0] == 0:
        return 0.0
    d2 = (samples[:, 0] - x) ** 2 + (samples[:, 1] - y) ** 2
    idx = int(np.argmin(d2))
    return idx / float(resolution - 1)


def path_length(points: Sequence[Point], n: int = 400) -> float:
    """Approximate arc length of the spline in world units."""
    samples = sample_path(points, n)
    if samples.shape[0] < 2:
        return 0.0
    seg = np.diff(samples, axis=0)
    return float(np.sum(np.hypot(seg[:, 0], seg[:, 1])))
