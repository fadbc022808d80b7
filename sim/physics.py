#!/usr/bin/env python3
"""
sim/physics.py
==============
Low-level unit and loop-distance helpers used by :mod:`sim.sensing`,
:mod:`sim.car_model` and :mod:`sim.bus_model`.

Keeping these in a separate module avoids circular imports and makes unit
testing straightforward.
"""

from __future__ import annotations

import math

SPEED_TO_PATH_PER_S: float = 0.02
"""Path fraction covered per simulated second at speed 1.0.

A bus cruising at 2.4 covers the corridor in about 20 simulated seconds,
i.e. 20 real-world minutes under the 60x time compression.
"""


def path_advance(speed: float, dt_ms: float) -> float:
    """Path-position delta covered at *speed* during *dt_ms* milliseconds."""
    return max(0.0, float(speed)) * SPEED_TO_PATH_PER_S * (dt_ms / 1000.0)


def forward_distance(from_pos: float, to_pos: float) -> float:
    """Distance travelled going forward from *from_pos* to *to_pos* on the loop.

    Returns a value in ``[0, 1)``.
    """
    d = to_pos - from_pos
    if d < 0:
        d += 1.0
    return d


def signed_loop_distance(from_pos: float, to_pos: float) -> float:
    """Shortest signed distance on the loop.

    Positive → *to_pos* is ahead, negative → behind.  Differences
    larger than half a lap are taken the other way around.
    """
    d = to_pos - from_pos
    if d > 0.5:
        d -= 1.0
    elif d < -0.5:
        d += 1.0
    return d


def wrap_position(pos: float) -> float:
    """Fold *pos* back into ``[0, 1)``."""
    pos = math.fmod(pos, 1.0)
    if pos < 0:
        pos += 1.0
    return pos


def angle_diff(a: float, b: float) -> float:
    """Signed smallest angle from *a* to *b*, in ``(-pi, pi]``."""
    d = (b - a) % (2.0 * math.pi)
    if d > math.pi:
        d -= 2.0 * math.pi
    return d
