#!/usr/bin/env python3
"""
sim/pose.py
===========
Rendering pose for vehicles: world position and heading derived from the
lane splines each tick.  Poses are not authoritative state.
"""

from __future__ import annotations

import math
from typing import Sequence

from sim.agents import Lane, Movable
from sim.physics import angle_diff


def ease_in_out_cubic(x: float) -> float:
    x = min(1.0, max(0.0, x))
    if x < 0.5:
        return 4.0 * x * x * x
    return 1.0 - ((-2.0 * x + 2.0) ** 3) / 2.0


def update_pose(
    vehicle: Movable,
    lanes: Sequence[Lane],
    max_steer: float,
    arc_factor: float = 0.2,
) -> None:
    """Write ``vehicle.pose`` from its lane(s) and transition state.

    Mid-transition the source and target spline points at the same path
    position are blended with an eased fraction, bulged sideways along a
    sine arc, and the heading receives a steering offset that is zero at
    both ends of the transition.
    """
    if not 0 <= vehicle.lane < len(lanes):
        return
    t = min(1.0, max(0.0, vehicle.position))
    src = lanes[vehicle.lane]
    if not vehicle.is_changing_lane or not 0 <= vehicle.target_lane < len(lanes):
        x, y = src.position_at(t)
        vehicle.pose.x, vehicle.pose.y = x, y
        vehicle.pose.heading = src.heading_at(t)
        return

    dst = lanes[vehicle.target_lane]
    e = ease_in_out_cubic(vehicle.lane_change_fraction)
    x0, y0 = src.position_at(t)
    x1, y1 = dst.position_at(t)
    x = x0 + (x1 - x0) * e
    y = y0 + (y1 - y0) * e

    h0 = src.heading_at(t)
    h1 = dst.heading_at(t)
    heading = h0 + angle_diff(h0, h1) * e

    # Perpendicular arc, bulging toward the target side.
    lateral = math.hypot(x1 - x0, y1 - y0)
    bulge = math.sin(e * math.pi) * lateral * arc_factor
    nx, ny = -math.sin(heading), math.cos(heading)
    side = 1.0 if (x1 - x0) * nx + (y1 - y0) * ny >= 0 else -1.0
    x += nx * bulge * side
    y += ny * bulge * side

    direction = 1.0 if vehicle.target_lane > vehicle.lane else -1.0
    heading += math.sin(e * math.pi) * max_steer * direction

    vehicle.pose.x, vehicle.pose.y = x, y
    vehicle.pose.heading = heading
