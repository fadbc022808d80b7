#!/usr/bin/env python3
"""
Tests for Catmull-Rom lane geometry and the loop-distance helpers.
"""

from __future__ import annotations

import math
import unittest

from sim import geometry
from sim.agents import Lane
from sim.network import BUS_LANE_POINTS, REGULAR_LANE_2_POINTS
from sim.physics import (
    angle_diff,
    forward_distance,
    path_advance,
    signed_loop_distance,
    wrap_position,
)

_LINE = ((0.0, 0.0), (100.0, 0.0), (200.0, 0.0), (300.0, 0.0))


class SplineTests(unittest.TestCase):
    def test_endpoints_are_exact(self) -> None:
        for pts in (BUS_LANE_POINTS, REGULAR_LANE_2_POINTS):
            x0, y0 = geometry.position_at(pts, 0.0)
            x1, y1 = geometry.position_at(pts, 1.0)
            self.assertAlmostEqual(x0, pts[0][0])
            self.assertAlmostEqual(y0, pts[0][1])
            self.assertAlmostEqual(x1, pts[-1][0])
            self.assertAlmostEqual(y1, pts[-1][1])

    def test_passes_through_interior_control_points(self) -> None:
        n = len(BUS_LANE_POINTS)
        for i, (px, py) in enumerate(BUS_LANE_POINTS):
            x, y = geometry.position_at(BUS_LANE_POINTS, i / (n - 1))
            self.assertAlmostEqual(x, px, places=6)
            self.assertAlmostEqual(y, py, places=6)

    def test_collinear_points_give_straight_line(self) -> None:
        x, y = geometry.position_at(_LINE, 0.5)
        self.assertAlmostEqual(x, 150.0)
        self.assertAlmostEqual(y, 0.0)
        self.assertAlmostEqual(geometry.heading_at(_LINE, 0.3), 0.0)

    def test_out_of_range_t_is_clamped(self) -> None:
        self.assertEqual(geometry.position_at(_LINE, -0.5), geometry.position_at(_LINE, 0.0))
        self.assertEqual(geometry.position_at(_LINE, 1.7), geometry.position_at(_LINE, 1.0))

    def test_curve_is_continuous(self) -> None:
        prev = geometry.position_at(BUS_LANE_POINTS, 0.0)
        max_jump = 0.0
        for i in range(1, 1001):
            cur = geometry.position_at(BUS_LANE_POINTS, i / 1000.0)
            max_jump = max(max_jump, math.hypot(cur[0] - prev[0], cur[1] - prev[1]))
            prev = cur
        # The whole lane is ~4800 px long; 1000 steps should never jump far.
        self.assertLess(max_jump, 20.0)

    def test_direction_points_forward(self) -> None:
        for t in (0.0, 0.25, 0.5, 0.75, 1.0):
            dx, _ = geometry.direction_at(BUS_LANE_POINTS, t)
            self.assertGreater(dx, 0.0)

    def test_sample_path_shape(self) -> None:
        arr = geometry.sample_path(BUS_LANE_POINTS, 50)
        self.assertEqual(arr.shape, (50, 2))
        self.assertAlmostEqual(float(arr[0, 0]), 20.0)
        self.assertAlmostEqual(float(arr[-1, 0]), 4800.0)

    def test_nearest_path_position_recovers_t(self) -> None:
        x, y = geometry.position_at(BUS_LANE_POINTS, 0.4)
        t = geometry.nearest_path_position(BUS_LANE_POINTS, x, y)
        self.assertAlmostEqual(t, 0.4, delta=0.005)

    def test_path_length_of_straight_line(self) -> None:
        self.assertAlmostEqual(geometry.path_length(_LINE), 300.0, delta=0.5)


class MalformedGeometryTests(unittest.TestCase):
    def test_too_few_points(self) -> None:
        self.assertEqual(geometry.position_at([], 0.5), geometry.DEFAULT_POINT)
        self.assertEqual(geometry.position_at([(5, 5)], 0.5), geometry.DEFAULT_POINT)
        self.assertEqual(geometry.position_at(None, 0.5), geometry.DEFAULT_POINT)

    def test_bad_coordinates(self) -> None:
        self.assertEqual(geometry.position_at([(0, 0), ("x", 1)], 0.5), geometry.DEFAULT_POINT)
        self.assertEqual(geometry.position_at([(0, 0), (float("nan"), 1)], 0.5),
                         geometry.DEFAULT_POINT)
        self.assertEqual(geometry.position_at([(0, 0), (1,)], 0.5), geometry.DEFAULT_POINT)

    def test_degenerate_heading_is_zero(self) -> None:
        self.assertEqual(geometry.heading_at([], 0.5), 0.0)

    def test_sample_path_of_malformed_lane_is_empty(self) -> None:
        self.assertEqual(geometry.sample_path([(1, 1)], 10).shape, (0, 2))
        self.assertEqual(geometry.nearest_path_position([(1, 1)], 0, 0), 0.0)

    def test_lane_with_malformed_points_does_not_raise(self) -> None:
        lane = Lane(index=9, name="broken-geometry-test", points=((0.0, 0.0),))
        with self.assertLogs("geometry", level="WARNING"):
            self.assertEqual(lane.position_at(0.3), geometry.DEFAULT_POINT)


class LoopDistanceTests(unittest.TestCase):
    def test_forward_distance_wraps(self) -> None:
        self.assertAlmostEqual(forward_distance(0.9, 0.1), 0.2)
        self.assertAlmostEqual(forward_distance(0.1, 0.3), 0.2)

    def test_signed_loop_distance(self) -> None:
        self.assertAlmostEqual(signed_loop_distance(0.1, 0.3), 0.2)
        self.assertAlmostEqual(signed_loop_distance(0.3, 0.1), -0.2)
        self.assertAlmostEqual(signed_loop_distance(0.95, 0.05), 0.1)
        self.assertAlmostEqual(signed_loop_distance(0.05, 0.95), -0.1)

    def test_wrap_position(self) -> None:
        self.assertAlmostEqual(wrap_position(1.25), 0.25)
        self.assertAlmostEqual(wrap_position(-0.25), 0.75)

    def test_path_advance(self) -> None:
        self.assertAlmostEqual(path_advance(1.0, 1000.0), 0.02)
        self.assertEqual(path_advance(-3.0, 1000.0), 0.0)

    def test_angle_diff(self) -> None:
        self.assertAlmostEqual(angle_diff(math.pi - 0.1, -math.pi + 0.1), 0.2)
        self.assertAlmostEqual(angle_diff(0.0, -0.5), -0.5)


if __name__ == "__main__":
    unittest.main()
