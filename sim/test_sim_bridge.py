#!/usr/bin/env python3
"""
Tests for the threaded simulation bridge and its render adapters.
"""

import time
import unittest

from sim.scenario import WITHOUT_BUS_LANE, build_scenario
from sim.sim_bridge import SimBridge


class SimBridgeTests(unittest.TestCase):
    def test_initial_cache(self) -> None:
        bridge = SimBridge(seed=2)
        lanes = bridge.get_lanes()
        self.assertEqual([lane["index"] for lane in lanes], [0, 1, 2])
        self.assertTrue(lanes[0]["bus_only"])
        self.assertFalse(lanes[0]["car_lane"])
        self.assertEqual(len(lanes[0]["points"]), 240)
        self.assertEqual(len(bridge.get_stops()), 4)
        ids = [v["id"] for v in bridge.get_vehicles()]
        self.assertEqual(ids, ["bus-0"])
        stats = bridge.get_stats()
        self.assertEqual(stats["scenario"], bridge.config.scenario)
        self.assertFalse(stats["paused"])

    def test_mixed_lanes_carry_request_points(self) -> None:
        bridge = SimBridge(config=build_scenario("Low", WITHOUT_BUS_LANE), seed=2)
        lanes = bridge.get_lanes()
        self.assertEqual(len(lanes[2]["request_points"]), 8)
        self.assertEqual(lanes[0]["request_points"], [])
        self.assertTrue(all(lane["car_lane"] for lane in lanes))

    def test_thread_runs_and_stops(self) -> None:
        bridge = SimBridge(seed=2, tick_rate_hz=50.0, time_scale=10.0)
        bridge.start()
        try:
            deadline = time.time() + 5.0
            while bridge.get_stats()["time_s"] <= 0.0 and time.time() < deadline:
                time.sleep(0.02)
        finally:
            bridge.stop()
        self.assertGreater(bridge.get_stats()["time_s"], 0.0)
        self.assertEqual(bridge.get_stats()["pending_events"], 0)
        series = bridge.get_series()
        self.assertIn("total_passengers", series["throughput"].columns)
        self.assertIn("travel_time_s", series["travel_times"].columns)

    def test_pause_and_reset(self) -> None:
        bridge = SimBridge(seed=2)
        bridge.set_paused(True)
        self.assertTrue(bridge.is_paused())
        bridge.reset()
        self.assertEqual(bridge.get_stats()["time_s"], 0.0)


if __name__ == "__main__":
    unittest.main()
