#!/usr/bin/env python3
"""
Quick demo: runs the Pygame view on a single-threaded bridge that
advances the world whenever the UI polls it, fast-forwarded so bus
laps and dwells show up within a few seconds.

Usage:
    python3 demo.py [Low|Medium|High] [--mixed]
"""

import sys
import time

from sim.scenario import WITH_BUS_LANE, WITHOUT_BUS_LANE, build_scenario
from sim.sim_bridge import render_lanes, render_vehicles
from sim.world import World


class DemoBridge:
    """Synchronous stand-in for :class:`sim.sim_bridge.SimBridge`."""

    # Simulated ms per wall ms.
    _FAST_FORWARD = 4.0
    # Cap on wall time per poll so a stalled window does not burst.
    _MAX_WALL_DT = 0.1

    def __init__(self, density="Medium", scenario=WITH_BUS_LANE, seed=7):
        self._world = World(config=build_scenario(density, scenario, "10mins"), seed=seed)
        self._paused = False
        self._last_time = time.time()

    # ----- helpers ---------------------------------------------------- #

    def _advance(self):
        now = time.time()
        dt = min(now - self._last_time, self._MAX_WALL_DT)
        self._last_time = now
        if self._paused:
            return
        remaining = dt * 1000.0 * self._FAST_FORWARD
        while remaining > 0:
            step = min(remaining, self._world.policy.max_delta_ms)
            self._world.tick(step)
            remaining -= step

    # ----- bridge interface ------------------------------------------- #

    def get_vehicles(self):
        self._advance()
        return render_vehicles(self._world)

    def get_stops(self):
        return [s.as_dict() for s in self._world.layout.stations]

    def get_lanes(self):
        return render_lanes(self._world)

    def get_stats(self):
        stats = self._world.stats()
        stats.update(self._world.config.as_dict())
        return stats

    def set_paused(self, paused):
        self._paused = paused

    def reset(self):
        """Re-initialise the world so the demo can be replayed."""
        self._world.reset()
        self._last_time = time.time()


if __name__ == "__main__":
    from ui import run_pygame_view

    density = next((a for a in sys.argv[1:] if not a.startswith("--")), "Medium")
    scenario = WITHOUT_BUS_LANE if "--mixed" in sys.argv else WITH_BUS_LANE
    print(f"Starting demo: {density} traffic, {scenario}")
    print("Controls: SPACE=pause  +/-=zoom  F3=debug  L=legend  F12=screenshot  R=reset")
    run_pygame_view(DemoBridge(density, scenario))
