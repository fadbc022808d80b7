"""
sim/sim_bridge.py
=================
Background-thread runner that ticks :class:`~sim.world.World` at a fixed
simulated step and caches render-ready dicts.  The UI polls the bridge
for the latest snapshot without blocking.

Public API consumed by :mod:`ui.pygame_view`
--------------------------------------------
* ``get_vehicles()``   → ``List[dict]``
* ``get_stops()``      → ``List[dict]``
* ``get_lanes()``      → ``List[dict]``
* ``get_stats()``      → ``dict``
* ``get_series()``     → ``Dict[str, pandas.DataFrame]``
* ``reset()``          → ``None``
* ``set_paused(bool)`` → ``None``
* ``is_paused()``      → ``bool``
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

from sim.agents import Bus, BusState, Car
from sim.geometry import sample_path
from sim.scenario import ScenarioConfig, build_scenario
from sim.traffic_policy import BehaviorType, TrafficPolicy
from sim.world import World

log = logging.getLogger("sim_bridge")

# ── constants shared with UI ──────────────────────────────────────────────────

_BEHAVIOR_COLORS: Dict[BehaviorType, Tuple[int, int, int]] = {
    BehaviorType.AGGRESSIVE: (255, 88, 88),
    BehaviorType.NEUTRAL: (86, 168, 255),
    BehaviorType.POLITE: (100, 226, 170),
}

_BUS_STATE_COLORS: Dict[BusState, Tuple[int, int, int]] = {
    BusState.MOVING: (246, 191, 90),
    BusState.STOPPED: (255, 160, 100),
    BusState.INACTIVE: (120, 120, 130),
}

_LANE_SAMPLES = 240


def _car_dict(car: Car) -> Dict[str, Any]:
    d = car.as_dict()
    d["color"] = _BEHAVIOR_COLORS.get(car.behavior, (200, 200, 200))
    return d


def _bus_dict(bus: Bus) -> Dict[str, Any]:
    d = bus.as_dict()
    d["color"] = _BUS_STATE_COLORS.get(bus.state, (200, 200, 200))
    d["load_ratio"] = bus.load_ratio
    return d


def render_vehicles(world: World) -> List[Dict[str, Any]]:
    """Render dicts for every car and every active bus."""
    vehicles = [_car_dict(c) for c in world.cars]
    vehicles.extend(_bus_dict(b) for b in world.buses if b.is_active)
    return vehicles


def render_lanes(world: World) -> List[Dict[str, Any]]:
    """Lane polylines plus the curb request points of the boarding lane."""
    layout = world.layout
    invisible: Sequence = layout.invisible_stops
    out: List[Dict[str, Any]] = []
    for lane in layout.lanes:
        line = [tuple(p) for p in sample_path(lane.points, _LANE_SAMPLES).tolist()]
        d: Dict[str, Any] = {
            "index": lane.index,
            "name": lane.name,
            "bus_only": lane.bus_only,
            "car_lane": lane.index in layout.car_lanes,
            "points": line,
            "request_points": [],
        }
        if lane.index == layout.boarding_lane and not layout.dedicated:
            d["request_points"] = [lane.position_at(s.path_position) for s in invisible]
        out.append(d)
    return out


class SimBridge:
    """Simulation runner living in a background thread.

    The thread calls :meth:`_tick` at ``tick_rate_hz``, advancing the
    world by ``1000 / tick_rate_hz`` simulated milliseconds times
    ``time_scale``, and caching the results for the UI thread.

    Parameters
    ----------
    config : ScenarioConfig or None
        Scenario to run.  Defaults to :func:`~sim.scenario.build_scenario`.
    tick_rate_hz : float
        Wall-clock ticks per second.
    seed : int or None
        Seed for reproducibility.
    time_scale : float
        Simulated milliseconds per wall millisecond.
    policy : TrafficPolicy or None
        Tunable constants.
    """

    def __init__(
        self,
        config: Optional[ScenarioConfig] = None,
        tick_rate_hz: float = 30.0,
        seed: Optional[int] = None,
        time_scale: float = 1.0,
        policy: Optional[TrafficPolicy] = None,
    ) -> None:
        self._tick_rate_hz = max(1.0, float(tick_rate_hz))
        self._time_scale = max(0.0, float(time_scale))
        self._world = World(config=config or build_scenario(), policy=policy, seed=seed)

        # Guards every World access; the world is not thread-safe.
        self._world_lock = threading.Lock()
        self._lock = threading.Lock()

        # Cached state: written by sim thread, read by UI thread
        self._vehicles: List[Dict[str, Any]] = []
        self._stops: List[Dict[str, Any]] = []
        self._lanes: List[Dict[str, Any]] = []
        self._stats: Dict[str, Any] = {}

        self._thread: Optional[threading.Thread] = None
        self._running = False
        self._paused = False
        self._refresh_cache(lanes=True)

    @property
    def config(self) -> ScenarioConfig:
        return self._world.config

    # ── Lifecycle ─────────────────────────────────────────────────────────────

    def start(self) -> None:
        """Spawn the background simulation thread."""
        if self._running:
            return
        self._running = True
        self._thread = threading.Thread(
            target=self._loop, daemon=True, name="SimBridge"
        )
        self._thread.start()
        log.info("SimBridge started at %.1f Hz (%s, %s, %s)",
                 self._tick_rate_hz, self.config.traffic_density,
                 self.config.scenario, self.config.bus_schedule)

    def stop(self) -> None:
        """Signal the thread to stop, join it and cancel pending world events."""
        self._running = False
        if self._thread:
            self._thread.join(timeout=2.0)
            self._thread = None
        with self._world_lock:
            self._world.stop()
        self._refresh_cache()
        log.info("SimBridge stopped")

    def reset(self) -> None:
        """Re-initialise the world so the scenario replays."""
        with self._world_lock:
            self._world.reset()
        self._refresh_cache(lanes=True)
        log.info("SimBridge reset")

    def set_paused(self, paused: bool) -> None:
        """Pause / unpause the simulation tick."""
        self._paused = bool(paused)

    def is_paused(self) -> bool:
        return self._paused

    # ── UI adapter API ────────────────────────────────────────────────────────

    def get_vehicles(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._vehicles)

    def get_stops(self) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._stops)

    def get_lanes(self) -> List[Dict[str, Any]]:
        """Lane polylines (sampled once per reset) with their metadata."""
        with self._lock:
            return list(self._lanes)

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return dict(self._stats)

    def get_series(self) -> Dict[str, pd.DataFrame]:
        """Throughput time-series and the recent travel-time window."""
        with self._world_lock:
            agg = self._world.aggregator
            return {
                "throughput": agg.to_frame(),
                "travel_times": agg.recent_travel_times(),
            }

    @property
    def aggregator(self):
        return self._world.aggregator

    # ── Background loop ───────────────────────────────────────────────────────

    def _loop(self) -> None:
        dt = 1.0 / self._tick_rate_hz
        while self._running:
            t0 = time.perf_counter()
            if not self._paused:
                try:
                    self._tick(dt * 1000.0 * self._time_scale)
                except Exception:
                    log.exception("SimBridge tick error")
            time.sleep(max(0.0, dt - (time.perf_counter() - t0)))

    def _tick(self, sim_ms: float) -> None:
        max_step = self._world.policy.max_delta_ms
        with self._world_lock:
            remaining = sim_ms
            while remaining > 1e-9:
                step = min(remaining, max_step)
                self._world.tick(step)
                remaining -= step
        self._refresh_cache()

    # ── cache ─────────────────────────────────────────────────────────────────

    def _refresh_cache(self, lanes: bool = False) -> None:
        with self._world_lock:
            world = self._world
            vehicles = render_vehicles(world)
            stops = [s.as_dict() for s in world.layout.stations]
            stats = world.stats()
            stats.update(self.config.as_dict())
            stats["paused"] = self._paused
            lane_dicts = render_lanes(world) if lanes else None

        # Atomic swap; UI thread reads these via public methods.
        with self._lock:
            self._vehicles = vehicles
            self._stops = stops
            self._stats = stats
            if lane_dicts is not None:
                self._lanes = lane_dicts
