#!/usr/bin/env python3
"""
sim/world.py
============
Entity-based BRT corridor world.

This module owns the flat lists of :class:`~sim.agents.Car` and
:class:`~sim.agents.Bus` entities, the road layout, the simulation clock
with its :class:`~sim.scheduler.EventQueue`, and the throughput
aggregator.  :meth:`World.tick` runs one frame:

1. clamp the delta and advance the clock;
2. apply due events (car spawns, bus activations and reactivations);
3. refill station queues;
4. freeze an :class:`~sim.agents.AgentView` snapshot;
5. update every car and bus against that snapshot;
6. retire finished cars, derive render poses, sample throughput.
"""

from __future__ import annotations

import logging
import random
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Callable, Deque, Dict, List, Optional

from events.event_bus import CAR_LAP_COMPLETE, PASSENGERS_ALIGHTED, EventBus
from sim.agents import Bus, BusState, Car, Vehicle, snapshot
from sim.bus_model import BusController
from sim.car_model import CarController, LaneChangeRecord, TickContext
from sim.network import RoadLayout, dedicated_layout, mixed_layout
from sim.pose import update_pose
from sim.scenario import ScenarioConfig, build_scenario
from sim.scheduler import BUS_ACTIVATE, BUS_REACTIVATE, CAR_SPAWN, EventQueue
from sim.sensing import entry_is_clear
from sim.throughput import ThroughputAggregator
from sim.traffic_policy import BEHAVIOR_PROFILES, TrafficPolicy, behavior_for_roll

log = logging.getLogger("world")

_LANE_CHANGE_TRACE = 2000


@dataclass
class TickResult:
    """What one :meth:`World.tick` produced."""

    now_ms: float
    dt_ms: float
    cars: List[Car]
    buses: List[Bus]
    lane_changes: List[LaneChangeRecord] = field(default_factory=list)


class World:
    """Simulation world: entities, clock, events and statistics.

    Parameters
    ----------
    config : ScenarioConfig, optional
        Density, lane configuration and bus headway.  Defaults to
        ``Low`` / ``With Bus Lane`` / ``20mins``.
    policy : TrafficPolicy, optional
        Tunable constants.
    seed : int, optional
        Seed of the single random source every decision draws from.
    layout : RoadLayout, optional
        Override the layout derived from *config*.
    events : EventBus, optional
        Notification bus; a private one is created when omitted
        (subscribers only, no backlog).  Its backlog is dropped on reset.
    on_passengers_alighted : callable, optional
        Called with the alighting count after every completed dwell.
    """

    def __init__(
        self,
        config: Optional[ScenarioConfig] = None,
        policy: Optional[TrafficPolicy] = None,
        seed: Optional[int] = None,
        layout: Optional[RoadLayout] = None,
        events: Optional[EventBus] = None,
        on_passengers_alighted: Optional[Callable[[int], None]] = None,
    ) -> None:
        self.config = config or build_scenario()
        self.policy = policy or TrafficPolicy()
        self.seed = seed
        self.events = events or EventBus(keep_backlog=False)
        self.queue = EventQueue()
        self.aggregator = ThroughputAggregator(self.policy.passengers_per_car)
        self.aggregator.attach(self.events)
        if on_passengers_alighted is not None:
            self.events.subscribe(
                PASSENGERS_ALIGHTED,
                lambda msg: on_passengers_alighted(int(msg.payload.get("count", 0))),
            )
        self._layout_override = layout
        self.reset()

    # ── Lifecycle ────────────────────────────────────────────────────────

    def reset(self) -> None:
        """Rebuild every entity and restart the clock at zero."""
        self.queue.cancel_all()
        self.events.clear()
        self._rng = random.Random(self.seed)
        self.now_ms: float = 0.0
        self.tick_count: int = 0
        self.stopped: bool = False
        self.aggregator.reset()
        self._next_sample_ms: float = 0.0

        self.layout = self._build_layout()
        lo, hi = self.policy.stop_initial_waiting
        for stop in self.layout.stations:
            stop.max_waiting = self.policy.stop_max_waiting
            stop.waiting = min(self._rng.randint(lo, hi), stop.max_waiting)
            stop.last_refill_ms = 0.0

        self.car_controller = CarController(self.policy, self._rng)
        self.bus_controller = BusController(
            self.policy, self._rng, self.layout, self.events, self.queue,
            self.config.schedule_interval_ms,
        )

        self.cars: List[Car] = []
        self._next_car_id = 0
        self.cars_spawned = 0
        self.spawn_blocked = 0
        self.spawn_capped = 0
        self.stale_events = 0
        self.activations_deferred = 0
        self.lane_changes: Deque[LaneChangeRecord] = deque(maxlen=_LANE_CHANGE_TRACE)

        self.buses: List[Bus] = self._init_buses()
        self._bus_by_id: Dict[str, Bus] = {b.id: b for b in self.buses}
        self.queue.schedule(0.0, 0.0, CAR_SPAWN)
        self._commit_poses()
        log.info("World reset: %s, %d bus(es) every %.0f s, %d cars/min",
                 self.layout.name, len(self.buses),
                 self.config.schedule_interval_ms / 1000.0, self.config.cars_per_minute)

    def stop(self) -> None:
        """Halt the world and cancel every pending event."""
        self.stopped = True
        removed = self.queue.cancel_all()
        log.info("World stopped at %.1f s (%d pending event(s) cancelled)",
                 self.now_ms / 1000.0, removed)

    def _build_layout(self) -> RoadLayout:
        if self._layout_override is not None:
            return self._layout_override
        if self.config.dedicated_bus_lane:
            return dedicated_layout(self.policy.stop_max_waiting)
        return mixed_layout(self._rng, self.policy.stop_max_waiting,
                            boarding_lane=self.policy.boarding_lane)

    def _init_buses(self) -> List[Bus]:
        cruise = self.config.bus_speed * self.policy.bus_cruise_factor
        buses: List[Bus] = []
        for i in range(max(0, self.config.bus_count)):
            if self.layout.dedicated:
                lane = 0
            else:
                lane = i % self.layout.lane_count
            bus = Bus(
                id=f"bus-{i}",
                lane=lane,
                position=self.policy.inactive_position,
                speed=0.0,
                index=i,
                capacity=self.policy.bus_capacity,
                cruise_speed=cruise,
                lane_change_duration_ms=self.policy.bus_lane_change_duration_ms,
            )
            buses.append(bus)
            if i == 0:
                self.bus_controller.activate(bus, 0.0)
            else:
                self.queue.schedule(0.0, i * self.config.schedule_interval_ms,
                                    BUS_ACTIVATE, bus.id)
        return buses

    # ── Queries ──────────────────────────────────────────────────────────

    @property
    def vehicles(self) -> List[Vehicle]:
        return [*self.cars, *self.buses]

    def active_buses(self) -> List[Bus]:
        return [b for b in self.buses if b.is_active]

    def snapshot(self):
        return snapshot(self.vehicles)

    def stats(self) -> Dict[str, Any]:
        out: Dict[str, Any] = dict(self.aggregator.totals())
        out.update({
            "time_s": self.now_ms / 1000.0,
            "ticks": self.tick_count,
            "cars_active": len(self.cars),
            "cars_spawned": self.cars_spawned,
            "spawn_blocked": self.spawn_blocked,
            "buses_active": len(self.active_buses()),
            "buses_stopped": sum(1 for b in self.buses if b.state is BusState.STOPPED),
            "lane_changes": len(self.lane_changes),
            "pending_events": len(self.queue),
            "stale_events": self.stale_events,
            "activations_deferred": self.activations_deferred,
        })
        return out

    # ── Tick ─────────────────────────────────────────────────────────────

    def tick(self, delta_ms: float) -> TickResult:
        """Advance the simulation by *delta_ms* (clamped) milliseconds."""
        try:
            dt = float(delta_ms)
        except (TypeError, ValueError):
            dt = 0.0
        if dt != dt:
            dt = 0.0
        dt = min(max(dt, 0.0), self.policy.max_delta_ms)
        if self.stopped or dt <= 0.0:
            return TickResult(self.now_ms, 0.0, self.cars, self.buses)

        self.now_ms += dt
        self.tick_count += 1
        self._apply_due_events()
        for stop in self.layout.stations:
            stop.refill(self.now_ms, self._rng, self.policy.stop_refill_per_s)

        ctx = TickContext(self.now_ms, snapshot(self.vehicles), self.layout.car_lanes)
        for car in self.cars:
            self.car_controller.update(car, ctx, dt)
        for bus in self.buses:
            self.bus_controller.update(bus, ctx, dt)

        self.lane_changes.extend(ctx.started)
        self._retire_cars()
        self._commit_poses()

        if self.now_ms >= self._next_sample_ms:
            self.aggregator.sample(self.now_ms)
            self._next_sample_ms += self.policy.sample_interval_ms
        return TickResult(self.now_ms, dt, self.cars, self.buses, list(ctx.started))

    def run(self, duration_ms: float, step_ms: float = 1000.0 / 60.0) -> Dict[str, Any]:
        """Tick repeatedly until *duration_ms* of simulated time has passed."""
        end = self.now_ms + duration_ms
        while self.now_ms < end - 1e-9 and not self.stopped:
            self.tick(min(step_ms, end - self.now_ms))
        return self.stats()

    # ── Events ───────────────────────────────────────────────────────────

    def _apply_due_events(self) -> None:
        while True:
            due = self.queue.pop_due(self.now_ms)
            if not due:
                return
            for ev in due:
                if ev.kind == CAR_SPAWN:
                    self.queue.schedule(ev.due_ms, self.config.spawn_interval_ms, CAR_SPAWN)
                    self._spawn_car()
                elif ev.kind in (BUS_ACTIVATE, BUS_REACTIVATE):
                    bus = self._bus_by_id.get(ev.target)
                    if bus is None or bus.is_active:
                        self.stale_events += 1
                        log.debug("ignoring %s for %s", ev.kind, ev.target)
                        continue
                    if not entry_is_clear(snapshot(self.vehicles), bus.lane,
                                          self.policy.spawn_clear_gap):
                        self.activations_deferred += 1
                        self.queue.schedule(self.now_ms, self.policy.activation_retry_ms,
                                            ev.kind, ev.target)
                        log.debug("%s entry occupied, activation deferred", bus.id)
                        continue
                    self.bus_controller.activate(bus, self.now_ms)
                else:
                    log.warning("unknown event kind %s", ev.kind)

    def _spawn_car(self) -> Optional[Car]:
        cfg = self.config
        if len(self.cars) + len(self.active_buses()) >= cfg.max_vehicles:
            self.spawn_capped += 1
            return None
        views = snapshot(self.vehicles)
        lanes = [lane for lane in self.layout.car_lanes
                 if entry_is_clear(views, lane, self.policy.spawn_clear_gap)]
        if not lanes:
            self.spawn_blocked += 1
            return None
        lane = self._rng.choice(lanes)
        behavior = behavior_for_roll(self._rng.random())
        profile = BEHAVIOR_PROFILES[behavior]
        desired = self._rng.uniform(cfg.min_speed, cfg.max_speed) * profile.speed_adjustment
        car = Car(
            id=f"car-{self._next_car_id}",
            lane=lane,
            position=0.0,
            speed=desired,
            lane_change_duration_ms=profile.lane_change_duration_ms,
            desired_speed=desired,
            behavior=behavior,
            preferred_lane=lane,
            spawned_at_ms=self.now_ms,
        )
        self._next_car_id += 1
        self.cars_spawned += 1
        self.cars.append(car)
        update_pose(car, self.layout.lanes, self.policy.car_max_steer, self.policy.arc_factor)
        return car

    def _retire_cars(self) -> None:
        keep: List[Car] = []
        for car in self.cars:
            if not car.finished:
                keep.append(car)
                continue
            self.events.publish(CAR_LAP_COMPLETE, car.id, {
                "travel_time_ms": self.now_ms - car.spawned_at_ms,
                "lane": car.lane,
                "behavior": car.behavior.value,
            }, self.now_ms)
        self.cars = keep

    def _commit_poses(self) -> None:
        lanes = self.layout.lanes
        for car in self.cars:
            update_pose(car, lanes, self.policy.car_max_steer, self.policy.arc_factor)
        for bus in self.buses:
            if bus.is_active:
                update_pose(bus, lanes, self.policy.bus_max_steer, self.policy.arc_factor)
