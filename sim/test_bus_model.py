#!/usr/bin/env python3
"""
Tests for the bus stop / dwell / lane-discipline state machine.
"""

from __future__ import annotations

import random
import unittest
from typing import List, Sequence

from events.event_bus import (
    BUS_LAP_COMPLETE,
    DWELL_COMPLETE,
    PASSENGERS_ALIGHTED,
    STOP_ABANDONED,
    STOP_SKIPPED,
    EventBus,
)
from sim.agents import (
    BUS,
    FLAG,
    STATION,
    TERMINAL,
    Bus,
    BusState,
    Car,
    Dwell,
    StopTarget,
    snapshot,
)
from sim.bus_model import BusController
from sim.car_model import CarController, TickContext
from sim.network import RoadLayout, dedicated_layout, mixed_layout
from sim.scheduler import BUS_REACTIVATE, EventQueue
from sim.traffic_policy import TrafficPolicy

_HEADWAY_MS = 20_000.0


class _StubRng:
    """Random source with fixed draws: ``random()`` → *draw*, ``randint`` → *count* clamped."""

    def __init__(self, draw: float = 0.0, count: int = 10) -> None:
        self.draw = draw
        self.count = count

    def random(self) -> float:
        return self.draw

    def randint(self, a: int, b: int) -> int:
        return max(a, min(self.count, b))


class _BusHarness:
    def __init__(self, layout: RoadLayout, rng=None) -> None:
        self.policy = TrafficPolicy()
        self.layout = layout
        self.events = EventBus()
        self.queue = EventQueue()
        self.controller = BusController(self.policy, rng or _StubRng(), layout,
                                        self.events, self.queue, _HEADWAY_MS)
        self.now_ms = 0.0

    def bus(self, lane: int, position: float, passengers: int = 50) -> Bus:
        bus = Bus(id="bus-0", lane=lane, position=0.0, speed=0.0,
                  capacity=self.policy.bus_capacity, cruise_speed=2.4,
                  lane_change_duration_ms=self.policy.bus_lane_change_duration_ms)
        self.controller.activate(bus, self.now_ms)
        bus.position = position
        bus.passengers = passengers
        return bus

    def step(self, bus: Bus, others: Sequence = (), dt_ms: float = 100.0) -> None:
        self.now_ms += dt_ms
        ctx = TickContext(self.now_ms, snapshot([bus, *others]), self.layout.car_lanes)
        self.controller.update(bus, ctx, dt_ms)

    def run_until(self, bus: Bus, predicate, limit: int = 400, dt_ms: float = 100.0) -> int:
        for i in range(limit):
            if predicate():
                return i
            self.step(bus, dt_ms=dt_ms)
        return limit

    def messages(self, topic: str) -> List:
        return self.events.peek(topic)


class ActivationTests(unittest.TestCase):
    def test_activate_loads_bus_at_lap_start(self) -> None:
        h = _BusHarness(dedicated_layout(), rng=random.Random(3))
        bus = Bus(id="bus-1", lane=0, position=-0.1, speed=0.0)
        h.controller.activate(bus, 500.0)
        self.assertIs(bus.state, BusState.MOVING)
        self.assertEqual(bus.position, 0.0)
        self.assertTrue(70 <= bus.passengers <= 90)
        self.assertEqual(bus.lap.started_at_ms, 500.0)
        self.assertFalse(bus.lap.has_stopped)

    def test_inactive_bus_is_not_updated(self) -> None:
        h = _BusHarness(dedicated_layout())
        bus = Bus(id="bus-0", lane=0, position=-0.1, speed=0.0)
        h.controller.update(bus, TickContext(0.0, snapshot([bus]), (1, 2)), 100.0)
        self.assertEqual(bus.position, -0.1)


class DedicatedLaneTests(unittest.TestCase):
    def setUp(self) -> None:
        self.h = _BusHarness(dedicated_layout())
        self.station = self.h.layout.stations[0]

    def test_stops_at_station_in_reach(self) -> None:
        self.station.waiting = 5
        bus = self.h.bus(0, self.station.path_position - 0.002)
        self.h.step(bus)
        self.assertIs(bus.state, BusState.STOPPED)
        self.assertEqual(bus.dwell.target.key, (STATION, self.station.index))
        self.assertLessEqual(bus.position, self.station.path_position)
        # drop 10, pick min(5 waiting, room, 10) = 5
        self.assertEqual(bus.dwell.duration_ms, 200 + 60 * 10 + 100 * 5)

    def test_dwell_applies_deltas_once_and_publishes(self) -> None:
        self.station.waiting = 5
        bus = self.h.bus(0, self.station.path_position - 0.002, passengers=50)
        self.h.step(bus)
        dwell = bus.dwell
        stopped_at = bus.position
        ticks = self.h.run_until(bus, lambda: bus.state is BusState.MOVING)
        self.assertEqual(ticks, 13)
        self.assertEqual(bus.position, stopped_at)
        self.assertEqual(bus.passengers, 50 - 10 + 5)
        self.assertEqual(self.station.waiting, 0)
        self.assertIsNone(bus.dwell)
        self.assertTrue(dwell.done)

        alighted = self.h.messages(PASSENGERS_ALIGHTED)
        self.assertEqual([m.payload["count"] for m in alighted], [10])
        (done,) = self.h.messages(DWELL_COMPLETE)
        self.assertEqual(done.payload["kind"], STATION)
        self.assertEqual(done.payload["lane"], 0)
        self.assertEqual(done.payload["picked"], 5)
        self.assertEqual(bus.lap.served, [self.station.index])

    def test_station_is_not_served_twice(self) -> None:
        self.station.waiting = 5
        bus = self.h.bus(0, self.station.path_position - 0.002)
        self.h.step(bus)
        self.h.run_until(bus, lambda: bus.state is BusState.MOVING)
        self.h.run_until(bus, lambda: bus.position > self.station.path_position + 0.05)
        self.assertEqual(len(self.h.messages(DWELL_COMPLETE)), 1)

    def test_full_bus_with_nobody_waiting_skips(self) -> None:
        self.station.waiting = 0
        bus = self.h.bus(0, self.station.path_position - 0.002, passengers=90)
        self.h.step(bus)
        self.assertIs(bus.state, BusState.MOVING)
        self.assertEqual(bus.lap.skipped, [self.station.index])
        (skip,) = self.h.messages(STOP_SKIPPED)
        self.assertEqual(skip.payload["reason"], "full")

    def test_full_bus_still_stops_when_people_wait(self) -> None:
        self.station.waiting = 3
        bus = self.h.bus(0, self.station.path_position - 0.002, passengers=90)
        self.h.step(bus)
        self.assertIs(bus.state, BusState.STOPPED)
        self.assertEqual(bus.dwell.to_pick, 3)

    def test_lap_end_parks_bus_and_schedules_reactivation(self) -> None:
        bus = self.h.bus(0, 0.958, passengers=61)
        bus.lap.served.extend(s.index for s in self.h.layout.stations)
        self.h.step(bus)
        self.assertIs(bus.state, BusState.INACTIVE)
        self.assertEqual(bus.position, 0.0)
        self.assertEqual(bus.laps_completed, 1)
        (lap,) = self.h.messages(BUS_LAP_COMPLETE)
        self.assertEqual(lap.payload["passengers"], 61)
        self.assertAlmostEqual(lap.payload["travel_time_ms"], 100.0)
        (event,) = self.h.queue.pending(BUS_REACTIVATE)
        self.assertEqual(event.target, bus.id)
        self.assertAlmostEqual(event.due_ms, self.h.now_ms + _HEADWAY_MS)

    def test_hard_stop_behind_close_leader(self) -> None:
        bus = self.h.bus(0, 0.62)
        leader = Bus(id="bus-9", lane=0, position=0.64, speed=0.0, state=BusState.MOVING)
        self.h.step(bus, others=[leader])
        self.assertEqual(bus.speed, 0.0)
        self.assertEqual(bus.position, 0.62)

    def test_slows_proportionally_inside_slow_gap(self) -> None:
        bus = self.h.bus(0, 0.62)
        leader = Bus(id="bus-9", lane=0, position=0.72, speed=0.0, state=BusState.MOVING)
        self.h.step(bus, others=[leader])
        self.assertAlmostEqual(bus.speed, 2.4 * 0.8)


class DwellClampTests(unittest.TestCase):
    def setUp(self) -> None:
        self.h = _BusHarness(mixed_layout(random.Random(4)))

    def _stopped_bus(self, passengers: int, to_drop: int, to_pick: int) -> Bus:
        bus = self.h.bus(2, 0.4, passengers=passengers)
        bus.state = BusState.STOPPED
        bus.dwell = Dwell(target=StopTarget(FLAG, 0, 0.4), duration_ms=50.0,
                          to_drop=to_drop, to_pick=to_pick)
        return bus

    def test_pickup_never_exceeds_capacity(self) -> None:
        bus = self._stopped_bus(passengers=88, to_drop=0, to_pick=10)
        self.h.step(bus)
        self.assertEqual(bus.passengers, bus.capacity)
        (done,) = self.h.messages(DWELL_COMPLETE)
        self.assertEqual(done.payload["picked"], 2)

    def test_drop_never_goes_negative(self) -> None:
        bus = self._stopped_bus(passengers=3, to_drop=12, to_pick=0)
        self.h.step(bus)
        self.assertEqual(bus.passengers, 0)
        (alighted,) = self.h.messages(PASSENGERS_ALIGHTED)
        self.assertEqual(alighted.payload["count"], 3)


class MixedTrafficTests(unittest.TestCase):
    def setUp(self) -> None:
        self.h = _BusHarness(mixed_layout(random.Random(4)))

    def test_bus_outside_boarding_lane_merges_toward_it(self) -> None:
        bus = self.h.bus(0, 0.2)
        self.h.step(bus)
        self.assertIsNotNone(bus.seeking)
        self.assertEqual(bus.home_lane, 0)
        self.assertTrue(bus.is_changing_lane)
        self.assertEqual(bus.target_lane, 1)

    def test_merge_waits_for_a_safe_gap(self) -> None:
        bus = self.h.bus(0, 0.2)
        blocker = Car(id="car-0", lane=1, position=0.22, speed=2.0)
        self.h.step(bus, others=[blocker])
        self.assertFalse(bus.is_changing_lane)
        self.assertEqual(bus.lane, 0)

    def test_never_dwells_outside_boarding_lane(self) -> None:
        bus = self.h.bus(0, 0.499)
        bus.seeking = StopTarget(FLAG, 0, 0.5)
        bus.lap.considered.add(bus.seeking.key)
        self.h.step(bus)
        self.assertIs(bus.state, BusState.MOVING)
        self.assertIsNone(bus.dwell)
        (abandoned,) = self.h.messages(STOP_ABANDONED)
        self.assertEqual(abandoned.payload["lane"], 0)

    def test_dwells_from_boarding_lane(self) -> None:
        bus = self.h.bus(2, 0.499)
        bus.seeking = StopTarget(FLAG, 0, 0.5)
        self.h.step(bus)
        self.assertIs(bus.state, BusState.STOPPED)
        self.assertEqual(bus.lane, self.h.layout.boarding_lane)
        # drop 10, pick min(randint(0, 3), room) = 3
        self.assertEqual(bus.dwell.duration_ms, 40 + 10 * 10 + 15 * 3)

    def test_low_roll_declines_opportunity(self) -> None:
        self.h = _BusHarness(mixed_layout(random.Random(4)), rng=_StubRng(draw=0.999))
        bus = self.h.bus(2, 0.2, passengers=0)
        self.h.step(bus)
        self.assertIsNone(bus.seeking)
        self.assertTrue(bus.lap.considered)

    def test_mandatory_flag_raised_past_threshold(self) -> None:
        self.h = _BusHarness(mixed_layout(random.Random(4)), rng=_StubRng(draw=0.999))
        bus = self.h.bus(2, 0.698, passengers=0)
        bus.lap.considered.update((STATION, s.index) for s in self.h.layout.stations)
        self.h.step(bus)
        self.assertTrue(bus.lap.mandatory)
        self.assertTrue(bus.lap.mandatory_raised)
        # Mandatory opportunities are taken regardless of the roll.
        self.assertIsNotNone(bus.seeking)
        self.assertEqual(bus.seeking.kind, FLAG)

    def test_returns_to_home_lane_after_stop(self) -> None:
        bus = self.h.bus(2, 0.5)
        bus.home_lane = 1
        bus.lap.considered.update((FLAG, p.index) for p in self.h.layout.invisible_stops)
        bus.lap.considered.update((STATION, s.index) for s in self.h.layout.stations)
        self.h.step(bus)
        self.assertTrue(bus.is_changing_lane)
        self.assertEqual(bus.target_lane, 1)

    def _side_by_side(self):
        """Car in lane 0 wanting lane 1 next to a bus in lane 2 heading home to lane 1."""
        car = Car(id="car-0", lane=0, position=0.50, speed=1.0, preferred_lane=1,
                  lane_change_duration_ms=2500.0)
        slow = Car(id="car-1", lane=0, position=0.55, speed=0.5, desired_speed=0.5,
                   cooldown_ms=10_000.0)
        bus = self.h.bus(2, 0.505)
        bus.home_lane = 1
        bus.lap.considered.update((FLAG, p.index) for p in self.h.layout.invisible_stops)
        bus.lap.considered.update((STATION, s.index) for s in self.h.layout.stations)
        ctx = TickContext(self.h.now_ms + 100.0, snapshot([car, slow, bus]),
                          self.h.layout.car_lanes)
        return car, bus, ctx

    def test_bus_yields_to_car_change_started_this_tick(self) -> None:
        car, bus, ctx = self._side_by_side()
        CarController(self.h.policy, _StubRng(draw=0.0)).update(car, ctx, 100.0)
        self.h.controller.update(bus, ctx, 100.0)
        self.assertTrue(car.is_changing_lane)
        self.assertEqual(car.target_lane, 1)
        self.assertFalse(bus.is_changing_lane)
        self.assertEqual(bus.lane, 2)
        self.assertEqual([r.vehicle_id for r in ctx.started], ["car-0"])

    def test_car_yields_to_bus_merge_started_this_tick(self) -> None:
        car, bus, ctx = self._side_by_side()
        self.h.controller.update(bus, ctx, 100.0)
        CarController(self.h.policy, _StubRng(draw=0.0)).update(car, ctx, 100.0)
        self.assertTrue(bus.is_changing_lane)
        self.assertEqual(bus.target_lane, 1)
        self.assertFalse(car.is_changing_lane)
        (record,) = ctx.started
        self.assertEqual(record.vehicle_kind, BUS)
        self.assertEqual((record.from_lane, record.to_lane), (2, 1))
        self.assertEqual(ctx.changing_now, 0)

    def test_terminal_stop_before_lap_end(self) -> None:
        bus = self.h.bus(0, 0.958)
        self.h.step(bus)
        self.assertIs(bus.state, BusState.MOVING)
        self.assertLessEqual(bus.position, self.h.policy.terminal_hold_position)
        self.assertTrue(bus.is_changing_lane)
        self.assertEqual(self.h.messages(BUS_LAP_COMPLETE), [])

        self.h.run_until(bus, lambda: bus.state is BusState.INACTIVE)
        self.assertIs(bus.state, BusState.INACTIVE)
        (done,) = self.h.messages(DWELL_COMPLETE)
        self.assertEqual(done.payload["kind"], TERMINAL)
        self.assertEqual(done.payload["lane"], self.h.layout.boarding_lane)
        (lap,) = self.h.messages(BUS_LAP_COMPLETE)
        self.assertTrue(lap.payload["has_stopped"])
        self.assertTrue(lap.payload["entered_boarding_lane"])
        self.assertTrue(lap.payload["served_in_boarding_lane"])
        self.assertEqual(lap.payload["stops_made"], 1)


if __name__ == "__main__":
    unittest.main()
