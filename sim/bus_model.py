#!/usr/bin/env python3
"""
sim/bus_model.py
================
Bus motion and stop model.

Each bus cycles ``INACTIVE → MOVING ⇄ STOPPED → INACTIVE`` forever:

* **Moving**: three-tier gap following (free flow, proportional slow
  down, hard stop) against whatever is ahead in the bus's lane.
* **Stopped**: a :class:`~sim.agents.Dwell` episode whose duration
  grows with the passengers exchanged.  Passenger deltas are applied in
  one step when the dwell ends.
* **Lap end**: travel time and on-board load are published, the bus
  parks and a reactivation event is queued on the simulation clock.

With a dedicated lane every station is served in order.  In mixed
traffic boarding is only allowed from the boarding lane, so a bus that
wants to stop first merges there, lane by lane, and gives up the stop if
it drives past before arriving.  A bus that has not stopped by the
mandatory threshold widens its search and takes the first opportunity;
if even that fails it makes a terminal curb stop before closing the lap.
"""

from __future__ import annotations

import logging
import random
from typing import List, Optional, Sequence

from events.event_bus import (
    BUS_LAP_COMPLETE,
    DWELL_COMPLETE,
    PASSENGERS_ALIGHTED,
    STOP_ABANDONED,
    STOP_SKIPPED,
    EventBus,
)
from sim.agents import (
    FLAG,
    STATION,
    TERMINAL,
    BUS,
    AgentView,
    Bus,
    BusState,
    Dwell,
    LapRecord,
    StopTarget,
)
from sim.car_model import LaneChangeRecord, TickContext
from sim.network import RoadLayout
from sim.physics import path_advance
from sim.scheduler import BUS_REACTIVATE, EventQueue
from sim.sensing import is_lane_change_safe, is_lane_clear, sense_ahead
from sim.traffic_policy import TrafficPolicy

log = logging.getLogger("buses")


class BusController:
    """Applies the bus motion and stop model to one bus per call.

    Parameters
    ----------
    policy : TrafficPolicy
        Tunable constants.
    rng : random.Random
        Injected random source (loads, stop desire, passenger counts).
    layout : RoadLayout
        Lanes, stations and curb-request points.
    events : EventBus
        Receives dwell, lap and skip notifications.
    queue : EventQueue
        Simulation-clock queue used for reactivation after a lap.
    headway_ms : float
        Delay between a lap end and the bus's reactivation.
    """

    def __init__(
        self,
        policy: TrafficPolicy,
        rng: random.Random,
        layout: RoadLayout,
        events: EventBus,
        queue: EventQueue,
        headway_ms: float,
    ) -> None:
        self.policy = policy
        self.layout = layout
        self.events = events
        self.queue = queue
        self.headway_ms = float(headway_ms)
        self._rng = rng

    @property
    def mixed(self) -> bool:
        return not self.layout.dedicated

    # ── Lifecycle ────────────────────────────────────────────────────────

    def activate(self, bus: Bus, now_ms: float) -> None:
        """Put *bus* on the circuit at path position 0 with a fresh load."""
        lo, hi = self.policy.initial_passengers
        bus.passengers = max(0, min(self._rng.randint(lo, hi), bus.capacity))
        bus.state = BusState.MOVING
        bus.position = 0.0
        bus.speed = bus.cruise_speed
        bus.dwell = None
        bus.seeking = None
        bus.home_lane = -1
        bus.last_visited = None
        bus.cooloff_until = -1.0
        bus.lap = LapRecord(started_at_ms=now_ms)
        log.info("%s activated in lane %d with %d passengers",
                 bus.id, bus.lane, bus.passengers)

    def update(self, bus: Bus, ctx: TickContext, dt_ms: float) -> None:
        if not bus.is_active:
            return
        me = ctx.view(bus.id)
        if me is None:
            return

        if bus.state is BusState.STOPPED:
            bus.speed = 0.0
            self._dwell_tick(bus, ctx.now_ms, dt_ms)
            return

        if bus.advance_lane_change(dt_ms) and self.mixed and bus.lane == self.layout.boarding_lane:
            if not bus.lap.entered_boarding_lane:
                log.debug("%s entered boarding lane at %.3f", bus.id, bus.position)
            bus.lap.entered_boarding_lane = True

        bus.speed = self._next_speed(bus, me, ctx.views)
        prev = bus.position
        new = prev + path_advance(bus.speed, dt_ms)

        if bus.last_visited is not None and new > bus.cooloff_until:
            bus.last_visited = None

        if self.mixed:
            new = self._mixed_step(bus, me, ctx, prev, new)
        else:
            new = self._dedicated_step(bus, ctx.now_ms, prev, new)
        if bus.state is BusState.STOPPED:
            return

        if new >= self.policy.bus_lap_end:
            if self.mixed and not bus.lap.has_stopped:
                self._terminal_stop(bus, me, ctx, new)
                return
            bus.position = new
            self._complete_lap(bus, ctx.now_ms)
            return
        bus.position = new

    # ── Speed ────────────────────────────────────────────────────────────

    def _next_speed(self, bus: Bus, me: AgentView, views: Sequence[AgentView]) -> float:
        policy = self.policy
        lanes = {bus.lane}
        if bus.is_changing_lane:
            lanes.add(bus.target_lane)
        gap = min(sense_ahead(me, views, policy.bus_slow_gap, lane=lane,
                              exit_at=1.0).nearest_distance
                  for lane in lanes)
        if gap < policy.bus_hard_stop_gap:
            return 0.0
        if gap < policy.bus_slow_gap:
            return bus.cruise_speed * min(gap * policy.bus_slow_factor_scale,
                                          policy.bus_slow_factor_cap)
        return bus.cruise_speed

    # ── Dedicated lane ───────────────────────────────────────────────────

    def _stop_window(self) -> float:
        return self.policy.bus_length * self.policy.stop_window_factor

    def _in_reach(self, prev: float, new: float, target: float) -> bool:
        """Approaching *target* from behind and within the stopping window."""
        return prev <= target and new >= target - self._stop_window()

    def _cooling_off(self, bus: Bus, key) -> bool:
        return bus.last_visited == key

    def _dedicated_step(self, bus: Bus, now_ms: float, prev: float, new: float) -> float:
        lap = bus.lap
        lane = self.layout.lanes[bus.lane]
        for stop in self.layout.stations:
            key = (STATION, stop.index)
            if stop.index in lap.served or stop.index in lap.skipped:
                continue
            if self._cooling_off(bus, key) or not self._in_reach(prev, new, stop.path_position):
                continue
            _, lane_y = lane.position_at(stop.path_position)
            if abs(lane_y - stop.y) > self.policy.bus_height_px:
                continue
            if bus.passengers < bus.capacity or stop.waiting > 0:
                bus.position = min(new, stop.path_position)
                self._begin_dwell(bus, StopTarget(STATION, stop.index, stop.path_position), now_ms)
                return bus.position
            lap.skipped.append(stop.index)
            self.events.publish(STOP_SKIPPED, bus.id,
                                {"stop": stop.index, "reason": "full",
                                 "passengers": bus.passengers}, now_ms)
            log.info("%s skipped station %d (full, nobody waiting)", bus.id, stop.index)
        return new

    # ── Mixed traffic ────────────────────────────────────────────────────

    def _mixed_step(self, bus: Bus, me: AgentView, ctx: TickContext,
                    prev: float, new: float) -> float:
        policy = self.policy
        lap = bus.lap
        boarding = self.layout.boarding_lane

        if not lap.has_stopped and new >= policy.mandatory_stop_threshold and not lap.mandatory:
            lap.mandatory = True
            lap.mandatory_raised = True
            log.info("%s reached %.2f of its lap without stopping; stop is now mandatory",
                     bus.id, policy.mandatory_stop_threshold)
        if lap.entered_boarding_lane and not lap.served_in_boarding_lane:
            lap.mandatory = True

        if bus.seeking is None:
            bus.seeking = self._pick_opportunity(bus, new)
            if bus.seeking is not None and bus.lane != boarding and bus.home_lane < 0:
                bus.home_lane = bus.lane

        target = bus.seeking
        if target is not None:
            in_boarding = bus.lane == boarding and not bus.is_changing_lane
            if in_boarding and self._in_reach(prev, new, target.path_position):
                bus.position = min(new, target.path_position)
                self._begin_dwell(bus, target, ctx.now_ms)
                return bus.position
            if new > target.path_position:
                self.events.publish(STOP_ABANDONED, bus.id,
                                    {"kind": target.kind, "stop": target.index,
                                     "lane": bus.lane}, ctx.now_ms)
                log.debug("%s abandoned %s %d from lane %d",
                          bus.id, target.kind, target.index, bus.lane)
                bus.seeking = None
            elif bus.lane != boarding:
                self._merge_toward(bus, me, ctx, boarding, relaxed=False)
            return new

        terminal_pending = not lap.has_stopped and new >= policy.bus_lap_end
        if bus.home_lane >= 0 and not bus.is_changing_lane and not terminal_pending:
            if bus.lane == bus.home_lane:
                bus.home_lane = -1
            else:
                self._merge_toward(bus, me, ctx, bus.home_lane, relaxed=False)
        return new

    def _pick_opportunity(self, bus: Bus, pos: float) -> Optional[StopTarget]:
        """Roll once for the nearest unconsidered stop ahead, if any."""
        policy = self.policy
        lap = bus.lap
        reach = policy.mandatory_detection_range if lap.mandatory else policy.stop_detection_range
        candidates: List[StopTarget] = []
        for stop in self.layout.stations:
            if 0.0 < stop.path_position - pos <= reach:
                candidates.append(StopTarget(STATION, stop.index, stop.path_position))
        for point in self.layout.invisible_stops:
            if 0.0 < point.path_position - pos <= reach:
                candidates.append(StopTarget(FLAG, point.index, point.path_position))
        candidates = [c for c in candidates
                      if c.key not in lap.considered and not self._cooling_off(bus, c.key)]
        if not candidates:
            return None
        target = min(candidates, key=lambda c: c.path_position)
        lap.considered.add(target.key)

        if lap.mandatory:
            return target
        if target.kind == STATION:
            p = policy.station_stop_probability
            stop = self.layout.station(target.index)
            if stop is not None and stop.waiting > 0:
                p += policy.waiting_stop_bonus
        else:
            p = policy.flag_stop_probability
        p += policy.load_stop_weight * bus.load_ratio
        if self._rng.random() < p:
            log.debug("%s will stop at %s %d (p=%.2f)", bus.id, target.kind, target.index, p)
            return target
        return None

    def _merge_toward(self, bus: Bus, me: AgentView, ctx: TickContext,
                      goal: int, relaxed: bool) -> bool:
        """Start a one-lane step toward *goal* when the adjacent lane allows it."""
        if bus.is_changing_lane or bus.lane == goal:
            return False
        step = 1 if goal > bus.lane else -1
        lane = bus.lane + step
        if not self.layout.valid_lane(lane):
            return False
        policy = self.policy
        if relaxed:
            ok = is_lane_clear(me, ctx.views, lane, policy.emergency_gap)
        else:
            ok = is_lane_change_safe(me, ctx.views, lane, policy.bus_obstacle_window,
                                     policy.bus_rear_safety, policy.rear_speed_ratio)
        if not ok or ctx.started_near(me.position, policy.local_exclusion_window, lane=lane):
            return False
        from_lane = bus.lane
        if not bus.start_lane_change(lane, policy.bus_lane_change_duration_ms):
            return False
        ctx.started.append(LaneChangeRecord(bus.id, from_lane, lane, bus.position, ctx.now_ms,
                                            emergency=relaxed, vehicle_kind=BUS))
        log.debug("%s merging %d→%d toward lane %d", bus.id, bus.lane, lane, goal)
        return True

    def _terminal_stop(self, bus: Bus, me: AgentView, ctx: TickContext, new: float) -> None:
        """Hold at the end of the lap until a curb stop has been made."""
        bus.position = min(new, self.policy.terminal_hold_position)
        bus.speed = 0.0
        bus.seeking = None
        boarding = self.layout.boarding_lane
        if bus.lane == boarding and not bus.is_changing_lane:
            self._begin_dwell(bus, StopTarget(TERMINAL, -1, bus.position), ctx.now_ms)
            return
        if bus.home_lane < 0:
            bus.home_lane = bus.lane
        self._merge_toward(bus, me, ctx, boarding, relaxed=True)

    # ── Dwell ────────────────────────────────────────────────────────────

    def _begin_dwell(self, bus: Bus, target: StopTarget, now_ms: float) -> None:
        policy = self.policy
        rng = self._rng
        to_drop = min(bus.passengers, rng.randint(*policy.drop_bound))
        room = bus.capacity - bus.passengers + to_drop
        if target.kind == STATION:
            stop = self.layout.station(target.index)
            waiting = stop.waiting if stop is not None else 0
            to_pick = max(0, min(waiting, room, rng.randint(*policy.pickup_bound)))
            duration = (policy.station_dwell_base_ms
                        + policy.station_drop_penalty_ms * to_drop
                        + policy.station_pick_penalty_ms * to_pick)
        else:
            to_pick = max(0, min(rng.randint(*policy.invisible_demand), room))
            duration = (policy.flag_dwell_base_ms
                        + policy.flag_drop_penalty_ms * to_drop
                        + policy.flag_pick_penalty_ms * to_pick)

        bus.seeking = None
        bus.dwell = Dwell(target=target, duration_ms=duration, to_drop=to_drop, to_pick=to_pick)
        bus.state = BusState.STOPPED
        bus.speed = 0.0
        log.debug("%s stopping at %s %d lane %d: drop %d pick %d for %.0f ms",
                  bus.id, target.kind, target.index, bus.lane, to_drop, to_pick, duration)

    def _dwell_tick(self, bus: Bus, now_ms: float, dt_ms: float) -> None:
        dwell = bus.dwell
        if dwell is None:
            bus.state = BusState.MOVING
            return
        dwell.elapsed_ms += dt_ms
        if dwell.done:
            self._finish_dwell(bus, dwell, now_ms)

    def _finish_dwell(self, bus: Bus, dwell: Dwell, now_ms: float) -> None:
        target = dwell.target
        dropped = max(0, min(dwell.to_drop, bus.passengers))
        bus.passengers -= dropped
        room = bus.capacity - bus.passengers
        want = max(0, min(dwell.to_pick, room))
        if target.kind == STATION:
            stop = self.layout.station(target.index)
            picked = stop.take(want) if stop is not None else 0
        else:
            picked = want
        bus.passengers = max(0, min(bus.passengers + picked, bus.capacity))

        lap = bus.lap
        lap.stops_made += 1
        lap.has_stopped = True
        lap.considered.add(target.key)
        if target.kind == STATION:
            lap.served.append(target.index)
        if self.mixed and bus.lane == self.layout.boarding_lane:
            lap.served_in_boarding_lane = True
            lap.mandatory = False
        bus.last_visited = target.key
        bus.cooloff_until = bus.position + self.policy.stop_cooloff
        bus.dwell = None
        bus.state = BusState.MOVING
        bus.speed = bus.cruise_speed

        self.events.publish(PASSENGERS_ALIGHTED, bus.id, {"count": dropped}, now_ms)
        self.events.publish(DWELL_COMPLETE, bus.id, {
            "kind": target.kind,
            "stop": target.index,
            "lane": bus.lane,
            "dropped": dropped,
            "picked": picked,
            "passengers": bus.passengers,
            "capacity": bus.capacity,
            "dwell_ms": dwell.duration_ms,
        }, now_ms)
        log.debug("%s left %s %d with %d/%d on board",
                  bus.id, target.kind, target.index, bus.passengers, bus.capacity)

    # ── Lap ──────────────────────────────────────────────────────────────

    def _complete_lap(self, bus: Bus, now_ms: float) -> None:
        lap = bus.lap
        self.events.publish(BUS_LAP_COMPLETE, bus.id, {
            "travel_time_ms": now_ms - lap.started_at_ms,
            "passengers": bus.passengers,
            "stops_made": lap.stops_made,
            "has_stopped": lap.has_stopped,
            "served": list(lap.served),
            "skipped": list(lap.skipped),
            "entered_boarding_lane": lap.entered_boarding_lane,
            "served_in_boarding_lane": lap.served_in_boarding_lane,
            "mandatory_raised": lap.mandatory_raised,
            "lane": bus.lane,
        }, now_ms)
        bus.laps_completed += 1
        log.info("%s completed lap %d in %.1f s with %d on board, %d stop(s)",
                 bus.id, bus.laps_completed, (now_ms - lap.started_at_ms) / 1000.0,
                 bus.passengers, lap.stops_made)

        bus.position = 0.0
        bus.speed = 0.0
        bus.state = BusState.INACTIVE
        bus.seeking = None
        bus.dwell = None
        bus.lane_change_remaining = 0.0
        bus.target_lane = bus.lane
        bus.change_from_lane = -1
        self.queue.schedule(now_ms, self.headway_ms, BUS_REACTIVATE, bus.id)
