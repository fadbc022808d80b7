#!/usr/bin/env python3
"""
sim/car_model.py
================
Per-car motion: IDM car following, discretionary lane changes with
safety gating, and the emergency escape that keeps stuck traffic from
deadlocking.

:class:`CarController` reads only the tick's frozen snapshot (via
:class:`TickContext`) and writes only the car it is updating.  The
fleet-wide lane-change cap and the local exclusion also count the
changes already started earlier in the same tick (``ctx.started``).
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from sim.agents import CAR, AgentView, Car
from sim.physics import path_advance, signed_loop_distance
from sim.sensing import (
    TrafficReading,
    changers_near,
    is_lane_change_safe,
    is_lane_clear,
    sense_ahead,
)
from sim.traffic_policy import (
    BEHAVIOR_PROFILES,
    BehaviorProfile,
    TrafficPolicy,
    change_attempt_chance,
    idm_acceleration,
    lane_score,
    max_concurrent_changes,
)

log = logging.getLogger("cars")


@dataclass(frozen=True)
class LaneChangeRecord:
    """One accepted lane change, kept for tracing and tests."""

    vehicle_id: str
    from_lane: int
    to_lane: int
    position: float
    at_ms: float
    emergency: bool = False
    vehicle_kind: str = CAR


@dataclass
class TickContext:
    """Read-only inputs plus the write buffer shared by one tick."""

    now_ms: float
    views: Tuple[AgentView, ...]
    car_lanes: Tuple[int, ...]
    started: List[LaneChangeRecord] = field(default_factory=list)
    _by_id: Dict[str, AgentView] = field(default_factory=dict, init=False, repr=False)
    _fleet: int = field(default=0, init=False, repr=False)
    _changing: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        self._by_id = {v.id: v for v in self.views}
        cars = [v for v in self.views if v.behavior is not None]
        self._fleet = len(cars)
        self._changing = sum(1 for v in cars if v.changing)

    def view(self, vehicle_id: str) -> Optional[AgentView]:
        return self._by_id.get(vehicle_id)

    @property
    def fleet_size(self) -> int:
        return self._fleet

    @property
    def changing_now(self) -> int:
        """Cars mid-transition in the snapshot plus those started this tick."""
        return self._changing + sum(1 for r in self.started
                                    if not r.emergency and r.vehicle_kind == CAR)

    def started_near(self, position: float, window: float, lane: Optional[int] = None) -> bool:
        """True when a change started this tick within *window* of *position*.

        With *lane*, only changes moving into or out of that lane count.
        """
        for r in self.started:
            if lane is not None and lane not in (r.from_lane, r.to_lane):
                continue
            if abs(signed_loop_distance(position, r.position)) < window:
                return True
        return False


class CarController:
    """Applies the car motion model to one car per call.

    Parameters
    ----------
    policy : TrafficPolicy
        Tunable constants.
    rng : random.Random
        Injected random source; every probabilistic decision uses it.
    """

    def __init__(self, policy: TrafficPolicy, rng: random.Random) -> None:
        self.policy = policy
        self._rng = rng

    # ── Public ───────────────────────────────────────────────────────────

    def update(self, car: Car, ctx: TickContext, dt_ms: float) -> None:
        me = ctx.view(car.id)
        if me is None:
            return
        policy = self.policy
        profile = BEHAVIOR_PROFILES[car.behavior]

        car.cooldown_ms = max(0.0, car.cooldown_ms - dt_ms)
        car.advance_lane_change(dt_ms)

        reading = self._leader_reading(me, ctx.views)
        car.speed = self._next_speed(car, reading, dt_ms)

        hold = (reading.has_leader
                and reading.nearest_distance < profile.safe_distance * policy.hold_gap_factor
                and car.stuck_ms < policy.hold_release_ms)
        blocked = reading.has_leader and reading.nearest_distance < policy.blocked_gap

        if not car.is_changing_lane and car.cooldown_ms <= 0.0:
            started = False
            chance = change_attempt_chance(profile, blocked, car.stuck_ms, policy)
            if self._rng.random() < chance:
                started = self._try_discretionary(car, me, profile, ctx)
            if not started and car.stuck_ms > policy.emergency_stuck_ms:
                self._try_emergency(car, me, ctx)

        if not hold:
            car.position += path_advance(car.speed, dt_ms)
        if hold or car.speed < policy.stuck_speed:
            car.stuck_ms += dt_ms
        else:
            car.stuck_ms = 0.0

        if car.position >= policy.car_lap_end:
            car.finished = True
            car.position = min(car.position, 1.0 - 1e-9)

    # ── Car following ────────────────────────────────────────────────────

    def _leader_reading(self, me: AgentView, views: Sequence[AgentView]) -> TrafficReading:
        look = self.policy.detection_look_ahead
        exit_at = self.policy.car_lap_end
        reading = sense_ahead(me, views, look, exit_at=exit_at)
        if me.changing and me.target_lane != me.lane:
            other = sense_ahead(me, views, look, lane=me.target_lane, exit_at=exit_at)
            if other.has_leader and (not reading.has_leader
                                     or other.nearest_distance < reading.nearest_distance):
                return other
        return reading

    def _next_speed(self, car: Car, reading: TrafficReading, dt_ms: float) -> float:
        dt_s = dt_ms / 1000.0
        if reading.has_leader:
            acc = idm_acceleration(car.speed, car.desired_speed, reading.leader_speed or 0.0,
                                   reading.nearest_distance, self.policy)
            return max(0.0, car.speed + acc * dt_s)
        step = self.policy.free_accel_per_s * dt_s
        if car.speed < car.desired_speed:
            return min(car.desired_speed, car.speed + step)
        return max(car.desired_speed, car.speed - step)

    # ── Lane changes ─────────────────────────────────────────────────────

    def _candidate_lanes(self, car: Car, lanes: Sequence[int]) -> List[int]:
        return [lane for lane in lanes if abs(lane - car.lane) == 1]

    def _try_discretionary(self, car: Car, me: AgentView, profile: BehaviorProfile,
                           ctx: TickContext) -> bool:
        policy = self.policy
        if ctx.changing_now >= max_concurrent_changes(ctx.fleet_size, policy):
            return False
        window = policy.local_exclusion_window
        if changers_near(me, ctx.views, window) or ctx.started_near(me.position, window):
            car.cooldown_ms = policy.local_exclusion_retry_ms
            return False

        look = policy.detection_look_ahead
        here = sense_ahead(me, ctx.views, look, lane=car.lane)
        current = lane_score(here.count, here.avg_speed, here.nearest_distance, car.behavior,
                             0.0, car.lane == car.preferred_lane, policy)

        best_lane: Optional[int] = None
        best_score = current + profile.improvement_threshold
        for lane in self._candidate_lanes(car, ctx.car_lanes):
            if not is_lane_change_safe(me, ctx.views, lane, profile.front_safety,
                                       profile.rear_safety, policy.rear_speed_ratio):
                continue
            if self._likely_changer_in(me, ctx.views, lane):
                continue
            r = sense_ahead(me, ctx.views, look, lane=lane)
            score = lane_score(r.count, r.avg_speed, r.nearest_distance, car.behavior,
                               car.stuck_ms, lane == car.preferred_lane, policy)
            if score > best_score:
                best_lane, best_score = lane, score

        if best_lane is None:
            return False
        if self._rng.random() >= policy.acceptance_probability:
            return False

        cooldown = profile.cooldown_ms * (1.0 + self._rng.random() * 0.5)
        if car.stuck_ms > policy.stuck_cooldown_threshold_ms:
            cooldown *= 0.5
        self._start(car, best_lane, profile.lane_change_duration_ms, cooldown, ctx, False)
        log.debug("%s (%s) changes %d→%d, score %.2f vs %.2f",
                  car.id, car.behavior.value, car.lane, best_lane, best_score, current)
        return True

    def _likely_changer_in(self, me: AgentView, views: Sequence[AgentView], lane: int) -> bool:
        """True when an idle car in *lane* nearby is itself likely to change."""
        policy = self.policy
        for other in views:
            if other.id == me.id or other.behavior is None or other.changing:
                continue
            if other.lane != lane or other.cooldown_ms > 0.0:
                continue
            if abs(signed_loop_distance(me.position, other.position)) >= policy.likely_changer_window:
                continue
            ahead = sense_ahead(other, views, policy.detection_look_ahead)
            blocked = ahead.has_leader and ahead.nearest_distance < policy.blocked_gap
            chance = change_attempt_chance(BEHAVIOR_PROFILES[other.behavior], blocked,
                                           other.stuck_ms, policy)
            if chance > policy.likely_changer_chance:
                return True
        return False

    def _try_emergency(self, car: Car, me: AgentView, ctx: TickContext) -> bool:
        policy = self.policy
        best_lane: Optional[int] = None
        best_space = -1.0
        for lane in self._candidate_lanes(car, ctx.car_lanes):
            if not is_lane_clear(me, ctx.views, lane, policy.emergency_gap):
                continue
            if ctx.started_near(me.position, policy.local_exclusion_window, lane=lane):
                continue
            r = sense_ahead(me, ctx.views, policy.emergency_look_ahead, lane=lane)
            if r.nearest_distance > best_space:
                best_lane, best_space = lane, r.nearest_distance
        if best_lane is None:
            return False
        cooldown = policy.emergency_cooldown_ms + self._rng.random() * policy.emergency_cooldown_jitter_ms
        profile = BEHAVIOR_PROFILES[car.behavior]
        self._start(car, best_lane, profile.lane_change_duration_ms, cooldown, ctx, True)
        log.info("%s stuck %.0f ms, emergency change %d→%d", car.id, car.stuck_ms,
                 car.change_from_lane, best_lane)
        return True

    def _start(self, car: Car, lane: int, duration_ms: float, cooldown_ms: float,
               ctx: TickContext, emergency: bool) -> None:
        from_lane = car.lane
        if not car.start_lane_change(lane, duration_ms):
            return
        car.cooldown_ms = cooldown_ms
        ctx.started.append(LaneChangeRecord(car.id, from_lane, lane, car.position,
                                            ctx.now_ms, emergency))
