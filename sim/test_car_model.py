#!/usr/bin/env python3
"""
Tests for IDM car following, lane scoring and lane-change safety.
"""

from __future__ import annotations

import random
import unittest
from typing import List

from sim.agents import Car, snapshot
from sim.car_model import CarController, LaneChangeRecord, TickContext
from sim.sensing import is_lane_change_safe
from sim.traffic_policy import (
    BEHAVIOR_PROFILES,
    BehaviorType,
    TrafficPolicy,
    behavior_for_roll,
    change_attempt_chance,
    idm_acceleration,
    lane_score,
    max_concurrent_changes,
)

_LANES = (0, 1, 2)


class _FixedRng:
    """Stand-in random source returning a constant draw."""

    def __init__(self, value: float) -> None:
        self.value = value

    def random(self) -> float:
        return self.value


def _car(vid: str, lane: int, position: float, speed: float = 2.0,
         behavior: BehaviorType = BehaviorType.NEUTRAL, **kw) -> Car:
    kw.setdefault("desired_speed", 3.0)
    kw.setdefault("preferred_lane", lane)
    return Car(id=vid, lane=lane, position=position, speed=speed, behavior=behavior,
               lane_change_duration_ms=BEHAVIOR_PROFILES[behavior].lane_change_duration_ms,
               **kw)


def _step(controller: CarController, cars: List[Car], now_ms: float,
          dt_ms: float = 50.0, started: List[LaneChangeRecord] = None) -> TickContext:
    ctx = TickContext(now_ms, snapshot(cars), _LANES)
    if started:
        ctx.started.extend(started)
    for car in cars:
        controller.update(car, ctx, dt_ms)
    return ctx


class PolicyHelperTests(unittest.TestCase):
    def setUp(self) -> None:
        self.policy = TrafficPolicy()

    def test_idm_free_road_accelerates(self) -> None:
        self.assertGreater(idm_acceleration(1.0, 3.0, 1.0, 0.5, self.policy), 0.0)

    def test_idm_close_leader_brakes_hard(self) -> None:
        self.assertLess(idm_acceleration(3.0, 3.0, 0.0, 0.01, self.policy), -5.0)

    def test_idm_gap_floor_keeps_result_finite(self) -> None:
        acc = idm_acceleration(2.0, 3.0, 0.0, 0.0, self.policy)
        self.assertTrue(acc < 0.0 and acc > -1e6)

    def test_stuck_bonus_is_capped(self) -> None:
        base = lane_score(0, 2.0, 0.2, BehaviorType.NEUTRAL, 0.0, False, self.policy)
        stuck = lane_score(0, 2.0, 0.2, BehaviorType.NEUTRAL, 5000.0, False, self.policy)
        very = lane_score(0, 2.0, 0.2, BehaviorType.NEUTRAL, 50000.0, False, self.policy)
        self.assertAlmostEqual(stuck - base, self.policy.stuck_score_bonus)
        self.assertAlmostEqual(very, stuck)

    def test_polite_values_preferred_lane_more(self) -> None:
        def bonus(b: BehaviorType) -> float:
            return (lane_score(1, 2.0, 0.1, b, 0.0, True, self.policy)
                    - lane_score(1, 2.0, 0.1, b, 0.0, False, self.policy))
        self.assertAlmostEqual(bonus(BehaviorType.POLITE), 2.0)
        self.assertAlmostEqual(bonus(BehaviorType.NEUTRAL), 1.0)
        self.assertAlmostEqual(bonus(BehaviorType.AGGRESSIVE), 0.0)

    def test_change_attempt_chance(self) -> None:
        profile = BEHAVIOR_PROFILES[BehaviorType.NEUTRAL]
        free = change_attempt_chance(profile, False, 0.0, self.policy)
        blocked = change_attempt_chance(profile, True, 0.0, self.policy)
        stuck = change_attempt_chance(profile, True, 10_000.0, self.policy)
        self.assertAlmostEqual(free, 0.06)
        self.assertAlmostEqual(blocked, 0.45)
        self.assertAlmostEqual(stuck, 0.95)

    def test_max_concurrent_changes(self) -> None:
        self.assertEqual(max_concurrent_changes(0, self.policy), 1)
        self.assertEqual(max_concurrent_changes(100, self.policy), 5)
        self.assertEqual(max_concurrent_changes(101, self.policy), 6)

    def test_behavior_mix(self) -> None:
        self.assertIs(behavior_for_roll(0.1), BehaviorType.POLITE)
        self.assertIs(behavior_for_roll(0.5), BehaviorType.NEUTRAL)
        self.assertIs(behavior_for_roll(0.95), BehaviorType.AGGRESSIVE)


class CarFollowingTests(unittest.TestCase):
    def setUp(self) -> None:
        self.policy = TrafficPolicy()
        # A draw of 0.99 never triggers a discretionary attempt.
        self.controller = CarController(self.policy, _FixedRng(0.99))

    def test_free_acceleration_toward_desired(self) -> None:
        car = _car("c", 1, 0.1, speed=1.0)
        _step(self.controller, [car], 50.0, dt_ms=100.0)
        self.assertAlmostEqual(car.speed, 1.05)
        self.assertGreater(car.position, 0.1)

    def test_free_deceleration_toward_desired(self) -> None:
        car = _car("c", 1, 0.1, speed=4.0)
        _step(self.controller, [car], 50.0, dt_ms=100.0)
        self.assertAlmostEqual(car.speed, 3.95)

    def test_follower_slows_behind_slow_leader(self) -> None:
        follower = _car("f", 1, 0.10, speed=3.0)
        leader = _car("l", 1, 0.15, speed=0.5, desired_speed=0.5)
        _step(self.controller, [follower, leader], 50.0, dt_ms=100.0)
        self.assertLess(follower.speed, 3.0)

    def test_hold_when_too_close(self) -> None:
        follower = _car("f", 1, 0.50, speed=1.0)
        leader = _car("l", 1, 0.51, speed=0.0, desired_speed=0.0)
        _step(self.controller, [follower, leader], 50.0)
        self.assertEqual(follower.position, 0.50)
        self.assertEqual(follower.stuck_ms, 50.0)

    def test_held_car_creeps_after_release_time(self) -> None:
        follower = _car("f", 1, 0.50, speed=2.0, stuck_ms=4500.0, cooldown_ms=10_000.0)
        leader = _car("l", 1, 0.525, speed=2.0, desired_speed=2.0, cooldown_ms=10_000.0)
        _step(self.controller, [follower, leader], 50.0)
        self.assertGreater(follower.position, 0.50)

    def test_car_near_exit_ignores_traffic_that_just_entered(self) -> None:
        leaving = _car("leaving", 1, 0.9765, speed=1.0, behavior=BehaviorType.POLITE,
                       cooldown_ms=10_000.0)
        entered = _car("entered", 1, 0.0031, speed=0.0, desired_speed=0.0,
                       cooldown_ms=10_000.0)
        _step(self.controller, [leaving, entered], 50.0)
        self.assertGreater(leaving.position, 0.9765)
        self.assertEqual(leaving.stuck_ms, 0.0)
        now = 50.0
        for _ in range(20):
            if leaving.finished:
                break
            now += 50.0
            _step(self.controller, [leaving, entered], now)
        self.assertTrue(leaving.finished)

    def test_lap_end_marks_finished(self) -> None:
        car = _car("c", 1, 0.979, speed=3.0)
        _step(self.controller, [car], 50.0, dt_ms=100.0)
        self.assertTrue(car.finished)
        self.assertLess(car.position, 1.0)

    def test_vehicle_missing_from_snapshot_is_untouched(self) -> None:
        car = _car("c", 1, 0.2)
        ctx = TickContext(0.0, (), _LANES)
        self.controller.update(car, ctx, 50.0)
        self.assertEqual(car.position, 0.2)


class LaneChangeDecisionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.policy = TrafficPolicy()

    def _blocked_pair(self) -> List[Car]:
        return [_car("me", 1, 0.50, speed=1.0),
                _car("slow", 1, 0.55, speed=0.5, desired_speed=0.5, cooldown_ms=10_000.0)]

    def test_blocked_car_changes_to_open_lane(self) -> None:
        cars = self._blocked_pair()
        ctx = _step(CarController(self.policy, _FixedRng(0.0)), cars, 50.0)
        me = cars[0]
        self.assertTrue(me.is_changing_lane)
        self.assertIn(me.target_lane, (0, 2))
        self.assertEqual(len(ctx.started), 1)
        self.assertFalse(ctx.started[0].emergency)
        profile = BEHAVIOR_PROFILES[BehaviorType.NEUTRAL]
        self.assertGreaterEqual(me.cooldown_ms, profile.cooldown_ms)
        self.assertLessEqual(me.cooldown_ms, profile.cooldown_ms * 1.5)

    def test_fleet_cap_blocks_change(self) -> None:
        cars = self._blocked_pair()
        far = LaneChangeRecord("other", 2, 1, 0.0, 0.0)
        ctx = _step(CarController(self.policy, _FixedRng(0.0)), cars, 50.0, started=[far])
        self.assertFalse(cars[0].is_changing_lane)
        self.assertEqual(len(ctx.started), 1)

    def test_local_exclusion_sets_retry_cooldown(self) -> None:
        cars = self._blocked_pair()
        merging = _car("merging", 0, 0.52, cooldown_ms=10_000.0)
        merging.start_lane_change(1, 2500.0)
        fillers = [_car(f"fill{i}", 2, 0.01 * i, cooldown_ms=10_000.0) for i in range(20)]
        _step(CarController(self.policy, _FixedRng(0.0)), cars + [merging] + fillers, 50.0)
        self.assertFalse(cars[0].is_changing_lane)
        self.assertEqual(cars[0].cooldown_ms, self.policy.local_exclusion_retry_ms)

    def test_unsafe_lane_is_never_chosen(self) -> None:
        cars = self._blocked_pair()
        cars.append(_car("g0", 0, 0.51, cooldown_ms=10_000.0))
        cars.append(_car("g2", 2, 0.51, cooldown_ms=10_000.0))
        ctx = _step(CarController(self.policy, _FixedRng(0.0)), cars, 50.0)
        self.assertFalse(cars[0].is_changing_lane)
        self.assertEqual(ctx.started, [])

    def test_emergency_escape_when_stuck(self) -> None:
        me = _car("me", 1, 0.50, speed=0.0, stuck_ms=2500.0)
        wall = _car("wall", 1, 0.52, speed=0.0, desired_speed=0.0, cooldown_ms=10_000.0)
        with self.assertLogs("cars", level="INFO"):
            ctx = _step(CarController(self.policy, _FixedRng(0.99)), [me, wall], 50.0)
        self.assertTrue(me.is_changing_lane)
        self.assertEqual(len(ctx.started), 1)
        self.assertTrue(ctx.started[0].emergency)
        self.assertAlmostEqual(me.cooldown_ms, 500.0 + 0.99 * 300.0)

    def test_emergency_skips_lane_claimed_this_tick(self) -> None:
        me = _car("me", 1, 0.50, speed=0.0, stuck_ms=2500.0)
        wall = _car("wall", 1, 0.52, speed=0.0, desired_speed=0.0, cooldown_ms=10_000.0)
        claimed = LaneChangeRecord("bus-0", 0, 1, 0.505, 50.0, vehicle_kind="bus")
        ctx = _step(CarController(self.policy, _FixedRng(0.99)), [me, wall], 50.0,
                    started=[claimed])
        self.assertTrue(me.is_changing_lane)
        self.assertEqual(me.target_lane, 2)
        self.assertEqual(ctx.changing_now, 0)

    def test_emergency_waits_when_every_lane_is_claimed(self) -> None:
        me = _car("me", 1, 0.50, speed=0.0, stuck_ms=2500.0)
        wall = _car("wall", 1, 0.52, speed=0.0, desired_speed=0.0, cooldown_ms=10_000.0)
        claims = [LaneChangeRecord("bus-0", 0, 1, 0.505, 50.0, vehicle_kind="bus"),
                  LaneChangeRecord("car-9", 2, 1, 0.49, 50.0, emergency=True)]
        _step(CarController(self.policy, _FixedRng(0.99)), [me, wall], 50.0, started=claims)
        self.assertFalse(me.is_changing_lane)
        self.assertEqual(me.lane, 1)

    def test_transition_commits_after_duration(self) -> None:
        car = _car("c", 1, 0.1)
        self.assertTrue(car.start_lane_change(2, 1000.0))
        self.assertFalse(car.start_lane_change(0, 1000.0))
        self.assertTrue(car.occupies(1) and car.occupies(2))
        controller = CarController(self.policy, _FixedRng(0.99))
        now = 0.0
        for _ in range(9):
            now += 100.0
            _step(controller, [car], now, dt_ms=100.0)
            self.assertEqual(car.lane, 1)
        _step(controller, [car], now + 150.0, dt_ms=150.0)
        self.assertEqual(car.lane, 2)
        self.assertFalse(car.is_changing_lane)
        self.assertEqual(car.lane_change_fraction, 0.0)


class LaneChangeSafetyPropertyTests(unittest.TestCase):
    """Every accepted discretionary change passes the safety predicate
    against the snapshot it was decided on."""

    def _random_fleet(self, rng: random.Random, n: int) -> List[Car]:
        cars = []
        for i in range(n):
            behavior = behavior_for_roll(rng.random())
            lane = rng.randrange(3)
            cars.append(_car(
                f"c{i}", lane, rng.random() * 0.9, speed=rng.uniform(0.0, 4.0),
                behavior=behavior, desired_speed=rng.uniform(1.0, 4.0),
            ))
        return cars

    def _assert_safe(self, ctx: TickContext, cars: List[Car]) -> None:
        behaviors = {c.id: c.behavior for c in cars}
        for rec in ctx.started:
            self.assertEqual(abs(rec.to_lane - rec.from_lane), 1)
            if rec.emergency:
                continue
            me = ctx.view(rec.vehicle_id)
            profile = BEHAVIOR_PROFILES[behaviors[rec.vehicle_id]]
            self.assertTrue(
                is_lane_change_safe(me, ctx.views, rec.to_lane,
                                    profile.front_safety, profile.rear_safety),
                msg=f"unsafe change {rec}",
            )

    def test_fuzzed_single_tick(self) -> None:
        policy = TrafficPolicy()
        for seed in range(25):
            rng = random.Random(seed)
            cars = self._random_fleet(rng, 40)
            controller = CarController(policy, random.Random(seed + 1000))
            ctx = _step(controller, cars, 50.0)
            self._assert_safe(ctx, cars)

    def test_simulation_trace(self) -> None:
        policy = TrafficPolicy()
        rng = random.Random(11)
        cars = self._random_fleet(rng, 60)
        controller = CarController(policy, random.Random(12))
        now = 0.0
        accepted = 0
        for _ in range(400):
            now += 50.0
            ctx = _step(controller, cars, now)
            self._assert_safe(ctx, cars)
            accepted += len(ctx.started)
            cars = [c for c in cars if not c.finished]
        self.assertGreater(accepted, 0)


if __name__ == "__main__":
    unittest.main()
