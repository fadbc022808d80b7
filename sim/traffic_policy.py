#!/usr/bin/env python3
"""
sim/traffic_policy.py
=====================
Tunable car-following, lane-change, bus and dwell parameters for the BRT
simulation.  Every constant lives in the frozen :class:`TrafficPolicy`
dataclass so that experiments can swap policies without touching code.
Per-driver constants live in :class:`BehaviorProfile`.

Also provides stateless helpers:

* :func:`idm_acceleration`: Intelligent Driver Model acceleration.
* :func:`lane_score`: discretionary lane attractiveness.
* :func:`change_attempt_chance`: per-tick probability to evaluate a change.
* :func:`max_concurrent_changes`: fleet-wide lane-change cap.
"""

from __future__ import annotations

import enum
import math
from dataclasses import dataclass
from typing import Dict, Tuple


class BehaviorType(str, enum.Enum):
    POLITE = "polite"
    NEUTRAL = "neutral"
    AGGRESSIVE = "aggressive"


@dataclass(frozen=True)
class BehaviorProfile:
    """Driver temperament constants."""

    lane_change_frequency: float
    """Base propensity to attempt a discretionary change."""

    safe_distance: float
    """Preferred following distance in path units."""

    speed_adjustment: float
    """Multiplier applied to the sampled desired speed."""

    cooldown_ms: float
    """Base post-change cooldown."""

    lane_change_duration_ms: float
    """Duration of one lane transition."""

    front_safety: float
    """Minimum clear distance ahead in the target lane."""

    rear_safety: float
    """Minimum clear distance behind in the target lane (faster vehicles only)."""

    improvement_threshold: float
    """Score gain the best lane must offer over the current one."""


BEHAVIOR_PROFILES: Dict[BehaviorType, BehaviorProfile] = {
    BehaviorType.POLITE: BehaviorProfile(
        lane_change_frequency=0.05,
        safe_distance=0.10,
        speed_adjustment=0.85,
        cooldown_ms=6000.0,
        lane_change_duration_ms=3500.0,
        front_safety=0.05,
        rear_safety=0.04,
        improvement_threshold=1.0,
    ),
    BehaviorType.NEUTRAL: BehaviorProfile(
        lane_change_frequency=0.30,
        safe_distance=0.06,
        speed_adjustment=0.95,
        cooldown_ms=4000.0,
        lane_change_duration_ms=2500.0,
        front_safety=0.03,
        rear_safety=0.02,
        improvement_threshold=0.5,
    ),
    BehaviorType.AGGRESSIVE: BehaviorProfile(
        lane_change_frequency=0.60,
        safe_distance=0.04,
        speed_adjustment=1.10,
        cooldown_ms=3000.0,
        lane_change_duration_ms=1500.0,
        front_safety=0.02,
        rear_safety=0.01,
        improvement_threshold=0.2,
    ),
}

# Cumulative spawn mix: 30 % polite, 50 % neutral, 20 % aggressive.
BEHAVIOR_MIX: Tuple[Tuple[float, BehaviorType], ...] = (
    (0.3, BehaviorType.POLITE),
    (0.8, BehaviorType.NEUTRAL),
    (1.0, BehaviorType.AGGRESSIVE),
)


@dataclass(frozen=True)
class TrafficPolicy:
    """Immutable bag of every tunable simulation parameter.

    Groups: time, IDM car following, discretionary lane change,
    emergency escape, bus control, stops and dwell, mixed-traffic
    lane discipline, laps and throughput, animation.
    """

    # ── Time ──────────────────────────────────────────────────────────────
    max_delta_ms: float = 100.0
    """Upper clamp on a single tick's delta."""

    # ── IDM car following ─────────────────────────────────────────────────
    idm_min_gap: float = 2.0
    """s0: jam distance (metre-equivalents)."""

    idm_time_headway: float = 1.5
    """T: desired time headway."""

    idm_max_accel: float = 1.0
    """a: maximum acceleration."""

    idm_comfort_decel: float = 3.0
    """b: comfortable deceleration."""

    idm_gap_scale: float = 100.0
    """Path units → metre-equivalents."""

    idm_min_effective_gap: float = 0.1
    """Floor on the scaled gap, keeps the interaction term finite."""

    free_accel_per_s: float = 0.5
    """Linear acceleration toward desired speed with no leader."""

    detection_look_ahead: float = 0.2
    """Look-ahead used for leader detection and lane scoring."""

    hold_gap_factor: float = 0.5
    """A car holds its position when the gap is below ``safe_distance ×`` this."""

    hold_release_ms: float = 4000.0
    """Stuck time after which a held car follows IDM again instead of freezing."""

    stuck_speed: float = 0.1
    """Speeds below this accumulate the stuck timer."""

    # ── Discretionary lane change ─────────────────────────────────────────
    acceptance_probability: float = 0.7
    """Chance a beneficial, safe change is actually taken."""

    max_changing_fraction: float = 0.05
    """Share of the car fleet allowed to be mid-transition at once."""

    local_exclusion_window: float = 0.1
    """No change while another car within this window is mid-transition."""

    local_exclusion_retry_ms: float = 500.0
    """Cooldown set when the local exclusion blocks a change."""

    likely_changer_window: float = 0.15
    """Target-lane neighbours within this window are checked for intent."""

    likely_changer_chance: float = 0.3
    """Neighbours whose attempt chance exceeds this are yielded to."""

    blocked_gap: float = 0.08
    """Gap ahead under which a car considers itself blocked."""

    rear_speed_ratio: float = 1.2
    """A follower only counts as unsafe when faster than own speed × this."""

    stuck_cooldown_threshold_ms: float = 2000.0
    """Stuck time above which the post-change cooldown is halved."""

    stuck_attempt_ms: float = 3000.0
    """Stuck time for the full attempt-chance boost."""

    stuck_score_ms: float = 5000.0
    """Stuck time for the full scoring bonus."""

    stuck_score_bonus: float = 3.0
    """Maximum scoring bonus from being stuck."""

    # ── Emergency escape ──────────────────────────────────────────────────
    emergency_stuck_ms: float = 2000.0
    """Stuck time after which the relaxed escape is tried."""

    emergency_gap: float = 0.01
    """Safety gap (both directions) used by the escape."""

    emergency_look_ahead: float = 0.3
    """Look-ahead used to pick the most open lane."""

    emergency_cooldown_ms: float = 500.0
    """Base cooldown after an escape."""

    emergency_cooldown_jitter_ms: float = 300.0
    """Random extra cooldown after an escape."""

    # ── Bus control ───────────────────────────────────────────────────────
    bus_hard_stop_gap: float = 0.03
    """Gap below which a bus stops."""

    bus_slow_gap: float = 0.15
    """Gap below which a bus slows proportionally."""

    bus_slow_factor_scale: float = 10.0
    """Slow-zone speed factor is ``min(gap × scale, bus_slow_factor_cap)``."""

    bus_slow_factor_cap: float = 0.8
    """Upper bound of the slow-zone speed factor."""

    bus_obstacle_window: float = 0.08
    """Clear distance ahead required before a bus enters another lane."""

    bus_cruise_factor: float = 0.8
    """Bus cruise speed = mean of the tier speed range × this."""

    bus_lane_change_duration_ms: float = 3000.0
    """Bus lane transitions are slower than car ones."""

    bus_rear_safety: float = 0.04
    """Clear distance behind required for a bus lane change."""

    bus_length: float = 0.02
    """Bus length in path units."""

    bus_height_px: float = 30.0
    """Lateral tolerance when matching a station to the bus lane."""

    inactive_position: float = -0.1
    """Parking position of a bus waiting for its first activation."""

    # ── Stops and dwell ───────────────────────────────────────────────────
    bus_capacity: int = 90
    """Maximum passengers on board."""

    initial_passengers: Tuple[int, int] = (70, 90)
    """Inclusive range sampled at activation and reactivation."""

    drop_bound: Tuple[int, int] = (5, 14)
    """Per-stop random bound on alighting passengers."""

    pickup_bound: Tuple[int, int] = (5, 14)
    """Per-stop random bound on boarding passengers at stations."""

    invisible_demand: Tuple[int, int] = (0, 3)
    """Boarding demand drawn at an invisible stop point."""

    stop_window_factor: float = 0.15
    """Stopping window = bus length × this."""

    station_dwell_base_ms: float = 200.0
    """Base dwell at a visible station."""

    station_drop_penalty_ms: float = 60.0
    """Extra dwell per alighting passenger at a station."""

    station_pick_penalty_ms: float = 100.0
    """Extra dwell per boarding passenger at a station."""

    flag_dwell_base_ms: float = 40.0
    """Base dwell at an invisible stop point."""

    flag_drop_penalty_ms: float = 10.0
    """Extra dwell per alighting passenger at an invisible point."""

    flag_pick_penalty_ms: float = 15.0
    """Extra dwell per boarding passenger at an invisible point."""

    stop_cooloff: float = 0.02
    """Distance a bus must travel before a served stop can trigger again."""

    stop_max_waiting: int = 20
    """Cap on waiting passengers at a station."""

    stop_initial_waiting: Tuple[int, int] = (0, 10)
    """Inclusive range of waiting passengers at start-up."""

    stop_refill_per_s: int = 5
    """Maximum new arrivals per simulated second at a station."""

    # ── Mixed-traffic lane discipline ─────────────────────────────────────
    boarding_lane: int = 2
    """The only lane where passengers may board in mixed traffic."""

    stop_detection_range: float = 0.25
    """Distance ahead at which a stop opportunity is considered."""

    mandatory_detection_range: float = 0.5
    """Widened range once the mandatory-service flag is raised."""

    mandatory_stop_threshold: float = 0.7
    """Lap fraction by which a bus must have stopped."""

    station_stop_probability: float = 0.6
    """Base desire to stop at a visible station."""

    flag_stop_probability: float = 0.25
    """Base desire to stop at an invisible point."""

    load_stop_weight: float = 0.3
    """Extra desire proportional to the load ratio."""

    waiting_stop_bonus: float = 0.2
    """Extra desire when a station has people waiting."""

    terminal_hold_position: float = 0.999
    """Where a bus waits for its terminal curb stop at lap end."""

    # ── Laps and throughput ───────────────────────────────────────────────
    bus_lap_end: float = 0.96
    """Bus lap completes at this path position."""

    car_lap_end: float = 0.98
    """Car lap completes (and the car is removed) at this path position."""

    passengers_per_car: int = 3
    """Occupancy assumed for every car trip."""

    spawn_clear_gap: float = 0.02
    """Entry must be clear by this much for a car to spawn."""

    activation_retry_ms: float = 100.0
    """Delay before retrying a bus activation blocked by traffic at the entry."""

    sample_interval_ms: float = 1000.0
    """Interval between throughput time-series samples."""

    # ── Animation ─────────────────────────────────────────────────────────
    car_max_steer: float = math.pi / 8.0
    """Peak steering deflection during a car lane change."""

    bus_max_steer: float = math.pi / 12.0
    """Peak steering deflection during a bus lane change."""

    arc_factor: float = 0.2
    """Arc bulge as a fraction of the lateral lane distance."""


def idm_acceleration(
    speed: float,
    desired_speed: float,
    leader_speed: float,
    gap: float,
    policy: TrafficPolicy,
) -> float:
    """Intelligent Driver Model acceleration.

    Parameters
    ----------
    speed : float
        Own speed.
    desired_speed : float
        Free-flow speed.
    leader_speed : float
        Speed of the vehicle ahead.
    gap : float
        Forward distance to the leader in path units.
    policy : TrafficPolicy
        Source of ``s0``, ``T``, ``a`` and ``b``.

    Returns
    -------
    float
        Acceleration in speed units per second (negative ⇒ braking).
    """
    a = policy.idm_max_accel
    b = policy.idm_comfort_decel
    s = max(gap * policy.idm_gap_scale, policy.idm_min_effective_gap)
    v = max(0.0, speed)
    v0 = max(desired_speed, 1e-6)
    interaction = v * policy.idm_time_headway + v * (v - leader_speed) / (2.0 * math.sqrt(a * b))
    desired_gap = policy.idm_min_gap + max(0.0, interaction)
    return a * (1.0 - (v / v0) ** 4 - (desired_gap / s) ** 2)


def lane_score(
    count: int,
    avg_speed: float,
    nearest: float,
    behavior: BehaviorType,
    stuck_ms: float,
    in_preferred_lane: bool,
    policy: TrafficPolicy,
) -> float:
    """Discretionary attractiveness of a lane for one driver."""
    score = 5.0 * nearest - 0.5 * count + 2.0 * avg_speed
    if behavior is BehaviorType.AGGRESSIVE:
        score += 2.0 * avg_speed - (1.0 - nearest) * 0.3 - 0.3 * count
    elif behavior is BehaviorType.POLITE:
        score += 3.0 * nearest + 0.5 * avg_speed - 0.7 * count
        if in_preferred_lane:
            score += 2.0
    else:
        score += 2.0 * nearest + 1.0 * avg_speed - 0.5 * count
        if in_preferred_lane:
            score += 1.0
    if stuck_ms > 0:
        score += min(stuck_ms / policy.stuck_score_ms, 1.0) * policy.stuck_score_bonus
    return score


def change_attempt_chance(
    profile: BehaviorProfile, blocked: bool, stuck_ms: float, policy: TrafficPolicy
) -> float:
    """Probability that a car evaluates a lane change this tick."""
    base = profile.lane_change_frequency * (1.5 if blocked else 0.2)
    return base + min(stuck_ms / policy.stuck_attempt_ms, 1.0) * 0.5


def max_concurrent_changes(fleet_size: int, policy: TrafficPolicy) -> int:
    """Fleet-wide cap on simultaneous lane transitions."""
    return max(1, int(math.ceil(policy.max_changing_fraction * fleet_size)))


def behavior_for_roll(roll: float) -> BehaviorType:
    """Map a uniform ``[0, 1)`` draw onto the spawn mix."""
    for edge, behavior in BEHAVIOR_MIX:
        if roll < edge:
            return behavior
    return BehaviorType.NEUTRAL
