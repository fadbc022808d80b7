#!/usr/bin/env python3
"""
sim/agents.py
=============
Entity types for the BRT simulation.

Cars and buses are two variants of one tagged union (``Vehicle``), both
built on :class:`Movable`, which carries the fields the shared sensing
and following code needs (path position, lane, speed, lane-change
sub-state).  Type-specific state stays on each variant.

Lane-change progress follows a single convention for both kinds:
``lane_change_remaining`` is ``0.0`` when idle, jumps to ``1.0`` when a
transition starts and decays monotonically back to ``0.0``, at which
point ``lane`` is committed to ``target_lane``.
"""

from __future__ import annotations

import enum
import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Set, Tuple, Union

from sim import geometry
from sim.traffic_policy import BehaviorType

log = logging.getLogger("geometry")

CAR = "car"
BUS = "bus"

STATION = "station"
FLAG = "flag"
TERMINAL = "terminal"


class BusState(str, enum.Enum):
    INACTIVE = "inactive"
    MOVING = "moving"
    STOPPED = "stopped"


# ── Road furniture ───────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Lane:
    """One spline lane.  Immutable after configuration."""

    index: int
    name: str
    points: Tuple[Tuple[float, float], ...]
    bus_only: bool = False

    def position_at(self, t: float) -> Tuple[float, float]:
        if not geometry.valid_points(self.points):
            _warn_malformed(self.name)
        return geometry.position_at(self.points, t)

    def direction_at(self, t: float) -> Tuple[float, float]:
        return geometry.direction_at(self.points, t)

    def heading_at(self, t: float) -> float:
        return geometry.heading_at(self.points, t)


_MALFORMED_REPORTED: Set[str] = set()


def _warn_malformed(name: str) -> None:
    if name not in _MALFORMED_REPORTED:
        _MALFORMED_REPORTED.add(name)
        log.warning("Lane %r has malformed control points; using default point", name)


@dataclass
class Stop:
    """Visible bus station with a refilling queue of waiting passengers."""

    index: int
    x: float
    y: float
    path_position: float
    radius: float = 40.0
    waiting: int = 0
    max_waiting: int = 20
    last_refill_ms: float = 0.0

    def refill(self, now_ms: float, rng: random.Random, per_second: int) -> int:
        """Add arrivals for every whole simulated second since the last refill.

        Returns the number of passengers added.
        """
        added = 0
        while now_ms - self.last_refill_ms >= 1000.0:
            self.last_refill_ms += 1000.0
            arrivals = rng.randint(0, per_second)
            room = self.max_waiting - self.waiting
            take = max(0, min(arrivals, room))
            self.waiting += take
            added += take
        return added

    def take(self, count: int) -> int:
        """Remove up to *count* waiting passengers and return how many left."""
        n = max(0, min(int(count), self.waiting))
        self.waiting -= n
        return n

    def as_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "x": self.x,
            "y": self.y,
            "radius": self.radius,
            "waiting": self.waiting,
            "path_position": self.path_position,
        }


@dataclass(frozen=True)
class InvisibleStop:
    """Path-position-only curb request point used in mixed traffic."""

    index: int
    path_position: float


@dataclass(frozen=True)
class StopTarget:
    """A stop opportunity a bus is heading for or dwelling at."""

    kind: str
    index: int
    path_position: float

    @property
    def key(self) -> Tuple[str, int]:
        return (self.kind, self.index)


# ── Vehicles ─────────────────────────────────────────────────────────────────

@dataclass
class Pose:
    x: float = 0.0
    y: float = 0.0
    heading: float = 0.0


@dataclass
class Movable:
    """Fields shared by every vehicle that follows a lane spline."""

    id: str
    lane: int
    position: float
    speed: float
    target_lane: int = -1
    lane_change_remaining: float = 0.0
    lane_change_duration_ms: float = 2500.0
    change_from_lane: int = -1
    pose: Pose = field(default_factory=Pose, repr=False)
    kind: str = field(default="", init=False)

    def __post_init__(self) -> None:
        if self.target_lane < 0:
            self.target_lane = self.lane

    @property
    def is_changing_lane(self) -> bool:
        return self.lane_change_remaining > 0.0

    @property
    def lane_change_fraction(self) -> float:
        """Completed share of the current transition (0 when idle)."""
        if not self.is_changing_lane:
            return 0.0
        return 1.0 - self.lane_change_remaining

    @property
    def is_active(self) -> bool:
        return True

    def occupies(self, lane: int) -> bool:
        """True when the vehicle sits in *lane* or is moving into it."""
        return self.lane == lane or (self.is_changing_lane and self.target_lane == lane)

    def start_lane_change(self, target: int, duration_ms: float) -> bool:
        """Begin a transition toward *target*.

        Refused while a transition is already running.
        """
        if self.is_changing_lane or target == self.lane:
            return False
        self.change_from_lane = self.lane
        self.target_lane = target
        self.lane_change_duration_ms = max(1.0, float(duration_ms))
        self.lane_change_remaining = 1.0
        return True

    def advance_lane_change(self, dt_ms: float) -> bool:
        """Progress an active transition.

        Returns True on the tick the new lane is committed.
        """
        if not self.is_changing_lane:
            return False
        self.lane_change_remaining -= dt_ms / self.lane_change_duration_ms
        if self.lane_change_remaining <= 0.0:
            self.lane_change_remaining = 0.0
            self.lane = self.target_lane
            self.change_from_lane = -1
            return True
        return False


@dataclass
class Car(Movable):
    desired_speed: float = 3.0
    behavior: BehaviorType = BehaviorType.NEUTRAL
    preferred_lane: int = 1
    cooldown_ms: float = 0.0
    stuck_ms: float = 0.0
    spawned_at_ms: float = 0.0
    finished: bool = field(default=False, repr=False)

    def __post_init__(self) -> None:
        super().__post_init__()
        self.kind = CAR

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "x": self.pose.x,
            "y": self.pose.y,
            "heading": self.pose.heading,
            "lane": self.lane,
            "target_lane": self.target_lane,
            "position": self.position,
            "speed": self.speed,
            "behavior": self.behavior.value,
            "changing": self.is_changing_lane,
            "stuck_ms": self.stuck_ms,
        }


@dataclass
class Dwell:
    """One passenger exchange episode."""

    target: StopTarget
    duration_ms: float
    to_drop: int
    to_pick: int
    elapsed_ms: float = 0.0

    @property
    def done(self) -> bool:
        return self.elapsed_ms >= self.duration_ms


@dataclass
class LapRecord:
    """Per-lap bookkeeping for a bus."""

    started_at_ms: float = 0.0
    stops_made: int = 0
    has_stopped: bool = False
    entered_boarding_lane: bool = False
    served_in_boarding_lane: bool = False
    mandatory: bool = False
    mandatory_raised: bool = False
    considered: Set[Tuple[str, int]] = field(default_factory=set)
    served: List[int] = field(default_factory=list)
    skipped: List[int] = field(default_factory=list)


@dataclass
class Bus(Movable):
    index: int = 0
    capacity: int = 90
    passengers: int = 0
    cruise_speed: float = 2.4
    state: BusState = BusState.INACTIVE
    dwell: Optional[Dwell] = None
    seeking: Optional[StopTarget] = None
    home_lane: int = -1
    lap: LapRecord = field(default_factory=LapRecord)
    last_visited: Optional[Tuple[str, int]] = None
    cooloff_until: float = -1.0
    laps_completed: int = 0

    def __post_init__(self) -> None:
        super().__post_init__()
        self.kind = BUS
        self.passengers = max(0, min(self.passengers, self.capacity))

    @property
    def is_active(self) -> bool:
        return self.state is not BusState.INACTIVE

    @property
    def is_stopped(self) -> bool:
        return self.state is BusState.STOPPED

    @property
    def load_ratio(self) -> float:
        return self.passengers / float(self.capacity) if self.capacity > 0 else 1.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "x": self.pose.x,
            "y": self.pose.y,
            "heading": self.pose.heading,
            "lane": self.lane,
            "target_lane": self.target_lane,
            "position": self.position,
            "speed": self.speed,
            "state": self.state.value,
            "passengers": self.passengers,
            "capacity": self.capacity,
            "changing": self.is_changing_lane,
            "stop": self.dwell.target.key if self.dwell else None,
            "mandatory": self.lap.mandatory,
        }


Vehicle = Union[Car, Bus]


# ── Read snapshot ────────────────────────────────────────────────────────────

class AgentView(NamedTuple):
    """Immutable per-tick row every decision reads from."""

    id: str
    kind: str
    lane: int
    target_lane: int
    position: float
    speed: float
    changing: bool
    lane_change_remaining: float
    behavior: Optional[BehaviorType] = None
    cooldown_ms: float = 0.0
    stuck_ms: float = 0.0

    def occupies(self, lane: int) -> bool:
        return self.lane == lane or (self.changing and self.target_lane == lane)


def view_of(v: Vehicle) -> AgentView:
    if isinstance(v, Car):
        return AgentView(
            v.id, v.kind, v.lane, v.target_lane, v.position, v.speed,
            v.is_changing_lane, v.lane_change_remaining,
            v.behavior, v.cooldown_ms, v.stuck_ms,
        )
    return AgentView(
        v.id, v.kind, v.lane, v.target_lane, v.position, v.speed,
        v.is_changing_lane, v.lane_change_remaining,
    )


def snapshot(vehicles: Sequence[Vehicle]) -> Tuple[AgentView, ...]:
    """Freeze the active vehicles into a tuple of :class:`AgentView` rows."""
    return tuple(view_of(v) for v in vehicles if v.is_active)
