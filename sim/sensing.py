#!/usr/bin/env python3
"""
sim/sensing.py
==============
Pure traffic-sensing functions over a per-tick snapshot of
:class:`~sim.agents.AgentView` rows.

Nothing here mutates state; every car and bus decision in a tick reads
the same frozen snapshot, so update order inside a tick cannot change
the outcome of sensing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional, Tuple

from sim.agents import AgentView
from sim.physics import forward_distance, signed_loop_distance


@dataclass(frozen=True)
class TrafficReading:
    count: int
    avg_speed: float
    nearest_distance: float
    leader_speed: Optional[float] = None
    """Speed of the nearest vehicle ahead, ``None`` when the lane is clear."""

    @property
    def has_leader(self) -> bool:
        return self.leader_speed is not None


def sense_ahead(
    agent: AgentView,
    views: Iterable[AgentView],
    look_ahead: float,
    lane: Optional[int] = None,
    exit_at: Optional[float] = None,
) -> TrafficReading:
    """Count, average speed and nearest gap of traffic ahead in *lane*.

    Parameters
    ----------
    agent : AgentView
        The querying vehicle.
    views : iterable of AgentView
        Snapshot of all active vehicles (the agent itself is skipped).
    look_ahead : float
        Horizon in path units; only ``0 < d < look_ahead`` counts.
    lane : int, optional
        Lane to sense; defaults to the agent's own lane.
    exit_at : float, optional
        Path position where the agent leaves the road.  Vehicles at or
        beyond it, including those across the lap seam, are ignored.

    Returns
    -------
    TrafficReading
        ``nearest_distance`` is *look_ahead* and ``avg_speed`` is
        ``1.5 ×`` own speed when nothing is ahead.
    """
    lane = agent.lane if lane is None else lane
    count = 0
    speed_sum = 0.0
    nearest = look_ahead
    leader_speed: Optional[float] = None
    for other in views:
        if other.id == agent.id or not other.occupies(lane):
            continue
        d = forward_distance(agent.position, other.position)
        if exit_at is not None and agent.position + d >= exit_at:
            continue
        if 0.0 < d < look_ahead:
            count += 1
            speed_sum += other.speed
            if d < nearest or leader_speed is None:
                nearest = d
                leader_speed = other.speed
    avg = speed_sum / count if count else agent.speed * 1.5
    return TrafficReading(count=count, avg_speed=avg, nearest_distance=nearest,
                          leader_speed=leader_speed)


def is_lane_change_safe(
    agent: AgentView,
    views: Iterable[AgentView],
    lane: int,
    front: float,
    rear: float,
    rear_speed_ratio: float = 1.2,
) -> bool:
    """True when *lane* is clear for *agent* to move into.

    Unsafe when any vehicle occupying *lane* sits within *front* ahead
    (or level with the agent), or a vehicle faster than
    ``rear_speed_ratio ×`` own speed sits within *rear* behind.
    """
    for other in views:
        if other.id == agent.id or not other.occupies(lane):
            continue
        d = signed_loop_distance(agent.position, other.position)
        if 0.0 <= d < front:
            return False
        if -rear < d < 0.0 and other.speed > agent.speed * rear_speed_ratio:
            return False
    return True


def is_lane_clear(agent: AgentView, views: Iterable[AgentView], lane: int, gap: float) -> bool:
    """Relaxed check: no vehicle at all within *gap* either way."""
    for other in views:
        if other.id == agent.id or not other.occupies(lane):
            continue
        if abs(signed_loop_distance(agent.position, other.position)) < gap:
            return False
    return True


def changers_near(
    agent: AgentView, views: Iterable[AgentView], window: float
) -> Tuple[AgentView, ...]:
    """Other vehicles mid-transition within *window* of *agent*, any lane."""
    return tuple(
        v for v in views
        if v.id != agent.id and v.changing
        and abs(signed_loop_distance(agent.position, v.position)) < window
    )


def entry_is_clear(views: Iterable[AgentView], lane: int, gap: float) -> bool:
    """True when no vehicle in *lane* sits within *gap* after the lane start."""
    for v in views:
        if v.occupies(lane) and 0.0 <= v.position < gap:
            return False
    return True
