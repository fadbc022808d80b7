"""
sim/network.py
==============
Road layouts for the BRT comparison.

Defines :class:`RoadLayout`: the three parallel lane splines, the
visible stations, the invisible curb-request points and which lanes each
vehicle class may use.

:func:`dedicated_layout` builds the "With Bus Lane" road (lane 0 reserved
for buses, four stations along it).  :func:`mixed_layout` builds the
"Without Bus Lane" road (all lanes shared, boarding only from lane 2).
"""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from sim.agents import InvisibleStop, Lane, Stop
from sim.geometry import nearest_path_position, position_at


# ── Lane geometry (canvas pixels) ─────────────────────────────────────────────

BUS_LANE_POINTS: Tuple[Tuple[float, float], ...] = (
    (20, 180), (800, 150), (1650, 150), (2500, 150),
    (3100, 140), (3800, 120), (4400, 90), (4800, 70),
)
REGULAR_LANE_1_POINTS: Tuple[Tuple[float, float], ...] = (
    (20, 280), (800, 250), (1650, 270), (2500, 270),
    (3100, 250), (3800, 230), (4400, 210), (4800, 190),
)
REGULAR_LANE_2_POINTS: Tuple[Tuple[float, float], ...] = (
    (20, 350), (800, 350), (1650, 350), (2500, 350),
    (3100, 340), (3800, 320), (4400, 290), (4800, 270),
)

# World positions of the dedicated-lane stations.
BUS_LANE_STATIONS: Tuple[Tuple[float, float], ...] = (
    (750, 150), (1750, 150), (2800, 140), (3900, 120),
)

# Curbside stations along the boarding lane in mixed traffic (path positions).
CURBSIDE_STATION_POSITIONS: Tuple[float, ...] = (0.30, 0.68)
CURBSIDE_OFFSET_PX: float = 28.0

STATION_RADIUS: float = 40.0


@dataclass
class RoadLayout:
    """Everything the motion core needs to know about the road.

    Parameters
    ----------
    lanes : list of Lane
        Indexed 0..N-1; lane 0 is the kerb-far lane.
    stations : list of Stop
        Visible stations (mutable waiting counters).
    invisible_stops : list of InvisibleStop
        Curb-request points (mixed traffic only).
    car_lanes : tuple of int
        Lanes cars may use.
    dedicated : bool
        True when lane 0 is reserved for buses.
    boarding_lane : int
        The only lane passengers may board from in mixed traffic.
    """

    lanes: List[Lane]
    stations: List[Stop] = field(default_factory=list)
    invisible_stops: List[InvisibleStop] = field(default_factory=list)
    car_lanes: Tuple[int, ...] = (0, 1, 2)
    dedicated: bool = False
    boarding_lane: int = 2
    name: str = ""

    @property
    def lane_count(self) -> int:
        return len(self.lanes)

    def valid_lane(self, lane: int) -> bool:
        return 0 <= lane < len(self.lanes)

    def station(self, index: int) -> Optional[Stop]:
        for s in self.stations:
            if s.index == index:
                return s
        return None


def _lanes(dedicated: bool) -> List[Lane]:
    return [
        Lane(0, "busLane" if dedicated else "regularLane0", BUS_LANE_POINTS, bus_only=dedicated),
        Lane(1, "regularLane1", REGULAR_LANE_1_POINTS),
        Lane(2, "regularLane2", REGULAR_LANE_2_POINTS),
    ]


def dedicated_layout(max_waiting: int = 20) -> RoadLayout:
    """Build the "With Bus Lane" road: buses on lane 0, cars on 1–2."""
    lanes = _lanes(dedicated=True)
    stations = [
        Stop(
            index=i,
            x=float(x),
            y=float(y),
            path_position=nearest_path_position(lanes[0].points, x, y),
            radius=STATION_RADIUS,
            max_waiting=max_waiting,
        )
        for i, (x, y) in enumerate(BUS_LANE_STATIONS)
    ]
    return RoadLayout(
        lanes=lanes,
        stations=stations,
        car_lanes=(1, 2),
        dedicated=True,
        boarding_lane=0,
        name="With Bus Lane",
    )


def mixed_layout(rng: random.Random, max_waiting: int = 20,
                 invisible_count: int = 8, boarding_lane: int = 2) -> RoadLayout:
    """Build the "Without Bus Lane" road: every lane shared."""
    lanes = _lanes(dedicated=False)
    kerb = lanes[boarding_lane]
    stations: List[Stop] = []
    for i, t in enumerate(CURBSIDE_STATION_POSITIONS):
        x, y = kerb.position_at(t)
        stations.append(Stop(index=i, x=x, y=y + CURBSIDE_OFFSET_PX, path_position=t,
                             radius=STATION_RADIUS, max_waiting=max_waiting))
    return RoadLayout(
        lanes=lanes,
        stations=stations,
        invisible_stops=generate_invisible_stops(invisible_count, rng),
        car_lanes=tuple(range(len(lanes))),
        dedicated=False,
        boarding_lane=boarding_lane,
        name="Without Bus Lane",
    )


def generate_invisible_stops(count: int, rng: random.Random,
                             start: float = 0.05, end: float = 0.93) -> List[InvisibleStop]:
    """Scatter *count* curb-request points over ``[start, end]``.

    One point per equal stratum, so the points never bunch up.
    """
    if count <= 0:
        return []
    width = (end - start) / count
    return [
        InvisibleStop(index=i, path_position=start + width * (i + rng.random()))
        for i in range(count)
    ]


def generate_stops_on_lane(lane: Lane, count: int, rng: random.Random,
                           radius: float = STATION_RADIUS,
                           max_waiting: int = 20) -> List[Stop]:
    """Place *count* random stations along *lane*, in path order."""
    positions: Sequence[float] = sorted(rng.random() for _ in range(max(0, count)))
    stops: List[Stop] = []
    for i, t in enumerate(positions):
        x, y = position_at(lane.points, t)
        stops.append(Stop(index=i, x=x, y=y, path_position=t, radius=radius,
                          max_waiting=max_waiting))
    return stops
