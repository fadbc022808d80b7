#!/usr/bin/env python3
"""
sim/throughput.py
=================
Passenger-throughput and travel-time aggregator.

:class:`ThroughputAggregator` is a reducer over the notifications the
motion core publishes on the :class:`~events.EventBus`:

* ``car.lap_complete``   → ``passengers_per_car`` riders and a car trip time.
* ``bus.dwell_complete`` → alighted riders.
* ``bus.lap_complete``   → riders still on board at the lap exit and a bus trip time.

It owns no simulation state.  The time-series it records is exposed as
pandas DataFrames for the charts and the CSV export.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

import pandas as pd

from events.event_bus import BUS_LAP_COMPLETE, CAR_LAP_COMPLETE, DWELL_COMPLETE, EventBus
from events.message import Message

log = logging.getLogger("throughput")

TRAVEL_TIME_WINDOW: int = 100


@dataclass(frozen=True)
class ThroughputSample:
    time_ms: float
    car_passengers: int
    bus_passengers: int
    total: int


@dataclass(frozen=True)
class TravelTimeSample:
    time_ms: float
    vehicle: str
    vehicle_id: str
    travel_time_ms: float


class ThroughputAggregator:
    """Accumulates throughput totals and travel-time samples.

    Parameters
    ----------
    passengers_per_car : int
        Occupancy credited for every completed car trip.
    """

    TOPICS = (CAR_LAP_COMPLETE, DWELL_COMPLETE, BUS_LAP_COMPLETE)

    def __init__(self, passengers_per_car: int = 3) -> None:
        self.passengers_per_car = int(passengers_per_car)
        self.reset()

    def reset(self) -> None:
        self.cars_completed = 0
        self.bus_laps_completed = 0
        self.dwells = 0
        self.bus_alighted = 0
        self.bus_onboard_at_exit = 0
        self.samples: List[ThroughputSample] = []
        self.travel_times: List[TravelTimeSample] = []

    def attach(self, bus: EventBus) -> None:
        """Subscribe :meth:`apply` to every topic this reducer consumes."""
        for topic in self.TOPICS:
            bus.subscribe(topic, self.apply)

    # ── Reduction ────────────────────────────────────────────────────────

    def apply(self, msg: Message) -> None:
        payload = msg.payload
        if msg.topic == CAR_LAP_COMPLETE:
            self.cars_completed += 1
            self.travel_times.append(TravelTimeSample(
                msg.ts, "car", msg.sender, float(payload.get("travel_time_ms", 0.0))))
        elif msg.topic == DWELL_COMPLETE:
            self.dwells += 1
            self.bus_alighted += max(0, int(payload.get("dropped", 0)))
        elif msg.topic == BUS_LAP_COMPLETE:
            self.bus_laps_completed += 1
            self.bus_onboard_at_exit += max(0, int(payload.get("passengers", 0)))
            self.travel_times.append(TravelTimeSample(
                msg.ts, "bus", msg.sender, float(payload.get("travel_time_ms", 0.0))))
        else:
            log.debug("ignoring topic %s", msg.topic)

    def consume(self, messages: Iterable[Message]) -> "ThroughputAggregator":
        for msg in messages:
            self.apply(msg)
        return self

    def sample(self, now_ms: float) -> ThroughputSample:
        """Append the cumulative totals at *now_ms* to the time-series."""
        s = ThroughputSample(now_ms, self.car_passengers, self.bus_passengers, self.total)
        self.samples.append(s)
        return s

    # ── Totals ───────────────────────────────────────────────────────────

    @property
    def car_passengers(self) -> int:
        return self.cars_completed * self.passengers_per_car

    @property
    def bus_passengers(self) -> int:
        return self.bus_alighted + self.bus_onboard_at_exit

    @property
    def total(self) -> int:
        return self.car_passengers + self.bus_passengers

    def average_travel_time_ms(self, vehicle: str) -> float:
        times = [t.travel_time_ms for t in self.travel_times if t.vehicle == vehicle]
        return sum(times) / len(times) if times else 0.0

    def totals(self) -> Dict[str, Any]:
        return {
            "cars_completed": self.cars_completed,
            "bus_laps_completed": self.bus_laps_completed,
            "dwells": self.dwells,
            "car_passengers": self.car_passengers,
            "bus_alighted": self.bus_alighted,
            "bus_onboard_at_exit": self.bus_onboard_at_exit,
            "bus_passengers": self.bus_passengers,
            "total_passengers": self.total,
            "avg_car_travel_s": self.average_travel_time_ms("car") / 1000.0,
            "avg_bus_travel_s": self.average_travel_time_ms("bus") / 1000.0,
        }

    # ── Frames ───────────────────────────────────────────────────────────

    def to_frame(self) -> pd.DataFrame:
        """Cumulative throughput time-series, one row per sample."""
        df = pd.DataFrame(
            [(s.time_ms / 1000.0, s.car_passengers, s.bus_passengers, s.total) for s in self.samples],
            columns=["time_s", "car_passengers", "bus_passengers", "total_passengers"],
        )
        return df

    def travel_time_frame(self) -> pd.DataFrame:
        """Every recorded trip, with travel time in simulated seconds."""
        return pd.DataFrame(
            [(t.time_ms / 1000.0, t.vehicle, t.vehicle_id, t.travel_time_ms / 1000.0)
             for t in self.travel_times],
            columns=["time_s", "vehicle", "vehicle_id", "travel_time_s"],
        )

    def recent_travel_times(self, limit: int = TRAVEL_TIME_WINDOW) -> pd.DataFrame:
        """The last *limit* trips, the window the travel-time chart shows."""
        return self.travel_time_frame().tail(limit).reset_index(drop=True)
