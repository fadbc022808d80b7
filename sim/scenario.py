#!/usr/bin/env python3
"""
sim/scenario.py
===============
Scenario configuration surface: traffic density tiers, lane
configuration and bus headway tiers, resolved into one frozen
:class:`ScenarioConfig`.

Simulated time is compressed 60×: one simulated second stands for one
real-world minute, so a "20mins" headway is 20 000 simulated ms.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Dict, Tuple

WITH_BUS_LANE = "With Bus Lane"
WITHOUT_BUS_LANE = "Without Bus Lane"
SCENARIOS: Tuple[str, ...] = (WITH_BUS_LANE, WITHOUT_BUS_LANE)

# tier → (cars per minute, min speed, max speed)
DENSITY_TIERS: Dict[str, Tuple[int, float, float]] = {
    "Low": (60, 2.0, 4.0),
    "Medium": (120, 1.5, 3.5),
    "High": (240, 1.0, 3.0),
}

# tier → (schedule interval ms, bus count)
BUS_SCHEDULE_TIERS: Dict[str, Tuple[float, int]] = {
    "10mins": (10_000.0, 6),
    "20mins": (20_000.0, 4),
    "30mins": (30_000.0, 3),
}

MAX_VEHICLES: int = 200


@dataclass(frozen=True)
class ScenarioConfig:
    """Read-only configuration consumed by :class:`~sim.world.World`."""

    traffic_density: str = "Low"
    scenario: str = WITH_BUS_LANE
    bus_schedule: str = "20mins"

    cars_per_minute: int = 60
    min_speed: float = 2.0
    max_speed: float = 4.0
    dedicated_bus_lane: bool = True
    schedule_interval_ms: float = 20_000.0
    bus_count: int = 4
    max_vehicles: int = MAX_VEHICLES

    @property
    def spawn_interval_ms(self) -> float:
        return 60_000.0 / max(1, self.cars_per_minute)

    @property
    def bus_speed(self) -> float:
        return (self.min_speed + self.max_speed) / 2.0

    def as_dict(self) -> Dict[str, Any]:
        return {
            "traffic_density": self.traffic_density,
            "scenario": self.scenario,
            "bus_schedule": self.bus_schedule,
            "cars_per_minute": self.cars_per_minute,
            "speed_range": (self.min_speed, self.max_speed),
            "dedicated_bus_lane": self.dedicated_bus_lane,
            "schedule_interval_ms": self.schedule_interval_ms,
            "bus_count": self.bus_count,
        }


def build_scenario(
    traffic_density: str = "Low",
    scenario: str = WITH_BUS_LANE,
    bus_schedule: str = "20mins",
    **overrides: Any,
) -> ScenarioConfig:
    """Resolve tier names into a :class:`ScenarioConfig`.

    Raises
    ------
    ValueError
        If a tier or scenario name is unknown.
    """
    if traffic_density not in DENSITY_TIERS:
        raise ValueError(f"unknown traffic density {traffic_density!r}; "
                         f"expected one of {sorted(DENSITY_TIERS)}")
    if scenario not in SCENARIOS:
        raise ValueError(f"unknown scenario {scenario!r}; expected one of {list(SCENARIOS)}")
    if bus_schedule not in BUS_SCHEDULE_TIERS:
        raise ValueError(f"unknown bus schedule {bus_schedule!r}; "
                         f"expected one of {sorted(BUS_SCHEDULE_TIERS)}")

    cars_per_minute, min_speed, max_speed = DENSITY_TIERS[traffic_density]
    interval_ms, bus_count = BUS_SCHEDULE_TIERS[bus_schedule]
    config = ScenarioConfig(
        traffic_density=traffic_density,
        scenario=scenario,
        bus_schedule=bus_schedule,
        cars_per_minute=cars_per_minute,
        min_speed=min_speed,
        max_speed=max_speed,
        dedicated_bus_lane=scenario == WITH_BUS_LANE,
        schedule_interval_ms=interval_ms,
        bus_count=bus_count,
    )
    return replace(config, **overrides) if overrides else config
