#!/usr/bin/env python3
"""
main.py
=======
Command-line entry point.

* headless run of one scenario, printing the statistics and writing the
  CSV/PNG report (default);
* ``--compare`` runs "With Bus Lane" and "Without Bus Lane" under the
  same density, schedule and seed and prints them side by side;
* ``--gui`` opens the pygame view on a threaded :class:`SimBridge`.

Environment overrides: ``BRT_DENSITY``, ``BRT_SCENARIO``,
``BRT_SCHEDULE``, ``BRT_SEED``.  Command-line flags win over both.
"""

import argparse
import logging
import os
import sys
from typing import Any, Dict, List, Optional

import pandas as pd

import config
from logging_setup import setup_logging
from sim.scenario import (
    BUS_SCHEDULE_TIERS,
    DENSITY_TIERS,
    SCENARIOS,
    WITH_BUS_LANE,
    WITHOUT_BUS_LANE,
    build_scenario,
)
from sim.world import World

log = logging.getLogger("main")


def _env_seed() -> Optional[int]:
    raw = os.environ.get(config.ENV_SEED)
    if raw is None or raw.strip() == "":
        return config.DEFAULT_SEED
    try:
        return int(raw)
    except ValueError:
        raise SystemExit(f"{config.ENV_SEED} must be an integer, got {raw!r}")


def build_argparser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        description="BRT vs mixed traffic corridor simulator (1 simulated s = 1 real min)."
    )
    p.add_argument("--density", choices=sorted(DENSITY_TIERS),
                   default=os.environ.get(config.ENV_DENSITY, config.DEFAULT_DENSITY))
    p.add_argument("--scenario", choices=list(SCENARIOS),
                   default=os.environ.get(config.ENV_SCENARIO, config.DEFAULT_SCENARIO))
    p.add_argument("--schedule", choices=sorted(BUS_SCHEDULE_TIERS),
                   default=os.environ.get(config.ENV_SCHEDULE, config.DEFAULT_SCHEDULE))
    p.add_argument("--duration", type=float, default=config.DEFAULT_DURATION_S,
                   help="simulated seconds for headless runs")
    p.add_argument("--seed", type=int, default=None)
    p.add_argument("--step-ms", type=float, default=config.DEFAULT_STEP_MS)
    p.add_argument("--out", type=str, default=config.DEFAULT_OUTPUT_DIR,
                   help="report directory; empty string disables the report")
    p.add_argument("--gui", action="store_true", help="open the pygame view")
    p.add_argument("--compare", action="store_true",
                   help="run both lane configurations and compare")
    p.add_argument("--log-level", default="INFO",
                   choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    return p


def parse_args(argv: List[str]) -> argparse.Namespace:
    args = build_argparser().parse_args(argv)
    if args.seed is None:
        args.seed = _env_seed()
    if args.duration <= 0:
        raise SystemExit("--duration must be positive")
    if args.step_ms <= 0:
        raise SystemExit("--step-ms must be positive")
    return args


def run_headless(args: argparse.Namespace, scenario: str) -> World:
    cfg = build_scenario(args.density, scenario, args.schedule)
    world = World(config=cfg, seed=args.seed)
    log.info("Running %s for %.0f simulated s", scenario, args.duration)
    world.run(args.duration * 1000.0, step_ms=args.step_ms)
    world.stop()
    return world


def _report(world: World, out_dir: str, prefix: str) -> None:
    if not out_dir:
        return
    from ui.charts import save_report

    paths = save_report(world.aggregator, out_dir, prefix=prefix)
    for name, path in paths.items():
        log.info("%s -> %s", name, path)


def _summary(world: World) -> Dict[str, Any]:
    stats = world.stats()
    keys = (
        "time_s", "cars_completed", "car_passengers", "bus_laps_completed",
        "dwells", "bus_passengers", "total_passengers",
        "avg_car_travel_s", "avg_bus_travel_s", "cars_spawned", "spawn_blocked",
        "lane_changes",
    )
    return {k: stats.get(k) for k in keys}


def run_compare(args: argparse.Namespace) -> pd.DataFrame:
    rows = {}
    for scenario, prefix in ((WITH_BUS_LANE, "with_bus_lane"),
                             (WITHOUT_BUS_LANE, "without_bus_lane")):
        world = run_headless(args, scenario)
        rows[scenario] = _summary(world)
        _report(world, args.out, prefix)
    return pd.DataFrame(rows)


def run_gui(args: argparse.Namespace) -> None:
    from sim.sim_bridge import SimBridge
    from ui import run_pygame_view

    bridge = SimBridge(
        config=build_scenario(args.density, args.scenario, args.schedule),
        tick_rate_hz=config.DEFAULT_TICK_RATE_HZ,
        seed=args.seed,
        time_scale=config.DEFAULT_TIME_SCALE,
    )
    bridge.start()
    try:
        run_pygame_view(bridge, width=config.WINDOW_WIDTH,
                        height=config.WINDOW_HEIGHT, fps=config.TARGET_FPS)
    finally:
        bridge.stop()
        _report_from_bridge(bridge, args.out)


def _report_from_bridge(bridge, out_dir: str) -> None:
    if not out_dir:
        return
    from ui.charts import save_report

    save_report(bridge.aggregator, out_dir, prefix="gui")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    setup_logging(getattr(logging, args.log_level))
    log.info("Starting: density=%s scenario=%s schedule=%s seed=%s",
             args.density, args.scenario, args.schedule, args.seed)

    if args.gui:
        run_gui(args)
        return 0

    if args.compare:
        table = run_compare(args)
        print(table.to_string())
        return 0

    world = run_headless(args, args.scenario)
    for key, value in _summary(world).items():
        print(f"{key:>20}: {value}")
    _report(world, args.out, "brt")
    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        log.info("Shutting down...")
