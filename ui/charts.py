"""
ui/charts.py
============
matplotlib figures for the throughput report.

* :func:`throughput_figure`  cumulative car, bus and total passengers.
* :func:`travel_time_figure` per-trip travel times for the last 100 trips.
* :func:`save_report`        writes both figures as PNG and the frames as CSV.

The Agg backend is selected so reports render without a display.
"""

from __future__ import annotations

import logging
import os
from typing import Dict

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402

log = logging.getLogger("ui")

CAR_COLOR = "#56a8ff"
BUS_COLOR = "#f6bf5a"
TOTAL_COLOR = "#e0e0e0"


def throughput_figure(df: pd.DataFrame, title: str = "Cumulative Passenger Throughput"):
    """Line chart of the aggregator's throughput frame."""
    fig, ax = plt.subplots(figsize=(10, 5))
    if not df.empty:
        ax.plot(df["time_s"], df["car_passengers"], color=CAR_COLOR, label="Cars")
        ax.plot(df["time_s"], df["bus_passengers"], color=BUS_COLOR, label="Buses")
        ax.plot(df["time_s"], df["total_passengers"], color=TOTAL_COLOR,
                linestyle="--", label="Total")
        ax.legend(loc="upper left")
    ax.set_xlabel("Simulated time (s = min)")
    ax.set_ylabel("Passengers")
    ax.set_title(title)
    ax.grid(alpha=0.3)
    fig.tight_layout()
    return fig


def travel_time_figure(df: pd.DataFrame, title: str = "Travel Time (last 100 trips)"):
    """Scatter of travel times per trip, cars and buses coloured apart."""
    fig, ax = plt.subplots(figsize=(10, 5))
    for vehicle, color in (("car", CAR_COLOR), ("bus", BUS_COLOR)):
        part = df[df["vehicle"] == vehicle] if not df.empty else df
        if part.empty:
            continue
        ax.scatter(part["time_s"], part["travel_time_s"], s=14, color=color,
                   label=f"{vehicle} (avg {part['travel_time_s'].mean():.1f} s)")
    if not df.empty:
        ax.legend(loc="upper left")
    ax.set_xlabel("Completion time (s)")
    ax.set_ylabel("Travel time (s)")
    ax.set_title(title)
    ax.grid(alpha=0.3)
    fig.tight_layout()
    return fig


def save_report(aggregator, out_dir: str, prefix: str = "brt") -> Dict[str, str]:
    """Write throughput/travel-time PNG charts and CSV frames to *out_dir*.

    Returns a mapping from artefact name to the path written.
    """
    os.makedirs(out_dir, exist_ok=True)
    throughput = aggregator.to_frame()
    travel = aggregator.travel_time_frame()
    paths = {
        "throughput_csv": os.path.join(out_dir, f"{prefix}_throughput.csv"),
        "travel_times_csv": os.path.join(out_dir, f"{prefix}_travel_times.csv"),
        "throughput_png": os.path.join(out_dir, f"{prefix}_throughput.png"),
        "travel_times_png": os.path.join(out_dir, f"{prefix}_travel_times.png"),
    }
    throughput.to_csv(paths["throughput_csv"], index=False)
    travel.to_csv(paths["travel_times_csv"], index=False)

    fig = throughput_figure(throughput)
    fig.savefig(paths["throughput_png"], dpi=110)
    plt.close(fig)
    fig = travel_time_figure(aggregator.recent_travel_times())
    fig.savefig(paths["travel_times_png"], dpi=110)
    plt.close(fig)

    log.info("Report written to %s", out_dir)
    return paths
