#!/usr/bin/env python3
"""Visual constants shared across all renderers."""

from __future__ import annotations

from typing import Sequence, Tuple

from .types import ColorRGB


class ViewConstants:
    """Mixin providing every visual / layout constant."""

    BG_COLOR: ColorRGB = (15, 15, 15)
    GRASS_COLOR: ColorRGB = (22, 34, 22)
    ROAD_COLOR: ColorRGB = (38, 38, 38)
    BUS_LANE_COLOR: ColorRGB = (70, 34, 34)
    LANE_DASH_COLOR: ColorRGB = (90, 90, 90)
    HUD_BG_COLOR: ColorRGB = (22, 22, 22)
    HUD_BORDER_COLOR: ColorRGB = (42, 42, 42)
    STATION_COLOR: ColorRGB = (90, 170, 255)
    REQUEST_POINT_COLOR: ColorRGB = (255, 210, 90)
    WARNING_COLOR: ColorRGB = (255, 60, 60)
    CAR_TEXT_COLOR: ColorRGB = (86, 168, 255)
    BUS_TEXT_COLOR: ColorRGB = (246, 191, 90)

    LANE_WIDTH = 60
    CAR_SIZE: Tuple[int, int] = (40, 20)
    BUS_SIZE: Tuple[int, int] = (90, 30)
    REQUEST_POINT_RADIUS = 10
    STATION_ALPHA = 90
    SMOOTHING = 12.0  # per second
    HUD_BLINK_MS = 500

    MIN_ZOOM = 0.08
    MAX_ZOOM = 1.5
    ZOOM_STEP = 1.15

    LEGEND_ITEMS: Sequence[Tuple[str, ColorRGB]] = (
        ("AGGRESSIVE", (255, 88, 88)),
        ("NEUTRAL", (86, 168, 255)),
        ("POLITE", (100, 226, 170)),
        ("BUS MOVING", (246, 191, 90)),
        ("BUS STOPPED", (255, 160, 100)),
        ("STATION", (90, 170, 255)),
    )

    SCREENSHOT_DIR = "screenshots"
