"""
ui/types.py
===========
Lightweight data containers used across every UI module.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Tuple

ColorRGB = Tuple[int, int, int]
ColorRGBA = Tuple[int, int, int, int]


@dataclass
class Camera:
    """Viewport mapping canvas coordinates to screen pixels.

    Canvas pixels already grow downwards, so unlike a world-metre camera
    no axis is flipped.
    """
    screen_w: int
    screen_h: int
    world_x: float = 2400.0
    world_y: float = 220.0
    zoom: float = 0.2

    def world_to_screen(self, wx: float, wy: float) -> Tuple[float, float]:
        cx = self.screen_w / 2
        cy = self.screen_h / 2
        sx = cx + (wx - self.world_x) * self.zoom
        sy = cy + (wy - self.world_y) * self.zoom
        return sx, sy

    def screen_to_world(self, sx: float, sy: float) -> Tuple[float, float]:
        cx = self.screen_w / 2
        cy = self.screen_h / 2
        wx = (sx - cx) / self.zoom + self.world_x
        wy = (sy - cy) / self.zoom + self.world_y
        return wx, wy

    def fit(self, min_x: float, max_x: float, min_y: float, max_y: float,
            margin: float = 0.9) -> None:
        """Centre on a bounding box and pick the zoom that fits it."""
        self.world_x = (min_x + max_x) / 2
        self.world_y = (min_y + max_y) / 2
        span_x = max(1.0, max_x - min_x)
        span_y = max(1.0, max_y - min_y)
        self.zoom = margin * min(self.screen_w / span_x, self.screen_h / span_y)


@dataclass
class VehicleRenderState:
    """Smoothed vehicle pose for interpolation between bridge ticks."""
    x: float
    y: float
    heading: float
    color: ColorRGB
    kind: str = "car"
    seen: bool = True
