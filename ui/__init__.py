#!/usr/bin/env python3

from .types import ColorRGB, ColorRGBA, Camera, VehicleRenderState
from .constants import ViewConstants
from .helpers import ViewHelpers
from .draw_road import RoadRenderer
from .draw_vehicles import VehicleRenderer
from .hud import HudRenderer
from .pygame_view import PygameCorridorView, run_pygame_view

__all__ = [
    "ColorRGB",
    "ColorRGBA",
    "Camera",
    "VehicleRenderState",
    "ViewConstants",
    "ViewHelpers",
    "RoadRenderer",
    "VehicleRenderer",
    "HudRenderer",
    "PygameCorridorView",
    "run_pygame_view",
]
