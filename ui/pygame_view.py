#!/usr/bin/env python3
"""
Main view class: combines all UI mixins into one runnable Pygame window.

Module layout
─────────────
    ui/
    ├── types.py           – ColorRGB, Camera, VehicleRenderState
    ├── constants.py       – ViewConstants mixin (all class-level constants)
    ├── helpers.py         – ViewHelpers mixin  (static utilities)
    ├── draw_road.py       – RoadRenderer mixin (lanes, stations, request points)
    ├── draw_vehicles.py   – VehicleRenderer mixin (sprites, smoothing)
    ├── hud.py             – HudRenderer mixin  (HUD, legend, debug, splash)
    ├── charts.py          – matplotlib throughput / travel-time report
    └── pygame_view.py     – PygameCorridorView (this file – main loop)
"""

from __future__ import annotations

import logging
import os
from datetime import datetime
from typing import Any, Dict, List, Optional

import pygame

from .constants import ViewConstants
from .draw_road import RoadRenderer
from .draw_vehicles import VehicleRenderer
from .helpers import ViewHelpers
from .hud import HudRenderer
from .types import Camera, VehicleRenderState

log = logging.getLogger("ui")


class PygameCorridorView(
    ViewConstants,
    ViewHelpers,
    RoadRenderer,
    VehicleRenderer,
    HudRenderer,
):
    """BRT corridor visualiser powered by Pygame.

    Inherits drawing logic from focused mixin modules so each file
    stays small and single-purpose.  *bridge* is anything exposing the
    :class:`~sim.sim_bridge.SimBridge` read API.
    """

    def __init__(self, bridge: Any, width: int = 1280, height: int = 720, fps: int = 60):
        self.bridge = bridge
        self.width = width
        self.height = height
        self.fps = fps

        self.screen: Optional[pygame.Surface] = None
        self.clock: Optional[pygame.time.Clock] = None
        self.font_small: Optional[pygame.font.Font] = None
        self.font_tiny: Optional[pygame.font.Font] = None
        self.font_title: Optional[pygame.font.Font] = None

        self.camera = Camera(width, height)
        self.time_seconds = 0.0
        self.vehicle_states: Dict[str, VehicleRenderState] = {}

        # UI state
        self.paused = False
        self.show_debug = False
        self.show_legend = True
        self.show_splash = True
        self._screenshot_flash_until = 0.0
        self._lanes: List[Any] = []

    # ------------------------------------------------------------------ #
    #  Resize / camera                                                     #
    # ------------------------------------------------------------------ #
    def _handle_resize(self, new_w: int, new_h: int) -> None:
        self.width = max(400, new_w)
        self.height = max(300, new_h)
        self.camera.screen_w = self.width
        self.camera.screen_h = self.height
        self.screen = pygame.display.set_mode(
            (self.width, self.height), pygame.RESIZABLE
        )
        self._fit_camera()

    def _fit_camera(self) -> None:
        xs = [p[0] for lane in self._lanes for p in self._get(lane, "points", default=[])]
        ys = [p[1] for lane in self._lanes for p in self._get(lane, "points", default=[])]
        if xs and ys:
            self.camera.fit(min(xs), max(xs), min(ys) - 200, max(ys) + 200)

    def _zoom(self, factor: float) -> None:
        self.camera.zoom = max(self.MIN_ZOOM, min(self.MAX_ZOOM, self.camera.zoom * factor))

    # ------------------------------------------------------------------ #
    #  Screenshot                                                          #
    # ------------------------------------------------------------------ #
    def _take_screenshot(self) -> None:
        if self.screen is None:
            return
        os.makedirs(self.SCREENSHOT_DIR, exist_ok=True)
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        path = os.path.join(self.SCREENSHOT_DIR, f"brt_{stamp}.png")
        pygame.image.save(self.screen, path)
        log.info("Screenshot saved to %s", path)
        self._screenshot_flash_until = self.time_seconds + 0.35

    def _reset(self) -> None:
        self.vehicle_states.clear()
        self.paused = False
        if hasattr(self.bridge, "reset"):
            self.bridge.reset()
        if hasattr(self.bridge, "set_paused"):
            self.bridge.set_paused(False)
        self._lanes = self.bridge.get_lanes()

    # ------------------------------------------------------------------ #
    #  Main loop                                                           #
    # ------------------------------------------------------------------ #
    def run(self) -> None:
        pygame.init()
        pygame.display.set_caption("BRT vs MIXED TRAFFIC")
        self.screen = pygame.display.set_mode(
            (self.width, self.height), pygame.RESIZABLE
        )
        self.clock = pygame.time.Clock()
        self.font_small = self._load_font(13, bold=False)
        self.font_tiny = self._load_font(11, bold=False)
        self.font_title = self._load_font(28, bold=True)
        self._lanes = self.bridge.get_lanes()
        self._fit_camera()

        running = True
        while running:
            delta_time = self.clock.tick(self.fps) / 1000.0
            self.time_seconds += delta_time

            # ---- events ------------------------------------------------- #
            for event in pygame.event.get():
                if event.type == pygame.QUIT:
                    running = False
                elif event.type == pygame.VIDEORESIZE:
                    self._handle_resize(event.w, event.h)
                elif event.type == pygame.MOUSEWHEEL:
                    self._zoom(self.ZOOM_STEP if event.y > 0 else 1 / self.ZOOM_STEP)
                elif event.type == pygame.KEYDOWN:
                    if self.show_splash:
                        self.show_splash = False
                        continue
                    if event.key == pygame.K_SPACE:
                        self.paused = not self.paused
                        if hasattr(self.bridge, "set_paused"):
                            self.bridge.set_paused(self.paused)
                    elif event.key == pygame.K_F3:
                        self.show_debug = not self.show_debug
                    elif event.key == pygame.K_l:
                        self.show_legend = not self.show_legend
                    elif event.key == pygame.K_r:
                        self._reset()
                    elif event.key == pygame.K_F12:
                        self._take_screenshot()
                    elif event.key in (pygame.K_EQUALS, pygame.K_PLUS, pygame.K_KP_PLUS):
                        self._zoom(self.ZOOM_STEP)
                    elif event.key in (pygame.K_MINUS, pygame.K_KP_MINUS):
                        self._zoom(1 / self.ZOOM_STEP)
                    elif event.key == pygame.K_LEFT:
                        self.camera.world_x -= 100 / self.camera.zoom
                    elif event.key == pygame.K_RIGHT:
                        self.camera.world_x += 100 / self.camera.zoom
                    elif event.key == pygame.K_HOME:
                        self._fit_camera()

            # ---- splash ------------------------------------------------- #
            if self.show_splash:
                self.screen.fill(self.BG_COLOR)
                self._draw_splash(self.screen, self.time_seconds)
                pygame.display.flip()
                continue

            # ---- poll bridge -------------------------------------------- #
            vehicles = self.bridge.get_vehicles()
            stops = self.bridge.get_stops()
            stats = self.bridge.get_stats()
            if not self.paused:
                self._sync_vehicle_states(vehicles)
                for vehicle in vehicles:
                    self.animate_vehicle(vehicle, delta_time)

            # ---- render ------------------------------------------------- #
            self.screen.fill(self.GRASS_COLOR)
            self.draw_lanes(self.screen, self._lanes)
            self.draw_lane_markings(self.screen, self._lanes)
            self.draw_request_points(self.screen, self._lanes)
            self.draw_stations(self.screen, stops)
            for vehicle in vehicles:
                self.draw_vehicle(self.screen, vehicle)

            # HUD layers (drawn on top, unzoomed)
            self.draw_hud(self.screen, stats, vehicles)
            if self.show_legend:
                self._draw_legend(self.screen)
            if self.show_debug:
                self._draw_debug_overlay(self.screen, vehicles, stats, delta_time)
            if self.paused:
                self._draw_pause_banner(self.screen)
            if self.time_seconds < self._screenshot_flash_until:
                flash = pygame.Surface(
                    (self.width, self.height), pygame.SRCALPHA
                )
                flash.fill((255, 255, 255, 40))
                self.screen.blit(flash, (0, 0))

            pygame.display.flip()

        pygame.quit()


# ---------------------------------------------------------------------- #
#  Convenience entry point                                                 #
# ---------------------------------------------------------------------- #
def run_pygame_view(
    bridge: Any, width: int = 1280, height: int = 720, fps: int = 60
) -> None:
    view = PygameCorridorView(bridge=bridge, width=width, height=height, fps=fps)
    view.run()


if __name__ == "__main__":
    raise SystemExit(
        "pygame_view.py needs a bridge object. Run `python main.py --gui` "
        "or call run_pygame_view(your_bridge)."
    )
