#!/usr/bin/env python3
"""Vehicle sprite rendering, smoothing and state sync (mixin)."""

from __future__ import annotations

import math
from typing import Any, Sequence

import pygame

from .helpers import angle_lerp, lerp
from .types import VehicleRenderState


class VehicleRenderer:
    """Mixin that draws cars and buses and eases them between bridge ticks."""

    # ------------------------------------------------------------------ #
    #  Public draw methods                                                 #
    # ------------------------------------------------------------------ #

    def draw_vehicle(self, surface: pygame.Surface, vehicle: Any) -> None:
        vehicle_id = self._vehicle_id(vehicle)
        state = self.vehicle_states.get(vehicle_id)
        if state is None:
            return

        is_bus = state.kind == "bus"
        base_w, base_h = self.BUS_SIZE if is_bus else self.CAR_SIZE
        w = max(6, int(base_w * self.camera.zoom))
        h = max(3, int(base_h * self.camera.zoom))
        sprite = pygame.Surface((w, h), pygame.SRCALPHA)

        body = pygame.Rect(0, 0, w, h)
        pygame.draw.rect(sprite, state.color, body, border_radius=2)

        # Windshield
        r, g, b = state.color
        glass = (max(0, r - 60), max(0, g - 60), max(0, b - 60), 200)
        ws_w = max(1, w // (6 if is_bus else 4))
        pygame.draw.rect(sprite, glass, (w - ws_w - 1, 1, ws_w, max(1, h - 2)), border_radius=1)

        if is_bus:
            load = float(self._get(vehicle, "load_ratio", default=0.0))
            fill = int((w - ws_w - 3) * max(0.0, min(1.0, load)))
            if fill > 0:
                pygame.draw.rect(sprite, (40, 40, 40, 160), (1, h - 3, fill, 2))
        if self._get(vehicle, "changing"):
            pygame.draw.rect(sprite, (255, 255, 255), body, width=1, border_radius=2)

        angle = -math.degrees(state.heading)
        rotated = pygame.transform.rotate(sprite, angle)
        sx, sy = self.camera.world_to_screen(state.x, state.y)
        surface.blit(rotated, rotated.get_rect(center=(int(sx), int(sy))))

        if is_bus and self.camera.zoom > 0.12:
            label = f"{self._get(vehicle, 'passengers', default=0)}/{self._get(vehicle, 'capacity', default=0)}"
            self.render_text(surface, self.font_tiny, label,
                             (int(sx), int(sy) - h), color=self.BUS_TEXT_COLOR, anchor="midbottom")

    # ------------------------------------------------------------------ #
    #  Animation                                                           #
    # ------------------------------------------------------------------ #

    def animate_vehicle(self, vehicle: Any, delta_time: float) -> None:
        """Ease the render pose toward the latest bridge pose."""
        state = self.vehicle_states.get(self._vehicle_id(vehicle))
        if state is None:
            return
        t = 1.0 - math.exp(-self.SMOOTHING * max(0.0, delta_time))
        tx = float(self._get(vehicle, "x", default=state.x))
        ty = float(self._get(vehicle, "y", default=state.y))
        # Large jumps (lap wrap, reactivation) snap instead of sliding.
        if math.hypot(tx - state.x, ty - state.y) > 400:
            state.x, state.y = tx, ty
        else:
            state.x = lerp(state.x, tx, t)
            state.y = lerp(state.y, ty, t)
        state.heading = angle_lerp(state.heading,
                                   float(self._get(vehicle, "heading", default=state.heading)), t)
        state.color = tuple(self._get(vehicle, "color", default=state.color))

    def _sync_vehicle_states(self, vehicles: Sequence[Any]) -> None:
        """Create render states for new ids and drop states of vanished ones."""
        for state in self.vehicle_states.values():
            state.seen = False
        for vehicle in vehicles:
            vid = self._vehicle_id(vehicle)
            state = self.vehicle_states.get(vid)
            if state is None:
                state = VehicleRenderState(
                    x=float(self._get(vehicle, "x", default=0.0)),
                    y=float(self._get(vehicle, "y", default=0.0)),
                    heading=float(self._get(vehicle, "heading", default=0.0)),
                    color=tuple(self._get(vehicle, "color", default=(200, 200, 200))),
                    kind=str(self._get(vehicle, "kind", default="car")),
                )
                self.vehicle_states[vid] = state
            state.seen = True
        for vid in [k for k, s in self.vehicle_states.items() if not s.seen]:
            del self.vehicle_states[vid]
