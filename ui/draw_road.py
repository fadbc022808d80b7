#!/usr/bin/env python3
"""Lane surfaces, lane markings, stations and curb request points (mixin)."""

from __future__ import annotations

from typing import Any, List, Sequence, Tuple

import pygame


class RoadRenderer:
    """Mixin that draws the corridor: lanes, dashes, stations."""

    # ------------------------------------------------------------------ #
    #  Lanes                                                               #
    # ------------------------------------------------------------------ #

    def _screen_line(self, points: Sequence[Tuple[float, float]]) -> List[Tuple[int, int]]:
        out = []
        for x, y in points:
            sx, sy = self.camera.world_to_screen(x, y)
            out.append((int(sx), int(sy)))
        return out

    def draw_lanes(self, surface: pygame.Surface, lanes: Sequence[Any]) -> None:
        width = max(2, int(self.LANE_WIDTH * self.camera.zoom))
        for lane in lanes:
            points = self._get(lane, "points", default=[])
            if len(points) < 2:
                continue
            color = self.BUS_LANE_COLOR if self._get(lane, "bus_only") else self.ROAD_COLOR
            line = self._screen_line(points)
            pygame.draw.lines(surface, color, False, line, width)
            for p in line:
                pygame.draw.circle(surface, color, p, width // 2)

    def draw_lane_markings(self, surface: pygame.Surface, lanes: Sequence[Any]) -> None:
        """Dashed centre line per lane; every other sampled segment."""
        for lane in lanes:
            line = self._screen_line(self._get(lane, "points", default=[]))
            for i in range(0, len(line) - 1, 4):
                pygame.draw.line(surface, self.LANE_DASH_COLOR, line[i], line[i + 1], 1)

    # ------------------------------------------------------------------ #
    #  Stations                                                            #
    # ------------------------------------------------------------------ #

    def draw_stations(self, surface: pygame.Surface, stops: Sequence[Any]) -> None:
        for stop in stops:
            sx, sy = self.camera.world_to_screen(
                float(self._get(stop, "x", default=0.0)),
                float(self._get(stop, "y", default=0.0)),
            )
            radius = max(3, int(float(self._get(stop, "radius", default=40.0)) * self.camera.zoom))
            centre = (int(sx), int(sy))
            self.draw_alpha_circle(surface, (*self.STATION_COLOR, self.STATION_ALPHA), centre, radius)
            pygame.draw.circle(surface, self.STATION_COLOR, centre, radius, width=1)
            self.render_text(
                surface, self.font_tiny,
                str(int(self._get(stop, "waiting", default=0))),
                (centre[0], centre[1] - radius - 2),
                color=(220, 230, 255), anchor="midbottom",
            )

    def draw_request_points(self, surface: pygame.Surface, lanes: Sequence[Any]) -> None:
        """Curb request points along the boarding lane (mixed traffic only)."""
        radius = max(2, int(self.REQUEST_POINT_RADIUS * self.camera.zoom))
        for lane in lanes:
            for x, y in self._get(lane, "request_points", default=[]):
                sx, sy = self.camera.world_to_screen(x, y)
                pygame.draw.circle(surface, self.REQUEST_POINT_COLOR, (int(sx), int(sy)), radius, width=1)
