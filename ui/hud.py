#!/usr/bin/env python3
"""HUD panel, legend, debug overlay, splash screen, and pause banner (mixin)."""

from __future__ import annotations

from typing import Any, Mapping, Sequence

import pygame


class HudRenderer:
    """Mixin that draws every overlay / HUD element."""

    # ------------------------------------------------------------------ #
    #  Main HUD panel                                                      #
    # ------------------------------------------------------------------ #

    def draw_hud(
        self,
        surface: pygame.Surface,
        stats: Mapping[str, Any],
        vehicles: Sequence[Any],
    ) -> None:
        if self.font_small is None or self.font_tiny is None:
            return

        buses = [v for v in vehicles if self._get(v, "kind") == "bus"]
        rows = [
            (f"T+{stats.get('time_s', 0.0):6.1f} s   (1 s = 1 min)", (240, 240, 240)),
            (f"{stats.get('scenario', '?')} | {stats.get('traffic_density', '?')} | "
             f"every {stats.get('bus_schedule', '?')}", (180, 180, 180)),
            (f"CARS  active {stats.get('cars_active', 0):>3}  done {stats.get('cars_completed', 0):>4}",
             self.CAR_TEXT_COLOR),
            (f"CAR PASSENGERS  {stats.get('car_passengers', 0):>6}", self.CAR_TEXT_COLOR),
            (f"BUS PASSENGERS  {stats.get('bus_passengers', 0):>6}", self.BUS_TEXT_COLOR),
            (f"TOTAL           {stats.get('total_passengers', 0):>6}", (240, 240, 240)),
            (f"AVG TRIP  car {stats.get('avg_car_travel_s', 0.0):5.1f}s  "
             f"bus {stats.get('avg_bus_travel_s', 0.0):5.1f}s", (200, 200, 200)),
            (f"BUSES  active {len(buses)}  laps {stats.get('bus_laps_completed', 0)}  "
             f"dwells {stats.get('dwells', 0)}", self.BUS_TEXT_COLOR),
        ]

        row_height = 17
        panel_width = 330
        panel_height = len(rows) * row_height + 14
        panel_rect = pygame.Rect(16, self.height - panel_height - 16, panel_width, panel_height)
        pygame.draw.rect(surface, self.HUD_BG_COLOR, panel_rect, border_radius=6)
        pygame.draw.rect(surface, self.HUD_BORDER_COLOR, panel_rect, width=1, border_radius=6)

        y = panel_rect.y + 7
        for i, (text, color) in enumerate(rows):
            font = self.font_small if i == 0 else self.font_tiny
            surface.blit(font.render(text, True, color), (panel_rect.x + 10, y))
            y += row_height

        blink_on = int((self.time_seconds * 1000) // self.HUD_BLINK_MS) % 2 == 0
        if stats.get("spawn_blocked", 0) and blink_on and stats.get("cars_active", 0) >= 150:
            self.render_text(surface, self.font_tiny, "CONGESTED",
                             (panel_rect.right - 10, panel_rect.y + 8),
                             color=self.WARNING_COLOR, anchor="topright")

    # ------------------------------------------------------------------ #
    #  Splash screen                                                       #
    # ------------------------------------------------------------------ #

    def _draw_splash(self, surface: pygame.Surface, tick: float) -> None:
        if self.font_title is None or self.font_small is None:
            return
        title = self.font_title.render("BRT vs MIXED TRAFFIC", True, (240, 240, 240))
        surface.blit(
            title,
            title.get_rect(center=(self.width // 2, self.height // 2 - 30)),
        )
        if int(tick * 2) % 2 == 0:
            prompt = self.font_small.render("Press any key to start", True, (160, 160, 160))
            surface.blit(
                prompt,
                prompt.get_rect(center=(self.width // 2, self.height // 2 + 20)),
            )
        lines = [
            "SPACE  Pause/Resume",
            "+ / -  Zoom in/out",
            "R      Reset simulation",
            "L      Toggle legend",
            "F3     Debug overlay",
            "F12    Screenshot",
        ]
        y = self.height // 2 + 60
        for line in lines:
            t = self.font_tiny.render(line, True, (100, 100, 100)) if self.font_tiny else None
            if t:
                surface.blit(t, t.get_rect(center=(self.width // 2, y)))
                y += 16

    # ------------------------------------------------------------------ #
    #  Legend                                                               #
    # ------------------------------------------------------------------ #

    def _draw_legend(self, surface: pygame.Surface) -> None:
        if self.font_tiny is None:
            return
        box_w, box_h = 130, len(self.LEGEND_ITEMS) * 18 + 10
        x = self.width - box_w - 10
        y = self.height - 16 - box_h + 4
        pygame.draw.rect(
            surface, self.HUD_BG_COLOR, (x - 6, y - 4, box_w, box_h), border_radius=4
        )
        pygame.draw.rect(
            surface, self.HUD_BORDER_COLOR, (x - 6, y - 4, box_w, box_h), width=1, border_radius=4
        )
        for label, color in self.LEGEND_ITEMS:
            pygame.draw.circle(surface, color, (x + 4, y + 6), 4)
            text = self.font_tiny.render(label, True, (200, 200, 200))
            surface.blit(text, (x + 14, y))
            y += 18

    # ------------------------------------------------------------------ #
    #  Debug / FPS overlay                                                 #
    # ------------------------------------------------------------------ #

    def _draw_debug_overlay(
        self,
        surface: pygame.Surface,
        vehicles: Sequence[Any],
        stats: Mapping[str, Any],
        dt: float,
    ) -> None:
        if self.font_tiny is None:
            return
        fps = self.clock.get_fps() if self.clock else 0.0
        changing = sum(1 for v in vehicles if self._get(v, "changing"))
        lines = [
            f"FPS  {fps:.1f}",
            f"DT   {dt * 1000:.1f} ms",
            f"VEH  {len(vehicles)}  LC {changing}",
            f"TICK {stats.get('ticks', 0)}",
            f"EVQ  {stats.get('pending_events', 0)}  STALE {stats.get('stale_events', 0)}",
            f"SPWN {stats.get('cars_spawned', 0)}  BLK {stats.get('spawn_blocked', 0)}",
            f"LCHG {stats.get('lane_changes', 0)}",
            f"ZOOM {self.camera.zoom:.2f}x",
            f"RES  {self.width}x{self.height}",
        ]
        x, y = 16, 16
        for line in lines:
            text = self.font_tiny.render(line, True, (0, 255, 127))
            surface.blit(text, (x, y))
            y += 14

    # ------------------------------------------------------------------ #
    #  Pause banner                                                        #
    # ------------------------------------------------------------------ #

    def _draw_pause_banner(self, surface: pygame.Surface) -> None:
        overlay = pygame.Surface((self.width, self.height), pygame.SRCALPHA)
        overlay.fill((0, 0, 0, 100))
        surface.blit(overlay, (0, 0))
        if self.font_title:
            text = self.font_title.render("PAUSED", True, (220, 220, 220))
            surface.blit(text, text.get_rect(center=(self.width // 2, self.height // 2)))
