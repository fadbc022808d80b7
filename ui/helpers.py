"""
ui/helpers.py
=============
Utility mixin shared across UI modules: interpolation, alpha-surface
drawing, font loading and dict access for bridge payloads.
"""

from __future__ import annotations

import math
from typing import Any, Mapping, Optional, Tuple

import pygame


# ── Interpolation helpers ─────────────────────────────────────────────────────

def lerp(a: float, b: float, t: float) -> float:
    return a + (b - a) * t


def angle_lerp(a: float, b: float, t: float) -> float:
    """Shortest-arc angle interpolation (radians)."""
    diff = (b - a) % (2 * math.pi)
    if diff > math.pi:
        diff -= 2 * math.pi
    return a + diff * t


class ViewHelpers:
    """Mixin with static utilities used by every renderer."""

    # ── Bridge payload access ─────────────────────────────────────────────

    @staticmethod
    def _get(item: Any, key: str, default: Any = None) -> Any:
        if isinstance(item, Mapping):
            return item.get(key, default)
        return getattr(item, key, default)

    def _vehicle_id(self, vehicle: Any) -> str:
        return str(self._get(vehicle, "id", default="?"))

    # ── Fonts ─────────────────────────────────────────────────────────────

    @staticmethod
    def _load_font(size: int, bold: bool = False) -> pygame.font.Font:
        for name in ("consolas", "dejavusansmono", "menlo", "couriernew"):
            path = pygame.font.match_font(name, bold=bold)
            if path:
                return pygame.font.Font(path, size)
        return pygame.font.Font(None, size + 4)

    # ── Alpha drawing helpers ─────────────────────────────────────────────

    @staticmethod
    def draw_alpha_circle(
        target: pygame.Surface,
        color: Tuple[int, ...],
        centre: Tuple[int, int],
        radius: int,
    ) -> None:
        """Draw a semi-transparent circle."""
        if radius < 1:
            return
        size = radius * 2
        tmp = pygame.Surface((size, size), pygame.SRCALPHA)
        pygame.draw.circle(tmp, color, (radius, radius), radius)
        target.blit(tmp, (centre[0] - radius, centre[1] - radius))

    @staticmethod
    def render_text(
        surface: pygame.Surface,
        font: Optional[pygame.font.Font],
        text: str,
        pos: Tuple[int, int],
        color: Tuple[int, ...] = (230, 230, 235),
        anchor: str = "topleft",
    ) -> Optional[pygame.Rect]:
        """Render text with flexible *anchor* ('topleft', 'center', 'midright' …)."""
        if font is None:
            return None
        img = font.render(text, True, color)
        rect = img.get_rect(**{anchor: pos})
        surface.blit(img, rect)
        return rect
