#!/usr/bin/env python3
"""
config.py
=========
Application-wide configuration constants.

Values can be overridden via environment variables (see :mod:`main`).
This module is a thin, import-safe leaf; it never imports from
other project packages.
"""

from typing import Optional

# ── Scenario defaults ────────────────────────────────────────────────────────
DEFAULT_DENSITY: str = "Low"
DEFAULT_SCENARIO: str = "With Bus Lane"
DEFAULT_SCHEDULE: str = "20mins"
DEFAULT_SEED: Optional[int] = None

# ── Headless run defaults ────────────────────────────────────────────────────
DEFAULT_DURATION_S: float = 300.0
DEFAULT_STEP_MS: float = 1000.0 / 60.0
DEFAULT_OUTPUT_DIR: str = "reports"

# ── Bridge defaults ──────────────────────────────────────────────────────────
DEFAULT_TICK_RATE_HZ: float = 60.0
DEFAULT_TIME_SCALE: float = 1.0

# ── UI defaults ──────────────────────────────────────────────────────────────
WINDOW_WIDTH: int = 1280
WINDOW_HEIGHT: int = 720
TARGET_FPS: int = 60

# ── Environment variable names ───────────────────────────────────────────────
ENV_DENSITY: str = "BRT_DENSITY"
ENV_SCENARIO: str = "BRT_SCENARIO"
ENV_SCHEDULE: str = "BRT_SCHEDULE"
ENV_SEED: str = "BRT_SEED"
