#!/usr/bin/env python3
"""
sim/scheduler.py
================
Event queue driven by the simulation clock.

Delayed state changes (bus activation, bus reactivation after a lap,
car spawning) are queued here instead of running on wall-clock timers.
:class:`~sim.world.World` drains every due event at the start of a tick,
before any motion update, so an event can never interleave with a tick
that is iterating the same vehicle.
"""

from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

log = logging.getLogger("scheduler")

BUS_ACTIVATE = "bus.activate"
BUS_REACTIVATE = "bus.reactivate"
CAR_SPAWN = "car.spawn"


@dataclass(frozen=True)
class ScheduledEvent:
    kind: str
    target: str = ""
    payload: Dict[str, Any] = field(default_factory=dict)
    due_ms: float = 0.0


class EventQueue:
    """Min-heap of ``(due_ms, seq, event)``.

    Events due at the same instant pop in scheduling order.
    """

    def __init__(self) -> None:
        self._heap: List[Tuple[float, int, ScheduledEvent]] = []
        self._seq = itertools.count()
        self._cancelled = 0

    def __len__(self) -> int:
        return len(self._heap)

    def schedule(self, now_ms: float, delay_ms: float, kind: str,
                 target: str = "", **payload: Any) -> float:
        """Queue *kind* for *target* at ``now_ms + delay_ms``.

        Returns the due time.
        """
        due = float(now_ms) + max(0.0, float(delay_ms))
        heapq.heappush(self._heap, (due, next(self._seq),
                                    ScheduledEvent(kind, target, dict(payload), due)))
        log.debug("scheduled %s for %s at %.0f ms", kind, target or "-", due)
        return due

    def pop_due(self, now_ms: float) -> List[ScheduledEvent]:
        """Remove and return every event with ``due <= now_ms``."""
        due: List[ScheduledEvent] = []
        while self._heap and self._heap[0][0] <= now_ms:
            due.append(heapq.heappop(self._heap)[2])
        return due

    @property
    def next_due(self) -> Optional[float]:
        return self._heap[0][0] if self._heap else None

    def cancel(self, target: str) -> int:
        """Drop every pending event aimed at *target*."""
        before = len(self._heap)
        self._heap = [entry for entry in self._heap if entry[2].target != target]
        heapq.heapify(self._heap)
        removed = before - len(self._heap)
        self._cancelled += removed
        return removed

    def cancel_all(self) -> int:
        """Drop every pending event (simulation teardown)."""
        removed = len(self._heap)
        self._heap.clear()
        self._cancelled += removed
        if removed:
            log.info("cancelled %d pending event(s)", removed)
        return removed

    def pending(self, kind: Optional[str] = None) -> List[ScheduledEvent]:
        """Pending events in due order, optionally filtered by *kind*."""
        return [e for _, _, e in sorted(self._heap) if kind is None or e.kind == kind]

    def report(self) -> dict:
        return {"pending": len(self._heap), "cancelled": self._cancelled}
