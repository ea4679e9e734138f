"""
Time-ordered event queue for the discrete-event engine.
"""

import heapq
import itertools
import logging
from typing import List, Optional, Tuple

from .data_models import Event

logger = logging.getLogger(__name__)


class EventQueue:
    """
    Min-heap of pending events.

    Events with equal timestamps are returned in the order they were
    scheduled, so a run is fully determined by its seed.
    """

    def __init__(self):
        self._heap: List[Tuple[float, int, Event]] = []
        self._counter = itertools.count()

    def schedule(self, event: Event) -> None:
        heapq.heappush(self._heap, (event.time, next(self._counter), event))
        logger.debug("Event scheduled: %s", event)

    def next(self) -> Event:
        """Remove and return the earliest pending event."""
        if not self._heap:
            raise IndexError("next() called on an empty event queue")
        _, _, event = heapq.heappop(self._heap)
        return event

    def peek(self) -> Optional[Event]:
        return self._heap[0][2] if self._heap else None

    def clear(self) -> None:
        self._heap = []
        self._counter = itertools.count()

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)
