#!/usr/bin/env python3
"""
Display log of realtime events with run-length coalescing.
"""

from typing import Iterator, List, Optional, Tuple

from .events import RealtimeEvent


class EventLog:
    """Ordered log of observed events.

    Consecutive events of the same type collapse into the earlier entry,
    whose ``count`` holds the run length. An entry seen once has no count.
    """

    def __init__(self):
        self._entries: List[RealtimeEvent] = []

    def ingest(self, event: RealtimeEvent) -> RealtimeEvent:
        """Add ``event`` and return the entry that now represents it."""
        last = self._entries[-1] if self._entries else None
        if last is not None and last.event.type == event.event.type:
            last.count = (last.count or 1) + 1
            return last
        event.count = None
        self._entries.append(event)
        return event

    def clear(self):
        self._entries.clear()

    @property
    def last(self) -> Optional[RealtimeEvent]:
        return self._entries[-1] if self._entries else None

    def snapshot(self) -> Tuple[RealtimeEvent, ...]:
        """Copies of the current entries, safe to hand to a UI."""
        return tuple(entry.model_copy() for entry in self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RealtimeEvent]:
        return iter(list(self._entries))
