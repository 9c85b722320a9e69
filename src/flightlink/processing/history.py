from __future__ import annotations

import threading
from collections import deque

from flightlink.telemetry.types import EnrichedRecord


class RecentHistory:
    """
    Fixed-capacity window of the latest enriched records, oldest first.

    Written by the owning pipeline only; readers get a copied list.
    """

    def __init__(self, capacity: int = 100) -> None:
        if capacity < 1:
            raise ValueError("history capacity must be at least 1")
        self._records: deque[EnrichedRecord] = deque(maxlen=capacity)
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._records.maxlen or 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    def push(self, record: EnrichedRecord) -> None:
        with self._lock:
            self._records.append(record)

    def recent(self, n: int | None = None) -> list[EnrichedRecord]:
        """Last n records (all when n is None), most recent last."""
        with self._lock:
            snapshot = list(self._records)
        if n is None:
            return snapshot
        if n <= 0:
            return []
        return snapshot[-n:]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()
