from __future__ import annotations

from dataclasses import dataclass

from flightlink.util.log import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class SequenceObservation:
    lost: int
    total_lost: int
    last_id: int | None


class SequenceTracker:
    """
    Last-seen packet id and cumulative loss per device.

    A packet id at or below the last one seen (duplicate, reorder, device
    reboot) counts no loss and still becomes the new last-seen id.
    """

    def __init__(self) -> None:
        self._last_seen: dict[str, int] = {}
        self._total_lost: dict[str, int] = {}

    def observe(self, device_id: str, packet_id: int) -> SequenceObservation:
        last = self._last_seen.get(device_id)
        total = self._total_lost.get(device_id, 0)
        self._last_seen[device_id] = packet_id

        if last is None:
            return SequenceObservation(lost=0, total_lost=total, last_id=None)

        gap = packet_id - (last + 1)
        if gap <= 0:
            if gap < 0:
                logger.debug(
                    "%s: packet %d after %d (duplicate or out of order)", device_id, packet_id, last
                )
            return SequenceObservation(lost=0, total_lost=total, last_id=last)

        total += gap
        self._total_lost[device_id] = total
        return SequenceObservation(lost=gap, total_lost=total, last_id=last)

    def last_seen(self, device_id: str) -> int | None:
        return self._last_seen.get(device_id)

    def total_lost(self, device_id: str) -> int:
        return self._total_lost.get(device_id, 0)

    def reset(self, device_id: str | None = None) -> None:
        if device_id is None:
            self._last_seen.clear()
            self._total_lost.clear()
            return
        self._last_seen.pop(device_id, None)
        self._total_lost.pop(device_id, None)
