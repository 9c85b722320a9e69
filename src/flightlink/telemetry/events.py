from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Final

from flightlink.telemetry.types import DeviceKind, TelemetryRecord

EVENT_STATUS: Final[str] = "status"
EVENT_GAVE_UP: Final[str] = "gave_up"
EVENT_DATA: Final[str] = "data"
EVENT_ALERT: Final[str] = "alert"
EVENT_PACKET_LOSS: Final[str] = "packet_loss"
EVENT_VALIDATION_ERROR: Final[str] = "validation_error"
EVENT_STATE_CHANGE: Final[str] = "state_change"
EVENT_APOGEE: Final[str] = "apogee"
EVENT_GPS_FIX: Final[str] = "gps_fix"
EVENT_STATS_RESET: Final[str] = "stats_reset"


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STOPPED = "stopped"


@dataclass(frozen=True)
class LinkStatus:
    device: DeviceKind
    state: ConnectionState
    endpoint: str | None = None
    error: str | None = None

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["connected"] = self.connected
        return data


@dataclass(frozen=True)
class PacketLoss:
    lost: int
    total_lost: int
    last_id: int | None
    current_id: int
    loss_rate: float


@dataclass(frozen=True)
class ValidationFailure:
    record: TelemetryRecord
    errors: tuple[str, ...]

    def to_dict(self) -> dict[str, Any]:
        return {"record": self.record.to_dict(), "errors": list(self.errors)}


@dataclass(frozen=True)
class FlightEvent:
    name: str
    payload: dict[str, Any]
