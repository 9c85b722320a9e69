from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any


class DeviceKind(str, Enum):
    ROCKET = "rocket"
    CANSAT = "cansat"


class FlightState(str, Enum):
    GROUND = "GROUND"
    LAUNCHED = "LAUNCHED"
    APOGEE = "APOGEE"
    DESCENT = "DESCENT"


def is_number(value: float | int | None) -> bool:
    return value is not None and math.isfinite(value)


def _nonzero(value: float | None) -> bool:
    return is_number(value) and value != 0


# ---------------------------------------- #


@dataclass(frozen=True)
class RawLine:
    """One newline-terminated line read from the transport."""

    text: str
    received_at: float  # Unix timestamp in seconds (host clock)


# ---------------------------------------- #
#  Sensor Groups                           #
# ---------------------------------------- #


@dataclass(frozen=True)
class Vector3:
    x: float = math.nan
    y: float = math.nan
    z: float = math.nan


@dataclass(frozen=True)
class Barometer:
    temperature: float = math.nan  # degrees Celsius
    pressure: float = math.nan  # hPa on the rocket, Pa on the CanSat
    altitude: float | None = None  # meters, only when the device reports it


@dataclass(frozen=True)
class Gps:
    latitude: float | None = None
    longitude: float | None = None
    altitude: float | None = None
    satellites: int | None = None
    hdop: float | None = None
    fix_reported: bool | None = None  # rocket NO_FIX sentinel, None when not reported

    @property
    def has_fix(self) -> bool:
        if self.fix_reported is False:
            return False
        return (
            self.satellites is not None
            and self.satellites > 0
            and _nonzero(self.latitude)
            and _nonzero(self.longitude)
        )


@dataclass(frozen=True)
class AirQuality:
    co2: float = math.nan  # ppm
    temperature: float = math.nan
    humidity: float = math.nan  # %


@dataclass(frozen=True)
class GasSensor:
    red: int | None = None
    nox: int | None = None


@dataclass(frozen=True)
class LinkQuality:
    rssi: int | None = None  # dBm
    snr: int | None = None  # dB


# ---------------------------------------- #
#  Records                                 #
# ---------------------------------------- #


@dataclass(frozen=True)
class TelemetryRecord:
    """
    One parsed telemetry packet.

    A sensor group that was not present in the packet is None. The link
    quality block and the flight state are only ever set for rockets.
    """

    device: DeviceKind
    packet_id: int | None
    device_timestamp: int | None  # ms on the device clock
    received_at: float  # Unix seconds on the host clock
    accelerometer: Vector3 | None = None
    gyroscope: Vector3 | None = None
    barometer: Barometer | None = None
    gps: Gps | None = None
    air_quality: AirQuality | None = None
    gas: GasSensor | None = None
    link: LinkQuality | None = None
    state: str | None = None
    checksum: str | None = None
    sensor_refs: tuple[str, ...] = ()

    @property
    def flight_state(self) -> FlightState | None:
        try:
            return FlightState(self.state) if self.state is not None else None
        except ValueError:
            return None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Metrics:
    velocity: float = 0.0  # m/s
    acceleration_magnitude: float = 0.0  # g
    rotation_magnitude: float | None = None  # deg/s
    altitude: float | None = None  # m, device-supplied or barometric
    max_altitude: float = 0.0
    flight_time: float = 0.0  # s since the first non-ground packet
    packet_loss_rate: float = 0.0  # %
    signal_quality: int | None = None  # 0-100, rocket only


@dataclass(frozen=True)
class EnrichedRecord:
    record: TelemetryRecord
    metrics: Metrics
    gps_fix: bool | None = None

    @property
    def device(self) -> DeviceKind:
        return self.record.device

    @property
    def packet_id(self) -> int | None:
        return self.record.packet_id

    def to_dict(self) -> dict[str, Any]:
        data = self.record.to_dict()
        data["metrics"] = asdict(self.metrics)
        data["gps_fix"] = self.gps_fix
        return data


# ---------------------------------------- #


@dataclass(frozen=True)
class Alert:
    type: str
    severity: str  # "info" | "warning"
    message: str
    value: float | None
    timestamp: float


@dataclass
class DeviceSession:
    """
    Mutable per-device state owned by exactly one pipeline.

    reset() zeroes the derived-metrics state; the object itself lives until
    shutdown.
    """

    device: DeviceKind
    packets_received: int = 0
    packets_lost: int = 0
    last_packet_id: int | None = None
    max_altitude: float = 0.0
    last_altitude: float | None = None
    last_device_time: int | None = None
    flight_start_time: int | None = None
    last_state: str | None = None
    last_gps_fix: bool | None = None

    @property
    def packet_loss_rate(self) -> float:
        total = self.packets_received + self.packets_lost
        return (self.packets_lost / total) * 100.0 if total > 0 else 0.0

    def reset(self) -> None:
        self.packets_received = 0
        self.packets_lost = 0
        self.last_packet_id = None
        self.max_altitude = 0.0
        self.last_altitude = None
        self.last_device_time = None
        self.flight_start_time = None
        self.last_state = None
        self.last_gps_fix = None
