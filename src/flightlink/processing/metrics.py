from __future__ import annotations

import math
from typing import Final

import numpy as np

from flightlink.telemetry.types import (
    DeviceKind,
    DeviceSession,
    FlightState,
    Metrics,
    TelemetryRecord,
    Vector3,
    is_number,
)

SEA_LEVEL_PRESSURE_PA: Final[float] = 101325.0

# Typical LoRa operating ranges used to normalise the signal score
RSSI_RANGE: Final[tuple[float, float]] = (-120.0, -30.0)
SNR_RANGE: Final[tuple[float, float]] = (-20.0, 20.0)
DEFAULT_SIGNAL_SCORE: Final[int] = 50


def vector_magnitude(v: Vector3) -> float:
    return float(np.linalg.norm((v.x, v.y, v.z)))


def barometric_altitude(pressure_pa: float, sea_level_pa: float = SEA_LEVEL_PRESSURE_PA) -> float:
    """International barometric formula, meters above the reference pressure."""
    if not is_number(pressure_pa) or pressure_pa <= 0:
        return math.nan
    return 44330.0 * (1.0 - (pressure_pa / sea_level_pa) ** (1.0 / 5.255))


def vertical_velocity(
    altitude: float | None,
    previous_altitude: float | None,
    device_time_ms: int | None,
    previous_device_time_ms: int | None,
) -> float:
    if (
        not is_number(altitude)
        or not is_number(previous_altitude)
        or device_time_ms is None
        or previous_device_time_ms is None
    ):
        return 0.0
    elapsed_ms = device_time_ms - previous_device_time_ms
    if elapsed_ms <= 0:
        return 0.0
    return (altitude - previous_altitude) / elapsed_ms * 1000.0


def _normalised(value: float, low: float, high: float) -> float:
    return max(0.0, min(100.0, (value - low) / (high - low) * 100.0))


def signal_quality(rssi: float | None, snr: float | None) -> int:
    """0-100 score averaging normalised RSSI and SNR."""
    if not is_number(rssi) or not is_number(snr):
        return DEFAULT_SIGNAL_SCORE
    score = (_normalised(rssi, *RSSI_RANGE) + _normalised(snr, *SNR_RANGE)) / 2.0
    return int(math.floor(score + 0.5))


def packet_loss_rate(lost: int, total: int) -> float:
    return (lost / total) * 100.0 if total > 0 else 0.0


# ---------------------------------------- #


def record_altitude(record: TelemetryRecord) -> float | None:
    """Device-reported altitude, or the barometric one for CanSats."""
    baro = record.barometer
    if baro is None:
        return None
    if is_number(baro.altitude):
        return baro.altitude
    if record.device is DeviceKind.CANSAT:
        altitude = barometric_altitude(baro.pressure)
        return altitude if is_number(altitude) else None
    return None


def _in_flight(record: TelemetryRecord) -> bool:
    state = record.flight_state
    return state is not None and state is not FlightState.GROUND


def flight_start_time(record: TelemetryRecord, session: DeviceSession) -> int | None:
    if session.flight_start_time is not None:
        return session.flight_start_time
    if _in_flight(record):
        return record.device_timestamp
    return None


# ---------------------------------------- #


def derive_metrics(record: TelemetryRecord, session: DeviceSession) -> Metrics:
    """
    Compute the metrics block for one validated record.

    Reads the session as it was before this record; update_session() applies
    this record afterwards.
    """
    altitude = record_altitude(record)

    max_altitude = session.max_altitude
    if altitude is not None and altitude > max_altitude:
        max_altitude = altitude

    start = flight_start_time(record, session)
    flight_time = 0.0
    if start is not None and record.device_timestamp is not None:
        flight_time = (record.device_timestamp - start) / 1000.0

    quality = None
    if record.link is not None:
        quality = signal_quality(record.link.rssi, record.link.snr)

    return Metrics(
        velocity=vertical_velocity(
            altitude, session.last_altitude, record.device_timestamp, session.last_device_time
        ),
        acceleration_magnitude=vector_magnitude(record.accelerometer)
        if record.accelerometer is not None
        else 0.0,
        rotation_magnitude=vector_magnitude(record.gyroscope)
        if record.gyroscope is not None
        else None,
        altitude=altitude,
        max_altitude=max_altitude,
        flight_time=flight_time,
        packet_loss_rate=session.packet_loss_rate,
        signal_quality=quality,
    )


def update_session(session: DeviceSession, record: TelemetryRecord, metrics: Metrics) -> None:
    session.max_altitude = metrics.max_altitude
    if metrics.altitude is not None:
        session.last_altitude = metrics.altitude
    if record.device_timestamp is not None:
        session.last_device_time = record.device_timestamp
    session.flight_start_time = flight_start_time(record, session)
