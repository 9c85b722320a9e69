from __future__ import annotations

import math

import pytest

from flightlink.processing.metrics import (
    barometric_altitude,
    derive_metrics,
    signal_quality,
    update_session,
    vector_magnitude,
    vertical_velocity,
)
from flightlink.telemetry.types import (
    Barometer,
    DeviceKind,
    DeviceSession,
    LinkQuality,
    TelemetryRecord,
    Vector3,
)


def test_vector_magnitude() -> None:
    assert vector_magnitude(Vector3(3.0, 4.0, 0.0)) == 5.0


def test_barometric_altitude() -> None:
    assert barometric_altitude(101325.0) == pytest.approx(0.0, abs=1e-9)
    assert barometric_altitude(89875.0) == pytest.approx(1000.0, abs=1.0)
    assert math.isnan(barometric_altitude(0.0))
    assert math.isnan(barometric_altitude(math.nan))


def test_signal_quality_clamps() -> None:
    assert signal_quality(-30, 20) == 100
    assert signal_quality(-120, -20) == 0
    assert signal_quality(-200, -50) == 0
    assert signal_quality(0, 40) == 100
    assert signal_quality(-75, 0) == 50
    assert signal_quality(None, 10) == 50


def test_vertical_velocity_needs_two_samples() -> None:
    assert vertical_velocity(110.0, 100.0, 2000, 1000) == pytest.approx(10.0)
    assert vertical_velocity(110.0, None, 2000, None) == 0.0
    assert vertical_velocity(110.0, 100.0, 1000, 1000) == 0.0


# ---------------------------------------- #


def _rocket(packet_id: int, t_ms: int, altitude: float, state: str = "LAUNCHED") -> TelemetryRecord:
    return TelemetryRecord(
        device=DeviceKind.ROCKET,
        packet_id=packet_id,
        device_timestamp=t_ms,
        received_at=0.0,
        accelerometer=Vector3(0.0, 0.0, 2.0),
        barometer=Barometer(20.0, 1000.0, altitude),
        link=LinkQuality(-30, 20),
        state=state,
    )


def test_derive_metrics_tracks_session() -> None:
    session = DeviceSession(DeviceKind.ROCKET)

    first = _rocket(1, 1000, 50.0)
    m1 = derive_metrics(first, session)
    update_session(session, first, m1)

    second = _rocket(2, 1500, 80.0)
    m2 = derive_metrics(second, session)
    update_session(session, second, m2)

    assert m1.velocity == 0.0
    assert m2.velocity == pytest.approx(60.0)
    assert m2.max_altitude == 80.0
    assert m2.flight_time == pytest.approx(0.5)
    assert m2.acceleration_magnitude == 2.0
    assert m2.signal_quality == 100
    assert session.max_altitude == 80.0
    assert session.flight_start_time == 1000


def test_max_altitude_never_decreases() -> None:
    session = DeviceSession(DeviceKind.ROCKET)
    for i, alt in enumerate([10.0, 300.0, 120.0]):
        record = _rocket(i + 1, 1000 * (i + 1), alt)
        update_session(session, record, derive_metrics(record, session))

    assert session.max_altitude == 300.0


def test_cansat_altitude_from_pressure() -> None:
    record = TelemetryRecord(
        device=DeviceKind.CANSAT,
        packet_id=1,
        device_timestamp=1000,
        received_at=0.0,
        accelerometer=Vector3(0.0, 0.0, 1.0),
        gyroscope=Vector3(3.0, 4.0, 0.0),
        barometer=Barometer(20.0, 89875.0),
    )
    metrics = derive_metrics(record, DeviceSession(DeviceKind.CANSAT))

    assert metrics.altitude == pytest.approx(1000.0, abs=1.0)
    assert metrics.rotation_magnitude == 5.0
    assert metrics.signal_quality is None
