from __future__ import annotations

from flightlink.config import AlertThresholds, default_device_config
from flightlink.processing.alerts import (
    HIGH_ACCELERATION,
    HIGH_CO2,
    HIGH_PACKET_LOSS,
    NO_GPS_FIX,
    SEVERITY_INFO,
    AlertEvaluator,
)
from flightlink.telemetry.types import (
    AirQuality,
    DeviceKind,
    EnrichedRecord,
    Gps,
    Metrics,
    TelemetryRecord,
    Vector3,
)


def _enriched(accel: float = 1.0, co2: float | None = None, gps: Gps | None = None) -> EnrichedRecord:
    record = TelemetryRecord(
        device=DeviceKind.CANSAT,
        packet_id=1,
        device_timestamp=0,
        received_at=12.5,
        accelerometer=Vector3(0.0, 0.0, accel),
        air_quality=AirQuality(co2, 20.0, 40.0) if co2 is not None else None,
        gps=gps,
    )
    return EnrichedRecord(
        record=record,
        metrics=Metrics(acceleration_magnitude=accel),
        gps_fix=gps.has_fix if gps is not None else None,
    )


def _types(alerts) -> list[str]:
    return [a.type for a in alerts]


def test_quiet_packet_raises_nothing() -> None:
    evaluator = AlertEvaluator(default_device_config(DeviceKind.CANSAT).alerts)
    assert evaluator.evaluate(_enriched(co2=450.0)) == []


def test_high_acceleration_and_co2() -> None:
    evaluator = AlertEvaluator(default_device_config(DeviceKind.CANSAT).alerts)
    alerts = evaluator.evaluate(_enriched(accel=21.0, co2=6000.0))

    assert _types(alerts) == [HIGH_ACCELERATION, HIGH_CO2]
    assert alerts[0].value == 21.0
    assert alerts[1].timestamp == 12.5


def test_cansat_acceleration_alert_at_20g() -> None:
    evaluator = AlertEvaluator(default_device_config(DeviceKind.CANSAT).alerts)

    assert evaluator.evaluate(_enriched(accel=16.0)) == []
    assert _types(evaluator.evaluate(_enriched(accel=21.2))) == [HIGH_ACCELERATION]


def test_no_gps_fix_only_when_gps_reported() -> None:
    evaluator = AlertEvaluator(AlertThresholds())

    no_fix = evaluator.evaluate(_enriched(gps=Gps(0.0, 0.0, 0.0, satellites=0)))
    assert _types(no_fix) == [NO_GPS_FIX]
    assert no_fix[0].severity == SEVERITY_INFO
    assert no_fix[0].value == 0

    with_fix = evaluator.evaluate(_enriched(gps=Gps(39.4, -0.3, 10.0, satellites=6)))
    assert with_fix == []

    assert evaluator.evaluate(_enriched()) == []


def test_packet_loss_threshold() -> None:
    evaluator = AlertEvaluator(default_device_config(DeviceKind.ROCKET).alerts)

    assert evaluator.evaluate_packet_loss(10.0, 1.0) is None
    alert = evaluator.evaluate_packet_loss(12.5, 1.0)
    assert alert.type == HIGH_PACKET_LOSS
    assert alert.value == 12.5

    cansat = AlertEvaluator(default_device_config(DeviceKind.CANSAT).alerts)
    assert cansat.evaluate_packet_loss(90.0, 1.0) is None
