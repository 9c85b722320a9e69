from __future__ import annotations

import math

from flightlink.config import Bounds, default_device_config
from flightlink.processing.validator import Validator, check_range
from flightlink.telemetry.protocol import parse_cansat_line, parse_rocket_line
from flightlink.telemetry.types import DeviceKind, RawLine


def _validator(kind: DeviceKind) -> Validator:
    return Validator(kind, default_device_config(kind).limits)


def test_check_range() -> None:
    assert check_range("x", 5.0, Bounds(0.0, 10.0)) is None
    assert check_range("x", 11.0, Bounds(0.0, 10.0), " u") == "x out of range: 11 u"
    assert check_range("x", math.nan, Bounds(0.0, 10.0)) == "x is not a number"
    assert check_range("x", math.nan, Bounds()) is None


def test_valid_rocket_packet(make_rocket_line) -> None:
    record = parse_rocket_line(RawLine(make_rocket_line(), 0.0))
    assert _validator(DeviceKind.ROCKET).validate(record).valid


def test_rocket_acceleration_over_limit(make_rocket_line) -> None:
    record = parse_rocket_line(RawLine(make_rocket_line(az=25.0), 0.0))
    result = _validator(DeviceKind.ROCKET).validate(record)

    assert result.errors == ("acceleration out of range: 25g",)


def test_rocket_invalid_state_and_weak_link(make_rocket_line) -> None:
    record = parse_rocket_line(RawLine(make_rocket_line(state="HOVER", rssi=-110, snr=2), 0.0))
    errors = _validator(DeviceKind.ROCKET).validate(record).errors

    assert "invalid state: HOVER" in errors
    assert "RSSI out of range: -110 dBm" in errors
    assert "SNR out of range: 2 dB" in errors


def test_rocket_pressure_in_hpa(make_rocket_line) -> None:
    record = parse_rocket_line(RawLine(make_rocket_line(pressure_hpa=101325.0), 0.0))
    errors = _validator(DeviceKind.ROCKET).validate(record).errors

    assert errors == ("pressure out of range: 101325 hPa",)


def test_cansat_scenario_is_valid(cansat_line: str) -> None:
    record = parse_cansat_line(RawLine(cansat_line, 0.0))
    assert _validator(DeviceKind.CANSAT).validate(record).valid


def test_cansat_acceleration_checked_per_axis() -> None:
    line = (
        "CANSAT,11,100,GY_91_C,15,15,0,0,0,0,21.5,101300,"
        "SCD_40_C,450,22.0,40.0,GPS_NEO_C,0,0,0,0,0,MiCS_4514_C,1,1"
    )
    record = parse_cansat_line(RawLine(line, 0.0))

    # |a| is about 21.2g but no single axis passes 20g
    assert _validator(DeviceKind.CANSAT).validate(record).valid


def test_cansat_axis_over_limit() -> None:
    line = (
        "CANSAT,12,100,GY_91_C,0.5,-22,25,0,0,0,21.5,101300,"
        "SCD_40_C,450,22.0,40.0,GPS_NEO_C,0,0,0,0,0,MiCS_4514_C,1,1"
    )
    errors = _validator(DeviceKind.CANSAT).validate(parse_cansat_line(RawLine(line, 0.0))).errors

    assert errors == ("acceleration Y out of range: -22g", "acceleration Z out of range: 25g")


def test_cansat_missing_groups() -> None:
    record = parse_cansat_line(RawLine("CANSAT,4,100,SCD_40_C,450,22.0,40.0", 0.0))
    errors = _validator(DeviceKind.CANSAT).validate(record).errors

    assert "accelerometer is missing" in errors
    assert "gps is missing" in errors
    assert "gas is missing" in errors
    assert "air_quality is missing" not in errors


def test_cansat_co2_and_not_a_number() -> None:
    line = (
        "CANSAT,5,100,GY_91_C,0,0,1,0,0,0,abc,101300,"
        "SCD_40_C,50000,22.0,40.0,GPS_NEO_C,0,0,0,0,0,MiCS_4514_C,1,1"
    )
    errors = _validator(DeviceKind.CANSAT).validate(parse_cansat_line(RawLine(line, 0.0))).errors

    assert "temperature is not a number" in errors
    assert "CO2 out of range: 50000 ppm" in errors


def test_missing_packet_id() -> None:
    record = parse_cansat_line(RawLine("CANSAT,,100,SCD_40_C,450,22.0,40.0", 0.0))
    assert "packet_id is required" in _validator(DeviceKind.CANSAT).validate(record).errors
