from __future__ import annotations

import math
from typing import Callable, Final

from flightlink.telemetry.types import (
    AirQuality,
    Barometer,
    DeviceKind,
    GasSensor,
    Gps,
    LinkQuality,
    RawLine,
    TelemetryRecord,
    Vector3,
)

# Rocket LoRa receiver envelope: +RCV=<addr>,<len>,<payload>,<rssi>,<snr>
ROCKET_PREFIX: Final[str] = "+RCV="
ROCKET_MIN_FIELDS: Final[int] = 5

SECTION_GLOBAL: Final[str] = "GLOBAL"
SECTION_MPU: Final[str] = "MPU_R"
SECTION_BMP: Final[str] = "BMP_R"
SECTION_GPS: Final[str] = "GPS_NEO_R"
NO_FIX: Final[str] = "NO_FIX"

# CanSat CSV: CANSAT,<packet_id>,<timestamp>,<TAG>,<fields...>,<TAG>,...
CANSAT_HEADER: Final[str] = "CANSAT"

TAG_GY91: Final[str] = "GY_91_C"
TAG_SCD40: Final[str] = "SCD_40_C"
TAG_GPS: Final[str] = "GPS_NEO_C"
TAG_MICS: Final[str] = "MiCS_4514_C"

# Number of comma fields per group, tag included.
CANSAT_GROUP_SIZES: Final[dict[str, int]] = {
    TAG_GY91: 9,
    TAG_SCD40: 4,
    TAG_GPS: 6,
    TAG_MICS: 3,
}


class ParseError(ValueError):
    """A line carried the expected prefix but could not be turned into a record."""


# ---------------------------------------- #


def to_float(token: str | None) -> float:
    if token is None:
        return math.nan
    try:
        return float(token.strip())
    except ValueError:
        return math.nan


def to_int(token: str | None) -> int | None:
    if token is None:
        return None
    token = token.strip()
    try:
        return int(token)
    except ValueError:
        pass
    # Some firmware prints integral fields as "12.0".
    value = to_float(token)
    return int(value) if math.isfinite(value) else None


def _clean(text: str) -> str:
    return text.replace("\r", "").strip()


# ---------------------------------------- #
#  Rocket (LoRa)                           #
# ---------------------------------------- #


def parse_rocket_line(raw: RawLine) -> TelemetryRecord | None:
    """
    Parse one line from the rocket's LoRa receiver.

    Returns None for lines without the +RCV= envelope (boot logs, AT
    responses). Raises ParseError for an envelope that cannot be decoded.
    """
    line = _clean(raw.text)
    if not line.startswith(ROCKET_PREFIX):
        return None

    parts = line.split(",")
    if len(parts) < ROCKET_MIN_FIELDS:
        raise ParseError(f"incomplete LoRa envelope ({len(parts)} fields)")

    link = LinkQuality(rssi=to_int(parts[-2]), snr=to_int(parts[-1]))
    fields = parse_rocket_payload(parts[2].strip())

    return TelemetryRecord(
        device=DeviceKind.ROCKET,
        packet_id=fields.get("packet_id"),
        device_timestamp=fields.get("timestamp"),
        received_at=raw.received_at,
        accelerometer=fields.get("accelerometer"),
        barometer=fields.get("barometer"),
        gps=fields.get("gps"),
        link=link,
        state=fields.get("state"),
        checksum=fields.get("checksum"),
        sensor_refs=tuple(fields.get("sensor_refs", ())),
    )


# ---------------------------------------- #


def parse_rocket_payload(payload: str) -> dict:
    """
    Scan a pipe-delimited payload left to right.

    Section markers switch which sensor group the following KEY:value tokens
    fill. ID, STATE, CRC and NO_FIX are recognised in any section.
    """
    section = SECTION_GLOBAL
    out: dict = {}
    groups: dict[str, dict] = {}
    refs: list[str] = []

    for token in payload.split("|"):
        token = token.strip()
        if not token:
            continue

        if token in (SECTION_MPU, SECTION_BMP, SECTION_GPS):
            section = token
            groups[section] = {}
            refs.append(token)
            continue

        if token == NO_FIX:
            if SECTION_GPS in groups:
                groups[SECTION_GPS]["fix_reported"] = False
            continue

        key, sep, value = token.partition(":")
        if not sep:
            raise ParseError(f"unknown section marker {token!r}")

        if key == "ID":
            out["packet_id"] = to_int(value)
        elif key == "STATE":
            out["state"] = value.strip()
        elif key == "CRC":
            out["checksum"] = value.strip()
        elif section == SECTION_GLOBAL:
            if key == "T":
                out["timestamp"] = to_int(value)
        else:
            _ROCKET_SECTION_KEYS[section](groups[section], key, value)

    if SECTION_MPU in groups:
        out["accelerometer"] = Vector3(**groups[SECTION_MPU])
    if SECTION_BMP in groups:
        out["barometer"] = Barometer(**groups[SECTION_BMP])
    if SECTION_GPS in groups:
        gps = groups[SECTION_GPS]
        gps.setdefault("fix_reported", True)
        out["gps"] = Gps(**gps)
    out["sensor_refs"] = refs
    return out


def _mpu_field(group: dict, key: str, value: str) -> None:
    name = {"AX": "x", "AY": "y", "AZ": "z"}.get(key)
    if name is not None:
        group[name] = to_float(value)


def _bmp_field(group: dict, key: str, value: str) -> None:
    name = {"T": "temperature", "P": "pressure", "A": "altitude"}.get(key)
    if name is not None:
        group[name] = to_float(value)


def _gps_field(group: dict, key: str, value: str) -> None:
    if key == "SATS":
        group["satellites"] = to_int(value)
        return
    name = {"LAT": "latitude", "LON": "longitude", "ALT": "altitude"}.get(key)
    if name is not None:
        group[name] = to_float(value)


_ROCKET_SECTION_KEYS: Final[dict[str, Callable[[dict, str, str], None]]] = {
    SECTION_MPU: _mpu_field,
    SECTION_BMP: _bmp_field,
    SECTION_GPS: _gps_field,
}


# ---------------------------------------- #
#  CanSat (CSV with sensor tags)           #
# ---------------------------------------- #


def parse_cansat_line(raw: RawLine) -> TelemetryRecord | None:
    """
    Parse one CanSat CSV line.

    After the header, packet id and timestamp, fields are consumed in groups
    introduced by a sensor tag. An unknown tag stops consumption; groups
    already read are kept.
    """
    line = _clean(raw.text)
    if not line.startswith(CANSAT_HEADER + ","):
        return None

    parts = line.split(",")
    if len(parts) < 3:
        raise ParseError("CanSat line is missing packet id or timestamp")

    def at(i: int) -> str | None:
        return parts[i] if i < len(parts) else None

    groups: dict = {}
    refs: list[str] = []
    index = 3
    while index < len(parts):
        tag = parts[index].strip()
        size = CANSAT_GROUP_SIZES.get(tag)
        if size is None:
            break

        if tag == TAG_GY91:
            groups["accelerometer"] = Vector3(
                to_float(at(index + 1)), to_float(at(index + 2)), to_float(at(index + 3))
            )
            groups["gyroscope"] = Vector3(
                to_float(at(index + 4)), to_float(at(index + 5)), to_float(at(index + 6))
            )
            groups["barometer"] = Barometer(
                temperature=to_float(at(index + 7)), pressure=to_float(at(index + 8))
            )
        elif tag == TAG_SCD40:
            groups["air_quality"] = AirQuality(
                co2=to_float(at(index + 1)),
                temperature=to_float(at(index + 2)),
                humidity=to_float(at(index + 3)),
            )
        elif tag == TAG_GPS:
            groups["gps"] = Gps(
                latitude=to_float(at(index + 1)),
                longitude=to_float(at(index + 2)),
                altitude=to_float(at(index + 3)),
                hdop=to_float(at(index + 4)),
                satellites=to_int(at(index + 5)),
            )
        elif tag == TAG_MICS:
            groups["gas"] = GasSensor(red=to_int(at(index + 1)), nox=to_int(at(index + 2)))

        refs.append(tag)
        index += size

    return TelemetryRecord(
        device=DeviceKind.CANSAT,
        packet_id=to_int(parts[1]),
        device_timestamp=to_int(parts[2]),
        received_at=raw.received_at,
        sensor_refs=tuple(refs),
        **groups,
    )


# ---------------------------------------- #


PARSERS: Final[dict[DeviceKind, Callable[[RawLine], TelemetryRecord | None]]] = {
    DeviceKind.ROCKET: parse_rocket_line,
    DeviceKind.CANSAT: parse_cansat_line,
}
