from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Final, Mapping

from flightlink.telemetry.types import DeviceKind

DEFAULT_CONFIG_NAME: Final[str] = "flightlink.toml"

KNOWN_CHIPS: Final[tuple[str, ...]] = (
    "silicon labs",
    "cp210",
    "arduino",
    "ch340",
    "wch",
    "ftdi",
    "prolific",
    "espressif",
    "esp32",
)

_UNIX_PORTS: Final[tuple[str, ...]] = ("/dev/ttyACM0", "/dev/ttyACM1", "/dev/ttyUSB0", "/dev/ttyUSB1")

DEFAULT_SENSOR_IDS: Final[dict[str, int]] = {
    "MPU_R": 1,
    "BMP_R": 2,
    "GPS_NEO_R": 3,
    "GY_91_C": 4,
    "SCD_40_C": 5,
    "GPS_NEO_C": 6,
    "MiCS_4514_C": 7,
}

PORT_ENV_VARS: Final[dict[DeviceKind, tuple[str, ...]]] = {
    DeviceKind.ROCKET: ("ROCKET_PORT", "SERIAL_PORT"),
    DeviceKind.CANSAT: ("CANSAT_PORT",),
}


@dataclass(frozen=True)
class Bounds:
    minimum: float | None = None
    maximum: float | None = None


@dataclass(frozen=True)
class LinkSettings:
    port: str | None = None
    candidate_ports: tuple[str, ...] = ()
    baud: int = 115200
    reconnect_base_ms: int = 5000
    max_reconnect_attempts: int = 5
    discovery_timeout_ms: int = 10000
    known_chips: tuple[str, ...] = KNOWN_CHIPS


@dataclass(frozen=True)
class ValidationLimits:
    max_acceleration: float | None = 20.0  # g; rocket checks the vector magnitude, CanSat each axis
    pressure: Bounds = Bounds()
    temperature: Bounds = Bounds(-40.0, 85.0)
    co2: Bounds = Bounds()
    rssi: Bounds = Bounds()
    snr: Bounds = Bounds()


@dataclass(frozen=True)
class AlertThresholds:
    max_acceleration: float | None = 15.0
    max_co2: float | None = None
    max_packet_loss: float | None = None  # %


@dataclass(frozen=True)
class DeviceConfig:
    kind: DeviceKind
    link: LinkSettings = LinkSettings()
    limits: ValidationLimits = ValidationLimits()
    alerts: AlertThresholds = AlertThresholds()
    sensor_mapping: Mapping[str, str] = field(default_factory=dict)
    history_capacity: int = 100
    event_id: int | None = None


@dataclass(frozen=True)
class StationConfig:
    rocket: DeviceConfig
    cansat: DeviceConfig
    sensors: Mapping[str, int] = field(default_factory=lambda: dict(DEFAULT_SENSOR_IDS))
    output_dir: Path = Path("data") / "sessions"
    log_level: str = "INFO"
    json_log: Path | None = None

    def device(self, kind: DeviceKind) -> DeviceConfig:
        return self.rocket if kind is DeviceKind.ROCKET else self.cansat


# ---------------------------------------- #
#  Defaults                                #
# ---------------------------------------- #


def default_device_config(kind: DeviceKind) -> DeviceConfig:
    if kind is DeviceKind.ROCKET:
        return DeviceConfig(
            kind=kind,
            link=LinkSettings(
                candidate_ports=_UNIX_PORTS + tuple(f"COM{n}" for n in range(3, 9)),
            ),
            limits=ValidationLimits(
                pressure=Bounds(500.0, 1100.0),  # hPa
                rssi=Bounds(minimum=-100.0),
                snr=Bounds(minimum=5.0),
            ),
            alerts=AlertThresholds(max_packet_loss=10.0),
            sensor_mapping={"MPU_R": "MPU_R", "BMP_R": "BMP_R", "GPS_NEO_R": "GPS_NEO_R"},
        )

    return DeviceConfig(
        kind=kind,
        link=LinkSettings(
            candidate_ports=_UNIX_PORTS + tuple(f"COM{n}" for n in range(3, 11)),
        ),
        limits=ValidationLimits(
            pressure=Bounds(50000.0, 110000.0),  # Pa
            co2=Bounds(0.0, 40000.0),
        ),
        alerts=AlertThresholds(max_acceleration=20.0, max_co2=5000.0),
        sensor_mapping={
            "GY_91_C": "GY_91_C",
            "SCD_40_C": "SCD_40_C",
            "GPS_NEO_C": "GPS_NEO_C",
            "MiCS_4514_C": "MiCS_4514_C",
        },
    )


# ---------------------------------------- #
#  TOML Loading                            #
# ---------------------------------------- #


def _typed(table: Mapping[str, Any], key: str, kind: type, default: Any) -> Any:
    value = table.get(key, default)
    if value is None:
        return default
    if isinstance(value, bool) and kind is not bool:
        return default
    if kind is float and isinstance(value, int):
        return float(value)
    return value if isinstance(value, kind) else default


def _table(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    table = data.get(key)
    return table if isinstance(table, dict) else {}


def _bounds(table: Mapping[str, Any], key: str, default: Bounds) -> Bounds:
    sub = _table(table, key)
    if not sub:
        return default
    return Bounds(
        minimum=_typed(sub, "min", float, default.minimum),
        maximum=_typed(sub, "max", float, default.maximum),
    )


# ---------------------------------------- #


def _link_settings(table: Mapping[str, Any], default: LinkSettings) -> LinkSettings:
    candidates = table.get("candidate_ports")
    chips = table.get("known_chips")
    return replace(
        default,
        port=_typed(table, "port", str, default.port),
        candidate_ports=tuple(str(p) for p in candidates)
        if isinstance(candidates, list)
        else default.candidate_ports,
        baud=_typed(table, "baud", int, default.baud),
        reconnect_base_ms=_typed(table, "reconnect_base_ms", int, default.reconnect_base_ms),
        max_reconnect_attempts=_typed(
            table, "max_reconnect_attempts", int, default.max_reconnect_attempts
        ),
        discovery_timeout_ms=_typed(
            table, "discovery_timeout_ms", int, default.discovery_timeout_ms
        ),
        known_chips=tuple(str(c).lower() for c in chips)
        if isinstance(chips, list)
        else default.known_chips,
    )


def _device_config(
    kind: DeviceKind, table: Mapping[str, Any], environ: Mapping[str, str]
) -> DeviceConfig:
    default = default_device_config(kind)

    link = _link_settings(table, default.link)
    for var in PORT_ENV_VARS[kind]:
        if environ.get(var):
            link = replace(link, port=environ[var])
            break

    limits_table = _table(table, "limits")
    limits = ValidationLimits(
        max_acceleration=_typed(
            limits_table, "max_acceleration", float, default.limits.max_acceleration
        ),
        pressure=_bounds(limits_table, "pressure", default.limits.pressure),
        temperature=_bounds(limits_table, "temperature", default.limits.temperature),
        co2=_bounds(limits_table, "co2", default.limits.co2),
        rssi=_bounds(limits_table, "rssi", default.limits.rssi),
        snr=_bounds(limits_table, "snr", default.limits.snr),
    )

    alerts_table = _table(table, "alerts")
    alerts = AlertThresholds(
        max_acceleration=_typed(
            alerts_table, "max_acceleration", float, default.alerts.max_acceleration
        ),
        max_co2=_typed(alerts_table, "max_co2", float, default.alerts.max_co2),
        max_packet_loss=_typed(
            alerts_table, "max_packet_loss", float, default.alerts.max_packet_loss
        ),
    )

    mapping = _table(table, "sensor_mapping")
    return DeviceConfig(
        kind=kind,
        link=link,
        limits=limits,
        alerts=alerts,
        sensor_mapping={str(k): str(v) for k, v in mapping.items()}
        if mapping
        else default.sensor_mapping,
        history_capacity=_typed(table, "history_capacity", int, default.history_capacity),
        event_id=_typed(table, "event_id", int, default.event_id),
    )


# ---------------------------------------- #


def load_station_config(
    path: Path | None = None, environ: Mapping[str, str] | None = None
) -> StationConfig:
    """
    Read the station TOML file.

    A missing file yields the built-in defaults. Values of the wrong type are
    ignored in favour of the default for that key.
    """
    if path is None:
        path = Path(os.environ.get("FLIGHTLINK_CONFIG", DEFAULT_CONFIG_NAME))
    if environ is None:
        environ = os.environ

    try:
        data: Any = tomllib.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        data = {}

    station = _table(data, "station")
    sensors = _table(data, "sensors")
    json_log = _typed(station, "json_log", str, None)

    return StationConfig(
        rocket=_device_config(DeviceKind.ROCKET, _table(data, "rocket"), environ),
        cansat=_device_config(DeviceKind.CANSAT, _table(data, "cansat"), environ),
        sensors={str(k): v for k, v in sensors.items() if isinstance(v, int)}
        if sensors
        else dict(DEFAULT_SENSOR_IDS),
        output_dir=Path(_typed(station, "output_dir", str, str(Path("data") / "sessions"))),
        log_level=_typed(station, "log_level", str, "INFO").upper(),
        json_log=Path(json_log) if json_log else None,
    )
