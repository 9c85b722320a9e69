from __future__ import annotations

from dataclasses import dataclass

from flightlink.config import Bounds, ValidationLimits
from flightlink.processing.metrics import vector_magnitude
from flightlink.telemetry.types import DeviceKind, FlightState, TelemetryRecord, is_number

CANSAT_REQUIRED_GROUPS = (
    "accelerometer",
    "gyroscope",
    "barometer",
    "air_quality",
    "gps",
    "gas",
)


@dataclass(frozen=True)
class ValidationResult:
    errors: tuple[str, ...] = ()

    @property
    def valid(self) -> bool:
        return not self.errors


def check_range(label: str, value: float | None, bounds: Bounds, unit: str = "") -> str | None:
    """Return a violation message, or None when the value is acceptable."""
    if bounds.minimum is None and bounds.maximum is None:
        return None
    if not is_number(value):
        return f"{label} is not a number"
    if (bounds.minimum is not None and value < bounds.minimum) or (
        bounds.maximum is not None and value > bounds.maximum
    ):
        return f"{label} out of range: {value:g}{unit}"
    return None


# ---------------------------------------- #


class Validator:
    """Required-field and physical-range checks for one device type."""

    def __init__(self, device: DeviceKind, limits: ValidationLimits) -> None:
        self.device = device
        self.limits = limits

    def validate(self, record: TelemetryRecord) -> ValidationResult:
        errors: list[str] = []

        if record.packet_id is None:
            errors.append("packet_id is required")

        if self.device is DeviceKind.ROCKET:
            if record.flight_state is None:
                errors.append(f"invalid state: {record.state}")
        else:
            if record.device_timestamp is None:
                errors.append("timestamp is required")
            for name in CANSAT_REQUIRED_GROUPS:
                if getattr(record, name) is None:
                    errors.append(f"{name} is missing")

        errors.extend(self._range_errors(record))
        return ValidationResult(tuple(errors))

    # ---------------------------------------- #

    def _range_errors(self, record: TelemetryRecord) -> list[str]:
        limits = self.limits
        pressure_unit = " hPa" if self.device is DeviceKind.ROCKET else " Pa"
        found: list[str | None] = []

        accel = record.accelerometer
        if accel is not None and limits.max_acceleration is not None:
            if self.device is DeviceKind.ROCKET:
                found.append(
                    check_range(
                        "acceleration",
                        vector_magnitude(accel),
                        Bounds(maximum=limits.max_acceleration),
                        "g",
                    )
                )
            else:
                # CanSat bounds each axis, not the vector
                axis_bounds = Bounds(-limits.max_acceleration, limits.max_acceleration)
                for axis, value in (("X", accel.x), ("Y", accel.y), ("Z", accel.z)):
                    found.append(check_range(f"acceleration {axis}", value, axis_bounds, "g"))

        if record.barometer is not None:
            found.append(
                check_range("pressure", record.barometer.pressure, limits.pressure, pressure_unit)
            )
            found.append(
                check_range("temperature", record.barometer.temperature, limits.temperature, " C")
            )

        if record.air_quality is not None:
            found.append(check_range("CO2", record.air_quality.co2, limits.co2, " ppm"))

        # Missing link readings are "unavailable", not a violation.
        if record.link is not None:
            if record.link.rssi is not None:
                found.append(check_range("RSSI", record.link.rssi, limits.rssi, " dBm"))
            if record.link.snr is not None:
                found.append(check_range("SNR", record.link.snr, limits.snr, " dB"))

        return [e for e in found if e is not None]
