from __future__ import annotations

from typing import Final

from flightlink.config import AlertThresholds
from flightlink.telemetry.types import Alert, EnrichedRecord, is_number

HIGH_ACCELERATION: Final[str] = "HIGH_ACCELERATION"
HIGH_CO2: Final[str] = "HIGH_CO2"
NO_GPS_FIX: Final[str] = "NO_GPS_FIX"
HIGH_PACKET_LOSS: Final[str] = "HIGH_PACKET_LOSS"

SEVERITY_INFO: Final[str] = "info"
SEVERITY_WARNING: Final[str] = "warning"


class AlertEvaluator:
    """
    Threshold checks on enriched records.

    No debouncing: every violating packet yields a fresh alert.
    """

    def __init__(self, thresholds: AlertThresholds) -> None:
        self.thresholds = thresholds

    def evaluate(self, enriched: EnrichedRecord) -> list[Alert]:
        record = enriched.record
        metrics = enriched.metrics
        ts = record.received_at
        alerts: list[Alert] = []

        max_accel = self.thresholds.max_acceleration
        if (
            record.accelerometer is not None
            and max_accel is not None
            and metrics.acceleration_magnitude > max_accel
        ):
            alerts.append(
                Alert(
                    type=HIGH_ACCELERATION,
                    severity=SEVERITY_WARNING,
                    message=f"acceleration high: {metrics.acceleration_magnitude:.2f}g",
                    value=metrics.acceleration_magnitude,
                    timestamp=ts,
                )
            )

        max_co2 = self.thresholds.max_co2
        if (
            record.air_quality is not None
            and max_co2 is not None
            and is_number(record.air_quality.co2)
            and record.air_quality.co2 > max_co2
        ):
            alerts.append(
                Alert(
                    type=HIGH_CO2,
                    severity=SEVERITY_WARNING,
                    message=f"CO2 high: {record.air_quality.co2:g} ppm",
                    value=record.air_quality.co2,
                    timestamp=ts,
                )
            )

        if enriched.gps_fix is False:
            sats = record.gps.satellites if record.gps is not None else None
            alerts.append(
                Alert(
                    type=NO_GPS_FIX,
                    severity=SEVERITY_INFO,
                    message="GPS has no fix",
                    value=sats,
                    timestamp=ts,
                )
            )

        return alerts

    # ---------------------------------------- #

    def evaluate_packet_loss(self, loss_rate: float, timestamp: float) -> Alert | None:
        limit = self.thresholds.max_packet_loss
        if limit is None or loss_rate <= limit:
            return None
        return Alert(
            type=HIGH_PACKET_LOSS,
            severity=SEVERITY_WARNING,
            message=f"packet loss high: {loss_rate:.2f}%",
            value=loss_rate,
            timestamp=timestamp,
        )
