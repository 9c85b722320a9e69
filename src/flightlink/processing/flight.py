from __future__ import annotations

from flightlink.telemetry.events import (
    EVENT_APOGEE,
    EVENT_GPS_FIX,
    EVENT_STATE_CHANGE,
    FlightEvent,
)
from flightlink.telemetry.types import DeviceSession, EnrichedRecord, FlightState


def detect_flight_events(enriched: EnrichedRecord, session: DeviceSession) -> list[FlightEvent]:
    """Flight-state transitions, apogee and GPS fix acquisition since the last packet."""
    record = enriched.record
    ts = record.received_at
    events: list[FlightEvent] = []

    state = record.state
    if state is not None and session.last_state is not None and state != session.last_state:
        events.append(
            FlightEvent(EVENT_STATE_CHANGE, {"from": session.last_state, "to": state, "timestamp": ts})
        )

    if record.flight_state is FlightState.APOGEE and session.last_state != FlightState.APOGEE.value:
        events.append(
            FlightEvent(
                EVENT_APOGEE,
                {
                    "altitude": enriched.metrics.max_altitude,
                    "flight_time": enriched.metrics.flight_time,
                    "timestamp": ts,
                },
            )
        )

    if enriched.gps_fix and not session.last_gps_fix and record.gps is not None:
        events.append(
            FlightEvent(
                EVENT_GPS_FIX,
                {
                    "latitude": record.gps.latitude,
                    "longitude": record.gps.longitude,
                    "satellites": record.gps.satellites,
                    "timestamp": ts,
                },
            )
        )

    return events


def remember_flight_state(session: DeviceSession, enriched: EnrichedRecord) -> None:
    if enriched.record.state is not None:
        session.last_state = enriched.record.state
    if enriched.gps_fix is not None:
        session.last_gps_fix = enriched.gps_fix
