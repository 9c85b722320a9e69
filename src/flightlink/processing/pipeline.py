from __future__ import annotations

from typing import Any, Callable

from PySide6 import QtCore

from flightlink.config import DeviceConfig
from flightlink.processing.alerts import AlertEvaluator
from flightlink.processing.flight import detect_flight_events, remember_flight_state
from flightlink.processing.history import RecentHistory
from flightlink.processing.metrics import derive_metrics, update_session
from flightlink.processing.sequence import SequenceTracker
from flightlink.processing.validator import Validator
from flightlink.publish import Publisher
from flightlink.record.writer import ReadingWriter
from flightlink.telemetry import events
from flightlink.telemetry.events import (
    ConnectionState,
    LinkStatus,
    PacketLoss,
    ValidationFailure,
)
from flightlink.telemetry.protocol import PARSERS, ParseError
from flightlink.telemetry.types import (
    Alert,
    DeviceSession,
    EnrichedRecord,
    RawLine,
    TelemetryRecord,
)
from flightlink.util.log import get_logger

logger = get_logger(__name__)

Parser = Callable[[RawLine], "TelemetryRecord | None"]


class TelemetryPipeline(QtCore.QObject):
    """
    One device's processing chain.

    parse -> validate -> sequence -> metrics -> history / store / publish /
    alerts, run to completion for each line on the thread that delivered it.
    Store writes are queued, never awaited.
    """

    def __init__(
        self,
        config: DeviceConfig,
        publisher: Publisher,
        writer: ReadingWriter | None = None,
        parser: Parser | None = None,
        parent=None,
    ):
        super().__init__(parent)

        self.device = config.kind
        self.channel = config.kind.value
        self._publisher = publisher
        self._writer = writer
        self._parse = parser or PARSERS[config.kind]

        self.validator = Validator(config.kind, config.limits)
        self.tracker = SequenceTracker()
        self.alerts = AlertEvaluator(config.alerts)
        self.history = RecentHistory(config.history_capacity)
        self.session = DeviceSession(config.kind)
        self._link_state = ConnectionState.DISCONNECTED

    # ---------------------------------------- #

    def attach(self, connector: QtCore.QObject) -> None:
        connector.line.connect(self.handle_line)
        connector.status.connect(self.handle_status)
        connector.gave_up.connect(self.handle_gave_up)

    def _publish(self, event: str, payload: Any) -> None:
        self._publisher.publish(self.channel, event, payload)

    def _publish_alert(self, alert: Alert) -> None:
        logger.info("%s alert %s: %s", self.channel, alert.type, alert.message)
        self._publish(events.EVENT_ALERT, alert)

    # ---------------------------------------- #
    #  Line Processing                         #
    # ---------------------------------------- #

    @QtCore.Slot(object)
    def handle_line(self, raw: RawLine) -> EnrichedRecord | None:
        try:
            record = self._parse(raw)
        except ParseError as e:
            logger.debug("%s: dropped line (%s): %r", self.channel, e, raw.text)
            return None
        if record is None:
            return None

        result = self.validator.validate(record)
        if not result.valid:
            logger.warning(
                "%s: packet %s rejected: %s", self.channel, record.packet_id, "; ".join(result.errors)
            )
            self._publish(events.EVENT_VALIDATION_ERROR, ValidationFailure(record, result.errors))
            return None

        self._track_sequence(record)

        metrics = derive_metrics(record, self.session)
        update_session(self.session, record, metrics)
        gps_fix = record.gps.has_fix if record.gps is not None else None
        enriched = EnrichedRecord(record=record, metrics=metrics, gps_fix=gps_fix)

        self.history.push(enriched)
        if self._writer is not None:
            self._writer.submit(enriched)
        self._publish(events.EVENT_DATA, enriched)

        for alert in self.alerts.evaluate(enriched):
            self._publish_alert(alert)

        for flight_event in detect_flight_events(enriched, self.session):
            logger.info("%s %s: %s", self.channel, flight_event.name, flight_event.payload)
            self._publish(flight_event.name, flight_event.payload)
        remember_flight_state(self.session, enriched)

        return enriched

    # ---------------------------------------- #

    def _track_sequence(self, record: TelemetryRecord) -> None:
        assert record.packet_id is not None
        seen = self.tracker.observe(self.channel, record.packet_id)

        self.session.packets_received += 1
        self.session.packets_lost = seen.total_lost
        self.session.last_packet_id = record.packet_id

        if seen.lost <= 0:
            return

        loss = PacketLoss(
            lost=seen.lost,
            total_lost=seen.total_lost,
            last_id=seen.last_id,
            current_id=record.packet_id,
            loss_rate=self.session.packet_loss_rate,
        )
        logger.warning(
            "%s: %d packets lost (%d -> %d), loss rate %.2f%%",
            self.channel,
            loss.lost,
            seen.last_id,
            record.packet_id,
            loss.loss_rate,
        )
        self._publish(events.EVENT_PACKET_LOSS, loss)

        alert = self.alerts.evaluate_packet_loss(loss.loss_rate, record.received_at)
        if alert is not None:
            self._publish_alert(alert)

    # ---------------------------------------- #
    #  Link Status                             #
    # ---------------------------------------- #

    @QtCore.Slot(object)
    def handle_status(self, status: LinkStatus) -> None:
        self._link_state = status.state
        if not status.connected:
            self.session.reset()
            self.tracker.reset(self.channel)
        self._publish(events.EVENT_STATUS, status)

    @QtCore.Slot(int)
    def handle_gave_up(self, attempts: int) -> None:
        self._publish(events.EVENT_GAVE_UP, {"device": self.channel, "attempts": attempts})

    # ---------------------------------------- #
    #  Queries                                 #
    # ---------------------------------------- #

    def recent(self, n: int | None = None) -> list[EnrichedRecord]:
        return self.history.recent(n)

    def stats(self) -> dict[str, Any]:
        s = self.session
        flight_time = 0.0
        if s.flight_start_time is not None and s.last_device_time is not None:
            flight_time = (s.last_device_time - s.flight_start_time) / 1000.0
        return {
            "device": self.channel,
            "state": self._link_state.value,
            "packets_received": s.packets_received,
            "packets_lost": s.packets_lost,
            "packet_loss_rate": s.packet_loss_rate,
            "last_packet_id": s.last_packet_id,
            "max_altitude": s.max_altitude,
            "flight_time": flight_time,
            "buffered": len(self.history),
        }

    def reset_stats(self) -> None:
        self.session.reset()
        self.tracker.reset(self.channel)
        self.history.clear()
        self._publish(events.EVENT_STATS_RESET, self.stats())
