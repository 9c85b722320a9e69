from __future__ import annotations

import argparse
import signal
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Sequence

from PySide6 import QtCore

from flightlink.config import DeviceConfig, StationConfig, load_station_config
from flightlink.processing.pipeline import TelemetryPipeline
from flightlink.publish import SignalPublisher
from flightlink.record.store import JsonlReadingStore
from flightlink.record.writer import ReadingWriter
from flightlink.telemetry import events
from flightlink.telemetry.connector import PortCandidate, SerialConnector, list_serial_ports
from flightlink.telemetry.simulator import simulated_opener
from flightlink.telemetry.types import DeviceKind
from flightlink.util.log import configure_logging, get_logger

logger = get_logger(__name__)

TICK_INTERVAL_MS = 50


class DeviceRunner(QtCore.QObject):
    """
    Connector + pipeline for one device, living on its own QThread.

    The tick timer is created once the thread has started so it belongs to
    that thread's event loop.
    """

    stop_requested = QtCore.Signal()

    def __init__(
        self,
        config: DeviceConfig,
        publisher: SignalPublisher,
        writer: ReadingWriter | None,
        simulate: bool = False,
    ):
        super().__init__()

        self.kind = config.kind
        if simulate:
            endpoint = PortCandidate(f"sim://{config.kind.value}", "simulated link")
            self.connector = SerialConnector(
                config.kind,
                config.link,
                opener=simulated_opener(config.kind),
                port_lister=lambda: [endpoint],
                parent=self,
            )
        else:
            self.connector = SerialConnector(config.kind, config.link, parent=self)

        self.pipeline = TelemetryPipeline(config, publisher, writer, parent=self)
        self.pipeline.attach(self.connector)

        self._timer: QtCore.QTimer | None = None
        self.stop_requested.connect(self.shutdown)

    # ---------------------------------------- #

    @QtCore.Slot()
    def run(self) -> None:
        self._timer = QtCore.QTimer(self)
        self._timer.setInterval(TICK_INTERVAL_MS)
        self._timer.timeout.connect(self.connector.tick)
        self._timer.start()
        self.connector.start()

    @QtCore.Slot()
    def shutdown(self) -> None:
        if self._timer is not None:
            self._timer.stop()
        self.connector.stop()
        self.thread().quit()


# ---------------------------------------- #


class EventLog(QtCore.QObject):
    """Console subscriber for published events."""

    @QtCore.Slot(str, str, object)
    def on_event(self, channel: str, event: str, payload: Any) -> None:
        if event == events.EVENT_DATA:
            m = payload.metrics
            logger.debug(
                "%s #%s alt=%s v=%.2f |a|=%.2f",
                channel,
                payload.packet_id,
                "-" if m.altitude is None else f"{m.altitude:.1f}",
                m.velocity,
                m.acceleration_magnitude,
            )
        elif event == events.EVENT_STATUS:
            logger.info("%s %s", channel, payload.to_dict())
        elif event == events.EVENT_GAVE_UP:
            logger.error("%s link gave up; restart the station to retry", channel)


# ---------------------------------------- #


class GroundStation:
    """
    Composition root: one runner and thread per device, a shared publisher
    and a shared reading store.
    """

    def __init__(
        self,
        config: StationConfig,
        devices: Sequence[DeviceKind],
        simulate: bool = False,
        store: JsonlReadingStore | None = None,
    ):
        self.config = config
        self.devices = list(devices)
        self.publisher = SignalPublisher()
        self.store = store

        self.runners: dict[DeviceKind, DeviceRunner] = {}
        self.writers: dict[DeviceKind, ReadingWriter] = {}
        self._threads: dict[DeviceKind, QtCore.QThread] = {}

        for kind in self.devices:
            device_config = config.device(kind)
            writer = None
            if store is not None:
                if device_config.event_id is None:
                    raise ValueError(
                        f"[{kind.value}].event_id is required to store readings (or pass --event-id)"
                    )
                writer = ReadingWriter(store, device_config.sensor_mapping, device_config.event_id)
                self.writers[kind] = writer

            self.runners[kind] = DeviceRunner(device_config, self.publisher, writer, simulate)

    # ---------------------------------------- #

    def start(self) -> None:
        if self.store is not None and not self.store.is_open:
            session_dir = self.store.start([k.value for k in self.devices])
            logger.info("recording readings to %s", session_dir)

        for kind, runner in self.runners.items():
            thread = QtCore.QThread()
            thread.setObjectName(f"flightlink-{kind.value}")
            runner.moveToThread(thread)
            thread.started.connect(runner.run)
            self._threads[kind] = thread
            thread.start()

    def stop(self) -> None:
        for kind, runner in self.runners.items():
            thread = self._threads.pop(kind, None)
            if thread is None:
                continue
            runner.stop_requested.emit()
            thread.wait()

        for writer in self.writers.values():
            writer.wait()

        if self.store is not None:
            self.store.close()

        for runner in self.runners.values():
            logger.info("%s", runner.pipeline.stats())


# ---------------------------------------- #


def _selected_devices(choice: str) -> list[DeviceKind]:
    if choice == "all":
        return [DeviceKind.ROCKET, DeviceKind.CANSAT]
    return [DeviceKind(choice)]


def _list_ports() -> int:
    ports = list_serial_ports()
    if not ports:
        sys.stdout.write("no serial ports found\n")
        return 1
    for p in ports:
        sys.stdout.write(f"{p.device}\t{p.description}\t{p.manufacturer}\n")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="flightlink", description="Ground-station telemetry ingestion for rocket and CanSat links"
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to flightlink.toml")
    parser.add_argument(
        "--device", choices=["rocket", "cansat", "all"], default="all", help="Which links to open"
    )
    parser.add_argument("--event-id", type=int, default=None, help="Event id readings are stored under")
    parser.add_argument("--out-dir", type=Path, default=None, help="Session output directory")
    parser.add_argument("--simulate", action="store_true", help="Use synthetic links instead of serial ports")
    parser.add_argument("--list-ports", action="store_true", help="List serial ports and exit")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    return parser


def main(argv: list[str] | None = None) -> int:
    """
    Application entry point.

    Responsibilities:
    - Load configuration and set up logging
    - Create the QCoreApplication
    - Build and start the GroundStation
    - Run the Qt event loop until SIGINT
    """
    parser = build_parser()
    args = parser.parse_args(sys.argv[1:] if argv is None else argv)

    if args.list_ports:
        return _list_ports()

    config = load_station_config(args.config)
    configure_logging((args.log_level or config.log_level).upper(), config.json_log)

    if args.event_id is not None:
        config = replace(
            config,
            rocket=replace(config.rocket, event_id=args.event_id),
            cansat=replace(config.cansat, event_id=args.event_id),
        )

    app = QtCore.QCoreApplication(sys.argv[:1])
    app.setApplicationName("flightlink")

    store = JsonlReadingStore(args.out_dir or config.output_dir, config.sensors)
    try:
        station = GroundStation(config, _selected_devices(args.device), args.simulate, store)
    except ValueError as e:
        parser.error(str(e))

    event_log = EventLog()
    station.publisher.subscribe(event_log.on_event)

    def _on_sigint(signum, frame) -> None:
        logger.info("shutting down")
        station.stop()
        app.quit()

    signal.signal(signal.SIGINT, _on_sigint)

    # Let the interpreter run periodically so the SIGINT handler fires
    wake = QtCore.QTimer()
    wake.setInterval(200)
    wake.timeout.connect(lambda: None)
    wake.start()

    station.start()
    return app.exec()


if __name__ == "__main__":
    raise SystemExit(main())
