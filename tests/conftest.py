from __future__ import annotations

import threading

import pytest
from PySide6 import QtCore


@pytest.fixture(scope="session", autouse=True)
def qapp():
    app = QtCore.QCoreApplication.instance() or QtCore.QCoreApplication([])
    yield app


# ---------------------------------------- #


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: list[tuple[str, str, object]] = []

    def publish(self, channel: str, event: str, payload) -> None:
        self.events.append((channel, event, payload))

    def named(self, event: str) -> list:
        return [p for _, e, p in self.events if e == event]


class MemoryStore:
    def __init__(self, sensors: dict[str, int]) -> None:
        self.sensors = dict(sensors)
        self.rows: list[tuple[int, dict, int, int]] = []
        self._lock = threading.Lock()

    def find_sensor_id(self, reference: str) -> int | None:
        return self.sensors.get(reference)

    def insert_reading(self, sensor_id, readings, timestamp_ms, event_id) -> None:
        with self._lock:
            self.rows.append((sensor_id, dict(readings), timestamp_ms, event_id))


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore({"MPU_R": 1, "BMP_R": 2, "GPS_NEO_R": 3, "GY_91_C": 4, "SCD_40_C": 5, "GPS_NEO_C": 6, "MiCS_4514_C": 7})


def rocket_line(
    packet_id: int = 1,
    t_ms: int = 1000,
    state: str = "GROUND",
    az: float = 1.0,
    pressure_hpa: float = 1000.0,
    altitude: float = 100.0,
    gps: str = "GPS_NEO_R|LAT:39.47|LON:-0.37|ALT:100|SATS:7",
    rssi: int = -60,
    snr: int = 10,
) -> str:
    payload = (
        f"ID:{packet_id}|T:{t_ms}|STATE:{state}|MPU_R|AX:0|AY:0|AZ:{az}"
        f"|BMP_R|T:20.5|P:{pressure_hpa}|A:{altitude}|{gps}"
    )
    return f"+RCV=1,{len(payload)},{payload},{rssi},{snr}"


@pytest.fixture
def make_rocket_line():
    return rocket_line


@pytest.fixture
def cansat_line() -> str:
    return (
        "CANSAT,10,123456,GY_91_C,0.1,0.2,9.8,1,2,3,21.5,101300,"
        "SCD_40_C,450,22.0,40.0,GPS_NEO_C,0,0,0,0,0,MiCS_4514_C,100,50"
    )
