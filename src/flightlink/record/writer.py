from __future__ import annotations

from typing import Any, Mapping

from PySide6 import QtCore

from flightlink.record.store import ReadingStore
from flightlink.telemetry.types import DeviceKind, EnrichedRecord, Vector3, is_number
from flightlink.util.log import get_logger
from flightlink.util.time import unix_ms

logger = get_logger(__name__)

Reading = tuple[str, dict[str, Any]]


def _measure(value: Any, unit: str) -> dict[str, Any]:
    return {"value": value, "unit": unit}


def _measures(unit: str, **values: Any) -> dict[str, Any]:
    """Unit-tagged readings, leaving out anything that is not a finite number."""
    return {name: _measure(v, unit) for name, v in values.items() if is_number(v)}


def _axes(v: Vector3, unit: str) -> dict[str, Any]:
    return _measures(unit, x=v.x, y=v.y, z=v.z)


def _or_zero(value: Any) -> Any:
    return value if is_number(value) else 0


# ---------------------------------------- #
#  Reading Payloads                        #
# ---------------------------------------- #


def rocket_readings(enriched: EnrichedRecord) -> list[Reading]:
    record = enriched.record
    out: list[Reading] = []

    if record.accelerometer is not None:
        out.append(("MPU_R", {"accelerometer": _axes(record.accelerometer, "g")}))

    baro = record.barometer
    if baro is not None:
        readings: dict[str, Any] = {}
        if is_number(baro.temperature):
            readings["temperature"] = _measure(baro.temperature, "C")
        if is_number(baro.pressure):
            readings["pressure"] = _measure(baro.pressure, "hPa")
        if is_number(baro.altitude):
            readings["altitude"] = _measure(baro.altitude, "m")
        if readings:
            out.append(("BMP_R", readings))

    gps = record.gps
    if gps is not None and enriched.gps_fix:
        out.append(
            (
                "GPS_NEO_R",
                {
                    "location": {
                        "latitude": gps.latitude,
                        "longitude": gps.longitude,
                        "altitude": _measure(_or_zero(gps.altitude), "m"),
                    },
                    "satellites": _or_zero(gps.satellites),
                    "fix": True,
                },
            )
        )
    return out


def cansat_readings(enriched: EnrichedRecord) -> list[Reading]:
    record = enriched.record
    metrics = enriched.metrics
    refs = set(record.sensor_refs)
    out: list[Reading] = []

    if "GY_91_C" in refs and record.accelerometer is not None and record.gyroscope is not None:
        accel = _axes(record.accelerometer, "g")
        accel.update(_measures("g", magnitude=metrics.acceleration_magnitude))
        gyro = _axes(record.gyroscope, "deg/s")
        gyro.update(_measures("deg/s", magnitude=metrics.rotation_magnitude))
        out.append(("GY_91_C", {"accelerometer": accel, "gyroscope": gyro}))

    # The barometer is on the GY-91 board and is stored as a second reading.
    if record.barometer is not None:
        readings = {
            **_measures("C", temperature=record.barometer.temperature),
            **_measures("Pa", pressure=record.barometer.pressure),
            **_measures("m", altitude=metrics.altitude),
        }
        if readings:
            out.append(("GY_91_C", readings))

    if "SCD_40_C" in refs and record.air_quality is not None:
        aq = record.air_quality
        readings = {
            **_measures("ppm", co2=aq.co2),
            **_measures("C", temperature=aq.temperature),
            **_measures("%", humidity=aq.humidity),
        }
        if readings:
            out.append(("SCD_40_C", readings))

    gps = record.gps
    if "GPS_NEO_C" in refs and gps is not None and enriched.gps_fix:
        out.append(
            (
                "GPS_NEO_C",
                {
                    "location": {
                        "latitude": gps.latitude,
                        "longitude": gps.longitude,
                        "altitude": _measure(_or_zero(gps.altitude), "m"),
                    },
                    "satellites": _or_zero(gps.satellites),
                    "hdop": _or_zero(gps.hdop),
                    "fix": True,
                },
            )
        )

    if "MiCS_4514_C" in refs and record.gas is not None:
        out.append(
            (
                "MiCS_4514_C",
                _measures("raw", red=record.gas.red, nox=record.gas.nox),
            )
        )
    return out


def sensor_readings(enriched: EnrichedRecord) -> list[Reading]:
    if enriched.device is DeviceKind.ROCKET:
        return rocket_readings(enriched)
    return cansat_readings(enriched)


# ---------------------------------------- #
#  Background Writes                       #
# ---------------------------------------- #


class _WriteTask(QtCore.QRunnable):
    def __init__(self, writer: ReadingWriter, batch: list[Reading], timestamp_ms: int):
        super().__init__()
        self._writer = writer
        self._batch = batch
        self._timestamp_ms = timestamp_ms

    def run(self) -> None:
        self._writer.write_batch(self._batch, self._timestamp_ms)


class ReadingWriter:
    """
    Hands sensor readings to the store without blocking the caller.

    Writes run on a single-thread pool so one device's readings land in
    arrival order. Failures are logged and dropped.
    """

    def __init__(
        self,
        store: ReadingStore,
        sensor_mapping: Mapping[str, str],
        event_id: int,
        pool: QtCore.QThreadPool | None = None,
    ) -> None:
        self._store = store
        self._mapping = dict(sensor_mapping)
        self._event_id = event_id
        if pool is None:
            pool = QtCore.QThreadPool()
            pool.setMaxThreadCount(1)
        self._pool = pool

    @property
    def event_id(self) -> int:
        return self._event_id

    def submit(self, enriched: EnrichedRecord) -> int:
        batch = sensor_readings(enriched)
        if batch:
            self._pool.start(_WriteTask(self, batch, unix_ms(enriched.record.received_at)))
        return len(batch)

    def wait(self, timeout_ms: int = -1) -> bool:
        return self._pool.waitForDone(timeout_ms)

    # ---------------------------------------- #

    def write_batch(self, batch: list[Reading], timestamp_ms: int) -> int:
        written = 0
        for reference, readings in batch:
            target = self._mapping.get(reference)
            if target is None:
                logger.warning("no store mapping for sensor %s; reading skipped", reference)
                continue
            try:
                sensor_id = self._store.find_sensor_id(target)
                if sensor_id is None:
                    logger.warning("sensor %s not found in store; reading skipped", target)
                    continue
                self._store.insert_reading(sensor_id, readings, timestamp_ms, self._event_id)
                written += 1
            except Exception:
                logger.exception("failed to store reading for %s", target)
        if written:
            logger.debug("%d readings stored", written)
        return written
