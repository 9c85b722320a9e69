from __future__ import annotations

import json
import threading
from dataclasses import asdict
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping, Optional, Protocol, Sequence

from flightlink.record.manifest import Manifest


class ReadingStore(Protocol):
    """Persistence contract the pipeline writes sensor readings through."""

    def find_sensor_id(self, reference: str) -> int | None: ...

    def insert_reading(
        self,
        sensor_id: int,
        readings: Mapping[str, Any],
        timestamp_ms: int,
        event_id: int,
    ) -> None: ...


# ---------------------------------------- #


class JsonlReadingStore:
    """
    Records:
     - one JSON line per sensor reading (append-only) into a session folder
     - a manifest describing the session and its sensor registry
    Sensor references resolve through the registry given at construction.
    """

    def __init__(self, out_dir: Path, sensors: Mapping[str, int]):
        self.out_dir = out_dir
        self.session_dir: Optional[Path] = None
        self.readings_path: Optional[Path] = None
        self.manifest_path: Optional[Path] = None

        self._sensors = dict(sensors)
        self._readings_fp = None
        self._manifest: Optional[Manifest] = None
        self._lock = threading.Lock()
        self._count = 0

    # ---------------------------------------- #

    @property
    def is_open(self) -> bool:
        return self._readings_fp is not None

    @property
    def count(self) -> int:
        return self._count

    # ---------------------------------------- #

    def start(self, devices: Sequence[str] = ()) -> Path:
        ts = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
        self.session_dir = self.out_dir / f"session_{ts}"
        self.session_dir.mkdir(parents=True, exist_ok=True)

        self.readings_path = self.session_dir / "readings.jsonl"
        self.manifest_path = self.session_dir / "manifest.json"

        self._manifest = Manifest(created_utc=ts, devices=list(devices), sensors=dict(self._sensors))

        self._readings_fp = open(self.readings_path, "a", encoding="utf-8")

        with open(self.manifest_path, "w", encoding="utf-8") as f:
            json.dump(asdict(self._manifest), f, indent=2)

        return self.session_dir

    # ---------------------------------------- #

    def find_sensor_id(self, reference: str) -> int | None:
        return self._sensors.get(reference)

    def insert_reading(
        self,
        sensor_id: int,
        readings: Mapping[str, Any],
        timestamp_ms: int,
        event_id: int,
    ) -> None:
        row = {
            "sensor_id": sensor_id,
            "event_id": event_id,
            "timestamp_ms": timestamp_ms,
            "readings": readings,
        }
        json_line = json.dumps(row, separators=(",", ":"), allow_nan=False)

        with self._lock:
            if self._readings_fp is None:
                raise RuntimeError("Reading store has not been started.")
            self._readings_fp.write(json_line + "\n")
            self._readings_fp.flush()
            self._count += 1

    # ---------------------------------------- #

    def close(self) -> None:
        with self._lock:
            if self._readings_fp is not None:
                self._readings_fp.close()
                self._readings_fp = None
