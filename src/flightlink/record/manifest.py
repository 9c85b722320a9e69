from dataclasses import dataclass, field


@dataclass
class Manifest:
    format: str = "flightlink"
    version: int = 1
    created_utc: str = ""
    readings_filename: str = "readings.jsonl"
    devices: list[str] = field(default_factory=list)
    sensors: dict[str, int] = field(default_factory=dict)
    notes: str = ""
