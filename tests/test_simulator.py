from __future__ import annotations

import pytest

from flightlink.config import default_device_config
from flightlink.processing.validator import Validator
from flightlink.telemetry.protocol import PARSERS
from flightlink.telemetry.simulator import SimulatedLink, TelemetrySimulator
from flightlink.telemetry.types import DeviceKind, FlightState, RawLine


class FakeClock:
    def __init__(self) -> None:
        self.t = 1000.0

    def __call__(self) -> float:
        return self.t


@pytest.mark.parametrize("kind", [DeviceKind.ROCKET, DeviceKind.CANSAT])
@pytest.mark.parametrize("elapsed", [0.0, 3.0, 9.0, 15.5, 30.0])
def test_simulated_lines_parse_and_validate(kind: DeviceKind, elapsed: float) -> None:
    clock = FakeClock()
    sim = TelemetrySimulator(kind, clock=clock)
    clock.t += elapsed

    record = PARSERS[kind](RawLine(sim.sample(), clock.t))
    result = Validator(kind, default_device_config(kind).limits).validate(record)

    assert record is not None
    assert result.valid, result.errors


def test_rocket_profile_goes_through_apogee() -> None:
    clock = FakeClock()
    sim = TelemetrySimulator(DeviceKind.ROCKET, clock=clock)
    states = []
    for second in range(0, 30):
        clock.t = 1000.0 + second
        states.append(PARSERS[DeviceKind.ROCKET](RawLine(sim.sample(), clock.t)).flight_state)

    assert states[0] is FlightState.GROUND
    assert FlightState.LAUNCHED in states
    assert FlightState.APOGEE in states
    assert states[-1] is FlightState.DESCENT


def test_drop_every_skips_ids() -> None:
    sim = TelemetrySimulator(DeviceKind.CANSAT, drop_every=3, clock=FakeClock())
    ids = [int(sim.sample().split(",")[1]) for _ in range(4)]
    assert ids == [1, 2, 4, 5]


def test_simulated_link_rate_and_close() -> None:
    clock = FakeClock()
    link = SimulatedLink(TelemetrySimulator(DeviceKind.CANSAT, clock=clock), rate_hz=10.0, clock=clock)

    assert len(link.read_lines()) == 1
    clock.t += 0.35
    assert len(link.read_lines()) == 3

    link.close()
    with pytest.raises(OSError):
        link.read_lines()
