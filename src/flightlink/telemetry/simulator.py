from __future__ import annotations

import math
import time
from typing import Callable

from flightlink.telemetry.types import DeviceKind, FlightState, RawLine

SEA_LEVEL_HPA = 1013.25

# Pad coordinates the simulated GPS reports once it has a fix.
PAD_LAT = 39.4699
PAD_LON = -0.3763


def _pressure_hpa(altitude_m: float) -> float:
    return SEA_LEVEL_HPA * (1.0 - altitude_m / 44330.0) ** 5.255


class TelemetrySimulator:
    """
    Simple deterministic telemetry simulator for testing purposes.

    Produces the same text lines the rocket receiver and the CanSat emit, so
    the whole pipeline can be brought up without hardware. Every
    `drop_every`-th packet id is skipped to exercise loss tracking.
    """

    LAUNCH_AFTER_S = 5.0
    BURN_S = 3.0
    APOGEE_S = 10.0

    def __init__(self, device: DeviceKind, drop_every: int = 50, clock: Callable[[], float] = time.time):
        self.device = device
        self.drop_every = drop_every
        self._clock = clock
        self._t0 = clock()
        self._packet_id = 0

    # ---------------------------------------- #

    def reset(self) -> None:
        self._t0 = self._clock()
        self._packet_id = 0

    # ---------------------------------------- #

    def _next_id(self) -> int:
        self._packet_id += 1
        if self.drop_every > 0 and self._packet_id % self.drop_every == 0:
            self._packet_id += 1
        return self._packet_id

    def _profile(self, t: float) -> tuple[FlightState, float, float]:
        """Flight state, altitude (m) and vertical acceleration (g) at t seconds."""
        tau = t - self.LAUNCH_AFTER_S
        if tau < 0:
            return FlightState.GROUND, 0.0, 1.0

        # Fake ascent / descent curve
        alt = max(0.0, 60.0 * tau - 3.0 * tau * tau)
        accel = 8.0 if tau < self.BURN_S else 1.0 + 0.1 * math.sin(tau)

        if tau < self.APOGEE_S:
            state = FlightState.LAUNCHED
        elif tau < self.APOGEE_S + 1.0:
            state = FlightState.APOGEE
        else:
            state = FlightState.DESCENT
        return state, alt, accel

    # ---------------------------------------- #

    def sample(self) -> str:
        t = self._clock() - self._t0
        if self.device is DeviceKind.ROCKET:
            return self._rocket_line(t)
        return self._cansat_line(t)

    def _rocket_line(self, t: float) -> str:
        state, alt, accel = self._profile(t)
        ms = int(t * 1000)
        temp = 22.0 + 2.0 * math.sin(t / 5.0)

        tokens = [
            f"ID:{self._next_id()}",
            f"T:{ms}",
            f"STATE:{state.value}",
            "MPU_R",
            f"AX:{0.05 * math.sin(t):.3f}",
            f"AY:{0.05 * math.cos(t):.3f}",
            f"AZ:{accel:.3f}",
            "BMP_R",
            f"T:{temp:.2f}",
            f"P:{_pressure_hpa(alt):.2f}",
            f"A:{alt:.2f}",
            "GPS_NEO_R",
        ]
        # No fix for the first seconds after power-up
        if t < 2.0:
            tokens.append("NO_FIX")
        else:
            tokens += [f"LAT:{PAD_LAT:.6f}", f"LON:{PAD_LON:.6f}", f"ALT:{alt:.1f}", "SATS:8"]

        payload = "|".join(tokens)
        rssi = -60 - int(alt / 20)
        snr = 10
        return f"+RCV=1,{len(payload)},{payload},{rssi},{snr}"

    def _cansat_line(self, t: float) -> str:
        _, alt, accel = self._profile(t)
        ms = int(t * 1000)
        temp = 22.0 + 2.0 * math.sin(t / 5.0)
        pressure_pa = _pressure_hpa(alt) * 100.0
        co2 = 450 + 20 * math.sin(t / 3.0)

        fields = [
            "CANSAT",
            str(self._next_id()),
            str(ms),
            "GY_91_C",
            f"{0.05 * math.sin(t):.3f}",
            f"{0.05 * math.cos(t):.3f}",
            f"{accel:.3f}",
            f"{3.0 * math.sin(t):.2f}",
            f"{3.0 * math.cos(t):.2f}",
            "0.00",
            f"{temp:.2f}",
            f"{pressure_pa:.0f}",
            "SCD_40_C",
            f"{co2:.0f}",
            f"{temp:.1f}",
            "45.0",
            "GPS_NEO_C",
        ]
        if t < 2.0:
            fields += ["0", "0", "0", "0", "0"]
        else:
            fields += [f"{PAD_LAT:.6f}", f"{PAD_LON:.6f}", f"{alt:.1f}", "1.2", "7"]
        fields += ["MiCS_4514_C", "120", "45"]
        return ",".join(fields)


# ---------------------------------------- #


class SimulatedLink:
    """LineSource that yields simulator lines at a fixed rate."""

    def __init__(
        self,
        simulator: TelemetrySimulator,
        rate_hz: float = 10.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._sim = simulator
        self._period_s = 1.0 / rate_hz
        self._clock = clock
        self._next_at = clock()
        self._open = True

    def read_lines(self, timeout_s: float = 0.0) -> list[RawLine]:
        if not self._open:
            raise OSError("simulated link is closed")

        now = self._clock()
        lines: list[RawLine] = []
        while self._next_at <= now:
            lines.append(RawLine(self._sim.sample(), now))
            self._next_at += self._period_s
        return lines

    def close(self) -> None:
        self._open = False


def simulated_opener(device: DeviceKind, rate_hz: float = 10.0):
    """Opener for SerialConnector that ignores the endpoint and baud rate."""

    def _open(port: str, baud: int) -> SimulatedLink:
        return SimulatedLink(TelemetrySimulator(device), rate_hz=rate_hz)

    return _open
