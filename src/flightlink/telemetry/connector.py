from __future__ import annotations

import re
import time
from dataclasses import dataclass
from typing import Callable, Final, Iterable, Sequence

import serial
from PySide6 import QtCore

from flightlink.config import LinkSettings
from flightlink.telemetry.events import ConnectionState, LinkStatus
from flightlink.telemetry.reader import LineSource, SerialLineReader
from flightlink.telemetry.types import DeviceKind
from flightlink.util.log import get_logger

logger = get_logger(__name__)

MAX_BACKOFF_MS: Final[int] = 30_000

_TRAILING_NUMBER = re.compile(r"(\d+)$")

Opener = Callable[[str, int], LineSource]


@dataclass(frozen=True)
class PortCandidate:
    device: str
    description: str = ""
    manufacturer: str = ""


# ---------------------------------------- #
#  Endpoint Discovery                      #
# ---------------------------------------- #


def list_serial_ports() -> list[PortCandidate]:
    import serial.tools.list_ports

    return [
        PortCandidate(
            device=getattr(p, "device", "") or "",
            description=getattr(p, "description", "") or "",
            manufacturer=getattr(p, "manufacturer", "") or "",
        )
        for p in serial.tools.list_ports.comports()
    ]


# ---------------------------------------- #


def _port_number(device: str) -> int:
    m = _TRAILING_NUMBER.search(device)
    return int(m.group(1)) if m else -1


def _highest_numbered(ports: Iterable[PortCandidate]) -> PortCandidate:
    return max(ports, key=lambda p: (_port_number(p.device), p.device))


def _looks_like_bridge_chip(port: PortCandidate, known_chips: Sequence[str]) -> bool:
    text = f"{port.manufacturer} {port.description}".lower()
    return any(chip in text for chip in known_chips)


# ---------------------------------------- #


def select_endpoint(
    ports: Sequence[PortCandidate],
    preferred: str | None = None,
    known_chips: Sequence[str] = (),
    candidates: Sequence[str] = (),
) -> str | None:
    """
    Pick one endpoint out of the discovered ports.

    Priority: explicitly preferred port, known USB-serial bridge chip
    (highest-numbered wins), configured candidate list, the only port,
    then the highest-numbered port.
    """
    if not ports:
        return None

    available = {p.device for p in ports}
    if preferred and preferred in available:
        return preferred

    chips = [c.lower() for c in known_chips]
    by_chip = [p for p in ports if _looks_like_bridge_chip(p, chips)]
    if by_chip:
        return _highest_numbered(by_chip).device

    for device in candidates:
        if device in available:
            return device

    if len(ports) == 1:
        return ports[0].device

    return _highest_numbered(ports).device


# ---------------------------------------- #


def backoff_delay_ms(attempt: int, base_ms: int, cap_ms: int = MAX_BACKOFF_MS) -> int:
    """Delay before retry number `attempt` (1-based)."""
    if attempt < 1:
        return 0
    return int(min(base_ms * (2 ** (attempt - 1)), cap_ms))


def describe_link_error(exc: BaseException, endpoint: str | None) -> str:
    text = str(exc)
    lowered = text.lower()
    if ("access" in lowered and "denied" in lowered) or "permission denied" in lowered:
        return f"access denied to {endpoint} (is another program using the port?)"
    if "busy" in lowered:
        return f"{endpoint} is busy"
    return text or exc.__class__.__name__


# ---------------------------------------- #


class SerialConnector(QtCore.QObject):
    """
    Owns one device's serial link.

    Driven by tick(): while connected it reads and emits lines, while
    disconnected it waits out the backoff window and retries. Every state
    change goes through _transition() and is reported on `status`.
    """

    line = QtCore.Signal(object)
    status = QtCore.Signal(object)
    gave_up = QtCore.Signal(int)

    # ---------------------------------------- #

    def __init__(
        self,
        device: DeviceKind,
        settings: LinkSettings,
        opener: Opener | None = None,
        port_lister: Callable[[], Sequence[PortCandidate]] = list_serial_ports,
        clock: Callable[[], float] = time.monotonic,
        read_timeout_s: float = 0.05,
        parent=None,
    ):
        super().__init__(parent)

        self.device = device
        self._settings = settings
        self._opener: Opener = opener or (lambda port, baud: SerialLineReader(port, baud))
        self._port_lister = port_lister
        self._clock = clock
        self._read_timeout_s = read_timeout_s

        self._state = ConnectionState.DISCONNECTED
        self._reader: LineSource | None = None
        self._endpoint: str | None = None
        self._attempts: int = 0
        self._next_attempt_at: float | None = None
        self._last_line_at: float = 0.0
        self._silence_reported = False

    # ---------------------------------------- #

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def endpoint(self) -> str | None:
        return self._endpoint

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def next_attempt_at(self) -> float | None:
        return self._next_attempt_at

    # ---------------------------------------- #

    def _transition(
        self,
        state: ConnectionState,
        endpoint: str | None = None,
        error: str | None = None,
    ) -> None:
        self._state = state
        self._endpoint = endpoint
        if error:
            logger.warning("%s link %s: %s", self.device.value, state.value, error)
        else:
            logger.info("%s link %s %s", self.device.value, state.value, endpoint or "")
        self.status.emit(LinkStatus(self.device, state, endpoint, error))

    # ---------------------------------------- #

    def discover(self) -> str | None:
        ports = list(self._port_lister())
        logger.debug(
            "%s ports available: %s",
            self.device.value,
            ", ".join(f"{p.device} ({p.manufacturer or 'unknown'})" for p in ports) or "none",
        )
        return select_endpoint(
            ports,
            preferred=self._settings.port,
            known_chips=self._settings.known_chips,
            candidates=self._settings.candidate_ports,
        )

    # ---------------------------------------- #

    @QtCore.Slot()
    def connect_link(self, endpoint: str | None = None) -> bool:
        if self._state is ConnectionState.STOPPED:
            logger.warning("%s connector is stopped; not connecting", self.device.value)
            return False
        if self._state is ConnectionState.CONNECTED:
            return True

        self._next_attempt_at = None
        self._transition(ConnectionState.CONNECTING)

        try:
            endpoint = endpoint or self.discover()
        except (serial.SerialException, OSError) as e:
            self._fail(f"port enumeration failed: {e}")
            return False

        if endpoint is None:
            self._fail("no serial endpoint found")
            return False

        try:
            self._reader = self._opener(endpoint, self._settings.baud)
        except (serial.SerialException, OSError, ValueError) as e:
            self._reader = None
            self._fail(describe_link_error(e, endpoint), endpoint)
            return False

        self._attempts = 0
        self._last_line_at = self._clock()
        self._silence_reported = False
        self._transition(ConnectionState.CONNECTED, endpoint)
        return True

    # ---------------------------------------- #

    def _fail(self, reason: str, endpoint: str | None = None) -> None:
        self._transition(ConnectionState.DISCONNECTED, endpoint, reason)
        self._schedule_reconnect()

    def _close_reader(self) -> None:
        if self._reader is None:
            return
        try:
            self._reader.close()
        except (serial.SerialException, OSError) as e:
            logger.debug("%s close failed: %s", self.device.value, e)
        self._reader = None

    def _link_lost(self, reason: str) -> None:
        endpoint = self._endpoint
        self._close_reader()
        self._fail(reason, endpoint)

    # ---------------------------------------- #

    def _schedule_reconnect(self) -> None:
        limit = self._settings.max_reconnect_attempts
        if self._attempts >= limit:
            self._next_attempt_at = None
            logger.error(
                "%s: giving up after %d reconnect attempts", self.device.value, self._attempts
            )
            self.gave_up.emit(self._attempts)
            return

        self._attempts += 1
        delay_ms = backoff_delay_ms(self._attempts, self._settings.reconnect_base_ms)
        self._next_attempt_at = self._clock() + delay_ms / 1000.0
        logger.info(
            "%s: retrying in %.1fs (attempt %d/%d)",
            self.device.value,
            delay_ms / 1000.0,
            self._attempts,
            limit,
        )

    # ---------------------------------------- #

    @QtCore.Slot()
    def start(self) -> None:
        if self._state is not ConnectionState.DISCONNECTED or self._next_attempt_at is not None:
            return
        self._attempts = 0
        self.connect_link()

    @QtCore.Slot()
    def restart(self) -> None:
        """Manual reconnect request; clears the give-up state."""
        if self._state is ConnectionState.CONNECTED:
            return
        self._attempts = 0
        self.connect_link()

    # ---------------------------------------- #

    @QtCore.Slot()
    def stop(self) -> None:
        if self._state is ConnectionState.STOPPED:
            return
        self._close_reader()
        self._next_attempt_at = None
        self._attempts = 0
        self._transition(ConnectionState.STOPPED)

    # ---------------------------------------- #

    @QtCore.Slot()
    def tick(self) -> None:
        if self._state is ConnectionState.STOPPED:
            return

        if self._reader is None:
            if self._next_attempt_at is not None and self._clock() >= self._next_attempt_at:
                self.connect_link()
            return

        try:
            lines = self._reader.read_lines(timeout_s=self._read_timeout_s)
        except (serial.SerialException, OSError) as e:
            self._link_lost(f"read error: {e}")
            return

        now = self._clock()
        if lines:
            self._last_line_at = now
            self._silence_reported = False
        elif (
            not self._silence_reported
            and (now - self._last_line_at) * 1000.0 >= self._settings.discovery_timeout_ms
        ):
            self._silence_reported = True
            logger.warning(
                "%s: no data from %s for %.0fs",
                self.device.value,
                self._endpoint,
                now - self._last_line_at,
            )

        for raw in lines:
            self.line.emit(raw)
