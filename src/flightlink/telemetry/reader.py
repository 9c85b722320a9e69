from __future__ import annotations

import time
from collections import deque
from typing import Protocol

import serial

from flightlink.telemetry.types import RawLine
from flightlink.util.log import get_logger
from flightlink.util.time import now_unix

logger = get_logger(__name__)

# Longest run of bytes kept while waiting for a newline
MAX_LINE_BYTES = 4096


class LineSource(Protocol):
    """What the connector needs from an open link."""

    def read_lines(self, timeout_s: float = 0.0) -> list[RawLine]: ...

    def close(self) -> None: ...


# ---------------------------------------- #


class SerialLineReader:
    """Newline-delimited text reader on top of a pyserial port."""

    def __init__(self, port: str, baud: int, read_timeout_s: float = 0.05) -> None:
        self.port = port
        self.baud = baud
        self._ser = serial.Serial(self.port, self.baud, timeout=read_timeout_s)

        # Drop whatever partial line was sitting in the OS buffer
        self._ser.reset_input_buffer()

        self._rx_buf = bytearray()
        self._pending: deque[RawLine] = deque()

    # ---------------------------------------- #
    #  Connection                              #
    # ---------------------------------------- #

    @property
    def is_open(self) -> bool:
        return bool(self._ser.is_open)

    def close(self) -> None:
        self._ser.close()

    # ---------------------------------------- #

    def read_lines(self, timeout_s: float = 0.0) -> list[RawLine]:
        """
        Return every complete line available within timeout_s.

        Raises serial.SerialException when the port went away; the caller
        treats that as a link loss.
        """
        if not self._ser.is_open:
            raise serial.SerialException(f"{self.port} is closed")

        deadline = time.time() + max(0.0, timeout_s)
        while not self._pending:
            chunk = self._ser.read(max(1, self._ser.in_waiting))
            if chunk:
                self._rx_buf.extend(chunk)
                self._drain_lines(host_time=now_unix())
            if time.time() >= deadline:
                break

        lines = list(self._pending)
        self._pending.clear()
        return lines

    # ---------------------------------------- #

    def _drain_lines(self, host_time: float) -> None:
        while True:
            try:
                idx = self._rx_buf.index(b"\n")
            except ValueError:
                if len(self._rx_buf) > MAX_LINE_BYTES:
                    logger.debug(
                        "%s: dropping %d bytes with no line break", self.port, len(self._rx_buf)
                    )
                    self._rx_buf.clear()
                return

            frame = bytes(self._rx_buf[:idx])
            del self._rx_buf[: idx + 1]

            text = frame.decode("utf-8", errors="replace").strip()
            if not text:
                continue

            self._pending.append(RawLine(text=text, received_at=host_time))
