from __future__ import annotations

import pytest
import serial

from flightlink.telemetry import reader as reader_mod
from flightlink.telemetry.reader import MAX_LINE_BYTES, SerialLineReader


class FakeSerial:
    def __init__(self, port, baud, timeout=None) -> None:
        self.port = port
        self.chunks: list[bytes] = []
        self.is_open = True
        self.flushed = False

    @property
    def in_waiting(self) -> int:
        return len(self.chunks[0]) if self.chunks else 0

    def read(self, size: int) -> bytes:
        return self.chunks.pop(0) if self.chunks else b""

    def reset_input_buffer(self) -> None:
        self.flushed = True

    def close(self) -> None:
        self.is_open = False


@pytest.fixture
def line_reader(monkeypatch) -> SerialLineReader:
    monkeypatch.setattr(reader_mod.serial, "Serial", FakeSerial)
    return SerialLineReader("/dev/ttyUSB0", 115200)


def test_splits_lines_across_chunks(line_reader: SerialLineReader) -> None:
    line_reader._ser.chunks = [b"+RCV=1,2,ID:", b"1|STATE:GROUND,-50,9\r\nCANSAT,1", b",2\n\n"]

    first = line_reader.read_lines(timeout_s=0.0)
    second = line_reader.read_lines(timeout_s=0.0)
    third = line_reader.read_lines(timeout_s=0.0)

    texts = [r.text for r in first + second + third]
    assert texts == ["+RCV=1,2,ID:1|STATE:GROUND,-50,9", "CANSAT,1,2"]
    assert line_reader._ser.flushed


def test_closed_port_raises(line_reader: SerialLineReader) -> None:
    line_reader.close()
    assert not line_reader.is_open
    with pytest.raises(serial.SerialException):
        line_reader.read_lines()


def test_runaway_bytes_without_newline_are_dropped(line_reader: SerialLineReader) -> None:
    line_reader._ser.chunks = [b"\xaa" * (MAX_LINE_BYTES + 1), b"CANSAT,1,2\n"]

    assert line_reader.read_lines(timeout_s=0.0) == []
    assert len(line_reader._rx_buf) == 0
    assert [r.text for r in line_reader.read_lines(timeout_s=0.0)] == ["CANSAT,1,2"]


def test_partial_line_under_the_limit_is_kept(line_reader: SerialLineReader) -> None:
    line_reader._ser.chunks = [b"x" * MAX_LINE_BYTES, b"\n"]

    assert line_reader.read_lines(timeout_s=0.0) == []
    assert [r.text for r in line_reader.read_lines(timeout_s=0.0)] == ["x" * MAX_LINE_BYTES]
