"""Sending and receiving Modbus RTU and Modbus ASCII frames over a serial stream.

The serial object is expected to behave like a pyserial port: it offers an
``in_waiting`` count, ``read(size)`` returning bytes, ``write(data)`` and
``flush()``.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Iterable
from typing import Protocol

from modlink.crc import add_crc, valid_crc

__all__ = [
    "RTUError",
    "ReceiveTimeout",
    "CRCError",
    "PacketLengthError",
    "ASCIIInvalidChar",
    "ASCIIFrameError",
    "ASCIICRCError",
    "RTULink",
    "calculate_interval",
    "rts_auto",
    "frame_rtu",
    "frame_ascii",
]

log = logging.getLogger(__name__)

BUFFER_SIZE = 512
MIN_INTERVAL_US = 1750

_LEAD_IN = 0xF0
_CR = 0xF1
_LF = 0xF2
_INVALID = 0xFF


def _build_ascii_table() -> tuple[int, ...]:
    table = [_INVALID] * 128
    for offset, char in enumerate("0123456789"):
        table[ord(char)] = offset
    for offset, char in enumerate("ABCDEF", start=10):
        table[ord(char)] = offset
        table[ord(char.lower())] = offset
    table[ord(":")] = _LEAD_IN
    table[ord("\r")] = _CR
    table[ord("\n")] = _LF
    return tuple(table)


_ASCII_READ = _build_ascii_table()


class SerialLike(Protocol):
    """The part of a serial port that the link uses."""

    @property
    def in_waiting(self) -> int: ...

    def read(self, size: int = 1) -> bytes: ...

    def write(self, data: bytes) -> int | None: ...

    def flush(self) -> None: ...


class RTUError(Exception):
    """Base class for errors found while receiving a frame."""


class ReceiveTimeout(RTUError):
    """No (complete) frame arrived within the timeout."""


class CRCError(RTUError):
    """An RTU frame arrived with a wrong CRC."""


class PacketLengthError(RTUError):
    """A frame was too short, too long or ended in the middle of a byte."""


class ASCIIInvalidChar(RTUError):
    """An ASCII frame held a character that does not belong there."""


class ASCIIFrameError(RTUError):
    """An ASCII frame's carriage return was not followed by a line feed."""


class ASCIICRCError(RTUError):
    """An ASCII frame arrived with a wrong LRC."""


def calculate_interval(baud_rate: int) -> int:
    """Return the silent interval between frames in microseconds.

    That is 3.5 character times of 10 bits, but never less than 1750 µs.
    """
    if baud_rate <= 0:
        raise ValueError("baud rate must be positive")
    interval = max(35_000_000 // baud_rate, MIN_INTERVAL_US)
    log.debug("interval for %d baud: %d us", baud_rate, interval)
    return interval


def rts_auto(level: bool) -> None:
    """RTS callback for half-duplex boards that switch direction themselves."""


def frame_rtu(data: bytes | bytearray | Iterable[int]) -> bytes:
    """Return the RTU wire form of ``data``: the data followed by its CRC."""
    return add_crc(data)


def _lrc(data: bytes) -> int:
    return -sum(data) & 0xFF


def frame_ascii(data: bytes | bytearray | Iterable[int]) -> bytes:
    """Return the ASCII wire form of ``data``: ':', hex digits, LRC, CR LF."""
    raw = bytes(data)
    body = raw + bytes([_lrc(raw)])
    return b":" + body.hex().upper().encode("ascii") + b"\r\n"


def _micros() -> int:
    return time.monotonic_ns() // 1000


def _millis() -> int:
    return time.monotonic_ns() // 1_000_000


class RTULink:
    """One end of a serial Modbus line, in RTU or ASCII framing."""

    def __init__(
        self,
        serial: SerialLike,
        interval: int,
        rts: Callable[[bool], None] = rts_auto,
    ) -> None:
        self.serial = serial
        self.interval = interval
        self.rts = rts
        self.last_micros = 0

    def _drain(self) -> None:
        while self.serial.in_waiting:
            self.serial.read(self.serial.in_waiting)

    def send(self, data: bytes | bytearray | Iterable[int], ascii_mode: bool = False) -> None:
        """Send ``data`` as one frame, checksum included."""
        raw = bytes(data)
        self._drain()

        if ascii_mode:
            self.rts(True)
            self.serial.write(frame_ascii(raw))
            self.serial.flush()
            self.rts(False)
        else:
            frame = frame_rtu(raw)
            elapsed = _micros() - self.last_micros
            if elapsed < self.interval:
                time.sleep((self.interval - elapsed) / 1_000_000)
            self.rts(True)
            self.serial.write(frame)
            self.serial.flush()
            self.rts(False)

        log.debug("sent packet: %s", raw.hex(" "))
        self.last_micros = _micros()

    def receive(
        self,
        timeout: int,
        ascii_mode: bool = False,
        skip_leading_zero_bytes: bool = False,
    ) -> bytes:
        """Receive one frame and return its data without the checksum.

        ``timeout`` is in milliseconds. Errors are raised as ``RTUError``
        subclasses.
        """
        if ascii_mode:
            data = self._receive_ascii(timeout)
        else:
            data = self._receive_rtu(timeout, skip_leading_zero_bytes)
        log.debug("received packet: %s", data.hex(" "))
        return data

    def _receive_rtu(self, timeout: int, skip_leading_zero_bytes: bool) -> bytes:
        buffer = bytearray()
        started = _millis()
        self.last_micros = _micros()

        # Await the first byte.
        while not buffer:
            chunk = self.serial.read(1) if self.serial.in_waiting else b""
            if chunk:
                self.last_micros = _micros()
                if chunk[0] > 0 or not skip_leading_zero_bytes:
                    buffer += chunk
            else:
                if _millis() - started >= timeout:
                    raise ReceiveTimeout("no data received")
                time.sleep(0.001)

        # Collect bytes until the line has been silent for one interval.
        while True:
            while self.serial.in_waiting:
                buffer += self.serial.read(1)
                self.last_micros = _micros()
                if len(buffer) >= BUFFER_SIZE:
                    raise PacketLengthError("frame exceeds receive buffer")
            if _micros() - self.last_micros >= self.interval:
                break
            time.sleep(0)

        log.debug("raw buffer received: %s", buffer.hex(" "))
        if len(buffer) < 4:
            raise PacketLengthError("frame too short")
        if not valid_crc(buffer):
            raise CRCError("CRC mismatch")
        return bytes(buffer[:-2])

    def _receive_ascii(self, timeout: int) -> bytes:
        buffer = bytearray()
        started = _millis()
        in_frame = False
        awaiting_lf = False
        high_nibble: int | None = None
        lrc = 0

        while True:
            if _millis() - started >= timeout:
                raise ReceiveTimeout("no complete ASCII frame received")
            if not self.serial.in_waiting:
                time.sleep(0.001)
                continue
            chunk = self.serial.read(1)
            if not chunk:
                time.sleep(0.001)
                continue
            started = _millis()
            char = chunk[0]
            if char & 0x80 or _ASCII_READ[char] == _INVALID:
                raise ASCIIInvalidChar(f"invalid character 0x{char:02X}")
            value = _ASCII_READ[char]

            if awaiting_lf:
                if value != _LF:
                    raise ASCIIFrameError("CR not followed by LF")
                log.debug("raw buffer received: %s", buffer.hex(" "))
                if len(buffer) < 3:
                    raise PacketLengthError("frame too short")
                if lrc != 0:
                    raise ASCIICRCError("LRC mismatch")
                return bytes(buffer[:-1])

            if not in_frame:
                in_frame = value == _LEAD_IN
                continue

            if value < 0x10:
                if high_nibble is None:
                    high_nibble = value
                else:
                    byte = (high_nibble << 4) | value
                    high_nibble = None
                    buffer.append(byte)
                    lrc = (lrc + byte) & 0xFF
                    if len(buffer) >= BUFFER_SIZE:
                        raise PacketLengthError("frame exceeds receive buffer")
            elif value == _CR:
                if high_nibble is not None:
                    raise PacketLengthError("frame ends in the middle of a byte")
                awaiting_lf = True
            else:
                raise ASCIIInvalidChar(f"unexpected character 0x{char:02X} in frame")