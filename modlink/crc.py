"""Modbus RTU CRC-16 calculation, checking and framing helpers."""

from __future__ import annotations

from collections.abc import Iterable

__all__ = ["calc_crc", "valid_crc", "add_crc"]

_POLYNOMIAL = 0xA001
_INITIAL = 0xFFFF


def _build_table() -> tuple[int, ...]:
    table = []
    for value in range(256):
        crc = value
        for _ in range(8):
            crc = (crc >> 1) ^ _POLYNOMIAL if crc & 1 else crc >> 1
        table.append(crc)
    return tuple(table)


_TABLE = _build_table()


def _as_bytes(data: bytes | bytearray | memoryview | Iterable[int]) -> bytes:
    return data if isinstance(data, bytes) else bytes(data)


def calc_crc(data: bytes | bytearray | memoryview | Iterable[int]) -> int:
    """Return the Modbus CRC-16 of ``data``.

    The low byte of the result is the one sent first on the wire.
    """
    crc = _INITIAL
    for byte in _as_bytes(data):
        crc = (crc >> 8) ^ _TABLE[(crc ^ byte) & 0xFF]
    return crc


def valid_crc(
    data: bytes | bytearray | memoryview | Iterable[int], crc: int | None = None
) -> bool:
    """Check a CRC.

    With ``crc`` given, compare it with the CRC of all of ``data``.
    Without it, the last two bytes of ``data`` are taken as the CRC
    (low byte first) and checked against the bytes before them.
    """
    raw = _as_bytes(data)
    if crc is None:
        if len(raw) < 2:
            raise ValueError("data too short to hold a CRC")
        crc = raw[-2] | (raw[-1] << 8)
        raw = raw[:-2]
    return calc_crc(raw) == crc


def add_crc(data: bytes | bytearray | memoryview | Iterable[int]) -> bytes:
    """Return ``data`` with its CRC appended, low byte first."""
    raw = _as_bytes(data)
    return raw + calc_crc(raw).to_bytes(2, "little")