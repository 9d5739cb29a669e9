"""Modbus CRC16 helpers, RTU/ASCII serial framing and a server-ID bridge."""

__version__ = "0.1.0"
__all__ = ["crc", "rtu", "bridge"]