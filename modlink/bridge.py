"""A Modbus bridge that forwards requests to remote servers under alias IDs.

Each remote server is reached through a client object offering
``sync_request(request, token)`` for serial (RTU) lines and
``sync_request(request, token, host, port)`` for TCP connections.
Both return the response message as bytes.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Any

__all__ = ["ServerType", "ErrorCode", "ModbusBridge", "ANY_FUNCTION_CODE"]

log = logging.getLogger(__name__)

ANY_FUNCTION_CODE = 0x00

Worker = Callable[[bytes], bytes]


class ServerType(Enum):
    """How a remote server is reached."""

    TCP_SERVER = "tcp"
    RTU_SERVER = "rtu"


class ErrorCode(IntEnum):
    """Modbus exception codes and the library's own error codes."""

    SUCCESS = 0x00
    ILLEGAL_FUNCTION = 0x01
    ILLEGAL_DATA_ADDRESS = 0x02
    ILLEGAL_DATA_VALUE = 0x03
    SERVER_DEVICE_FAILURE = 0x04
    ACKNOWLEDGE = 0x05
    SERVER_DEVICE_BUSY = 0x06
    NEGATIVE_ACKNOWLEDGE = 0x07
    MEMORY_PARITY_ERROR = 0x08
    GATEWAY_PATH_UNAVAIL = 0x0A
    GATEWAY_TARGET_NO_RESP = 0x0B
    TIMEOUT = 0xE0
    INVALID_SERVER = 0xE1
    CRC_ERROR = 0xE2
    FC_MISMATCH = 0xE3
    SERVER_ID_MISMATCH = 0xE4
    PACKET_LENGTH_ERROR = 0xE5
    PARAMETER_COUNT_ERROR = 0xE6
    PARAMETER_LIMIT_ERROR = 0xE7
    REQUEST_QUEUE_FULL = 0xE8
    ILLEGAL_IP_OR_PORT = 0xE9
    IP_CONNECTION_FAILED = 0xEA
    TCP_HEAD_MISMATCH = 0xEB
    EMPTY_MESSAGE = 0xEC
    ASCII_FRAME_ERR = 0xED
    ASCII_CRC_ERR = 0xEE
    ASCII_INVALID_CHAR = 0xEF
    UNDEFINED_ERROR = 0xFF


@dataclass(frozen=True)
class _ServerData:
    server_id: int
    client: Any
    server_type: ServerType
    host: str = "0.0.0.0"
    port: int = 0


def _error_response(server_id: int, function_code: int, code: ErrorCode) -> bytes:
    return bytes([server_id & 0xFF, (function_code | 0x80) & 0xFF, int(code)])


def _check_byte(name: str, value: int) -> None:
    if not 0 <= value <= 0xFF:
        raise ValueError(f"{name} must be in 0..255, got {value}")


def _token() -> int:
    return (time.monotonic_ns() // 1_000_000) & 0xFFFFFFFF


class ModbusBridge:
    """Answer requests for alias server IDs by asking the real remote servers."""

    def __init__(self) -> None:
        self._servers: dict[int, _ServerData] = {}
        self._workers: dict[tuple[int, int], Worker] = {}

    def attach_server(
        self,
        alias_id: int,
        server_id: int,
        function_code: int,
        client: Any,
        host: str = "0.0.0.0",
        port: int = 0,
    ) -> None:
        """Make remote server ``server_id`` reachable as ``alias_id``.

        A non-zero ``port`` marks a TCP server at ``host``; otherwise the
        client is used as a serial one. An alias already attached keeps its
        server; only ``function_code`` is added to it.
        """
        _check_byte("alias_id", alias_id)
        _check_byte("server_id", server_id)
        _check_byte("function_code", function_code)
        if alias_id not in self._servers:
            if port != 0:
                self._servers[alias_id] = _ServerData(
                    server_id, client, ServerType.TCP_SERVER, host, port
                )
                log.debug("(TCP): %02X->%02X %s:%d", alias_id, server_id, host, port)
            else:
                self._servers[alias_id] = _ServerData(
                    server_id, client, ServerType.RTU_SERVER
                )
                log.debug("(RTU): %02X->%02X", alias_id, server_id)
        self.add_function_code(alias_id, function_code)

    def add_function_code(self, alias_id: int, function_code: int) -> None:
        """Forward ``function_code`` for an attached alias to its server."""
        self._register(alias_id, function_code, self._bridge_worker)
        log.debug("FC %02X added for server %02X", function_code, alias_id)

    def deny_function_code(self, alias_id: int, function_code: int) -> None:
        """Answer ``function_code`` for an attached alias with ILLEGAL_FUNCTION."""
        self._register(alias_id, function_code, self._deny_worker)
        log.debug("FC %02X blocked for server %02X", function_code, alias_id)

    def local_request(self, request: bytes | bytearray) -> bytes:
        """Process ``request`` as if it had arrived from the network."""
        message = bytes(request)
        if len(message) < 2:
            raise ValueError("request must hold a server ID and a function code")
        server_id, function_code = message[0], message[1]
        worker = self._workers.get((server_id, function_code)) or self._workers.get(
            (server_id, ANY_FUNCTION_CODE)
        )
        if worker is not None:
            return worker(message)
        if any(sid == server_id for sid, _ in self._workers):
            return _error_response(server_id, function_code, ErrorCode.ILLEGAL_FUNCTION)
        return _error_response(server_id, function_code, ErrorCode.INVALID_SERVER)

    def _register(self, alias_id: int, function_code: int, worker: Worker) -> None:
        if alias_id not in self._servers:
            log.error("Server %d not attached to bridge!", alias_id)
            raise KeyError(f"server {alias_id} not attached to bridge")
        _check_byte("function_code", function_code)
        self._workers[(alias_id, function_code)] = worker

    def _bridge_worker(self, request: bytes) -> bytes:
        alias_id, function_code = request[0], request[1]
        server = self._servers.get(alias_id)
        if server is None:
            return _error_response(alias_id, function_code, ErrorCode.INVALID_SERVER)

        forwarded = bytes([server.server_id]) + request[1:]
        log.debug("Request (%02X/%02X) sent", server.server_id, function_code)
        if server.server_type is ServerType.TCP_SERVER:
            response = server.client.sync_request(
                forwarded, _token(), server.host, server.port
            )
        else:
            response = server.client.sync_request(forwarded, _token())

        response = bytes(response)
        if not response:
            return response
        return bytes([alias_id]) + response[1:]

    @staticmethod
    def _deny_worker(request: bytes) -> bytes:
        return _error_response(request[0], request[1], ErrorCode.ILLEGAL_FUNCTION)