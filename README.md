# modlink

Building blocks for Modbus serial links and bridging:

- `modlink.crc` computes, checks and appends the Modbus CRC16.
- `modlink.rtu` frames messages for Modbus RTU and Modbus ASCII. `RTULink`
  sends and receives those frames over a serial stream.
- `modlink.bridge` provides `ModbusBridge`, which answers requests for local
  alias server IDs by forwarding them to real servers through client objects.

The package has no runtime dependencies.

## Installation

```
pip install modlink
```

To run the tests:

```
pip install "modlink[test]"
pytest
```

## CRC

```python
from modlink.crc import add_crc, calc_crc, valid_crc

frame = add_crc(bytes([0x01, 0x03, 0x00, 0x10, 0x00, 0x01]))
assert valid_crc(frame)                                   # CRC taken from the last two bytes
assert valid_crc(frame[:-2], int.from_bytes(frame[-2:], "little"))
```

- `calc_crc(data)` returns the CRC16 as an int; its low byte goes on the wire
  first.
- `valid_crc(data, crc=None)` compares `crc` with the CRC of all of `data`. With
  no `crc`, the last two bytes of `data` (low byte first) are checked against
  the bytes before them; fewer than two bytes raises `ValueError`.
- `add_crc(data)` returns `data` with its CRC appended, low byte first.

## Framing

In `modlink.rtu`:

- `frame_rtu(data)` returns the data followed by its CRC.
- `frame_ascii(data)` returns `:`, the data and its two's-complement LRC as
  upper-case hex digits, and `\r\n`.
- `calculate_interval(baud_rate)` returns the silent gap between frames in
  microseconds: 3.5 character times of 10 bits, at least 1750 µs. A baud rate
  that is not positive raises `ValueError`.
- `rts_auto(level)` is an RTS callback that does nothing, for boards that switch
  direction by themselves.

## Serial links

`RTULink(serial, interval, rts=rts_auto)` wraps an object that behaves like a
pyserial port: it has an `in_waiting` count, `read(size)` returning bytes,
`write(data)` and `flush()`. `interval` is the inter-frame gap in microseconds;
`rts` is called with `True` before and `False` after each transmission.

- `link.send(data, ascii_mode=False)` discards pending input and writes one
  frame, checksum included. In RTU mode it first waits until `interval` has
  passed since the last frame.
- `link.receive(timeout, ascii_mode=False, skip_leading_zero_bytes=False)`
  waits up to `timeout` milliseconds and returns the frame's data without its
  checksum. An RTU frame ends when the line has been silent for `interval`.
  Failures raise subclasses of `RTUError`:
  - `ReceiveTimeout`: nothing (complete) arrived in time;
  - `CRCError`: wrong CRC on an RTU frame;
  - `PacketLengthError`: frame too short, longer than 512 bytes, or an ASCII
    frame ending in the middle of a byte;
  - `ASCIIInvalidChar`: a character that does not belong in an ASCII frame;
  - `ASCIIFrameError`: CR not followed by LF;
  - `ASCIICRCError`: wrong LRC on an ASCII frame.

```python
import serial  # any object with in_waiting/read/write/flush will do
from modlink.rtu import RTULink, calculate_interval

port = serial.Serial("/dev/ttyUSB0", 19200)
link = RTULink(port, calculate_interval(19200))
link.send(bytes([0x01, 0x03, 0x00, 0x10, 0x00, 0x01]))
reply = link.receive(2000)
```

## Bridge

```python
from modlink.bridge import ANY_FUNCTION_CODE, ModbusBridge

bridge = ModbusBridge()
bridge.attach_server(3, 1, ANY_FUNCTION_CODE, tcp_client, "192.0.2.10", 502)
bridge.attach_server(4, 2, 0x03, rtu_client)
bridge.deny_function_code(3, 0x04)
response = bridge.local_request(bytes([3, 0x03, 0x00, 0x03, 0x00, 0x02]))
```

- `attach_server(alias_id, server_id, function_code, client, host="0.0.0.0", port=0)`
  maps `alias_id` to `server_id`. A non-zero `port` marks a TCP server at
  `host`; otherwise the client is treated as a serial one. An alias already
  attached keeps its server and only gains `function_code`.
- `add_function_code(alias_id, function_code)` forwards another function code;
  `deny_function_code(alias_id, function_code)` answers it with an
  ILLEGAL_FUNCTION error. Both raise `KeyError` for an alias that is not
  attached. IDs and function codes outside 0..255 raise `ValueError`.
- `local_request(request)` processes a request given as bytes (server ID,
  function code, data). A forwarded request goes out under the real server ID
  and the response comes back under the alias. A function code registered for
  neither the request's code nor `ANY_FUNCTION_CODE` gets ILLEGAL_FUNCTION
  (`0x01`) if the alias is known, otherwise INVALID_SERVER (`0xE1`). Error
  responses have the form `[id, fc | 0x80, code]`.

`ErrorCode` lists the Modbus exception codes and the library's own error codes;
`ServerType` tells TCP from RTU servers.

## What the package does not do

It contains no Modbus client or server and no TCP transport. The bridge needs
client objects supplied by the caller: each must offer
`sync_request(request, token)` for serial servers, or
`sync_request(request, token, host, port)` for TCP servers, returning the
response as bytes. There is no command-line program.