import pytest

from modlink.crc import add_crc, calc_crc, valid_crc


READ_REQUEST = bytes([0x01, 0x03, 0x00, 0x00, 0x00, 0x01])


def test_empty_data_yields_initial_value():
    assert calc_crc(b"") == 0xFFFF


def test_standard_check_value():
    assert calc_crc(b"123456789") == 0x4B37


def test_known_request_frame():
    assert add_crc(READ_REQUEST) == READ_REQUEST + bytes([0x84, 0x0A])


def test_add_crc_appends_low_byte_first():
    framed = add_crc(READ_REQUEST)
    crc = calc_crc(READ_REQUEST)
    assert framed[:-2] == READ_REQUEST
    assert framed[-2] == crc & 0xFF
    assert framed[-1] == crc >> 8


@pytest.mark.parametrize(
    "payload",
    [
        b"\x01\x03\x02\x1e\x1f",
        b"\x01\x06\x00\x10\xbe\xef",
        bytes(range(256)),
        b"\x00",
    ],
)
def test_round_trip_is_valid(payload):
    assert valid_crc(add_crc(payload)) is True


@pytest.mark.parametrize("payload", [b"\x01\x07", b"\x02\x03\x08\xc9\xc8\xc7\xc6"])
def test_residue_of_framed_message_is_zero(payload):
    assert calc_crc(add_crc(payload)) == 0


def test_corrupted_byte_is_detected():
    framed = bytearray(add_crc(b"\x01\x03\x08\x1a\x1b\x1c\x1d\xbe\xef\x20\x21"))
    framed[3] ^= 0x01
    assert valid_crc(framed) is False


def test_corrupted_crc_is_detected():
    framed = bytearray(add_crc(READ_REQUEST))
    framed[-1] ^= 0xFF
    assert valid_crc(framed) is False


def test_explicit_crc_comparison():
    crc = calc_crc(READ_REQUEST)
    assert valid_crc(READ_REQUEST, crc) is True
    assert valid_crc(READ_REQUEST, crc ^ 0x0001) is False


def test_accepts_various_byte_sequences():
    expected = calc_crc(READ_REQUEST)
    assert calc_crc(bytearray(READ_REQUEST)) == expected
    assert calc_crc(list(READ_REQUEST)) == expected
    assert calc_crc(memoryview(READ_REQUEST)) == expected


def test_add_crc_returns_bytes_from_list():
    assert add_crc(list(READ_REQUEST)) == add_crc(READ_REQUEST)


@pytest.mark.parametrize("short", [b"", b"\x01"])
def test_valid_crc_rejects_too_short_data(short):
    with pytest.raises(ValueError):
        valid_crc(short)


def test_out_of_range_values_are_rejected():
    with pytest.raises(ValueError):
        calc_crc([0x01, 0x100])


def test_crc_fits_sixteen_bits():
    for length in range(0, 40):
        assert 0 <= calc_crc(bytes(range(length))) <= 0xFFFF