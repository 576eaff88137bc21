"""Tests for CRC-16 calculation."""

from datvideo.utils.crc import CRC16_TABLE, crc16


def test_crc16_empty():
    """CRC of empty data is the initial value."""
    assert crc16(b"") == 0xFFFF


def test_crc16_check_value():
    """Standard CRC-16/CCITT-FALSE check value."""
    result = crc16(b"123456789")
    assert result == 0x29B1, f"Expected 0x29B1, got 0x{result:04X}"


def test_crc16_range():
    """Result always fits in 16 bits."""
    for data in (b"\x00", b"\xff" * 300, bytes(range(256))):
        assert 0 <= crc16(data) <= 0xFFFF


def test_crc16_incremental():
    """Feeding the running value back in matches a one-shot CRC."""
    data = b"\x83\x01\x02\x03\x7e\x7d"
    assert crc16(data[3:], crc16(data[:3])) == crc16(data)


def test_crc16_deterministic():
    """Same input should always produce same output."""
    data = b"\x83\x01\x02\x03"
    assert crc16(data) == crc16(data)


def test_crc16_different_inputs():
    """Different inputs should produce different CRCs."""
    assert crc16(b"\x01") != crc16(b"\x02")


def test_crc16_table():
    """Lookup table has one 16-bit entry per byte value."""
    assert len(CRC16_TABLE) == 256
    assert CRC16_TABLE[0] == 0
    assert CRC16_TABLE[1] == 0x1021
