"""CRC-16 used as the frame check sequence.

CRC-16/CCITT-FALSE: polynomial 0x1021, initial value 0xFFFF, no input or
output reflection, no final XOR. Check value for ``b"123456789"`` is
0x29B1.
"""

from __future__ import annotations

CRC16_POLY = 0x1021
CRC16_INIT = 0xFFFF


def _build_table(poly: int) -> tuple[int, ...]:
    table = []
    for i in range(256):
        crc = i << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ poly) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
        table.append(crc)
    return tuple(table)


CRC16_TABLE = _build_table(CRC16_POLY)


def crc16(data: bytes, crc: int = CRC16_INIT) -> int:
    """Calculate the CRC-16 of ``data``.

    Args:
        data: Bytes to checksum. May be empty.
        crc: Running value, for checksumming a message in pieces.

    Returns:
        The 16-bit CRC as an int in ``0..0xFFFF``.
    """
    for byte in data:
        crc = ((crc << 8) & 0xFFFF) ^ CRC16_TABLE[(crc >> 8) ^ byte]
    return crc
