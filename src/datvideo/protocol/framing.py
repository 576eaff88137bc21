"""RFC-1662 style frame encoder.

Frame layout::

    +-----------+-------------------+--------------------+-----------+
    | Delimiter |  Escaped payload  | Escaped checksum   | Delimiter |
    |  1 byte   |  variable length  | 2 bytes + escapes  |  1 byte   |
    +-----------+-------------------+--------------------+-----------+

- Delimiter: 0x7E, opens and closes every frame
- Escape: 0x7D precedes any payload or checksum byte equal to 0x7E or
  0x7D. The escaped byte itself is sent unchanged (no XOR with 0x20).
- Checksum: CRC-16 of the unescaped payload, big-endian
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator

from ..utils.crc import crc16

DELIMITER = 0x7E
ESCAPE = 0x7D
CHECKSUM_SIZE = 2

# One MPEG-TS packet with no error correction
DEFAULT_CHUNK_SIZE = 188
DEFAULT_MAX_FRAME_SIZE = 1024 * 1024


def escape_byte(byte: int, frame: bytearray) -> None:
    """Append ``byte`` to ``frame``, prefixed with the escape byte if needed."""
    if byte == DELIMITER or byte == ESCAPE:
        frame.append(ESCAPE)
    frame.append(byte)


def encode_frame(payload: bytes) -> bytes:
    """Encode one payload into a delimited, escaped, checksummed frame.

    Any byte sequence is encodable, including an empty one.

    Args:
        payload: Raw payload bytes.

    Returns:
        The frame, starting and ending with ``DELIMITER``.
    """
    frame = bytearray()
    frame.append(DELIMITER)
    for byte in payload:
        escape_byte(byte, frame)

    checksum = crc16(payload)
    escape_byte(checksum >> 8, frame)
    escape_byte(checksum & 0xFF, frame)
    frame.append(DELIMITER)
    return bytes(frame)


def encode_frames(payloads: Iterable[bytes]) -> Iterator[bytes]:
    """Encode each payload of ``payloads`` into its own frame."""
    for payload in payloads:
        yield encode_frame(payload)


def encoded_length(payload: bytes) -> int:
    """Return the length of ``encode_frame(payload)`` without building it."""
    checksum = crc16(payload).to_bytes(CHECKSUM_SIZE, "big")
    escapes = sum(1 for b in payload + checksum if b == DELIMITER or b == ESCAPE)
    return len(payload) + CHECKSUM_SIZE + escapes + 2
