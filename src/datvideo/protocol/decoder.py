"""Streaming frame decoder.

The decoder is fed one byte at a time and keeps its receive state between
calls, so frames may be split across reads in any way. It synchronizes on
delimiters: bytes before the first delimiter are dropped, and after any
malformed frame it waits for the next delimiter before collecting again.

Malformed frames are not exceptions. They come back as ``Discarded``
results carrying a ``DiscardReason`` so the caller decides whether to log,
count or ignore them.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from enum import Enum
from typing import Union

from ..utils.crc import crc16
from .framing import CHECKSUM_SIZE, DEFAULT_MAX_FRAME_SIZE, DELIMITER, ESCAPE


class ReceiveState(Enum):
    """Receive state of a ``FrameDecoder``."""

    IDLE = "idle"
    IN_FRAME = "in_frame"
    IN_ESCAPE = "in_escape"


class DiscardReason(Enum):
    """Why a frame was dropped."""

    SHORT_FRAME = "short frame"
    CHECKSUM_MISMATCH = "checksum mismatch"
    OVERSIZED_FRAME = "frame too long"
    INVALID_ESCAPE = "invalid escape"


@dataclass(frozen=True)
class ValidFrame:
    """A frame whose checksum matched."""

    payload: bytes

    def __repr__(self) -> str:
        return (
            f"ValidFrame(payload={self.payload.hex(' ') if self.payload else '(empty)'})"
        )


@dataclass(frozen=True)
class Discarded:
    """A frame that was dropped, and why."""

    reason: DiscardReason

    def __repr__(self) -> str:
        return f"Discarded(reason={self.reason.value!r})"


DecodeResult = Union[ValidFrame, Discarded]


class FrameDecoder:
    """Receive state machine that turns a byte stream back into payloads.

    Usage::

        decoder = FrameDecoder()
        for result in decoder.feed_bytes(data):
            if isinstance(result, ValidFrame):
                sink.write(result.payload)

    A single instance must not be fed from several threads at once.
    """

    def __init__(self, max_frame_size: int = DEFAULT_MAX_FRAME_SIZE) -> None:
        if max_frame_size < CHECKSUM_SIZE:
            raise ValueError(
                f"max_frame_size must be at least {CHECKSUM_SIZE}, got {max_frame_size}"
            )
        self._max_frame_size = max_frame_size
        self._state = ReceiveState.IDLE
        self._buffer = bytearray()

    @property
    def state(self) -> ReceiveState:
        return self._state

    @property
    def max_frame_size(self) -> int:
        return self._max_frame_size

    @property
    def buffered(self) -> int:
        """Number of unescaped bytes collected for the current frame."""
        return len(self._buffer)

    def reset(self) -> None:
        """Drop any partial frame and wait for the next delimiter."""
        self._buffer.clear()
        self._state = ReceiveState.IDLE

    def feed(self, byte: int) -> DecodeResult | None:
        """Process one byte from the channel.

        Args:
            byte: The next byte, as an int in ``0..255``.

        Returns:
            A ``ValidFrame`` or ``Discarded`` when this byte ends a frame,
            otherwise ``None``.

        Raises:
            ValueError: If ``byte`` is not in ``0..255``.
        """
        if not 0 <= byte <= 0xFF:
            raise ValueError(f"byte must be in 0..255, got {byte}")

        if self._state is ReceiveState.IDLE:
            if byte == DELIMITER:
                self._buffer.clear()
                self._state = ReceiveState.IN_FRAME
            return None

        if self._state is ReceiveState.IN_FRAME:
            if byte == DELIMITER:
                return self._close_frame()
            if byte == ESCAPE:
                self._state = ReceiveState.IN_ESCAPE
                return None
            if len(self._buffer) >= self._max_frame_size:
                return self._discard(DiscardReason.OVERSIZED_FRAME)
            self._buffer.append(byte)
            return None

        # IN_ESCAPE
        if byte == DELIMITER or byte == ESCAPE:
            if len(self._buffer) >= self._max_frame_size:
                return self._discard(DiscardReason.OVERSIZED_FRAME)
            self._buffer.append(byte)
            self._state = ReceiveState.IN_FRAME
            return None
        return self._discard(DiscardReason.INVALID_ESCAPE)

    def feed_bytes(self, data: Iterable[int]) -> Iterator[DecodeResult]:
        """Feed every byte of ``data`` and yield each result as it occurs."""
        for byte in data:
            result = self.feed(byte)
            if result is not None:
                yield result

    def decode(self, data: bytes) -> list[DecodeResult]:
        """Feed ``data`` and return all results it produced."""
        return list(self.feed_bytes(data))

    def _close_frame(self) -> DecodeResult:
        if len(self._buffer) < CHECKSUM_SIZE:
            return self._discard(DiscardReason.SHORT_FRAME)

        payload = bytes(self._buffer[:-CHECKSUM_SIZE])
        received = int.from_bytes(self._buffer[-CHECKSUM_SIZE:], "big")
        self.reset()
        if crc16(payload) != received:
            return Discarded(DiscardReason.CHECKSUM_MISMATCH)
        return ValidFrame(payload)

    def _discard(self, reason: DiscardReason) -> Discarded:
        self.reset()
        return Discarded(reason)


def decode_frames(
    data: bytes,
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
) -> list[bytes]:
    """Decode a complete byte string and return only the valid payloads."""
    decoder = FrameDecoder(max_frame_size)
    return [r.payload for r in decoder.feed_bytes(data) if isinstance(r, ValidFrame)]
