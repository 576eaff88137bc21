"""Encode and decode loops over binary file objects.

The encoder side slices its source into fixed-size chunks and writes one
frame per chunk. The decoder side reads the source in blocks, pushes every
byte through a ``FrameDecoder`` and writes each recovered payload.

Write failures on the destination are logged and counted but never retried,
and they never stop the loop.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO

from ..models.settings import DEFAULT_READ_SIZE, FramingSettings
from ..protocol.decoder import Discarded, DiscardReason, FrameDecoder, ValidFrame
from ..protocol.framing import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_FRAME_SIZE, encode_frame

logger = logging.getLogger(__name__)


@dataclass
class EncodeStats:
    """Counters for one encode run."""

    frames: int = 0
    payload_bytes: int = 0
    frame_bytes: int = 0
    write_errors: int = 0

    def to_dict(self) -> dict:
        return {
            "frames": self.frames,
            "payload_bytes": self.payload_bytes,
            "frame_bytes": self.frame_bytes,
            "write_errors": self.write_errors,
        }


@dataclass
class DecodeStats:
    """Counters for one decode run."""

    frames: int = 0
    payload_bytes: int = 0
    discards: dict[DiscardReason, int] = field(default_factory=dict)
    write_errors: int = 0

    @property
    def discarded(self) -> int:
        return sum(self.discards.values())

    def record_discard(self, reason: DiscardReason) -> None:
        self.discards[reason] = self.discards.get(reason, 0) + 1

    def to_dict(self) -> dict:
        return {
            "frames": self.frames,
            "payload_bytes": self.payload_bytes,
            "discarded": self.discarded,
            "discards": {r.value: n for r, n in self.discards.items()},
            "write_errors": self.write_errors,
        }


def iter_chunks(src: BinaryIO, chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """Yield ``chunk_size`` byte chunks from ``src`` until EOF.

    The final chunk may be shorter. Short reads from pipes are topped up so
    every chunk but the last is full.
    """
    if chunk_size < 1:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")

    while True:
        chunk = src.read(chunk_size)
        if not chunk:
            return
        while len(chunk) < chunk_size:
            more = src.read(chunk_size - len(chunk))
            if not more:
                break
            chunk += more
        yield chunk


def _write(dst: BinaryIO, data: bytes, what: str) -> bool:
    """Write ``data`` to ``dst``, logging instead of raising on failure."""
    try:
        written = dst.write(data)
    except OSError as e:
        logger.error("Failed to write %s: %s", what, e)
        return False
    if written is not None and written != len(data):
        logger.error("Failed to write %s: wrote %d of %d bytes", what, written, len(data))
        return False
    return True


def encode_stream(
    src: BinaryIO,
    dst: BinaryIO,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> EncodeStats:
    """Encode ``src`` into ``dst`` as one frame per ``chunk_size`` chunk.

    An empty source produces no frames.

    Returns:
        Counters for the run.
    """
    stats = EncodeStats()
    for chunk in iter_chunks(src, chunk_size):
        frame = encode_frame(chunk)
        stats.frames += 1
        stats.payload_bytes += len(chunk)
        if _write(dst, frame, "frame"):
            stats.frame_bytes += len(frame)
        else:
            stats.write_errors += 1

    _flush(dst)
    logger.debug(
        "Encoded %d bytes into %d frames", stats.payload_bytes, stats.frames
    )
    return stats


def decode_stream(
    src: BinaryIO,
    dst: BinaryIO,
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
    read_size: int = DEFAULT_READ_SIZE,
    on_discard: Callable[[Discarded], None] | None = None,
) -> DecodeStats:
    """Decode frames from ``src`` and write their payloads to ``dst``.

    Malformed frames are skipped. Each one is logged, counted by reason
    and passed to ``on_discard`` if given.

    Returns:
        Counters for the run.
    """
    if read_size < 1:
        raise ValueError(f"read_size must be positive, got {read_size}")

    decoder = FrameDecoder(max_frame_size)
    stats = DecodeStats()
    while True:
        block = src.read(read_size)
        if not block:
            break
        for result in decoder.feed_bytes(block):
            if isinstance(result, ValidFrame):
                stats.frames += 1
                if _write(dst, result.payload, "payload"):
                    stats.payload_bytes += len(result.payload)
                else:
                    stats.write_errors += 1
            else:
                logger.warning("Frame discarded: %s", result.reason.value)
                stats.record_discard(result.reason)
                if on_discard is not None:
                    on_discard(result)

    if decoder.buffered:
        logger.debug("Input ended inside a frame, dropping %d bytes", decoder.buffered)
    _flush(dst)
    return stats


def _flush(dst: BinaryIO) -> None:
    try:
        dst.flush()
    except OSError as e:
        logger.error("Failed to flush output: %s", e)


def encode_file(
    in_path: str | Path,
    out_path: str | Path,
    settings: FramingSettings | None = None,
) -> EncodeStats:
    """Encode the file at ``in_path`` into ``out_path``."""
    settings = (settings or FramingSettings()).validate()
    with open(in_path, "rb") as src, open(out_path, "wb") as dst:
        return encode_stream(src, dst, settings.chunk_size)


def decode_file(
    in_path: str | Path,
    out_path: str | Path,
    settings: FramingSettings | None = None,
) -> DecodeStats:
    """Decode the framed file at ``in_path`` into ``out_path``."""
    settings = (settings or FramingSettings()).validate()
    with open(in_path, "rb") as src, open(out_path, "wb") as dst:
        return decode_stream(src, dst, settings.max_frame_size, settings.read_size)
