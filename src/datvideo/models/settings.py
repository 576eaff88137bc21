"""Framing settings shared by the CLI, the MCP server and stream I/O."""

from __future__ import annotations

from dataclasses import asdict, dataclass

from ..protocol.framing import CHECKSUM_SIZE, DEFAULT_CHUNK_SIZE, DEFAULT_MAX_FRAME_SIZE

DEFAULT_READ_SIZE = 4096


@dataclass
class FramingSettings:
    """Tunable sizes for encoding and decoding.

    ``chunk_size`` is the payload size the encoder slices its input into.
    ``max_frame_size`` caps the decoder's buffer for a single frame.
    ``read_size`` is how many bytes the decode loop reads per call.
    """

    chunk_size: int = DEFAULT_CHUNK_SIZE
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE
    read_size: int = DEFAULT_READ_SIZE

    def validate(self) -> FramingSettings:
        """Check the settings, returning ``self`` so calls can be chained.

        Raises:
            ValueError: If any size is out of range.
        """
        if self.chunk_size < 1:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.max_frame_size < CHECKSUM_SIZE:
            raise ValueError(
                f"max_frame_size must be at least {CHECKSUM_SIZE}, "
                f"got {self.max_frame_size}"
            )
        if self.read_size < 1:
            raise ValueError(f"read_size must be positive, got {self.read_size}")
        return self

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> FramingSettings:
        known = {k: int(v) for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known).validate()
