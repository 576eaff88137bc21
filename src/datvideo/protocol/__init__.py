"""Protocol layer: frame encoding and the streaming frame decoder."""

from .framing import DELIMITER, ESCAPE, encode_frame, encode_frames
from .decoder import (
    DecodeResult,
    Discarded,
    DiscardReason,
    FrameDecoder,
    ReceiveState,
    ValidFrame,
    decode_frames,
)
