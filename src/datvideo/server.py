"""MCP server entry point for the datvideo framing tools.

Exposes the codec, file encode/decode and the USB HID link as tools,
resources and prompts via the Model Context Protocol using the official
Python MCP SDK with stdio transport.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from mcp.server.fastmcp import FastMCP

from .models.settings import FramingSettings
from .protocol.decoder import Discarded, DiscardReason, FrameDecoder, ValidFrame
from .protocol.framing import (
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_FRAME_SIZE,
    DELIMITER,
    ESCAPE,
    encode_frame,
)
from .transport import stream_io
from .transport.stream_io import DecodeStats, iter_chunks
from .transport.usb_connection import HID_REPORT_SIZE, READ_TIMEOUT_MS, USBConnection
from .utils.crc import CRC16_INIT, CRC16_POLY, crc16

logger = logging.getLogger(__name__)

mcp = FastMCP(
    "datvideo",
    instructions="Encode and decode RFC-1662 style framed byte streams",
)

# Global link state
_connection: USBConnection | None = None


def _get_connection() -> USBConnection:
    """Get the active HID link, raising if not connected."""
    if _connection is None or not _connection.connected:
        raise RuntimeError(
            "Not connected to device. Use the 'connect' tool first."
        )
    return _connection


def _parse_hex(data_hex: str) -> bytes:
    return bytes.fromhex(data_hex.replace(":", " "))


def _result_to_dict(result: ValidFrame | Discarded) -> dict[str, Any]:
    if isinstance(result, ValidFrame):
        return {"valid": True, "payload": result.payload.hex()}
    return {"valid": False, "reason": result.reason.value}


# ─── CODEC TOOLS ──────────────────────────────────────────────────────

@mcp.tool()
def compute_checksum(payload_hex: str) -> dict[str, Any]:
    """Compute the CRC-16 frame check value of a payload.

    Args:
        payload_hex: Payload bytes as hex (spaces allowed).
    """
    try:
        payload = _parse_hex(payload_hex)
    except ValueError as e:
        return {"error": f"Invalid hex: {e}"}
    return {"length": len(payload), "crc16": f"0x{crc16(payload):04X}"}


@mcp.tool()
def encode_payload(payload_hex: str) -> dict[str, Any]:
    """Encode one payload into a delimited, escaped frame.

    Args:
        payload_hex: Payload bytes as hex (spaces allowed).
    """
    try:
        payload = _parse_hex(payload_hex)
    except ValueError as e:
        return {"error": f"Invalid hex: {e}"}
    frame = encode_frame(payload)
    return {
        "frame": frame.hex(" "),
        "payload_length": len(payload),
        "frame_length": len(frame),
        "crc16": f"0x{crc16(payload):04X}",
    }


@mcp.tool()
def decode_bytes(
    data_hex: str,
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
) -> dict[str, Any]:
    """Decode a captured byte stream into payloads and discard notices.

    Args:
        data_hex: Raw channel bytes as hex (spaces allowed).
        max_frame_size: Largest frame to buffer before discarding it.
    """
    try:
        data = _parse_hex(data_hex)
        decoder = FrameDecoder(max_frame_size)
    except ValueError as e:
        return {"error": str(e)}

    results = [_result_to_dict(r) for r in decoder.feed_bytes(data)]
    return {
        "results": results,
        "valid": sum(1 for r in results if r["valid"]),
        "discarded": sum(1 for r in results if not r["valid"]),
        "trailing_bytes": decoder.buffered,
    }


# ─── FILE TOOLS ───────────────────────────────────────────────────────

@mcp.tool()
def encode_file(
    input_path: str,
    output_path: str,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> dict[str, Any]:
    """Encode a file into a framed stream, one frame per chunk.

    Args:
        input_path: File to read.
        output_path: File to write the frames to.
        chunk_size: Payload bytes per frame (default 188).
    """
    try:
        settings = FramingSettings(chunk_size=chunk_size).validate()
        stats = stream_io.encode_file(Path(input_path), Path(output_path), settings)
    except (ValueError, OSError) as e:
        return {"error": str(e)}
    return {"output": output_path, **stats.to_dict()}


@mcp.tool()
def decode_file(
    input_path: str,
    output_path: str,
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
) -> dict[str, Any]:
    """Decode a framed stream file back into the original bytes.

    Args:
        input_path: Framed file to read.
        output_path: File to write recovered payloads to.
        max_frame_size: Largest frame to buffer before discarding it.
    """
    try:
        settings = FramingSettings(max_frame_size=max_frame_size).validate()
        stats = stream_io.decode_file(Path(input_path), Path(output_path), settings)
    except (ValueError, OSError) as e:
        return {"error": str(e)}
    return {"output": output_path, **stats.to_dict()}


# ─── LINK TOOLS ───────────────────────────────────────────────────────

@mcp.tool()
def connect(vendor_id: int, product_id: int) -> dict[str, Any]:
    """Open a USB HID link to a device that relays the frame stream.

    Args:
        vendor_id: USB vendor ID.
        product_id: USB product ID.
    """
    global _connection
    if _connection is not None and _connection.connected:
        return {
            "connected": True,
            "message": "Already connected",
            "product": _connection.device_info.product,
        }

    _connection = USBConnection(vendor_id, product_id)
    info = _connection.open()
    return {
        "connected": True,
        "backend": _connection.backend,
        "product": info.product,
        "manufacturer": info.manufacturer,
    }


@mcp.tool()
def disconnect() -> dict[str, bool]:
    """Close the USB HID link."""
    global _connection
    if _connection is None:
        return {"disconnected": True}
    _connection.close()
    _connection = None
    return {"disconnected": True}


@mcp.tool()
def send_file(path: str, chunk_size: int = DEFAULT_CHUNK_SIZE) -> dict[str, Any]:
    """Send a file over the HID link as framed chunks.

    Args:
        path: File to send.
        chunk_size: Payload bytes per frame (default 188).
    """
    conn = _get_connection()
    try:
        settings = FramingSettings(chunk_size=chunk_size).validate()
        with open(path, "rb") as f:
            frames = conn.send_frames(iter_chunks(f, settings.chunk_size))
    except (ValueError, OSError) as e:
        return {"error": str(e)}
    return {"path": path, "frames": frames}


@mcp.tool()
def receive_file(
    path: str,
    timeout_ms: int = READ_TIMEOUT_MS,
    max_idle_reads: int = 3,
    max_frame_size: int = DEFAULT_MAX_FRAME_SIZE,
) -> dict[str, Any]:
    """Receive framed data over the HID link and write payloads to a file.

    Reading stops after ``max_idle_reads`` consecutive timeouts.

    Args:
        path: File to write recovered payloads to.
        timeout_ms: Per-report read timeout.
        max_idle_reads: Consecutive timeouts that end the transfer.
        max_frame_size: Largest frame to buffer before discarding it.
    """
    conn = _get_connection()
    try:
        decoder = FrameDecoder(max_frame_size)
    except ValueError as e:
        return {"error": str(e)}

    stats = DecodeStats()
    try:
        with open(path, "wb") as out:
            for result in conn.receive_payloads(decoder, timeout_ms, max_idle_reads):
                if isinstance(result, ValidFrame):
                    out.write(result.payload)
                    stats.frames += 1
                    stats.payload_bytes += len(result.payload)
                else:
                    logger.warning("Frame discarded: %s", result.reason.value)
                    stats.record_discard(result.reason)
    except OSError as e:
        return {"error": str(e)}
    return {"path": path, **stats.to_dict()}


# ─── MCP RESOURCES ───────────────────────────────────────────────────

@mcp.resource("datvideo://wire/format")
def resource_wire_format() -> str:
    """Frame layout, control bytes and checksum parameters."""
    return json.dumps({
        "delimiter": f"0x{DELIMITER:02X}",
        "escape": f"0x{ESCAPE:02X}",
        "checksum": {
            "algorithm": "CRC-16/CCITT-FALSE",
            "polynomial": f"0x{CRC16_POLY:04X}",
            "init": f"0x{CRC16_INIT:04X}",
            "byte_order": "big-endian",
        },
        "layout": ["delimiter", "escaped payload", "escaped checksum", "delimiter"],
        "default_chunk_size": DEFAULT_CHUNK_SIZE,
        "default_max_frame_size": DEFAULT_MAX_FRAME_SIZE,
        "discard_reasons": [r.value for r in DiscardReason],
    })


@mcp.resource("datvideo://link/status")
def resource_link_status() -> str:
    """HID link connection state."""
    if _connection is None or not _connection.connected:
        return json.dumps({"connected": False})

    info = _connection.device_info
    return json.dumps({
        "connected": True,
        "backend": _connection.backend,
        "manufacturer": info.manufacturer,
        "product": info.product,
        "vendor_id": f"0x{info.vendor_id:04X}",
        "product_id": f"0x{info.product_id:04X}",
        "report_size": HID_REPORT_SIZE,
    })


# ─── MCP PROMPTS ─────────────────────────────────────────────────────

@mcp.prompt()
def diagnose_capture(path: str) -> str:
    """Guide the AI through diagnosing a damaged framed capture.

    Args:
        path: Framed file to inspect.
    """
    return f"""Decode {path} with the decode_file tool and review the discard counts.
Consider:
- "checksum mismatch" means frames arrived intact but corrupted in transit
- "short frame" usually means stray delimiters between frames
- "invalid escape" points at dropped or inserted bytes
- "frame too long" means delimiters were lost or max_frame_size is too small

Use decode_bytes on a small hex excerpt to see individual frames."""


# ─── ENTRY POINT ─────────────────────────────────────────────────────

def main():
    """Run the MCP server with stdio transport."""
    logging.basicConfig(level=logging.INFO)
    mcp.run(transport="stdio")


if __name__ == "__main__":
    main()
