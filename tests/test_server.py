"""Tests for the MCP server tools, with FastMCP mocked out."""

from __future__ import annotations

import json
import sys
from unittest.mock import MagicMock, patch

from datvideo.protocol.decoder import Discarded, DiscardReason, ValidFrame
from datvideo.protocol.framing import encode_frame


def _get_server_module():
    """Import server module with FastMCP mocked to avoid init issues."""
    mock_fastmcp_cls = MagicMock()
    mock_fastmcp_instance = MagicMock()
    # Make the @mcp.tool() decorator a no-op that returns the function unchanged
    mock_fastmcp_instance.tool.return_value = lambda fn: fn
    mock_fastmcp_instance.resource.return_value = lambda fn: fn
    mock_fastmcp_instance.prompt.return_value = lambda fn: fn
    mock_fastmcp_cls.return_value = mock_fastmcp_instance

    with patch.dict(sys.modules, {}):
        with patch("mcp.server.fastmcp.FastMCP", mock_fastmcp_cls):
            sys.modules.pop("datvideo.server", None)
            import datvideo.server as server_mod

    return server_mod


def test_compute_checksum():
    server = _get_server_module()
    result = server.compute_checksum("31 32 33 34 35 36 37 38 39")
    assert result == {"length": 9, "crc16": "0x29B1"}


def test_compute_checksum_bad_hex():
    server = _get_server_module()
    assert "error" in server.compute_checksum("zz")


def test_encode_payload():
    server = _get_server_module()
    result = server.encode_payload("01 7e 02")
    assert bytes.fromhex(result["frame"]) == encode_frame(b"\x01\x7e\x02")
    assert result["payload_length"] == 3


def test_decode_bytes():
    server = _get_server_module()
    data = encode_frame(b"\x01\x7e\x02") + b"\x7e\x7e" + b"\x7e\x05"
    result = server.decode_bytes(data.hex())
    assert result["results"] == [
        {"valid": True, "payload": "017e02"},
        {"valid": False, "reason": "short frame"},
    ]
    assert result["valid"] == 1
    assert result["discarded"] == 1
    assert result["trailing_bytes"] == 1


def test_decode_bytes_bad_limit():
    server = _get_server_module()
    assert "error" in server.decode_bytes("7e7e", max_frame_size=0)


def test_file_tools(tmp_path):
    server = _get_server_module()
    src = tmp_path / "a.bin"
    framed = tmp_path / "a.dat"
    out = tmp_path / "b.bin"
    src.write_bytes(bytes(range(256)))

    enc = server.encode_file(str(src), str(framed), chunk_size=100)
    assert enc["frames"] == 3
    dec = server.decode_file(str(framed), str(out))
    assert dec["frames"] == 3
    assert out.read_bytes() == src.read_bytes()


def test_encode_file_missing(tmp_path):
    server = _get_server_module()
    assert "error" in server.encode_file(str(tmp_path / "nope"), str(tmp_path / "o"))


def test_send_file_requires_connection(tmp_path):
    server = _get_server_module()
    server._connection = None
    try:
        server.send_file(str(tmp_path / "x"))
    except RuntimeError as e:
        assert "connect" in str(e)
    else:
        raise AssertionError("expected RuntimeError")


def test_send_file(tmp_path):
    server = _get_server_module()
    src = tmp_path / "a.bin"
    src.write_bytes(bytes(400))
    mock_conn = MagicMock()
    mock_conn.connected = True
    mock_conn.send_frames.side_effect = lambda chunks: len(list(chunks))
    server._connection = mock_conn

    assert server.send_file(str(src), chunk_size=188) == {"path": str(src), "frames": 3}


def test_receive_file(tmp_path):
    server = _get_server_module()
    mock_conn = MagicMock()
    mock_conn.connected = True
    mock_conn.receive_payloads.return_value = iter([
        ValidFrame(b"abc"),
        Discarded(DiscardReason.CHECKSUM_MISMATCH),
        ValidFrame(b"def"),
    ])
    server._connection = mock_conn

    out = tmp_path / "rx.bin"
    result = server.receive_file(str(out))
    assert out.read_bytes() == b"abcdef"
    assert result["frames"] == 2
    assert result["discards"] == {"checksum mismatch": 1}


def test_resources():
    server = _get_server_module()
    server._connection = None
    wire = json.loads(server.resource_wire_format())
    assert wire["delimiter"] == "0x7E"
    assert wire["escape"] == "0x7D"
    assert "frame too long" in wire["discard_reasons"]
    assert json.loads(server.resource_link_status()) == {"connected": False}


def test_disconnect_without_connection():
    server = _get_server_module()
    server._connection = None
    assert server.disconnect() == {"disconnected": True}
