"""Command-line tool for storing binary data on DAT tapes as framed streams."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from contextlib import ExitStack
from typing import BinaryIO

from . import __version__
from .models.settings import DEFAULT_READ_SIZE, FramingSettings
from .protocol.framing import DEFAULT_CHUNK_SIZE, DEFAULT_MAX_FRAME_SIZE
from .transport.stream_io import decode_stream, encode_stream

logger = logging.getLogger(__name__)

DESCRIPTION = "A tool for storing binary data on DAT tapes."


def _open(stack: ExitStack, path: str | None, mode: str) -> BinaryIO:
    if not path:
        return sys.stdin.buffer if "r" in mode else sys.stdout.buffer
    return stack.enter_context(open(path, mode))


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="datvideo", description=DESCRIPTION)
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    mode = p.add_mutually_exclusive_group(required=True)
    mode.add_argument("-e", "--encode", action="store_true", help="Put the tool in encode mode.")
    mode.add_argument("-d", "--decode", action="store_true", help="Put the tool in decode mode.")

    p.add_argument(
        "-i", "--input-file", metavar="PATH",
        help="The input file to use for the current operation. Do not specify for stdin.",
    )
    p.add_argument(
        "-o", "--output-file", metavar="PATH",
        help="The output file to use for the current operation. Do not specify for stdout.",
    )
    p.add_argument(
        "-s", "--chunk-size", type=int, default=DEFAULT_CHUNK_SIZE, metavar="BYTES",
        help="The size of chunks to split the file into. "
        "This is useful for streaming operations, like audio/video.",
    )
    p.add_argument(
        "--max-frame-size", type=int, default=DEFAULT_MAX_FRAME_SIZE, metavar="BYTES",
        help="Largest frame the decoder buffers before discarding it.",
    )
    p.add_argument("--read-size", type=int, default=DEFAULT_READ_SIZE, help=argparse.SUPPRESS)
    p.add_argument("--stats", action="store_true", help="Print run statistics as JSON to stderr.")
    p.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        stream=sys.stderr,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        settings = FramingSettings(
            chunk_size=args.chunk_size,
            max_frame_size=args.max_frame_size,
            read_size=args.read_size,
        ).validate()
    except ValueError as e:
        logger.error("Invalid settings: %s", e)
        return 1

    with ExitStack() as stack:
        try:
            src = _open(stack, args.input_file, "rb")
        except OSError as e:
            logger.error("Failed to open input file: %s", e)
            return 1
        try:
            dst = _open(stack, args.output_file, "wb")
        except OSError as e:
            logger.error("Failed to open output file: %s", e)
            return 1

        if args.encode:
            stats = encode_stream(src, dst, settings.chunk_size)
        else:
            stats = decode_stream(src, dst, settings.max_frame_size, settings.read_size)

    if args.stats:
        print(json.dumps(stats.to_dict(), indent=2), file=sys.stderr)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
