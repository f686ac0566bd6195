"""Length-prefixed framing of byte streams.

Each frame is a 4-byte big-endian length followed by that many bytes.
A zero-length frame marks the end of the stream.
"""

from __future__ import annotations

import getopt
import io
import struct
import sys
from collections.abc import Callable
from typing import BinaryIO, Optional

DEFAULT_FRAME_SIZE = 4096
_READ_BUFFER_SIZE = 4096
_HEADER = struct.Struct(">I")

_USAGE = (
    "Usage: framing-helper [OPTION]...\n"
    "\n"
    "Options:\n"
    "  -d  Verify and remove framing\n"
    "  -e  Add framing\n"
    "  -n <value>  Max frame size when adding framing (default 4096)\n"
    "  -v  Verbose\n"
)

Logger = Optional[Callable[[str], None]]


class FramingError(Exception):
    """Raised when framed input ends in the middle of a frame."""


def _add_framing_stream(
    source: BinaryIO,
    sink: BinaryIO,
    frame_size: int,
    log: Logger = None,
) -> None:
    if frame_size < 0:
        raise ValueError("frame_size must not be negative")
    while frame_size > 0:
        chunk = source.read(frame_size)
        if not chunk:
            break
        if log:
            log(f"Writing {len(chunk)} byte frame\n")
        sink.write(_HEADER.pack(len(chunk)))
        sink.write(chunk)
        if len(chunk) != frame_size:
            break
    if log:
        log("Writing EOF frame\n")
    sink.write(_HEADER.pack(0))


def _remove_framing_stream(
    source: BinaryIO,
    sink: BinaryIO,
    log: Logger = None,
) -> None:
    remaining = 0
    while True:
        wanted = _HEADER.size if remaining == 0 else min(remaining, _READ_BUFFER_SIZE)
        chunk = source.read(wanted)

        # A clean end of input between frames.
        if remaining == 0 and not chunk:
            break

        if len(chunk) != wanted:
            raise FramingError(
                f"Expected to read {wanted} bytes, but only got {len(chunk)} bytes."
            )

        if remaining == 0:
            (remaining,) = _HEADER.unpack(chunk)
            if log:
                log(f"Going to read {remaining} byte frame\n")
            if remaining == 0:
                break
        else:
            sink.write(chunk)
            remaining -= len(chunk)


def add_framing(data: bytes, frame_size: int = DEFAULT_FRAME_SIZE) -> bytes:
    """Split data into frames of at most frame_size bytes and end with an EOF frame."""
    sink = io.BytesIO()
    _add_framing_stream(io.BytesIO(data), sink, frame_size)
    return sink.getvalue()


def remove_framing(data: bytes) -> bytes:
    """Check and strip framing, returning the payload up to the EOF frame."""
    sink = io.BytesIO()
    _remove_framing_stream(io.BytesIO(data), sink)
    return sink.getvalue()


def main(argv: list[str] | None = None) -> int:
    """Add (-e, default) or remove (-d) framing between stdin and stdout."""
    args = sys.argv[1:] if argv is None else list(argv)
    stdout = sys.stdout.buffer

    def usage() -> int:
        stdout.write(_USAGE.encode("ascii"))
        stdout.flush()
        return 1

    try:
        opts, _rest = getopt.getopt(args, "den:v")
    except getopt.GetoptError:
        return usage()

    remove = False
    frame_size = DEFAULT_FRAME_SIZE
    verbose = False
    for opt, value in opts:
        if opt == "-d":
            remove = True
        elif opt == "-e":
            remove = False
        elif opt == "-n":
            try:
                frame_size = int(value, 0)
            except ValueError:
                return usage()
            if frame_size < 0:
                return usage()
        elif opt == "-v":
            verbose = True

    log: Logger = sys.stderr.write if verbose else None

    stdin = sys.stdin.buffer
    try:
        if remove:
            _remove_framing_stream(stdin, stdout, log)
        else:
            _add_framing_stream(stdin, stdout, frame_size, log)
    except FramingError as exc:
        stdout.flush()
        sys.stderr.write(f"{exc}\n")
        return 1
    stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())