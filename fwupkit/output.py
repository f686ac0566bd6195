"""User-facing output: plain or framed messages, warnings, errors and exit."""

from __future__ import annotations

import enum
import os
import struct
import sys
from dataclasses import dataclass, field
from typing import BinaryIO, NoReturn

_EXIT_HANDSHAKE_BYTE = 0x1A
_DRAIN_CHUNK = 4096
_CLEAR_LINE = b"\r\033[K"


class FrameType(str, enum.Enum):
    """Two-letter type tags carried in framed output."""

    SUCCESS = "OK"
    ERROR = "ER"
    WARNING = "WN"
    PROGRESS = "PR"


class ProgressMode(enum.Enum):
    """How progress is shown to the user."""

    OFF = enum.auto()
    NUMERIC = enum.auto()
    NORMAL = enum.auto()
    FRAMING = enum.auto()


def _default_stdout() -> BinaryIO:
    return sys.stdout.buffer


@dataclass
class Reporter:
    """Writes messages to a binary stream, framed or plain.

    With framing on, every message is preceded by a 4-byte big-endian length
    (the text length plus 4), the two-letter type and a 2-byte big-endian code.
    """

    stream: BinaryIO = field(default_factory=_default_stdout)
    framing: bool = False
    progress_mode: ProgressMode = ProgressMode.OFF
    verbose: bool = False
    handshake_on_exit: bool = False
    handshake_input: BinaryIO | None = None

    def output(self, kind: FrameType | str, code: int, text: str) -> None:
        """Send text of the given type, with a frame header when framing."""
        frame_type = FrameType(kind)
        payload = text.encode("utf-8")
        if self.framing:
            header = struct.pack(">I", (len(payload) + 4) & 0xFFFFFFFF)
            header += frame_type.value.encode("ascii")
            header += struct.pack(">H", code & 0xFFFF)
            self.stream.write(header)
        elif self.progress_mode is ProgressMode.NORMAL and payload:
            # Clear the progress bar line before printing the message.
            self.stream.write(_CLEAR_LINE)
        if payload:
            self.stream.write(payload)
        self.stream.flush()

    def _decorate(self, message: str) -> str:
        if self.framing:
            return message
        return f"fwup: {message}\n"

    def warnx(self, message: str) -> None:
        """Print a warning."""
        self.output(FrameType.WARNING, 0, self._decorate(message))

    def info(self, message: str) -> None:
        """Print a warning, but only in verbose mode."""
        if self.verbose:
            self.warnx(message)

    def errx(self, status: int, message: str) -> NoReturn:
        """Print an error and exit with status."""
        self.output(FrameType.ERROR, 0, self._decorate(message))
        self.exit(status)

    def err(self, status: int, message: str) -> NoReturn:
        """Print an error with the reason of the exception being handled, then exit."""
        if self.framing:
            text = message
        else:
            text = f"fwup: {message}: {_current_error_reason()}\n"
        self.output(FrameType.ERROR, 0, text)
        self.exit(status)

    def exit(self, status: int) -> NoReturn:
        """Exit, first performing the exit handshake if it was requested."""
        if self.handshake_on_exit:
            self._handshake(status)
        raise SystemExit(status)

    def _handshake(self, status: int) -> None:
        try:
            self.stream.write(bytes((_EXIT_HANDSHAKE_BYTE, status & 0xFF)))
            self.stream.flush()
        except OSError:
            sys.stderr.write("fwup: Error sending Ctrl+Z as part of the exit handshake")

        source = self.handshake_input
        if source is None:
            source = sys.stdin.buffer
        while True:
            try:
                chunk = source.read(_DRAIN_CHUNK)
            except InterruptedError:
                continue
            except OSError:
                break
            if not chunk:
                break


def _current_error_reason() -> str:
    exc = sys.exc_info()[1]
    if isinstance(exc, OSError) and exc.strerror:
        return exc.strerror
    if exc is not None and str(exc):
        return str(exc)
    return os.strerror(0)