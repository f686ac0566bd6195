"""Turn sequential byte-sized writes into block-sized, block-aligned writes."""

from __future__ import annotations

from typing import Protocol

from fwupkit.util import BLOCK_SIZE


class BlockOutput(Protocol):
    """Where whole blocks end up."""

    def pwrite(self, data: bytes, offset: int, streamed: bool) -> None: ...


class BlockEncryptor(Protocol):
    """Encrypts data destined for the given byte offset."""

    def encrypt(self, data: bytes, offset: int) -> bytes: ...


class PadToBlockWriter:
    """Align arbitrary writes to block boundaries, zero-filling the gaps.

    Writes are expected to move forward, possibly skipping over holes.
    Nothing is ever read back, so partially written blocks are padded
    with zeros. Call flush() after the last write.
    """

    def __init__(self, output: BlockOutput, crypto: BlockEncryptor | None = None) -> None:
        self.output = output
        self.crypto = crypto
        self._buffer = bytearray(BLOCK_SIZE)
        self._index = 0
        self._offset = 0

    def _write_out(self, data: bytes, offset: int) -> None:
        if self.crypto is not None:
            data = self.crypto.encrypt(data, offset)
        self.output.pwrite(bytes(data), offset, True)

    def pwrite(self, data: bytes, offset: int) -> None:
        """Write data at byte offset; whole blocks are passed on as they fill."""
        view = memoryview(bytes(data))

        if self._index:
            current = self._offset + self._index
            max_index = self._offset + BLOCK_SIZE
            if offset < current:
                raise ValueError("Writing to previous locations isn't supported")

            if current < offset < max_index:
                # Zero-fill the skipped part of the block.
                skip = offset - current
                self._buffer[self._index:self._index + skip] = bytes(skip)
                self._index += skip
                current = offset

            if current == offset:
                to_copy = min(BLOCK_SIZE - self._index, len(view))
                self._buffer[self._index:self._index + to_copy] = view[:to_copy]
                self._index += to_copy
                view = view[to_copy:]
                offset += to_copy

                if self._index < BLOCK_SIZE:
                    return
                self._write_out(bytes(self._buffer), self._offset)
                self._index = 0
            else:
                self.flush()

        misalignment = offset % BLOCK_SIZE
        if misalignment:
            self._buffer[:misalignment] = bytes(misalignment)
            self._index = misalignment
            self._offset = offset - misalignment
            self.pwrite(view, offset)
            return

        if len(view) > BLOCK_SIZE:
            whole = len(view) - len(view) % BLOCK_SIZE
            self._write_out(bytes(view[:whole]), offset)
            offset += whole
            view = view[whole:]

        if view:
            self._buffer[:len(view)] = view
            self._index = len(view)
            self._offset = offset

    def flush(self) -> None:
        """Write out any partial block, zero-padded to a full block."""
        if self._index > 0:
            self._buffer[self._index:] = bytes(BLOCK_SIZE - self._index)
            self._write_out(bytes(self._buffer), self._offset)
            self._index = 0