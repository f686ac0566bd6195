"""Sparse file maps: alternating data and hole lengths, and reading by them."""

from __future__ import annotations

import os
import struct
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import Any

from fwupkit.util import FwupError

# After this many data/hole fragments, the rest is merged into one data fragment.
MAX_MAP_LEN = 256

_SEEK_DATA = getattr(os, "SEEK_DATA", None)
_SEEK_HOLE = getattr(os, "SEEK_HOLE", None)
HAVE_SPARSE_SEEK = _SEEK_DATA is not None and _SEEK_HOLE is not None


def _in_hole(index: int) -> bool:
    """Even map entries are data; odd ones are holes."""
    return (index & 1) != 0


@dataclass
class SparseFileMap:
    """Lengths of alternating data segments and holes, starting with data.

    A file that starts with a hole has 0 as its first entry. A file that
    is not sparse has a single entry: its length.
    """

    segments: list[int] = field(default_factory=list)

    @classmethod
    def from_resource(cls, resource: Mapping[str, Any]) -> SparseFileMap:
        """Read the map from a resource's "length" setting."""
        lengths = resource.get("length")
        if lengths is None:
            values: list[int] = []
        elif isinstance(lengths, (int, float)):
            values = [int(lengths)]
        else:
            values = [int(v) for v in lengths]
        # A missing length means a zero-length file.
        return cls(values or [0])

    @classmethod
    def from_config(cls, config: Mapping[str, Any], resource_name: str) -> SparseFileMap:
        """Read the map of the named file-resource in config."""
        resources = config.get("file-resource") or {}
        resource = resources.get(resource_name)
        if resource is None:
            raise FwupError(f"file-resource '{resource_name}' not found")
        return cls.from_resource(resource)

    def to_resource(self, resource: MutableMapping[str, Any]) -> None:
        """Store the map in a resource's "length" setting."""
        resource["length"] = list(self.segments)

    def build_from_fd(self, fd: int, sparse_disabled: bool = False) -> None:
        """Extend the map with the contents of the file open on fd.

        Call repeatedly to build one map across files that are concatenated.
        The file position of fd is left anywhere.
        """
        m = list(self.segments)
        if not m:
            i = 0
            leftover = 0
        else:
            # Continue from the last entry: the new file may start with
            # the same kind of segment the previous one ended with.
            i = len(m) - 1
            leftover = m[i]
        m.extend([0] * max(0, max(MAX_MAP_LEN, i + 2) - len(m)))

        offset = 0
        next_offset = 0

        if HAVE_SPARSE_SEEK and not sparse_disabled:
            while i < MAX_MAP_LEN - 2:
                whence = _SEEK_DATA if _in_hole(i) else _SEEK_HOLE
                try:
                    next_offset = os.lseek(fd, offset, whence)
                except OSError:
                    # Normal case: the end was reached.
                    next_offset = self._seek_end(fd)
                    if next_offset != offset or leftover:
                        m[i] = next_offset - offset + leftover
                        i += 1
                    self.segments = m[:i]
                    return
                if i >= 1 and offset == next_offset and m[i - 1] == 0:
                    # Both in a hole and in data, as with /dev/zero.
                    self.segments = m[:i]
                    return
                m[i] = next_offset - offset + leftover
                leftover = 0
                offset = next_offset
                i += 1

            # Out of entries: the remainder becomes one big data segment.
            if _in_hole(i):
                m[i] = next_offset - offset + leftover
                leftover = 0
                offset = next_offset
                i += 1

        end = self._seek_end(fd)
        m[i] = end - offset + leftover
        self.segments = m[: i + 1]

    @staticmethod
    def _seek_end(fd: int) -> int:
        try:
            return os.lseek(fd, 0, os.SEEK_END)
        except OSError as exc:
            raise FwupError(f"Can't seek to the end of the file: {exc.strerror}") from exc

    def size(self) -> int:
        """Total size of the file, holes included."""
        return sum(self.segments)

    def data_size(self) -> int:
        """Number of bytes in data segments."""
        return sum(self.segments[0::2])

    def ending_hole_size(self) -> int:
        """Size of the hole at the very end of the file, or 0."""
        if self.segments and len(self.segments) % 2 == 0:
            return self.segments[-1]
        return 0


class SparseFileReader:
    """Reads the data segments of one or more files as a sparse map says.

    The map is the truth: it decides what is a hole and what is data.
    """

    def __init__(self, sparse_map: SparseFileMap) -> None:
        self.map = sparse_map
        self.map_ix = 0
        self.offset_in_segment = 0

    @property
    def finished(self) -> bool:
        """True once every segment of the map has been passed."""
        return self.map_ix >= len(self.map.segments)

    def read_next_data(self, fd: int, offset: int, max_len: int) -> tuple[bytes, int]:
        """Read up to max_len bytes of the next data in fd starting at offset.

        Returns the data and the offset to read from next. Empty data means
        either the map is done or a hole runs past the end of this file.
        """
        segments = self.map.segments

        while True:
            if self.map_ix == len(segments):
                return b"", offset

            left_of_segment = segments[self.map_ix] - self.offset_in_segment
            if _in_hole(self.map_ix):
                end = os.lseek(fd, 0, os.SEEK_END)
                left_of_file = end - offset
                if left_of_file < left_of_segment:
                    # The hole continues into the next concatenated file.
                    self.offset_in_segment += left_of_file
                    return b"", end
                offset += left_of_segment
            elif left_of_segment != 0:
                break

            self.offset_in_segment = 0
            self.map_ix += 1

        to_read = min(segments[self.map_ix] - self.offset_in_segment, max_len)
        data = os.pread(fd, to_read, offset)

        self.offset_in_segment += len(data)
        if self.offset_in_segment == segments[self.map_ix]:
            self.offset_in_segment = 0
            self.map_ix += 1

        return data, offset + len(data)


def sparse_file_is_supported(testfile: str | os.PathLike[str], min_hole_size: int) -> None:
    """Raise FwupError unless the filesystem holding testfile makes holes.

    testfile is created, probed and removed.
    """
    if not HAVE_SPARSE_SEEK:
        raise FwupError("Sparse file support is not available on this platform.")

    try:
        fd = os.open(testfile, os.O_CREAT | os.O_RDWR | os.O_TRUNC, 0o600)
    except OSError as exc:
        raise FwupError(f"Couldn't create sparse test file: {os.fspath(testfile)}") from exc

    try:
        # Write anything past the start; if holes work, the start is one.
        marker = struct.pack("=i", fd)
        try:
            written = os.pwrite(fd, marker, min_hole_size)
        except OSError:
            written = -1
        if written != len(marker):
            raise FwupError(f"Sparse check write to offset {min_hole_size} failed.")

        try:
            offset = os.lseek(fd, 0, _SEEK_DATA)
        except OSError:
            offset = -1
        if offset != min_hole_size:
            raise FwupError(f"Hole of {min_hole_size} bytes not created on filesystem")
    finally:
        os.close(fd)
        os.unlink(testfile)