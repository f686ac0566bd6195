"""Reading and writing U-Boot environment blocks, plain or redundant."""

from __future__ import annotations

import zlib
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from fwupkit.util import BLOCK_SIZE, FwupError

_UINT16_MAX = 0xFFFF
_INT32_MAX = 0x7FFFFFFF
_ENCODING = "utf-8"
_ERRORS = "surrogateescape"


class BlockDevice(Protocol):
    """Random-access storage holding the environment."""

    def pread(self, count: int, offset: int) -> bytes: ...

    def pwrite(self, data: bytes, offset: int, streamed: bool) -> None: ...


def _setting(cfg: Mapping[str, Any], key: str, default: int) -> int:
    value = cfg.get(key)
    return default if value is None else int(value)


def verify_cfg(cfg: Mapping[str, Any]) -> None:
    """Check a uboot-environment section; raise FwupError if it is invalid."""
    block_offset = _setting(cfg, "block-offset", -1)
    if block_offset < 0:
        raise FwupError("block-offset must be specified and less than 2^31 - 1")

    block_count = _setting(cfg, "block-count", 0)
    if block_count <= 0 or block_count >= _UINT16_MAX:
        raise FwupError(
            "block-count must be specified, greater than 0 and less than 2^16 - 1"
        )

    redund = _setting(cfg, "block-offset-redund", -1)
    if redund >= 0:
        if redund >= _INT32_MAX:
            raise FwupError("block-offset-redund must be less than 2^31 - 1")
        left = redund
        right = redund + block_count
        if (block_offset <= left < block_offset + block_count) or (
            block_offset < right < block_offset + block_count
        ):
            raise FwupError("block-offset-redund can't overlap primary U-Boot environment")


def _signed8(value: int) -> int:
    return value - 256 if value >= 128 else value


@dataclass
class UBootEnv:
    """A U-Boot environment: its location on disk and its variables.

    With a redundant copy, writes alternate between the two locations and
    the flag byte counts up so the newest copy can be found.
    """

    block_offset: int
    block_count: int
    use_redundant: bool = False
    redundant_block_offset: int = 0
    write_primary: bool = True
    write_secondary: bool = False
    flags: int = 0
    vars: dict[str, str] = field(default_factory=dict)

    @property
    def env_size(self) -> int:
        return self.block_count * BLOCK_SIZE

    @property
    def _data_offset(self) -> int:
        return 5 if self.use_redundant else 4

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any]) -> UBootEnv:
        """Create an empty environment described by a uboot-environment section."""
        block_offset = _setting(cfg, "block-offset", -1)
        block_count = _setting(cfg, "block-count", 0)
        redund = _setting(cfg, "block-offset-redund", -1)

        if block_count <= 0 or block_count >= _UINT16_MAX:
            raise FwupError("invalid u-boot environment block count")

        if redund >= 0:
            return cls(
                block_offset=block_offset,
                block_count=block_count,
                use_redundant=True,
                redundant_block_offset=redund,
                write_primary=True,
                write_secondary=True,
            )
        return cls(
            block_offset=block_offset,
            block_count=block_count,
            redundant_block_offset=block_offset,
        )

    def setenv(self, name: str, value: str) -> None:
        """Set a variable, replacing any previous value."""
        self.vars[name] = value

    def unsetenv(self, name: str) -> None:
        """Remove a variable if it is set."""
        self.vars.pop(name, None)

    def getenv(self, name: str) -> str:
        """Return a variable's value; raise FwupError if it is not set."""
        try:
            return self.vars[name]
        except KeyError:
            raise FwupError(f"variable '{name}' not found") from None

    def _decode(self, buffer: bytes) -> dict[str, str]:
        start = self._data_offset
        expected = int.from_bytes(buffer[0:4], "little")
        data = buffer[start:self.env_size]
        actual = zlib.crc32(data) & 0xFFFFFFFF
        if expected != actual:
            raise FwupError(
                f"U-boot environment (block {self.block_offset}) CRC32 mismatch "
                f"(expected 0x{expected:08x}; got 0x{actual:08x})"
            )

        result: dict[str, str] = {}
        end = len(data)
        pos = 0
        while pos != end and data[pos] != 0:
            eq = pos + 1
            while True:
                if eq == end or data[eq] == 0:
                    raise FwupError("Invalid U-boot environment")
                if data[eq] == ord("="):
                    break
                eq += 1
            value_end = data.find(b"\x00", eq + 1)
            if value_end < 0:
                raise FwupError("Invalid U-boot environment")
            name = data[pos:eq].decode(_ENCODING, _ERRORS)
            value = data[eq + 1:value_end].decode(_ENCODING, _ERRORS)
            result[name] = value
            pos = value_end + 1
        return result

    def _encode(self) -> bytearray:
        buffer = bytearray(b"\xff" * self.env_size)
        start = self._data_offset
        p = start
        end = self.env_size - 2

        pairs = sorted(
            (
                name.encode(_ENCODING, _ERRORS),
                value.encode(_ENCODING, _ERRORS),
            )
            for name, value in self.vars.items()
        )
        for name, value in pairs:
            if p + len(name) + 1 + len(value) >= end:
                raise FwupError("Not enough room in U-boot environment")
            entry = name + b"=" + value + b"\x00"
            buffer[p:p + len(entry)] = entry
            p += len(entry)

        buffer[p] = 0

        crc = zlib.crc32(bytes(buffer[start:])) & 0xFFFFFFFF
        buffer[0:4] = crc.to_bytes(4, "little")
        return buffer

    def _pread(self, device: BlockDevice, block: int, what: str) -> bytes:
        try:
            data = device.pread(self.env_size, block * BLOCK_SIZE)
        except OSError as exc:
            raise FwupError(f"unexpected error reading {what}: {exc.strerror or exc}") from exc
        if len(data) != self.env_size:
            raise FwupError(f"unexpected error reading {what}: short read")
        return bytes(data)

    def read(self, device: BlockDevice) -> None:
        """Load the variables from device, choosing the newest valid copy."""
        if self.use_redundant:
            self._read_redundant(device)
        else:
            self._read_non_redundant(device)

    def _read_non_redundant(self, device: BlockDevice) -> None:
        self.write_primary = True
        self.write_secondary = False
        self.flags = 0
        self.vars = {}
        buffer = self._pread(device, self.block_offset, "uboot environment")
        self.vars = self._decode(buffer)

    def _read_redundant(self, device: BlockDevice) -> None:
        self.write_primary = False
        self.write_secondary = False
        self.flags = 0
        self.vars = {}

        buffer1 = self._pread(device, self.block_offset, "primary uboot environment")
        buffer2 = self._pread(
            device, self.redundant_block_offset, "redundant uboot environment"
        )

        # The flag byte is a counter; the larger one was written last.
        flag1 = _signed8(buffer1[4])
        flag2 = _signed8(buffer2[4])

        if flag1 - flag2 >= 0:
            first, second = buffer1, buffer2
            first_flag, second_flag = flag1, flag2
            primary_first = True
        else:
            first, second = buffer2, buffer1
            first_flag, second_flag = flag2, flag1
            primary_first = False

        try:
            self.vars = self._decode(first)
        except FwupError:
            pass
        else:
            self.flags = first_flag & 0xFF
            if primary_first:
                self.write_secondary = True
            else:
                self.write_primary = True
            return

        self.flags = second_flag & 0xFF
        if primary_first:
            self.write_primary = True
        else:
            self.write_secondary = True
        try:
            self.vars = self._decode(second)
        except FwupError:
            self.vars = {}
            if primary_first:
                self.write_secondary = True
            else:
                self.write_primary = True
            raise

    def write(self, device: BlockDevice) -> None:
        """Encode the variables and write them to the selected copies."""
        buffer = self._encode()
        if self.use_redundant:
            buffer[4] = (self.flags + 1) & 0xFF
        data = bytes(buffer)

        if self.write_primary:
            try:
                device.pwrite(data, self.block_offset * BLOCK_SIZE, False)
            except OSError as exc:
                raise FwupError(
                    f"unexpected error writing uboot environment: {exc.strerror or exc}"
                ) from exc

        if self.write_secondary:
            try:
                device.pwrite(data, self.redundant_block_offset * BLOCK_SIZE, False)
            except OSError as exc:
                raise FwupError(
                    "unexpected error writing redundant uboot environment: "
                    f"{exc.strerror or exc}"
                ) from exc