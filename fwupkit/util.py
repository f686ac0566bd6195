"""Shared helpers: timestamps, hex and UUID conversion, units and paths."""

from __future__ import annotations

import datetime as _dt
import hashlib
import logging
import os
import re
import secrets
import stat
import sys
import time
from collections.abc import Callable, MutableMapping

logger = logging.getLogger(__name__)

BLOCK_SIZE = 512

ONE_KiB = 1024
ONE_MiB = 1024 * ONE_KiB
ONE_GiB = 1024 * ONE_MiB
ONE_TiB = 1024 * ONE_GiB

ONE_KB = 1000
ONE_MB = 1000 * ONE_KB
ONE_GB = 1000 * ONE_MB
ONE_TB = 1000 * ONE_GB

MAX_PUBLIC_KEYS = 10
PUBLIC_KEY_LEN = 32
PRIVATE_KEY_LEN = 32
SIGNATURE_LEN = 64
BLAKE2B_256_LEN = 32
BLAKE2B_512_LEN = 64

UUID_LENGTH = 16

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"
_TIMESTAMP_PREFIX = re.compile(r"\s*\d{1,4}-\d{1,2}-\d{1,2}T\d{1,2}:\d{1,2}:\d{1,2}Z")
_MAX_TIMESTAMP_LEN = 200

# The UUID that namespaces every UUID this package derives.
_FWUP_NAMESPACE_UUID = bytes(
    [0x20, 0x53, 0xDF, 0xFB, 0xD5, 0x1E, 0x43, 0x10,
     0xB9, 0x3B, 0x95, 0x6D, 0xA8, 0x9F, 0x9F, 0x34]
)

_UNIT_NAMES = {
    1: "bytes",
    ONE_KiB: "KiB",
    ONE_MiB: "MiB",
    ONE_GiB: "GiB",
    ONE_TiB: "TiB",
    ONE_KB: "KB",
    ONE_MB: "MB",
    ONE_GB: "GB",
    ONE_TB: "TB",
}

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


class FwupError(Exception):
    """Raised when an operation fails; the message says why."""


def _strtoul(text: str) -> int:
    """Parse a leading unsigned integer with C base auto-detection; 0 if none."""
    s = text.lstrip()
    negative = False
    if s[:1] in ("+", "-"):
        negative = s[0] == "-"
        s = s[1:]
    if s[:2].lower() == "0x" and s[2:3] and s[2] in _HEX_DIGITS:
        base, s = 16, s[2:]
    elif s.startswith("0"):
        base = 8
    else:
        base = 10
    digits = "0123456789abcdef"[:base]
    end = 0
    while end < len(s) and s[end].lower() in digits:
        end += 1
    if end == 0:
        return 0
    value = int(s[:end], base)
    return -value if negative else value


def _parse_timestamp_prefix(text: str) -> _dt.datetime | None:
    match = _TIMESTAMP_PREFIX.match(text)
    if not match:
        return None
    try:
        parsed = _dt.datetime.strptime(match.group(0).strip(), TIMESTAMP_FORMAT)
    except ValueError:
        return None
    return parsed.replace(tzinfo=_dt.timezone.utc)


class CreationClock:
    """Decides, once, the creation time recorded in an archive.

    SOURCE_DATE_EPOCH wins, then NOW (in YYYY-MM-DDTHH:MM:SSZ form), then
    the current time. The chosen timestamp is written back to NOW.
    """

    def __init__(
        self,
        environ: MutableMapping[str, str] | None = None,
        now: Callable[[], float] | None = None,
    ) -> None:
        self._environ = os.environ if environ is None else environ
        self._now = time.time if now is None else now
        self._timestamp: str | None = None
        self._epoch = 0

    def timestamp(self) -> str:
        """Return the creation timestamp string, the same on every call."""
        if self._timestamp:
            return self._timestamp

        source_date_epoch = self._environ.get("SOURCE_DATE_EPOCH")
        if source_date_epoch is not None:
            self._epoch = _strtoul(source_date_epoch)
            self._timestamp = time_t_to_string(self._epoch)
            self._environ["NOW"] = self._timestamp
            return self._timestamp

        now = self._environ.get("NOW")
        if now is not None:
            parsed = _parse_timestamp_prefix(now)
            if parsed is not None and len(now) < _MAX_TIMESTAMP_LEN:
                self._timestamp = now
                self._epoch = int(parsed.timestamp())
                return self._timestamp
            logger.info(
                "NOW environment variable set, but not in YYYY-MM-DDTHH:MM:SSZ format so ignoring"
            )

        self._epoch = int(self._now())
        self._timestamp = time_t_to_string(self._epoch)
        self._environ["NOW"] = self._timestamp
        return self._timestamp

    def epoch(self) -> int:
        """Return the creation time in seconds since the Unix epoch."""
        if self._epoch == 0:
            self.timestamp()
        return self._epoch


def time_t_to_string(t: int) -> str:
    """Format seconds since the epoch as a UTC timestamp string."""
    try:
        moment = _dt.datetime.fromtimestamp(t, tz=_dt.timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise FwupError("gmtime") from exc
    return moment.strftime(TIMESTAMP_FORMAT)


def timestamp_to_datetime(timestamp: str) -> _dt.datetime:
    """Parse a YYYY-MM-DDTHH:MM:SSZ timestamp into an aware UTC datetime."""
    parsed = _parse_timestamp_prefix(timestamp)
    if parsed is None:
        raise FwupError("error parsing timestamp")
    return parsed


def hex_to_bytes(text: str, numbytes: int) -> bytes:
    """Decode a hex string that must encode exactly numbytes bytes."""
    if len(text) != numbytes * 2:
        raise FwupError(
            f"hex string should have length {numbytes * 2}, but got {len(text)}"
        )
    if any(c not in _HEX_DIGITS for c in text):
        raise FwupError("Invalid character in hex string")
    return bytes.fromhex(text)


def bytes_to_hex(data: bytes) -> str:
    """Encode bytes as lower-case hex."""
    return bytes(data).hex()


def archive_filename_to_resource(name: str) -> str:
    """Map a path inside an archive to its resource name."""
    if name.startswith("data/"):
        return name[5:]
    return "/" + name


def will_be_regular_file(path: str) -> bool:
    """True if path is a regular file or would become one when created."""
    is_in_dev = False
    if sys.platform.startswith("linux") or sys.platform == "darwin":
        is_in_dev = path.startswith("/dev/")
    if sys.platform == "win32" and path.startswith("\\\\.\\"):
        return False
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return not is_in_dev
    except OSError:
        return False
    return stat.S_ISREG(st.st_mode)


def file_exists(path: str) -> bool:
    """True if path exists."""
    try:
        os.stat(path)
    except OSError:
        return False
    return True


def is_regular_file(path: str) -> bool:
    """True if path exists and is a regular file."""
    try:
        st = os.stat(path)
    except OSError:
        return False
    return stat.S_ISREG(st.st_mode)


def units_to_string(units: int) -> str:
    """Return the name of a unit size, or '?' if it is not one."""
    return _UNIT_NAMES.get(units, "?")


def find_natural_units(amount: int) -> int:
    """Return the decimal unit best suited to printing amount."""
    for unit in (ONE_TB, ONE_GB, ONE_MB, ONE_KB):
        if amount >= unit:
            return unit
    return 1


def format_pretty(amount: int, units: int) -> str:
    """Format amount in the given units, e.g. '1.50 MB'."""
    return f"{amount / units:.2f} {units_to_string(units)}"


def format_pretty_auto(amount: int) -> str:
    """Format amount in its natural units."""
    return format_pretty(amount, find_natural_units(amount))


def _posix_dirname(path: str) -> str:
    if not path:
        return "."
    stripped = path.rstrip("/")
    if not stripped:
        return "/"
    slash = stripped.rfind("/")
    if slash < 0:
        return "."
    head = stripped[:slash].rstrip("/")
    return head or "/"


def update_relative_path(fromfile: str, filename: str) -> str:
    """Resolve filename relative to the directory holding fromfile."""
    if filename.startswith(("/", "~")):
        return filename
    return f"{_posix_dirname(fromfile)}/{filename}"


def uuid_to_string_be(uuid: bytes) -> str:
    """Format the first 16 bytes as a big-endian UUID string."""
    if len(uuid) < UUID_LENGTH:
        raise ValueError(f"UUID needs {UUID_LENGTH} bytes, got {len(uuid)}")
    h = bytes(uuid[:UUID_LENGTH]).hex()
    return f"{h[0:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"


# (string position, byte index) pairs for the mixed-endian layout.
_ME_LAYOUT = (
    (0, 3), (2, 2), (4, 1), (6, 0),
    (9, 5), (11, 4),
    (14, 7), (16, 6),
    (19, 8), (21, 9),
    (24, 10), (26, 11), (28, 12), (30, 13), (32, 14), (34, 15),
)


def string_to_uuid_me(text: str) -> bytes:
    """Parse a UUID string into its 16-byte mixed-endian (GPT) form."""
    if len(text) < 36 or any(text[i] != "-" for i in (8, 13, 18, 23)):
        raise FwupError(f"Invalid UUID '{text}'")
    out = bytearray(UUID_LENGTH)
    for pos, index in _ME_LAYOUT:
        pair = text[pos:pos + 2]
        if any(c not in _HEX_DIGITS for c in pair):
            raise FwupError(f"Invalid UUID '{text}'")
        out[index] = int(pair, 16)
    return bytes(out)


def calculate_fwup_uuid(data: bytes) -> str:
    """Derive a version-5 style UUID string by hashing data."""
    hasher = hashlib.blake2b(digest_size=BLAKE2B_256_LEN)
    hasher.update(_FWUP_NAMESPACE_UUID)
    hasher.update(data)
    digest = bytearray(hasher.digest())
    digest[6] = (digest[6] & 0x0F) | 0x50
    return uuid_to_string_be(bytes(digest))


def ascii_to_utf16le(text: str | bytes) -> bytes:
    """Widen each ASCII byte to a UTF-16LE code unit."""
    raw = text.encode("ascii") if isinstance(text, str) else bytes(text)
    return b"".join(bytes((b, 0)) for b in raw)


def le64(value: int) -> bytes:
    """Encode value as 8 little-endian bytes."""
    return (value & 0xFFFFFFFFFFFFFFFF).to_bytes(8, "little")


def le32(value: int) -> bytes:
    """Encode value as 4 little-endian bytes."""
    return (value & 0xFFFFFFFF).to_bytes(4, "little")


def le16(value: int) -> bytes:
    """Encode value as 2 little-endian bytes."""
    return (value & 0xFFFF).to_bytes(2, "little")


def get_random(length: int) -> bytes:
    """Return length cryptographically secure random bytes."""
    return secrets.token_bytes(length)