# fwupkit

Building blocks for firmware update tools that write images to SD cards,
eMMC and disk image files.

## What is inside

- `fwupkit.util`: hex and UUID conversions (`hex_to_bytes`, `bytes_to_hex`,
  `uuid_to_string_be`, `string_to_uuid_me`, `calculate_fwup_uuid`),
  little-endian packing (`le16`, `le32`, `le64`), human-readable sizes
  (`format_pretty`, `format_pretty_auto`), archive path handling
  (`archive_filename_to_resource`, `update_relative_path`), file checks
  (`file_exists`, `is_regular_file`, `will_be_regular_file`), reproducible
  creation timestamps (`CreationClock`, which honours `SOURCE_DATE_EPOCH`,
  then `NOW`, then the current time) and the `FwupError` exception used
  across the package.
- `fwupkit.output`: a `Reporter` that writes warnings, errors and progress
  either as plain text (prefixed with `fwup: `) or as length-prefixed frames
  tagged `OK`, `ER`, `WN` or `PR` (`FrameType`). `errx` and `err` raise
  `SystemExit`, optionally after an exit handshake.
- `fwupkit.progress`: `Progress`, which turns units of work into percentages
  and shows them as numbers, a text progress bar or frames, according to the
  reporter's `ProgressMode`. 100% is held back until `report_complete()`.
- `fwupkit.sparse_file`: `SparseFileMap` records the lengths of alternating
  data segments and holes and can be built from an open file descriptor;
  `SparseFileReader` reads only the data segments; `sparse_file_is_supported`
  checks whether a filesystem makes holes.
- `fwupkit.pad_to_block_writer`: `PadToBlockWriter` turns forward-moving
  writes of any size into whole 512-byte block writes, filling gaps with
  zeros and optionally encrypting each block before it is passed on.
- `fwupkit.uboot_env`: `UBootEnv` reads, edits and writes U-Boot environment
  blocks, including redundant environments, with CRC-32 checking;
  `verify_cfg` validates a `uboot-environment` section.
- `fwupkit.framing`: `add_framing` and `remove_framing` for the
  length-prefixed frame format (4-byte big-endian length, zero-length frame
  at the end); `FramingError` is raised for a truncated frame.
- `fwupkit.resources`: `get_all`, `get_from_task` and `find_by_name` list and
  find the `file-resource` sections of a configuration as `ResourceEntry`
  objects.

Configurations are plain mappings: `file-resource` maps resource names to
their sections, and a task's `on-resource` is a list of resource names.

## Installing

```
pip install fwupkit
```

## Examples

```python
from fwupkit.util import bytes_to_hex, hex_to_bytes, format_pretty_auto

bytes_to_hex(b"\x01\xab")        # "01ab"
hex_to_bytes("01ab", 2)          # b"\x01\xab"
format_pretty_auto(1500)         # "1.50 KB"
```

Editing a U-Boot environment held in an image. The device is any object
with `pread(count, offset)` returning bytes and
`pwrite(data, offset, streamed)`:

```python
from fwupkit.uboot_env import UBootEnv

env = UBootEnv.from_config({
    "block-offset": 2048,
    "block-count": 16,
    "block-offset-redund": -1,
})
env.read(device)
env.setenv("bootcount", "0")
env.write(device)
```

Framing a byte stream and taking it apart again:

```python
from fwupkit.framing import add_framing, remove_framing

framed = add_framing(b"hello", 4096)
assert remove_framing(framed) == b"hello"
```

## Command line

`fwupkit-framing` reads standard input and writes standard output:

```
fwupkit-framing -e < payload.bin > payload.framed   # add framing
fwupkit-framing -d < payload.framed > payload.bin   # check and remove framing
fwupkit-framing -e -n 1024 < payload.bin            # frames of at most 1024 bytes
fwupkit-framing -v -d < payload.framed              # report each frame on stderr
```

It exits with a non-zero status if a frame is cut short or an option is not
recognised.

## What it does not do

fwupkit is a library of parts. It has no command to create, sign, list or
apply firmware archives, does not read archive configuration files itself,
does not detect or unmount SD cards, and does not write partition tables or
FAT filesystems. The block devices and encryptors that `UBootEnv` and
`PadToBlockWriter` work with are supplied by the caller.

## Running the tests

```
pip install -e ".[test]"
pytest
```