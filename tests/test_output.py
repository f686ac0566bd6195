import io
import struct

import pytest

from fwupkit.output import FrameType, ProgressMode, Reporter


def _parse_frames(raw):
    frames = []
    while raw:
        (length,) = struct.unpack(">I", raw[:4])
        kind = raw[4:6].decode("ascii")
        (code,) = struct.unpack(">H", raw[6:8])
        text = raw[8:4 + length]
        frames.append((kind, code, text))
        raw = raw[4 + length:]
    return frames


def test_framed_output_wire_bytes():
    out = io.BytesIO()
    Reporter(stream=out, framing=True).output(FrameType.WARNING, 0, "hi")
    assert out.getvalue() == b"\x00\x00\x00\x06WN\x00\x00hi"


def test_framed_output_header_invariants():
    out = io.BytesIO()
    reporter = Reporter(stream=out, framing=True)
    reporter.output(FrameType.PROGRESS, 42, "")
    reporter.output("OK", 7, "done")
    assert _parse_frames(out.getvalue()) == [("PR", 42, b""), ("OK", 7, b"done")]


def test_unknown_frame_type_rejected():
    with pytest.raises(ValueError):
        Reporter(stream=io.BytesIO()).output("XX", 0, "text")


def test_plain_output_clears_progress_line_in_normal_mode():
    out = io.BytesIO()
    Reporter(stream=out, progress_mode=ProgressMode.NORMAL).output(FrameType.WARNING, 0, "msg")
    assert out.getvalue() == b"\r\033[Kmsg"


def test_plain_output_empty_text_writes_nothing():
    out = io.BytesIO()
    Reporter(stream=out, progress_mode=ProgressMode.NORMAL).output(FrameType.WARNING, 0, "")
    assert out.getvalue() == b""


def test_warnx_plain_prefixes_program_name():
    out = io.BytesIO()
    Reporter(stream=out).warnx("oops")
    assert out.getvalue() == b"fwup: oops\n"


def test_warnx_framed_sends_bare_message():
    out = io.BytesIO()
    Reporter(stream=out, framing=True).warnx("oops")
    assert _parse_frames(out.getvalue()) == [("WN", 0, b"oops")]


def test_info_silent_unless_verbose():
    quiet = io.BytesIO()
    Reporter(stream=quiet).info("detail")
    loud = io.BytesIO()
    Reporter(stream=loud, verbose=True).info("detail")
    assert quiet.getvalue() == b""
    assert loud.getvalue() == b"fwup: detail\n"


def test_errx_writes_error_and_exits():
    out = io.BytesIO()
    with pytest.raises(SystemExit) as info:
        Reporter(stream=out, framing=True).errx(3, "bad thing")
    assert info.value.code == 3
    assert _parse_frames(out.getvalue()) == [("ER", 0, b"bad thing")]


def test_err_appends_reason_of_current_exception():
    out = io.BytesIO()
    reporter = Reporter(stream=out)
    with pytest.raises(SystemExit) as info:
        try:
            raise FileNotFoundError(2, "No such file or directory")
        except OSError:
            reporter.err(1, "open failed")
    assert info.value.code == 1
    assert out.getvalue() == b"fwup: open failed: No such file or directory\n"


def test_exit_without_handshake_writes_nothing():
    out = io.BytesIO()
    with pytest.raises(SystemExit) as info:
        Reporter(stream=out).exit(0)
    assert info.value.code == 0
    assert out.getvalue() == b""


def test_exit_handshake_sends_ctrl_z_and_drains_input():
    out = io.BytesIO()
    pending = io.BytesIO(b"x" * 10000)
    reporter = Reporter(stream=out, handshake_on_exit=True, handshake_input=pending)
    with pytest.raises(SystemExit) as info:
        reporter.exit(5)
    assert info.value.code == 5
    assert out.getvalue() == bytes([0x1A, 5])
    assert pending.read() == b""