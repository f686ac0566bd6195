import io
import sys

import pytest

from fwupkit.framing import FramingError, add_framing, main, remove_framing


def _set_stdin(monkeypatch, data):
    monkeypatch.setattr(sys, "stdin", io.TextIOWrapper(io.BytesIO(data)))


def test_add_framing_single_frame():
    assert add_framing(b"abc") == b"\x00\x00\x00\x03abc\x00\x00\x00\x00"


def test_add_framing_empty_input_is_only_eof():
    assert add_framing(b"") == b"\x00\x00\x00\x00"


def test_add_framing_exact_multiple():
    framed = add_framing(b"abcd", 2)
    assert framed == b"\x00\x00\x00\x02ab\x00\x00\x00\x02cd\x00\x00\x00\x00"


def test_add_framing_partial_last_frame():
    framed = add_framing(b"abcde", 2)
    assert framed == (
        b"\x00\x00\x00\x02ab\x00\x00\x00\x02cd\x00\x00\x00\x01e\x00\x00\x00\x00"
    )


def test_add_framing_negative_size():
    with pytest.raises(ValueError):
        add_framing(b"abc", -1)


@pytest.mark.parametrize("size", [1, 3, 512, 4096, 10000])
def test_round_trip(size):
    payload = bytes(range(256)) * 37
    assert remove_framing(add_framing(payload, size)) == payload


def test_remove_framing_stops_at_eof_marker():
    data = b"\x00\x00\x00\x02hi\x00\x00\x00\x00trailing"
    assert remove_framing(data) == b"hi"


def test_remove_framing_clean_end_without_marker():
    assert remove_framing(b"\x00\x00\x00\x02hi") == b"hi"


def test_remove_framing_truncated_frame():
    with pytest.raises(FramingError, match="Expected to read 5 bytes, but only got 2 bytes."):
        remove_framing(b"\x00\x00\x00\x05hi")


def test_remove_framing_truncated_header():
    with pytest.raises(FramingError, match="Expected to read 4 bytes, but only got 2 bytes."):
        remove_framing(b"\x00\x00")


def test_main_adds_framing(monkeypatch, capsysbinary):
    _set_stdin(monkeypatch, b"abcde")
    assert main(["-e", "-n", "2"]) == 0
    out = capsysbinary.readouterr().out
    assert out == b"\x00\x00\x00\x02ab\x00\x00\x00\x02cd\x00\x00\x00\x01e\x00\x00\x00\x00"


def test_main_removes_framing(monkeypatch, capsysbinary):
    _set_stdin(monkeypatch, b"\x00\x00\x00\x03xyz\x00\x00\x00\x00")
    assert main(["-d"]) == 0
    assert capsysbinary.readouterr().out == b"xyz"


def test_main_remove_error(monkeypatch, capsysbinary):
    _set_stdin(monkeypatch, b"\x00\x00\x00\x09abc")
    assert main(["-d"]) == 1
    err = capsysbinary.readouterr().err
    assert b"Expected to read 9 bytes, but only got 3 bytes." in err


def test_main_verbose(monkeypatch, capsysbinary):
    _set_stdin(monkeypatch, b"ab")
    assert main(["-v"]) == 0
    captured = capsysbinary.readouterr()
    assert b"Writing 2 byte frame" in captured.err
    assert b"Writing EOF frame" in captured.err
    assert captured.out == b"\x00\x00\x00\x02ab\x00\x00\x00\x00"


def test_main_bad_option(capsysbinary):
    assert main(["-x"]) == 1
    assert b"Usage: framing-helper" in capsysbinary.readouterr().out