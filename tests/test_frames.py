from __future__ import annotations

from radmon.instrument.frames import FrameParser, iterate_text_stream


def test_decode_extracts_first_count_token():
    parser = FrameParser()
    sample = parser.decode("T:21.5 Cnts:42! Bat:3.9")
    assert sample is not None
    assert sample.cps == 42
    assert sample.seq == 1

    sample = parser.decode("Cnts:12!Cnts:99!")
    assert sample is not None
    assert sample.cps == 12
    assert sample.seq == 2


def test_decode_drops_frames_without_token():
    parser = FrameParser()
    assert parser.decode("hello") is None
    assert parser.decode("Cnts:!") is None
    assert parser.decode("cnts:5!") is None
    assert parser.decode("Cnts:5") is None
    stats = parser.stats()
    assert stats == {"frames": 4, "samples": 0, "decode_misses": 4}


def test_decode_bytes_ignores_invalid_utf8():
    parser = FrameParser()
    sample = parser.decode_bytes(b"\xff\xfeCnts:7!\n")
    assert sample is not None
    assert sample.cps == 7


def test_parse_lines_and_reset():
    parser = FrameParser()
    samples = list(parser.parse_lines(["Cnts:1!", "noise", "Cnts:3!"]))
    assert [s.cps for s in samples] == [1, 3]
    assert parser.stats()["decode_misses"] == 1
    parser.reset()
    assert parser.stats()["frames"] == 0
    assert parser.decode("Cnts:9!").seq == 1


def test_iterate_text_stream_skips_blank_and_comment_lines():
    lines = ["# header\n", "\n", "  Cnts:5!  \n", "@PRG\n"]
    assert list(iterate_text_stream(lines)) == ["Cnts:5!", "@PRG"]


def test_decode_drops_overlong_count():
    parser = FrameParser()
    assert parser.decode("Cnts:" + "9" * 400 + "!") is None
    assert parser.decode("Cnts:" + "9" * 10 + "!") is None
    sample = parser.decode("Cnts:999999999!")
    assert sample is not None
    assert sample.cps == 999999999
    assert sample.seq == 1
    assert parser.stats() == {"frames": 3, "samples": 1, "decode_misses": 2}
