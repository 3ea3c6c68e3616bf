import pytest

from util import *

from warbler.segment import *


def test_extract_segment(dump_file):
    assert extract_segment(dump_file, 0x60, 0x30) == RANGE_1


def test_extract_segment_out_of_bounds(dump_file):
    with pytest.raises(SegmentError):
        extract_segment(dump_file, 0xd0, 0x20)


def test_extract_segment_missing_file(tmp_path):
    with pytest.raises(SegmentError):
        extract_segment(tmp_path / 'nonexistent.dmp', 0, 1)


def test_read_segment(dump_file):
    assert read_segment(dump_file, 0x10000, make_memory_ranges()) == RANGE_0
    assert read_segment(dump_file, 0x20000, make_memory_ranges()) == RANGE_1


def test_read_segment_inside_range(dump_file):
    # the full range length is read, so data of the next range is included
    data = read_segment(dump_file, 0x10010, make_memory_ranges())
    assert len(data) == len(RANGE_0)
    assert data == RANGE_0[0x10:] + RANGE_1[:0x10]


def test_read_segment_not_found(dump_file):
    assert read_segment(dump_file, 0x5, make_memory_ranges()) is None


def test_read_segment_beyond_file(dump_file):
    with pytest.raises(SegmentError):
        read_segment(dump_file, 0x1ffff, make_memory_ranges())


def test_dump_segment_round_trip(dump_file, tmp_path):
    data = read_segment(dump_file, 0x20000, make_memory_ranges())
    out = tmp_path / 'segment.bin'
    assert dump_segment(data, out) == len(data)
    assert out.read_bytes() == data


def test_dump_segment_overwrites(tmp_path):
    out = tmp_path / 'segment.bin'
    out.write_bytes(b'old content that is longer')
    dump_segment(b'new', out)
    assert out.read_bytes() == b'new'


def test_dump_segment_no_partial_file(tmp_path):
    out = tmp_path / 'nonexistent' / 'segment.bin'
    with pytest.raises(SegmentError):
        dump_segment(b'data', out)
    assert not out.exists()


def test_hexdump():
    data = bytes(range(0x41, 0x41 + 20))
    lines = hexdump(data).split('\n')
    assert lines[0] == '00000000  41 42 43 44 45 46 47 48  49 4a 4b 4c 4d 4e 4f 50  |ABCDEFGHIJKLMNOP|'
    assert lines[1] == '00000010  51 52 53 54' + ' ' * 39 + '|QRST|'


def test_hexdump_limit():
    lines = hexdump(bytes(100), 32).split('\n')
    assert len(lines) == 2


def test_hexdump_non_printable():
    assert hexdump(b'\x00A\xff').endswith('|.A.|')
