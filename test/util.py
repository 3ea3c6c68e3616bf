import os
import pathlib
import struct
import pytest

from warbler.memory_map import MemoryRangeDescriptor, MemoryRangeList
from warbler.stream_directory import StreamDirectoryEntry
from warbler import stream_types

_scriptdir = os.path.dirname(__file__)
testdir_base = pathlib.Path(_scriptdir).resolve()

# layout of the test dump: a header area, the data of three memory
# ranges stored back to back, and trailing bytes
BASE_OFFSET = 0x40
RANGE_0 = bytes(range(0x20))
RANGE_1 = b'This is a warbler test marker!'.ljust(0x30, b'\x00')
RANGE_2 = b'\xaa' * 0x10
TRAILER = b'\xee' * 0x40

TEST_RANGES = [
    MemoryRangeDescriptor(0x10000, len(RANGE_0)),
    MemoryRangeDescriptor(0x20000, len(RANGE_1)),
    MemoryRangeDescriptor(0x30000, len(RANGE_2)),
]


def make_memory_ranges():
    return MemoryRangeList(BASE_OFFSET, list(TEST_RANGES))


def dump_content():
    return b'\xcc' * BASE_OFFSET + RANGE_0 + RANGE_1 + RANGE_2 + TRAILER


@pytest.fixture
def dump_file(tmp_path):
    path = tmp_path / 'test.dmp'
    path.write_bytes(dump_content())
    return path


def make_entry(stream_type, payload):
    return StreamDirectoryEntry(stream_type, lambda: payload)


def failing_entry(stream_type):
    def loader():
        raise ValueError('truncated stream')
    return StreamDirectoryEntry(stream_type, loader)


class FakeMinidumpDirectory(list):
    '''Stand-in for the directory returned by open_minidump'''
    closed = False

    def close(self):
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


def memory_directory(*entries):
    return FakeMinidumpDirectory([make_entry(stream_types.MEMORY_64_LIST, make_memory_ranges())] + list(entries))


VALID_RULE = '''
rule warbler_marker
{
    meta:
        description = "warbler test marker"
    strings:
        $marker = "warbler test marker"
    condition:
        $marker
}
'''

OTHER_RULE = '''
rule never_matches
{
    strings:
        $a = "this string is not in the test dump"
    condition:
        $a
}
'''

INVALID_RULE = '''
rule broken
{
    condition:
        $undefined_string
}
'''


def write_rule(directory, name, content):
    path = pathlib.Path(directory) / name
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


# minimal minidump files, written with the layout of the real format:
# header, stream directory, stream payloads and the memory data
MINIDUMP_HEADER_SIZE = 32
MEMORY_DATA_OFFSET = 0x200


def memory_64_payload(base_rva, ranges):
    payload = struct.pack('<QQ', len(ranges), base_rva)
    for memory_range in ranges:
        payload += struct.pack('<QQ', memory_range.start_address, memory_range.data_size)
    return payload


def write_minidump(path, streams, memory_data=b''):
    '''Write a minidump file with streams, a list of (stream type, payload).
    memory_data is stored at MEMORY_DATA_OFFSET.'''
    directory_rva = MINIDUMP_HEADER_SIZE
    data_rva = directory_rva + 12 * len(streams)

    header = struct.pack('<4sHHIIIIQ', b'MDMP', 0xa793, 0, len(streams), directory_rva, 0, 0, 0)
    directory = b''
    payloads = b''
    for stream_type, payload in streams:
        directory += struct.pack('<III', stream_type, len(payload), data_rva + len(payloads))
        payloads += payload

    content = header + directory + payloads
    assert len(content) <= MEMORY_DATA_OFFSET
    content = content.ljust(MEMORY_DATA_OFFSET, b'\x00') + memory_data
    path = pathlib.Path(path)
    path.write_bytes(content)
    return path


def minidump_ranges_payload():
    return memory_64_payload(MEMORY_DATA_OFFSET, TEST_RANGES)


def minidump_memory_data():
    return RANGE_0 + RANGE_1 + RANGE_2
