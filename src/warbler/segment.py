# warbler - minidump triage
#
# This file is part of warbler.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.
#
# SPDX-License-Identifier: GPL-3.0-only

'''
Extraction of memory segments from a minidump file.
'''

import os
import pathlib
import tempfile

from .log import log


class SegmentError(Exception):
    pass


def extract_segment(path, offset, length):
    '''Read the dump file at path and return the bytes in
    [offset, offset+length). The whole file is read.'''
    try:
        with open(path, 'rb') as dump_file:
            data = dump_file.read()
    except OSError as e:
        raise SegmentError(f'cannot read {path}: {e.strerror}') from e

    if offset < 0 or length < 0 or offset + length > len(data):
        raise SegmentError(f'segment {offset:#x}+{length:#x} outside of {path} ({len(data):#x} bytes)')
    log.debug(f'segment:extract_segment: {length} bytes at {offset:#x} from {path}')
    return data[offset:offset+length]


def read_segment(path, address, memory_ranges):
    '''Resolve address using memory_ranges (a MemoryRangeList) and return
    the segment data, or None if the address was not captured.'''
    resolved = memory_ranges.resolve(address)
    if resolved is None:
        return None
    return extract_segment(path, resolved.offset, resolved.length)


def dump_segment(data, destination):
    '''Write data to destination, replacing any existing file. Returns the
    number of bytes written. The data is written to a temporary file next
    to the destination first, so a failed write leaves no partial file.'''
    destination = pathlib.Path(destination)
    temp_name = None
    try:
        with tempfile.NamedTemporaryFile(dir=destination.parent, prefix=f'.{destination.name}.',
                                         delete=False) as temp_file:
            temp_name = temp_file.name
            temp_file.write(data)
        os.replace(temp_name, destination)
    except OSError as e:
        if temp_name is not None:
            pathlib.Path(temp_name).unlink(missing_ok=True)
        raise SegmentError(f'cannot write {destination}: {e.strerror}') from e

    log.debug(f'segment:dump_segment: wrote {len(data)} bytes to {destination}')
    return len(data)


def hexdump(data, length=64):
    '''Hex dump of (at most) the first length bytes of data, 16 bytes per line'''
    lines = []
    data = data[:length]
    for i in range(0, len(data), 16):
        chunk = data[i:i+16]
        hex_part = ' '.join(f'{b:02x}' for b in chunk[:8])
        if len(chunk) > 8:
            hex_part += '  ' + ' '.join(f'{b:02x}' for b in chunk[8:])
        ascii_part = ''.join(chr(b) if 32 <= b <= 126 else '.' for b in chunk)
        lines.append(f'{i:08x}  {hex_part:<48}  |{ascii_part}|')
    return '\n'.join(lines)
