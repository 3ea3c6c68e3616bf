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
Translation of process virtual addresses to offsets in a minidump file,
using the ranges recorded in the memory 64 list stream.

All range data in the memory 64 list is stored back to back, starting at
the base offset of the stream, in the same order as the descriptors. The
data of range i starts at base_offset + sum(data_size of ranges 0..i-1).
Ranges are usually sorted by start address, but there can be gaps between
them: those are addresses that were not captured.
'''

from dataclasses import dataclass
from typing import List

from .log import log

PAGE_NOACCESS = 0x01
PAGE_READONLY = 0x02
PAGE_READWRITE = 0x04
PAGE_WRITECOPY = 0x08
PAGE_EXECUTE = 0x10
PAGE_EXECUTE_READ = 0x20
PAGE_EXECUTE_READWRITE = 0x40
PAGE_EXECUTE_WRITECOPY = 0x80
PAGE_GUARD = 0x100
PAGE_NOCACHE = 0x200
PAGE_WRITECOMBINE = 0x400
PAGE_TARGETS_INVALID = 0x40000000

# order matters: a later match overrides an earlier one
PROTECTION_LABELS = [
    (PAGE_NOACCESS, 'PAGE_NOACCESS'),
    (PAGE_READONLY, 'PAGE_READONLY'),
    (PAGE_READWRITE, 'PAGE_READWRITE'),
    (PAGE_WRITECOPY, 'PAGE_WRITECOPY'),
    (PAGE_EXECUTE, 'PAGE_EXECUTE'),
    (PAGE_EXECUTE_READ, 'PAGE_EXECUTE_READ'),
    (PAGE_EXECUTE_READWRITE, 'PAGE_EXECUTE_READWRITE'),
    (PAGE_EXECUTE_WRITECOPY, 'PAGE_EXECUTE_WRITECOPY'),
]


def protection_label(protect):
    '''Human readable label for a memory protection bitmask. Modifier
    bits (guard, no cache, write combine) are not reflected.'''
    label = ''
    if protect == 0:
        label = 'PAGE_NOACCESS'
    for flag, name in PROTECTION_LABELS:
        if protect & flag != 0:
            label = name
    if label == '':
        label = 'NONE'
    return label


@dataclass(frozen=True)
class MemoryRangeDescriptor:
    start_address: int
    data_size: int


@dataclass(frozen=True)
class ResolvedSegment:
    offset: int
    length: int


@dataclass
class MemoryRangeList:
    base_offset: int
    ranges: List[MemoryRangeDescriptor]

    def file_offsets(self):
        '''Yield (descriptor, file offset) for every range'''
        offset = self.base_offset
        for memory_range in self.ranges:
            yield memory_range, offset
            offset += memory_range.data_size

    def resolve(self, address):
        return resolve_address(address, self.ranges, self.base_offset)


def resolve_address(address, ranges, base_offset):
    '''Resolve a virtual address to a ResolvedSegment in the dump file.

    An address equal to the start of a range resolves to the whole range.
    An address after the start of a range and before the start of the next
    range resolves to the data at the corresponding offset inside the range,
    with the length of the complete range. Note that this length is not
    reduced by the offset into the range, so it can extend beyond the data
    of the range.

    Returns None if the address cannot be resolved. This includes addresses
    before the first range and any address after the start of the last
    range that is not equal to it.
    '''
    cumulative_offset = 0
    last_index = len(ranges) - 1
    for index, memory_range in enumerate(ranges):
        if address == memory_range.start_address:
            log.debug(f'memory_map:resolve_address: {address:#x} is start of range {index}')
            return ResolvedSegment(base_offset + cumulative_offset, memory_range.data_size)

        if index < last_index and memory_range.start_address < address < ranges[index+1].start_address:
            additional_offset = address - memory_range.start_address
            log.debug(f'memory_map:resolve_address: {address:#x} in range {index} at +{additional_offset:#x}')
            return ResolvedSegment(base_offset + cumulative_offset + additional_offset,
                                   memory_range.data_size)

        cumulative_offset += memory_range.data_size

    log.debug(f'memory_map:resolve_address: {address:#x} not found in {len(ranges)} ranges')
    return None
