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
Adapter around the minidump decoder (the 'minidump' package). It exposes
the stream directory of a dump as a list of StreamDirectoryEntry, with
payloads that are decoded on demand into the records used for display.

Only the header and the directory are read when a dump is opened. The
stream type is kept as the raw code from the directory, so streams that
the decoder has no type for (Breakpad, Crashpad, Windows CE, newer
Windows streams) are listed as well.
'''

import io

from dataclasses import dataclass

from minidump.common_structs import MINIDUMP_LOCATION_DESCRIPTOR
from minidump.header import MinidumpHeader
from minidump.streams import (
    MinidumpHandleDataStream,
    MinidumpMemoryInfoList,
    MinidumpMiscInfo,
    MinidumpModuleList,
    MinidumpSystemInfo,
    MinidumpThreadList,
    MinidumpUnloadedModuleList,
)
from minidump.streams.Memory64ListStream import MINIDUMP_MEMORY64_LIST

from . import stream_types
from .log import log
from .memory_map import MemoryRangeDescriptor, MemoryRangeList
from .records import (
    HandleDescriptor,
    MemoryInfoEntry,
    MiscInfoRecord,
    ModuleDescriptor,
    SystemInfoRecord,
    ThreadDescriptor,
)
from .stream_directory import StreamDirectoryEntry

# size of a MINIDUMP_DIRECTORY: stream type and location descriptor
DIRECTORY_ENTRY_SIZE = 12


class MinidumpReadError(Exception):
    pass


@dataclass
class RawDirectoryEntry:
    '''A directory entry as stored in the file. The attribute names are
    the ones the stream parsers of the decoder expect.'''
    StreamType: int
    Location: MINIDUMP_LOCATION_DESCRIPTOR


def read_directory(file_handle):
    '''Read the header and the stream directory. Returns the header and
    a list of RawDirectoryEntry in directory order.'''
    file_handle.seek(0)
    header = MinidumpHeader.parse(file_handle)

    file_handle.seek(header.StreamDirectoryRva)
    directory_size = header.NumberOfStreams * DIRECTORY_ENTRY_SIZE
    directory_data = file_handle.read(directory_size)
    if len(directory_data) != directory_size:
        raise MinidumpReadError(f'stream directory truncated: {len(directory_data)} of {directory_size} bytes')

    buff = io.BytesIO(directory_data)
    entries = []
    for _ in range(header.NumberOfStreams):
        stream_type = int.from_bytes(buff.read(4), byteorder='little', signed=False)
        entries.append(RawDirectoryEntry(stream_type, MINIDUMP_LOCATION_DESCRIPTOR.parse(buff)))
    return header, entries


def decode_threads(md_dir, file_handle):
    thread_list = MinidumpThreadList.parse(md_dir, file_handle)
    return [ThreadDescriptor.from_thread(t) for t in thread_list.threads]


def decode_modules(md_dir, file_handle):
    module_list = MinidumpModuleList.parse(md_dir, file_handle)
    return [ModuleDescriptor.from_module(m) for m in module_list.modules]


def decode_unloaded_modules(md_dir, file_handle):
    module_list = MinidumpUnloadedModuleList.parse(md_dir, file_handle)
    return [ModuleDescriptor.from_module(m) for m in module_list.modules]


def decode_handles(md_dir, file_handle):
    handle_data = MinidumpHandleDataStream.parse(md_dir, file_handle)
    return [HandleDescriptor.from_handle(h) for h in handle_data.handles]


def decode_memory_info(md_dir, file_handle):
    memory_info = MinidumpMemoryInfoList.parse(md_dir, file_handle)
    return [MemoryInfoEntry.from_memory_info(i) for i in memory_info.infos]


def decode_memory_64_list(md_dir, file_handle):
    # the raw list is used rather than MinidumpMemory64List as the
    # base offset is needed for address resolution
    file_handle.seek(md_dir.Location.Rva)
    chunk = io.BytesIO(file_handle.read(md_dir.Location.DataSize))
    memory_list = MINIDUMP_MEMORY64_LIST.parse(chunk)
    ranges = [MemoryRangeDescriptor(r.StartOfMemoryRange, r.DataSize)
              for r in memory_list.MemoryRanges]
    return MemoryRangeList(memory_list.BaseRva, ranges)


def decode_system_info(md_dir, file_handle):
    return SystemInfoRecord.from_system_info(MinidumpSystemInfo.parse(md_dir, file_handle))


def decode_misc_info(md_dir, file_handle):
    return MiscInfoRecord.from_misc_info(MinidumpMiscInfo.parse(md_dir, file_handle))


def read_raw_stream(md_dir, file_handle):
    file_handle.seek(md_dir.Location.Rva)
    return file_handle.read(md_dir.Location.DataSize)


STREAM_DECODERS = {
    stream_types.THREAD_LIST: decode_threads,
    stream_types.MODULE_LIST: decode_modules,
    stream_types.UNLOADED_MODULE_LIST: decode_unloaded_modules,
    stream_types.HANDLE_DATA: decode_handles,
    stream_types.MEMORY_INFO_LIST: decode_memory_info,
    stream_types.MEMORY_64_LIST: decode_memory_64_list,
    stream_types.SYSTEM_INFO: decode_system_info,
    stream_types.MISC_INFO: decode_misc_info,
}


class MinidumpDirectory:
    '''The stream directory of a minidump file. Iterating yields the
    StreamDirectoryEntry objects in directory order. Use as a context
    manager to close the underlying file.'''

    def __init__(self, path, file_handle, header, raw_entries):
        self.path = path
        self.header = header
        self._file_handle = file_handle
        self.entries = [self._make_entry(d) for d in raw_entries]

    def _make_entry(self, md_dir):
        decoder = STREAM_DECODERS.get(md_dir.StreamType, read_raw_stream)
        file_handle = self._file_handle
        return StreamDirectoryEntry(md_dir.StreamType, lambda: decoder(md_dir, file_handle))

    def __iter__(self):
        return iter(self.entries)

    def __len__(self):
        return len(self.entries)

    def close(self):
        self._file_handle.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close()


def open_minidump(path):
    try:
        file_handle = open(path, 'rb')
    except OSError as e:
        raise MinidumpReadError(f'cannot open {path}: {e.strerror}') from e

    try:
        header, raw_entries = read_directory(file_handle)
    except MinidumpReadError:
        file_handle.close()
        raise
    except Exception as e:
        file_handle.close()
        raise MinidumpReadError(f'cannot parse {path}: {e}') from e
    log.debug(f'minidump_reader:open_minidump: {path}: {len(raw_entries)} streams')
    return MinidumpDirectory(path, file_handle, header, raw_entries)
