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
Lookup of streams in a decoded minidump stream directory.

The directory is the list of entries produced by the minidump decoder,
in the order in which they are stored in the file. Payloads are only
decoded when they are asked for.
'''

from .log import log
from .stream_types import stream_type_label


class StreamNotFound(Exception):
    '''The requested stream type is not present in the directory'''
    pass


class StreamDecodeError(StreamNotFound):
    '''The stream is present, but its payload could not be decoded.
    Callers that only care whether a stream is usable can treat this
    the same as a missing stream.
    '''
    pass


class StreamDirectoryEntry:
    def __init__(self, stream_type, loader):
        '''Create an entry for a stream of type stream_type. loader is a
        callable without arguments that returns the decoded payload.
        '''
        self.stream_type = stream_type
        self._loader = loader

    @property
    def label(self):
        return stream_type_label(self.stream_type)

    def data(self):
        try:
            return self._loader()
        except Exception as e:
            raise StreamDecodeError(f'cannot decode {self.label or self.stream_type} stream: {e}') from e

    def __repr__(self):
        return f'StreamDirectoryEntry({self.stream_type}, {self.label!r})'


def find_stream(directory, type_code):
    '''Return the decoded payload of the first entry in directory with
    stream type type_code. Later entries of the same type are ignored.
    Raises StreamNotFound if there is no such entry and StreamDecodeError
    if the first matching entry cannot be decoded.
    '''
    for index, entry in enumerate(directory):
        if entry.stream_type != type_code:
            continue
        log.debug(f'stream_directory:find_stream: type {type_code} at index {index}')
        return entry.data()
    raise StreamNotFound(f'{stream_type_label(type_code) or type_code} stream not found')


def list_stream_types(directory):
    '''Return (code, label) for every entry, in directory order'''
    return [(entry.stream_type, stream_type_label(entry.stream_type)) for entry in directory]
