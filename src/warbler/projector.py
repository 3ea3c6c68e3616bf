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
Generic projection of records into a table header and a table row.

Any record shape is accepted: dataclasses, named tuples, mappings and plain
objects. The header is made of the upper cased field names, the row of the
formatted field values, both in field order.
'''

import dataclasses
import enum

DEFAULT_TRUNCATE = 50


def truncation_marker(limit):
    return f'TRUNCATE{limit}:'


def record_fields(record):
    '''Return a list of (name, value) for the fields of record, in
    declaration order. A dataclass type can be passed instead of an
    instance, in which case all values are None.'''
    if dataclasses.is_dataclass(record):
        if isinstance(record, type):
            return [(f.name, None) for f in dataclasses.fields(record)]
        return [(f.name, getattr(record, f.name)) for f in dataclasses.fields(record)]
    if isinstance(record, tuple) and hasattr(record, '_fields'):
        return list(zip(record._fields, record))
    if isinstance(record, dict):
        return list(record.items())
    return list(vars(record).items())


def format_value(value):
    '''Format a single value: strings as is, numbers and bytes as
    lowercase hexadecimal with a 0x prefix. Values that cannot be
    formatted result in an empty string.'''
    if isinstance(value, str):
        return value
    if isinstance(value, enum.Enum):
        value = value.value
    if isinstance(value, (bytes, bytearray)):
        return '0x' + bytes(value).hex()
    if isinstance(value, int):
        return f'0x{value:x}'
    if isinstance(value, float):
        return value.hex()
    return ''


def truncate_value(value, truncate=DEFAULT_TRUNCATE):
    if len(value) > truncate:
        return truncation_marker(truncate) + value[:truncate]
    return value


def remove_empty_from_end(values):
    '''Drop empty strings from the end. Empty strings
    elsewhere are kept.'''
    for i in range(len(values) - 1, -1, -1):
        if values[i] != '':
            return values[:i+1]
    return []


def table_header(record):
    header = []
    for name, value in record_fields(record):
        if name.startswith('_'):
            header.append('')
        else:
            header.append(name.upper())
    return remove_empty_from_end(header)


def record_row(record, truncate=DEFAULT_TRUNCATE):
    row = []
    for name, value in record_fields(record):
        if name.startswith('_'):
            row.append('')
            continue
        row.append(truncate_value(format_value(value), truncate))
    return remove_empty_from_end(row)


def project_record(record, truncate=DEFAULT_TRUNCATE):
    '''Return (header, row) for record, with cells longer than truncate
    characters truncated.'''
    return table_header(record), record_row(record, truncate)
