#!/usr/bin/env python3

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

import logging
import pathlib
import sys

import click
import rich
import rich.console
import rich.markup
import rich.table

from . import stream_types
from .config import WarblerConfig, ConfigException, load_config
from .log import log
from .minidump_reader import MinidumpReadError, open_minidump
from .projector import record_row, table_header
from .records import (
    HandleDescriptor,
    MemoryInfoEntry,
    MemoryRangeRecord,
    MiscInfoRecord,
    ModuleDescriptor,
    SystemInfoRecord,
    ThreadDescriptor,
)
from .segment import SegmentError, dump_segment, hexdump, read_segment
from .stream_directory import StreamDecodeError, StreamNotFound, find_stream, list_stream_types
from .yara_scanner import RuleRefreshError, YaraScanner, refresh_rules


class HexAddress(click.ParamType):
    '''A virtual address in hexadecimal, with or without 0x prefix'''
    name = 'address'

    def convert(self, value, param, ctx):
        if isinstance(value, int):
            return value
        try:
            address = int(value, 16)
        except ValueError:
            self.fail(f'{value!r} is not a hexadecimal address', param, ctx)
        if address < 0:
            self.fail(f'{value!r} is not a valid address', param, ctx)
        return address


HEX_ADDRESS = HexAddress()

dumpfile_argument = click.argument('dumpfile', type=click.Path(path_type=pathlib.Path, exists=True,
                                                               dir_okay=False))


def open_directory(path):
    try:
        return open_minidump(path)
    except MinidumpReadError as e:
        print(f"Cannot read minidump: {e}, exiting", file=sys.stderr)
        sys.exit(1)


def get_stream(directory, type_code, name):
    '''Look up a stream, printing a diagnostic and returning None if it
    is not present or cannot be decoded.'''
    try:
        return find_stream(directory, type_code)
    except StreamDecodeError as e:
        log.warning(f'cli:get_stream: {e}')
        print(f"{name} stream could not be decoded: {e}")
    except StreamNotFound:
        print(f"{name} stream not found in the minidump file")
    return None


def build_table(title, record_type, records, truncate):
    '''Construct a table for records (all of type record_type)'''
    table = rich.table.Table(*table_header(record_type), title=title)
    for record in records:
        table.add_row(*[rich.markup.escape(cell) for cell in record_row(record, truncate)])
    return table


@click.group()
@click.option('-c', '--config', 'config_file', type=click.File('r'), help='Configuration file (YAML)')
@click.option('-t', '--truncate', type=click.IntRange(min=1),
              help='Truncate long strings in tables to this length')
@click.option('-v', '--verbose', is_flag=True, help='Enable debug logging')
@click.version_option(package_name='warbler', prog_name='warbler')
@click.pass_context
def app(ctx, config_file, truncate, verbose):
    '''Triage of Windows minidump files.'''
    config = WarblerConfig()
    if config_file is not None:
        try:
            config = load_config(config_file)
        except ConfigException:
            print("Cannot open configuration file, exiting", file=sys.stderr)
            sys.exit(1)

    if truncate is not None:
        config.truncate = truncate
    if verbose:
        config.verbose = True
    if config.verbose:
        log.setLevel(logging.DEBUG)

    ctx.obj = config


@app.command(short_help='Show streams')
@dumpfile_argument
def streams(dumpfile):
    '''Lists the stream types in the directory of DUMPFILE.'''
    with open_directory(dumpfile) as directory:
        for code, label in list_stream_types(directory):
            print(f'{code}:{label}')


def show_stream_table(console, directory, type_code, name, title, record_type, truncate):
    '''Print the table for a stream. A stream with a single record
    (system info, misc info) is shown as a table with one row. A missing
    stream results in an empty table.'''
    records = get_stream(directory, type_code, name)
    if records is None:
        records = []
    elif not isinstance(records, list):
        records = [records]
    console.print(build_table(title, record_type, records, truncate))


@app.command(short_help='Show threads')
@dumpfile_argument
@click.pass_obj
def threads(config, dumpfile):
    console = rich.console.Console()
    with open_directory(dumpfile) as directory:
        show_stream_table(console, directory, stream_types.THREAD_LIST, 'ThreadList',
                          'Threads', ThreadDescriptor, config.truncate)


@app.command(short_help='Show memory information')
@dumpfile_argument
@click.pass_obj
def memory(config, dumpfile):
    '''Shows the memory information list of DUMPFILE with protection labels.'''
    console = rich.console.Console()
    with open_directory(dumpfile) as directory:
        show_stream_table(console, directory, stream_types.MEMORY_INFO_LIST, 'MemoryInfoList',
                          'Memory Information', MemoryInfoEntry, config.truncate)


@app.command(short_help='Show captured memory ranges')
@dumpfile_argument
@click.pass_obj
def ranges(config, dumpfile):
    '''Shows the memory ranges captured in DUMPFILE and the offsets of
    their data in the file.'''
    console = rich.console.Console()
    with open_directory(dumpfile) as directory:
        memory_ranges = get_stream(directory, stream_types.MEMORY_64_LIST, 'Memory64List')
        records = []
        if memory_ranges is not None:
            records = [MemoryRangeRecord(r.start_address, r.data_size, offset)
                       for r, offset in memory_ranges.file_offsets()]
        console.print(build_table('Memory Ranges', MemoryRangeRecord, records, config.truncate))


@app.command(name='system-info', short_help='Show system information')
@dumpfile_argument
@click.pass_obj
def system_info(config, dumpfile):
    console = rich.console.Console()
    with open_directory(dumpfile) as directory:
        show_stream_table(console, directory, stream_types.SYSTEM_INFO, 'SystemInfo',
                          'System Information', SystemInfoRecord, config.truncate)


@app.command(short_help='Show misc information')
@dumpfile_argument
@click.pass_obj
def misc(config, dumpfile):
    console = rich.console.Console()
    with open_directory(dumpfile) as directory:
        show_stream_table(console, directory, stream_types.MISC_INFO, 'MiscInfo',
                          'Misc Information', MiscInfoRecord, config.truncate)


@app.command(short_help='Show loaded and unloaded modules')
@dumpfile_argument
@click.pass_obj
def modules(config, dumpfile):
    console = rich.console.Console()
    with open_directory(dumpfile) as directory:
        show_stream_table(console, directory, stream_types.MODULE_LIST, 'ModuleList',
                          'Loaded Modules', ModuleDescriptor, config.truncate)
        show_stream_table(console, directory, stream_types.UNLOADED_MODULE_LIST, 'UnloadedModuleList',
                          'Unloaded Modules', ModuleDescriptor, config.truncate)


@app.command(short_help='Show handles')
@dumpfile_argument
@click.pass_obj
def handles(config, dumpfile):
    console = rich.console.Console()
    with open_directory(dumpfile) as directory:
        show_stream_table(console, directory, stream_types.HANDLE_DATA, 'HandleData',
                          'Handle Data', HandleDescriptor, config.truncate)


def _read_address(dumpfile, directory, address):
    '''Returns the segment data at address, or None'''
    memory_ranges = get_stream(directory, stream_types.MEMORY_64_LIST, 'Memory64List')
    if memory_ranges is None:
        return None
    try:
        data = read_segment(dumpfile, address, memory_ranges)
    except SegmentError as e:
        print(f"Unable to read memory range {address:x}: {e}", file=sys.stderr)
        sys.exit(1)
    if data is None:
        print(f"Failed to find {address:x} in memory ranges")
    return data


@app.command(short_help='Dump memory at virtual address to disk')
@click.option('-a', '--address', required=True, type=HEX_ADDRESS, help='virtual address')
@click.option('-o', '--out', 'output_file', required=True,
              type=click.Path(path_type=pathlib.Path, dir_okay=False), help='path to extract to')
@dumpfile_argument
def dump(address, output_file, dumpfile):
    '''Writes the memory captured at ADDRESS in DUMPFILE to a file.'''
    with open_directory(dumpfile) as directory:
        data = _read_address(dumpfile, directory, address)
    if data is None:
        return

    try:
        written = dump_segment(data, output_file)
    except SegmentError as e:
        print(f"Error writing data from {address:x} to {output_file}: {e}", file=sys.stderr)
        sys.exit(1)
    print(f"Wrote {written} bytes from {address:x} to {output_file}")


@app.command(short_help='YARA scan at virtual address')
@click.option('-r', '--rules', 'rules_directory', type=click.Path(path_type=pathlib.Path, file_okay=False),
              help='path to yara rules directory')
@click.option('-a', '--address', required=True, type=HEX_ADDRESS, help='virtual address to scan')
@click.option('--hex', 'show_hex', is_flag=True, help='Show hex dump')
@dumpfile_argument
@click.pass_obj
def yara(config, rules_directory, address, show_hex, dumpfile):
    '''Scans the memory captured at ADDRESS in DUMPFILE with the YARA
    rules found in the rules directory.'''
    rules_directory = rules_directory or config.rules_directory
    if rules_directory is None:
        raise click.UsageError('no rules directory given and none configured')
    if not rules_directory.is_dir():
        raise click.ClickException(f"{rules_directory} is not a directory.")

    scanner = YaraScanner(rules_directory)
    ignored = scanner.load_rules()
    if ignored > 0:
        print(f"Failed to load {ignored} yara rules.")

    with open_directory(dumpfile) as directory:
        data = _read_address(dumpfile, directory, address)
    if data is None:
        return

    if show_hex:
        print(hexdump(data, config.hex_display_bytes))

    matches = scanner.scan(data)
    if matches:
        for match in matches:
            print(match)
    else:
        print(f"No yara matches for {scanner.rule_count} rules.")


@app.command(name='update-rules', short_help='Download the latest YARA rules')
@click.option('-r', '--rules', 'rules_directory', type=click.Path(path_type=pathlib.Path, file_okay=False),
              help='path to yara rules directory')
@click.option('-u', '--url', help='location of the rule bundle')
@click.pass_obj
def update_rules(config, rules_directory, url):
    '''Replaces the contents of the rules directory with the rule bundle
    downloaded from URL.'''
    rules_directory = rules_directory or config.rules_directory
    url = url or config.rules_url
    if rules_directory is None or url is None:
        raise click.UsageError('both a rules directory and a URL are needed')

    try:
        refresh_rules(url, rules_directory)
    except RuleRefreshError as e:
        print(f"{e}, exiting", file=sys.stderr)
        sys.exit(1)
    print(f"Updated to latest YARA ruleset from {url}")


if __name__ == "__main__":
    app()
