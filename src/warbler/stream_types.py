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
Stream type codes found in a minidump stream directory.

https://learn.microsoft.com/en-us/windows/win32/api/minidumpapiset/ne-minidumpapiset-minidump_stream_type
https://chromium.googlesource.com/breakpad/breakpad/+/master/src/google_breakpad/common/minidump_format.h
'''

THREAD_LIST = 3
MODULE_LIST = 4
MEMORY_LIST = 5
EXCEPTION = 6
SYSTEM_INFO = 7
MEMORY_64_LIST = 9
HANDLE_DATA = 12
UNLOADED_MODULE_LIST = 14
MISC_INFO = 15
MEMORY_INFO_LIST = 16

STREAM_TYPES = {
    0: 'unused',
    1: 'reserved_0',
    2: 'reserved_1',
    3: 'thread_list',
    4: 'module_list',
    5: 'memory_list',
    6: 'exception',
    7: 'system_info',
    8: 'thread_ex_list',
    9: 'memory_64_list',
    10: 'comment_a',
    11: 'comment_w',
    12: 'handle_data',
    13: 'function_table',
    14: 'unloaded_module_list',
    15: 'misc_info',
    16: 'memory_info_list',
    17: 'thread_info_list',
    18: 'handle_operation_list',
    19: 'token',
    20: 'java_script_data',
    21: 'system_memory_info',
    22: 'process_vm_counters',
    23: 'ipt_trace',
    24: 'thread_names',

    # Windows CE
    0x8000: 'ce_null',
    0x8001: 'ce_system_info',
    0x8002: 'ce_exception',
    0x8003: 'ce_module_list',
    0x8004: 'ce_process_list',
    0x8005: 'ce_thread_list',
    0x8006: 'ce_thread_context_list',
    0x8007: 'ce_thread_call_stack_list',
    0x8008: 'ce_memory_virtual_list',
    0x8009: 'ce_memory_physical_list',
    0x800a: 'ce_bucket_parameters',
    0x800b: 'ce_process_module_map',
    0x800c: 'ce_diagnosis_list',

    # Breakpad
    0x47670001: 'md_raw_breakpad_info',
    0x47670002: 'md_raw_assertion_info',
    0x47670003: 'md_linux_cpu_info',
    0x47670004: 'md_linux_proc_status',
    0x47670005: 'md_linux_lsb_release',
    0x47670006: 'md_linux_cmd_line',
    0x47670007: 'md_linux_environ',
    0x47670008: 'md_linux_auxv',
    0x47670009: 'md_linux_maps',
    0x4767000a: 'md_linux_dso_debug',

    # Crashpad
    0x43500001: 'md_crashpad_info_stream',
}


def stream_type_label(code):
    '''Label for a stream type code, empty for codes that are not known'''
    return STREAM_TYPES.get(code, '')
