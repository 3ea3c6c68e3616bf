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
Flat records for the streams that are displayed, built from the stream
payloads of the minidump decoder.
'''

from dataclasses import dataclass
from typing import Optional

from .memory_map import protection_label


def _as_int(value):
    '''The decoder uses enums for some fields. Return the raw value.'''
    return getattr(value, 'value', value)


@dataclass
class ThreadDescriptor:
    thread_id: int
    addr_memory_range: int
    suspend_count: int
    priority: int
    teb: int

    @classmethod
    def from_thread(cls, thread):
        return cls(thread_id=thread.ThreadId,
                   addr_memory_range=thread.Stack.StartOfMemoryRange,
                   suspend_count=thread.SuspendCount,
                   priority=thread.Priority,
                   teb=thread.Teb)


@dataclass
class ModuleDescriptor:
    base_of_image: int
    size_of_image: int
    check_sum: int
    time_date_stamp: int
    module_name: str

    @classmethod
    def from_module(cls, module):
        '''Works for both loaded and unloaded modules'''
        return cls(base_of_image=module.baseaddress,
                   size_of_image=module.size,
                   check_sum=getattr(module, 'checksum', None),
                   time_date_stamp=getattr(module, 'timestamp', None),
                   module_name=module.name)


@dataclass
class HandleDescriptor:
    handle: int
    attributes: int
    granted_access: int
    handle_count: int
    pointer_count: int
    type_name: str
    object_name: str

    @classmethod
    def from_handle(cls, handle):
        return cls(handle=handle.Handle,
                   attributes=handle.Attributes,
                   granted_access=handle.GrantedAccess,
                   handle_count=getattr(handle, 'HandleCount', None),
                   pointer_count=getattr(handle, 'PointerCount', None),
                   type_name=handle.TypeName or '',
                   object_name=handle.ObjectName or '')


@dataclass
class MemoryInfoEntry:
    base_address: int
    allocation_protect: int
    protect: str
    state: int
    type: int
    region_size: int

    @classmethod
    def from_memory_info(cls, info):
        return cls(base_address=info.BaseAddress,
                   allocation_protect=_as_int(info.AllocationProtect),
                   protect=protection_label(_as_int(info.Protect)),
                   state=_as_int(info.State),
                   type=_as_int(info.Type),
                   region_size=info.RegionSize)


@dataclass
class MemoryRangeRecord:
    start_of_memory_range: int
    data_size: int
    file_offset: int


@dataclass
class SystemInfoRecord:
    processor_architecture: int
    processor_level: int
    processor_revision: int
    number_of_processors: int
    product_type: int
    major_version: int
    minor_version: int
    build_number: int
    platform_id: int
    suite_mask: int
    csd_version: str

    @classmethod
    def from_system_info(cls, sysinfo):
        return cls(processor_architecture=_as_int(sysinfo.ProcessorArchitecture),
                   processor_level=sysinfo.ProcessorLevel,
                   processor_revision=sysinfo.ProcessorRevision,
                   number_of_processors=sysinfo.NumberOfProcessors,
                   product_type=_as_int(sysinfo.ProductType),
                   major_version=sysinfo.MajorVersion,
                   minor_version=sysinfo.MinorVersion,
                   build_number=sysinfo.BuildNumber,
                   platform_id=_as_int(sysinfo.PlatformId),
                   suite_mask=_as_int(getattr(sysinfo, 'SuiteMask', None)),
                   csd_version=getattr(sysinfo, 'CSDVersion', None))


# The size of the misc info stream depends on the version of the structure,
# fields that are not present are None.
MISC_INFO_FIELDS = [
    ('flags1', 'Flags1'),
    ('process_id', 'ProcessId'),
    ('process_create_time', 'ProcessCreateTime'),
    ('process_user_time', 'ProcessUserTime'),
    ('process_kernel_time', 'ProcessKernelTime'),
    ('processor_max_mhz', 'ProcessorMaxMhz'),
    ('processor_current_mhz', 'ProcessorCurrentMhz'),
    ('processor_mhz_limit', 'ProcessorMhzLimit'),
    ('processor_max_idle_state', 'ProcessorMaxIdleState'),
    ('processor_current_idle_state', 'ProcessorCurrentIdleState'),
]


@dataclass
class MiscInfoRecord:
    flags1: Optional[int] = None
    process_id: Optional[int] = None
    process_create_time: Optional[int] = None
    process_user_time: Optional[int] = None
    process_kernel_time: Optional[int] = None
    processor_max_mhz: Optional[int] = None
    processor_current_mhz: Optional[int] = None
    processor_mhz_limit: Optional[int] = None
    processor_max_idle_state: Optional[int] = None
    processor_current_idle_state: Optional[int] = None

    @classmethod
    def from_misc_info(cls, misc_info):
        return cls(**{name: _as_int(getattr(misc_info, attribute, None))
                      for name, attribute in MISC_INFO_FIELDS})
