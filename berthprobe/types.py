# Copyright 2026 Canonical, Ltd.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.

"""Raw storage facts, as reported by the OS for one probe cycle.

Nothing here is derived: these are the inputs that the berth models
annotate and reconcile.
"""

from typing import Dict, List, Optional

import attr


@attr.s(auto_attribs=True)
class Port:
    path: str
    subsystem: str


@attr.s(auto_attribs=True)
class RawBlock:
    # kernel name, e.g. sda or sda1
    name: str
    # sysfs path; a partition's path sits directly inside its disk's path
    path: str
    # udev properties: DEVNAME, DEVTYPE, ID_FS_USAGE, ID_PART_TABLE_TYPE...
    properties: Dict[str, str] = attr.Factory(dict)
    # sysfs attributes, notably size (512 byte sectors) and removable
    attributes: Dict[str, str] = attr.Factory(dict)

    @property
    def devname(self) -> Optional[str]:
        return self.properties.get("DEVNAME")

    @property
    def devtype(self) -> Optional[str]:
        return self.properties.get("DEVTYPE")

    def prop(self, key: str) -> Optional[str]:
        return self.properties.get(key)


@attr.s(auto_attribs=True)
class RawVolumeDevice:
    id: int
    path: str
    size: int = 0
    used: int = 0


@attr.s(auto_attribs=True)
class RawVolume:
    uuid: str
    label: Optional[str] = None
    missing: bool = False
    total_devices: int = 0
    used: int = 0
    devices: List[RawVolumeDevice] = attr.Factory(list)

    @classmethod
    def from_dict(cls, data):
        data = dict(data)
        devices = [RawVolumeDevice(**d) for d in data.pop("devices", [])]
        return cls(devices=devices, **data)


@attr.s(auto_attribs=True)
class RawMount:
    device: str
    mountpoint: str
    fs_type: str
    options: str = ""


@attr.s(auto_attribs=True)
class RawSwap:
    filename: str
    type: str = "partition"
    size: int = 0
    used: int = 0
    priority: int = -1


@attr.s(auto_attribs=True)
class UsageSection:
    # More than one profile shows up while a balance converts between them.
    profiles: List[str] = attr.Factory(list)
    size: int = 0
    used: int = 0


@attr.s(auto_attribs=True)
class RawDeviceUsage:
    name: str
    id: Optional[int] = None
    size: int = 0
    slack: int = 0
    data: int = 0
    metadata: int = 0
    system: int = 0
    unallocated: int = 0


@attr.s(auto_attribs=True)
class RawUsage:
    mountpoint: str
    overall: Dict[str, object] = attr.Factory(dict)
    data: UsageSection = attr.Factory(UsageSection)
    metadata: UsageSection = attr.Factory(UsageSection)
    system: UsageSection = attr.Factory(UsageSection)
    unallocated: int = 0
    devices: List[RawDeviceUsage] = attr.Factory(list)

    @classmethod
    def from_dict(cls, data):
        data = dict(data)
        for kind in "data", "metadata", "system":
            if kind in data:
                data[kind] = UsageSection(**data[kind])
        devices = [RawDeviceUsage(**d) for d in data.pop("devices", [])]
        return cls(devices=devices, **data)
