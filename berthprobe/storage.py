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

import logging
from typing import List

import pyudev

from berthprobe.types import Port, RawBlock
from berthprobe.utils import udev_get_attributes

log = logging.getLogger("berthprobe.storage")

# ram disks and loop devices
IGNORED_MAJORS = ("1", "7")

BLOCK_ATTRIBUTES = ("size", "removable")


class Storage:
    def __init__(self, context=None):
        if context is None:
            context = pyudev.Context()
        self.context = context

    def probe_blocks(self) -> List[RawBlock]:
        blocks = []
        for device in self.context.list_devices(subsystem="block"):
            if device.get("MAJOR") in IGNORED_MAJORS:
                continue
            blocks.append(
                RawBlock(
                    name=device.sys_name,
                    path=device.sys_path,
                    properties=dict(device.properties),
                    attributes=udev_get_attributes(device, BLOCK_ATTRIBUTES),
                )
            )
        log.debug("found %d block devices", len(blocks))
        return blocks

    def probe_ports(self) -> List[Port]:
        # ata only for now
        ports = [
            Port(path=device.sys_path, subsystem=device.subsystem)
            for device in self.context.list_devices(subsystem="ata_port")
        ]
        log.debug("found %d ports", len(ports))
        return ports
