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

"""This module defines the published, client-facing storage snapshot.

Every class here is frozen: a snapshot is built once per probe cycle and
replaced wholesale by the next one, never modified in place."""

from typing import Any, Dict, Optional, Tuple, Union

import attr


@attr.s(auto_attribs=True, frozen=True)
class Port:
    path: str
    subsystem: str


@attr.s(auto_attribs=True, frozen=True)
class Block:
    name: str
    devname: Optional[str]
    path: str
    removable: bool
    # in 512 byte sectors
    size: int

    parent_name: Optional[str] = None

    is_disk: bool = False
    model: Optional[str] = None
    serial: Optional[str] = None
    is_partitioned: bool = False
    partition_table_type: Optional[str] = None
    partition_table_uuid: Optional[str] = None

    is_partition: bool = False
    is_extended: bool = False

    # ID_FS_USAGE is one of filesystem, other, raid or crypto
    fs_usage_defined: bool = False
    id_fs_usage: Optional[str] = None
    file_system_type: Optional[str] = None
    file_system_uuid: Optional[str] = None
    is_file_system: bool = False
    is_volume_device: bool = False
    is_btrfs: bool = False
    btrfs_volume: Optional[str] = None
    btrfs_device: Optional[str] = None
    is_ext4: bool = False
    is_ntfs: bool = False
    is_vfat: bool = False
    is_other_file_system: bool = False
    is_linux_swap: bool = False
    is_raid_file_system: bool = False
    is_crypto_file_system: bool = False
    is_unsupported_fs_usage: bool = False

    id_bus: Optional[str] = None
    is_usb: bool = False
    is_ata: bool = False
    is_scsi: bool = False

    is_mounted: bool = False
    mountpoint: Optional[str] = None
    is_root_fs: bool = False
    is_active_swap: bool = False
    mount_error: Optional[str] = None

    # RootFS, ActiveSwap, Extended, or several of them joined with ":"
    unformattable: Optional[str] = None


@attr.s(auto_attribs=True, frozen=True)
class UsageSection:
    profiles: Tuple[str, ...] = ()
    size: int = 0
    used: int = 0


@attr.s(auto_attribs=True, frozen=True)
class OverallUsage:
    device_size: Optional[int] = None
    device_allocated: Optional[int] = None
    device_unallocated: Optional[int] = None
    device_missing: Optional[int] = None
    used: Optional[int] = None
    free_estimated: Optional[int] = None
    free_estimated_min: Optional[int] = None
    data_ratio: Optional[float] = None
    metadata_ratio: Optional[float] = None
    global_reserve: Optional[int] = None
    global_reserve_used: Optional[int] = None


@attr.s(auto_attribs=True, frozen=True)
class VolumeUsage:
    overall: OverallUsage
    system: UsageSection
    metadata: UsageSection
    data: UsageSection
    unallocated: int


@attr.s(auto_attribs=True, frozen=True)
class VolumeDevice:
    name: str
    path: str
    id: int
    used: int
    # the following are only known for mounted volumes
    size: Optional[int] = None
    unallocated: Optional[int] = None
    system: Optional[int] = None
    metadata: Optional[int] = None
    data: Optional[int] = None


@attr.s(auto_attribs=True, frozen=True)
class Volume:
    uuid: str
    label: Optional[str]
    total_devices: int
    # bytes used, as reported by btrfs filesystem show
    used: int
    devices: Tuple[VolumeDevice, ...]

    is_volume: bool = True
    is_missing: bool = False
    is_file_system: bool = True
    is_btrfs: bool = True
    file_system_type: str = "btrfs"
    file_system_uuid: Optional[str] = None

    is_mounted: bool = False
    mountpoint: Optional[str] = None
    is_root_fs: bool = False
    mount_error: Optional[str] = None

    usage: Optional[VolumeUsage] = None

    # users of the station on the volume, or the code of the reason none
    # was found; only probed on mounted volumes with no member missing
    users: Union[Tuple[Dict[str, Any], ...], str, None] = None


@attr.s(auto_attribs=True, frozen=True)
class Snapshot:
    ports: Tuple[Port, ...] = ()
    blocks: Tuple[Block, ...] = ()
    volumes: Tuple[Volume, ...] = ()

    def block(self, name) -> Optional[Block]:
        for blk in self.blocks:
            if blk.name == name:
                return blk
        return None

    def volume(self, uuid) -> Optional[Volume]:
        for vol in self.volumes:
            if vol.uuid == uuid:
                return vol
        return None


def _keep(attribute, value) -> bool:
    # Absent facts are left out, as are unset flags.
    if value is None:
        return False
    if value is False and attribute.name.startswith(("is_", "fs_usage")):
        return False
    return True


def asdict(obj: Union[Snapshot, Block, Volume, Port]) -> dict:
    """Render a snapshot (or part of one) as plain JSON-able data."""
    return attr.asdict(obj, filter=_keep, retain_collection_types=False)
