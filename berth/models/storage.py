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

"""Annotate one probe cycle's raw storage facts.

Raw blocks, volumes, mounts and swaps are probed independently of each
other. The functions here reconcile them into derived facts per block and
per volume: what a device holds, where it is mounted, and whether it may
be reformatted. Nothing here touches the system.
"""

import logging
import os
from typing import Dict, Iterator, List, Optional, Sequence

import attr

from berthprobe.types import RawBlock, RawMount, RawSwap, RawVolume

log = logging.getLogger("berth.models.storage")

# partition entry type of a DOS extended partition
DOS_EXTENDED = "0x5"

ROOT_FS = "RootFS"
ACTIVE_SWAP = "ActiveSwap"
EXTENDED = "Extended"


@attr.s(auto_attribs=True)
class MountErrors:
    """Mount attempts that failed during one cycle, keyed by volume uuid and
    by block name."""

    volumes: Dict[str, str] = attr.Factory(dict)
    blocks: Dict[str, str] = attr.Factory(dict)


@attr.s(auto_attribs=True)
class VolumeStats:
    is_missing: bool = False
    is_mounted: bool = False
    mountpoint: Optional[str] = None
    is_root_fs: bool = False
    mount_error: Optional[str] = None


@attr.s(auto_attribs=True)
class BlockStats:
    parent_name: Optional[str] = None

    is_disk: bool = False
    model: Optional[str] = None
    serial: Optional[str] = None
    is_partitioned: bool = False
    partition_table_type: Optional[str] = None
    partition_table_uuid: Optional[str] = None

    is_partition: bool = False
    is_extended: bool = False

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

    unformattable: Optional[str] = None


class BlockTree:
    """The blocks of one probe cycle, indexed once.

    Disks are the roots and partitions their children. A partition's parent
    is the disk whose sysfs path is the directory containing the
    partition's sysfs path; names are never compared.
    """

    def __init__(self, blocks: Sequence[RawBlock]):
        self.blocks: List[RawBlock] = list(blocks)
        self._by_name = {blk.name: i for i, blk in enumerate(self.blocks)}
        by_path = {blk.path: i for i, blk in enumerate(self.blocks)}
        self.parents: List[Optional[int]] = []
        self.children: List[List[int]] = [[] for _ in self.blocks]
        for i, blk in enumerate(self.blocks):
            parent = None
            if blk.devtype == "partition":
                parent = by_path.get(os.path.dirname(blk.path))
                if parent is not None and self.blocks[parent].devtype != "disk":
                    parent = None
                if parent is None:
                    log.debug("no parent disk found for partition %s", blk.name)
            self.parents.append(parent)
            if parent is not None:
                self.children[parent].append(i)

    def __len__(self) -> int:
        return len(self.blocks)

    def __iter__(self) -> Iterator[RawBlock]:
        return iter(self.blocks)

    def index(self, name) -> Optional[int]:
        return self._by_name.get(name)

    def parent(self, i) -> Optional[RawBlock]:
        p = self.parents[i]
        if p is None:
            return None
        return self.blocks[p]


def volume_mount(volume: RawVolume, mounts: Sequence[RawMount]) -> Optional[RawMount]:
    """Return the mount of any member device of volume, if there is one."""
    paths = {dev.path for dev in volume.devices}
    for mnt in mounts:
        if mnt.device in paths:
            return mnt
    return None


def block_volume(blk: RawBlock, volumes: Sequence[RawVolume]) -> Optional[RawVolume]:
    """Return the volume blk is a member device of, if any."""
    for vol in volumes:
        if any(dev.path == blk.devname for dev in vol.devices):
            return vol
    return None


def annotate_volumes(
    volumes: Sequence[RawVolume],
    mounts: Sequence[RawMount],
    mount_errors: Optional[MountErrors] = None,
) -> Dict[str, VolumeStats]:
    if mount_errors is None:
        mount_errors = MountErrors()
    r = {}
    for vol in volumes:
        stats = VolumeStats(is_missing=vol.missing)
        mnt = volume_mount(vol, mounts)
        if mnt is not None:
            stats.is_mounted = True
            stats.mountpoint = mnt.mountpoint
            stats.is_root_fs = mnt.mountpoint == "/"
        else:
            stats.mount_error = mount_errors.volumes.get(vol.uuid)
        r[vol.uuid] = stats
    return r


def _stat_fs_usage(blk: RawBlock, stats: BlockStats):
    stats.fs_usage_defined = True
    stats.id_fs_usage = usage = blk.prop("ID_FS_USAGE")
    stats.file_system_type = fs_type = blk.prop("ID_FS_TYPE")
    stats.file_system_uuid = blk.prop("ID_FS_UUID")

    if usage == "filesystem":
        stats.is_file_system = True
        if fs_type == "btrfs":
            stats.is_volume_device = True
            stats.is_btrfs = True
            stats.btrfs_volume = blk.prop("ID_FS_UUID")
            stats.btrfs_device = blk.prop("ID_FS_UUID_SUB")
        elif fs_type == "ext4":
            stats.is_ext4 = True
        elif fs_type == "ntfs":
            stats.is_ntfs = True
        elif fs_type == "vfat":
            stats.is_vfat = True
    elif usage == "other":
        stats.is_other_file_system = True
        if fs_type == "swap":
            stats.is_linux_swap = True
    elif usage == "raid":
        stats.is_raid_file_system = True
    elif usage == "crypto":
        stats.is_crypto_file_system = True
    else:
        stats.is_unsupported_fs_usage = True


def _stat_static(tree: BlockTree, i: int, stats: BlockStats):
    blk = tree.blocks[i]
    if blk.devtype == "disk":
        stats.is_disk = True
        stats.model = blk.prop("ID_MODEL")
        stats.serial = blk.prop("ID_SERIAL_SHORT")
        # ID_PART_TABLE_TYPE overrides ID_FS_USAGE, stale filesystem
        # signatures survive partitioning.
        if blk.prop("ID_PART_TABLE_TYPE"):
            stats.is_partitioned = True
            stats.partition_table_type = blk.prop("ID_PART_TABLE_TYPE")
            stats.partition_table_uuid = blk.prop("ID_PART_TABLE_UUID")
        elif blk.prop("ID_FS_USAGE"):
            _stat_fs_usage(blk, stats)
    elif blk.devtype == "partition":
        stats.is_partition = True
        if blk.prop("ID_FS_USAGE"):
            _stat_fs_usage(blk, stats)
        elif blk.prop("ID_PART_ENTRY_TYPE") == DOS_EXTENDED:
            stats.is_extended = True
        parent = tree.parent(i)
        if parent is not None:
            stats.parent_name = parent.name


def _stat_bus(blk: RawBlock, stats: BlockStats):
    stats.id_bus = bus = blk.prop("ID_BUS")
    if bus == "usb":
        stats.is_usb = True
    elif bus == "ata":
        stats.is_ata = True
    elif bus == "scsi":
        stats.is_scsi = True


def _stat_mount_swap(
    blk: RawBlock,
    stats: BlockStats,
    volumes: Sequence[RawVolume],
    volume_stats: Dict[str, VolumeStats],
    mounts: Sequence[RawMount],
    swaps: Sequence[RawSwap],
    mount_errors: MountErrors,
):
    if stats.is_volume_device:
        vol = block_volume(blk, volumes)
        if vol is None:
            return
        vstats = volume_stats[vol.uuid]
        if vstats.is_mounted:
            stats.is_mounted = True
            stats.mountpoint = vstats.mountpoint
            stats.is_root_fs = vstats.is_root_fs
    elif stats.is_file_system:
        # disk or partition alike, as long as it holds a filesystem
        for mnt in mounts:
            if mnt.device == blk.devname:
                stats.is_mounted = True
                stats.mountpoint = mnt.mountpoint
                stats.is_root_fs = mnt.mountpoint == "/"
                break
        else:
            stats.mount_error = mount_errors.blocks.get(blk.name)
    elif stats.is_linux_swap:
        stats.is_active_swap = any(swap.filename == blk.devname for swap in swaps)


def unformattable_reason(tree: BlockTree, stats: Sequence[BlockStats], i: int):
    """Return why block i must not be formatted, or None if it may be.

    A partitioned disk is unformattable when any of its non-extended
    partitions is; its reason is the sorted, deduplicated union of theirs
    joined with ":", e.g. "ActiveSwap:RootFS".
    """
    s = stats[i]
    if s.is_disk and s.is_partitioned:
        reasons = set()
        for child in tree.children[i]:
            if stats[child].is_extended:
                continue
            reason = unformattable_reason(tree, stats, child)
            if reason:
                reasons.update(reason.split(":"))
        if reasons:
            return ":".join(sorted(reasons))
        return None
    elif s.is_root_fs:
        return ROOT_FS
    elif s.is_active_swap:
        return ACTIVE_SWAP
    elif s.is_extended:
        return EXTENDED
    else:
        return None


def annotate_blocks(
    tree: BlockTree,
    volumes: Sequence[RawVolume],
    volume_stats: Dict[str, VolumeStats],
    mounts: Sequence[RawMount],
    swaps: Sequence[RawSwap],
    mount_errors: Optional[MountErrors] = None,
) -> List[BlockStats]:
    """Annotate every block of tree. volume_stats must come from
    annotate_volumes for the same cycle."""
    if mount_errors is None:
        mount_errors = MountErrors()
    stats = [BlockStats() for _ in tree.blocks]
    for i, blk in enumerate(tree.blocks):
        _stat_static(tree, i, stats[i])
        _stat_bus(blk, stats[i])
        _stat_mount_swap(
            blk, stats[i], volumes, volume_stats, mounts, swaps, mount_errors
        )
    for i in range(len(tree)):
        stats[i].unformattable = unformattable_reason(tree, stats, i)
    return stats
