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

import asyncio
import contextlib
import logging
import os
from typing import Dict, Sequence, Tuple

import attr

from berth.common.errors import CommandFailure, StorageNotFound, UnmountFailure
from berth.common.types import Snapshot
from berth.models.storage import MountErrors, volume_mount
from berthcore.file_util import ensure_dir
from berthprobe.types import RawBlock, RawMount, RawVolume

log = logging.getLogger("berth.server.mounter")


@attr.s(auto_attribs=True, frozen=True)
class UnmountPlan:
    """Mountpoints to release before destroying some devices, in the order
    they must be unmounted: whole volumes, then partitions of partitioned
    disks, then the targets themselves."""

    volumes: Tuple[str, ...] = ()
    partitions: Tuple[str, ...] = ()
    blocks: Tuple[str, ...] = ()

    def tiers(self):
        return [
            ("volume", self.volumes),
            ("partition", self.partitions),
            ("block", self.blocks),
        ]

    def __bool__(self):
        return bool(self.volumes or self.partitions or self.blocks)


def resolve_unmounts(snapshot: Snapshot, targets: Sequence[str]) -> UnmountPlan:
    """Work out which mountpoints keep the named devices busy.

    targets must already be validated to exist in snapshot. A mountpoint
    appears at most once in the plan, in the earliest tier that needs it.
    """
    blks = []
    for name in targets:
        blk = snapshot.block(name)
        if blk is None:
            raise StorageNotFound(f"device {name} not found")
        blks.append(blk)

    planned = set()

    def take(mountpoints):
        r = []
        for mp in mountpoints:
            if mp is not None and mp not in planned:
                planned.add(mp)
                r.append(mp)
        return tuple(r)

    volumes = []
    uuids = sorted(
        {blk.btrfs_volume for blk in blks if blk.is_mounted and blk.is_volume_device}
    )
    for uuid in uuids:
        vol = snapshot.volume(uuid)
        if vol is not None and vol.mountpoint is not None:
            volumes.append(vol.mountpoint)
        else:
            volumes.extend(blk.mountpoint for blk in blks if blk.btrfs_volume == uuid)

    partitions = []
    for disk in blks:
        if disk.is_disk and disk.is_partitioned:
            partitions.extend(
                blk.mountpoint
                for blk in snapshot.blocks
                if blk.parent_name == disk.name and blk.is_mounted
            )

    direct = [
        blk.mountpoint
        for blk in blks
        if blk.is_mounted
        and (
            blk.is_partition
            or (blk.is_disk and blk.is_file_system and not blk.is_volume_device)
        )
    ]

    return UnmountPlan(
        volumes=take(volumes), partitions=take(partitions), blocks=take(direct)
    )


class Mounter:
    def __init__(self, config, command_runner):
        self.config = config
        self.command_runner = command_runner

    async def mount(self, device, mountpoint, options=None, type=None):
        opts = []
        if type is not None:
            opts.extend(["-t", type])
        if options is not None:
            opts.extend(["-o", options])
        ensure_dir(mountpoint)
        await self.command_runner.run(["mount"] + opts + [device, mountpoint])

    async def unmount(self, mountpoint):
        await self.command_runner.run(["umount", mountpoint])
        parent = os.path.dirname(mountpoint)
        if parent in (self.config.volumes_dir, self.config.blocks_dir):
            with contextlib.suppress(OSError):
                os.rmdir(mountpoint)

    async def _attempt(self, errors: Dict[str, str], key, coro):
        # One device failing to mount must not affect any other.
        try:
            await coro
        except (CommandFailure, OSError) as e:
            log.warning("mounting %s failed: %s", key, e)
            errors[key] = str(e)

    async def _mount_volume(self, vol: RawVolume):
        mountpoint = self.config.volume_mountpoint(vol.uuid)
        # a volume with a member missing can only be mounted degraded, and
        # then only read-only
        options = "degraded,ro" if vol.missing else None
        await self.mount(f"UUID={vol.uuid}", mountpoint, options=options, type="btrfs")

    async def mount_volumes(
        self, volumes: Sequence[RawVolume], mounts: Sequence[RawMount]
    ) -> Dict[str, str]:
        """Mount every volume that is not mounted yet. Returns the errors of
        the attempts that failed, keyed by volume uuid."""
        unmounted = [vol for vol in volumes if volume_mount(vol, mounts) is None]
        log.debug("mounting volumes %s", [vol.uuid for vol in unmounted])
        errors: Dict[str, str] = {}
        await asyncio.gather(
            *(
                self._attempt(errors, vol.uuid, self._mount_volume(vol))
                for vol in unmounted
            )
        )
        return errors

    def is_mount_candidate(self, blk: RawBlock, mounted) -> bool:
        # only standalone filesystems of a known type, on a disk without a
        # partition table or on a partition
        if blk.devtype == "disk":
            if blk.prop("ID_PART_TABLE_TYPE"):
                return False
        elif blk.devtype != "partition":
            return False
        return (
            blk.prop("ID_FS_USAGE") == "filesystem"
            and blk.prop("ID_FS_TYPE") in self.config.supported_filesystems
            and blk.devname not in mounted
        )

    async def _mount_block(self, blk: RawBlock):
        if blk.prop("ID_BUS") == "usb":
            # udisksctl picks the mountpoint, under /media/<user>/
            await self.command_runner.run(
                [
                    "udisksctl",
                    "mount",
                    "--block-device",
                    blk.devname,
                    "--no-user-interaction",
                ]
            )
        else:
            await self.mount(blk.devname, self.config.block_mountpoint(blk.name))

    async def mount_blocks(
        self, blocks: Sequence[RawBlock], mounts: Sequence[RawMount]
    ) -> Dict[str, str]:
        """Mount every supported standalone filesystem that is not mounted
        yet. Returns the errors of the attempts that failed, keyed by block
        name."""
        mounted = {mnt.device for mnt in mounts}
        candidates = [blk for blk in blocks if self.is_mount_candidate(blk, mounted)]
        log.debug("mounting blocks %s", [blk.name for blk in candidates])
        errors: Dict[str, str] = {}
        await asyncio.gather(
            *(
                self._attempt(errors, blk.name, self._mount_block(blk))
                for blk in candidates
            )
        )
        return errors

    async def mount_all(
        self,
        blocks: Sequence[RawBlock],
        volumes: Sequence[RawVolume],
        mounts: Sequence[RawMount],
    ) -> MountErrors:
        # volumes first: their member devices are never standalone candidates
        volume_errors = await self.mount_volumes(volumes, mounts)
        block_errors = await self.mount_blocks(blocks, mounts)
        return MountErrors(volumes=volume_errors, blocks=block_errors)

    async def unmount_targets(
        self, snapshot: Snapshot, targets: Sequence[str]
    ) -> UnmountPlan:
        """Release everything mounted from the named devices, tier by tier.

        The first failure aborts with UnmountFailure; whatever was unmounted
        before it stays unmounted.
        """
        plan = resolve_unmounts(snapshot, targets)
        for tier, mountpoints in plan.tiers():
            for mountpoint in mountpoints:
                log.info("unmounting %s %s", tier, mountpoint)
                try:
                    await self.unmount(mountpoint)
                except CommandFailure as e:
                    raise UnmountFailure(f"unmounting {mountpoint} failed: {e}") from e
        return plan
