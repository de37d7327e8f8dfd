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
import logging
from typing import List, Sequence

from berth.common.errors import StorageNotFound, ValidationFailure
from berthcore.async_helpers import exclusive

log = logging.getLogger("berth.server.format")

# btrfs data profiles: single device, striped, mirrored
FORMAT_MODES = ("single", "raid0", "raid1")


def validate_request(mode, targets) -> List[str]:
    """Check the shape of a format request. Returns the target names
    deduplicated and sorted."""
    if mode not in FORMAT_MODES:
        raise ValidationFailure(f"unknown format mode {mode!r}")
    if isinstance(targets, str) or not isinstance(targets, (list, tuple)):
        raise ValidationFailure("targets must be a list of device names")
    if not targets:
        raise ValidationFailure("no target devices given")
    for name in targets:
        if not isinstance(name, str) or not name:
            raise ValidationFailure(f"invalid device name {name!r}")
    return sorted(set(targets))


class FormatOperation:
    """Make one new btrfs volume out of whole disks.

    Nothing is touched unless every target exists in a freshly probed
    snapshot, is a disk and has no unformattable reason. Once unmounting
    starts, the snapshot is refreshed again whatever happens.
    """

    def __init__(self, coordinator, mounter, command_runner, config):
        self.coordinator = coordinator
        self.mounter = mounter
        self.command_runner = command_runner
        self.config = config

    def check_targets(self, snapshot, names: Sequence[str]):
        for name in names:
            blk = snapshot.block(name)
            if blk is None:
                raise ValidationFailure(f"device {name} not found")
            if not blk.is_disk:
                raise ValidationFailure(f"device {name} is not a disk")
            if blk.unformattable:
                raise ValidationFailure(
                    f"device {name} can not be formatted: {blk.unformattable}"
                )

    async def _destroy(self, snapshot, mode, names):
        await self.mounter.unmount_targets(snapshot, names)
        devices = [snapshot.block(name).devname for name in names]
        await self.command_runner.run(["mkfs.btrfs", "-d", mode, "-f"] + devices)
        await asyncio.sleep(self.config.format_settle_delay)
        await self.command_runner.run(["partprobe"])

    @exclusive
    async def run(self, mode, targets) -> str:
        names = validate_request(mode, targets)
        snapshot = await self.coordinator.refresh()
        self.check_targets(snapshot, names)

        log.info("formatting %s as btrfs %s", names, mode)
        try:
            await self._destroy(snapshot, mode, names)
        except Exception:
            try:
                await self.coordinator.refresh()
            except Exception:
                log.exception("refresh after failed format failed")
            raise

        snapshot = await self.coordinator.refresh()
        blk = snapshot.block(names[0])
        if blk is None or blk.file_system_uuid is None:
            raise StorageNotFound(f"no file system on {names[0]} after formatting")
        uuid = blk.file_system_uuid
        log.info("formatted %s, new volume %s", names, uuid)
        return uuid
