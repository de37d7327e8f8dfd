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
import enum
import logging
from typing import List, Optional, Sequence

import attr

from berth.common.errors import ProbeFailure
from berth.common.types import Snapshot
from berth.models.snapshot import build_snapshot
from berth.models.storage import BlockTree, annotate_blocks, annotate_volumes
from berthcore.async_helpers import CoalescingTask
from berthprobe.types import RawMount, RawUsage

log = logging.getLogger("berth.server.coordinator")


class StorageChannels(enum.Enum):
    UPDATED = enum.auto()
    FAILED = enum.auto()


class ProbeCoordinator:
    """Owns the published snapshot and the only way of replacing it.

    refresh() runs the probe, mount, annotate and publish pipeline with at
    most one run in flight. Callers arriving during a run share a single
    follow-up run. The snapshot stays None until the first run succeeds;
    a failed run leaves the previous snapshot in place.
    """

    def __init__(self, prober, mounter, config, hub):
        self.prober = prober
        self.mounter = mounter
        self.config = config
        self.hub = hub
        self.snapshot: Optional[Snapshot] = None
        self._task = CoalescingTask(self._run)

    def refresh(self) -> asyncio.Future:
        return self._task.run()

    def usage_mountpoints(self, mounts: Sequence[RawMount]) -> List[str]:
        prefix = self.config.volumes_dir + "/"
        r = []
        for mnt in mounts:
            if mnt.fs_type != "btrfs" or not mnt.mountpoint.startswith(prefix):
                continue
            if mnt.mountpoint.endswith(self.config.nested_mountpoint_suffix):
                continue
            if mnt.mountpoint not in r:
                r.append(mnt.mountpoint)
        return r

    async def _usage(self, mountpoint) -> Optional[RawUsage]:
        try:
            return await self.prober.probe_usage(mountpoint)
        except ProbeFailure as e:
            log.warning("no usage for %s: %s", mountpoint, e)
            return None

    async def probe_stations(self, snapshot: Snapshot) -> Snapshot:
        """Fill in the station users of every mounted, complete volume."""
        healthy = [
            vol for vol in snapshot.volumes if vol.is_mounted and not vol.is_missing
        ]
        results = await asyncio.gather(
            *(self.prober.probe_station(vol.mountpoint) for vol in healthy)
        )
        users = {
            vol.uuid: r if isinstance(r, str) else tuple(r)
            for vol, r in zip(healthy, results)
        }
        volumes = tuple(
            attr.evolve(vol, users=users[vol.uuid]) if vol.uuid in users else vol
            for vol in snapshot.volumes
        )
        return attr.evolve(snapshot, volumes=volumes)

    async def _cycle(self) -> Snapshot:
        ports, blocks, volumes, mounts, swaps = await asyncio.gather(
            self.prober.probe_ports(),
            self.prober.probe_blocks(),
            self.prober.probe_volumes(),
            self.prober.probe_mounts(),
            self.prober.probe_swaps(),
        )
        log.debug(
            "probed %d blocks, %d volumes, %d mounts, %d swaps",
            len(blocks),
            len(volumes),
            len(mounts),
            len(swaps),
        )

        mount_errors = await self.mounter.mount_all(blocks, volumes, mounts)
        await asyncio.sleep(self.config.mount_settle_delay)
        mounts = await self.prober.probe_mounts()

        usages = await asyncio.gather(
            *(self._usage(mp) for mp in self.usage_mountpoints(mounts))
        )

        tree = BlockTree(blocks)
        volume_stats = annotate_volumes(volumes, mounts, mount_errors)
        block_stats = annotate_blocks(
            tree, volumes, volume_stats, mounts, swaps, mount_errors
        )
        snapshot = build_snapshot(
            ports,
            tree,
            block_stats,
            volumes,
            volume_stats,
            [usage for usage in usages if usage is not None],
        )
        return await self.probe_stations(snapshot)

    async def _run(self) -> Snapshot:
        try:
            snapshot = await self._cycle()
        except Exception as e:
            log.exception("storage refresh failed")
            await self.hub.abroadcast(StorageChannels.FAILED, e)
            raise
        self.snapshot = snapshot
        log.info(
            "published storage snapshot: %d blocks, %d volumes",
            len(snapshot.blocks),
            len(snapshot.volumes),
        )
        await self.hub.abroadcast(StorageChannels.UPDATED, snapshot)
        return snapshot
