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
import os
from typing import Dict, Optional, Sequence

import attr

from berth.common.types import (
    Block,
    OverallUsage,
    Port,
    Snapshot,
    UsageSection,
    Volume,
    VolumeDevice,
    VolumeUsage,
)
from berth.models.storage import BlockStats, BlockTree, VolumeStats
from berthprobe import types as raw

log = logging.getLogger("berth.models.snapshot")


def _block(blk: raw.RawBlock, stats: BlockStats) -> Block:
    return Block(
        name=blk.name,
        devname=blk.devname,
        path=blk.path,
        removable=blk.attributes.get("removable") == "1",
        size=int(blk.attributes.get("size", 0)),
        **attr.asdict(stats, recurse=False),
    )


def _section(section: raw.UsageSection) -> UsageSection:
    return UsageSection(
        profiles=tuple(section.profiles), size=section.size, used=section.used
    )


def _usage(usage: raw.RawUsage) -> VolumeUsage:
    known = attr.fields_dict(OverallUsage)
    return VolumeUsage(
        overall=OverallUsage(
            **{k: v for k, v in usage.overall.items() if k in known}
        ),
        system=_section(usage.system),
        metadata=_section(usage.metadata),
        data=_section(usage.data),
        unallocated=usage.unallocated,
    )


def _volume_device(
    dev: raw.RawVolumeDevice, usage: Optional[raw.RawUsage]
) -> VolumeDevice:
    extra = {}
    if usage is not None:
        for dev_usage in usage.devices:
            if dev_usage.name == dev.path:
                extra = dict(
                    size=dev_usage.size,
                    unallocated=dev_usage.unallocated,
                    system=dev_usage.system,
                    metadata=dev_usage.metadata,
                    data=dev_usage.data,
                )
                break
        else:
            log.debug("no usage reported for volume device %s", dev.path)
    return VolumeDevice(
        name=os.path.basename(dev.path),
        path=dev.path,
        id=dev.id,
        used=dev.used,
        **extra,
    )


def _volume(
    vol: raw.RawVolume, stats: VolumeStats, usage: Optional[raw.RawUsage]
) -> Volume:
    return Volume(
        uuid=vol.uuid,
        label=vol.label,
        total_devices=vol.total_devices,
        used=vol.used,
        devices=tuple(_volume_device(dev, usage) for dev in vol.devices),
        is_missing=stats.is_missing,
        file_system_uuid=vol.uuid,
        is_mounted=stats.is_mounted,
        mountpoint=stats.mountpoint,
        is_root_fs=stats.is_root_fs,
        mount_error=stats.mount_error,
        usage=_usage(usage) if usage is not None else None,
    )


def build_snapshot(
    ports: Sequence[raw.Port],
    tree: BlockTree,
    block_stats: Sequence[BlockStats],
    volumes: Sequence[raw.RawVolume],
    volume_stats: Dict[str, VolumeStats],
    usages: Sequence[raw.RawUsage] = (),
) -> Snapshot:
    """Flatten one cycle's raw identity and derived facts into a Snapshot.

    A volume whose mount failed has no usage; it is published without.
    """
    by_mountpoint = {usage.mountpoint: usage for usage in usages}
    published = []
    for vol in volumes:
        stats = volume_stats[vol.uuid]
        usage = None
        if stats.mountpoint is not None:
            usage = by_mountpoint.get(stats.mountpoint)
        published.append(_volume(vol, stats, usage))
    return Snapshot(
        ports=tuple(Port(path=p.path, subsystem=p.subsystem) for p in ports),
        blocks=tuple(_block(blk, s) for blk, s in zip(tree.blocks, block_stats)),
        volumes=tuple(published),
    )
