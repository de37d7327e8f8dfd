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

"""Probe btrfs volumes and their space usage by parsing btrfs-progs output.

All commands are run with raw byte units so no size needs dehumanizing.
"""

import asyncio
import logging
import re
from typing import List

from berthcore.utils import arun_command
from berthprobe.types import (
    RawDeviceUsage,
    RawUsage,
    RawVolume,
    RawVolumeDevice,
)
from berthprobe.utils import parse_number, snake_case

log = logging.getLogger("berthprobe.btrfs")

_LABEL_RE = re.compile(r"^Label:\s+(?:'(?P<label>.*)'|none)\s+uuid:\s+(?P<uuid>\S+)")
_TOTAL_RE = re.compile(r"^\s*Total devices\s+(\d+)\s+FS bytes used\s+(\d+)")
_DEVID_RE = re.compile(
    r"^\s*devid\s+(?P<id>\d+)\s+size\s+(?P<size>\d+)\s+used\s+(?P<used>\d+)"
    r"\s+path\s+(?P<path>.+?)\s*$"
)
_SECTION_RE = re.compile(
    r"^(?P<kind>Data|Metadata|System),(?P<profile>[^:]+):\s+"
    r"Size:(?P<size>\d+),\s+Used:(?P<used>\d+)"
)
_DEVICE_AMOUNT_RE = re.compile(r"^\s+(?P<name>\S+)\s+(?P<amount>\d+)\s*$")
_DEVICE_HEADER_RE = re.compile(r"^(?P<name>\S+),\s+ID:\s+(?P<id>\d+)")
_KEY_VALUE_RE = re.compile(
    r"^\s+(?P<key>[^:]+):\s+(?P<value>\S+)(?:\s+\((?P<extra>.*)\))?"
)


def parse_filesystem_show(content) -> List[RawVolume]:
    volumes = []
    volume = None
    for line in content.splitlines():
        m = _LABEL_RE.match(line)
        if m:
            volume = RawVolume(uuid=m.group("uuid"), label=m.group("label"))
            volumes.append(volume)
            continue
        if volume is None:
            continue
        m = _TOTAL_RE.match(line)
        if m:
            volume.total_devices = int(m.group(1))
            volume.used = int(m.group(2))
            continue
        m = _DEVID_RE.match(line)
        if m:
            path = m.group("path")
            # newer btrfs-progs list absent members as
            # "path <missing disk #2> MISSING"
            if path.startswith("<") or path.endswith("MISSING"):
                volume.missing = True
                continue
            volume.devices.append(
                RawVolumeDevice(
                    id=int(m.group("id")),
                    path=path,
                    size=int(m.group("size")),
                    used=int(m.group("used")),
                )
            )
            continue
        if "devices missing" in line:
            volume.missing = True
    for volume in volumes:
        if len(volume.devices) < volume.total_devices:
            volume.missing = True
    return volumes


def parse_filesystem_usage(mountpoint, content) -> RawUsage:
    usage = RawUsage(mountpoint=mountpoint)
    section = None
    for line in content.splitlines():
        if not line.strip():
            section = None
            continue
        if line.startswith("Overall:"):
            section = "overall"
            continue
        if line.startswith("Unallocated:"):
            section = "unallocated"
            continue
        m = _SECTION_RE.match(line)
        if m:
            section = m.group("kind").lower()
            target = getattr(usage, section)
            target.profiles.append(m.group("profile"))
            target.size += int(m.group("size"))
            target.used += int(m.group("used"))
            continue
        if section == "overall":
            m = _KEY_VALUE_RE.match(line)
            if m is None:
                continue
            key = snake_case(m.group("key"))
            usage.overall[key] = parse_number(m.group("value"))
            extra = m.group("extra")
            if extra and ":" in extra:
                label, value = extra.split(":", 1)
                usage.overall[key + "_" + snake_case(label)] = parse_number(value)
        elif section == "unallocated":
            m = _DEVICE_AMOUNT_RE.match(line)
            if m:
                usage.unallocated += int(m.group("amount"))
    return usage


def parse_device_usage(content) -> List[RawDeviceUsage]:
    devices = []
    device = None
    for line in content.splitlines():
        m = _DEVICE_HEADER_RE.match(line)
        if m:
            device = RawDeviceUsage(name=m.group("name"), id=int(m.group("id")))
            devices.append(device)
            continue
        if device is None:
            continue
        m = _KEY_VALUE_RE.match(line)
        if m is None:
            continue
        key = m.group("key")
        amount = parse_number(m.group("value"))
        if not isinstance(amount, int):
            continue
        kind = key.split(",", 1)[0].strip().lower()
        if kind in ("data", "metadata", "system"):
            setattr(device, kind, getattr(device, kind) + amount)
        elif kind == "unallocated":
            device.unallocated = amount
        elif kind == "device size":
            device.size = amount
        elif kind == "device slack":
            device.slack = amount
    return devices


async def probe_volumes() -> List[RawVolume]:
    cp = await arun_command(["btrfs", "filesystem", "show", "--raw"], check=True)
    volumes = parse_filesystem_show(cp.stdout)
    log.debug("found %d btrfs volumes", len(volumes))
    return volumes


async def probe_usage(mountpoint) -> RawUsage:
    fs_cp, dev_cp = await asyncio.gather(
        arun_command(["btrfs", "filesystem", "usage", "-b", mountpoint], check=True),
        arun_command(["btrfs", "device", "usage", "-b", mountpoint], check=True),
    )
    usage = parse_filesystem_usage(mountpoint, fs_cp.stdout)
    usage.devices = parse_device_usage(dev_cp.stdout)
    return usage
