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

from berthprobe.types import RawMount, RawSwap
from berthprobe.utils import unescape_proc_field

log = logging.getLogger("berthprobe.procfs")

MOUNTS_PATH = "/proc/self/mounts"
SWAPS_PATH = "/proc/swaps"


def parse_mounts(content) -> List[RawMount]:
    """Parse the mount table. When a device is mounted more than once only
    its first (oldest) entry is kept."""
    mounts = []
    seen = set()
    for line in content.splitlines():
        fields = line.split()
        if len(fields) < 4:
            continue
        device, mountpoint, fs_type, options = (
            unescape_proc_field(f) for f in fields[:4]
        )
        if device in seen:
            log.debug("ignoring additional mount of %s at %s", device, mountpoint)
            continue
        seen.add(device)
        mounts.append(
            RawMount(
                device=device, mountpoint=mountpoint, fs_type=fs_type, options=options
            )
        )
    return mounts


def parse_swaps(content) -> List[RawSwap]:
    swaps = []
    lines = content.splitlines()
    # first line is the header: Filename Type Size Used Priority
    for line in lines[1:]:
        fields = line.split()
        if len(fields) < 5:
            continue
        swaps.append(
            RawSwap(
                filename=unescape_proc_field(fields[0]),
                type=fields[1],
                size=int(fields[2]),
                used=int(fields[3]),
                priority=int(fields[4]),
            )
        )
    return swaps


def probe_mounts(path=MOUNTS_PATH) -> List[RawMount]:
    with open(path) as fp:
        return parse_mounts(fp.read())


def probe_swaps(path=SWAPS_PATH) -> List[RawSwap]:
    with open(path) as fp:
        return parse_swaps(fp.read())
