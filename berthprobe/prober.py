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

from berthprobe import btrfs, procfs, station
from berthprobe.storage import Storage


class Prober:
    """One entry point per raw storage source.

    The udev, procfs and station probes block and are meant to be run in a
    worker thread; the btrfs probes run btrfs-progs and are coroutines.
    """

    def __init__(self, context=None):
        self._storage = Storage(context)

    def probe_ports(self):
        return self._storage.probe_ports()

    def probe_blocks(self):
        return self._storage.probe_blocks()

    def probe_mounts(self):
        return procfs.probe_mounts()

    def probe_swaps(self):
        return procfs.probe_swaps()

    async def probe_volumes(self):
        return await btrfs.probe_volumes()

    async def probe_usage(self, mountpoint):
        return await btrfs.probe_usage(mountpoint)

    def probe_station(self, mountpoint):
        return station.probe_station(mountpoint)
