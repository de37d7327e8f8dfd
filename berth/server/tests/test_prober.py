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

import io
import json
import os
from unittest.mock import AsyncMock, Mock

from berth.common.errors import ProbeFailure
from berth.server.prober import Prober
from berthcore.tests import BerthTestCase
from berthprobe.station import StationError
from berthprobe.types import Port, RawBlock, RawMount, RawVolume

MACHINE_CONFIG = """\
storage:
  ports:
    - {path: /sys/devices/ata1/ata_port/ata1, subsystem: ata_port}
  blocks:
    - name: sdb
      path: /sys/devices/pci0000:00/ata2/host1/target1:0:0/block/sdb
      properties:
        DEVNAME: /dev/sdb
        DEVTYPE: disk
        ID_FS_USAGE: filesystem
        ID_FS_TYPE: btrfs
        ID_FS_UUID: vol-1
      attributes: {size: "2048", removable: "0"}
  volumes:
    - uuid: vol-1
      label: data
      total_devices: 1
      used: 1048576
      devices:
        - {id: 1, path: /dev/sdb, size: 1073741824, used: 1048576}
  mounts:
    - {device: /dev/sdb, mountpoint: /run/berth/volumes/vol-1, fs_type: btrfs}
  usages:
    /run/berth/volumes/vol-1:
      overall: {device_size: 1073741824, used: 1048576}
      data: {profiles: [single], size: 8388608, used: 1048576}
      unallocated: 1000
  stations:
    /run/berth/volumes/vol-1:
      - {uuid: u-1, username: alice}
"""


class TestSavedProber(BerthTestCase):
    def make_prober(self, debug_flags=()):
        return Prober(io.StringIO(MACHINE_CONFIG), debug_flags)

    async def test_loads_canned_data(self):
        prober = self.make_prober()
        self.assertEqual(
            [Port(path="/sys/devices/ata1/ata_port/ata1", subsystem="ata_port")],
            await prober.probe_ports(),
        )
        [blk] = await prober.probe_blocks()
        self.assertIsInstance(blk, RawBlock)
        self.assertEqual("/dev/sdb", blk.devname)
        [vol] = await prober.probe_volumes()
        self.assertIsInstance(vol, RawVolume)
        self.assertEqual("/dev/sdb", vol.devices[0].path)
        [mnt] = await prober.probe_mounts()
        self.assertEqual(
            RawMount("/dev/sdb", "/run/berth/volumes/vol-1", "btrfs"), mnt
        )
        self.assertEqual([], await prober.probe_swaps())

    async def test_usage(self):
        usage = await self.make_prober().probe_usage("/run/berth/volumes/vol-1")
        self.assertEqual("/run/berth/volumes/vol-1", usage.mountpoint)
        self.assertEqual(["single"], usage.data.profiles)
        self.assertEqual(1000, usage.unallocated)

    async def test_usage_not_saved(self):
        with self.assertRaises(ProbeFailure) as cm:
            await self.make_prober().probe_usage("/elsewhere")
        self.assertEqual("usage", cm.exception.source)

    async def test_simulated_failure(self):
        prober = self.make_prober(debug_flags=["bpfail-blocks"])
        with self.assertRaises(ProbeFailure) as cm:
            await prober.probe_blocks()
        self.assertEqual("blocks", cm.exception.source)
        self.assertEqual(1, len(await prober.probe_volumes()))

    async def test_station(self):
        prober = self.make_prober()
        self.assertEqual(
            [{"uuid": "u-1", "username": "alice"}],
            await prober.probe_station("/run/berth/volumes/vol-1"),
        )
        self.assertEqual("ENOENT", await prober.probe_station("/elsewhere"))

    async def test_simulated_station_failure(self):
        prober = self.make_prober(debug_flags=["bpfail-station"])
        self.assertEqual(
            "EFAIL", await prober.probe_station("/run/berth/volumes/vol-1")
        )


class TestSystemProber(BerthTestCase):
    def make_prober(self, block_log_dir=None):
        prober = Prober(block_log_dir=block_log_dir)
        prober._raw_prober = Mock()
        return prober

    async def test_blocking_probe_wrapped(self):
        prober = self.make_prober()
        prober.raw_prober.probe_swaps.side_effect = PermissionError("denied")
        with self.assertRaises(ProbeFailure) as cm:
            await prober.probe_swaps()
        self.assertEqual("swaps", cm.exception.source)
        self.assertIn("denied", str(cm.exception))

    async def test_volumes_probe_wrapped(self):
        prober = self.make_prober()
        prober.raw_prober.probe_volumes = AsyncMock(side_effect=OSError("no btrfs"))
        with self.assertRaises(ProbeFailure) as cm:
            await prober.probe_volumes()
        self.assertEqual("volumes", cm.exception.source)

    async def test_usage_wrapped(self):
        prober = self.make_prober()
        prober.raw_prober.probe_usage = AsyncMock(side_effect=ValueError("bad"))
        with self.assertRaises(ProbeFailure) as cm:
            await prober.probe_usage("/run/berth/volumes/vol-1")
        self.assertEqual("usage", cm.exception.source)

    async def test_probe_data_dumped(self):
        block_log_dir = self.tmp_dir()
        prober = self.make_prober(block_log_dir)
        mounts = [RawMount("/dev/sda1", "/", "ext4", "rw")]
        prober.raw_prober.probe_mounts.return_value = mounts
        self.assertEqual(mounts, await prober.probe_mounts())
        with open(os.path.join(block_log_dir, "probe-mounts.json")) as fp:
            data = json.load(fp)
        self.assertEqual(
            [
                {
                    "device": "/dev/sda1",
                    "mountpoint": "/",
                    "fs_type": "ext4",
                    "options": "rw",
                }
            ],
            data,
        )

    async def test_station(self):
        prober = self.make_prober()
        prober.raw_prober.probe_station.return_value = [{"username": "alice"}]
        self.assertEqual(
            [{"username": "alice"}],
            await prober.probe_station("/run/berth/volumes/vol-1"),
        )
        prober.raw_prober.probe_station.assert_called_once_with(
            "/run/berth/volumes/vol-1"
        )

    async def test_station_error_code(self):
        prober = self.make_prober()
        prober.raw_prober.probe_station.side_effect = StationError("EDATA", "bad")
        self.assertEqual(
            "EDATA", await prober.probe_station("/run/berth/volumes/vol-1")
        )

    async def test_station_unexpected_failure(self):
        prober = self.make_prober()
        prober.raw_prober.probe_station.side_effect = RuntimeError("boom")
        self.assertEqual(
            "EFAIL", await prober.probe_station("/run/berth/volumes/vol-1")
        )
