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

import unittest

from berthcore.tests import BerthTestCase
from berthprobe.procfs import parse_mounts, parse_swaps, probe_mounts, probe_swaps
from berthprobe.types import RawMount, RawSwap

MOUNTS = """sysfs /sys sysfs rw,nosuid,nodev,noexec,relatime 0 0
proc /proc proc rw,nosuid,nodev,noexec,relatime 0 0
/dev/sda2 / ext4 rw,relatime,errors=remount-ro 0 0
tmpfs /run tmpfs rw,nosuid,nodev,mode=755 0 0
/dev/sdb /run/berth/volumes/0f5a btrfs rw,relatime,space_cache 0 0
/dev/sdb /run/berth/volumes/0f5a/graph/btrfs btrfs rw,relatime 0 0
/dev/sdd1 /media/user/My\\040Disk vfat rw,nosuid,nodev 0 0
tmpfs /tmp tmpfs rw 0 0
"""

SWAPS = """Filename\t\t\t\tType\t\tSize\t\tUsed\t\tPriority
/dev/sda3                               partition\t2097148\t\t0\t\t-2
/swap\\040file                           file\t\t1048572\t\t512\t\t-3
"""


class TestParseMounts(unittest.TestCase):
    def setUp(self):
        self.mounts = parse_mounts(MOUNTS)

    def test_root(self):
        self.assertIn(
            RawMount(
                device="/dev/sda2",
                mountpoint="/",
                fs_type="ext4",
                options="rw,relatime,errors=remount-ro",
            ),
            self.mounts,
        )

    def test_first_entry_per_device_wins(self):
        btrfs = [m for m in self.mounts if m.device == "/dev/sdb"]
        self.assertEqual(["/run/berth/volumes/0f5a"], [m.mountpoint for m in btrfs])
        devices = [m.device for m in self.mounts]
        self.assertEqual(len(devices), len(set(devices)))

    def test_unescapes_spaces(self):
        [m] = [m for m in self.mounts if m.device == "/dev/sdd1"]
        self.assertEqual("/media/user/My Disk", m.mountpoint)

    def test_empty(self):
        self.assertEqual([], parse_mounts(""))

    def test_short_lines_skipped(self):
        self.assertEqual([], parse_mounts("garbage line\n"))


class TestParseSwaps(unittest.TestCase):
    def test_parse(self):
        self.assertEqual(
            [
                RawSwap(
                    filename="/dev/sda3",
                    type="partition",
                    size=2097148,
                    used=0,
                    priority=-2,
                ),
                RawSwap(
                    filename="/swap file",
                    type="file",
                    size=1048572,
                    used=512,
                    priority=-3,
                ),
            ],
            parse_swaps(SWAPS),
        )

    def test_header_only(self):
        self.assertEqual([], parse_swaps(SWAPS.splitlines()[0]))


class TestProbeFiles(BerthTestCase):
    def test_probe_reads_files(self):
        mounts = self.tmp_path("mounts")
        swaps = self.tmp_path("swaps")
        with open(mounts, "w") as fp:
            fp.write(MOUNTS)
        with open(swaps, "w") as fp:
            fp.write(SWAPS)
        self.assertEqual(parse_mounts(MOUNTS), probe_mounts(mounts))
        self.assertEqual(2, len(probe_swaps(swaps)))
