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

from parameterized import parameterized

from berth.common.errors import (
    CommandFailure,
    StorageNotFound,
    UnmountFailure,
    ValidationFailure,
)
from berth.server.format import validate_request
from berth.tests.fakes import (
    EXTENDED,
    SWAP,
    Engine,
    FakeSystem,
    btrfs,
    disk,
    fs,
    make_config,
    mount,
    partition,
    partitioned,
    swap,
    volume,
)
from berthcore.tests import BerthTestCase


class TestValidateRequest(BerthTestCase):
    def test_sorted_and_deduplicated(self):
        names = validate_request("raid1", ["sdc", "sdb", "sdc"])
        self.assertEqual(["sdb", "sdc"], names)

    @parameterized.expand(
        [
            ("raid5", ["sdb"]),
            ("", ["sdb"]),
            ("single", []),
            ("single", "sdb"),
            ("single", None),
            ("single", ["sdb", ""]),
            ("single", ["sdb", 3]),
        ]
    )
    def test_rejected(self, mode, targets):
        with self.assertRaises(ValidationFailure):
            validate_request(mode, targets)


class TestFormatOperation(BerthTestCase):
    def setUp(self):
        self.config = make_config(self.tmp_dir())
        self.sda = disk("sda", **partitioned("dos"))
        self.sda1 = partition(self.sda, 1, **fs("ext4"))
        self.sda2 = partition(self.sda, 2, **SWAP)
        self.sda3 = partition(self.sda, 3, **EXTENDED)
        self.sdb = disk("sdb", host=1)
        self.sdc = disk("sdc", host=2)
        self.system = FakeSystem(
            blocks=[self.sda, self.sda1, self.sda2, self.sda3, self.sdb, self.sdc],
            mounts=[mount(self.sda1, "/")],
            swaps=[swap(self.sda2)],
        )
        self.engine = Engine(self.system, self.config)
        self.runner = self.engine.runner

    async def format(self, mode, targets):
        return await self.engine.service.format(mode, targets)

    async def test_raid1_on_unmounted_disks(self):
        uuid = await self.format("raid1", ["sdb", "sdc"])
        self.assertEqual(self.system.new_uuids, [uuid])
        self.assertEqual([], self.runner.commands("umount"))
        self.assertEqual(
            [["mkfs.btrfs", "-d", "raid1", "-f", "/dev/sdb", "/dev/sdc"]],
            self.runner.commands("mkfs.btrfs"),
        )
        self.assertEqual([["partprobe"]], self.runner.commands("partprobe"))
        snapshot = self.engine.service.get_snapshot()
        self.assertEqual(uuid, snapshot.block("sdb").file_system_uuid)
        self.assertEqual(uuid, snapshot.block("sdc").btrfs_volume)
        vol = snapshot.volume(uuid)
        self.assertTrue(vol.is_mounted)
        self.assertEqual(self.config.volume_mountpoint(uuid), vol.mountpoint)

    async def test_root_disk_rejected_without_commands(self):
        with self.assertRaises(ValidationFailure) as cm:
            await self.format("single", ["sda"])
        self.assertIn("ActiveSwap:RootFS", str(cm.exception))
        self.assertEqual([], self.runner.calls)

    @parameterized.expand(
        [
            (["sdz"], "not found"),
            (["sda1"], "not a disk"),
            (["sdb", "sda"], "can not be formatted"),
        ]
    )
    async def test_invalid_targets(self, targets, message):
        with self.assertRaises(ValidationFailure) as cm:
            await self.format("single", targets)
        self.assertIn(message, str(cm.exception))
        self.assertEqual([], self.runner.calls)

    async def test_mounted_disks_unmounted_first(self):
        self.sdb.properties.update(btrfs("old-vol", "sub-b"))
        self.sdc.properties.update(fs("ext4"))
        self.system.volumes = [volume("old-vol", self.sdb)]
        await self.engine.coordinator.refresh()
        self.runner.calls.clear()

        uuid = await self.format("single", ["sdc", "sdb"])
        self.assertEqual(
            [
                ["umount", self.config.volume_mountpoint("old-vol")],
                ["umount", self.config.block_mountpoint("sdc")],
                ["mkfs.btrfs", "-d", "single", "-f", "/dev/sdb", "/dev/sdc"],
                ["partprobe"],
            ],
            [c for c in self.runner.calls if c[0] != "mount"],
        )
        snapshot = self.engine.service.get_snapshot()
        self.assertIsNone(snapshot.volume("old-vol"))
        self.assertEqual(uuid, snapshot.block("sdc").file_system_uuid)

    async def test_unmount_failure_aborts_and_refreshes(self):
        self.sdb.properties.update(fs("ext4"))
        first = await self.engine.coordinator.refresh()
        self.runner.fail_on("umount")
        probes = self.system.probe_counts["blocks"]
        with self.assertRaises(UnmountFailure):
            await self.format("single", ["sdb"])
        self.assertEqual([], self.runner.commands("mkfs.btrfs"))
        self.assertEqual(probes + 2, self.system.probe_counts["blocks"])
        self.assertEqual(first, self.engine.service.get_snapshot())

    async def test_mkfs_failure_still_refreshes(self):
        self.runner.fail_on("mkfs.btrfs", stderr="device busy")
        with self.assertRaises(CommandFailure) as cm:
            await self.format("raid0", ["sdb", "sdc"])
        self.assertIn("device busy", str(cm.exception))
        self.assertEqual([], self.runner.commands("partprobe"))
        self.assertEqual(2, self.system.probe_counts["blocks"])

    async def test_one_format_at_a_time(self):
        order = []

        async def run(targets):
            order.append(("start", targets))
            await self.format("single", targets)
            order.append(("end", targets))

        started = asyncio.Event()
        first = asyncio.ensure_future(
            self.engine.format_operation.run("single", ["sdb"], started_event=started)
        )
        await started.wait()
        second = asyncio.ensure_future(run(["sdc"]))
        await asyncio.gather(first, second)
        mkfs = self.runner.commands("mkfs.btrfs")
        self.assertEqual(["/dev/sdb"], mkfs[0][4:])
        self.assertEqual(["/dev/sdc"], mkfs[1][4:])
        # the second format starts only once the first is done
        partprobe_index = self.runner.calls.index(["partprobe"])
        self.assertLess(partprobe_index, self.runner.calls.index(mkfs[1]))
        self.assertEqual(("end", ["sdc"]), order[-1])

    async def test_target_gone_after_format(self):
        apply = self.system.apply

        def apply_and_lose_sdb(cmd):
            apply(cmd)
            if cmd[0] == "partprobe":
                self.system.blocks.remove(self.sdb)
                self.system.volumes = []

        self.system.apply = apply_and_lose_sdb
        with self.assertRaises(StorageNotFound) as cm:
            await self.format("single", ["sdb"])
        self.assertIn("sdb", str(cm.exception))
        self.assertIsNone(self.engine.service.get_snapshot().block("sdb"))
