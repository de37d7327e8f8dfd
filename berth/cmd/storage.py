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

import argparse
import asyncio
import json
import logging
import os
import sys

import attr

from berth.common.errors import StorageError
from berth.common.types import asdict
from berth.server.config import StorageConfig
from berth.server.coordinator import ProbeCoordinator
from berth.server.format import FORMAT_MODES, FormatOperation
from berth.server.mounter import Mounter
from berth.server.prober import Prober
from berth.server.runner import get_command_runner
from berth.server.storage import StorageService
from berthcore.log import setup_block_logger, setup_logger
from berthcore.pubsub import MessageHub

LOGDIR = "/var/log/berth"

log = logging.getLogger("berth.cmd.storage")


def make_storage_args_parser():
    parser = argparse.ArgumentParser(
        description="berth - block device and btrfs volume manager",
        prog="berth-storage",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        dest="dry_run",
        help="echo mount, umount and mkfs commands instead of running them",
    )
    parser.add_argument(
        "--machine-config",
        metavar="CONFIG",
        dest="machine_config",
        type=argparse.FileType(),
        help="Don't Probe. Use probe data file",
    )
    parser.add_argument(
        "--config",
        type=argparse.FileType(),
        help="YAML file overriding the storage settings",
    )
    parser.add_argument(
        "--output-base",
        action="store",
        dest="output_base",
        default=".berth",
        help="in dryrun, control basedir of files",
    )
    parser.add_argument(
        "--debug-flag",
        action="append",
        dest="debug_flags",
        default=[],
        help="e.g. bpfail-blocks to make probing the blocks fail",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("show", help="print the whole storage snapshot")
    subparsers.add_parser("blocks", help="print the block devices")
    subparsers.add_parser("volumes", help="print the btrfs volumes")
    fmt = subparsers.add_parser("format", help="make a btrfs volume of disks")
    fmt.add_argument("mode", choices=FORMAT_MODES)
    fmt.add_argument("targets", nargs="+", metavar="NAME")
    ls = subparsers.add_parser("ls", help="list a directory")
    ls.add_argument("path")
    vls = subparsers.add_parser("volume-ls", help="list a directory in a volume")
    vls.add_argument("uuid")
    vls.add_argument("path", nargs="?", default="")
    bls = subparsers.add_parser(
        "block-ls", help="list a directory in a mounted block device"
    )
    bls.add_argument("name")
    bls.add_argument("path", nargs="?", default="")
    return parser


def make_service(opts, config, block_log_dir=None) -> StorageService:
    command_runner = get_command_runner(opts)
    prober = Prober(opts.machine_config, opts.debug_flags, block_log_dir)
    mounter = Mounter(config, command_runner)
    coordinator = ProbeCoordinator(prober, mounter, config, MessageHub())
    format_operation = FormatOperation(coordinator, mounter, command_runner, config)
    return StorageService(coordinator, format_operation)


async def run_command(service: StorageService, opts):
    if opts.command == "ls":
        return [attr.asdict(e) for e in service.list_directory(opts.path)]

    snapshot = await service.refresh()
    if opts.command == "show":
        return asdict(snapshot)
    elif opts.command == "blocks":
        return [asdict(blk) for blk in snapshot.blocks]
    elif opts.command == "volumes":
        return [asdict(vol) for vol in snapshot.volumes]
    elif opts.command == "format":
        return {"uuid": await service.format(opts.mode, opts.targets)}
    elif opts.command == "volume-ls":
        entries = service.volume_directory(opts.uuid, opts.path)
        return [attr.asdict(e) for e in entries]
    elif opts.command == "block-ls":
        entries = service.block_directory(opts.name, opts.path)
        return [attr.asdict(e) for e in entries]
    raise ValueError(f"unknown command {opts.command}")


def make_config(opts) -> StorageConfig:
    if opts.config:
        config = StorageConfig.load(opts.config)
    else:
        config = StorageConfig()
    if opts.dry_run:
        # never mount outside the output base in a dry run
        config = attr.evolve(
            config,
            volumes_dir=os.path.join(opts.output_base, "volumes"),
            blocks_dir=os.path.join(opts.output_base, "blocks"),
        )
    return config


def main():
    parser = make_storage_args_parser()
    opts = parser.parse_args(sys.argv[1:])

    logdir = LOGDIR
    if opts.dry_run:
        logdir = opts.output_base
    config = make_config(opts)

    block_log_dir = os.path.join(logdir, "block")
    setup_block_logger(block_log_dir)
    setup_logger(dir=logdir, base="berth-storage")

    log.info(f"Arguments passed: {sys.argv}")

    service = make_service(opts, config, block_log_dir)
    try:
        result = asyncio.run(run_command(service, opts))
    except StorageError as e:
        log.error("%s failed: %s", opts.command, e)
        print(f"{e.title}: {e}", file=sys.stderr)
        return 1
    print(json.dumps(result, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
