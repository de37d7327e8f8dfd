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

import json
import logging
import os
from typing import Any, Dict, List, Union

import attr
import yaml

from berth.common.errors import ProbeFailure
from berthcore.async_helpers import run_in_thread
from berthcore.file_util import write_file
from berthprobe.station import StationError
from berthprobe.types import Port, RawBlock, RawMount, RawSwap, RawUsage, RawVolume

log = logging.getLogger("berth.server.prober")


class Prober:
    """Read the raw storage sources, either from the running system or, when
    a machine config is given, from its canned "storage" data.

    Every failure is reported as ProbeFailure naming the source.
    """

    def __init__(self, machine_config=None, debug_flags=(), block_log_dir=None):
        self.saved_config = None
        if machine_config:
            self.saved_config = yaml.safe_load(machine_config)
        self.debug_flags = debug_flags
        self.block_log_dir = block_log_dir
        self._raw_prober = None
        log.debug("Prober() init finished, data:{}".format(self.saved_config))

    @property
    def raw_prober(self):
        if self._raw_prober is None:
            from berthprobe.prober import Prober as RawProber

            self._raw_prober = RawProber()
        return self._raw_prober

    def _saved(self, source):
        if "bpfail-" + source in self.debug_flags:
            raise ProbeFailure(source, "simulated failure")
        return self.saved_config.get("storage", {}).get(source) or []

    def _dump(self, source, objs):
        if self.block_log_dir is None:
            return
        data = [attr.asdict(obj) for obj in objs]
        write_file(
            os.path.join(self.block_log_dir, "probe-{}.json".format(source)),
            json.dumps(data, indent=4),
        )

    async def _probe(self, source, func, *args):
        try:
            if self.saved_config is not None:
                return self._load_saved(source)
            r = await func(*args)
        except ProbeFailure:
            raise
        except Exception as e:
            log.exception("probing %s failed", source)
            raise ProbeFailure(source, str(e)) from e
        self._dump(source, r)
        return r

    def _load_saved(self, source):
        data = self._saved(source)
        if source == "ports":
            return [Port(**d) for d in data]
        elif source == "blocks":
            return [RawBlock(**d) for d in data]
        elif source == "volumes":
            return [RawVolume.from_dict(d) for d in data]
        elif source == "mounts":
            return [RawMount(**d) for d in data]
        elif source == "swaps":
            return [RawSwap(**d) for d in data]
        raise ValueError("unknown probe source {}".format(source))

    async def probe_ports(self) -> List[Port]:
        return await self._probe(
            "ports", run_in_thread, lambda: self.raw_prober.probe_ports()
        )

    async def probe_blocks(self) -> List[RawBlock]:
        return await self._probe(
            "blocks", run_in_thread, lambda: self.raw_prober.probe_blocks()
        )

    async def probe_mounts(self) -> List[RawMount]:
        return await self._probe(
            "mounts", run_in_thread, lambda: self.raw_prober.probe_mounts()
        )

    async def probe_swaps(self) -> List[RawSwap]:
        return await self._probe(
            "swaps", run_in_thread, lambda: self.raw_prober.probe_swaps()
        )

    async def probe_volumes(self) -> List[RawVolume]:
        return await self._probe("volumes", lambda: self.raw_prober.probe_volumes())

    async def probe_usage(self, mountpoint) -> RawUsage:
        if self.saved_config is None:
            try:
                return await self.raw_prober.probe_usage(mountpoint)
            except Exception as e:
                log.exception("probing usage of %s failed", mountpoint)
                raise ProbeFailure("usage", str(e)) from e
        if "bpfail-usage" in self.debug_flags:
            raise ProbeFailure("usage", "simulated failure")
        usages = self.saved_config.get("storage", {}).get("usages") or {}
        if mountpoint not in usages:
            raise ProbeFailure("usage", "no usage saved for {}".format(mountpoint))
        return RawUsage.from_dict(dict(usages[mountpoint], mountpoint=mountpoint))

    async def probe_station(self, mountpoint) -> Union[List[Dict[str, Any]], str]:
        """Users of the station on a mounted volume, or the code of the
        reason no usable station was found there (see StationError)."""
        if self.saved_config is not None:
            if "bpfail-station" in self.debug_flags:
                return "EFAIL"
            stations = self.saved_config.get("storage", {}).get("stations") or {}
            return stations.get(mountpoint, "ENOENT")
        try:
            return await run_in_thread(self.raw_prober.probe_station, mountpoint)
        except StationError as e:
            log.debug("no station under %s: %s", mountpoint, e)
            return e.code
        except Exception:
            log.exception("probing station under %s failed", mountpoint)
            return "EFAIL"
