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

from berth.common.errors import (
    InvalidPath,
    StorageNotAvailable,
    StorageNotBrowsable,
    StorageNotFound,
)
from berth.common.types import Snapshot
from berthcore import file_util

log = logging.getLogger("berth.server.storage")


class StorageService:
    """What callers of the storage engine see: the current snapshot, a way
    to refresh it, formatting, and listing of mounted filesystems."""

    def __init__(self, coordinator, format_operation):
        self.coordinator = coordinator
        self.format_operation = format_operation

    def get_snapshot(self) -> Snapshot:
        if self.coordinator.snapshot is None:
            raise StorageNotAvailable("storage has not been probed yet")
        return self.coordinator.snapshot

    async def refresh(self) -> Snapshot:
        return await self.coordinator.refresh()

    async def format(self, mode, targets) -> str:
        return await self.format_operation.run(mode, targets)

    def list_directory(self, path):
        return file_util.list_directory(path)

    def _browse(self, mountpoint, subpath):
        if subpath is None:
            subpath = ""
        if not isinstance(subpath, str) or os.path.isabs(subpath):
            raise InvalidPath(f"invalid path {subpath!r}")
        abspath = os.path.normpath(os.path.join(mountpoint, subpath))
        if os.path.commonpath([mountpoint, abspath]) != mountpoint:
            raise InvalidPath(f"invalid path {subpath!r}")
        return self.list_directory(abspath)

    def volume_directory(self, uuid, subpath=""):
        vol = self.get_snapshot().volume(uuid)
        if vol is None:
            raise StorageNotFound(f"volume {uuid} not found")
        if vol.is_missing or not vol.is_mounted:
            raise StorageNotBrowsable(f"volume {uuid} is missing or not mounted")
        return self._browse(vol.mountpoint, subpath)

    def block_directory(self, name, subpath=""):
        blk = self.get_snapshot().block(name)
        if blk is None:
            raise StorageNotFound(f"block {name} not found")
        if not blk.is_file_system or blk.is_volume_device or not blk.is_mounted:
            raise StorageNotBrowsable(
                f"block {name} is not a mounted standalone filesystem"
            )
        return self._browse(blk.mountpoint, subpath)
