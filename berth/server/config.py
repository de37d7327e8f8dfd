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

from typing import List

import attr
import yaml


@attr.s(auto_attribs=True)
class StorageConfig:
    """Tunables of the storage engine. All fields have defaults suitable
    for a production system."""

    # btrfs volumes are mounted at <volumes_dir>/<uuid>
    volumes_dir: str = "/run/berth/volumes"
    # non-usb standalone filesystems are mounted at <blocks_dir>/<name>
    blocks_dir: str = "/run/berth/blocks"
    supported_filesystems: List[str] = attr.Factory(lambda: ["ext4", "ntfs", "vfat"])
    # mountpoints nested inside a volume mountpoint with this suffix are
    # internal and not probed for usage
    nested_mountpoint_suffix: str = "/graph/btrfs"
    # seconds to wait after mounting, before reading the mount table again
    mount_settle_delay: float = 0.1
    # seconds to wait after mkfs.btrfs, before re-reading partition tables
    format_settle_delay: float = 1.5

    @classmethod
    def load(cls, stream):
        data = yaml.safe_load(stream) or {}
        return cls(**data)

    def volume_mountpoint(self, uuid) -> str:
        return f"{self.volumes_dir}/{uuid}"

    def block_mountpoint(self, name) -> str:
        return f"{self.blocks_dir}/{name}"
