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

from typing import Optional, Sequence


class StorageError(Exception):
    """Base of the errors the storage engine reports to its callers.

    Subclasses set "code", a stable machine-readable identifier, and
    "title", a short human-readable summary. The exception message carries
    the details of the particular failure."""

    code: str = ""
    title: str = ""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        if not self.title or not self.code:
            raise NotImplementedError(
                "Please do not instantiate directly. Use subclasses"
                " having a title and a code properly set."
            )


class ProbeFailure(StorageError):
    """A raw storage source could not be read."""

    code = "probe-failed"
    title = "Storage probing failed"

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"probing {source} failed: {reason}")
        self.source = source


class ValidationFailure(StorageError):
    """A request was rejected before any side effect."""

    code = "invalid-format-request"
    title = "Invalid format request"


class CommandFailure(StorageError):
    """An external command exited unsuccessfully or could not be run."""

    code = "command-failed"
    title = "External command failed"

    def __init__(
        self, cmd: Sequence[str], returncode: Optional[int], stderr: str = ""
    ) -> None:
        self.cmd = list(cmd)
        self.returncode = returncode
        self.stderr = stderr
        detail = stderr.strip() if stderr else ""
        msg = f"{' '.join(self.cmd)} failed"
        if returncode is not None:
            msg += f" with exit status {returncode}"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)


class UnmountFailure(StorageError):
    """A mountpoint could not be released ahead of a format."""

    code = "unmount-failed"
    title = "Unmounting failed"


class StorageNotAvailable(StorageError):
    code = "storage-not-available"
    title = "Storage has not been probed yet"


class StorageNotFound(StorageError):
    code = "storage-not-found"
    title = "No such block device or volume"


class StorageNotBrowsable(StorageError):
    """The device is not a mounted standalone filesystem or healthy volume."""

    code = "storage-not-browsable"
    title = "Device can not be browsed"


class InvalidPath(StorageError):
    code = "invalid-path"
    title = "Invalid path"
