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
import stat
import tempfile
from typing import List

import attr

log = logging.getLogger("berthcore.file_util")

_DEF_PERMS = 0o644
_DEF_GROUP = "adm"


def write_file(filename, content, mode=None, omode="w", copy_mode=False):
    """Atomically write filename.
    open filename in mode 'omode', write content, chmod to 'mode'.
    """
    if mode is None:
        mode = _DEF_PERMS
    if copy_mode:
        try:
            file_stat = os.stat(filename)
            mode = stat.S_IMODE(file_stat.st_mode)
        except OSError:
            pass

    tf = None
    try:
        tf = tempfile.NamedTemporaryFile(
            dir=os.path.dirname(filename), delete=False, mode=omode
        )
        tf.write(content)
        tf.close()
        os.chmod(tf.name, mode)
        os.rename(tf.name, filename)
    except OSError as e:
        if tf is not None:
            os.unlink(tf.name)
        raise e


def ensure_dir(path, mode=0o755):
    """Create path and any missing parents. Existing directories are fine."""
    os.makedirs(path, mode=mode, exist_ok=True)


@attr.s(auto_attribs=True, frozen=True)
class DirEntry:
    name: str
    type: str
    size: int
    # milliseconds since the epoch
    ctime: int


def _entry_type(mode) -> str:
    if stat.S_ISREG(mode):
        return "file"
    elif stat.S_ISDIR(mode):
        return "directory"
    elif stat.S_ISLNK(mode):
        return "link"
    elif stat.S_ISSOCK(mode):
        return "socket"
    elif stat.S_ISFIFO(mode):
        return "fifo"
    elif stat.S_ISCHR(mode):
        return "char"
    elif stat.S_ISBLK(mode):
        return "block"
    else:
        return "unknown"


def list_directory(path) -> List[DirEntry]:
    """List the entries of directory path without following symlinks.

    Entries that vanish between readdir and lstat are left out.
    """
    entries = []
    for name in os.listdir(path):
        try:
            st = os.lstat(os.path.join(path, name))
        except FileNotFoundError:
            log.debug("%s vanished while listing %s", name, path)
            continue
        entries.append(
            DirEntry(
                name=name,
                type=_entry_type(st.st_mode),
                size=st.st_size,
                ctime=int(st.st_ctime * 1000),
            )
        )
    return entries
