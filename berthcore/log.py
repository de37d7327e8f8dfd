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

import grp
import logging
import os

from berthcore.file_util import _DEF_GROUP, _DEF_PERMS

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s:%(lineno)d %(message)s"


def _group_id():
    try:
        return grp.getgrnam(_DEF_GROUP).gr_gid
    except KeyError:
        return -1


def setup_logger(dir, base="berth"):
    os.makedirs(dir, exist_ok=True)
    if os.getuid() == 0:
        os.chmod(dir, 0o750)
        os.chown(dir, -1, _group_id())

    logger = logging.getLogger("")
    logger.setLevel(logging.DEBUG)

    r = {}

    for level in "info", "debug":
        nopid_file = os.path.join(dir, "{}-{}.log".format(base, level))
        logfile = "{}.{}".format(nopid_file, os.getpid())
        handler = logging.FileHandler(logfile)
        os.chmod(logfile, _DEF_PERMS)
        if os.getuid() == 0:
            os.chown(logfile, -1, _group_id())
        # os.symlink cannot replace an existing file or symlink so create
        # it and then rename it over.
        tmplink = logfile + ".link"
        os.symlink(os.path.basename(logfile), tmplink)
        os.rename(tmplink, nopid_file)

        handler.setLevel(getattr(logging, level.upper()))
        handler.setFormatter(logging.Formatter(LOG_FORMAT))

        logger.addHandler(handler)
        r[level] = logfile

    return r


def setup_block_logger(block_log_dir):
    """Send raw probe logging to its own discover.log as well."""
    os.makedirs(block_log_dir, exist_ok=True)
    handler = logging.FileHandler(os.path.join(block_log_dir, "discover.log"))
    handler.setLevel("DEBUG")
    handler.setFormatter(
        logging.Formatter("%(asctime)s %(name)s:%(lineno)d %(message)s")
    )
    logging.getLogger("berthprobe").addHandler(handler)
    return handler
