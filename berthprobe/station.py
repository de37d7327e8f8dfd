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

"""Read-only detection of a station install on a mounted filesystem.

A station keeps its data under wisnuc/fruitmix at the top of a volume, with
the user list in models/users.json."""

import json
import logging
import os
from typing import Any, Dict, List

log = logging.getLogger("berthprobe.station")

STATION_DIR = os.path.join("wisnuc", "fruitmix")
USERS_FILE = os.path.join("models", "users.json")


class StationError(Exception):
    """No usable station was found. code is one of:

    ENOENT: there is no station directory, one can be created.
    ENOTDIR: part of the station path is not a directory.
    EDATA: the station directory exists but its user list is missing or
        can not be parsed.
    EFAIL: anything else.
    """

    def __init__(self, code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.code = code


def probe_station(mountpoint) -> List[Dict[str, Any]]:
    """Return the users of the station under mountpoint."""
    station_dir = os.path.join(mountpoint, STATION_DIR)
    try:
        os.listdir(station_dir)
    except FileNotFoundError as e:
        raise StationError("ENOENT", str(e)) from e
    except NotADirectoryError as e:
        raise StationError("ENOTDIR", str(e)) from e
    except OSError as e:
        raise StationError("EFAIL", str(e)) from e

    users_file = os.path.join(station_dir, USERS_FILE)
    try:
        with open(users_file) as fp:
            users = json.load(fp)
    except (FileNotFoundError, IsADirectoryError, ValueError) as e:
        raise StationError("EDATA", str(e)) from e
    except OSError as e:
        raise StationError("EFAIL", str(e)) from e
    if not isinstance(users, list):
        raise StationError("EDATA", f"{users_file} does not hold a list")
    log.debug("found station with %d users under %s", len(users), mountpoint)
    return users
