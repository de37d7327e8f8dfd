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

import re


def udev_get_attributes(device, keys=None):
    r = {}
    if keys is None:
        keys = device.attributes.available_attributes
    for key in keys:
        val = device.attributes.get(key)
        if val is None:
            continue
        if isinstance(val, bytes):
            val = val.decode("utf-8", "replace")
        r[key] = val.strip()
    return r


_OCTAL_ESCAPE = re.compile(r"\\([0-7]{3})")


def unescape_proc_field(field):
    """Undo the octal escaping the kernel applies to whitespace and
    backslashes in /proc/mounts and /proc/swaps, e.g. \\040 for a space."""
    return _OCTAL_ESCAPE.sub(lambda m: chr(int(m.group(1), 8)), field)


def snake_case(label):
    """'Free (estimated)' -> 'free_estimated'"""
    return "_".join(re.findall(r"[a-z0-9]+", label.lower()))


def parse_number(text):
    text = text.strip()
    if re.fullmatch(r"-?\d+", text):
        return int(text)
    try:
        return float(text)
    except ValueError:
        return text
