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

import os
import socket

from berthcore.file_util import DirEntry, ensure_dir, list_directory, write_file
from berthcore.tests import BerthTestCase


class TestWriteFile(BerthTestCase):
    def test_write_and_mode(self):
        path = self.tmp_path("probe-data.json")
        write_file(path, "{}", mode=0o600)
        with open(path) as fp:
            self.assertEqual("{}", fp.read())
        self.assertEqual(0o600, os.stat(path).st_mode & 0o777)

    def test_overwrite(self):
        path = self.tmp_path("f")
        write_file(path, "one")
        write_file(path, "two")
        with open(path) as fp:
            self.assertEqual("two", fp.read())


class TestEnsureDir(BerthTestCase):
    def test_creates_parents_and_is_idempotent(self):
        path = os.path.join(self.tmp_dir(), "run", "berth", "volumes", "u")
        ensure_dir(path)
        ensure_dir(path)
        self.assertTrue(os.path.isdir(path))


class TestListDirectory(BerthTestCase):
    def test_empty(self):
        self.assertEqual([], list_directory(self.tmp_dir()))

    def test_entry_types(self):
        d = self.tmp_dir()
        with open(os.path.join(d, "file"), "w") as fp:
            fp.write("12345")
        os.mkdir(os.path.join(d, "dir"))
        os.symlink("file", os.path.join(d, "link"))
        os.mkfifo(os.path.join(d, "fifo"))
        sock = socket.socket(socket.AF_UNIX)
        self.addCleanup(sock.close)
        sock.bind(os.path.join(d, "sock"))

        entries = {e.name: e for e in list_directory(d)}
        self.assertEqual(
            {
                "file": "file",
                "dir": "directory",
                "link": "link",
                "fifo": "fifo",
                "sock": "socket",
            },
            {name: e.type for name, e in entries.items()},
        )
        self.assertEqual(5, entries["file"].size)
        self.assertIsInstance(entries["file"], DirEntry)
        self.assertGreater(entries["file"].ctime, 0)

    def test_missing_directory(self):
        with self.assertRaises(FileNotFoundError):
            list_directory(os.path.join(self.tmp_dir(), "nope"))
