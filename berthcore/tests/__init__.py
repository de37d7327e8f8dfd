import os
import shutil
import tempfile
import unittest


class BerthTestCase(unittest.IsolatedAsyncioTestCase):
    def tmp_dir(self, dir=None, cleanup=True):
        # Create a temp directory that will be cleaned up. dir param can be
        # used to create a temp directory inside another one.
        d = tempfile.mkdtemp(dir=dir)
        if cleanup:
            self.addCleanup(shutil.rmtree, d)
        return d

    def tmp_path(self, path, dir=None):
        # Return an absolute path of a file or directory inside a temp dir.
        return os.path.join(self.tmp_dir(dir=dir), path)
