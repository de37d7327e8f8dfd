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

import asyncio
import logging
import shlex
import subprocess
from typing import List

from berth.common.errors import CommandFailure
from berthcore.utils import arun_command, log_process_streams

log = logging.getLogger("berth.server.runner")


class LoggedCommandRunner:
    """Run the commands that change storage state (mount, umount, mkfs...).

    A command that cannot be started or exits non-zero raises
    CommandFailure carrying the command, exit status and stderr.
    """

    def __init__(self, ident):
        self.ident = ident

    async def run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        log.debug("%s: running %s", self.ident, shlex.join(cmd))
        try:
            return await arun_command(cmd, check=True)
        except subprocess.CalledProcessError as cpe:
            log_process_streams(logging.WARNING, cpe, shlex.join(cmd))
            raise CommandFailure(cmd, cpe.returncode, cpe.stderr) from cpe
        except OSError as e:
            log.warning("%s: could not run %s: %s", self.ident, cmd[0], e)
            raise CommandFailure(cmd, None, str(e)) from e


class DryRunCommandRunner(LoggedCommandRunner):
    def __init__(self, ident, delay):
        super().__init__(ident)
        self.delay = delay

    def _get_delay_for_cmd(self, cmd: List[str]) -> float:
        if cmd[0] == "mkfs.btrfs":
            return 3 * self.delay
        else:
            return self.delay

    async def run(self, cmd: List[str]) -> subprocess.CompletedProcess:
        cp = await super().run(["echo", "not running:"] + cmd)
        await asyncio.sleep(self._get_delay_for_cmd(cmd))
        return cp


def get_command_runner(opts):
    if opts.dry_run:
        return DryRunCommandRunner("berth", 0.1)
    else:
        return LoggedCommandRunner("berth")
