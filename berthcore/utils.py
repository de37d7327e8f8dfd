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
import os
import subprocess
from typing import Sequence

log = logging.getLogger("berthcore.utils")


def _clean_env(env, *, locale=True):
    if env is None:
        env = os.environ.copy()
    else:
        env = env.copy()
    if locale:
        env["LC_ALL"] = "C"
    return env


async def arun_command(
    cmd: Sequence[str],
    *,
    stdout=subprocess.PIPE,
    stderr=subprocess.PIPE,
    encoding="utf-8",
    input=None,
    errors="replace",
    env=None,
    clean_locale=True,
    check=False,
    **kw,
) -> subprocess.CompletedProcess:
    if input is None:
        if "stdin" not in kw:
            kw["stdin"] = subprocess.DEVNULL
    else:
        kw["stdin"] = subprocess.PIPE
        input = input.encode(encoding)
    log.debug("arun_command called: %s", cmd)
    proc = await asyncio.create_subprocess_exec(
        *cmd,
        stdout=stdout,
        stderr=stderr,
        env=_clean_env(env, locale=clean_locale),
        **kw,
    )
    stdout, stderr = await proc.communicate(input=input)
    if encoding:
        if stdout is not None:
            stdout = stdout.decode(encoding, errors)
        if stderr is not None:
            stderr = stderr.decode(encoding, errors)
    log.debug("arun_command %s exited with code %s", cmd, proc.returncode)
    # .communicate() forces returncode to be set to a value
    assert proc.returncode is not None
    if check and proc.returncode != 0:
        raise subprocess.CalledProcessError(proc.returncode, cmd, stdout, stderr)
    else:
        return subprocess.CompletedProcess(cmd, proc.returncode, stdout, stderr)


def _log_stream(level: int, stream, name: str):
    if stream:
        log.log(level, f"{name}: ------------------------------------------")
        for line in stream.splitlines():
            log.log(level, line)
    elif stream is None:
        log.log(level, f"<{name} is None>")
    else:
        log.log(level, f"<{name} is empty>")


def log_process_streams(
    level: int, cpe: subprocess.CalledProcessError, command_msg: str
):
    log.log(level, f"{command_msg} exited with result: {cpe.returncode}")
    _log_stream(level, cpe.stdout, "stdout")
    _log_stream(level, cpe.stderr, "stderr")
    log.log(level, "--------------------------------------------------")
