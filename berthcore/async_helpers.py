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
import concurrent.futures
import functools
import logging
import weakref
from typing import Optional

log = logging.getLogger("berthcore.async_helpers")


# Collection of tasks that we want to fire and forget.
# Keeping a reference to all background tasks ensures that the tasks don't get
# garbage collected before they are done.
# https://docs.python.org/3/library/asyncio-task.html#asyncio.create_task
background_tasks = set()


def run_bg_task(coro, *args, **kwargs) -> asyncio.Task:
    """Run a background task in a fire-and-forget style."""
    task = asyncio.create_task(coro, *args, **kwargs)
    background_tasks.add(task)
    task.add_done_callback(background_tasks.discard)
    return task


async def run_in_thread(func, *args):
    loop = asyncio.get_running_loop()
    try:
        return await loop.run_in_executor(None, func, *args)
    except concurrent.futures.CancelledError:
        raise asyncio.CancelledError


def _copy_outcome(task: asyncio.Task, fut: asyncio.Future):
    if fut.done():
        return
    if task.cancelled():
        fut.cancel()
    elif task.exception() is not None:
        fut.set_exception(task.exception())
    else:
        fut.set_result(task.result())


class CoalescingTask:
    """Run a coroutine function with at most one invocation in flight.

    A call to run() while idle starts an invocation. A call while an
    invocation is in flight does not start a second one; it is folded into
    a single follow-up invocation that starts as soon as the current one
    finishes. Every caller receives the outcome of the invocation its call
    was folded into, so no request is ever dropped and at most one
    follow-up is ever queued. Each caller gets its own shielded future:
    cancelling one caller leaves the invocation and the other callers
    untouched.
    """

    def __init__(self, func):
        self.func = func
        self.task: Optional[asyncio.Task] = None
        self.pending: Optional[asyncio.Future] = None

    def running(self) -> bool:
        return self.task is not None

    def run(self) -> asyncio.Future:
        loop = asyncio.get_running_loop()
        if self.task is None:
            fut = loop.create_future()
            self._start(fut)
            return asyncio.shield(fut)
        if self.pending is None:
            log.debug("coalescing request into follow-up run of %s", self.func)
            self.pending = loop.create_future()
        return asyncio.shield(self.pending)

    def _start(self, fut: asyncio.Future):
        self.task = asyncio.create_task(self.func())
        self.task.add_done_callback(functools.partial(self._finished, fut))

    def _finished(self, fut: asyncio.Future, task: asyncio.Task):
        self.task = None
        _copy_outcome(task, fut)
        if self.pending is not None:
            pending, self.pending = self.pending, None
            self._start(pending)


def exclusive(coroutine_function):
    """Can be used to decorate a coroutine function that we do not want to run
    multiple times concurrently. It uses a lock internally.
    If the caller needs to know when the decorated coroutine starts executing
    (i.e., when it has acquired the exclusive lock), they can pass an
    asyncio.Event as the "started_event" keyword-only argument.
    """
    # one lock per event loop, created on first use inside that loop
    locks = weakref.WeakKeyDictionary()

    @functools.wraps(coroutine_function)
    async def wrapped(*args, started_event: Optional[asyncio.Event] = None, **kwargs):
        loop = asyncio.get_running_loop()
        lock = locks.get(loop)
        if lock is None:
            lock = locks[loop] = asyncio.Lock()
        async with lock:
            if started_event is not None:
                started_event.set()

            return await coroutine_function(*args, **kwargs)

    return wrapped
