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

import inspect

from berthcore.async_helpers import run_bg_task


class MessageHub:
    def __init__(self):
        self.subscriptions = {}

    def subscribe(self, channel, method, *args):
        self.subscriptions.setdefault(channel, []).append((method, args))

    def unsubscribe(self, channel, method):
        self.subscriptions[channel] = [
            (m, a) for m, a in self.subscriptions.get(channel, []) if m != method
        ]

    async def abroadcast(self, channel, *args, **kwargs):
        for m, margs in self.subscriptions.get(channel, []):
            v = m(*margs, *args, **kwargs)
            if inspect.iscoroutine(v):
                await v

    def broadcast(self, channel, *args, **kwargs):
        return run_bg_task(self.abroadcast(channel, *args, **kwargs))
