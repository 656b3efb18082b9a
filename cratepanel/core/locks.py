"""
One lock per instance ID, so a restore can't race a backup of the same instance.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

import asyncio


class InstanceLocks:
    def __init__(self):
        # instance ID -> (lock, number of tasks holding or waiting on it)
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    def __len__(self):
        return len(self._locks)

    def __contains__(self, instance_id: str):
        return instance_id in self._locks

    @asynccontextmanager
    async def hold(self, instance_id: str) -> AsyncIterator[None]:
        """
        Hold the lock for an instance until the block exits, however it exits.
        Locks nobody is waiting on are forgotten.
        """
        lock, users = self._locks.get(instance_id, (None, 0))

        if lock is None:
            lock = asyncio.Lock()

        self._locks[instance_id] = (lock, users + 1)

        try:
            async with lock:
                yield
        finally:
            lock, users = self._locks[instance_id]

            if users <= 1:
                del self._locks[instance_id]
            else:
                self._locks[instance_id] = (lock, users - 1)
