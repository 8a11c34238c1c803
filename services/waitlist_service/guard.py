import asyncio
from contextlib import asynccontextmanager


class RecordGuard:
    """Serializes transitions per record id inside one process.

    Writers in other processes are caught by the optimistic version check on
    the row instead.
    """

    def __init__(self):
        self._locks: dict = {}
        self._holders: dict = {}

    @asynccontextmanager
    async def hold(self, record_id):
        lock = self._locks.setdefault(record_id, asyncio.Lock())
        self._holders[record_id] = self._holders.get(record_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._holders[record_id] -= 1
            if self._holders[record_id] == 0:
                del self._holders[record_id]
                del self._locks[record_id]

    def is_held(self, record_id) -> bool:
        lock = self._locks.get(record_id)
        return lock is not None and lock.locked()
