"""
Per-session mutual exclusion.

Enroll, cancel and administrative capacity/schedule changes on the same
session id are serialised through one ``asyncio.Lock``; different session
ids never share a lock. Entries are reference counted and dropped as soon
as nobody holds or waits for them, so the registry does not grow with the
number of sessions ever touched.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class SessionLockRegistry:
    def __init__(self):
        self._entries: Dict[int, _Entry] = {}

    @asynccontextmanager
    async def hold(self, session_id: int) -> AsyncIterator[None]:
        entry = self._entries.get(session_id)
        if entry is None:
            entry = self._entries[session_id] = _Entry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0 and self._entries.get(session_id) is entry:
                del self._entries[session_id]

    def is_locked(self, session_id: int) -> bool:
        entry = self._entries.get(session_id)
        return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        return len(self._entries)


session_locks = SessionLockRegistry()
