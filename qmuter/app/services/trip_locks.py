"""
Per-trip lock registry.

Serializes read-evaluate-write sequences for one trip id while letting
different trips proceed concurrently. Entries live only while some task
holds or waits on them.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Dict


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class TripLockRegistry:
    """
    Keyed asyncio locks with reference-counted eviction.
    
    Usage:
        locks = TripLockRegistry()
        async with locks.hold(trip_id):
            ...  # exclusive for this trip id
    """
    
    def __init__(self):
        self._entries: Dict[str, _Entry] = {}
    
    @asynccontextmanager
    async def hold(self, key: str):
        entry = self._entries.get(key)
        if entry is None:
            entry = self._entries[key] = _Entry()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._entries[key]
    
    def __len__(self) -> int:
        return len(self._entries)
    
    def is_locked(self, key: str) -> bool:
        entry = self._entries.get(key)
        return entry is not None and entry.lock.locked()
