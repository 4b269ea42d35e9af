"""Per-key asyncio locks."""

import asyncio
from typing import Dict


class KeyedLocks:
    """Lazily created asyncio.Lock per key. There is no global lock; writers
    on different keys never wait on each other."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}

    def __call__(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def __len__(self) -> int:
        return len(self._locks)
