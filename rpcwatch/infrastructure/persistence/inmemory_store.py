"""
In-memory implementation of IMetricStore.

This module provides a RAM-based store for metric rings, breach episodes and
alerts. Data is stored in Python dictionaries and lost on restart; a durable
store can be injected through the same interface.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional

from rpcwatch.models.interfaces import IMetricStore


class InMemoryMetricStore(IMetricStore):
    """In-memory implementation of IMetricStore using Python dictionaries"""

    def __init__(self):
        self._data: Dict[str, Any] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            value = self._data.get(key)
            return list(value) if isinstance(value, list) else value

    async def put(self, key: str, value: Any) -> None:
        async with self._lock:
            self._data[key] = value

    async def append(self, key: str, value: Any, limit: Optional[int] = None) -> List[Any]:
        """
        Append to the list at key, trimming the oldest items beyond limit.

        Returns:
            Items evicted by the limit, oldest first
        """
        async with self._lock:
            items = self._data.setdefault(key, [])
            items.append(value)
            evicted: List[Any] = []
            if limit is not None and len(items) > limit:
                overflow = len(items) - limit
                evicted = items[:overflow]
                del items[:overflow]
            return evicted

    async def scan_prefix(self, prefix: str) -> Dict[str, Any]:
        async with self._lock:
            return {
                key: list(value) if isinstance(value, list) else value
                for key, value in self._data.items()
                if key.startswith(prefix)
            }

    async def evict(self, prefix: str, predicate: Callable[[Any], bool]) -> int:
        """
        Remove list items under prefix for which predicate is true.

        Keys left with an empty list are deleted.
        """
        removed = 0
        async with self._lock:
            for key in [k for k in self._data if k.startswith(prefix)]:
                value = self._data[key]
                if not isinstance(value, list):
                    continue
                kept = [item for item in value if not predicate(item)]
                removed += len(value) - len(kept)
                if kept:
                    self._data[key] = kept
                else:
                    del self._data[key]
        return removed
