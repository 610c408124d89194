"""
In-process counter store.

Useful for single-process deployments and tests. Semantics match the Redis
store: values are strings, expiry is honoured lazily on access.
"""

import asyncio
import time
from typing import Callable, Dict, Optional, Tuple

from .base import CounterStore


class InMemoryStore(CounterStore):
    """Dictionary backed counter store guarded by an asyncio lock."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}
        self._lock = asyncio.Lock()

    def _read(self, key: str) -> Optional[str]:
        # Callers hold self._lock; expired entries are dropped here
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and expires_at <= self.clock():
            del self._data[key]
            return None
        return value

    def _write(self, key: str, value: str, ttl: int):
        self._data[key] = (value, self.clock() + ttl)

    async def get(self, key: str) -> Optional[str]:
        async with self._lock:
            return self._read(key)

    async def compare_and_set(self, key: str, expected: Optional[str], new_value: str, ttl: int) -> bool:
        async with self._lock:
            if self._read(key) != expected:
                return False
            self._write(key, new_value, ttl)
            return True

    async def initialize_if_absent(self, key: str, initial_value: str, ttl: int) -> bool:
        async with self._lock:
            if self._read(key) is not None:
                return False
            self._write(key, initial_value, ttl)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            existed = self._read(key) is not None
            self._data.pop(key, None)
            return existed

    async def ttl(self, key: str) -> Optional[float]:
        async with self._lock:
            if self._read(key) is None:
                return None
            expires_at = self._data[key][1]
            if expires_at is None:
                return None
            return expires_at - self.clock()
