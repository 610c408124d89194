"""
Counter store adapters.

Every adapter exposes the same small capability surface (get,
compare_and_set, initialize_if_absent, delete) so the token bucket engine
can run unchanged against Redis or an in-process dictionary.
"""

from .base import CounterStore
from .memory_store import InMemoryStore
from .redis_store import RedisStore, get_default_store, close_default_store

__all__ = [
    "CounterStore",
    "InMemoryStore",
    "RedisStore",
    "get_default_store",
    "close_default_store",
]
