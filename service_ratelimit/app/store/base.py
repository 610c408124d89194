"""
Counter store capability interface.
"""

from abc import ABC, abstractmethod
from typing import Optional


class CounterStore(ABC):
    """Atomic single-key operations the token bucket engine depends on.

    Implementations translate backend failures into ``StoreUnavailable``
    and never retry on their own.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    async def compare_and_set(self, key: str, expected: Optional[str], new_value: str, ttl: int) -> bool:
        """Write ``new_value`` only if the stored value equals ``expected``.

        ``expected=None`` matches an absent key. A successful write resets
        the key's expiry to ``ttl`` seconds. Returns False, without writing,
        on mismatch.
        """

    @abstractmethod
    async def initialize_if_absent(self, key: str, initial_value: str, ttl: int) -> bool:
        """Create the key only if it does not exist. Returns whether it was created."""

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove the key. Returns whether it existed."""

    @abstractmethod
    async def ttl(self, key: str) -> Optional[float]:
        """Seconds until the key expires, or None if absent or persistent."""

    async def ping(self) -> bool:
        """Check store health."""
        return True

    async def close(self) -> None:
        """Release any held connections."""
