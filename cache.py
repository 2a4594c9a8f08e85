"""Small keyed cache used by the application state layer."""
import logging
from typing import Dict, Generic, Hashable, Optional, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class KeyedCache(Generic[K, V]):
    """In-memory map with explicit invalidation.

    Entries never expire on their own; every mutation that changes what a key
    would read must call ``invalidate`` (or ``invalidate_all``) before the next
    read.
    """

    def __init__(self, name: str):
        self.name = name
        self._entries: Dict[K, V] = {}

    def get(self, key: K) -> Optional[V]:
        return self._entries.get(key)

    def set(self, key: K, value: V) -> None:
        self._entries[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def invalidate(self, *keys: K) -> None:
        for key in keys:
            self._entries.pop(key, None)
        logger.debug("%s cache invalidated for %s", self.name, keys)

    def invalidate_all(self) -> None:
        self._entries.clear()
        logger.debug("%s cache cleared", self.name)
