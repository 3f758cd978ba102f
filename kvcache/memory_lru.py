import logging
import threading
from collections import OrderedDict
from typing import Hashable, List

from .exceptions import CacheConfigurationError

logger = logging.getLogger(__name__)


class MemoryLru:
    """Bounded recency order of cache keys.

    The OrderedDict is the doubly linked list plus its key locator: the
    first entry is the least recently used key, the last one the most
    recently used.
    """

    def __init__(self, capacity: int):
        if capacity < 1:
            raise CacheConfigurationError(f"LRU capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._order: "OrderedDict[Hashable, None]" = OrderedDict()
        self._lock = threading.Lock()

    def save_and_evict(self, *keys: Hashable) -> List[Hashable]:
        """Mark `keys` as most recently used and return the keys evicted by overflow."""
        evicted: List[Hashable] = []
        with self._lock:
            for key in keys:
                if key in self._order:
                    self._order.move_to_end(key)
                else:
                    self._order[key] = None
            while len(self._order) > self.capacity:
                key, _ = self._order.popitem(last=False)
                evicted.append(key)
        if evicted:
            logger.debug(f"LRU evicted {len(evicted)} key(s), capacity {self.capacity}")
        return evicted

    def remove(self, *keys: Hashable) -> None:
        with self._lock:
            for key in keys:
                self._order.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._order.clear()

    def size(self) -> int:
        with self._lock:
            return len(self._order)

    def keys(self) -> List[Hashable]:
        with self._lock:
            return list(self._order)
