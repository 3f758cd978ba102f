import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Iterator, List, Optional, Tuple

from .base import is_producer
from .clock import NEVER_EXPIRE, now_millis


@dataclass
class MemoryItem:
    value: Any
    expire: int  # absolute expiry in milliseconds

    def is_expired(self, now: Optional[int] = None) -> bool:
        if now is None:
            now = now_millis()
        return self.expire <= now


class _KeyLock:
    __slots__ = ("lock", "refs")

    def __init__(self):
        self.lock = threading.Lock()
        self.refs = 0


class MemoryData:
    """Key to MemoryItem store.

    A single re-entrant lock guards the dict and is only held for short
    critical sections. Producers invoked by `set_with_lock` run under a
    lock owned by their key alone, so a slow producer only blocks writers
    of the same key and may itself load other keys. Key locks are created
    on demand and dropped once no caller holds or waits for them.
    """

    def __init__(self):
        self._data: Dict[Hashable, MemoryItem] = {}
        self._lock = threading.RLock()
        self._key_locks: Dict[Hashable, _KeyLock] = {}

    @contextmanager
    def _key_lock(self, key: Hashable) -> Iterator[None]:
        with self._lock:
            entry = self._key_locks.get(key)
            if entry is None:
                entry = self._key_locks[key] = _KeyLock()
            entry.refs += 1
        try:
            with entry.lock:
                yield
        finally:
            with self._lock:
                entry.refs -= 1
                if entry.refs == 0:
                    del self._key_locks[key]

    def key_lock_count(self) -> int:
        with self._lock:
            return len(self._key_locks)

    def get(self, key: Hashable) -> Optional[MemoryItem]:
        with self._lock:
            return self._data.get(key)

    def set(self, key: Hashable, item: MemoryItem) -> None:
        with self._lock:
            self._data[key] = item

    def set_map(self, data: Dict[Hashable, Any], expire: int) -> None:
        with self._lock:
            for key, value in data.items():
                self._data[key] = MemoryItem(value, expire)

    def set_with_lock(
        self,
        key: Hashable,
        value: Any,
        expire: int,
        call_producer: bool = True,
    ) -> Tuple[Any, bool]:
        """Store `value` unless a live item already exists.

        A callable `value` is treated as a producer and invoked (callable
        check first) while holding the key's own lock. A None result is
        not stored. Returns the effective value and whether this call wrote
        it; if another writer stored a live item first, its value wins.
        """
        with self._key_lock(key):
            with self._lock:
                item = self._data.get(key)
                if item is not None and not item.is_expired():
                    return item.value, False
            if call_producer and is_producer(value):
                value = value()
            if value is None:
                return None, False
            with self._lock:
                item = self._data.get(key)
                if item is not None and not item.is_expired():
                    return item.value, False
                self._data[key] = MemoryItem(value, expire)
            return value, True

    def update(self, key: Hashable, value: Any) -> Tuple[Any, bool]:
        """Replace the value of a live item keeping its expiry.

        A None `value` deletes the item. Returns the old value and whether
        the key existed.
        """
        with self._lock:
            item = self._data.get(key)
            if item is None or item.is_expired():
                return None, False
            old = item.value
            if value is None:
                del self._data[key]
            else:
                item.value = value
            return old, True

    def update_expire(self, key: Hashable, expire: int) -> int:
        """Replace the expiry of a live item.

        Returns the previous remaining milliseconds, 0 if it never expired,
        or -1 if the key is absent.
        """
        with self._lock:
            item = self._data.get(key)
            now = now_millis()
            if item is None or item.is_expired(now):
                return -1
            old = item.expire
            item.expire = expire
        if old == NEVER_EXPIRE:
            return 0
        return old - now

    def remove(self, *keys: Hashable) -> Tuple[List[Hashable], Any]:
        """Delete `keys`, returning the removed keys and the last removed value."""
        removed: List[Hashable] = []
        value = None
        with self._lock:
            for key in keys:
                item = self._data.pop(key, None)
                if item is not None:
                    removed.append(key)
                    value = item.value
        return removed, value

    def delete_expired(self, key: Hashable, now: Optional[int] = None) -> bool:
        """Delete `key` only if it is absent or expired at `now`.

        Returns False when a live item was found and kept.
        """
        if now is None:
            now = now_millis()
        with self._lock:
            item = self._data.get(key)
            if item is None:
                return True
            if not item.is_expired(now):
                return False
            del self._data[key]
            return True

    def size(self) -> int:
        with self._lock:
            return len(self._data)

    def keys(self) -> List[Hashable]:
        with self._lock:
            return list(self._data.keys())

    def values(self) -> List[Any]:
        with self._lock:
            return [item.value for item in self._data.values()]

    def data(self) -> Dict[Hashable, Any]:
        with self._lock:
            return {key: item.value for key, item in self._data.items()}

    def clear(self) -> List[Hashable]:
        """Delete every item and return the deleted keys."""
        with self._lock:
            keys = list(self._data)
            self._data.clear()
        return keys
