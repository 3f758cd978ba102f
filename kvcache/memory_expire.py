import threading
from typing import Dict, Hashable, Optional

from .containers import SafeSet


class MemoryExpireTimes:
    """Key to expiry bucket mapping. Zero means the key is not indexed."""

    def __init__(self):
        self._buckets: Dict[Hashable, int] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> int:
        with self._lock:
            return self._buckets.get(key, 0)

    def set(self, key: Hashable, bucket: int) -> None:
        with self._lock:
            self._buckets[key] = bucket

    def delete(self, *keys: Hashable) -> None:
        with self._lock:
            for key in keys:
                self._buckets.pop(key, None)

    def size(self) -> int:
        with self._lock:
            return len(self._buckets)


class MemoryExpireSets:
    """Expiry bucket to the set of keys indexed in that bucket."""

    def __init__(self):
        self._sets: Dict[int, SafeSet] = {}
        self._lock = threading.Lock()

    def get(self, bucket: int) -> Optional[SafeSet]:
        with self._lock:
            return self._sets.get(bucket)

    def get_or_new(self, bucket: int) -> SafeSet:
        with self._lock:
            keys = self._sets.get(bucket)
            if keys is None:
                keys = SafeSet()
                self._sets[bucket] = keys
            return keys

    def delete(self, bucket: int) -> None:
        with self._lock:
            self._sets.pop(bucket, None)

    def buckets(self):
        with self._lock:
            return sorted(self._sets)
