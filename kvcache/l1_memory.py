import logging
import weakref
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Optional, Tuple

from .base import BaseAdapter, Producer, is_producer
from .clock import (
    BUCKET_MILLIS,
    NEVER_EXPIRE,
    Duration,
    bucket_of,
    expire_at,
    now_millis,
    to_millis,
)
from .containers import AtomicBool, EventQueue
from .exceptions import CacheConfigurationError
from .memory_data import MemoryData, MemoryItem
from .memory_expire import MemoryExpireSets, MemoryExpireTimes
from .memory_lru import MemoryLru
from .timer import STOP, Timer, default_timer

logger = logging.getLogger(__name__)

DEFAULT_JANITOR_INTERVAL = 1.0
# Elapsed buckets scanned per tick; absorbs tick jitter and late drains.
DEFAULT_SCAN_WINDOW = 5


@dataclass(frozen=True)
class MemoryEvent:
    key: Hashable
    expire: int


def _janitor_job(ref: "weakref.ReferenceType[MemoryAdapter]") -> Callable[[], Any]:
    # Holds the adapter weakly so an unreachable adapter is collected and
    # its job deregisters on the next tick.
    def job():
        adapter = ref()
        if adapter is None:
            return STOP
        return adapter._sync_event_and_clear_expired()
    return job


class MemoryAdapter(BaseAdapter):
    """
    In-process cache adapter.

    Writers update the store and append an expiry event; a singleton janitor
    job on the shared timer drains the events into a per-second bucket index
    and deletes keys whose bucket has elapsed. Expired keys are unreadable at
    once and physically removed within about one second. With `capacity`
    >= 1, least recently used keys are evicted once the size exceeds it.

    A closed adapter keeps serving from memory; only its janitor stops.
    """

    def __init__(
        self,
        capacity: int = 0,
        janitor_interval: float = DEFAULT_JANITOR_INTERVAL,
        scan_window: int = DEFAULT_SCAN_WINDOW,
        timer: Optional[Timer] = None,
    ):
        if capacity < 0:
            raise CacheConfigurationError(f"capacity must be >= 0, got {capacity}")
        if janitor_interval <= 0:
            raise CacheConfigurationError(f"janitor_interval must be positive, got {janitor_interval}")
        if scan_window < 1:
            raise CacheConfigurationError(f"scan_window must be >= 1, got {scan_window}")

        self.capacity = capacity
        self.janitor_interval = janitor_interval
        self.scan_window = scan_window

        self._data = MemoryData()
        self._expire_times = MemoryExpireTimes()
        self._expire_sets = MemoryExpireSets()
        self._lru: Optional[MemoryLru] = MemoryLru(capacity) if capacity > 0 else None
        self._events = EventQueue()
        self._closed = AtomicBool()

        self._timer = timer or default_timer()
        self._janitor = self._timer.add_singleton(janitor_interval, _janitor_job(weakref.ref(self)))

    def set(self, key: Hashable, value: Any, duration: Duration = 0) -> None:
        if value is None or to_millis(duration) < 0:
            self.remove(key)
            return
        expire = expire_at(duration)
        self._data.set(key, MemoryItem(value, expire))
        self._events.push(MemoryEvent(key, expire))
        self._handle_lru_key(key)

    def set_map(self, data: Dict[Hashable, Any], duration: Duration = 0) -> None:
        if not data:
            return
        if to_millis(duration) < 0:
            self.remove(*data)
            return
        expire = expire_at(duration)
        items = {k: v for k, v in data.items() if v is not None}
        self._data.set_map(items, expire)
        for key in items:
            self._events.push(MemoryEvent(key, expire))
        removed = [k for k, v in data.items() if v is None]
        if removed:
            self.remove(*removed)
        self._handle_lru_key(*items)

    def set_if_not_exist(self, key: Hashable, value: Any, duration: Duration = 0) -> bool:
        if self.contains(key):
            return False
        _, written = self._set_with_lock_check(key, value, duration)
        return written

    def set_if_not_exist_func(self, key: Hashable, f: Producer, duration: Duration = 0) -> bool:
        if self.contains(key):
            return False
        value = f()
        _, written = self._set_with_lock_check(key, value, duration, call_producer=False)
        return written

    def set_if_not_exist_func_lock(self, key: Hashable, f: Producer, duration: Duration = 0) -> bool:
        if self.contains(key):
            return False
        _, written = self._set_with_lock_check(key, f, duration)
        return written

    def get(self, key: Hashable) -> Any:
        item = self._data.get(key)
        if item is not None and not item.is_expired():
            self._handle_lru_key(key)
            return item.value
        return None

    def get_or_set(self, key: Hashable, value: Any, duration: Duration = 0) -> Any:
        result = self.get(key)
        if result is not None:
            return result
        result, _ = self._set_with_lock_check(key, value, duration)
        return result

    def get_or_set_func(self, key: Hashable, f: Producer, duration: Duration = 0) -> Any:
        result = self.get(key)
        if result is not None:
            return result
        value = f()
        if value is None:
            return None
        result, _ = self._set_with_lock_check(key, value, duration, call_producer=False)
        return result

    def get_or_set_func_lock(self, key: Hashable, f: Producer, duration: Duration = 0) -> Any:
        result = self.get(key)
        if result is not None:
            return result
        result, _ = self._set_with_lock_check(key, f, duration)
        return result

    def contains(self, key: Hashable) -> bool:
        return self.get(key) is not None

    def get_expire(self, key: Hashable) -> float:
        item = self._data.get(key)
        now = now_millis()
        if item is None or item.is_expired(now):
            return -1
        self._handle_lru_key(key)
        if item.expire == NEVER_EXPIRE:
            return 0
        return (item.expire - now) / 1000

    def update(self, key: Hashable, value: Any) -> Tuple[Any, bool]:
        old, exist = self._data.update(key, value)
        if not exist:
            return None, False
        if value is None:
            self._events.push(MemoryEvent(key, now_millis() - BUCKET_MILLIS))
            self._lru_remove(key)
        else:
            self._handle_lru_key(key)
        return old, True

    def update_expire(self, key: Hashable, duration: Duration) -> float:
        expire = expire_at(duration)
        old = self._data.update_expire(key, expire)
        if old == -1:
            return -1
        self._events.push(MemoryEvent(key, expire))
        if to_millis(duration) < 0:
            self._lru_remove(key)
        else:
            self._handle_lru_key(key)
        return old / 1000

    def remove(self, *keys: Hashable) -> Any:
        if not keys:
            return None
        value = self._do_remove(*keys)
        self._lru_remove(*keys)
        return value

    def size(self) -> int:
        return self._data.size()

    def keys(self) -> List[Hashable]:
        return self._data.keys()

    def values(self) -> List[Any]:
        return self._data.values()

    def data(self) -> Dict[Hashable, Any]:
        return self._data.data()

    def clear(self) -> None:
        # LRU first: a key written in between is then at worst tracked
        # without an item, never stored without a node.
        if self._lru is not None:
            self._lru.clear()
        keys = self._data.clear()
        # Elapsed events move the cleared keys into a bucket the janitor
        # sweeps, dropping their index entries.
        expire = now_millis() - BUCKET_MILLIS
        for key in keys:
            self._events.push(MemoryEvent(key, expire))

    def close(self) -> None:
        self._closed.set(True)

    def is_closed(self) -> bool:
        return self._closed.get()

    def get_stats(self) -> Dict[str, Any]:
        return {
            "type": "memory",
            "size": self._data.size(),
            "capacity": self.capacity,
            "closed": self._closed.get(),
            "pending_events": self._events.size(),
        }

    def _set_with_lock_check(
        self,
        key: Hashable,
        value: Any,
        duration: Duration,
        call_producer: bool = True,
    ) -> Tuple[Any, bool]:
        """Set `key` unless a live item exists, double checked under the key's write lock.

        A callable `value` is invoked as a producer inside that lock when
        `call_producer` is set. A negative duration evaluates the value but
        removes the key instead of storing it.
        """
        if to_millis(duration) < 0:
            if call_producer and is_producer(value):
                value = value()
            self.remove(key)
            return value, False
        expire = expire_at(duration)
        result, written = self._data.set_with_lock(key, value, expire, call_producer)
        if written:
            self._events.push(MemoryEvent(key, expire))
        if result is not None:
            self._handle_lru_key(key)
        return result, written

    def _do_remove(self, *keys: Hashable) -> Any:
        removed, value = self._data.remove(*keys)
        # An already elapsed expiry moves the keys into a bucket the janitor
        # scans next, which drops their index entries.
        expire = now_millis() - BUCKET_MILLIS
        for key in removed:
            self._events.push(MemoryEvent(key, expire))
        return value

    def _lru_remove(self, *keys: Hashable) -> None:
        if self._lru is None or not keys:
            return
        self._lru.remove(*keys)
        # A writer may have stored the key again between the store delete
        # and the LRU removal; it must stay evictable.
        now = now_millis()
        live = []
        for key in keys:
            item = self._data.get(key)
            if item is not None and not item.is_expired(now):
                live.append(key)
        self._handle_lru_key(*live)

    def _handle_lru_key(self, *keys: Hashable) -> None:
        if self._lru is None or not keys:
            return
        evicted = self._lru.save_and_evict(*keys)
        if evicted:
            self._do_remove(*evicted)

    def _sync_event_and_clear_expired(self) -> Any:
        """One janitor tick. Never raises; returns STOP once the adapter is closed."""
        if self._closed.get():
            logger.debug("Memory adapter closed, stopping janitor")
            return STOP
        try:
            synced = self._sync_events()
            cleared = self._clear_expired()
        except Exception:
            logger.exception("Cache janitor tick failed")
            return None
        if synced or cleared:
            logger.debug(f"Cache janitor synced {synced} event(s), cleared {cleared} key(s)")
        return None

    def _sync_events(self) -> int:
        count = 0
        for event in self._events.drain():
            count += 1
            old_bucket = self._expire_times.get(event.key)
            new_bucket = bucket_of(event.expire)
            if new_bucket == old_bucket:
                continue
            self._expire_sets.get_or_new(new_bucket).add(event.key)
            if old_bucket != 0:
                old_keys = self._expire_sets.get(old_bucket)
                if old_keys is not None:
                    old_keys.remove(event.key)
            self._expire_times.set(event.key, new_bucket)
        return count

    def _clear_expired(self) -> int:
        count = 0
        now = now_millis()
        current = bucket_of(now)
        for i in range(1, self.scan_window + 1):
            bucket = current - i * BUCKET_MILLIS
            keys = self._expire_sets.get(bucket)
            if keys is None:
                continue
            for key in keys:
                if not self._data.delete_expired(key, now):
                    # Rewritten after its event was drained, or events of
                    # racing writers arrived out of order: re-index it by
                    # its current expiry on the next tick.
                    item = self._data.get(key)
                    if item is not None:
                        self._events.push(MemoryEvent(key, item.expire))
                    continue
                self._expire_times.delete(key)
                self._lru_remove(key)
                count += 1
            self._expire_sets.delete(bucket)
        return count
