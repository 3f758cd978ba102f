import logging
import threading
from typing import Any, Dict, Hashable, List, Optional, Tuple

from .base import BaseAdapter, Producer
from .clock import Duration
from .config import CacheConfig
from .exceptions import BackendConnectionError, CacheConfigurationError
from .l1_memory import MemoryAdapter
from .l2_redis import RedisAdapter
from .singleflight import SingleFlight

logger = logging.getLogger(__name__)


class Cache(BaseAdapter):
    """Cache facade delegating every operation to one adapter.

    `get_or_set_func_lock` and `set_if_not_exist_func_lock` additionally go
    through a per-facade single-flight group, so concurrent callers in this
    process run the producer at most once per key even on adapters that
    cannot lock natively.
    """

    def __init__(self, adapter: Optional[BaseAdapter] = None):
        self._adapter = adapter or MemoryAdapter()
        self._flight = SingleFlight()

    def set_adapter(self, adapter: BaseAdapter) -> None:
        """Replace the adapter. The previous one is not closed."""
        self._adapter = adapter

    def get_adapter(self) -> BaseAdapter:
        return self._adapter

    def set(self, key: Hashable, value: Any, duration: Duration = 0) -> None:
        self._adapter.set(key, value, duration)

    def set_map(self, data: Dict[Hashable, Any], duration: Duration = 0) -> None:
        self._adapter.set_map(data, duration)

    def set_if_not_exist(self, key: Hashable, value: Any, duration: Duration = 0) -> bool:
        return self._adapter.set_if_not_exist(key, value, duration)

    def set_if_not_exist_func(self, key: Hashable, f: Producer, duration: Duration = 0) -> bool:
        return self._adapter.set_if_not_exist_func(key, f, duration)

    def set_if_not_exist_func_lock(self, key: Hashable, f: Producer, duration: Duration = 0) -> bool:
        written, shared = self._flight.do_shared(
            ("set_if_not_exist", key),
            lambda: self._adapter.set_if_not_exist_func_lock(key, f, duration),
        )
        # Only the caller that ran the producer can have stored the value.
        return written and not shared

    def get(self, key: Hashable) -> Any:
        return self._adapter.get(key)

    def get_or_set(self, key: Hashable, value: Any, duration: Duration = 0) -> Any:
        return self._adapter.get_or_set(key, value, duration)

    def get_or_set_func(self, key: Hashable, f: Producer, duration: Duration = 0) -> Any:
        return self._adapter.get_or_set_func(key, f, duration)

    def get_or_set_func_lock(self, key: Hashable, f: Producer, duration: Duration = 0) -> Any:
        value = self._adapter.get(key)
        if value is not None:
            return value
        return self._flight.do(
            ("get_or_set", key),
            lambda: self._adapter.get_or_set_func_lock(key, f, duration),
        )

    def contains(self, key: Hashable) -> bool:
        return self._adapter.contains(key)

    def get_expire(self, key: Hashable) -> float:
        return self._adapter.get_expire(key)

    def update(self, key: Hashable, value: Any) -> Tuple[Any, bool]:
        return self._adapter.update(key, value)

    def update_expire(self, key: Hashable, duration: Duration) -> float:
        return self._adapter.update_expire(key, duration)

    def remove(self, *keys: Hashable) -> Any:
        return self._adapter.remove(*keys)

    def removes(self, keys: List[Hashable]) -> None:
        self._adapter.removes(keys)

    def size(self) -> int:
        return self._adapter.size()

    def keys(self) -> List[Hashable]:
        return self._adapter.keys()

    def key_strings(self) -> List[str]:
        return self._adapter.key_strings()

    def values(self) -> List[Any]:
        return self._adapter.values()

    def data(self) -> Dict[Hashable, Any]:
        return self._adapter.data()

    def clear(self) -> None:
        self._adapter.clear()

    def close(self) -> None:
        self._adapter.close()

    def get_stats(self) -> Dict[str, Any]:
        stats = self._adapter.get_stats()
        stats["in_flight"] = self._flight.in_flight()
        return stats


def create_cache(config: Optional[CacheConfig] = None) -> Cache:
    """Build a Cache from configuration.

    With the redis adapter and AUTO_DETECT_REDIS the server is pinged first;
    if it is unreachable the cache degrades to the memory adapter, unless
    DEGRADE_ON_REDIS_UNAVAILABLE is off, in which case BackendConnectionError
    is raised.
    """
    config = config or CacheConfig()
    adapter_name = config.ADAPTER.lower()

    if adapter_name == "memory":
        return Cache(_memory_adapter(config))

    if adapter_name != "redis":
        raise CacheConfigurationError(f"Unknown cache adapter: {config.ADAPTER!r}")

    try:
        adapter = RedisAdapter(
            host=config.REDIS_HOST,
            port=config.REDIS_PORT,
            db=config.REDIS_DB,
            password=config.REDIS_PASSWORD,
            key_prefix=config.CACHE_PREFIX
        )
        if config.AUTO_DETECT_REDIS:
            adapter.ping()
    except Exception as e:
        if not config.DEGRADE_ON_REDIS_UNAVAILABLE:
            raise BackendConnectionError(f"Redis unavailable at {config.REDIS_HOST}:{config.REDIS_PORT}") from e
        logger.warning(f"Redis unavailable, degrading to memory adapter: {e}")
        return Cache(_memory_adapter(config))

    return Cache(adapter)


def _memory_adapter(config: CacheConfig) -> MemoryAdapter:
    return MemoryAdapter(
        capacity=config.LRU_CAPACITY,
        janitor_interval=config.JANITOR_INTERVAL,
        scan_window=config.JANITOR_SCAN_WINDOW
    )


_default_cache: Optional[Cache] = None
_default_cache_lock = threading.Lock()


def default_cache() -> Cache:
    """Return the process-wide Cache, created on first use with a MemoryAdapter."""
    global _default_cache
    with _default_cache_lock:
        if _default_cache is None:
            _default_cache = Cache()
        return _default_cache


# Module-level shortcuts operating on the default cache.

def set(key: Hashable, value: Any, duration: Duration = 0) -> None:
    default_cache().set(key, value, duration)


def set_map(data: Dict[Hashable, Any], duration: Duration = 0) -> None:
    default_cache().set_map(data, duration)


def set_if_not_exist(key: Hashable, value: Any, duration: Duration = 0) -> bool:
    return default_cache().set_if_not_exist(key, value, duration)


def set_if_not_exist_func(key: Hashable, f: Producer, duration: Duration = 0) -> bool:
    return default_cache().set_if_not_exist_func(key, f, duration)


def set_if_not_exist_func_lock(key: Hashable, f: Producer, duration: Duration = 0) -> bool:
    return default_cache().set_if_not_exist_func_lock(key, f, duration)


def get(key: Hashable) -> Any:
    return default_cache().get(key)


def get_or_set(key: Hashable, value: Any, duration: Duration = 0) -> Any:
    return default_cache().get_or_set(key, value, duration)


def get_or_set_func(key: Hashable, f: Producer, duration: Duration = 0) -> Any:
    return default_cache().get_or_set_func(key, f, duration)


def get_or_set_func_lock(key: Hashable, f: Producer, duration: Duration = 0) -> Any:
    return default_cache().get_or_set_func_lock(key, f, duration)


def contains(key: Hashable) -> bool:
    return default_cache().contains(key)


def get_expire(key: Hashable) -> float:
    return default_cache().get_expire(key)


def update(key: Hashable, value: Any) -> Tuple[Any, bool]:
    return default_cache().update(key, value)


def update_expire(key: Hashable, duration: Duration) -> float:
    return default_cache().update_expire(key, duration)


def remove(*keys: Hashable) -> Any:
    return default_cache().remove(*keys)


def removes(keys: List[Hashable]) -> None:
    default_cache().removes(keys)


def size() -> int:
    return default_cache().size()


def keys() -> List[Hashable]:
    return default_cache().keys()


def key_strings() -> List[str]:
    return default_cache().key_strings()


def values() -> List[Any]:
    return default_cache().values()


def data() -> Dict[Hashable, Any]:
    return default_cache().data()
