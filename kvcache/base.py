from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Hashable, List, Tuple

from .clock import Duration

# Zero-argument callable producing the value to cache. Raising aborts the
# write and propagates to the caller; returning None stores nothing.
Producer = Callable[[], Any]


class BaseAdapter(ABC):
    """Storage contract every cache adapter implements.

    Durations are seconds (int/float) or timedelta. A zero duration never
    expires; a negative one removes the key. Implementations must be safe
    for concurrent callers.
    """

    @abstractmethod
    def set(self, key: Hashable, value: Any, duration: Duration = 0) -> None:
        """Set `key` to `value`; a None value or negative duration removes it."""
        pass

    @abstractmethod
    def set_map(self, data: Dict[Hashable, Any], duration: Duration = 0) -> None:
        """Set every pair of `data` with a single expiry computed once."""
        pass

    @abstractmethod
    def set_if_not_exist(self, key: Hashable, value: Any, duration: Duration = 0) -> bool:
        """Set `key` only if it is missing. A callable `value` is invoked as a producer."""
        pass

    @abstractmethod
    def set_if_not_exist_func(self, key: Hashable, f: Producer, duration: Duration = 0) -> bool:
        """Set `key` to the result of `f` if it is missing; `f` runs outside any lock."""
        pass

    @abstractmethod
    def set_if_not_exist_func_lock(self, key: Hashable, f: Producer, duration: Duration = 0) -> bool:
        """Like set_if_not_exist_func, but `f` runs inside the key's write critical section."""
        pass

    @abstractmethod
    def get(self, key: Hashable) -> Any:
        """Return the value of a live `key`, or None if missing or expired."""
        pass

    @abstractmethod
    def get_or_set(self, key: Hashable, value: Any, duration: Duration = 0) -> Any:
        """Return the value of `key`, setting it to `value` (or a producer's result) first if missing."""
        pass

    @abstractmethod
    def get_or_set_func(self, key: Hashable, f: Producer, duration: Duration = 0) -> Any:
        """Return the value of `key`, filling it from `f` run outside any lock if missing."""
        pass

    @abstractmethod
    def get_or_set_func_lock(self, key: Hashable, f: Producer, duration: Duration = 0) -> Any:
        """Return the value of `key`, filling it from `f` at most once across concurrent callers."""
        pass

    @abstractmethod
    def contains(self, key: Hashable) -> bool:
        pass

    @abstractmethod
    def get_expire(self, key: Hashable) -> float:
        """Remaining seconds of `key`: 0 if it never expires, -1 if it is missing."""
        pass

    @abstractmethod
    def update(self, key: Hashable, value: Any) -> Tuple[Any, bool]:
        """Replace the value of `key` keeping its expiry; returns (old value, existed)."""
        pass

    @abstractmethod
    def update_expire(self, key: Hashable, duration: Duration) -> float:
        """Replace the expiry of `key`; returns the previous remaining seconds or -1 if missing."""
        pass

    @abstractmethod
    def remove(self, *keys: Hashable) -> Any:
        """Delete `keys` and return the value of the last deleted one."""
        pass

    def removes(self, keys: List[Hashable]) -> None:
        self.remove(*keys)

    @abstractmethod
    def size(self) -> int:
        pass

    @abstractmethod
    def keys(self) -> List[Hashable]:
        pass

    def key_strings(self) -> List[str]:
        return [str(key) for key in self.keys()]

    @abstractmethod
    def values(self) -> List[Any]:
        pass

    @abstractmethod
    def data(self) -> Dict[Hashable, Any]:
        """Return a snapshot copy of every key-value pair."""
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def close(self) -> None:
        """Close the adapter and release its background resources."""
        pass

    @abstractmethod
    def get_stats(self) -> Dict[str, Any]:
        """Return adapter statistics."""
        pass


def is_producer(value: Any) -> bool:
    # Conditional writes invoke callables as producers instead of storing them.
    return callable(value)
