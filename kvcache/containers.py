"""Small thread-safe containers used by the memory adapter."""
import queue
import threading
from typing import Any, Hashable, Iterable, Iterator, Optional, Set


class AtomicBool:
    """Boolean flag whose reads and writes are serialized by a lock."""

    def __init__(self, value: bool = False):
        self._value = value
        self._lock = threading.Lock()

    def get(self) -> bool:
        with self._lock:
            return self._value

    def set(self, value: bool) -> bool:
        """Store `value` and return the previous one."""
        with self._lock:
            old, self._value = self._value, value
            return old

    def cas(self, old: bool, new: bool) -> bool:
        with self._lock:
            if self._value != old:
                return False
            self._value = new
            return True

    def __bool__(self) -> bool:
        return self.get()


class SafeSet:
    def __init__(self, items: Optional[Iterable[Hashable]] = None):
        self._items: Set[Hashable] = set(items or ())
        self._lock = threading.Lock()

    def add(self, *items: Hashable) -> None:
        with self._lock:
            self._items.update(items)

    def remove(self, *items: Hashable) -> None:
        with self._lock:
            for item in items:
                self._items.discard(item)

    def contains(self, item: Hashable) -> bool:
        with self._lock:
            return item in self._items

    def size(self) -> int:
        with self._lock:
            return len(self._items)

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __iter__(self) -> Iterator[Hashable]:
        # Iterate over a snapshot so callers may mutate the set meanwhile.
        with self._lock:
            snapshot = list(self._items)
        return iter(snapshot)

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, item: Hashable) -> bool:
        return self.contains(item)


class EventQueue:
    """Unbounded multi-producer FIFO.

    `push` never blocks and never drops, so the only back-pressure on
    writers is process memory.
    """

    def __init__(self):
        self._queue: "queue.SimpleQueue[Any]" = queue.SimpleQueue()

    def push(self, item: Any) -> None:
        self._queue.put(item)

    def pop(self, block: bool = False, timeout: Optional[float] = None) -> Any:
        """Return the oldest item, or None if nothing arrived in time."""
        try:
            return self._queue.get(block=block, timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> Iterator[Any]:
        while True:
            item = self.pop()
            if item is None:
                return
            yield item

    def size(self) -> int:
        return self._queue.qsize()

    def __len__(self) -> int:
        return self.size()
