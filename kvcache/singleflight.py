import threading
from typing import Any, Callable, Dict, Hashable, Optional, Tuple


class _Call:
    def __init__(self):
        self.done = threading.Event()
        self.result: Any = None
        self.error: Optional[BaseException] = None


class SingleFlight:
    """Collapses concurrent calls for the same key into one execution.

    The first caller for a key runs the function; callers arriving while it
    runs wait for it and receive the same result, or re-raise the same
    exception. The registry entry is dropped as soon as the function
    returns or raises, so later calls run it again.
    """

    def __init__(self):
        self._calls: Dict[Hashable, _Call] = {}
        self._lock = threading.Lock()

    def do(self, key: Hashable, fn: Callable[[], Any]) -> Any:
        return self.do_shared(key, fn)[0]

    def do_shared(self, key: Hashable, fn: Callable[[], Any]) -> Tuple[Any, bool]:
        """Like `do`, also returning whether the result came from another caller's run."""
        with self._lock:
            call = self._calls.get(key)
            if call is not None:
                leader = False
            else:
                call = _Call()
                self._calls[key] = call
                leader = True

        if not leader:
            call.done.wait()
            if call.error is not None:
                raise call.error
            return call.result, True

        try:
            call.result = fn()
        except BaseException as e:
            call.error = e
            raise
        finally:
            with self._lock:
                self._calls.pop(key, None)
            call.done.set()
        return call.result, False

    def in_flight(self) -> int:
        with self._lock:
            return len(self._calls)
