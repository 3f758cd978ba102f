"""Process-wide periodic timer.

Jobs are zero-argument callables registered with an interval. A job that
returns `STOP` is closed and dropped from the timer; singleton jobs never
overlap with themselves. Due jobs run on a small thread pool so a slow job
does not hold up the others.
"""
import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, List, Optional

from .containers import AtomicBool

logger = logging.getLogger(__name__)

DEFAULT_TICK = 0.1
DEFAULT_WORKERS = 4


class _Stop:
    def __repr__(self) -> str:
        return "STOP"


# Returned by a job to deregister itself.
STOP = _Stop()

Job = Callable[[], Any]


class TimerEntry:
    def __init__(self, interval: float, job: Job, singleton: bool = False):
        self.interval = interval
        self.job = job
        self.singleton = singleton
        self.next_run = time.monotonic() + interval
        self._running = 0
        self._lock = threading.Lock()
        self._closed = AtomicBool()

    def close(self) -> None:
        self._closed.set(True)

    def is_closed(self) -> bool:
        return self._closed.get()

    def is_running(self) -> bool:
        with self._lock:
            return self._running > 0

    def _try_start(self) -> bool:
        with self._lock:
            if self.singleton and self._running:
                return False
            self._running += 1
            return True

    def _run(self) -> None:
        try:
            if self.is_closed():
                return
            if self.job() is STOP:
                self.close()
        except Exception:
            logger.exception(f"Timer job {self.job!r} failed")
        finally:
            with self._lock:
                self._running -= 1


class Timer:
    def __init__(self, tick: float = DEFAULT_TICK, workers: int = DEFAULT_WORKERS, name: str = "kvcache-timer"):
        self.tick = tick
        self._entries: List[TimerEntry] = []
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix=name)
        self._thread = threading.Thread(target=self._loop, daemon=True, name=name)
        self._thread.start()

    def add(self, interval: float, job: Job, singleton: bool = False) -> TimerEntry:
        if interval <= 0:
            raise ValueError("interval must be positive")
        entry = TimerEntry(interval, job, singleton)
        with self._lock:
            self._entries.append(entry)
        return entry

    def add_singleton(self, interval: float, job: Job) -> TimerEntry:
        return self.add(interval, job, singleton=True)

    def entries(self) -> List[TimerEntry]:
        with self._lock:
            return [e for e in self._entries if not e.is_closed()]

    def is_closed(self) -> bool:
        return self._stop_event.is_set()

    def close(self) -> None:
        self._stop_event.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=2.0)
        self._executor.shutdown(wait=False)

    def _loop(self) -> None:
        while not self._stop_event.wait(self.tick):
            self._run_due(time.monotonic())

    def _run_due(self, now: float) -> None:
        with self._lock:
            self._entries = [e for e in self._entries if not e.is_closed()]
            due = [e for e in self._entries if e.next_run <= now]
        for entry in due:
            entry.next_run = now + entry.interval
            if not entry._try_start():
                continue
            try:
                self._executor.submit(entry._run)
            except RuntimeError:
                # Executor already shut down by close().
                with entry._lock:
                    entry._running -= 1
                return


_default_timer: Optional[Timer] = None
_default_timer_lock = threading.Lock()


def default_timer() -> Timer:
    """Return the timer shared by every adapter in the process."""
    global _default_timer
    with _default_timer_lock:
        if _default_timer is None or _default_timer.is_closed():
            _default_timer = Timer()
        return _default_timer
